from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


@dataclass
class ChainResult:
    ok: bool
    value: Any = None
    code: str = ""
    message: str = ""


class IntegrationDisabledError(RuntimeError):
    pass


class IntegrationMisconfiguredError(RuntimeError):
    pass


class ChainCallError(RuntimeError):
    """A chain call reverted or returned something unusable."""


def try_chain(fn: Callable, *args, **kwargs) -> ChainResult:
    """Run one chain call and fold any failure into a ChainResult.

    Chain data is advisory, so nothing raised by the oracle escapes.
    """
    try:
        return ChainResult(ok=True, value=fn(*args, **kwargs))
    except IntegrationDisabledError as e:
        return ChainResult(ok=False, code="INTEGRATION_DISABLED", message=str(e))
    except IntegrationMisconfiguredError as e:
        return ChainResult(ok=False, code="INTEGRATION_MISCONFIGURED", message=str(e))
    except Exception as e:
        name = getattr(fn, "__name__", "chain_call")
        logger.warning("chain_call_failed call=%s err=%s", name, e)
        return ChainResult(ok=False, code="CHAIN_UNAVAILABLE", message=str(e) or type(e).__name__)
