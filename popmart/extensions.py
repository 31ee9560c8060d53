from __future__ import annotations

from dataclasses import dataclass

from flask import current_app
from flask_cors import CORS

from popmart.integrations.chain.base import ChainOracle
from popmart.services.audit_log_service import AuditLogService
from popmart.services.order_store import OrderStore
from popmart.utils.link_tokens import LinkSigner
from popmart.utils.settings import Settings

cors = CORS()

EXTENSION_KEY = "popmart"


@dataclass
class MirrorState:
    settings: Settings
    store: OrderStore
    signer: LinkSigner
    audit: AuditLogService
    oracle: ChainOracle | None = None


def init_state(app, state: MirrorState) -> None:
    app.extensions[EXTENSION_KEY] = state


def mirror_state() -> MirrorState:
    return current_app.extensions[EXTENSION_KEY]


def get_store() -> OrderStore:
    return mirror_state().store


def get_settings() -> Settings:
    return mirror_state().settings
