from __future__ import annotations

import os

from popmart.integrations.chain.base import ChainOracle
from popmart.integrations.chain.mock_provider import MockChainOracle
from popmart.integrations.common import IntegrationDisabledError, IntegrationMisconfiguredError


def _settings_value(settings, key: str, default=None):
    return getattr(settings, key, default)


def build_chain_oracle(settings) -> ChainOracle:
    provider = (_settings_value(settings, "chain_provider", "mock") or "mock").strip().lower()

    if provider == "disabled":
        raise IntegrationDisabledError("INTEGRATION_DISABLED:chain")

    if provider == "mock":
        return MockChainOracle()

    if provider != "web3":
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:chain_provider={provider}")

    rpc_url = (_settings_value(settings, "chain_rpc_url", "") or "").strip()
    if not rpc_url:
        raise IntegrationMisconfiguredError("INTEGRATION_MISCONFIGURED:missing CHAIN_RPC_URL")
    artifacts_dir = (_settings_value(settings, "chain_artifacts_dir", "") or "").strip()
    if not artifacts_dir or not os.path.isdir(artifacts_dir):
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing CHAIN_ARTIFACTS_DIR={artifacts_dir}")

    # imported here so mock/disabled deployments never touch web3 at startup
    from popmart.integrations.chain.web3_provider import Web3ChainOracle

    return Web3ChainOracle(
        rpc_url=rpc_url,
        artifacts_dir=artifacts_dir,
        timeout_seconds=int(_settings_value(settings, "chain_timeout_seconds", 10) or 10),
        escrow_address=_settings_value(settings, "escrow_contract_address", "") or None,
    )


def chain_health(settings, oracle: ChainOracle | None = None) -> dict:
    provider = (getattr(settings, "chain_provider", "mock") or "mock").strip().lower()
    missing = []
    if provider == "web3":
        if not (getattr(settings, "chain_rpc_url", "") or "").strip():
            missing.append("CHAIN_RPC_URL")
        artifacts_dir = (getattr(settings, "chain_artifacts_dir", "") or "").strip()
        if not artifacts_dir or not os.path.isdir(artifacts_dir):
            missing.append("CHAIN_ARTIFACTS_DIR")
    if provider == "disabled":
        status = "disabled"
    elif provider not in ("mock", "web3") or missing:
        status = "misconfigured"
    else:
        status = "configured"
    out = {
        "status": status,
        "provider": provider,
        "chain_id": getattr(settings, "chain_id", None),
        "missing": missing,
    }
    if oracle is not None and status == "configured":
        try:
            out["node"] = oracle.health()
        except Exception as e:
            out["node"] = {"provider": getattr(oracle, "name", provider), "connected": False, "error": str(e)}
    return out
