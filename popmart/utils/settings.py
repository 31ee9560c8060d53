from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace


def _env_str(name: str, default: str = "") -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip()


def _env_int(name: str, default: int, *, minimum: int = 1, maximum: int = 100000) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = int(default)
    else:
        try:
            value = int(raw)
        except ValueError:
            value = int(default)
    if value < minimum:
        value = minimum
    if value > maximum:
        value = maximum
    return value


def _env_float(name: str, default: float, *, minimum: float = 0.0, maximum: float = 1000000.0) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        value = float(default)
    else:
        try:
            value = float(raw)
        except ValueError:
            value = float(default)
    return max(minimum, min(value, maximum))


@dataclass(frozen=True)
class Settings:
    env: str = "dev"
    secret_key: str = ""
    link_token_secret: str = ""
    link_token_ttl_seconds: int = 900
    session_ttl_seconds: int = 86400
    chain_provider: str = "mock"
    chain_rpc_url: str = "http://127.0.0.1:7545"
    chain_id: int = 1337
    chain_artifacts_dir: str = "build/contracts"
    escrow_contract_address: str = ""
    chain_timeout_seconds: int = 10
    ship_time_scale: float = 10.0
    upload_dir: str = "instance/uploads"
    public_base_url: str = ""
    cors_origins: str = ""
    sentry_dsn: str = ""

    @property
    def is_production(self) -> bool:
        return self.env in ("prod", "production")

    @property
    def signing_secret(self) -> str:
        return self.link_token_secret or self.secret_key

    def with_overrides(self, overrides: dict | None) -> "Settings":
        if not overrides:
            return self
        known = {f.name for f in fields(self)}
        return replace(self, **{k: v for k, v in overrides.items() if k in known})


def load_settings() -> Settings:
    return Settings(
        env=(_env_str("POPMART_ENV", "dev") or "dev").lower(),
        secret_key=_env_str("SECRET_KEY"),
        link_token_secret=_env_str("LINK_TOKEN_SECRET"),
        link_token_ttl_seconds=_env_int("LINK_TOKEN_TTL_SECONDS", 900, minimum=30, maximum=86400),
        session_ttl_seconds=_env_int("SESSION_TTL_SECONDS", 86400, minimum=60, maximum=60 * 60 * 24 * 30),
        chain_provider=(_env_str("CHAIN_PROVIDER", "mock") or "mock").lower(),
        chain_rpc_url=_env_str("CHAIN_RPC_URL", "http://127.0.0.1:7545"),
        chain_id=_env_int("CHAIN_ID", 1337, minimum=1, maximum=2**31 - 1),
        chain_artifacts_dir=_env_str("CHAIN_ARTIFACTS_DIR", "build/contracts"),
        escrow_contract_address=_env_str("ESCROW_CONTRACT_ADDRESS"),
        chain_timeout_seconds=_env_int("CHAIN_TIMEOUT_SECONDS", 10, minimum=1, maximum=300),
        ship_time_scale=_env_float("SHIP_TIME_SCALE", 10.0, minimum=0.0, maximum=100000.0),
        upload_dir=_env_str("UPLOAD_DIR", "instance/uploads"),
        public_base_url=_env_str("PUBLIC_BASE_URL").rstrip("/"),
        cors_origins=_env_str("CORS_ORIGINS"),
        sentry_dsn=_env_str("SENTRY_DSN"),
    )
