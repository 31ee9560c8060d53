from __future__ import annotations

from flask import g, request

from popmart.errors import ValidationError


def json_body() -> dict:
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}


def acting_wallet(payload: dict | None = None) -> str | None:
    """Wallet the caller acts as: explicit request value, else the session wallet."""
    payload = payload if payload is not None else {}
    for key in ("wallet", "actingWallet"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    header = (request.headers.get("X-Wallet-Address") or "").strip()
    if header:
        return header
    return getattr(g, "actor_wallet", None) or None


def wallet_field(payload: dict, *keys: str, code: str) -> str:
    """First non-blank wallet string under ``keys``; non-text values are rejected."""
    for key in keys:
        value = payload.get(key)
        if value is None:
            continue
        if not isinstance(value, str):
            raise ValidationError(f"{key} must be a wallet address string", code=code)
        if value.strip():
            return value.strip()
    return ""
