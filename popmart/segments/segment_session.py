from __future__ import annotations

from flask import Blueprint, current_app, g, jsonify

from popmart.errors import ValidationError
from popmart.extensions import get_settings
from popmart.utils.http import json_body, wallet_field
from popmart.utils.jwt_utils import create_session_token

session_bp = Blueprint("session_bp", __name__, url_prefix="/api")


@session_bp.post("/session")
def open_session():
    payload = json_body()
    wallet = wallet_field(payload, "wallet", code="MISSING_WALLET")
    if not wallet:
        raise ValidationError("wallet required", code="MISSING_WALLET")
    ttl = int(get_settings().session_ttl_seconds)
    token = create_session_token(wallet, current_app.config["SECRET_KEY"], ttl_seconds=ttl)
    return jsonify({"ok": True, "token": token, "wallet": wallet.lower(), "expires_in": ttl}), 200


@session_bp.get("/session")
def current_session():
    wallet = getattr(g, "actor_wallet", None)
    return jsonify({"ok": True, "authenticated": bool(wallet), "wallet": wallet}), 200
