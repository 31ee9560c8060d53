from __future__ import annotations

from flask import Blueprint, jsonify, request

from popmart.errors import InvalidToken
from popmart.extensions import mirror_state
from popmart.integrations.chain.base import eth_to_wei
from popmart.services.link_service import issue_pay_token, issue_track_token, verify_token
from popmart.utils.http import json_body

links_bp = Blueprint("links_bp", __name__, url_prefix="/api")


@links_bp.get("/pay/<int:order_id>")
def pay_link(order_id: int):
    state = mirror_state()
    order = state.store.get_order(order_id)
    link = issue_pay_token(order, request.args.get("token"), state.signer, state.settings)
    payment = {
        "amountEth": str(order.total_eth),
        "amountWei": str(eth_to_wei(order.total_eth)),
        "sellerWallet": order.seller_wallet,
        "contractAddress": state.settings.escrow_contract_address or None,
        "chainId": state.settings.chain_id,
        "escrowOrderId": order.escrow_order_id,
    }
    return jsonify({"ok": True, "order": order.to_dict(), "link": link.to_dict(), "payment": payment}), 200


@links_bp.get("/track/<int:order_id>")
def track_link(order_id: int):
    state = mirror_state()
    order = state.store.get_order(order_id)
    link = issue_track_token(order, request.args.get("token"), state.signer, state.settings)
    entries, chain_failure = state.audit.reconcile(order)
    return jsonify({
        "ok": True,
        "order": order.to_dict(),
        "link": link.to_dict(),
        "auditLog": [entry.to_dict() for entry in entries],
        "chainWarning": chain_failure.to_dict() if chain_failure else None,
        "transactions": state.audit.transaction_details(order),
    }), 200


@links_bp.post("/tokens/verify")
def verify_link_token():
    token = json_body().get("token")
    if not isinstance(token, str) or not token.strip():
        raise InvalidToken("token required")
    payload = verify_token(mirror_state().signer, token)
    return jsonify({"ok": True, "payload": payload}), 200
