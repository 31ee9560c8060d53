from __future__ import annotations

import os
import uuid
from dataclasses import dataclass

from flask import Blueprint, current_app, jsonify, request
from werkzeug.utils import secure_filename

from popmart.errors import InvalidFile, ValidationError
from popmart.extensions import get_settings, get_store
from popmart.models import ChainCorrelation, ProofFile
from popmart.services import access_control
from popmart.services.order_store import ROLE_BUYER, ROLE_SELLER
from popmart.utils.http import acting_wallet, json_body

orders_bp = Blueprint("orders_bp", __name__, url_prefix="/api")

_ROLES = (ROLE_BUYER, ROLE_SELLER)


@dataclass
class RateRequest:
    stars: object
    comment: str
    wallet: str | None

    @classmethod
    def from_json(cls, payload: dict) -> "RateRequest":
        if "stars" not in payload:
            raise ValidationError("stars required", code="INVALID_STARS")
        comment = payload.get("comment") or ""
        if not isinstance(comment, str):
            raise ValidationError("comment must be text", code="INVALID_COMMENT")
        return cls(stars=payload.get("stars"), comment=comment, wallet=acting_wallet(payload))


def _role_arg(default: str | None = None) -> str | None:
    role = (request.args.get("role") or "").strip().lower() or default
    if role is not None and role not in _ROLES:
        raise ValidationError("role must be buyer or seller", code="INVALID_ROLE")
    return role


@orders_bp.get("/orders")
def list_orders():
    store = get_store()
    wallet = (request.args.get("wallet") or "").strip()
    if wallet:
        orders = store.orders_for_wallet(wallet, _role_arg())
    else:
        orders = store.list_orders()
    return jsonify({"ok": True, "items": [o.to_dict() for o in orders]}), 200


@orders_bp.get("/orders/<int:order_id>")
def get_order(order_id: int):
    store = get_store()
    order = store.get_order(order_id)
    rating = store.rating_for_order(order_id)
    return jsonify({"ok": True, "order": order.to_dict(), "rating": rating.to_dict() if rating else None}), 200


@orders_bp.post("/orders/<int:order_id>/chain")
def attach_chain(order_id: int):
    correlation = ChainCorrelation.from_dict(json_body())
    order = get_store().attach_chain_correlation(order_id, correlation)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/orders/<int:order_id>/ship")
def ship_order(order_id: int):
    order = get_store().mark_shipped(order_id, acting_wallet(json_body()))
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/orders/<int:order_id>/deliver")
def deliver_order(order_id: int):
    order = get_store().mark_delivered(order_id, acting_wallet(json_body()))
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/orders/<int:order_id>/rate")
def rate_order(order_id: int):
    req = RateRequest.from_json(json_body())
    store = get_store()
    order = store.rate(order_id, req.stars, req.comment, req.wallet)
    rating = store.rating_for_order(order_id)
    return jsonify({"ok": True, "order": order.to_dict(), "rating": rating.to_dict() if rating else None}), 200


@orders_bp.post("/orders/<int:order_id>/review/start")
def start_review(order_id: int):
    order = get_store().review_start(order_id)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/orders/<int:order_id>/review/skip")
def skip_review(order_id: int):
    order = get_store().review_skip(order_id)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


def _save_upload(order_id: int, kind: str) -> ProofFile:
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        raise InvalidFile(None)
    original = secure_filename(upload.filename) or "proof"
    _, ext = os.path.splitext(original)
    upload_dir = get_settings().upload_dir
    os.makedirs(upload_dir, exist_ok=True)
    name = f"order-{order_id}-{kind}-{uuid.uuid4().hex[:12]}{ext.lower()}"
    path = os.path.join(upload_dir, name)
    upload.save(path)
    return ProofFile(filename=original, mimetype=upload.mimetype or "", path=path)


def _discard_upload(path: str) -> None:
    try:
        os.remove(path)
    except OSError as e:
        current_app.logger.warning("proof_cleanup_failed path=%s err=%s", path, e)


def _attach_proof(order_id: int, kind: str):
    store = get_store()
    wallet = acting_wallet(request.form.to_dict())
    # authorize before anything is written to the upload dir
    current = store.get_order(order_id)
    if kind == "shipment":
        access_control.require_seller(current, wallet)
    else:
        access_control.require_buyer(current, wallet)

    proof = _save_upload(order_id, kind)
    attached = False
    try:
        if kind == "shipment":
            order = store.attach_shipment_proof(order_id, wallet, proof)
        else:
            order = store.attach_delivery_proof(order_id, wallet, proof)
        attached = True
    finally:
        if not attached:
            _discard_upload(proof.path)
    return jsonify({"ok": True, "order": order.to_dict()}), 200


@orders_bp.post("/orders/<int:order_id>/proofs/shipment")
def upload_shipment_proof(order_id: int):
    return _attach_proof(order_id, "shipment")


@orders_bp.post("/orders/<int:order_id>/proofs/delivery")
def upload_delivery_proof(order_id: int):
    return _attach_proof(order_id, "delivery")


@orders_bp.get("/wallets/<wallet>/role")
def wallet_role(wallet: str):
    return jsonify({"ok": True, "wallet": wallet, "role": get_store().wallet_role(wallet)}), 200


@orders_bp.get("/wallets/<wallet>/latest-order")
def latest_order(wallet: str):
    role = _role_arg(ROLE_BUYER)
    order = get_store().latest_order_for(wallet, role)
    return jsonify({"ok": True, "role": role, "order": order.to_dict() if order else None}), 200
