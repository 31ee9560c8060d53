from __future__ import annotations

from dataclasses import dataclass, field

from flask import Blueprint, jsonify

from popmart.errors import ValidationError
from popmart.extensions import get_store
from popmart.models import BuyerInfo, ChainCorrelation
from popmart.services.aggregation_service import ratings_summary
from popmart.utils.http import acting_wallet, json_body, wallet_field

cart_bp = Blueprint("cart_bp", __name__, url_prefix="/api")


@dataclass
class CheckoutRequest:
    buyer_wallet: str
    buyer: BuyerInfo
    chain: list = field(default_factory=list)

    @classmethod
    def from_json(cls, payload: dict) -> "CheckoutRequest":
        wallet = wallet_field(payload, "buyerWallet", code="MISSING_BUYER_WALLET") or (acting_wallet(payload) or "")
        raw_buyer = payload.get("buyer") or {}
        if not isinstance(raw_buyer, dict):
            raise ValidationError("buyer must be an object", code="INVALID_BUYER")
        raw_chain = payload.get("chain") or []
        if not isinstance(raw_chain, list) or not all(isinstance(row, dict) for row in raw_chain):
            raise ValidationError("chain must be a list of objects", code="INVALID_CHAIN_CORRELATION")
        return cls(
            buyer_wallet=wallet,
            buyer=BuyerInfo(
                name=str(raw_buyer.get("name") or "").strip(),
                email=str(raw_buyer.get("email") or "").strip(),
                address=str(raw_buyer.get("address") or "").strip(),
            ),
            chain=[ChainCorrelation.from_dict(row) for row in raw_chain],
        )


def _product_id(payload: dict) -> int:
    raw = payload.get("productId", payload.get("product_id"))
    try:
        return int(raw)
    except (TypeError, ValueError):
        raise ValidationError("productId required", code="MISSING_PRODUCT_ID")


@cart_bp.get("/products")
def list_products():
    store = get_store()
    products = store.products()
    summary = ratings_summary(products, store.ratings())
    items = []
    for product in products:
        row = product.to_dict()
        row["rating"] = summary.get(product.id)
        items.append(row)
    return jsonify({"ok": True, "items": items}), 200


@cart_bp.post("/products/<int:product_id>/seller-wallet")
def register_seller_wallet(product_id: int):
    payload = json_body()
    wallet = wallet_field(payload, "sellerWallet", "wallet", code="MISSING_SELLER_WALLET")
    product = get_store().register_seller_wallet(product_id, wallet)
    return jsonify({"ok": True, "product": product.to_dict()}), 200


@cart_bp.get("/cart")
def get_cart():
    return jsonify({"ok": True, **get_store().cart().to_dict()}), 200


@cart_bp.post("/cart/items")
def add_cart_item():
    payload = json_body()
    cart = get_store().add_to_cart(_product_id(payload), payload.get("qty", payload.get("quantity", 1)))
    return jsonify({"ok": True, **cart.to_dict()}), 200


@cart_bp.patch("/cart/items/<int:product_id>")
def update_cart_item(product_id: int):
    payload = json_body()
    if "qty" not in payload and "quantity" not in payload:
        raise ValidationError("qty required", code="INVALID_QUANTITY")
    cart = get_store().set_cart_quantity(product_id, payload.get("qty", payload.get("quantity")))
    return jsonify({"ok": True, **cart.to_dict()}), 200


@cart_bp.delete("/cart/items/<int:product_id>")
def delete_cart_item(product_id: int):
    cart = get_store().remove_from_cart(product_id)
    return jsonify({"ok": True, **cart.to_dict()}), 200


@cart_bp.post("/checkout")
def checkout():
    req = CheckoutRequest.from_json(json_body())
    orders = get_store().checkout(None, req.buyer_wallet, req.buyer, req.chain)
    return jsonify({"ok": True, "orders": [o.to_dict() for o in orders]}), 201
