from __future__ import annotations

from flask import Blueprint, jsonify

from popmart.extensions import mirror_state
from popmart.services.aggregation_service import (
    avg_ship_time,
    best_product,
    ratings_summary,
    seller_rating_snapshot,
)

insights_bp = Blueprint("insights_bp", __name__, url_prefix="/api")


@insights_bp.get("/insights/ratings")
def ratings():
    store = mirror_state().store
    products = store.products()
    summary = ratings_summary(products, store.ratings())
    items = [{"productId": p.id, "name": p.name, **summary[p.id]} for p in products]
    return jsonify({"ok": True, "items": items}), 200


@insights_bp.get("/insights/ship-times")
def ship_times():
    state = mirror_state()
    products = state.store.products()
    stats = avg_ship_time(products, state.store.list_orders(), state.settings.ship_time_scale)
    items = [
        {
            "productId": p.id,
            "name": p.name,
            "avgMs": stats[p.id]["avg_ms"],
            "count": stats[p.id]["count"],
            "display": stats[p.id]["display"],
        }
        for p in products
    ]
    return jsonify({"ok": True, "scale": state.settings.ship_time_scale, "items": items}), 200


@insights_bp.get("/insights/best-product")
def best():
    store = mirror_state().store
    products = store.products()
    summary = ratings_summary(products, store.ratings())
    product = best_product(products, summary)
    if product is None:
        return jsonify({"ok": True, "product": None, "rating": None}), 200
    return jsonify({"ok": True, "product": product.to_dict(), "rating": summary[product.id]}), 200


@insights_bp.get("/sellers/<wallet>/rating")
def seller_rating(wallet: str):
    snapshot = seller_rating_snapshot(mirror_state().oracle, wallet)
    return jsonify({"ok": True, "wallet": wallet, **snapshot}), 200
