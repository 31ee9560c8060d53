from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable

from popmart.integrations.common import try_chain
from popmart.models import Order, Product, Rating
from popmart.services.access_control import is_zero_wallet
from popmart.utils.clock import format_scaled_duration, to_epoch_ms

RATING_UNAVAILABLE = "Rating unavailable"


def ratings_summary(products: Iterable[Product], ratings: Iterable[Rating]) -> dict[int, dict]:
    """Per product ``{"avg", "count"}``; avg is 0 for unrated products."""
    totals: dict[int, list[int]] = {}
    for rating in ratings:
        totals.setdefault(int(rating.product_id), []).append(int(rating.stars))
    summary = {}
    for product in products:
        stars = totals.get(int(product.id)) or []
        count = len(stars)
        summary[int(product.id)] = {
            "avg": (sum(stars) / count) if count else 0.0,
            "count": count,
        }
    return summary


def best_product(products: Iterable[Product], summary: dict[int, dict]) -> Product | None:
    best = None
    best_avg = None
    for product in products:
        row = summary.get(int(product.id)) or {}
        if not row.get("count"):
            continue
        avg = float(row.get("avg") or 0)
        # strict comparison keeps the first product on ties
        if best_avg is None or avg > best_avg:
            best, best_avg = product, avg
    return best


def avg_ship_time(products: Iterable[Product], orders: Iterable[Order], scale: float = 10.0) -> dict[int, dict]:
    deltas: dict[int, list[int]] = {}
    for order in orders:
        if order.created_at is None or order.shipped_at is None:
            continue
        delta = to_epoch_ms(order.shipped_at) - to_epoch_ms(order.created_at)
        if delta < 0:
            continue
        deltas.setdefault(int(order.product_id), []).append(delta)
    out = {}
    for product in products:
        values = deltas.get(int(product.id)) or []
        avg_ms = (sum(values) / len(values)) if values else None
        out[int(product.id)] = {
            "avg_ms": avg_ms,
            "count": len(values),
            "display": format_scaled_duration(avg_ms, scale),
        }
    return out


def seller_rating_snapshot(oracle, seller_wallet: str | None) -> dict:
    unavailable = {"available": False, "average": None, "count": None, "display": RATING_UNAVAILABLE}
    if oracle is None or is_zero_wallet(seller_wallet):
        return unavailable
    avg = try_chain(oracle.get_average_rating, seller_wallet)
    count = try_chain(oracle.rating_count, seller_wallet)
    if not (avg.ok and count.ok):
        return unavailable
    average = (Decimal(int(avg.value)) / Decimal(100)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return {
        "available": True,
        "average": str(average),
        "count": int(count.value),
        "display": f"{average} ({int(count.value)} ratings)",
    }
