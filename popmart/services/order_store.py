"""In-memory order mirror: catalogue, cart, orders and ratings.

The store is the single ownership boundary for mirror state. Every mutation
runs under one lock and callers only ever receive copies, so no caller can
observe (or cause) a partially-updated order.

Transitions follow the same rule as the escrow status map: a transition whose
precondition does not hold returns the unchanged order. Only access checks,
input validation and one-time actions (proof upload, rating) raise.
"""

from __future__ import annotations

import copy
import itertools
import logging
import threading
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Callable, Iterable

from popmart.errors import (
    AlreadyExists,
    EmptyCart,
    InvalidFile,
    InvalidState,
    NotFoundError,
    OrderNotFound,
    ProductNotFound,
    ValidationError,
)
from popmart.models import (
    BuyerInfo,
    Cart,
    CartLine,
    ChainCorrelation,
    Order,
    OrderStatus,
    Product,
    ProofFile,
    Rating,
    default_catalogue,
)
from popmart.services import access_control
from popmart.utils.clock import utc_now

logger = logging.getLogger(__name__)

ROLE_BUYER = "buyer"
ROLE_SELLER = "seller"

ACCEPTED_PROOF_TYPES = frozenset(
    {
        "image/jpeg",
        "image/png",
        "image/webp",
        "image/gif",
        "application/pdf",
    }
)

_TRANSITIONS = {
    OrderStatus.AWAITING_SHIPMENT: {OrderStatus.SHIPPED},
    OrderStatus.SHIPPED: {OrderStatus.DELIVERED},
    OrderStatus.DELIVERED: set(),
}

_PROOF_SLOTS = {
    "shipment": (OrderStatus.SHIPPED, "shipment_proof_path", "shipment_proof_at"),
    "delivery": (OrderStatus.DELIVERED, "delivery_proof_path", "delivery_proof_at"),
}


def _can_transition(current: OrderStatus, target: OrderStatus) -> bool:
    return target in _TRANSITIONS.get(current, set())


def parse_quantity(value, *, field_name: str = "qty") -> int:
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a whole number.", code="INVALID_QUANTITY")
    try:
        qty = int(str(value).strip())
    except (TypeError, ValueError):
        raise ValidationError(f"{field_name} must be a whole number.", code="INVALID_QUANTITY")
    return qty


def parse_stars(value) -> int:
    """Parse a star rating and clamp it into [1, 5]."""
    if value is None or isinstance(value, bool):
        raise ValidationError("stars must be a number.", code="INVALID_STARS")
    try:
        raw = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError("stars must be a number.", code="INVALID_STARS")
    if not raw.is_finite():
        raise ValidationError("stars must be a number.", code="INVALID_STARS")
    stars = int(raw.to_integral_value(rounding=ROUND_HALF_UP))
    return max(1, min(5, stars))


def _normalize_mimetype(mimetype: str | None) -> str:
    return (mimetype or "").split(";", 1)[0].strip().lower()


class OrderStore:
    def __init__(
        self,
        products: Iterable[Product] | None = None,
        *,
        clock: Callable[[], datetime] = utc_now,
    ):
        catalogue = list(products) if products is not None else default_catalogue()
        self._products: dict[int, Product] = {int(p.id): p for p in catalogue}
        self._cart = Cart()
        self._orders: dict[int, Order] = {}
        self._ratings: list[Rating] = []
        self._ids = itertools.count(1)
        self._clock = clock
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # internals
    # ------------------------------------------------------------------
    def _now(self, floor: datetime | None = None) -> datetime:
        ts = self._clock()
        if floor is not None and ts < floor:
            return floor
        return ts

    def _get(self, order_id) -> Order:
        try:
            oid = int(order_id)
        except (TypeError, ValueError):
            raise OrderNotFound(order_id)
        order = self._orders.get(oid)
        if order is None:
            raise OrderNotFound(order_id)
        return order

    def _get_product(self, product_id) -> Product:
        try:
            pid = int(product_id)
        except (TypeError, ValueError):
            raise ProductNotFound(product_id)
        product = self._products.get(pid)
        if product is None:
            raise ProductNotFound(product_id)
        return product

    @staticmethod
    def _snapshot(order: Order) -> Order:
        return copy.copy(order)

    # ------------------------------------------------------------------
    # catalogue
    # ------------------------------------------------------------------
    def products(self) -> list[Product]:
        with self._lock:
            return [copy.copy(p) for p in self._products.values()]

    def product(self, product_id) -> Product:
        with self._lock:
            return copy.copy(self._get_product(product_id))

    def register_seller_wallet(self, product_id, wallet: str) -> Product:
        value = (wallet or "").strip()
        if not value:
            raise ValidationError("Enter a seller wallet address.", code="MISSING_SELLER_WALLET")
        with self._lock:
            product = self._get_product(product_id)
            product.seller_wallet = value
            logger.info("seller_wallet_registered product_id=%s", product.id)
            return copy.copy(product)

    # ------------------------------------------------------------------
    # cart
    # ------------------------------------------------------------------
    def cart(self) -> Cart:
        with self._lock:
            return Cart(lines=[copy.copy(line) for line in self._cart.lines])

    def add_to_cart(self, product_id, quantity=1) -> Cart:
        qty = parse_quantity(quantity)
        if qty < 1:
            raise ValidationError("qty must be at least 1.", code="INVALID_QUANTITY")
        with self._lock:
            product = self._get_product(product_id)
            line = self._cart.find(product.id)
            if line is not None:
                line.quantity += qty
            else:
                self._cart.lines.append(
                    CartLine(
                        product_id=product.id,
                        quantity=qty,
                        name=product.name,
                        price_eth=product.price_eth,
                        seller_wallet=product.seller_wallet,
                    )
                )
            return self.cart()

    def set_cart_quantity(self, product_id, quantity) -> Cart:
        qty = parse_quantity(quantity)
        with self._lock:
            line = self._cart.find(int(self._get_product(product_id).id))
            if line is None:
                raise NotFoundError(f"Product {product_id} is not in the cart.", code="CART_LINE_NOT_FOUND")
            if qty < 1:
                self._cart.lines.remove(line)
            else:
                line.quantity = qty
            return self.cart()

    def remove_from_cart(self, product_id) -> Cart:
        with self._lock:
            line = self._cart.find(int(self._get_product(product_id).id))
            if line is not None:
                self._cart.lines.remove(line)
            return self.cart()

    # ------------------------------------------------------------------
    # checkout
    # ------------------------------------------------------------------
    def checkout(
        self,
        cart: Cart | None,
        buyer_wallet: str,
        buyer_info: BuyerInfo | None = None,
        chain_correlation: list[ChainCorrelation] | None = None,
    ) -> list[Order]:
        buyer = (buyer_wallet or "").strip()
        if not buyer:
            raise ValidationError("Connect a buyer wallet before checkout.", code="MISSING_BUYER_WALLET")
        info = buyer_info or BuyerInfo()
        correlations = list(chain_correlation or [])

        with self._lock:
            target = self._cart if cart is None else cart
            if target.is_empty():
                raise EmptyCart()
            for line in target.lines:
                if not (line.seller_wallet or "").strip():
                    raise ValidationError(f"Missing seller wallet for {line.name}.", code="MISSING_SELLER_WALLET")
                if line.quantity < 1:
                    raise ValidationError(f"qty must be at least 1 for {line.name}.", code="INVALID_QUANTITY")
            access_control.require_no_self_trade(buyer, target.lines)

            created: list[Order] = []
            now = self._now()
            for index, line in enumerate(target.lines):
                corr = correlations[index] if index < len(correlations) else ChainCorrelation()
                order = Order(
                    id=next(self._ids),
                    product_id=line.product_id,
                    product_name=line.name,
                    quantity=line.quantity,
                    unit_price_eth=line.price_eth,
                    buyer_wallet=buyer,
                    seller_wallet=(line.seller_wallet or "").strip(),
                    status=OrderStatus.AWAITING_SHIPMENT,
                    buyer_name=(info.name or "").strip(),
                    buyer_email=(info.email or "").strip(),
                    buyer_address=(info.address or "").strip(),
                    escrow_order_id=corr.escrow_order_id,
                    escrow_tx_hash=corr.escrow_tx_hash,
                    order_hash=corr.order_hash,
                    notarize_tx_hash=corr.notarize_tx_hash,
                    created_at=now,
                )
                self._orders[order.id] = order
                created.append(self._snapshot(order))
            target.clear()
            logger.info(
                "checkout_ok buyer=%s order_ids=%s",
                access_control.normalize_wallet(buyer),
                ",".join(str(o.id) for o in created),
            )
            return created

    def attach_chain_correlation(self, order_id, correlation: ChainCorrelation) -> Order:
        """Fill correlation fields that are still empty; set fields never change."""
        with self._lock:
            order = self._get(order_id)
            for name in ("escrow_order_id", "escrow_tx_hash", "order_hash", "notarize_tx_hash"):
                value = getattr(correlation, name)
                if value and not getattr(order, name):
                    setattr(order, name, value)
            return self._snapshot(order)

    # ------------------------------------------------------------------
    # lifecycle transitions
    # ------------------------------------------------------------------
    def mark_shipped(self, order_id, acting_wallet: str | None) -> Order:
        with self._lock:
            order = self._get(order_id)
            access_control.require_seller(order, acting_wallet)
            if not _can_transition(order.status, OrderStatus.SHIPPED):
                return self._snapshot(order)
            order.status = OrderStatus.SHIPPED
            order.shipped_at = self._now(order.created_at)
            logger.info("order_shipped order_id=%s", order.id)
            return self._snapshot(order)

    def mark_delivered(self, order_id, acting_wallet: str | None = None) -> Order:
        with self._lock:
            order = self._get(order_id)
            if acting_wallet is not None:
                access_control.require_buyer(order, acting_wallet)
            if not _can_transition(order.status, OrderStatus.DELIVERED):
                return self._snapshot(order)
            now = self._now(order.shipped_at)
            order.status = OrderStatus.DELIVERED
            order.delivered_at = now
            # The mirror assumes delivery confirmation triggers the payout; the
            # releasePayment transaction itself is sent by the client.
            order.payment_released = True
            order.released_at = now
            logger.info("order_delivered order_id=%s payment_released=true", order.id)
            return self._snapshot(order)

    def attach_shipment_proof(self, order_id, acting_wallet: str | None, file: ProofFile) -> Order:
        return self._attach_proof("shipment", order_id, acting_wallet, file)

    def attach_delivery_proof(self, order_id, acting_wallet: str | None, file: ProofFile) -> Order:
        return self._attach_proof("delivery", order_id, acting_wallet, file)

    def _attach_proof(self, kind: str, order_id, acting_wallet: str | None, file: ProofFile) -> Order:
        required_status, path_attr, at_attr = _PROOF_SLOTS[kind]
        with self._lock:
            order = self._get(order_id)
            if kind == "shipment":
                access_control.require_seller(order, acting_wallet)
            else:
                access_control.require_buyer(order, acting_wallet)
            if not order.status.reached(required_status):
                raise InvalidState(f"Order must be {required_status.value} before uploading {kind} proof.")
            if not order.order_hash:
                raise InvalidState("Order has not been notarized on-chain.", code="NOT_NOTARIZED")
            if getattr(order, path_attr):
                raise AlreadyExists(f"{kind.capitalize()} proof already uploaded.")
            if file is None or _normalize_mimetype(file.mimetype) not in ACCEPTED_PROOF_TYPES:
                raise InvalidFile(getattr(file, "mimetype", None))
            setattr(order, path_attr, file.path)
            setattr(order, at_attr, self._now())
            logger.info("proof_attached order_id=%s kind=%s", order.id, kind)
            return self._snapshot(order)

    def rate(self, order_id, stars, comment: str = "", acting_wallet: str | None = None) -> Order:
        value = parse_stars(stars)
        with self._lock:
            order = self._get(order_id)
            if acting_wallet is not None:
                access_control.require_buyer(order, acting_wallet)
            if not order.can_rate:
                if order.rated:
                    raise InvalidState("Order already rated.", code="ALREADY_RATED")
                raise InvalidState("Order must be delivered before it can be rated.")
            rating = Rating(
                product_id=order.product_id,
                order_id=order.id,
                stars=value,
                comment=(comment or "").strip(),
                created_at=self._now(),
            )
            self._ratings.append(rating)
            order.rated = True
            order.review_open = False
            logger.info("order_rated order_id=%s stars=%s", order.id, value)
            return self._snapshot(order)

    def review_start(self, order_id) -> Order:
        with self._lock:
            order = self._get(order_id)
            if order.can_rate:
                order.review_open = True
            return self._snapshot(order)

    def review_skip(self, order_id) -> Order:
        with self._lock:
            order = self._get(order_id)
            if order.can_rate:
                order.review_skipped = True
                order.review_open = False
            return self._snapshot(order)

    # ------------------------------------------------------------------
    # queries
    # ------------------------------------------------------------------
    def get_order(self, order_id) -> Order:
        with self._lock:
            return self._snapshot(self._get(order_id))

    def list_orders(self) -> list[Order]:
        with self._lock:
            return [self._snapshot(o) for o in self._orders.values()]

    def orders_for_wallet(self, wallet: str | None, role: str | None = None) -> list[Order]:
        with self._lock:
            out = []
            for order in self._orders.values():
                as_buyer = access_control.is_buyer_for_order(order, wallet)
                as_seller = access_control.is_seller_for_order(order, wallet)
                if role == ROLE_BUYER and not as_buyer:
                    continue
                if role == ROLE_SELLER and not as_seller:
                    continue
                if role is None and not (as_buyer or as_seller):
                    continue
                out.append(self._snapshot(order))
            return out

    def latest_order_for(self, wallet: str | None, role: str) -> Order | None:
        """Newest order for the wallet, preferring orders with a non-zero total."""
        orders = self.orders_for_wallet(wallet, role)
        fallback = None
        for order in reversed(orders):
            if order.total_eth > 0:
                return order
            if fallback is None:
                fallback = order
        return fallback

    def wallet_role(self, wallet: str | None) -> str:
        is_buyer = bool(self.orders_for_wallet(wallet, ROLE_BUYER))
        is_seller = bool(self.orders_for_wallet(wallet, ROLE_SELLER))
        if is_buyer and is_seller:
            return "Buyer/Seller"
        if is_seller:
            return "Seller"
        if is_buyer:
            return "Buyer"
        return "None"

    def ratings(self) -> list[Rating]:
        with self._lock:
            return list(self._ratings)

    def rating_for_order(self, order_id) -> Rating | None:
        with self._lock:
            oid = int(self._get(order_id).id)
            for rating in self._ratings:
                if rating.order_id == oid:
                    return rating
            return None
