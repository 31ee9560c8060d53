from __future__ import annotations

import threading
import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from popmart.errors import (
    AlreadyExists,
    EmptyCart,
    Forbidden,
    InvalidFile,
    InvalidState,
    OrderNotFound,
    ProductNotFound,
    SelfTrade,
    ValidationError,
)
from popmart.models import BuyerInfo, ChainCorrelation, OrderStatus, ProofFile
from popmart.services.order_store import OrderStore, parse_stars

SELLER = "0xSeLLer000000000000000000000000000000001"
BUYER = "0xBuyer0000000000000000000000000000000002"


class _Clock:
    def __init__(self):
        self.now = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


class _TickingClock(_Clock):
    """Every read moves time forward one second."""

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            self.now = self.now + timedelta(seconds=1)
            return self.now


def _png(path: str = "instance/uploads/p.png") -> ProofFile:
    return ProofFile(filename="p.png", mimetype="image/png", path=path)


class OrderStoreTestCase(unittest.TestCase):
    def setUp(self):
        self.clock = _Clock()
        self.store = OrderStore(clock=self.clock)

    def _place(self, product_id: int = 1, qty: int = 2, order_hash: str | None = "0xhash"):
        self.store.register_seller_wallet(product_id, SELLER)
        self.store.add_to_cart(product_id, qty)
        corr = ChainCorrelation(escrow_order_id="1", escrow_tx_hash="0xescrow", order_hash=order_hash)
        orders = self.store.checkout(None, BUYER, BuyerInfo(name="Ana", email="ana@example.com"), [corr])
        return orders[0]

    # checkout -----------------------------------------------------------
    def test_checkout_creates_one_order_per_line_and_clears_cart(self):
        self.store.register_seller_wallet(1, SELLER)
        self.store.register_seller_wallet(3, SELLER)
        self.store.add_to_cart(1, 2)
        self.store.add_to_cart(3)
        orders = self.store.checkout(None, BUYER, BuyerInfo(name="Ana"), [ChainCorrelation(escrow_order_id="10")])
        self.assertEqual([o.id for o in orders], [1, 2])
        self.assertTrue(all(o.status == OrderStatus.AWAITING_SHIPMENT for o in orders))
        self.assertEqual(orders[0].total_eth, Decimal("0.84"))
        self.assertEqual(orders[0].escrow_order_id, "10")
        self.assertIsNone(orders[1].escrow_order_id)
        self.assertEqual(orders[1].product_name, "Orbit Ghost Mech")
        self.assertEqual(orders[0].created_at, self.clock.now)
        self.assertTrue(self.store.cart().is_empty())

    def test_checkout_ids_keep_increasing(self):
        first = self._place()
        second = self._place(product_id=2, qty=1)
        self.assertGreater(second.id, first.id)

    def test_checkout_validation(self):
        with self.assertRaises(ValidationError):
            self.store.checkout(None, "   ")
        with self.assertRaises(EmptyCart):
            self.store.checkout(None, BUYER)
        self.store.add_to_cart(2)
        with self.assertRaises(ValidationError) as ctx:
            self.store.checkout(None, BUYER)
        self.assertEqual(ctx.exception.code, "MISSING_SELLER_WALLET")
        self.assertEqual(self.store.list_orders(), [])

    def test_self_trade_is_rejected_before_any_order(self):
        self.store.register_seller_wallet(1, "0xAAA")
        self.store.register_seller_wallet(2, SELLER)
        self.store.add_to_cart(2)
        self.store.add_to_cart(1)
        with self.assertRaises(SelfTrade):
            self.store.checkout(None, "0xaaa")
        self.assertEqual(self.store.list_orders(), [])
        self.assertEqual(len(self.store.cart()), 2)

    # cart ---------------------------------------------------------------
    def test_cart_merges_lines_and_snapshots_product(self):
        self.store.register_seller_wallet(1, SELLER)
        self.store.add_to_cart(1)
        cart = self.store.add_to_cart(1, 2)
        self.assertEqual(len(cart), 1)
        self.assertEqual(cart.lines[0].quantity, 3)
        self.assertEqual(cart.total_eth, Decimal("1.26"))
        self.store.register_seller_wallet(1, "0xSomeoneElse")
        self.assertEqual(self.store.cart().lines[0].seller_wallet, SELLER)

    def test_cart_quantity_updates(self):
        self.store.add_to_cart(1, 2)
        self.assertEqual(self.store.set_cart_quantity(1, 5).lines[0].quantity, 5)
        self.assertTrue(self.store.set_cart_quantity(1, 0).is_empty())
        self.assertTrue(self.store.remove_from_cart(1).is_empty())
        with self.assertRaises(ValidationError):
            self.store.add_to_cart(1, 0)
        with self.assertRaises(ValidationError):
            self.store.add_to_cart(1, "two")
        with self.assertRaises(ProductNotFound):
            self.store.add_to_cart(99)

    # transitions --------------------------------------------------------
    def test_mark_shipped_requires_seller_and_is_idempotent(self):
        order = self._place()
        with self.assertRaises(Forbidden):
            self.store.mark_shipped(order.id, BUYER)
        with self.assertRaises(Forbidden):
            self.store.mark_shipped(order.id, None)
        self.clock.advance(minutes=5)
        shipped = self.store.mark_shipped(order.id, SELLER.lower())
        self.assertEqual(shipped.status, OrderStatus.SHIPPED)
        self.assertEqual(shipped.shipped_at, self.clock.now)
        self.clock.advance(minutes=5)
        again = self.store.mark_shipped(order.id, SELLER)
        self.assertEqual(again.shipped_at, shipped.shipped_at)

    def test_mark_delivered_releases_payment(self):
        order = self._place()
        untouched = self.store.mark_delivered(order.id)
        self.assertEqual(untouched.status, OrderStatus.AWAITING_SHIPMENT)
        self.store.mark_shipped(order.id, SELLER)
        with self.assertRaises(Forbidden):
            self.store.mark_delivered(order.id, SELLER)
        delivered = self.store.mark_delivered(order.id, BUYER)
        self.assertEqual(delivered.status, OrderStatus.DELIVERED)
        self.assertTrue(delivered.payment_released)
        self.assertEqual(delivered.released_at, delivered.delivered_at)

    def test_timestamps_never_run_backwards(self):
        order = self._place()
        self.clock.advance(minutes=-10)
        shipped = self.store.mark_shipped(order.id, SELLER)
        self.assertGreaterEqual(shipped.shipped_at, shipped.created_at)

    def test_unknown_order(self):
        with self.assertRaises(OrderNotFound):
            self.store.get_order(404)
        with self.assertRaises(OrderNotFound):
            self.store.mark_shipped("abc", SELLER)

    # rating -------------------------------------------------------------
    def test_single_rating_per_order(self):
        order = self._place()
        with self.assertRaises(InvalidState):
            self.store.rate(order.id, 5)
        self.store.mark_shipped(order.id, SELLER)
        self.store.mark_delivered(order.id)
        with self.assertRaises(ValidationError):
            self.store.rate(order.id, "great")
        with self.assertRaises(Forbidden):
            self.store.rate(order.id, 4, acting_wallet=SELLER)
        rated = self.store.rate(order.id, 9, "  lovely  ")
        self.assertTrue(rated.rated)
        self.assertFalse(rated.review_open)
        with self.assertRaises(InvalidState):
            self.store.rate(order.id, 3)
        ratings = self.store.ratings()
        self.assertEqual(len(ratings), 1)
        self.assertEqual(ratings[0].stars, 5)
        self.assertEqual(ratings[0].comment, "lovely")

    def test_parse_stars_clamps(self):
        self.assertEqual(parse_stars(0), 1)
        self.assertEqual(parse_stars("4"), 4)
        self.assertEqual(parse_stars(3.6), 4)
        self.assertEqual(parse_stars(-2), 1)
        for bad in (None, True, "nan", "x", ""):
            with self.assertRaises(ValidationError):
                parse_stars(bad)

    def test_review_toggles_only_when_rateable(self):
        order = self._place()
        self.assertFalse(self.store.review_start(order.id).review_open)
        self.store.mark_shipped(order.id, SELLER)
        self.store.mark_delivered(order.id)
        self.assertTrue(self.store.review_start(order.id).review_open)
        skipped = self.store.review_skip(order.id)
        self.assertTrue(skipped.review_skipped)
        self.assertFalse(skipped.review_open)
        self.store.rate(order.id, 4)
        self.assertFalse(self.store.review_start(order.id).review_open)

    # proofs -------------------------------------------------------------
    def test_shipment_proof_rules(self):
        order = self._place()
        with self.assertRaises(InvalidState):
            self.store.attach_shipment_proof(order.id, SELLER, _png())
        self.store.mark_shipped(order.id, SELLER)
        with self.assertRaises(Forbidden):
            self.store.attach_shipment_proof(order.id, BUYER, _png())
        with self.assertRaises(InvalidFile):
            self.store.attach_shipment_proof(order.id, SELLER, ProofFile("a.txt", "text/plain", "a.txt"))
        done = self.store.attach_shipment_proof(order.id, SELLER, _png("uploads/ship.png"))
        self.assertEqual(done.shipment_proof_path, "uploads/ship.png")
        self.assertEqual(done.shipment_proof_at, self.clock.now)
        with self.assertRaises(AlreadyExists):
            self.store.attach_shipment_proof(order.id, SELLER, _png())

    def test_delivery_proof_needs_notarization(self):
        order = self._place(order_hash=None)
        self.store.mark_shipped(order.id, SELLER)
        self.store.mark_delivered(order.id)
        with self.assertRaises(InvalidState) as ctx:
            self.store.attach_delivery_proof(order.id, BUYER, _png())
        self.assertEqual(ctx.exception.code, "NOT_NOTARIZED")
        self.store.attach_chain_correlation(order.id, ChainCorrelation(order_hash="0xnotarized"))
        pdf = ProofFile("d.pdf", "application/pdf; charset=binary", "uploads/d.pdf")
        done = self.store.attach_delivery_proof(order.id, BUYER, pdf)
        self.assertEqual(done.delivery_proof_path, "uploads/d.pdf")

    def test_shipment_proof_allowed_after_delivery(self):
        order = self._place()
        self.store.mark_shipped(order.id, SELLER)
        self.store.mark_delivered(order.id)
        done = self.store.attach_shipment_proof(order.id, SELLER, _png())
        self.assertIsNotNone(done.shipment_proof_at)

    # correlation and queries -------------------------------------------
    def test_chain_correlation_is_write_once(self):
        order = self._place()
        updated = self.store.attach_chain_correlation(
            order.id, ChainCorrelation(escrow_order_id="99", notarize_tx_hash="0xnotary")
        )
        self.assertEqual(updated.escrow_order_id, "1")
        self.assertEqual(updated.notarize_tx_hash, "0xnotary")

    def test_returned_orders_are_snapshots(self):
        order = self._place()
        order.status = OrderStatus.DELIVERED
        order.buyer_wallet = "0xMallory"
        fresh = self.store.get_order(order.id)
        self.assertEqual(fresh.status, OrderStatus.AWAITING_SHIPMENT)
        self.assertEqual(fresh.buyer_wallet, BUYER)

    def test_wallet_role_and_latest_order(self):
        self.assertEqual(self.store.wallet_role(BUYER), "None")
        first = self._place()
        second = self._place(product_id=4, qty=1)
        self.assertEqual(self.store.wallet_role(BUYER), "Buyer")
        self.assertEqual(self.store.wallet_role(SELLER.upper().replace("0X", "0x")), "Seller")
        self.assertEqual(self.store.latest_order_for(BUYER, "buyer").id, second.id)
        self.assertIsNone(self.store.latest_order_for("0xnobody", "seller"))
        self.assertEqual(len(self.store.orders_for_wallet(SELLER, "seller")), 2)
        self.assertEqual(len(self.store.orders_for_wallet(SELLER, "buyer")), 0)
        self.assertEqual({o.id for o in self.store.orders_for_wallet(BUYER)}, {first.id, second.id})

    def test_wallet_with_both_roles(self):
        self._place()
        self.store.register_seller_wallet(5, BUYER)
        self.store.add_to_cart(5)
        self.store.checkout(None, SELLER)
        self.assertEqual(self.store.wallet_role(BUYER), "Buyer/Seller")

    # concurrency --------------------------------------------------------
    def _race(self, fn, workers: int = 8):
        barrier = threading.Barrier(workers)
        results, errors = [], []
        guard = threading.Lock()

        def _run():
            barrier.wait()
            try:
                out = fn()
            except InvalidState as e:
                with guard:
                    errors.append(e)
            else:
                with guard:
                    results.append(out)

        threads = [threading.Thread(target=_run) for _ in range(workers)]
        for t in threads:
            t.start()
        for t in threads:
            t.join(5)
        return results, errors

    def test_concurrent_ship_transitions_once(self):
        self.store = OrderStore(clock=_TickingClock())
        order = self._place()
        results, errors = self._race(lambda: self.store.mark_shipped(order.id, SELLER))
        self.assertEqual(errors, [])
        self.assertEqual(len(results), 8)
        self.assertEqual({o.status for o in results}, {OrderStatus.SHIPPED})
        self.assertEqual(len({o.shipped_at for o in results}), 1)
        self.assertEqual(self.store.get_order(order.id).shipped_at, results[0].shipped_at)

    def test_concurrent_rating_records_one(self):
        order = self._place()
        self.store.mark_shipped(order.id, SELLER)
        self.store.mark_delivered(order.id, BUYER)
        results, errors = self._race(lambda: self.store.rate(order.id, 4, "quick", BUYER))
        self.assertEqual(len(results), 1)
        self.assertEqual(len(errors), 7)
        self.assertTrue(all(e.code == "ALREADY_RATED" for e in errors))
        self.assertEqual(len(self.store.ratings()), 1)


if __name__ == "__main__":
    unittest.main()
