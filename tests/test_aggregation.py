from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from popmart.integrations.chain.mock_provider import MockChainOracle
from popmart.models import Order, OrderStatus, Rating, default_catalogue
from popmart.services.aggregation_service import (
    RATING_UNAVAILABLE,
    avg_ship_time,
    best_product,
    ratings_summary,
    seller_rating_snapshot,
)

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=timezone.utc)
SELLER = "0x1111111111111111111111111111111111111111"
BUYER = "0x2222222222222222222222222222222222222222"


def _rating(product_id: int, stars: int, order_id: int = 1) -> Rating:
    return Rating(product_id=product_id, order_id=order_id, stars=stars, comment="", created_at=T0)


def _order(order_id: int, product_id: int, ship_after: timedelta | None) -> Order:
    return Order(
        id=order_id,
        product_id=product_id,
        product_name="x",
        quantity=1,
        unit_price_eth=Decimal("0.1"),
        buyer_wallet=BUYER,
        seller_wallet=SELLER,
        status=OrderStatus.SHIPPED if ship_after is not None else OrderStatus.AWAITING_SHIPMENT,
        created_at=T0,
        shipped_at=(T0 + ship_after) if ship_after is not None else None,
    )


class RatingsSummaryTestCase(unittest.TestCase):
    def setUp(self):
        self.products = default_catalogue()

    def test_no_ratings(self):
        summary = ratings_summary(self.products, [])
        self.assertEqual(set(summary), {1, 2, 3, 4, 5})
        for row in summary.values():
            self.assertEqual(row, {"avg": 0.0, "count": 0})
        self.assertIsNone(best_product(self.products, summary))

    def test_average_of_five_three_four(self):
        summary = ratings_summary(self.products, [_rating(2, 5), _rating(2, 3), _rating(2, 4)])
        self.assertEqual(summary[2], {"avg": 4.0, "count": 3})
        self.assertEqual(best_product(self.products, summary).id, 2)

    def test_best_product_tie_keeps_catalogue_order(self):
        summary = ratings_summary(self.products, [_rating(4, 5), _rating(3, 5), _rating(1, 2)])
        self.assertEqual(best_product(self.products, summary).id, 3)

    def test_ratings_for_unknown_products_are_ignored(self):
        summary = ratings_summary(self.products, [_rating(42, 5)])
        self.assertNotIn(42, summary)


class ShipTimeTestCase(unittest.TestCase):
    def setUp(self):
        self.products = default_catalogue()

    def test_average_and_scaled_display(self):
        orders = [
            _order(1, 1, timedelta(minutes=1)),
            _order(2, 1, timedelta(minutes=3)),
            _order(3, 2, timedelta(minutes=30)),
            _order(4, 3, timedelta(seconds=3)),
        ]
        stats = avg_ship_time(self.products, orders, 10)
        self.assertEqual(stats[1]["avg_ms"], 120_000)
        self.assertEqual(stats[1]["count"], 2)
        self.assertEqual(stats[1]["display"], "20m")
        self.assertEqual(stats[2]["display"], "5h 0m")
        self.assertEqual(stats[3]["display"], "< 1m")
        self.assertEqual(stats[4]["display"], "Pending")
        self.assertIsNone(stats[4]["avg_ms"])

    def test_negative_and_unshipped_orders_are_excluded(self):
        orders = [
            _order(1, 1, timedelta(minutes=-5)),
            _order(2, 1, None),
            _order(3, 1, timedelta(minutes=6)),
        ]
        stats = avg_ship_time(self.products, orders, 10)
        self.assertEqual(stats[1]["count"], 1)
        self.assertEqual(stats[1]["avg_ms"], 360_000)
        self.assertEqual(stats[1]["display"], "1h 0m")

    def test_zero_delta_is_pending(self):
        stats = avg_ship_time(self.products, [_order(1, 5, timedelta(0))], 10)
        self.assertEqual(stats[5]["count"], 1)
        self.assertEqual(stats[5]["display"], "Pending")


class SellerRatingSnapshotTestCase(unittest.TestCase):
    def _rated_chain(self, *stars):
        oracle = MockChainOracle(genesis_timestamp=1_767_225_600)
        for value in stars:
            created = oracle.create_order(BUYER, SELLER, 1, 1, 10**15)
            oid = created["order_id"]
            oracle.confirm_shipment(SELLER, oid)
            oracle.confirm_delivery(BUYER, oid)
            oracle.release_payment(SELLER, oid)
            oracle.submit_rating(BUYER, oid, value, "ok")
        return oracle

    def test_snapshot_from_chain(self):
        snapshot = seller_rating_snapshot(self._rated_chain(4, 5), SELLER)
        self.assertTrue(snapshot["available"])
        self.assertEqual(snapshot["average"], "4.50")
        self.assertEqual(snapshot["count"], 2)

    def test_snapshot_degrades(self):
        oracle = self._rated_chain(5)
        oracle.fail_with(ConnectionError("rpc down"))
        self.assertEqual(seller_rating_snapshot(oracle, SELLER)["display"], RATING_UNAVAILABLE)
        self.assertFalse(seller_rating_snapshot(None, SELLER)["available"])
        self.assertFalse(seller_rating_snapshot(oracle, "")["available"])
        self.assertFalse(seller_rating_snapshot(oracle, "0x0000000000000000000000000000000000000000")["available"])


if __name__ == "__main__":
    unittest.main()
