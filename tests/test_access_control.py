from __future__ import annotations

import unittest
from decimal import Decimal

from popmart.errors import Forbidden, SelfTrade
from popmart.models import CartLine, Order
from popmart.services import access_control


def _order() -> Order:
    return Order(
        id=1,
        product_id=1,
        product_name="Neo Koi Limited",
        quantity=1,
        unit_price_eth=Decimal("0.36"),
        buyer_wallet="0xAbC",
        seller_wallet="0xDeF",
    )


class AccessControlTestCase(unittest.TestCase):
    def test_same_wallet_ignores_case_and_never_matches_blank(self):
        self.assertTrue(access_control.same_wallet("0xABC", " 0xabc "))
        self.assertFalse(access_control.same_wallet("", ""))
        self.assertFalse(access_control.same_wallet(None, None))
        self.assertFalse(access_control.same_wallet("0xabc", "0xabd"))

    def test_role_predicates(self):
        order = _order()
        self.assertTrue(access_control.is_buyer_for_order(order, "0xabc"))
        self.assertFalse(access_control.is_seller_for_order(order, "0xabc"))
        self.assertTrue(access_control.is_seller_for_order(order, "0XDEF".replace("0X", "0x")))
        access_control.require_seller(order, "0xdef")
        access_control.require_buyer(order, "0xABC")
        with self.assertRaises(Forbidden) as ctx:
            access_control.require_seller(order, "0xabc")
        self.assertEqual(ctx.exception.role, "seller")
        self.assertEqual(ctx.exception.http_status, 403)
        with self.assertRaises(Forbidden):
            access_control.require_buyer(order, None)

    def test_self_trade(self):
        lines = [
            CartLine(product_id=1, quantity=1, name="A", price_eth=Decimal("1"), seller_wallet="0xAAA"),
            CartLine(product_id=2, quantity=1, name="B", price_eth=Decimal("1"), seller_wallet=None),
        ]
        self.assertTrue(access_control.is_self_trade("0xaaa", lines))
        self.assertFalse(access_control.is_self_trade("0xbbb", lines))
        self.assertFalse(access_control.is_self_trade("", lines))
        with self.assertRaises(SelfTrade) as ctx:
            access_control.require_no_self_trade("0xAaA", lines)
        self.assertIn("A", ctx.exception.message)

    def test_zero_wallet(self):
        self.assertTrue(access_control.is_zero_wallet(access_control.ZERO_ADDRESS))
        self.assertTrue(access_control.is_zero_wallet("  "))
        self.assertFalse(access_control.is_zero_wallet("0xabc"))


if __name__ == "__main__":
    unittest.main()
