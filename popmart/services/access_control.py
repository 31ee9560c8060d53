from __future__ import annotations

from typing import Iterable

from popmart.errors import Forbidden, SelfTrade
from popmart.models import CartLine, Order

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def normalize_wallet(wallet: str | None) -> str:
    return (wallet or "").strip().lower()


def same_wallet(a: str | None, b: str | None) -> bool:
    left = normalize_wallet(a)
    right = normalize_wallet(b)
    if not left or not right:
        return False
    return left == right


def is_zero_wallet(wallet: str | None) -> bool:
    value = normalize_wallet(wallet)
    return not value or value == ZERO_ADDRESS


def is_seller_for_order(order: Order, wallet: str | None) -> bool:
    return same_wallet(order.seller_wallet, wallet)


def is_buyer_for_order(order: Order, wallet: str | None) -> bool:
    return same_wallet(order.buyer_wallet, wallet)


def self_trade_line(buyer_wallet: str | None, lines: Iterable[CartLine]) -> CartLine | None:
    for line in lines:
        if same_wallet(buyer_wallet, line.seller_wallet):
            return line
    return None


def is_self_trade(buyer_wallet: str | None, lines: Iterable[CartLine]) -> bool:
    return self_trade_line(buyer_wallet, lines) is not None


def require_seller(order: Order, acting_wallet: str | None) -> None:
    if not is_seller_for_order(order, acting_wallet):
        raise Forbidden("seller", order.seller_wallet)


def require_buyer(order: Order, acting_wallet: str | None) -> None:
    if not is_buyer_for_order(order, acting_wallet):
        raise Forbidden("buyer", order.buyer_wallet)


def require_no_self_trade(buyer_wallet: str | None, lines: Iterable[CartLine]) -> None:
    line = self_trade_line(buyer_wallet, lines)
    if line is not None:
        raise SelfTrade(buyer_wallet or "", line.name)
