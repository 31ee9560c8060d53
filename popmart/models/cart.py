from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal


@dataclass
class CartLine:
    """A cart line with a product snapshot taken when it was added."""

    product_id: int
    quantity: int
    name: str
    price_eth: Decimal
    seller_wallet: str | None = None

    @property
    def line_total_eth(self) -> Decimal:
        return self.price_eth * self.quantity

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "qty": self.quantity,
            "name": self.name,
            "priceEth": str(self.price_eth),
            "sellerWallet": self.seller_wallet,
            "lineTotalEth": str(self.line_total_eth),
        }


@dataclass
class Cart:
    lines: list[CartLine] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.lines)

    def is_empty(self) -> bool:
        return not self.lines

    def find(self, product_id: int) -> CartLine | None:
        for line in self.lines:
            if line.product_id == product_id:
                return line
        return None

    def clear(self) -> None:
        self.lines.clear()

    @property
    def total_eth(self) -> Decimal:
        return sum((line.line_total_eth for line in self.lines), Decimal("0"))

    def to_dict(self) -> dict:
        return {
            "items": [line.to_dict() for line in self.lines],
            "count": sum(line.quantity for line in self.lines),
            "totalEth": str(self.total_eth),
        }
