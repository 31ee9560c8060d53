from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from popmart.utils.clock import to_iso


@dataclass(frozen=True)
class Rating:
    product_id: int
    order_id: int
    stars: int
    comment: str
    created_at: datetime

    def to_dict(self) -> dict:
        return {
            "productId": self.product_id,
            "orderId": self.order_id,
            "stars": self.stars,
            "comment": self.comment,
            "createdAt": to_iso(self.created_at),
        }
