from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from popmart.utils.clock import to_iso


class OrderStatus(str, Enum):
    AWAITING_SHIPMENT = "AwaitingShipment"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"

    @property
    def rank(self) -> int:
        return _STATUS_RANK[self]

    def reached(self, other: "OrderStatus") -> bool:
        return self.rank >= other.rank


_STATUS_RANK = {
    OrderStatus.AWAITING_SHIPMENT: 0,
    OrderStatus.SHIPPED: 1,
    OrderStatus.DELIVERED: 2,
}


@dataclass(frozen=True)
class BuyerInfo:
    name: str = ""
    email: str = ""
    address: str = ""


@dataclass(frozen=True)
class ChainCorrelation:
    """On-chain identifiers the client reports after its transactions confirm."""

    escrow_order_id: str | None = None
    escrow_tx_hash: str | None = None
    order_hash: str | None = None
    notarize_tx_hash: str | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "ChainCorrelation":
        data = data or {}

        def _text(*keys):
            for key in keys:
                value = data.get(key)
                if value is not None and str(value).strip():
                    return str(value).strip()
            return None

        return cls(
            escrow_order_id=_text("escrowOrderId", "orderId", "escrow_order_id"),
            escrow_tx_hash=_text("escrowTxHash", "txHash", "escrow_tx_hash"),
            order_hash=_text("orderHash", "order_hash"),
            notarize_tx_hash=_text("notarizeTxHash", "notarize_tx_hash"),
        )


@dataclass(frozen=True)
class ProofFile:
    filename: str
    mimetype: str
    path: str


@dataclass
class Order:
    id: int
    product_id: int
    product_name: str
    quantity: int
    unit_price_eth: Decimal
    buyer_wallet: str
    seller_wallet: str
    status: OrderStatus = OrderStatus.AWAITING_SHIPMENT
    buyer_name: str = ""
    buyer_email: str = ""
    buyer_address: str = ""
    escrow_order_id: str | None = None
    escrow_tx_hash: str | None = None
    order_hash: str | None = None
    notarize_tx_hash: str | None = None
    created_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    released_at: datetime | None = None
    shipment_proof_path: str | None = None
    shipment_proof_at: datetime | None = None
    delivery_proof_path: str | None = None
    delivery_proof_at: datetime | None = None
    payment_released: bool = False
    rated: bool = False
    review_open: bool = False
    review_skipped: bool = False

    @property
    def total_eth(self) -> Decimal:
        return self.unit_price_eth * self.quantity

    @property
    def can_rate(self) -> bool:
        return self.status == OrderStatus.DELIVERED and not self.rated

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "productId": self.product_id,
            "productName": self.product_name,
            "qty": self.quantity,
            "priceEth": str(self.unit_price_eth),
            "totalEth": str(self.total_eth),
            "buyerWallet": self.buyer_wallet,
            "sellerWallet": self.seller_wallet,
            "status": self.status.value,
            "buyerName": self.buyer_name,
            "buyerEmail": self.buyer_email,
            "buyerAddress": self.buyer_address,
            "escrowOrderId": self.escrow_order_id,
            "escrowTxHash": self.escrow_tx_hash,
            "orderHash": self.order_hash,
            "notarizeTxHash": self.notarize_tx_hash,
            "createdAt": to_iso(self.created_at),
            "shippedAt": to_iso(self.shipped_at),
            "deliveredAt": to_iso(self.delivered_at),
            "releasedAt": to_iso(self.released_at),
            "shipmentProof": self.shipment_proof_path,
            "shipmentProofAt": to_iso(self.shipment_proof_at),
            "deliveryProof": self.delivery_proof_path,
            "deliveryProofAt": to_iso(self.delivery_proof_at),
            "paymentReleased": self.payment_released,
            "rated": self.rated,
            "reviewOpen": self.review_open,
            "reviewSkipped": self.review_skipped,
        }
