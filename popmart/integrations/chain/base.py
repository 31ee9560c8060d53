from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

WEI_PER_ETH = Decimal(10) ** 18
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


def wei_to_eth(value_wei) -> Decimal:
    return Decimal(int(value_wei or 0)) / WEI_PER_ETH


def eth_to_wei(value_eth) -> int:
    return int(Decimal(str(value_eth)) * WEI_PER_ETH)


@dataclass(frozen=True)
class ChainEvent:
    name: str
    args: dict = field(default_factory=dict)
    block_number: int = 0
    log_index: int = 0
    tx_hash: str | None = None

    @property
    def order_id(self):
        return self.args.get("orderId")

    @property
    def sort_key(self) -> str:
        # zero padded so the string order matches (block, log index)
        return f"{int(self.block_number):012d}:{int(self.log_index):06d}"


@dataclass(frozen=True)
class ChainOrder:
    order_id: int
    buyer: str = ZERO_ADDRESS
    seller: str = ZERO_ADDRESS
    amount_wei: int = 0
    shipped: bool = False
    delivered: bool = False
    paid_out: bool = False
    rated: bool = False

    def is_empty(self) -> bool:
        def _zero(addr):
            value = (addr or "").strip().lower()
            return not value or value == ZERO_ADDRESS

        return _zero(self.buyer) and _zero(self.seller) and int(self.amount_wei or 0) == 0

    def to_dict(self) -> dict:
        return {
            "orderId": self.order_id,
            "buyer": self.buyer,
            "seller": self.seller,
            "amountWei": str(self.amount_wei),
            "amountEth": str(wei_to_eth(self.amount_wei)),
            "shipped": self.shipped,
            "delivered": self.delivered,
            "paidOut": self.paid_out,
            "rated": self.rated,
        }


@dataclass
class TransactionDetails:
    tx_hash: str
    status: str = "unknown"
    from_address: str | None = None
    to_address: str | None = None
    value_wei: int | None = None
    gas_used: int | None = None
    fee_wei: int | None = None
    block_number: int | None = None

    def to_dict(self) -> dict:
        return {
            "hash": self.tx_hash,
            "status": self.status,
            "from": self.from_address,
            "to": self.to_address,
            "valueWei": None if self.value_wei is None else str(self.value_wei),
            "valueEth": None if self.value_wei is None else str(wei_to_eth(self.value_wei)),
            "gasUsed": self.gas_used,
            "feeWei": None if self.fee_wei is None else str(self.fee_wei),
            "feeEth": None if self.fee_wei is None else str(wei_to_eth(self.fee_wei)),
            "blockNumber": self.block_number,
        }


class ChainOracle:
    """Read/write access to the escrow, delivery tracking and reputation contracts.

    Write methods take the sending wallet explicitly and return the
    transaction hash. ``get_transaction`` / ``get_transaction_receipt``
    return plain dicts (web3 key names) or None when the node has no record.
    """

    name = "unknown"

    def next_order_id(self) -> int:
        raise NotImplementedError

    def get_order(self, order_id: int) -> ChainOrder:
        raise NotImplementedError

    def create_order(self, sender: str, seller_wallet: str, product_id: int, qty: int, unit_price_wei: int, *, value_wei: int | None = None) -> dict:
        raise NotImplementedError

    def confirm_shipment(self, sender: str, order_id: int) -> str:
        raise NotImplementedError

    def confirm_delivery(self, sender: str, order_id: int) -> str:
        raise NotImplementedError

    def release_payment(self, sender: str, order_id: int) -> str:
        raise NotImplementedError

    def submit_rating(self, sender: str, order_id: int, stars: int, comment: str = "") -> str:
        raise NotImplementedError

    def get_average_rating(self, seller: str) -> int:
        raise NotImplementedError

    def rating_count(self, seller: str) -> int:
        raise NotImplementedError

    def past_events(self, order_id, from_block: int = 0, to_block="latest") -> list[ChainEvent]:
        raise NotImplementedError

    def get_block_timestamp(self, block_number: int) -> int:
        raise NotImplementedError

    def get_transaction(self, tx_hash: str) -> dict | None:
        raise NotImplementedError

    def get_transaction_receipt(self, tx_hash: str) -> dict | None:
        raise NotImplementedError

    def health(self) -> dict:
        return {"provider": self.name, "connected": False}
