from __future__ import annotations

import hashlib
import itertools
import threading
import time

from popmart.integrations.chain.base import ChainEvent, ChainOracle, ChainOrder
from popmart.integrations.common import ChainCallError

ESCROW_ADDRESS = "0x00000000000000000000000000000000000e5c20"
TRACKING_ADDRESS = "0x000000000000000000000000000000000de11e21"
REPUTATION_ADDRESS = "0x0000000000000000000000000000000000a7e5a1"

DEFAULT_GAS_PRICE = 20_000_000_000
_GAS_BY_METHOD = {
    "createOrder": 142_331,
    "confirmShipment": 46_102,
    "confirmDelivery": 45_880,
    "releasePayment": 38_415,
    "submitRating": 97_260,
    "markInTransit": 31_044,
    "markDelivered": 31_102,
}


def _lower(addr: str | None) -> str:
    return (addr or "").strip().lower()


class MockChainOracle(ChainOracle):
    """Deterministic in-memory chain with the escrow rules of the contracts.

    Every write mines one block. Block timestamps advance by ``block_time``
    from ``genesis_timestamp`` unless pinned with ``set_next_block_timestamp``.
    ``fail_with(exc)`` makes every call raise until ``recover()``.
    """

    name = "mock"

    def __init__(self, *, genesis_timestamp: int | None = None, block_time: int = 15):
        self._lock = threading.RLock()
        self._block_time = int(block_time)
        genesis = int(genesis_timestamp if genesis_timestamp is not None else time.time())
        self._blocks: dict[int, int] = {0: genesis}
        self._next_block_ts: int | None = None
        self._orders: dict[int, dict] = {}
        self._order_ids = itertools.count(1)
        self._peek_order_id = 1
        self._events: list[ChainEvent] = []
        self._txs: dict[str, dict] = {}
        self._receipts: dict[str, dict] = {}
        self._tx_counter = itertools.count(1)
        self._ratings: dict[str, list[int]] = {}
        self._failure: Exception | None = None

    # ------------------------------------------------------------------
    # outage simulation
    # ------------------------------------------------------------------
    def fail_with(self, exc: Exception | None = None) -> None:
        self._failure = exc or ConnectionError("mock chain unavailable")

    def recover(self) -> None:
        self._failure = None

    def _check(self) -> None:
        if self._failure is not None:
            raise self._failure

    # ------------------------------------------------------------------
    # blocks and transactions
    # ------------------------------------------------------------------
    @property
    def block_number(self) -> int:
        with self._lock:
            return max(self._blocks)

    def set_next_block_timestamp(self, timestamp: int) -> None:
        with self._lock:
            self._next_block_ts = int(timestamp)

    def _mine(self) -> int:
        latest = max(self._blocks)
        if self._next_block_ts is not None:
            ts = self._next_block_ts
            self._next_block_ts = None
        else:
            ts = self._blocks[latest] + self._block_time
        self._blocks[latest + 1] = ts
        return latest + 1

    def record_transaction(
        self,
        sender: str,
        to: str,
        value_wei: int = 0,
        *,
        method: str = "",
        mined: bool = True,
        success: bool = True,
    ) -> tuple[str, int | None]:
        """Store a transaction (and its receipt when mined); returns (hash, block)."""
        with self._lock:
            self._check()
            n = next(self._tx_counter)
            tx_hash = "0x" + hashlib.sha256(f"mock-tx-{n}".encode("utf-8")).hexdigest()
            block = self._mine() if mined else None
            self._txs[tx_hash] = {
                "hash": tx_hash,
                "from": sender,
                "to": to,
                "value": int(value_wei),
                "gasPrice": DEFAULT_GAS_PRICE,
                "blockNumber": block,
            }
            if mined:
                self._receipts[tx_hash] = {
                    "transactionHash": tx_hash,
                    "status": 1 if success else 0,
                    "gasUsed": _GAS_BY_METHOD.get(method, 21_000),
                    "effectiveGasPrice": DEFAULT_GAS_PRICE,
                    "blockNumber": block,
                }
            return tx_hash, block

    def _emit(self, name: str, tx_hash: str, block: int, **args) -> None:
        log_index = sum(1 for e in self._events if e.block_number == block)
        self._events.append(
            ChainEvent(name=name, args=dict(args), block_number=block, log_index=log_index, tx_hash=tx_hash)
        )

    def _order(self, order_id) -> dict:
        order = self._orders.get(int(order_id))
        if order is None:
            raise ChainCallError(f"revert: order {order_id} does not exist")
        return order

    # ------------------------------------------------------------------
    # escrow
    # ------------------------------------------------------------------
    def next_order_id(self) -> int:
        with self._lock:
            self._check()
            return self._peek_order_id

    def get_order(self, order_id: int) -> ChainOrder:
        with self._lock:
            self._check()
            data = self._orders.get(int(order_id))
            if data is None:
                return ChainOrder(order_id=int(order_id))
            return ChainOrder(order_id=int(order_id), **data)

    def create_order(self, sender, seller_wallet, product_id, qty, unit_price_wei, *, value_wei=None) -> dict:
        with self._lock:
            self._check()
            total = int(qty) * int(unit_price_wei)
            paid = total if value_wei is None else int(value_wei)
            if int(qty) < 1:
                raise ChainCallError("revert: qty must be > 0")
            if paid != total:
                raise ChainCallError("revert: incorrect payment amount")
            if _lower(sender) == _lower(seller_wallet):
                raise ChainCallError("revert: seller cannot buy own product")
            tx_hash, block = self.record_transaction(sender, ESCROW_ADDRESS, paid, method="createOrder")
            order_id = next(self._order_ids)
            self._peek_order_id = order_id + 1
            self._orders[order_id] = {
                "buyer": sender,
                "seller": seller_wallet,
                "amount_wei": paid,
                "shipped": False,
                "delivered": False,
                "paid_out": False,
                "rated": False,
            }
            self._emit("OrderCreated", tx_hash, block, orderId=order_id, buyer=sender, seller=seller_wallet, productId=int(product_id))
            return {"order_id": order_id, "tx_hash": tx_hash, "block_number": block}

    def confirm_shipment(self, sender, order_id) -> str:
        with self._lock:
            self._check()
            order = self._order(order_id)
            if _lower(sender) != _lower(order["seller"]):
                raise ChainCallError("revert: only seller")
            if order["shipped"]:
                raise ChainCallError("revert: already shipped")
            tx_hash, block = self.record_transaction(sender, ESCROW_ADDRESS, method="confirmShipment")
            order["shipped"] = True
            self._emit("ShipmentMarked", tx_hash, block, orderId=int(order_id), seller=sender)
            return tx_hash

    def mark_in_transit(self, sender, order_id) -> str:
        with self._lock:
            self._check()
            order = self._order(order_id)
            if _lower(sender) != _lower(order["seller"]) or not order["shipped"]:
                raise ChainCallError("revert: not shipped")
            tx_hash, block = self.record_transaction(sender, TRACKING_ADDRESS, method="markInTransit")
            self._emit("InTransitMarked", tx_hash, block, orderId=int(order_id))
            return tx_hash

    def mark_delivered(self, sender, order_id) -> str:
        with self._lock:
            self._check()
            order = self._order(order_id)
            if _lower(sender) != _lower(order["seller"]) or not order["shipped"]:
                raise ChainCallError("revert: not shipped")
            tx_hash, block = self.record_transaction(sender, TRACKING_ADDRESS, method="markDelivered")
            self._emit("DeliveredMarked", tx_hash, block, orderId=int(order_id))
            return tx_hash

    def confirm_delivery(self, sender, order_id) -> str:
        with self._lock:
            self._check()
            order = self._order(order_id)
            if _lower(sender) != _lower(order["buyer"]):
                raise ChainCallError("revert: only buyer")
            if not order["shipped"] or order["delivered"]:
                raise ChainCallError("revert: cannot confirm delivery")
            tx_hash, block = self.record_transaction(sender, ESCROW_ADDRESS, method="confirmDelivery")
            order["delivered"] = True
            self._emit("DeliveryConfirmed", tx_hash, block, orderId=int(order_id), buyer=sender)
            return tx_hash

    def release_payment(self, sender, order_id) -> str:
        with self._lock:
            self._check()
            order = self._order(order_id)
            if not order["delivered"]:
                raise ChainCallError("revert: delivery not confirmed")
            if order["paid_out"]:
                raise ChainCallError("revert: already paid out")
            tx_hash, block = self.record_transaction(sender, ESCROW_ADDRESS, method="releasePayment")
            order["paid_out"] = True
            self._emit("PaymentReleased", tx_hash, block, orderId=int(order_id), seller=order["seller"], amountWei=order["amount_wei"])
            return tx_hash

    def submit_rating(self, sender, order_id, stars, comment="") -> str:
        with self._lock:
            self._check()
            order = self._order(order_id)
            if _lower(sender) != _lower(order["buyer"]):
                raise ChainCallError("revert: only buyer")
            if not order["paid_out"] or order["rated"]:
                raise ChainCallError("revert: cannot rate")
            if not 1 <= int(stars) <= 5:
                raise ChainCallError("revert: stars out of range")
            tx_hash, block = self.record_transaction(sender, ESCROW_ADDRESS, method="submitRating")
            order["rated"] = True
            self._ratings.setdefault(_lower(order["seller"]), []).append(int(stars))
            self._emit("RatingSubmitted", tx_hash, block, orderId=int(order_id), stars=int(stars), comment=comment or "")
            return tx_hash

    # ------------------------------------------------------------------
    # reputation
    # ------------------------------------------------------------------
    def get_average_rating(self, seller) -> int:
        with self._lock:
            self._check()
            stars = self._ratings.get(_lower(seller)) or []
            if not stars:
                return 0
            return (sum(stars) * 100) // len(stars)

    def rating_count(self, seller) -> int:
        with self._lock:
            self._check()
            return len(self._ratings.get(_lower(seller)) or [])

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def past_events(self, order_id, from_block=0, to_block="latest") -> list[ChainEvent]:
        with self._lock:
            self._check()
            upper = max(self._blocks) if to_block == "latest" else int(to_block)
            try:
                wanted = int(order_id)
            except (TypeError, ValueError):
                return []
            return [
                e
                for e in self._events
                if int(from_block) <= e.block_number <= upper and e.order_id == wanted
            ]

    def get_block_timestamp(self, block_number) -> int:
        with self._lock:
            self._check()
            ts = self._blocks.get(int(block_number))
            if ts is None:
                raise ChainCallError(f"block {block_number} not found")
            return ts

    def get_transaction(self, tx_hash) -> dict | None:
        with self._lock:
            self._check()
            tx = self._txs.get((tx_hash or "").lower())
            return dict(tx) if tx else None

    def get_transaction_receipt(self, tx_hash) -> dict | None:
        with self._lock:
            self._check()
            receipt = self._receipts.get((tx_hash or "").lower())
            return dict(receipt) if receipt else None

    def health(self) -> dict:
        return {
            "provider": self.name,
            "connected": self._failure is None,
            "block_number": self.block_number,
            "escrow_address": ESCROW_ADDRESS,
        }
