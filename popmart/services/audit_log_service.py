"""Order audit log: chain events reconciled with mirror timestamps.

Chain data wins wherever it covers a status; mirror timestamps fill the gaps.
The chain is never required: any failure on that side degrades to a
local-only log.
"""

from __future__ import annotations

import heapq
import logging
import threading
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeout
from typing import Iterable

from popmart.errors import ExternalUnavailable
from popmart.integrations.chain.base import ChainEvent, ChainOracle, TransactionDetails
from popmart.integrations.common import ChainResult, try_chain
from popmart.models import AuditLogEntry, Order
from popmart.models.audit import SOURCE_CHAIN, SOURCE_LOCAL
from popmart.utils.clock import from_epoch_seconds

logger = logging.getLogger(__name__)

__all__ = [
    "AuditLogService",
    "CHAIN_EVENT_STATUS",
    "ChainResult",
    "chain_entries",
    "local_entries",
    "merge_audit_entries",
    "try_chain",
]

CHAIN_EVENT_STATUS = {
    "ShipmentMarked": "Shipped",
    "InTransitMarked": "InTransit",
    "DeliveredMarked": "Delivered",
    "DeliveryConfirmed": "Confirmed",
}

_CHAIN_EVENT_TITLE = {
    "ShipmentMarked": "Shipment marked on-chain",
    "InTransitMarked": "Marked in transit",
    "DeliveredMarked": "Delivery marked on-chain",
    "DeliveryConfirmed": "Delivery confirmed by buyer",
}


def _short_hash(value: str | None) -> str:
    if not value:
        return "-"
    if len(value) <= 14:
        return value
    return f"{value[:8]}...{value[-4:]}"


def _event_actor(event: ChainEvent) -> str | None:
    for key in ("seller", "buyer", "sender", "by"):
        value = event.args.get(key)
        if value:
            return str(value)
    return None


def chain_entries(events: Iterable[ChainEvent], block_timestamps: dict[int, int]) -> list[AuditLogEntry]:
    """Map recognised delivery events to audit entries; other kinds are dropped."""
    out = []
    for event in events:
        status = CHAIN_EVENT_STATUS.get(event.name)
        if status is None:
            continue
        ts = block_timestamps.get(event.block_number)
        if ts is None:
            continue
        out.append(
            AuditLogEntry(
                title=_CHAIN_EVENT_TITLE[event.name],
                timestamp=from_epoch_seconds(ts),
                detail=f"Block {event.block_number}, tx {_short_hash(event.tx_hash)}",
                actor=_event_actor(event),
                status=status,
                sort_key=event.sort_key,
                source=SOURCE_CHAIN,
            )
        )
    return out


def local_entries(order: Order) -> list[AuditLogEntry]:
    total = order.total_eth
    candidates = [
        ("Order placed", order.created_at, f"{order.quantity} x {order.product_name} for {total} ETH", order.buyer_wallet, "Created"),
        ("Shipment marked", order.shipped_at, "Seller marked the order as shipped", order.seller_wallet, "Shipped"),
        ("Delivery marked", order.delivered_at, "Buyer confirmed delivery", order.buyer_wallet, "Delivered"),
        ("Payment released", order.released_at, f"{total} ETH released to seller", order.seller_wallet, "Released"),
        ("Shipment proof uploaded", order.shipment_proof_at, "Seller attached shipment proof", order.seller_wallet, "ShipmentProof"),
        ("Delivery proof uploaded", order.delivery_proof_at, "Buyer attached delivery proof", order.buyer_wallet, "DeliveryProof"),
    ]
    return [
        AuditLogEntry(title=title, timestamp=ts, detail=detail, actor=actor or None, status=status, source=SOURCE_LOCAL)
        for title, ts, detail, actor, status in candidates
        if ts is not None
    ]


def _order_entries(entries: Iterable[AuditLogEntry]) -> list[AuditLogEntry]:
    """Ascending by timestamp; ties break on title.

    Chain entries sharing a timestamp keep their (block, log index) order
    among themselves and are interleaved by title with local entries.
    """
    groups: dict = {}
    for entry in entries:
        groups.setdefault(entry.timestamp, []).append(entry)
    out = []
    for ts in sorted(groups):
        group = groups[ts]
        chain = sorted((e for e in group if e.source == SOURCE_CHAIN), key=lambda e: (e.sort_key, e.title))
        local = sorted((e for e in group if e.source != SOURCE_CHAIN), key=lambda e: e.title)
        out.extend(heapq.merge(local, chain, key=lambda e: e.title))
    return out


def merge_audit_entries(chain: Iterable[AuditLogEntry], local: Iterable[AuditLogEntry]) -> list[AuditLogEntry]:
    """Chain entries replace local entries carrying the same status tag."""
    chain = list(chain)
    covered = {entry.status for entry in chain}
    return _order_entries(chain + [entry for entry in local if entry.status not in covered])


def _as_int(value) -> int | None:
    if value is None:
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


class AuditLogService:
    def __init__(self, oracle: ChainOracle | None, *, timeout: float = 10, max_workers: int = 4):
        self.oracle = oracle
        self.timeout = float(timeout)
        self._pool = ThreadPoolExecutor(max_workers=max(1, int(max_workers)), thread_name_prefix="audit-chain")
        self._block_ts: dict[int, int] = {}
        self._cache_lock = threading.Lock()

    def close(self) -> None:
        self._pool.shutdown(wait=False)

    # ------------------------------------------------------------------
    # block timestamps
    # ------------------------------------------------------------------
    def _block_timestamps(self, block_numbers: Iterable[int]) -> dict[int, int]:
        wanted = sorted({int(b) for b in block_numbers})
        with self._cache_lock:
            found = {b: self._block_ts[b] for b in wanted if b in self._block_ts}
        missing = [b for b in wanted if b not in found]
        if missing:
            with ThreadPoolExecutor(max_workers=min(8, len(missing)), thread_name_prefix="audit-block") as pool:
                fetched = dict(zip(missing, pool.map(self.oracle.get_block_timestamp, missing)))
            with self._cache_lock:
                self._block_ts.update(fetched)
            found.update(fetched)
        return found

    def _fetch_chain_entries(self, escrow_order_id) -> list[AuditLogEntry]:
        events = [e for e in self.oracle.past_events(escrow_order_id) if e.name in CHAIN_EVENT_STATUS]
        timestamps = self._block_timestamps(e.block_number for e in events)
        return chain_entries(events, timestamps)

    # ------------------------------------------------------------------
    # reconciliation
    # ------------------------------------------------------------------
    def reconcile(self, order: Order) -> tuple[list[AuditLogEntry], ExternalUnavailable | None]:
        """Audit log plus the chain failure it fell back from, if any."""
        if self.oracle is None or not order.escrow_order_id:
            return merge_audit_entries([], local_entries(order)), None

        future = self._pool.submit(try_chain, self._fetch_chain_entries, order.escrow_order_id)
        local = local_entries(order)
        try:
            result = future.result(timeout=self.timeout)
        except FutureTimeout:
            future.cancel()
            result = ChainResult(ok=False, code="CHAIN_TIMEOUT", message=f"no answer within {self.timeout}s")

        if not result.ok:
            failure = ExternalUnavailable(result.message or None, cause=result.code)
            logger.warning(
                "chain_events_unavailable order_id=%s code=%s cause=%s err=%s",
                order.id,
                failure.code,
                failure.cause,
                failure.message,
            )
            return merge_audit_entries([], local), failure
        return merge_audit_entries(result.value, local), None

    def build_audit_log(self, order: Order) -> list[AuditLogEntry]:
        entries, _failure = self.reconcile(order)
        return entries

    # ------------------------------------------------------------------
    # transaction details
    # ------------------------------------------------------------------
    def describe_transaction(self, tx_hash: str | None) -> TransactionDetails | None:
        if not tx_hash:
            return None
        details = TransactionDetails(tx_hash=tx_hash)
        if self.oracle is None:
            return details

        tx_result = try_chain(self.oracle.get_transaction, tx_hash)
        receipt_result = try_chain(self.oracle.get_transaction_receipt, tx_hash)
        tx = tx_result.value if tx_result.ok else None
        receipt = receipt_result.value if receipt_result.ok else None

        if tx:
            details.from_address = tx.get("from")
            details.to_address = tx.get("to")
            details.value_wei = _as_int(tx.get("value"))
            details.block_number = _as_int(tx.get("blockNumber"))
        if receipt:
            status = _as_int(receipt.get("status"))
            if status == 1:
                details.status = "success"
            elif status == 0:
                details.status = "failed"
            details.gas_used = _as_int(receipt.get("gasUsed"))
            gas_price = _as_int(receipt.get("effectiveGasPrice"))
            if gas_price is None and tx:
                gas_price = _as_int(tx.get("gasPrice"))
            if details.gas_used is not None and gas_price is not None:
                details.fee_wei = details.gas_used * gas_price
            if details.block_number is None:
                details.block_number = _as_int(receipt.get("blockNumber"))
        elif tx and tx_result.ok and receipt_result.ok:
            details.status = "pending"
        return details

    def transaction_details(self, order: Order) -> dict:
        out = {}
        for key, tx_hash in (("escrow", order.escrow_tx_hash), ("notarization", order.notarize_tx_hash)):
            details = self.describe_transaction(tx_hash)
            out[key] = details.to_dict() if details else None
        return out
