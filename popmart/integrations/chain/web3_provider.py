from __future__ import annotations

import json
import logging
import os
import threading

from web3 import Web3
from web3.exceptions import TransactionNotFound

from popmart.integrations.chain.base import ChainEvent, ChainOracle, ChainOrder
from popmart.integrations.common import ChainCallError, IntegrationMisconfiguredError

logger = logging.getLogger(__name__)

ESCROW_CONTRACT = "EscrowPayment"
TRACKING_CONTRACT = "DeliveryTracking"
REPUTATION_CONTRACT = "SellerReputation"

_ORDER_FIELD_ALIASES = {
    "buyer": "buyer",
    "seller": "seller",
    "amountWei": "amount_wei",
    "amount": "amount_wei",
    "shipped": "shipped",
    "delivered": "delivered",
    "paidOut": "paid_out",
    "rated": "rated",
}


def _abi_type(entry: dict) -> str:
    kind = entry.get("type", "")
    if kind.startswith("tuple"):
        inner = ",".join(_abi_type(c) for c in entry.get("components") or [])
        return f"({inner}){kind[len('tuple'):]}"
    return kind


def event_signature(abi_entry: dict) -> str:
    """Canonical ``Name(type,...)`` signature of an ABI event entry."""
    args = ",".join(_abi_type(i) for i in abi_entry.get("inputs") or [])
    return f"{abi_entry['name']}({args})"


def event_topics(abi: list) -> dict[bytes, str]:
    topics = {}
    for entry in abi or []:
        if entry.get("type") != "event" or entry.get("anonymous"):
            continue
        topics[bytes(Web3.keccak(text=event_signature(entry)))] = entry["name"]
    return topics


def map_struct_output(abi: list, function_name: str, result) -> dict:
    """Name the values of a struct-returning call using the ABI outputs."""
    for entry in abi or []:
        if entry.get("type") == "function" and entry.get("name") == function_name:
            outputs = entry.get("outputs") or []
            break
    else:
        raise ChainCallError(f"{function_name} missing from ABI")
    if len(outputs) == 1 and outputs[0].get("type") == "tuple":
        outputs = outputs[0].get("components") or []
    if isinstance(result, dict):
        return dict(result)
    values = list(result) if isinstance(result, (list, tuple)) else [result]
    return {out.get("name") or f"field{i}": values[i] for i, out in enumerate(outputs) if i < len(values)}


def load_artifact(artifacts_dir: str, contract_name: str, network_id: str) -> tuple[str, list]:
    """Resolve (address, abi) from a Truffle build artifact."""
    path = os.path.join(artifacts_dir, f"{contract_name}.json")
    try:
        with open(path, "r", encoding="utf-8") as f:
            artifact = json.load(f)
    except FileNotFoundError:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:missing artifact {path}")
    except ValueError as e:
        raise IntegrationMisconfiguredError(f"INTEGRATION_MISCONFIGURED:bad artifact {path}: {e}")
    info = (artifact.get("networks") or {}).get(str(network_id)) or {}
    address = (info.get("address") or "").strip()
    if not address:
        raise IntegrationMisconfiguredError(
            f"INTEGRATION_MISCONFIGURED:{contract_name} not deployed on network {network_id}"
        )
    return address, artifact.get("abi") or []


class Web3ChainOracle(ChainOracle):
    name = "web3"

    def __init__(
        self,
        *,
        rpc_url: str,
        artifacts_dir: str,
        timeout_seconds: int = 10,
        network_id: str | None = None,
        escrow_address: str | None = None,
        w3: Web3 | None = None,
    ):
        self.rpc_url = rpc_url
        self.artifacts_dir = artifacts_dir
        self.escrow_address = (escrow_address or "").strip() or None
        self._network_id = network_id
        self.w3 = w3 or Web3(Web3.HTTPProvider(rpc_url, request_kwargs={"timeout": timeout_seconds}))
        self._contracts: dict[str, tuple] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # contract resolution
    # ------------------------------------------------------------------
    def network_id(self) -> str:
        if self._network_id is None:
            self._network_id = str(self.w3.net.version)
        return self._network_id

    def _contract(self, name: str):
        with self._lock:
            cached = self._contracts.get(name)
            if cached is not None:
                return cached
        address, abi = load_artifact(self.artifacts_dir, name, self.network_id())
        if name == ESCROW_CONTRACT and self.escrow_address:
            address = self.escrow_address
        contract = self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)
        entry = (contract, abi)
        with self._lock:
            self._contracts[name] = entry
        return entry

    def _send(self, fn, sender: str, value_wei: int | None = None) -> str:
        tx = {"from": Web3.to_checksum_address(sender)}
        if value_wei:
            tx["value"] = int(value_wei)
        tx_hash = fn.transact(tx)
        self.w3.eth.wait_for_transaction_receipt(tx_hash)
        return Web3.to_hex(tx_hash)

    # ------------------------------------------------------------------
    # escrow
    # ------------------------------------------------------------------
    def next_order_id(self) -> int:
        contract, _ = self._contract(ESCROW_CONTRACT)
        return int(contract.functions.nextOrderId().call())

    def get_order(self, order_id: int) -> ChainOrder:
        contract, abi = self._contract(ESCROW_CONTRACT)
        raw = map_struct_output(abi, "getOrder", contract.functions.getOrder(int(order_id)).call())
        fields = {}
        for key, value in raw.items():
            target = _ORDER_FIELD_ALIASES.get(key)
            if target:
                fields[target] = int(value) if target == "amount_wei" else value
        return ChainOrder(order_id=int(order_id), **fields)

    def create_order(self, sender, seller_wallet, product_id, qty, unit_price_wei, *, value_wei=None) -> dict:
        contract, _ = self._contract(ESCROW_CONTRACT)
        # the contract assigns nextOrderId to the new order
        expected_id = self.next_order_id()
        total = int(qty) * int(unit_price_wei) if value_wei is None else int(value_wei)
        fn = contract.functions.createOrder(
            Web3.to_checksum_address(seller_wallet), int(product_id), int(qty), int(unit_price_wei)
        )
        tx_hash = self._send(fn, sender, total)
        return {"order_id": expected_id, "tx_hash": tx_hash}

    def confirm_shipment(self, sender, order_id) -> str:
        contract, _ = self._contract(ESCROW_CONTRACT)
        return self._send(contract.functions.confirmShipment(int(order_id)), sender)

    def confirm_delivery(self, sender, order_id) -> str:
        contract, _ = self._contract(ESCROW_CONTRACT)
        return self._send(contract.functions.confirmDelivery(int(order_id)), sender)

    def release_payment(self, sender, order_id) -> str:
        contract, _ = self._contract(ESCROW_CONTRACT)
        return self._send(contract.functions.releasePayment(int(order_id)), sender)

    def submit_rating(self, sender, order_id, stars, comment="") -> str:
        contract, _ = self._contract(ESCROW_CONTRACT)
        return self._send(contract.functions.submitRating(int(order_id), int(stars), comment or ""), sender)

    # ------------------------------------------------------------------
    # reputation
    # ------------------------------------------------------------------
    def get_average_rating(self, seller) -> int:
        contract, _ = self._contract(REPUTATION_CONTRACT)
        return int(contract.functions.getAverageRating(Web3.to_checksum_address(seller)).call())

    def rating_count(self, seller) -> int:
        contract, _ = self._contract(REPUTATION_CONTRACT)
        return int(contract.functions.ratingCount(Web3.to_checksum_address(seller)).call())

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def past_events(self, order_id, from_block=0, to_block="latest") -> list[ChainEvent]:
        contract, abi = self._contract(TRACKING_CONTRACT)
        topics = event_topics(abi)
        try:
            wanted = int(order_id)
        except (TypeError, ValueError):
            return []
        logs = self.w3.eth.get_logs({"address": contract.address, "fromBlock": from_block, "toBlock": to_block})
        events = []
        for log in logs:
            log_topics = log.get("topics") or []
            if not log_topics:
                continue
            name = topics.get(bytes(log_topics[0]))
            if name is None:
                continue
            decoded = getattr(contract.events, name)().process_log(log)
            args = dict(decoded["args"])
            if "orderId" not in args or int(args["orderId"]) != wanted:
                continue
            events.append(
                ChainEvent(
                    name=name,
                    args=args,
                    block_number=int(decoded["blockNumber"]),
                    log_index=int(decoded["logIndex"]),
                    tx_hash=Web3.to_hex(decoded["transactionHash"]),
                )
            )
        return events

    def get_block_timestamp(self, block_number) -> int:
        return int(self.w3.eth.get_block(int(block_number))["timestamp"])

    def get_transaction(self, tx_hash) -> dict | None:
        try:
            return dict(self.w3.eth.get_transaction(tx_hash))
        except TransactionNotFound:
            return None

    def get_transaction_receipt(self, tx_hash) -> dict | None:
        try:
            return dict(self.w3.eth.get_transaction_receipt(tx_hash))
        except TransactionNotFound:
            return None

    def health(self) -> dict:
        connected = bool(self.w3.is_connected())
        out = {"provider": self.name, "connected": connected, "rpc_url": self.rpc_url}
        if connected:
            out["block_number"] = int(self.w3.eth.block_number)
            out["network_id"] = self.network_id()
        return out
