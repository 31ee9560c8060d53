from __future__ import annotations

import json
import os
import tempfile
import unittest

from popmart.integrations.chain.factory import build_chain_oracle, chain_health
from popmart.integrations.chain.mock_provider import MockChainOracle
from popmart.integrations.chain.web3_provider import (
    event_signature,
    event_topics,
    load_artifact,
    map_struct_output,
)
from popmart.integrations.common import (
    ChainCallError,
    IntegrationDisabledError,
    IntegrationMisconfiguredError,
    try_chain,
)
from popmart.utils.settings import Settings

SELLER = "0x1111111111111111111111111111111111111111"
BUYER = "0x2222222222222222222222222222222222222222"

GET_ORDER_ABI = [
    {
        "type": "function",
        "name": "getOrder",
        "inputs": [{"name": "orderId", "type": "uint256"}],
        "outputs": [
            {
                "name": "",
                "type": "tuple",
                "components": [
                    {"name": "buyer", "type": "address"},
                    {"name": "seller", "type": "address"},
                    {"name": "amountWei", "type": "uint256"},
                    {"name": "shipped", "type": "bool"},
                ],
            }
        ],
    },
    {
        "type": "event",
        "name": "ShipmentMarked",
        "anonymous": False,
        "inputs": [
            {"name": "orderId", "type": "uint256", "indexed": True},
            {"name": "trackingId", "type": "string", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "Transfer",
        "anonymous": False,
        "inputs": [
            {"name": "from", "type": "address", "indexed": True},
            {"name": "to", "type": "address", "indexed": True},
            {"name": "value", "type": "uint256", "indexed": False},
        ],
    },
]


class MockChainOracleTestCase(unittest.TestCase):
    def setUp(self):
        self.chain = MockChainOracle(genesis_timestamp=1_767_225_600, block_time=15)

    def _order(self):
        return self.chain.create_order(BUYER, SELLER, 3, 2, 10**17)["order_id"]

    def test_escrow_lifecycle_follows_contract_rules(self):
        self.assertEqual(self.chain.next_order_id(), 1)
        oid = self._order()
        self.assertEqual(self.chain.next_order_id(), oid + 1)
        with self.assertRaises(ChainCallError):
            self.chain.confirm_shipment(BUYER, oid)
        with self.assertRaises(ChainCallError):
            self.chain.release_payment(SELLER, oid)
        self.chain.confirm_shipment(SELLER, oid)
        self.chain.confirm_delivery(BUYER, oid)
        with self.assertRaises(ChainCallError):
            self.chain.submit_rating(BUYER, oid, 5)
        self.chain.release_payment(SELLER, oid)
        self.chain.submit_rating(BUYER, oid, 4, "fine")
        order = self.chain.get_order(oid)
        self.assertTrue(order.paid_out)
        self.assertTrue(order.rated)
        self.assertEqual(order.amount_wei, 2 * 10**17)
        self.assertEqual(self.chain.get_average_rating(SELLER), 400)
        self.assertEqual(self.chain.rating_count(SELLER.upper().replace("0X", "0x")), 1)

    def test_payment_must_match_total(self):
        with self.assertRaises(ChainCallError):
            self.chain.create_order(BUYER, SELLER, 1, 2, 10**17, value_wei=10**17)
        with self.assertRaises(ChainCallError):
            self.chain.create_order(SELLER, SELLER, 1, 1, 10**17)

    def test_unknown_order_is_empty(self):
        self.assertTrue(self.chain.get_order(77).is_empty())
        oid = self._order()
        self.assertFalse(self.chain.get_order(oid).is_empty())

    def test_past_events_are_filtered_by_order(self):
        first = self._order()
        second = self._order()
        self.chain.confirm_shipment(SELLER, first)
        self.chain.mark_in_transit(SELLER, first)
        self.chain.confirm_shipment(SELLER, second)
        names = [e.name for e in self.chain.past_events(first)]
        self.assertEqual(names, ["OrderCreated", "ShipmentMarked", "InTransitMarked"])
        self.assertEqual(self.chain.past_events("nope"), [])
        events = self.chain.past_events(first, from_block=2)
        self.assertEqual([e.name for e in events], ["ShipmentMarked", "InTransitMarked"])

    def test_block_timestamps_advance(self):
        self.chain.set_next_block_timestamp(1_767_230_000)
        self._order()
        self.assertEqual(self.chain.get_block_timestamp(1), 1_767_230_000)
        self._order()
        self.assertEqual(self.chain.get_block_timestamp(2), 1_767_230_015)
        with self.assertRaises(ChainCallError):
            self.chain.get_block_timestamp(99)

    def test_outage_simulation(self):
        self.chain.fail_with(TimeoutError("slow node"))
        result = try_chain(self.chain.next_order_id)
        self.assertFalse(result.ok)
        self.assertEqual(result.code, "CHAIN_UNAVAILABLE")
        self.assertIn("slow node", result.message)
        self.chain.recover()
        self.assertTrue(try_chain(self.chain.next_order_id).ok)


class ChainFactoryTestCase(unittest.TestCase):
    def test_provider_selection(self):
        self.assertIsInstance(build_chain_oracle(Settings(chain_provider="mock")), MockChainOracle)
        with self.assertRaises(IntegrationDisabledError):
            build_chain_oracle(Settings(chain_provider="disabled"))
        with self.assertRaises(IntegrationMisconfiguredError):
            build_chain_oracle(Settings(chain_provider="solana"))
        with self.assertRaises(IntegrationMisconfiguredError):
            build_chain_oracle(Settings(chain_provider="web3", chain_artifacts_dir="/definitely/not/here"))

    def test_health(self):
        self.assertEqual(chain_health(Settings(chain_provider="disabled"))["status"], "disabled")
        broken = chain_health(Settings(chain_provider="web3", chain_rpc_url="", chain_artifacts_dir="/nope"))
        self.assertEqual(broken["status"], "misconfigured")
        self.assertEqual(broken["missing"], ["CHAIN_RPC_URL", "CHAIN_ARTIFACTS_DIR"])
        healthy = chain_health(Settings(chain_provider="mock"), MockChainOracle())
        self.assertEqual(healthy["status"], "configured")
        self.assertTrue(healthy["node"]["connected"])

    def test_try_chain_reports_integration_errors(self):
        def _disabled():
            raise IntegrationDisabledError("INTEGRATION_DISABLED:chain")

        self.assertEqual(try_chain(_disabled).code, "INTEGRATION_DISABLED")


class Web3HelpersTestCase(unittest.TestCase):
    def test_event_signature_and_topics(self):
        self.assertEqual(event_signature(GET_ORDER_ABI[1]), "ShipmentMarked(uint256,string)")
        topics = event_topics(GET_ORDER_ABI)
        transfer = bytes.fromhex("ddf252ad1be2c89b69c2b068fc378daa952ba7f163c4a11628f55a4df523b3ef")
        self.assertEqual(topics[transfer], "Transfer")
        self.assertEqual(sorted(topics.values()), ["ShipmentMarked", "Transfer"])

    def test_struct_output_is_named_from_abi(self):
        named = map_struct_output(GET_ORDER_ABI, "getOrder", (BUYER, SELLER, 5, True))
        self.assertEqual(named, {"buyer": BUYER, "seller": SELLER, "amountWei": 5, "shipped": True})
        with self.assertRaises(ChainCallError):
            map_struct_output(GET_ORDER_ABI, "missing", ())

    def test_load_artifact(self):
        with tempfile.TemporaryDirectory() as tmp:
            with open(os.path.join(tmp, "EscrowPayment.json"), "w", encoding="utf-8") as f:
                json.dump({"abi": GET_ORDER_ABI, "networks": {"5777": {"address": SELLER}}}, f)
            address, abi = load_artifact(tmp, "EscrowPayment", "5777")
            self.assertEqual(address, SELLER)
            self.assertEqual(len(abi), 3)
            with self.assertRaises(IntegrationMisconfiguredError):
                load_artifact(tmp, "EscrowPayment", "1")
            with self.assertRaises(IntegrationMisconfiguredError):
                load_artifact(tmp, "SellerReputation", "5777")


if __name__ == "__main__":
    unittest.main()
