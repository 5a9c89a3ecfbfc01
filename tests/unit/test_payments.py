"""
Unit tests for the simulated payment gateway
"""

import unittest
from dataclasses import replace
from decimal import Decimal

from parkeazy.domain.exceptions import PaymentSettlementError
from parkeazy.domain.models import Money
from parkeazy.infrastructure.payments import SimulatedPaymentGateway


class TestSimulatedPaymentGateway(unittest.TestCase):

    def setUp(self):
        self.gateway = SimulatedPaymentGateway()
        self.amount = Money(Decimal("100"))

    def test_settle(self):
        settlement = self.gateway.settle(self.amount, "Card ending in 4242", "key-1")
        self.assertTrue(settlement.transaction_id.startswith("sim_"))
        self.assertEqual(settlement.amount, self.amount)
        self.assertFalse(settlement.refunded)
        self.assertEqual(self.gateway.get("key-1"), settlement)

    def test_same_key_settles_once(self):
        first = self.gateway.settle(self.amount, "Card ending in 4242", "key-1")
        again = self.gateway.settle(Money(Decimal("100.00")), "Card ending in 4242", "key-1")
        self.assertEqual(again, first)

    def test_key_reused_for_another_amount(self):
        self.gateway.settle(self.amount, "Card ending in 4242", "key-1")
        with self.assertRaises(PaymentSettlementError):
            self.gateway.settle(Money(Decimal("999")), "Card ending in 4242", "key-1")
        self.assertEqual(self.gateway.get("key-1").amount, self.amount)

    def test_key_reused_for_another_instrument(self):
        self.gateway.settle(self.amount, "Card ending in 4242", "key-1")
        with self.assertRaises(PaymentSettlementError):
            self.gateway.settle(self.amount, "bKash (01712345678)", "key-1")

    def test_refunded_key_charges_again(self):
        first = self.gateway.settle(self.amount, "Card ending in 4242", "key-1")
        self.gateway.refund(first)
        second = self.gateway.settle(self.amount, "Card ending in 4242", "key-1")
        self.assertNotEqual(second.transaction_id, first.transaction_id)
        self.assertFalse(second.refunded)
        self.assertEqual(self.gateway.get("key-1"), second)

    def test_distinct_keys(self):
        first = self.gateway.settle(self.amount, "bKash (01712345678)", "key-1")
        second = self.gateway.settle(self.amount, "bKash (01712345678)", "key-2")
        self.assertNotEqual(first.transaction_id, second.transaction_id)

    def test_key_required(self):
        with self.assertRaises(PaymentSettlementError):
            self.gateway.settle(self.amount, "Card ending in 4242", "")

    def test_refund(self):
        settlement = self.gateway.settle(self.amount, "Card ending in 4242", "key-1")
        refunded = self.gateway.refund(settlement)
        self.assertTrue(refunded.refunded)
        self.assertTrue(self.gateway.get("key-1").refunded)
        self.assertEqual(self.gateway.refund(settlement), refunded)

    def test_refund_unknown_settlement(self):
        settlement = self.gateway.settle(self.amount, "Card ending in 4242", "key-1")
        with self.assertRaises(PaymentSettlementError):
            self.gateway.refund(replace(settlement, transaction_id="sim_other"))

    def test_unknown_key(self):
        self.assertIsNone(self.gateway.get("missing"))


if __name__ == '__main__':
    unittest.main()
