"""
Unit tests for taka formatting and exchange rates
"""

import unittest
from decimal import Decimal

from parkeazy.application.audit import ActionType
from parkeazy.application.currency import CurrencyManager, format_currency
from parkeazy.domain.exceptions import PermissionDeniedError, ValidationError
from parkeazy.domain.models import Money
from tests.support import ServiceTestCase


class TestFormatCurrency(unittest.TestCase):

    def test_lakh_grouping(self):
        self.assertEqual(format_currency("1234567.5"), "৳12,34,567.50")
        self.assertEqual(format_currency(123456789), "৳12,34,56,789.00")

    def test_small_amounts(self):
        self.assertEqual(format_currency(0), "৳0.00")
        self.assertEqual(format_currency(999), "৳999.00")
        self.assertEqual(format_currency(1000), "৳1,000.00")

    def test_rounds_half_up(self):
        self.assertEqual(format_currency(Decimal("10.005")), "৳10.01")
        self.assertEqual(format_currency(Decimal("10.004")), "৳10.00")

    def test_money(self):
        self.assertEqual(format_currency(Money(Decimal("150"))), "৳150.00")

    def test_negative(self):
        self.assertEqual(format_currency(Decimal("-2500")), "-৳2,500.00")


class TestConversion(unittest.TestCase):

    def setUp(self):
        self.manager = CurrencyManager()

    def test_default_rates(self):
        self.assertEqual(self.manager.rates["USD"], Decimal("117.50"))

    def test_to_base(self):
        self.assertEqual(self.manager.to_base(2, "usd"), Money(Decimal("235.00")))

    def test_from_base(self):
        self.assertEqual(self.manager.from_base(Money(Decimal("235")), "USD"), Decimal("2"))

    def test_base_currency_is_identity(self):
        self.assertEqual(self.manager.from_base(100, "BDT"), Decimal("100"))

    def test_unknown_currency(self):
        with self.assertRaises(ValidationError) as ctx:
            self.manager.to_base(1, "JPY")
        self.assertIn('currency', ctx.exception.errors)

    def test_invalid_rates(self):
        with self.assertRaises(ValidationError) as ctx:
            CurrencyManager(rates={"USD": "abc", "EUR": 0})
        self.assertEqual(set(ctx.exception.errors), {"USD", "EUR"})


class TestRateUpdates(ServiceTestCase):

    def setUp(self):
        super().setUp()
        self.manager = self.services.currency

    def test_super_admin_updates_rates(self):
        self.login(self.super_admin)
        rates = self.manager.update_rates({"usd": "120", "JPY": "0.80"})
        self.assertEqual(rates["USD"], Decimal("120"))
        self.assertEqual(rates["JPY"], Decimal("0.80"))
        self.assertEqual(rates["EUR"], Decimal("127.80"))
        log = self.stored_logs(ActionType.CURRENCY_RATES_UPDATED.value)[0]
        self.assertEqual(log.metadata["USD"], "120")

    def test_admin_cannot_update_rates(self):
        self.login(self.admin)
        with self.assertRaises(PermissionDeniedError):
            self.manager.update_rates({"USD": "120"})
        self.assertEqual(self.manager.rates["USD"], Decimal("117.50"))

    def test_rejected_update_changes_nothing(self):
        self.login(self.super_admin)
        with self.assertRaises(ValidationError):
            self.manager.update_rates({"USD": "120", "EUR": "-1"})
        self.assertEqual(self.manager.rates["USD"], Decimal("117.50"))


if __name__ == '__main__':
    unittest.main()
