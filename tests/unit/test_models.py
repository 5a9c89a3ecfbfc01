"""
Unit tests for domain entities and value objects
"""

import unittest
from datetime import timedelta
from decimal import Decimal

from parkeazy.domain.exceptions import (
    InvalidDurationError, InvalidReservationStateError, SlotUnavailableError
)
from parkeazy.domain.models import (
    GeoPoint, Money, ParkingSlot, PaymentMethodType, Reservation, ReservationStatus, SavedCard,
    SavedMobileWallet, SlotStatus, SystemLog, TimeRange, User, UserRole,
    method_fingerprint
)
from tests.support import NOW, make_slot


# ============================================================================
# VALUE OBJECTS
# ============================================================================

class TestMoney(unittest.TestCase):

    def test_amount_is_coerced_to_decimal(self):
        self.assertEqual(Money(50).amount, Decimal("50"))
        self.assertIsInstance(Money(12.5).amount, Decimal)

    def test_negative_amount_is_rejected(self):
        with self.assertRaises(ValueError):
            Money(Decimal("-1"))

    def test_addition_requires_same_currency(self):
        self.assertEqual(Money(100) + Money(50), Money(150))
        with self.assertRaises(ValueError):
            Money(100) + Money(50, "USD")

    def test_multiplication(self):
        self.assertEqual(Money(50) * Decimal("1.5"), Money(75))

    def test_format(self):
        self.assertEqual(Money(Decimal("1234.5")).format(), "BDT 1,234.50")


class TestTimeRange(unittest.TestCase):

    def test_duration_hours(self):
        self.assertEqual(TimeRange(NOW, NOW + timedelta(hours=3)).duration_hours, Decimal("3"))

    def test_empty_range_is_rejected(self):
        with self.assertRaises(InvalidDurationError):
            TimeRange(NOW, NOW)

    def test_overlaps(self):
        first = TimeRange(NOW, NOW + timedelta(hours=2))
        self.assertTrue(first.overlaps(TimeRange(NOW + timedelta(hours=1), NOW + timedelta(hours=3))))
        self.assertFalse(first.overlaps(TimeRange(NOW + timedelta(hours=2), NOW + timedelta(hours=3))))


# ============================================================================
# ENTITIES
# ============================================================================

class TestParkingSlot(unittest.TestCase):

    def test_reserve_and_release(self):
        slot = make_slot()
        slot.reserve()
        self.assertEqual(slot.status, SlotStatus.RESERVED)
        slot.release()
        self.assertTrue(slot.is_available)

    def test_reserve_unavailable_slot(self):
        slot = make_slot(status=SlotStatus.OCCUPIED)
        with self.assertRaises(SlotUnavailableError):
            slot.reserve()

    def test_rating_range(self):
        with self.assertRaises(ValueError):
            ParkingSlot(name="X", location=GeoPoint(0, 0), address="", price_per_hour=Money(10), rating=6)

    def test_to_dict(self):
        data = make_slot(price=70).to_dict()
        self.assertEqual(data['status'], "Available")
        self.assertEqual(data['price_per_hour'], {'amount': "70", 'currency': "BDT"})
        self.assertEqual(data['features'], ["CCTV", "Guarded"])


class TestReservation(unittest.TestCase):

    def make_reservation(self, hours=2):
        return Reservation(
            user_id="user-1", slot_id="slot-1",
            start_time=NOW, end_time=NOW + timedelta(hours=hours),
            total_cost=Money(100)
        )

    def test_defaults(self):
        reservation = self.make_reservation()
        self.assertEqual(reservation.status, ReservationStatus.ACTIVE)
        self.assertTrue(reservation.id)

    def test_end_must_follow_start(self):
        with self.assertRaises(InvalidDurationError):
            Reservation(user_id="u", slot_id="s", start_time=NOW, end_time=NOW, total_cost=Money(0))

    def test_is_current(self):
        reservation = self.make_reservation()
        self.assertTrue(reservation.is_current(NOW + timedelta(hours=1)))
        self.assertFalse(reservation.is_current(NOW + timedelta(hours=2)))

    def test_extend_grows_end_and_cost(self):
        reservation = self.make_reservation()
        reservation.extend(timedelta(hours=1), Money(50), "bKash (01712345678)")
        self.assertEqual(reservation.end_time, NOW + timedelta(hours=3))
        self.assertEqual(reservation.total_cost, Money(150))
        self.assertEqual(reservation.payment_method, "bKash (01712345678)")

    def test_complete_keeps_total(self):
        reservation = self.make_reservation()
        reservation.complete(NOW + timedelta(minutes=30))
        self.assertEqual(reservation.status, ReservationStatus.COMPLETED)
        self.assertEqual(reservation.end_time, NOW + timedelta(minutes=30))
        self.assertEqual(reservation.total_cost, Money(100))

    def test_completed_reservation_can_be_zero_length(self):
        reservation = Reservation(
            user_id="u", slot_id="s", start_time=NOW, end_time=NOW,
            total_cost=Money(100), status=ReservationStatus.COMPLETED
        )
        self.assertFalse(reservation.is_active)

    def test_completed_reservation_cannot_change(self):
        reservation = self.make_reservation()
        reservation.complete(NOW + timedelta(hours=1))
        with self.assertRaises(InvalidReservationStateError):
            reservation.extend(timedelta(hours=1), Money(50))
        with self.assertRaises(InvalidReservationStateError):
            reservation.complete(NOW + timedelta(hours=1))


class TestUser(unittest.TestCase):

    def test_roles(self):
        self.assertFalse(User("A", "a@test.com").role.is_staff)
        self.assertTrue(User("B", "b@test.com", UserRole.ADMIN).role.is_staff)

    def test_invalid_email(self):
        with self.assertRaises(ValueError):
            User("A", "not-an-email")


# ============================================================================
# SAVED PAYMENT METHODS
# ============================================================================

class TestSavedPaymentMethods(unittest.TestCase):

    def test_card_fingerprint_ignores_name_case_and_id(self):
        first = SavedCard(user_id="u", cardholder_name="Test User", last4="4242", expiry_date="12/27")
        second = SavedCard(user_id="u", cardholder_name="TEST USER", last4="4242", expiry_date="01/28")
        self.assertNotEqual(first.id, second.id)
        self.assertEqual(method_fingerprint(first), method_fingerprint(second))

    def test_wallet_fingerprint_includes_provider(self):
        bkash = SavedMobileWallet(user_id="u", type=PaymentMethodType.BKASH, account_number="01712345678")
        nagad = SavedMobileWallet(user_id="u", type=PaymentMethodType.NAGAD, account_number="01712345678")
        self.assertNotEqual(method_fingerprint(bkash), method_fingerprint(nagad))

    def test_wallet_rejects_card_type(self):
        with self.assertRaises(ValueError):
            SavedMobileWallet(user_id="u", type=PaymentMethodType.CARD, account_number="01712345678")

    def test_display_names(self):
        card = SavedCard(user_id="u", cardholder_name="Test User", last4="4242", expiry_date="12/27")
        self.assertEqual(card.display_name, "Card ending in 4242")
        wallet = SavedMobileWallet(user_id="u", type="Nagad", account_number="01812345678")
        self.assertEqual(wallet.display_name, "Nagad (01812345678)")

    def test_unknown_variant(self):
        with self.assertRaises(TypeError):
            method_fingerprint(object())


class TestSystemLog(unittest.TestCase):

    def test_to_dict(self):
        log = SystemLog(actor_id="u", actor_role=UserRole.ADMIN, action_type="SLOT_UPDATE",
                        details="Updated", metadata={'slot_id': "s"}, timestamp=NOW)
        data = log.to_dict()
        self.assertEqual(data['actor_role'], "admin")
        self.assertEqual(data['timestamp'], NOW.isoformat())
        self.assertEqual(data['metadata'], {'slot_id': "s"})


if __name__ == '__main__':
    unittest.main()
