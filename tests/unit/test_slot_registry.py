"""
Unit tests for the slot registry
"""

import unittest
from decimal import Decimal
from unittest.mock import patch

from parkeazy.application.audit import SYSTEM_ACTOR_ID, ActionType
from parkeazy.application.slot_registry import SlotRegistry
from parkeazy.domain.exceptions import (
    BackingStoreTimeoutError, PermissionDeniedError, SlotNotFoundError, UserNotAuthenticatedError
)
from parkeazy.domain.models import Money, SlotStatus, UserRole, VehicleType
from parkeazy.infrastructure.repositories import InMemoryUnitOfWork
from parkeazy.infrastructure.resilience import RetryPolicy
from tests.support import ServiceTestCase, make_slot


class TestSlotQueries(ServiceTestCase):

    def setUp(self):
        super().setUp()
        self.registry = self.services.slots
        self.car = self.add_slot(name="GEC-01", vehicle_type=VehicleType.CAR)
        self.bike = self.add_slot(name="AGB-01", vehicle_type=VehicleType.BIKE)
        self.busy = self.add_slot(name="GEC-02", status=SlotStatus.OCCUPIED)

    def test_list(self):
        self.assertEqual({slot.name for slot in self.registry.list()}, {"GEC-01", "AGB-01", "GEC-02"})

    def test_available(self):
        self.assertEqual({slot.name for slot in self.registry.available()}, {"GEC-01", "AGB-01"})

    def test_available_by_vehicle_type(self):
        self.assertEqual([slot.name for slot in self.registry.available("Bike")], ["AGB-01"])

    def test_get(self):
        self.assertEqual(self.registry.get(self.car.id).name, "GEC-01")
        with self.assertRaises(SlotNotFoundError):
            self.registry.get("missing")

    def test_list_degrades_to_empty_when_store_times_out(self):
        policy = RetryPolicy(max_retries=1, sleep=lambda seconds: None)
        registry = SlotRegistry(self.services.uow_factory, read_policy=policy)
        with patch.object(InMemoryUnitOfWork, '__enter__', side_effect=BackingStoreTimeoutError("slow")):
            self.assertEqual(registry.list(), [])


class TestSlotEdits(ServiceTestCase):

    def setUp(self):
        super().setUp()
        self.registry = self.services.slots

    def test_admin_can_add(self):
        self.login(self.admin)
        slot = self.registry.add(make_slot(name="NAS-01"))
        self.assertEqual(self.registry.get(slot.id).name, "NAS-01")
        log = self.stored_logs(ActionType.SLOT_CREATED.value)[0]
        self.assertEqual(log.actor_id, self.admin.id)
        self.assertEqual(log.metadata, {'slot_id': slot.id})

    def test_user_cannot_add(self):
        self.login(self.user)
        with self.assertRaises(PermissionDeniedError):
            self.registry.add(make_slot())
        self.assertEqual(self.registry.list(), [])

    def test_edit_requires_sign_in(self):
        with self.assertRaises(UserNotAuthenticatedError):
            self.registry.add(make_slot())

    def test_update(self):
        self.login(self.super_admin)
        slot = self.registry.add(make_slot(price=50))
        slot.price_per_hour = Money(Decimal("65"))
        self.registry.update(slot)
        self.assertEqual(self.registry.get(slot.id).price_per_hour, Money(Decimal("65")))
        self.assertEqual(len(self.stored_logs(ActionType.SLOT_UPDATE.value)), 1)

    def test_update_unknown(self):
        self.login(self.admin)
        with self.assertRaises(SlotNotFoundError):
            self.registry.update(make_slot())

    def test_remove(self):
        self.login(self.admin)
        slot = self.registry.add(make_slot())
        self.registry.remove(slot.id)
        with self.assertRaises(SlotNotFoundError):
            self.registry.get(slot.id)
        self.assertEqual(len(self.stored_logs(ActionType.SLOT_DELETED.value)), 1)

    def test_remove_unknown(self):
        self.login(self.admin)
        with self.assertRaises(SlotNotFoundError):
            self.registry.remove("missing")

    def test_set_status(self):
        slot = self.add_slot()
        self.registry.set_status(slot.id, SlotStatus.OCCUPIED)
        self.assertEqual(self.registry.get(slot.id).status, SlotStatus.OCCUPIED)
        with self.assertRaises(SlotNotFoundError):
            self.registry.set_status("missing", SlotStatus.AVAILABLE)


class TestRegistryWithoutAuth(ServiceTestCase):

    def test_system_actor(self):
        registry = SlotRegistry(self.services.uow_factory, audit=self.services.audit)
        registry.add(make_slot())
        log = self.stored_logs(ActionType.SLOT_CREATED.value)[0]
        self.assertEqual(log.actor_id, SYSTEM_ACTOR_ID)
        self.assertEqual(log.actor_role, UserRole.SUPER_ADMIN)


if __name__ == '__main__':
    unittest.main()
