"""
Shared fixtures for the Park-Eazy test suites
"""

import unittest
from datetime import datetime, timedelta
from decimal import Decimal

from parkeazy.config import Settings
from parkeazy.domain.models import (
    GeoPoint, Money, ParkingSlot, SlotStatus, User, UserRole, VehicleType
)
from parkeazy.infrastructure.factories import ServiceFactory
from parkeazy.infrastructure.payments import SimulatedPaymentGateway


NOW = datetime(2025, 1, 15, 10, 0)


class FixedClock:
    """Clock that only moves when told to"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def make_slot(name="GEC-01", price=50, vehicle_type=VehicleType.CAR,
              status=SlotStatus.AVAILABLE, id=None) -> ParkingSlot:
    return ParkingSlot(
        id=id,
        name=name,
        location=GeoPoint(22.359, 91.821),
        address="Near GEC Convention Hall, Chittagong",
        price_per_hour=Money(Decimal(str(price))),
        vehicle_type=vehicle_type,
        status=status,
        features=["CCTV", "Guarded"]
    )


# ============================================================================
# BASE TEST CLASSES
# ============================================================================

class ServiceTestCase(unittest.TestCase):
    """Base class wiring every service over an in-memory store"""

    def setUp(self):
        self.clock = FixedClock()
        self.gateway = SimulatedPaymentGateway()
        self.factory = ServiceFactory(Settings(), gateway=self.gateway, clock=self.clock)
        self.services = self.factory.create_in_memory_services()

        self.user = self.add_user("Test User", "user@test.com")
        self.other_user = self.add_user("Jane Doe", "jane.doe@test.com")
        self.admin = self.add_user("Test Admin", "admin@test.com", UserRole.ADMIN)
        self.super_admin = self.add_user("Super Admin", "superadmin@parkeazy.com", UserRole.SUPER_ADMIN)

    def add_user(self, name, email, role=UserRole.USER) -> User:
        user = User(name=name, email=email, role=role)
        with self.services.uow_factory() as uow:
            uow.users.add(user)
        return user

    def add_slot(self, **kwargs) -> ParkingSlot:
        slot = make_slot(**kwargs)
        with self.services.uow_factory() as uow:
            uow.slots.add(slot)
        return slot

    def login(self, user: User) -> User:
        return self.services.auth.login(user.email)

    def stored_logs(self, action_type=None):
        with self.services.uow_factory() as uow:
            return uow.system_logs.list(action_type)
