# File: parkeazy/application/slot_registry.py
"""
Slot Registry

CRUD over parking slots. Edits are restricted to admins and super-admins
when an auth provider is wired in, and every edit is audited.
"""

from typing import List, Optional

from .audit import SYSTEM_ACTOR_ID, ActionType, AuditLogger
from .base import ApplicationService, AuthProvider, UnitOfWorkFactory, STAFF_ROLES, require_role, require_user
from ..domain.exceptions import SlotNotFoundError
from ..domain.models import ParkingSlot, SlotStatus, User, UserRole, VehicleType
from ..infrastructure.repositories import UnitOfWork
from ..infrastructure.resilience import RetryPolicy


class SlotRegistry(ApplicationService):
    """Application service for parking slots"""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        audit: Optional[AuditLogger] = None,
        auth: Optional[AuthProvider] = None,
        read_policy: Optional[RetryPolicy] = None
    ):
        super().__init__(uow_factory, read_policy)
        self._audit = audit
        self._auth = auth

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list(self) -> List[ParkingSlot]:
        """Every slot; an empty list if the store cannot be read"""
        return self._bulk_read(lambda uow: uow.slots.list(), label="parking slots")

    def available(self, vehicle_type: Optional[VehicleType] = None) -> List[ParkingSlot]:
        slots = [slot for slot in self.list() if slot.is_available]
        if vehicle_type is not None:
            slots = [slot for slot in slots if slot.vehicle_type == VehicleType(vehicle_type)]
        return slots

    def get(self, slot_id: str) -> ParkingSlot:
        with self.unit_of_work() as uow:
            slot = uow.slots.get(slot_id)
        if slot is None:
            raise SlotNotFoundError(f"Slot {slot_id} not found")
        return slot

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def _actor(self) -> Optional[User]:
        if self._auth is None:
            return None
        return require_role(require_user(self._auth), STAFF_ROLES)

    def _audit_edit(self, actor: Optional[User], action: ActionType, details: str,
                    slot_id: str, uow: UnitOfWork) -> None:
        if self._audit is None:
            return
        actor_id = actor.id if actor else SYSTEM_ACTOR_ID
        actor_role = actor.role if actor else UserRole.SUPER_ADMIN
        self._audit.record(actor_id, actor_role, action, details, metadata={'slot_id': slot_id}, uow=uow)

    def add(self, slot: ParkingSlot, uow: Optional[UnitOfWork] = None) -> ParkingSlot:
        actor = self._actor()
        with self.unit_of_work(uow) as active:
            active.slots.add(slot)
            self._audit_edit(actor, ActionType.SLOT_CREATED, f"Created slot {slot.name}", slot.id, active)

        self._logger.info(f"Slot {slot.id} ({slot.name}) added")
        return slot

    def update(self, slot: ParkingSlot, uow: Optional[UnitOfWork] = None) -> ParkingSlot:
        actor = self._actor()
        with self.unit_of_work(uow) as active:
            if not active.slots.update(slot):
                raise SlotNotFoundError(f"Slot {slot.id} not found")
            self._audit_edit(actor, ActionType.SLOT_UPDATE,
                             f"Updated slot {slot.name} ({slot.status.value}, {slot.price_per_hour.format()}/h)",
                             slot.id, active)

        self._logger.info(f"Slot {slot.id} updated")
        return slot

    def remove(self, slot_id: str, uow: Optional[UnitOfWork] = None) -> None:
        actor = self._actor()
        with self.unit_of_work(uow) as active:
            slot = active.slots.get(slot_id)
            if slot is None:
                raise SlotNotFoundError(f"Slot {slot_id} not found")
            active.slots.delete(slot_id)
            self._audit_edit(actor, ActionType.SLOT_DELETED, f"Deleted slot {slot.name}", slot_id, active)

        self._logger.info(f"Slot {slot_id} removed")

    def set_status(self, slot_id: str, status: SlotStatus, uow: Optional[UnitOfWork] = None) -> None:
        """Force a slot's status without auditing; used by the reservation lifecycle"""
        with self.unit_of_work(uow) as active:
            if not active.slots.set_status(slot_id, SlotStatus(status)):
                raise SlotNotFoundError(f"Slot {slot_id} not found")

        self._logger.debug(f"Slot {slot_id} set to {SlotStatus(status).value}")
