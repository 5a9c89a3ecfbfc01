# File: parkeazy/application/reservation_manager.py
"""
Reservation Manager

Owns the reservation lifecycle:

    create   -> Active          (slot Available -> Reserved)
    extend   Active -> Active   (end_time and total_cost grow)
    end      Active -> Completed (slot -> Available)

A slot is claimed with a compare-and-swap on its status, so two bookings
racing for the same slot cannot both succeed. Every operation runs in one
transaction and can join a caller's unit of work.
"""

from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional, Tuple

from .audit import ActionType, AuditLogger
from .base import ApplicationService, AuthProvider, UnitOfWorkFactory, require_user
from .slot_registry import SlotRegistry
from ..domain.exceptions import (
    InvalidDurationError, InvalidReservationStateError, ReservationNotFoundError,
    SlotNotFoundError, SlotUnavailableError
)
from ..domain.models import Reservation, SlotStatus, UserRole
from ..domain.pricing import HourlyPricingStrategy, PricingStrategy, hours_to_timedelta
from ..infrastructure.repositories import UnitOfWork
from ..infrastructure.resilience import RetryPolicy


class ReservationManager(ApplicationService):
    """Application service for the reservation lifecycle"""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        auth: AuthProvider,
        audit: AuditLogger,
        slots: SlotRegistry,
        pricing: Optional[PricingStrategy] = None,
        clock: Callable[[], datetime] = datetime.now,
        read_policy: Optional[RetryPolicy] = None
    ):
        super().__init__(uow_factory, read_policy)
        self._auth = auth
        self._audit = audit
        self._slots = slots
        self._pricing = pricing or HourlyPricingStrategy()
        self._clock = clock

    def _actor_for(self, reservation: Reservation) -> Tuple[str, UserRole]:
        """The signed-in user, or else the reservation's owner as a plain user"""
        user = self._auth.current_user()
        if user is not None:
            return user.id, user.role
        return reservation.user_id, UserRole.USER

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create(
        self,
        slot_id: str,
        start_time: datetime,
        end_time: datetime,
        payment_method: Optional[str] = None,
        uow: Optional[UnitOfWork] = None
    ) -> Reservation:
        """
        Book a slot for the signed-in user

        Raises:
            UserNotAuthenticatedError: nobody is signed in
            InvalidDurationError: end_time is not after start_time
            SlotNotFoundError: unknown slot
            SlotUnavailableError: the slot is already taken
        """
        user = require_user(self._auth)
        if end_time <= start_time:
            raise InvalidDurationError(f"Reservation must end after it starts ({start_time} -> {end_time})")

        with self.unit_of_work(uow) as active:
            slot = active.slots.get(slot_id)
            if slot is None:
                raise SlotNotFoundError(f"Slot {slot_id} not found")

            now = self._clock()
            if any(r.is_current(now) for r in active.reservations.find_active_for_slot(slot_id)):
                raise SlotUnavailableError(f"Slot {slot_id} already has an active reservation")

            if not active.slots.compare_and_set_status(slot_id, SlotStatus.AVAILABLE, SlotStatus.RESERVED):
                raise SlotUnavailableError(f"Slot {slot_id} is not available")

            reservation = Reservation(
                user_id=user.id,
                slot_id=slot.id,
                start_time=start_time,
                end_time=end_time,
                total_cost=self._pricing.reservation_cost(slot, start_time, end_time),
                payment_method=payment_method,
                created_at=now
            )
            active.reservations.add(reservation)

            self._audit.record(
                user.id, user.role, ActionType.RESERVATION_CREATED,
                f"Reserved {slot.name} from {start_time:%Y-%m-%d %H:%M} to {end_time:%Y-%m-%d %H:%M}",
                metadata={'reservation_id': reservation.id, 'slot_id': slot.id,
                          'total_cost': str(reservation.total_cost.amount)},
                uow=active
            )

        self._logger.info(f"Reservation {reservation.id} created for slot {slot_id} by {user.id}")
        return reservation

    def extend(
        self,
        reservation_id: str,
        hours_to_add,
        payment_method: Optional[str] = None,
        uow: Optional[UnitOfWork] = None
    ) -> Reservation:
        """
        Add hours to an active reservation at the slot's current price

        Raises:
            InvalidDurationError: hours_to_add is not positive
            ReservationNotFoundError, SlotNotFoundError: unknown ids
            InvalidReservationStateError: the reservation is not active
        """
        hours = Decimal(str(hours_to_add))
        if hours <= 0:
            raise InvalidDurationError(f"Extension hours must be positive, got {hours}")

        with self.unit_of_work(uow) as active:
            reservation = active.reservations.get(reservation_id)
            if reservation is None:
                raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
            if not reservation.is_active:
                raise InvalidReservationStateError(
                    f"Reservation {reservation_id} is {reservation.status.value}"
                )

            slot = active.slots.get(reservation.slot_id)
            if slot is None:
                raise SlotNotFoundError(f"Slot {reservation.slot_id} not found")

            added_cost = self._pricing.extension_cost(slot, hours)
            reservation.extend(hours_to_timedelta(hours), added_cost, payment_method)
            active.reservations.update(reservation)

            actor_id, actor_role = self._actor_for(reservation)
            self._audit.record(
                actor_id, actor_role, ActionType.RESERVATION_EXTENDED,
                f"Extended reservation at {slot.name} by {hours} hour(s)",
                metadata={'reservation_id': reservation.id, 'hours': str(hours),
                          'added_cost': str(added_cost.amount)},
                uow=active
            )

        self._logger.info(f"Reservation {reservation_id} extended by {hours}h")
        return reservation

    def end(self, reservation_id: str, uow: Optional[UnitOfWork] = None) -> Reservation:
        """
        Finish an active reservation now and free its slot

        The charged total is kept even when ending early.
        """
        with self.unit_of_work(uow) as active:
            reservation = active.reservations.get(reservation_id)
            if reservation is None:
                raise ReservationNotFoundError(f"Reservation {reservation_id} not found")

            # Ending before the window opened collapses it to the start time
            reservation.complete(max(self._clock(), reservation.start_time))
            active.reservations.update(reservation)

            try:
                self._slots.set_status(reservation.slot_id, SlotStatus.AVAILABLE, uow=active)
            except SlotNotFoundError:
                self._logger.warning(
                    f"Slot {reservation.slot_id} was removed before reservation {reservation_id} ended"
                )

            actor_id, actor_role = self._actor_for(reservation)
            self._audit.record(
                actor_id, actor_role, ActionType.RESERVATION_ENDED,
                f"Ended reservation {reservation.id}",
                metadata={'reservation_id': reservation.id, 'slot_id': reservation.slot_id},
                uow=active
            )

        self._logger.info(f"Reservation {reservation_id} completed")
        return reservation

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, reservation_id: str) -> Reservation:
        with self.unit_of_work() as uow:
            reservation = uow.reservations.get(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
        return reservation

    def active_for(self, user_id: str) -> Optional[Reservation]:
        """The user's first active, unexpired reservation in booking order"""
        now = self._clock()
        with self.unit_of_work() as uow:
            reservations = uow.reservations.find_by_user(user_id)
        for reservation in reservations:
            if reservation.is_current(now):
                return reservation
        return None

    def all_for(self, user_id: str) -> List[Reservation]:
        """The user's reservations, most recent start first"""
        with self.unit_of_work() as uow:
            reservations = uow.reservations.find_by_user(user_id)
        return sorted(reservations, key=lambda r: r.start_time, reverse=True)

    def all(self) -> List[Reservation]:
        """Every reservation for the admin views; empty if the store cannot be read"""
        reservations = self._bulk_read(lambda uow: uow.reservations.list(), label="reservations")
        return sorted(reservations, key=lambda r: r.start_time, reverse=True)
