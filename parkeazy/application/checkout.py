# File: parkeazy/application/checkout.py
"""
Checkout Flow

Takes a payment for a new booking or an extension and commits the result:

    validate -> resolve instrument -> duplicate check / vault save
             -> settle -> create or extend reservation -> audit -> commit

Everything after validation shares one unit of work, so a failure leaves no
reservation, vault or log rows behind. A settlement cannot be rolled back
with the transaction; if anything fails after the charge it is refunded
before the error propagates.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from .audit import ActionType, AuditLogger
from .base import ApplicationService, AuthProvider, UnitOfWorkFactory, require_user
from .currency import format_currency
from .dtos import (
    BookingRequestDTO, CheckoutReceiptDTO, ExtensionRequestDTO,
    PaymentSelectionDTO, ReservationDTO
)
from .payment_vault import PaymentVault
from .reservation_manager import ReservationManager
from ..domain.exceptions import (
    DuplicateMethodError, InvalidDurationError, InvalidReservationStateError,
    PaymentSettlementError, PermissionDeniedError, ReservationNotFoundError,
    SlotNotFoundError, SlotUnavailableError, ValidationError
)
from ..domain.models import (
    PaymentMethodType, Reservation, SavedCard, SavedMobileWallet,
    SavedPaymentMethod, User, new_id
)
from ..domain.pricing import HourlyPricingStrategy, PricingStrategy
from ..domain.validation import (
    normalize_card_number, normalize_wallet_number, raise_for_errors,
    validate_card, validate_extension_hours, validate_mobile_wallet
)
from ..infrastructure.payments import PaymentGateway, Settlement
from ..infrastructure.repositories import UnitOfWork


@dataclass
class PreparedInstrument:
    """A validated instrument ready to be charged"""
    label: str
    saved: Optional[SavedPaymentMethod] = None
    new_method: Optional[SavedPaymentMethod] = None


class CheckoutFlow(ApplicationService):
    """Payment and commit of bookings and extensions"""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        reservations: ReservationManager,
        vault: PaymentVault,
        gateway: PaymentGateway,
        audit: AuditLogger,
        auth: AuthProvider,
        pricing: Optional[PricingStrategy] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        super().__init__(uow_factory)
        self._reservations = reservations
        self._vault = vault
        self._gateway = gateway
        self._audit = audit
        self._auth = auth
        self._pricing = pricing or HourlyPricingStrategy()
        self._clock = clock

    # ------------------------------------------------------------------
    # Public flows
    # ------------------------------------------------------------------

    def book(self, request: BookingRequestDTO) -> CheckoutReceiptDTO:
        """
        Pay for and create a reservation

        Raises:
            UserNotAuthenticatedError: nobody is signed in
            InvalidDurationError: end_time is not after start_time
            ValidationError: the payment details are malformed
            DuplicateMethodError: the new instrument is already saved
            SlotNotFoundError, SlotUnavailableError: the slot cannot be booked
        """
        user = require_user(self._auth)
        if request.end_time <= request.start_time:
            raise InvalidDurationError(
                f"Reservation must end after it starts ({request.start_time} -> {request.end_time})"
            )
        instrument = self._prepare_instrument(user, request.payment)
        key = request.payment.idempotency_key or new_id()

        settlement: Optional[Settlement] = None
        try:
            with self._uow_factory() as uow:
                method = self._stage_method(instrument, request.payment.save_for_future, uow)

                slot = uow.slots.get(request.slot_id)
                if slot is None:
                    raise SlotNotFoundError(f"Slot {request.slot_id} not found")
                if not slot.is_available:
                    raise SlotUnavailableError(f"Slot {request.slot_id} is {slot.status.value}")

                amount = self._pricing.reservation_cost(slot, request.start_time, request.end_time)
                settlement = self._gateway.settle(amount, instrument.label, key)

                reservation = self._reservations.create(
                    request.slot_id, request.start_time, request.end_time,
                    payment_method=instrument.label, uow=uow
                )
                self._record_payment(user, settlement, reservation, "booking", uow)
        except Exception:
            if settlement is not None:
                self._compensate(settlement)
            raise

        self._logger.info(f"Booking {reservation.id} paid with {settlement.transaction_id}")
        return self._receipt(reservation, settlement, method)

    def extend(self, request: ExtensionRequestDTO) -> CheckoutReceiptDTO:
        """
        Pay for and apply an extension of the user's active reservation

        Raises:
            InvalidDurationError: hours is not positive
            ValidationError: hours is outside the allowed steps or the
                payment details are malformed
            ReservationNotFoundError, InvalidReservationStateError,
            PermissionDeniedError: the reservation cannot be extended by this user
        """
        user = require_user(self._auth)
        hours = Decimal(str(request.hours))
        if hours <= 0:
            raise InvalidDurationError(f"Extension hours must be positive, got {hours}")
        raise_for_errors(validate_extension_hours(hours))

        instrument = self._prepare_instrument(user, request.payment)
        key = request.payment.idempotency_key or new_id()

        settlement: Optional[Settlement] = None
        try:
            with self._uow_factory() as uow:
                method = self._stage_method(instrument, request.payment.save_for_future, uow)

                current = uow.reservations.get(request.reservation_id)
                if current is None:
                    raise ReservationNotFoundError(f"Reservation {request.reservation_id} not found")
                if current.user_id != user.id and not user.role.is_staff:
                    raise PermissionDeniedError(
                        f"User {user.id} does not own reservation {request.reservation_id}"
                    )
                if not current.is_active:
                    raise InvalidReservationStateError(
                        f"Reservation {request.reservation_id} is {current.status.value}"
                    )

                slot = uow.slots.get(current.slot_id)
                if slot is None:
                    raise SlotNotFoundError(f"Slot {current.slot_id} not found")

                amount = self._pricing.extension_cost(slot, hours)
                settlement = self._gateway.settle(amount, instrument.label, key)

                reservation = self._reservations.extend(
                    request.reservation_id, hours, payment_method=instrument.label, uow=uow
                )
                self._record_payment(user, settlement, reservation, "extension", uow)
        except Exception:
            if settlement is not None:
                self._compensate(settlement)
            raise

        self._logger.info(f"Extension of {reservation.id} paid with {settlement.transaction_id}")
        return self._receipt(reservation, settlement, method)

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _prepare_instrument(self, user: User, selection: PaymentSelectionDTO) -> PreparedInstrument:
        """Resolve a saved method or validate a new one; never writes"""
        if selection.saved_method_id:
            saved = self._vault.get(user.id, selection.saved_method_id)
            return PreparedInstrument(label=saved.display_name, saved=saved)

        method_type = PaymentMethodType(selection.method_type)
        if method_type is PaymentMethodType.CARD:
            if selection.card is None:
                raise ValidationError({'card': "Card details are required."})
            card = selection.card
            raise_for_errors(validate_card(
                card.card_number, card.expiry_date, card.cvc, card.cardholder_name,
                today=self._clock().date()
            ))
            method = SavedCard(
                user_id=user.id,
                cardholder_name=card.cardholder_name.strip(),
                last4=normalize_card_number(card.card_number)[-4:],
                expiry_date=card.expiry_date.strip()
            )
        else:
            if selection.wallet is None:
                raise ValidationError({'account_number': f"{method_type.value} number is required."})
            raise_for_errors(validate_mobile_wallet(selection.wallet.account_number))
            method = SavedMobileWallet(
                user_id=user.id,
                type=method_type,
                account_number=normalize_wallet_number(selection.wallet.account_number)
            )

        return PreparedInstrument(label=method.display_name, new_method=method)

    def _stage_method(self, instrument: PreparedInstrument, save: bool,
                      uow: UnitOfWork) -> Optional[SavedPaymentMethod]:
        """Reject already-saved instruments and queue the vault write if asked"""
        if instrument.new_method is None:
            return instrument.saved

        if self._vault.find_duplicate(instrument.new_method, uow=uow) is not None:
            raise DuplicateMethodError(f"{instrument.label} is already saved")
        if save:
            return self._vault.add(instrument.new_method, uow=uow)
        return None

    def _record_payment(self, user: User, settlement: Settlement, reservation: Reservation,
                        purpose: str, uow: UnitOfWork) -> None:
        self._audit.record(
            user.id, user.role, ActionType.PAYMENT_SETTLED,
            f"Paid {format_currency(settlement.amount)} for {purpose} with {settlement.instrument}",
            metadata={'transaction_id': settlement.transaction_id,
                      'reservation_id': reservation.id,
                      'amount': str(settlement.amount.amount)},
            uow=uow
        )

    def _compensate(self, settlement: Settlement) -> None:
        try:
            self._gateway.refund(settlement)
        except PaymentSettlementError as e:
            self._logger.error(f"Refund of {settlement.transaction_id} failed: {e}")

    @staticmethod
    def _receipt(reservation: Reservation, settlement: Settlement,
                 method: Optional[SavedPaymentMethod]) -> CheckoutReceiptDTO:
        return CheckoutReceiptDTO(
            reservation=ReservationDTO.from_domain(reservation),
            transaction_id=settlement.transaction_id,
            amount_charged=settlement.amount.amount,
            currency=settlement.amount.currency,
            instrument=settlement.instrument,
            saved_method_id=method.id if method else None,
            settled_at=settlement.settled_at
        )
