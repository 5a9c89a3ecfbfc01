# File: parkeazy/application/payment_vault.py
"""
Payment Method Vault

Per-user store of saved cards and mobile wallets. Only the last four card
digits and the expiry are kept. A user cannot save the same instrument
twice: cards are matched on last4 plus cardholder name (ignoring case),
wallets on provider plus account number.
"""

from datetime import date
from typing import Callable, Dict, List, Optional
import re

from .audit import ActionType, AuditLogger
from .base import ApplicationService, AuthProvider, UnitOfWorkFactory
from ..domain.exceptions import DuplicateMethodError, PaymentMethodNotFoundError
from ..domain.models import (
    SavedCard, SavedMobileWallet, SavedPaymentMethod, UserRole, method_fingerprint
)
from ..domain.validation import (
    NAME_ERROR, EXPIRY_ERROR, WALLET_ERROR, WALLET_PATTERN,
    is_valid_expiry, raise_for_errors
)
from ..infrastructure.repositories import UnitOfWork


class PaymentVault(ApplicationService):
    """Application service for saved payment methods"""

    def __init__(
        self,
        uow_factory: UnitOfWorkFactory,
        audit: AuditLogger,
        auth: Optional[AuthProvider] = None,
        today: Callable[[], date] = date.today
    ):
        super().__init__(uow_factory)
        self._audit = audit
        self._auth = auth
        self._today = today

    def _actor_role(self, user_id: str) -> UserRole:
        user = self._auth.current_user() if self._auth else None
        if user is not None and user.id == user_id:
            return user.role
        return UserRole.USER

    def _validate(self, method: SavedPaymentMethod) -> None:
        errors: Dict[str, str] = {}
        if isinstance(method, SavedCard):
            if not re.match(r'^\d{4}$', method.last4 or ''):
                errors['last4'] = "Card number must end in four digits."
            if not is_valid_expiry(method.expiry_date, self._today()):
                errors['expiry_date'] = EXPIRY_ERROR
            if len((method.cardholder_name or '').strip()) < 2:
                errors['cardholder_name'] = NAME_ERROR
        elif isinstance(method, SavedMobileWallet):
            if not WALLET_PATTERN.match(method.account_number or ''):
                errors['account_number'] = WALLET_ERROR
        else:
            raise TypeError(f"Unknown payment method variant: {type(method).__name__}")
        raise_for_errors(errors)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list(self, user_id: str) -> List[SavedPaymentMethod]:
        with self.unit_of_work() as uow:
            return uow.payment_methods.find_by_user(user_id)

    def get(self, user_id: str, method_id: str) -> SavedPaymentMethod:
        with self.unit_of_work() as uow:
            method = uow.payment_methods.get(method_id)
        if method is None or method.user_id != user_id:
            raise PaymentMethodNotFoundError(f"Payment method {method_id} not found for user {user_id}")
        return method

    def find_duplicate(self, method: SavedPaymentMethod,
                       uow: Optional[UnitOfWork] = None) -> Optional[SavedPaymentMethod]:
        """An already-saved method equivalent to method, if any"""
        fingerprint = method_fingerprint(method)
        with self.unit_of_work(uow) as active:
            for existing in active.payment_methods.find_by_user(method.user_id):
                if method_fingerprint(existing) == fingerprint:
                    return existing
        return None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def add(self, method: SavedPaymentMethod, uow: Optional[UnitOfWork] = None) -> SavedPaymentMethod:
        """
        Save a payment method

        Raises:
            ValidationError: the stored fields are malformed
            DuplicateMethodError: an equivalent method is already saved
        """
        self._validate(method)

        with self.unit_of_work(uow) as active:
            if self.find_duplicate(method, uow=active) is not None:
                raise DuplicateMethodError(f"{method.display_name} is already saved for user {method.user_id}")

            active.payment_methods.add(method)
            self._audit.record(
                method.user_id, self._actor_role(method.user_id), ActionType.PAYMENT_METHOD_ADDED,
                f"Saved {method.display_name}",
                metadata={'method_id': method.id, 'type': method.type.value},
                uow=active
            )

        self._logger.info(f"Saved {method.type.value} {method.id} for user {method.user_id}")
        return method

    def remove(self, user_id: str, method_id: str, uow: Optional[UnitOfWork] = None) -> bool:
        """Delete a method owned by user_id; removing an unknown method is a no-op"""
        with self.unit_of_work(uow) as active:
            removed = active.payment_methods.delete(user_id, method_id)
            if removed:
                self._audit.record(
                    user_id, self._actor_role(user_id), ActionType.PAYMENT_METHOD_REMOVED,
                    "Removed a saved payment method",
                    metadata={'method_id': method_id},
                    uow=active
                )

        if removed:
            self._logger.info(f"Removed payment method {method_id} for user {user_id}")
        return removed
