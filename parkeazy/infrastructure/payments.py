# File: parkeazy/infrastructure/payments.py
"""
Payment gateway port and the simulated gateway used by checkout

Settlements are keyed by an idempotency key: settling the same key twice
with the same amount and instrument returns the first settlement instead of
charging again, and a key replayed with a different charge is refused. A
settlement can be refunded once, which checkout uses to compensate when the
booking it paid for fails to commit; settling a refunded key charges anew.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Dict, Optional
import logging
import threading
import uuid

from ..domain.exceptions import PaymentSettlementError
from ..domain.models import Money


@dataclass(frozen=True)
class Settlement:
    """Outcome of charging an instrument"""
    transaction_id: str
    idempotency_key: str
    amount: Money
    instrument: str
    settled_at: datetime
    refunded: bool = False


class PaymentGateway(ABC):
    """Abstract payment gateway"""

    @abstractmethod
    def settle(self, amount: Money, instrument: str, idempotency_key: str) -> Settlement:
        """Charge instrument; repeated keys return the original settlement"""
        pass

    @abstractmethod
    def refund(self, settlement: Settlement) -> Settlement:
        pass


class SimulatedPaymentGateway(PaymentGateway):
    """Gateway that always approves; no money moves"""

    def __init__(self):
        self._settlements: Dict[str, Settlement] = {}
        self._lock = threading.Lock()
        self._logger = logging.getLogger(self.__class__.__name__)

    def settle(self, amount: Money, instrument: str, idempotency_key: str) -> Settlement:
        if not idempotency_key:
            raise PaymentSettlementError("An idempotency key is required to settle a payment")

        with self._lock:
            existing = self._settlements.get(idempotency_key)
            if existing is not None:
                if existing.amount != amount or existing.instrument != instrument:
                    raise PaymentSettlementError(
                        f"Key {idempotency_key} was used for {existing.amount.format()} on "
                        f"{existing.instrument}, not {amount.format()} on {instrument}"
                    )
                if not existing.refunded:
                    self._logger.info(f"Replaying settlement {existing.transaction_id} for key {idempotency_key}")
                    return existing
                # A refunded attempt is charged afresh under the same key
                self._logger.info(f"Key {idempotency_key} was refunded ({existing.transaction_id}); charging again")

            settlement = Settlement(
                transaction_id=f"sim_{uuid.uuid4().hex[:16]}",
                idempotency_key=idempotency_key,
                amount=amount,
                instrument=instrument,
                settled_at=datetime.now()
            )
            self._settlements[idempotency_key] = settlement

        self._logger.info(f"Settled {amount.format()} on {instrument} ({settlement.transaction_id})")
        return settlement

    def refund(self, settlement: Settlement) -> Settlement:
        with self._lock:
            current = self._settlements.get(settlement.idempotency_key)
            if current is None or current.transaction_id != settlement.transaction_id:
                raise PaymentSettlementError(f"Unknown settlement {settlement.transaction_id}")
            if current.refunded:
                return current

            refunded = replace(current, refunded=True)
            self._settlements[settlement.idempotency_key] = refunded

        self._logger.warning(f"Refunded {settlement.amount.format()} ({settlement.transaction_id})")
        return refunded

    def get(self, idempotency_key: str) -> Optional[Settlement]:
        return self._settlements.get(idempotency_key)
