# File: parkeazy/application/dtos.py
"""
Data Transfer Objects (DTOs) for Park-Eazy

This module defines DTOs for data crossing the application boundary:
1. Input DTOs - booking, extension and payment selections from the UI
2. Output DTOs - slots, reservations, saved methods, logs and receipts

Input DTOs only shape the data; field rules such as card number length are
checked by parkeazy.domain.validation so that every invalid field can be
reported together.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional
import json

from pydantic import BaseModel, ConfigDict, Field

from ..domain.models import (
    DEFAULT_CURRENCY, ParkingSlot, PaymentMethodType, Reservation,
    SavedCard, SavedPaymentMethod, SystemLog
)


# ============================================================================
# BASE DTO CLASSES
# ============================================================================

class BaseDTO(BaseModel):
    """Base DTO with common functionality"""

    model_config = ConfigDict(
        from_attributes=True,
        populate_by_name=True,
        arbitrary_types_allowed=True,
        use_enum_values=True
    )

    def to_dict(self, exclude_none: bool = False, **kwargs) -> Dict[str, Any]:
        """Convert DTO to dictionary"""
        data = self.model_dump(**kwargs)
        if exclude_none:
            data = {k: v for k, v in data.items() if v is not None}
        return data

    def to_json(self, **kwargs) -> str:
        """Convert DTO to JSON string"""
        return self.model_dump_json(**kwargs)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BaseDTO':
        return cls(**data)

    @classmethod
    def from_json(cls, json_str: str) -> 'BaseDTO':
        return cls(**json.loads(json_str))


# ============================================================================
# INPUT DTOs
# ============================================================================

class CardInputDTO(BaseDTO):
    """A card typed in at checkout; the full number never leaves checkout"""
    card_number: str
    expiry_date: str = Field(description="MM/YY")
    cvc: str
    cardholder_name: str


class MobileWalletInputDTO(BaseDTO):
    account_number: str


class PaymentSelectionDTO(BaseDTO):
    """
    How the user wants to pay

    Either saved_method_id names a vaulted method, or card / wallet carries
    a new instrument of method_type.
    """
    method_type: PaymentMethodType = PaymentMethodType.CARD
    saved_method_id: Optional[str] = None
    card: Optional[CardInputDTO] = None
    wallet: Optional[MobileWalletInputDTO] = None
    save_for_future: bool = True
    idempotency_key: Optional[str] = None


class BookingRequestDTO(BaseDTO):
    slot_id: str
    start_time: datetime
    end_time: datetime
    payment: PaymentSelectionDTO


class ExtensionRequestDTO(BaseDTO):
    reservation_id: str
    hours: Decimal
    payment: PaymentSelectionDTO


# ============================================================================
# OUTPUT DTOs
# ============================================================================

class SlotDTO(BaseDTO):
    id: str
    name: str
    latitude: float
    longitude: float
    address: str
    status: str
    vehicle_type: str
    price_per_hour: Decimal
    currency: str = DEFAULT_CURRENCY
    features: List[str] = Field(default_factory=list)
    operating_hours: str
    rating: Optional[float] = None
    review_count: Optional[int] = None

    @classmethod
    def from_domain(cls, slot: ParkingSlot) -> 'SlotDTO':
        return cls(
            id=slot.id,
            name=slot.name,
            latitude=slot.location.latitude,
            longitude=slot.location.longitude,
            address=slot.address,
            status=slot.status.value,
            vehicle_type=slot.vehicle_type.value,
            price_per_hour=slot.price_per_hour.amount,
            currency=slot.price_per_hour.currency,
            features=sorted(slot.features),
            operating_hours=slot.operating_hours,
            rating=slot.rating,
            review_count=slot.review_count
        )


class ReservationDTO(BaseDTO):
    id: str
    user_id: str
    slot_id: str
    start_time: datetime
    end_time: datetime
    total_cost: Decimal
    currency: str = DEFAULT_CURRENCY
    status: str
    payment_method: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_domain(cls, reservation: Reservation) -> 'ReservationDTO':
        return cls(
            id=reservation.id,
            user_id=reservation.user_id,
            slot_id=reservation.slot_id,
            start_time=reservation.start_time,
            end_time=reservation.end_time,
            total_cost=reservation.total_cost.amount,
            currency=reservation.total_cost.currency,
            status=reservation.status.value,
            payment_method=reservation.payment_method,
            created_at=reservation.created_at
        )


class SavedPaymentMethodDTO(BaseDTO):
    """A vaulted method as shown in the payment picker"""
    id: str
    user_id: str
    type: str
    display_name: str
    last4: Optional[str] = None
    cardholder_name: Optional[str] = None
    expiry_date: Optional[str] = None
    account_number: Optional[str] = None

    @classmethod
    def from_domain(cls, method: SavedPaymentMethod) -> 'SavedPaymentMethodDTO':
        if isinstance(method, SavedCard):
            return cls(
                id=method.id, user_id=method.user_id, type=method.type.value,
                display_name=method.display_name, last4=method.last4,
                cardholder_name=method.cardholder_name, expiry_date=method.expiry_date
            )
        return cls(
            id=method.id, user_id=method.user_id, type=method.type.value,
            display_name=method.display_name, account_number=method.account_number
        )


class SystemLogDTO(BaseDTO):
    id: str
    timestamp: datetime
    actor_id: str
    actor_role: str
    action_type: str
    details: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_domain(cls, log: SystemLog) -> 'SystemLogDTO':
        return cls(
            id=log.id,
            timestamp=log.timestamp,
            actor_id=log.actor_id,
            actor_role=log.actor_role.value,
            action_type=log.action_type,
            details=log.details,
            metadata=dict(log.metadata)
        )


class CheckoutReceiptDTO(BaseDTO):
    """What the user sees after paying for a booking or an extension"""
    reservation: ReservationDTO
    transaction_id: str
    amount_charged: Decimal
    currency: str = DEFAULT_CURRENCY
    instrument: str
    saved_method_id: Optional[str] = None
    settled_at: datetime
