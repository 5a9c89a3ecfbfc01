# File: parkeazy/domain/models.py
"""
Domain Models for Park-Eazy
Following Domain-Driven Design (DDD) principles with rich domain models

This module contains:
1. Value Objects: Money, GeoPoint, TimeRange
2. Enums: slot status, vehicle types, reservation status, payment method
   types and user roles
3. Entities: ParkingSlot, Reservation, User
4. Saved payment methods: a closed union of SavedCard and SavedMobileWallet
5. SystemLog: immutable audit entries
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Set, Tuple, Union, Iterable
from datetime import datetime, timedelta
from decimal import Decimal
import uuid
from enum import Enum

from .exceptions import InvalidDurationError, InvalidReservationStateError, SlotUnavailableError


DEFAULT_CURRENCY = "BDT"
ONE_HOUR = timedelta(hours=1)


def new_id() -> str:
    """Generate a new entity identifier"""
    return str(uuid.uuid4())


# ============================================================================
# DOMAIN PRIMITIVES / VALUE OBJECTS
# ============================================================================

@dataclass(frozen=True)
class Money:
    """
    Value Object: Monetary amount with currency
    Amounts are kept as Decimal and never rounded; rounding is a display concern.
    """
    amount: Decimal
    currency: str = DEFAULT_CURRENCY

    def __post_init__(self):
        """Normalize and validate money amount"""
        if not isinstance(self.amount, Decimal):
            object.__setattr__(self, 'amount', Decimal(str(self.amount)))

        if self.amount < Decimal('0'):
            raise ValueError("Money amount cannot be negative")

        if len(self.currency) != 3:
            raise ValueError(f"Currency must be 3-letter code: {self.currency}")

    @classmethod
    def zero(cls, currency: str = DEFAULT_CURRENCY) -> 'Money':
        return cls(Decimal('0'), currency)

    def __add__(self, other: 'Money') -> 'Money':
        """Add two money amounts (same currency only)"""
        if self.currency != other.currency:
            raise ValueError(f"Cannot add {self.currency} to {other.currency}")
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: 'Money') -> 'Money':
        """Subtract money amounts (same currency only)"""
        if self.currency != other.currency:
            raise ValueError(f"Cannot subtract {other.currency} from {self.currency}")
        result = self.amount - other.amount
        if result < Decimal('0'):
            raise ValueError("Result cannot be negative")
        return Money(result, self.currency)

    def __mul__(self, multiplier) -> 'Money':
        """Multiply money by a decimal"""
        multiplier = Decimal(str(multiplier)) if not isinstance(multiplier, Decimal) else multiplier
        if multiplier < Decimal('0'):
            raise ValueError("Multiplier cannot be negative")
        return Money(self.amount * multiplier, self.currency)

    def format(self) -> str:
        """Format money for display"""
        return f"{self.currency} {self.amount:,.2f}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for serialization"""
        return {
            "amount": str(self.amount),
            "currency": self.currency
        }


@dataclass(frozen=True)
class GeoPoint:
    """Value Object: WGS84 coordinates of a parking slot"""
    latitude: float
    longitude: float

    def __post_init__(self):
        if not -90 <= self.latitude <= 90:
            raise ValueError(f"Latitude must be between -90 and 90: {self.latitude}")

        if not -180 <= self.longitude <= 180:
            raise ValueError(f"Longitude must be between -180 and 180: {self.longitude}")

    def as_tuple(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


@dataclass(frozen=True)
class TimeRange:
    """
    Value Object: Time range with start and end times
    Provides duration calculation and validation
    """
    start_time: datetime
    end_time: datetime

    def __post_init__(self):
        """Validate time range"""
        if self.end_time <= self.start_time:
            raise InvalidDurationError(
                f"End time {self.end_time} must be after start time {self.start_time}"
            )

    @property
    def duration(self) -> timedelta:
        """Calculate duration of time range"""
        return self.end_time - self.start_time

    @property
    def duration_hours(self) -> Decimal:
        """Exact duration in hours, computed from whole microseconds"""
        return Decimal(self.duration // timedelta(microseconds=1)) / Decimal(ONE_HOUR // timedelta(microseconds=1))

    def overlaps(self, other: 'TimeRange') -> bool:
        """Check if this time range overlaps with another"""
        return (self.start_time < other.end_time and
                self.end_time > other.start_time)

    def __str__(self) -> str:
        start_str = self.start_time.strftime("%Y-%m-%d %H:%M")
        end_str = self.end_time.strftime("%Y-%m-%d %H:%M")
        return f"{start_str} to {end_str} ({float(self.duration_hours):.1f} hours)"


# ============================================================================
# ENUMS FOR DOMAIN TYPES
# ============================================================================

class SlotStatus(str, Enum):
    """Lifecycle status of a parking slot"""
    AVAILABLE = "Available"
    RESERVED = "Reserved"
    OCCUPIED = "Occupied"


class VehicleType(str, Enum):
    """Vehicle types a slot can be dedicated to"""
    CAR = "Car"
    BIKE = "Bike"
    SUV = "SUV"
    MINIVAN = "Minivan"
    TRUCK = "Truck"


class ReservationStatus(str, Enum):
    """
    Reservation lifecycle

    Active -> Completed on end, Active -> Active on extension.
    Cancelled is representable but nothing transitions into it yet.
    """
    ACTIVE = "Active"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class PaymentMethodType(str, Enum):
    """Payment instruments accepted at checkout"""
    CARD = "Card"
    BKASH = "bKash"
    NAGAD = "Nagad"
    ROCKET = "Rocket"

    @property
    def is_mobile_wallet(self) -> bool:
        return self is not PaymentMethodType.CARD


class UserRole(str, Enum):
    """Roles that gate what a user may see and do"""
    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def is_staff(self) -> bool:
        """Admins and super-admins manage slots and users"""
        return self in (UserRole.ADMIN, UserRole.SUPER_ADMIN)


# ============================================================================
# DOMAIN ENTITIES
# ============================================================================

class Entity:
    """
    Base class for all domain entities
    Provides common functionality for entities with identity
    """

    def __init__(self, id: Optional[str] = None):
        self._id = id or new_id()

    @property
    def id(self) -> str:
        """Get entity ID"""
        return self._id

    def __eq__(self, other: object) -> bool:
        """Entities are equal if they have the same ID and type"""
        if not isinstance(other, Entity):
            return False
        return self.id == other.id and type(self) == type(other)

    def __hash__(self) -> int:
        return hash((self.id, type(self).__name__))

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id})"


class ParkingSlot(Entity):
    """
    Entity: A bookable parking space

    Status is changed by the reservation lifecycle (Reserved on booking,
    Available on end) or by admin edits.
    """

    def __init__(
        self,
        name: str,
        location: GeoPoint,
        address: str,
        price_per_hour: Money,
        vehicle_type: VehicleType = VehicleType.CAR,
        status: SlotStatus = SlotStatus.AVAILABLE,
        features: Optional[Iterable[str]] = None,
        operating_hours: str = "24/7",
        rating: Optional[float] = None,
        review_count: Optional[int] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.name = name
        self.location = location
        self.address = address
        self.price_per_hour = price_per_hour
        self.vehicle_type = VehicleType(vehicle_type)
        self.status = SlotStatus(status)
        self.features: Set[str] = set(features or [])
        self.operating_hours = operating_hours
        self.rating = rating
        self.review_count = review_count

        self._validate()

    def _validate(self) -> None:
        """Validate slot attributes"""
        if not self.name or not self.name.strip():
            raise ValueError("Slot name is required")

        if self.rating is not None and not 0 <= self.rating <= 5:
            raise ValueError(f"Rating must be between 0 and 5: {self.rating}")

        if self.review_count is not None and self.review_count < 0:
            raise ValueError("Review count cannot be negative")

    @property
    def is_available(self) -> bool:
        return self.status == SlotStatus.AVAILABLE

    def reserve(self) -> None:
        """
        Mark the slot as reserved
        Raises: SlotUnavailableError if the slot is not available
        """
        if not self.is_available:
            raise SlotUnavailableError(f"Slot {self.id} is {self.status.value}")
        self.status = SlotStatus.RESERVED

    def release(self) -> None:
        """Make the slot available again, whatever its current status"""
        self.status = SlotStatus.AVAILABLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "latitude": self.location.latitude,
            "longitude": self.location.longitude,
            "address": self.address,
            "status": self.status.value,
            "vehicle_type": self.vehicle_type.value,
            "price_per_hour": self.price_per_hour.to_dict(),
            "features": sorted(self.features),
            "operating_hours": self.operating_hours,
            "rating": self.rating,
            "review_count": self.review_count
        }

    def __str__(self) -> str:
        return f"{self.name} ({self.vehicle_type.value}, {self.status.value})"


class Reservation(Entity):
    """
    Entity: A user's hold on a slot for a time window

    total_cost starts as the booking price and grows with each extension.
    Reservations are never deleted, only transitioned.
    """

    def __init__(
        self,
        user_id: str,
        slot_id: str,
        start_time: datetime,
        end_time: datetime,
        total_cost: Money,
        status: ReservationStatus = ReservationStatus.ACTIVE,
        payment_method: Optional[str] = None,
        created_at: Optional[datetime] = None,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.user_id = user_id
        self.slot_id = slot_id
        self.start_time = start_time
        self.end_time = end_time
        self.total_cost = total_cost
        self.status = ReservationStatus(status)
        self.payment_method = payment_method
        self.created_at = created_at or datetime.now()

        # A completed reservation ended before its start collapses to zero length
        if self.end_time < self.start_time or (self.is_active and self.end_time == self.start_time):
            raise InvalidDurationError(
                f"Reservation must end after it starts ({self.start_time} -> {self.end_time})"
            )

    @property
    def is_active(self) -> bool:
        return self.status == ReservationStatus.ACTIVE

    @property
    def time_range(self) -> TimeRange:
        return TimeRange(self.start_time, self.end_time)

    def is_current(self, now: datetime) -> bool:
        """Active and not yet past its end time"""
        return self.is_active and self.end_time > now

    def _require_active(self, operation: str) -> None:
        if not self.is_active:
            raise InvalidReservationStateError(
                f"Cannot {operation} reservation {self.id} in status {self.status.value}"
            )

    def extend(self, additional: timedelta, added_cost: Money,
               payment_method: Optional[str] = None) -> None:
        """Push the end time out and add the cost of the extra time"""
        self._require_active("extend")
        if additional <= timedelta(0):
            raise InvalidDurationError("Extension must be longer than zero")

        self.end_time = self.end_time + additional
        self.total_cost = self.total_cost + added_cost
        if payment_method:
            self.payment_method = payment_method

    def complete(self, ended_at: datetime) -> None:
        """
        End the reservation now
        An early end truncates end_time; total_cost is left unchanged.
        """
        self._require_active("end")
        self.status = ReservationStatus.COMPLETED
        self.end_time = ended_at

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "slot_id": self.slot_id,
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "total_cost": self.total_cost.to_dict(),
            "status": self.status.value,
            "payment_method": self.payment_method,
            "created_at": self.created_at.isoformat()
        }


class User(Entity):
    """Entity: A person using Park-Eazy"""

    def __init__(
        self,
        name: str,
        email: str,
        role: UserRole = UserRole.USER,
        id: Optional[str] = None
    ):
        super().__init__(id)
        self.name = name
        self.email = email.strip()
        self.role = UserRole(role)

        if not self.name or not self.name.strip():
            raise ValueError("User name is required")
        if "@" not in self.email:
            raise ValueError(f"Invalid email address: {self.email}")

    def __str__(self) -> str:
        return f"{self.name} <{self.email}> ({self.role.value})"


# ============================================================================
# SAVED PAYMENT METHODS
# ============================================================================

@dataclass(frozen=True)
class SavedCard:
    """A card kept in the vault; only the last four digits are stored"""
    user_id: str
    cardholder_name: str
    last4: str
    expiry_date: str
    id: str = field(default_factory=new_id)
    type: PaymentMethodType = PaymentMethodType.CARD

    @property
    def display_name(self) -> str:
        return f"Card ending in {self.last4}"


@dataclass(frozen=True)
class SavedMobileWallet:
    """A bKash, Nagad or Rocket account kept in the vault"""
    user_id: str
    type: PaymentMethodType
    account_number: str
    id: str = field(default_factory=new_id)

    def __post_init__(self):
        object.__setattr__(self, 'type', PaymentMethodType(self.type))
        if not self.type.is_mobile_wallet:
            raise ValueError(f"{self.type.value} is not a mobile wallet")

    @property
    def display_name(self) -> str:
        return f"{self.type.value} ({self.account_number})"


SavedPaymentMethod = Union[SavedCard, SavedMobileWallet]


def method_fingerprint(method: SavedPaymentMethod) -> Tuple[str, ...]:
    """
    Identity of a payment instrument, ignoring its id

    Cards compare on (type, last4, casefolded cardholder name); wallets on
    (type, account_number).
    """
    if isinstance(method, SavedCard):
        return (method.type.value, method.last4, method.cardholder_name.strip().casefold())
    if isinstance(method, SavedMobileWallet):
        return (method.type.value, method.account_number)
    raise TypeError(f"Unknown payment method variant: {type(method).__name__}")


# ============================================================================
# AUDIT LOG
# ============================================================================

@dataclass(frozen=True)
class SystemLog:
    """Append-only record of a privileged or financial action"""
    actor_id: str
    actor_role: UserRole
    action_type: str
    details: str
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    id: str = field(default_factory=new_id)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "actor_id": self.actor_id,
            "actor_role": UserRole(self.actor_role).value,
            "action_type": self.action_type,
            "details": self.details,
            "metadata": dict(self.metadata)
        }
