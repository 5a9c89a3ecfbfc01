# File: parkeazy/domain/pricing.py
"""
Pricing Calculator

Cost of a reservation window is the slot's hourly price times the exact
number of hours booked. Fractional hours are charged proportionally and the
result is never rounded here.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timedelta
from decimal import Decimal
import logging

from .exceptions import InvalidDurationError
from .models import Money, ParkingSlot, TimeRange


MICROSECONDS_PER_HOUR = Decimal(3_600_000_000)


def duration_hours(start_time: datetime, end_time: datetime) -> Decimal:
    """Exact hours between two instants; raises if the window is empty"""
    return TimeRange(start_time, end_time).duration_hours


def hours_to_timedelta(hours: Decimal) -> timedelta:
    hours = Decimal(str(hours))
    return timedelta(microseconds=int(hours * MICROSECONDS_PER_HOUR))


def cost(price_per_hour: Money, start_time: datetime, end_time: datetime) -> Money:
    """
    Price of occupying a slot from start_time to end_time

    Raises: InvalidDurationError if end_time is not after start_time
    """
    return price_per_hour * duration_hours(start_time, end_time)


def extension_cost(price_per_hour: Money, hours) -> Money:
    """
    Price of adding hours to an existing reservation

    Raises: InvalidDurationError if hours is not positive
    """
    hours = Decimal(str(hours))
    if hours <= 0:
        raise InvalidDurationError(f"Extension hours must be positive, got {hours}")
    return price_per_hour * hours


# ============================================================================
# PRICING STRATEGIES
# ============================================================================

class PricingStrategy(ABC):
    """
    Abstract base class for pricing strategies
    Defines the interface for fee calculation algorithms
    """

    def __init__(self):
        self.logger = logging.getLogger(self.__class__.__name__)

    @abstractmethod
    def reservation_cost(self, slot: ParkingSlot, start_time: datetime, end_time: datetime) -> Money:
        pass

    @abstractmethod
    def extension_cost(self, slot: ParkingSlot, hours) -> Money:
        pass


class HourlyPricingStrategy(PricingStrategy):
    """Flat hourly rate taken from the slot at the time of the call"""

    def reservation_cost(self, slot: ParkingSlot, start_time: datetime, end_time: datetime) -> Money:
        self.logger.debug(f"Pricing slot {slot.id} from {start_time} to {end_time}")
        return cost(slot.price_per_hour, start_time, end_time)

    def extension_cost(self, slot: ParkingSlot, hours) -> Money:
        self.logger.debug(f"Pricing {hours}h extension on slot {slot.id}")
        return extension_cost(slot.price_per_hour, hours)
