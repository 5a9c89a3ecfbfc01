# File: parkeazy/domain/exceptions.py
"""
Domain Exceptions for Park-Eazy

Every error raised by the reservation core derives from ParkEazyError and
carries a user_message that the presentation layer can show as-is.
"""

from typing import Dict, Optional


class ParkEazyError(Exception):
    """Base exception for Park-Eazy errors"""

    default_message = "Something went wrong."

    def __init__(self, message: Optional[str] = None, user_message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.user_message = user_message or self.default_message


# ============================================================================
# VALIDATION ERRORS
# ============================================================================

class InvalidDurationError(ParkEazyError, ValueError):
    """Raised when a reservation or extension has a non-positive duration"""
    default_message = "Duration must be greater than zero."


class ValidationError(ParkEazyError, ValueError):
    """
    Raised when payment input fails validation

    Carries a field -> message mapping so every invalid field can be
    reported at once.
    """
    default_message = "Please correct the highlighted fields."

    def __init__(self, errors: Dict[str, str], message: Optional[str] = None):
        self.errors = dict(errors)
        detail = message or "; ".join(f"{field}: {text}" for field, text in self.errors.items())
        super().__init__(detail)


# ============================================================================
# AUTHORIZATION ERRORS
# ============================================================================

class UserNotAuthenticatedError(ParkEazyError):
    """Raised when an operation needs a logged-in user and there is none"""
    default_message = "User not logged in"


class PermissionDeniedError(ParkEazyError):
    """Raised when the current user's role does not allow the operation"""
    default_message = "You do not have permission to perform this action."


# ============================================================================
# LOOKUP ERRORS
# ============================================================================

class SlotNotFoundError(ParkEazyError, LookupError):
    """Raised when a parking slot id is unknown"""
    default_message = "Parking slot not found."


class ReservationNotFoundError(ParkEazyError, LookupError):
    """Raised when a reservation id is unknown"""
    default_message = "Reservation not found."


class PaymentMethodNotFoundError(ParkEazyError, LookupError):
    """Raised when a saved payment method id is unknown for the user"""
    default_message = "Saved payment method not found."


class UserNotFoundError(ParkEazyError, LookupError):
    """Raised when a user cannot be found"""
    default_message = "User not found."


# ============================================================================
# STATE ERRORS
# ============================================================================

class DuplicateMethodError(ParkEazyError):
    """Raised when an equivalent payment method is already saved"""
    default_message = "This payment method is already in use."


class SlotUnavailableError(ParkEazyError):
    """Raised when a slot cannot be reserved because it is not available"""
    default_message = "This slot is no longer available."


class InvalidReservationStateError(ParkEazyError):
    """Raised when a reservation is not in a state that allows the operation"""
    default_message = "This reservation is no longer active."


class PaymentSettlementError(ParkEazyError):
    """Raised when the payment gateway cannot settle or refund a charge"""
    default_message = "Payment could not be processed."


# ============================================================================
# INFRASTRUCTURE ERRORS
# ============================================================================

class BackingStoreTimeoutError(ParkEazyError, TimeoutError):
    """Raised when a read against the backing store exceeds its timeout"""
    default_message = "The server took too long to respond."
