"""
Domain error taxonomy.

Services raise these; the API layer maps each code to an HTTP status
(see booking_engine.api.errors). None of them is fatal to the process.
"""

from enum import Enum


class ErrorCode(Enum):
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    INVALID_HEADCOUNT = "INVALID_HEADCOUNT"
    ILLEGAL_TRANSITION = "ILLEGAL_TRANSITION"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"
    NOT_DIRECT_PAYMENT = "NOT_DIRECT_PAYMENT"
    ALREADY_PAID = "ALREADY_PAID"
    STALE_INTENT_TOKEN = "STALE_INTENT_TOKEN"
    PAYMENT_NOT_ALLOWED = "PAYMENT_NOT_ALLOWED"
    GATEWAY_ERROR = "GATEWAY_ERROR"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    TOUR_NOT_FOUND = "TOUR_NOT_FOUND"
    INVALID_START_DATE = "INVALID_START_DATE"
    INVALID_TRANSPORT = "INVALID_TRANSPORT"
    INVALID_CONTACT = "INVALID_CONTACT"
    PERMISSION_DENIED = "PERMISSION_DENIED"
    REASON_REQUIRED = "REASON_REQUIRED"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code: ErrorCode = ErrorCode.ILLEGAL_TRANSITION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class CapacityExceeded(DomainError):
    code = ErrorCode.CAPACITY_EXCEEDED

    def __init__(self, requested: int, remaining: int) -> None:
        super().__init__(f"Not enough seats. Requested: {requested}, Remaining: {remaining}")
        self.requested = requested
        self.remaining = remaining


class InvalidHeadcount(DomainError):
    code = ErrorCode.INVALID_HEADCOUNT

    def __init__(self, headcount: int) -> None:
        super().__init__(f"Headcount must be at least 1, got {headcount}")
        self.headcount = headcount


class IllegalTransition(DomainError):
    code = ErrorCode.ILLEGAL_TRANSITION

    def __init__(self, current, event) -> None:
        super().__init__(f"Cannot apply {event.value} to a booking in status {current.value}")
        self.current = current
        self.event = event


class ConcurrentModification(DomainError):
    """Transient: the caller should retry the whole operation."""

    code = ErrorCode.CONCURRENT_MODIFICATION

    def __init__(self, resource: str) -> None:
        super().__init__(f"{resource} was modified concurrently, please retry")
        self.resource = resource


class NotDirectPayment(DomainError):
    code = ErrorCode.NOT_DIRECT_PAYMENT

    def __init__(self, booking_id: int) -> None:
        super().__init__(f"Booking {booking_id} is not paid directly")


class AlreadyPaid(DomainError):
    code = ErrorCode.ALREADY_PAID

    def __init__(self, booking_id: int) -> None:
        super().__init__(f"Booking {booking_id} is already paid")


class StaleIntentToken(DomainError):
    code = ErrorCode.STALE_INTENT_TOKEN

    def __init__(self, token: str) -> None:
        super().__init__("Payment intent is no longer current for its booking")
        self.token = token


class PaymentNotAllowed(DomainError):
    code = ErrorCode.PAYMENT_NOT_ALLOWED


class GatewayError(DomainError):
    """External provider failure; retryable by initiating a new intent."""

    code = ErrorCode.GATEWAY_ERROR


class BookingNotFound(DomainError):
    code = ErrorCode.BOOKING_NOT_FOUND

    def __init__(self, booking_id: int) -> None:
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class TourNotFound(DomainError):
    code = ErrorCode.TOUR_NOT_FOUND

    def __init__(self, tour_id: int) -> None:
        super().__init__(f"Tour {tour_id} not found")
        self.tour_id = tour_id


class InvalidStartDate(DomainError):
    code = ErrorCode.INVALID_START_DATE


class InvalidTransport(DomainError):
    code = ErrorCode.INVALID_TRANSPORT


class InvalidContact(DomainError):
    code = ErrorCode.INVALID_CONTACT


class PermissionDenied(DomainError):
    code = ErrorCode.PERMISSION_DENIED


class ReasonRequired(DomainError):
    code = ErrorCode.REASON_REQUIRED

    def __init__(self, event) -> None:
        super().__init__(f"A non-empty reason is required to {event.value.lower()}")
        self.event = event
