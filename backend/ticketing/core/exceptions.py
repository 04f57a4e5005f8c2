"""Error taxonomy for the booking transaction.

Every error carries a stable code and a user-safe message. The HTTP layer
maps codes to status classes; nothing below the API layer knows about HTTP.
"""

from enum import Enum
from typing import Any, Optional


class ErrorCode(str, Enum):
    INVALID_INPUT = "INVALID_INPUT"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    BOOKING_NOT_FOUND = "BOOKING_NOT_FOUND"
    INSUFFICIENT_CAPACITY = "INSUFFICIENT_CAPACITY"
    CONFLICT = "CONFLICT"
    TIMEOUT = "TIMEOUT"


class BookingError(Exception):
    """Base error with code and user-safe message."""

    code: ErrorCode

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def details(self) -> dict[str, Any]:
        """Extra fields for the error response body."""
        return {}

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InvalidInputError(BookingError):
    """Caller-supplied data violates a precondition. Never retried."""

    code = ErrorCode.INVALID_INPUT

    def __init__(self, message: str, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field

    def details(self) -> dict[str, Any]:
        return {"field": self.field} if self.field else {}


class EventNotFoundError(BookingError):
    code = ErrorCode.EVENT_NOT_FOUND

    def __init__(self, event_id: int) -> None:
        super().__init__(f"Event {event_id} not found")
        self.event_id = event_id


class BookingNotFoundError(BookingError):
    code = ErrorCode.BOOKING_NOT_FOUND

    def __init__(self, booking_id: int) -> None:
        super().__init__(f"Booking {booking_id} not found")
        self.booking_id = booking_id


class InsufficientCapacityError(BookingError):
    """Requested quantity exceeds the seats available at decision time."""

    code = ErrorCode.INSUFFICIENT_CAPACITY

    def __init__(self, event_id: int, requested: int, available: int) -> None:
        super().__init__(
            f"Not enough seats available. Requested: {requested}, Available: {available}"
        )
        self.event_id = event_id
        self.requested = requested
        self.available = available

    def details(self) -> dict[str, Any]:
        return {"requested": self.requested, "available": self.available}


class BookingConflictError(BookingError):
    """Concurrent writers kept winning the race for the same event."""

    code = ErrorCode.CONFLICT

    def __init__(self, event_id: int, attempts: int) -> None:
        super().__init__("Booking failed due to high demand. Please try again.")
        self.event_id = event_id
        self.attempts = attempts


class BookingTimeoutError(BookingError):
    code = ErrorCode.TIMEOUT

    def __init__(self, event_id: int, timeout: float) -> None:
        super().__init__("Booking could not be completed in time. Please try again.")
        self.event_id = event_id
        self.timeout = timeout
