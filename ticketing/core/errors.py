"""Domain error kinds for the ticketing core."""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorKind(str, Enum):
    """Closed set of failure kinds returned across the service boundary."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    CAPACITY_EXCEEDED = "CAPACITY_EXCEEDED"
    DUPLICATE_HOLDING = "DUPLICATE_HOLDING"
    FORBIDDEN = "FORBIDDEN"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    UNAVAILABLE = "UNAVAILABLE"


class TicketingError(Exception):
    """Base domain error with kind, user-safe message and structured details."""

    kind: ErrorKind = ErrorKind.UNAVAILABLE

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.message}"


class NotFoundError(TicketingError):
    kind = ErrorKind.NOT_FOUND


class EventNotFoundError(NotFoundError):
    def __init__(self, event_id: int) -> None:
        super().__init__("Event not found", {"event_id": event_id})


class TicketNotFoundError(NotFoundError):
    def __init__(self, ticket_id: Optional[str] = None, message: str = "Ticket not found") -> None:
        super().__init__(message, {"ticket_id": ticket_id} if ticket_id else {})


class InvalidStateError(TicketingError):
    kind = ErrorKind.INVALID_STATE


class CapacityExceededError(TicketingError):
    """Raised when a reservation would push tickets_sold past capacity."""

    kind = ErrorKind.CAPACITY_EXCEEDED

    def __init__(self, available: int, requested: int) -> None:
        super().__init__(
            f"Only {available} tickets available",
            {"available": available, "requested": requested},
        )
        self.available = available
        self.requested = requested


class DuplicateHoldingError(TicketingError):
    kind = ErrorKind.DUPLICATE_HOLDING

    def __init__(self, event_id: int, user_id: int) -> None:
        super().__init__(
            "You already have a ticket for this event",
            {"event_id": event_id, "user_id": user_id},
        )


class ForbiddenError(TicketingError):
    kind = ErrorKind.FORBIDDEN


class ValidationError(TicketingError):
    kind = ErrorKind.VALIDATION_ERROR


class UnavailableError(TicketingError):
    kind = ErrorKind.UNAVAILABLE


class LockUnavailableError(UnavailableError):
    """Raised when a distributed lock cannot be acquired in time."""

    def __init__(self, lock_key: str) -> None:
        super().__init__("Service is busy, please retry", {"lock": lock_key})
