"""
Typed results returned by the ticketing services.
Business-rule failures never escape a service as exceptions; they are
folded into a ServiceResult so callers can render them precisely.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, Optional, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError

from ticketing.core.errors import ErrorKind, TicketingError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ServiceError:
    """Structured rejection: kind plus everything needed to render it."""

    kind: ErrorKind
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            "error_code": self.kind.value,
            "error_message": self.message,
            "details": self.details,
        }


@dataclass
class ServiceResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[ServiceError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "ServiceResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, kind: ErrorKind, message: str, details: Optional[Dict[str, Any]] = None) -> "ServiceResult[T]":
        return cls(error=ServiceError(kind=kind, message=message, details=details or {}))

    @classmethod
    def from_exception(cls, exc: Exception, operation: str) -> "ServiceResult[T]":
        """
        Fold an exception raised inside a service into a failure result.

        Domain errors keep their kind. Storage and lock failures become
        UNAVAILABLE. Anything else is a programming error and is re-raised.
        """
        if isinstance(exc, TicketingError):
            logger.warning(f"{operation} rejected: {exc}")
            return cls.failure(exc.kind, exc.message, exc.details)
        if isinstance(exc, (OperationalError, DBAPIError, PoolTimeoutError)):
            logger.error(f"{operation} failed, storage unavailable: {exc}")
            return cls.failure(ErrorKind.UNAVAILABLE, "Ticket storage is temporarily unavailable")
        raise exc
