"""
API dependencies for Ticketing Service.
Handles authentication, role checks and the mapping of service errors to HTTP.
"""

from dataclasses import dataclass
from typing import Optional, Dict, Any
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
import jwt
import logging

from ticketing.core.config import config
from ticketing.core.errors import ErrorKind
from ticketing.core.results import ServiceError, ServiceResult
from ticketing.db.database import db_manager
from ticketing.db.redis_client import redis_manager

logger = logging.getLogger(__name__)

# Security scheme
security = HTTPBearer()

ROLE_ATTENDEE = "attendee"
ROLE_ORGANIZER = "organizer"
ROLE_ADMIN = "admin"

ERROR_STATUS_CODES = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.FORBIDDEN: status.HTTP_403_FORBIDDEN,
    ErrorKind.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorKind.INVALID_STATE: status.HTTP_409_CONFLICT,
    ErrorKind.CAPACITY_EXCEEDED: status.HTTP_409_CONFLICT,
    ErrorKind.DUPLICATE_HOLDING: status.HTTP_409_CONFLICT,
    ErrorKind.UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


class AuthenticationError(Exception):
    """Raised when a token is well-formed but lacks required claims."""
    pass


class ServiceErrorResponse(Exception):
    """Carries a ServiceError out of a route to the envelope handler in main."""

    def __init__(self, error: ServiceError):
        super().__init__(error.message)
        self.error = error
        self.status_code = ERROR_STATUS_CODES.get(error.kind, status.HTTP_500_INTERNAL_SERVER_ERROR)


def unwrap(result: ServiceResult):
    """Return the value of a successful result or raise its error for rendering."""
    if not result.ok:
        raise ServiceErrorResponse(result.error)
    return result.value


@dataclass
class Principal:
    """Authenticated caller as asserted by the token."""

    user_id: int
    role: str
    email: Optional[str] = None
    name: Optional[str] = None

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @property
    def is_organizer(self) -> bool:
        return self.role in (ROLE_ORGANIZER, ROLE_ADMIN)


async def get_current_principal(credentials: HTTPAuthorizationCredentials = Depends(security)) -> Principal:
    """
    Extract and validate the caller from a JWT bearer token.

    Raises:
        HTTPException: If token is invalid or expired
    """
    try:
        jwt_secret = await config.get_jwt_secret()
        jwt_algorithm = await config.get_jwt_algorithm()

        payload = jwt.decode(
            credentials.credentials,
            jwt_secret,
            algorithms=[jwt_algorithm]
        )

        user_id = payload.get("user_id")
        if not user_id:
            raise AuthenticationError("Invalid token: missing user_id")

        return Principal(
            user_id=int(user_id),
            role=payload.get("role") or ROLE_ATTENDEE,
            email=payload.get("email"),
            name=payload.get("name"),
        )

    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except jwt.InvalidTokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    except AuthenticationError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )
    except (TypeError, ValueError) as e:
        logger.error(f"Authentication error: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication failed",
            headers={"WWW-Authenticate": "Bearer"},
        )


async def require_attendee(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Require attendee role; organizers and admins do not buy tickets."""
    if principal.role != ROLE_ATTENDEE:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Attendee access required"
        )
    return principal


async def require_organizer(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Require organizer (or admin) role for access."""
    if not principal.is_organizer:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Organizer access required"
        )
    return principal


async def require_admin(principal: Principal = Depends(get_current_principal)) -> Principal:
    """Require admin role for access."""
    if not principal.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required"
        )
    return principal


async def check_service_health() -> Dict[str, Any]:
    """
    Check the health of all service dependencies.

    Returns:
        Dictionary with health status of all components
    """
    health_status = {
        "database": "unknown",
        "redis": "unknown",
        "overall": "unknown"
    }

    health_status["database"] = "healthy" if db_manager.health_check() else "unhealthy"

    redis_healthy = await redis_manager.health_check()
    health_status["redis"] = "healthy" if redis_healthy else "unhealthy"

    if health_status["database"] == "healthy" and health_status["redis"] == "healthy":
        health_status["overall"] = "healthy"
    else:
        health_status["overall"] = "unhealthy"

    return health_status
