"""
Main API router for Ticketing Service.
Combines all API endpoints and provides health checks.
"""

from fastapi import APIRouter
import logging

from ticketing.api.dependencies import check_service_health
from ticketing.schemas.ticket import HealthCheckResponse
from ticketing.api.v1.checkin import router as checkin_router
from ticketing.api.v1.events import router as events_router
from ticketing.api.v1.tickets import router as tickets_router

logger = logging.getLogger(__name__)

# Create main router
router = APIRouter(prefix="/api/v1")

router.include_router(tickets_router)
router.include_router(checkin_router)
router.include_router(events_router)


@router.get("/health", response_model=HealthCheckResponse)
async def health_check():
    """
    Health check endpoint for the ticketing service.

    Returns:
        Service health status
    """
    try:
        health_status = await check_service_health()

        return HealthCheckResponse(
            status="healthy" if health_status["overall"] == "healthy" else "unhealthy",
            version="1.0.0",
            database=health_status["database"],
            redis=health_status["redis"]
        )

    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return HealthCheckResponse(
            status="unhealthy",
            version="1.0.0",
            database="unknown",
            redis="unknown"
        )
