"""
Main FastAPI application for Ticketing Service.
Handles application startup, middleware, and routing.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from fastapi import FastAPI, Request, HTTPException
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import time

from ticketing.core.config import config
from ticketing.core.errors import ErrorKind
from ticketing.db.database import db_manager
from ticketing.db.redis_client import redis_manager
from ticketing.api.dependencies import ServiceErrorResponse
from ticketing.api.v1.router import router as api_router
from ticketing.services.credential_encoder import credential_encoder

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("Starting Ticketing Service...")

    try:
        await db_manager.initialize()
        logger.info("Database manager initialized")

        try:
            db_manager.create_tables()
        except Exception as e:
            logger.warning(f"Database tables may already exist: {e}")

        await credential_encoder.configure()

        try:
            await redis_manager.initialize()
            logger.info("Redis manager initialized")
        except Exception as e:
            # Cache, publish and locks degrade to no-ops without Redis
            logger.warning(f"Redis unavailable at startup: {e}")

        logger.info("Ticketing Service started successfully")

    except Exception as e:
        logger.error(f"Failed to start Ticketing Service: {e}")
        raise

    yield

    logger.info("Shutting down Ticketing Service...")

    try:
        db_manager.close()
        await redis_manager.close()
        await config.close()
        logger.info("Ticketing Service shut down successfully")

    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


# Create FastAPI application
app = FastAPI(
    title="Ticketing Service",
    description="Ticket issuance, inventory and check-in service for Evently",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:8080"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Request timing middleware
@app.middleware("http")
async def add_process_time_header(request: Request, call_next):
    """Add request processing time to response headers."""
    start_time = time.time()
    response = await call_next(request)
    response.headers["X-Process-Time"] = str(time.time() - start_time)
    return response


def _envelope(error_code: str, error_message: str, details=None) -> dict:
    return {
        "error_code": error_code,
        "error_message": error_message,
        "details": details or {},
        "timestamp": datetime.now().isoformat()
    }


@app.exception_handler(ServiceErrorResponse)
async def service_error_handler(request: Request, exc: ServiceErrorResponse):
    """Render a rejected service result."""
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(_envelope(exc.error.kind.value, exc.error.message, exc.error.details))
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Request body and parameter errors share the VALIDATION_ERROR envelope."""
    return JSONResponse(
        status_code=400,
        content=jsonable_encoder(_envelope(
            ErrorKind.VALIDATION_ERROR.value,
            "Validation failed",
            {"validation_errors": exc.errors()}
        ))
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """HTTP exception handler for FastAPI HTTP exceptions."""
    logger.warning(f"HTTP exception: {exc.status_code} - {exc.detail}")

    return JSONResponse(
        status_code=exc.status_code,
        content=_envelope("HTTP_ERROR", str(exc.detail), {"status_code": exc.status_code}),
        headers=getattr(exc, "headers", None)
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)

    return JSONResponse(
        status_code=500,
        content=_envelope("INTERNAL_SERVER_ERROR", "An internal server error occurred")
    )


app.include_router(api_router)


@app.get("/")
async def root():
    """Root endpoint with service information."""
    return {
        "service": "Ticketing Service",
        "version": "1.0.0",
        "status": "running",
        "endpoints": {
            "api": "/api/v1",
            "health": "/api/v1/health",
            "docs": "/docs"
        }
    }


@app.get("/health")
async def simple_health_check():
    """Simple health check endpoint."""
    return {"status": "healthy", "service": "ticketing"}
