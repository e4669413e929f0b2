"""
Test configuration and fixtures for Ticketing Service.
Runs every service against an in-memory SQLite database with Redis and
Celery replaced by mocks.
"""

import os

# Configuration is read from the environment in tests
os.environ.pop("ZERO_TOKEN", None)
os.environ.setdefault("JWT_SECRET", "test-jwt-secret")

import jwt
import pytest
from datetime import date, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from fastapi.testclient import TestClient

from ticketing.db.database import db_manager
from ticketing.db.redis_client import redis_manager
from ticketing.main import app
from ticketing.models import Base, Event, EventCategory, EventStatus
from ticketing.services.cancellation_service import cancellation_service
from ticketing.services.checkin_service import checkin_service
from ticketing.services.credential_encoder import credential_encoder
from ticketing.services.inventory_service import inventory_service
from ticketing.services.issuance_service import issuance_service
from ticketing.services.notification_service import notification_service

ORGANIZER_ID = 500
OTHER_ORGANIZER_ID = 501
ADMIN_ID = 900

engine = create_engine(
    "sqlite://",
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

db_manager.bind(engine)


@pytest.fixture(autouse=True)
def database():
    """Fresh schema for every test."""
    Base.metadata.create_all(bind=engine)
    yield db_manager
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def mock_redis_manager(monkeypatch):
    """Keep cache, pub/sub and health checks off the network."""
    monkeypatch.setattr(redis_manager, "get_json", AsyncMock(return_value=None))
    monkeypatch.setattr(redis_manager, "set_json", AsyncMock(return_value=True))
    monkeypatch.setattr(redis_manager, "delete", AsyncMock(return_value=True))
    monkeypatch.setattr(redis_manager, "publish", AsyncMock(return_value=1))
    monkeypatch.setattr(redis_manager, "health_check", AsyncMock(return_value=True))
    return redis_manager


@pytest.fixture(autouse=True)
def mock_celery_app(monkeypatch):
    """Notification dispatch goes to a mock Celery app."""
    celery_app = MagicMock()
    celery_app.send_task.return_value = MagicMock(id="task-123")
    monkeypatch.setattr(notification_service, "_celery_app", celery_app)
    monkeypatch.setattr(notification_service, "_initialized", True)
    monkeypatch.setattr(notification_service, "enabled", True)
    monkeypatch.setattr(notification_service, "queue", "email_notifications")
    return celery_app


@pytest.fixture(autouse=True)
def service_configs(monkeypatch):
    """Pin the settings the services would otherwise read from config."""
    consistency = {
        "lock_timeout_seconds": 5,
        "max_retry_attempts": 3,
        "enable_distributed_locks": False,
    }
    monkeypatch.setattr(credential_encoder, "_secret", "test-credential-secret")
    monkeypatch.setattr(credential_encoder, "random_bytes", 12)
    monkeypatch.setattr(issuance_service, "consistency_config", consistency)
    monkeypatch.setattr(issuance_service, "ticketing_config", {
        "credential_secret": "test-credential-secret",
        "credential_random_bytes": 12,
        "purchase_reference_prefix": "TXN",
    })
    monkeypatch.setattr(inventory_service, "cache_config", {"availability_ttl": 30})
    for service in (issuance_service, checkin_service, cancellation_service):
        monkeypatch.setattr(service, "event_publisher", None)
    return consistency


@pytest.fixture
def db_session():
    """Session for inspecting state written by the services."""
    session = db_manager.session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def make_event():
    """Factory that persists an event and returns it detached."""

    def _make_event(
        capacity: int = 100,
        status: EventStatus = EventStatus.PUBLISHED,
        organizer_id: int = ORGANIZER_ID,
        event_date: date = None,
        price: Decimal = Decimal("25.00"),
        allow_refunds: bool = False,
        tickets_sold: int = 0,
        title: str = "Summer Concert",
    ) -> Event:
        with db_manager.get_session() as session:
            event = Event(
                title=title,
                description="Open-air concert",
                event_date=event_date or date.today(),
                event_time="19:00",
                venue="Main Hall",
                category=EventCategory.CONCERT,
                capacity=capacity,
                tickets_sold=tickets_sold,
                price=price,
                status=status,
                organizer_id=organizer_id,
                organizer_name="Olive Organizer",
                allow_refunds=allow_refunds,
            )
            session.add(event)
            session.flush()
            session.refresh(event)
        return event

    return _make_event


@pytest.fixture
def tomorrow() -> date:
    return date.today() + timedelta(days=1)


@pytest.fixture
def client():
    """API client; the lifespan is skipped because the database is bound above."""
    return TestClient(app)


@pytest.fixture
def auth_headers():
    """Factory for Bearer headers carrying a signed principal."""
    def _auth_headers(user_id: int, role: str = "attendee", email: str = None, name: str = None) -> dict:
        token = jwt.encode(
            {
                "user_id": user_id,
                "role": role,
                "email": email or f"user{user_id}@example.com",
                "name": name or f"User {user_id}",
            },
            os.environ["JWT_SECRET"],
            algorithm="HS256",
        )
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers
