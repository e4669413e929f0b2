"""
Event model for Ticketing Service.
Holds the sellable inventory of an event: capacity and the sold counter.
"""

from sqlalchemy import (
    Column, Integer, String, Boolean, Date, DateTime, Enum, Numeric, Text,
    CheckConstraint, Index
)
from sqlalchemy.sql import func
from enum import Enum as PyEnum

from ticketing.models.base import Base


class EventStatus(PyEnum):
    """Event status enumeration."""
    DRAFT = "draft"
    PUBLISHED = "published"
    CANCELLED = "cancelled"


class EventCategory(PyEnum):
    CONFERENCE = "conference"
    WORKSHOP = "workshop"
    CONCERT = "concert"
    SPORTS = "sports"
    NETWORKING = "networking"
    OTHER = "other"


# Fields frozen once any ticket has been sold
IMMUTABLE_AFTER_SALE = ("event_date", "event_time", "venue", "capacity")


class Event(Base):
    """
    Event with capacity tracking.
    tickets_sold is written only by InventoryService.
    """

    __tablename__ = "events"

    id = Column(Integer, primary_key=True, index=True)

    title = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    event_date = Column(Date, nullable=False, index=True)
    event_time = Column(String(5), nullable=False)  # HH:MM
    venue = Column(String(255), nullable=False)
    category = Column(Enum(EventCategory), default=EventCategory.OTHER, nullable=False)

    # Inventory
    capacity = Column(Integer, nullable=False)
    tickets_sold = Column(Integer, default=0, nullable=False)
    price = Column(Numeric(10, 2), nullable=False, default=0)

    status = Column(Enum(EventStatus), default=EventStatus.DRAFT, nullable=False, index=True)

    organizer_id = Column(Integer, nullable=False, index=True)  # References auth service
    organizer_name = Column(String(100), nullable=True)
    allow_refunds = Column(Boolean, default=False, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint('capacity > 0', name='check_event_capacity_positive'),
        CheckConstraint('tickets_sold >= 0', name='check_tickets_sold_non_negative'),
        CheckConstraint('tickets_sold <= capacity', name='check_tickets_sold_within_capacity'),
        CheckConstraint('price >= 0', name='check_event_price_non_negative'),
        Index('idx_event_status_date', 'status', 'event_date'),
    )

    def __repr__(self):
        return f"<Event(id={self.id}, title='{self.title}', sold={self.tickets_sold}/{self.capacity})>"

    @property
    def available_tickets(self) -> int:
        return self.capacity - (self.tickets_sold or 0)

    @property
    def is_published(self) -> bool:
        return self.status == EventStatus.PUBLISHED

    def to_dict(self) -> dict:
        """Convert event to dictionary representation."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "event_date": self.event_date.isoformat() if self.event_date else None,
            "event_time": self.event_time,
            "venue": self.venue,
            "category": self.category.value if self.category else None,
            "capacity": self.capacity,
            "tickets_sold": self.tickets_sold,
            "available_tickets": self.available_tickets,
            "price": float(self.price) if self.price is not None else 0.0,
            "status": self.status.value if self.status else None,
            "organizer_id": self.organizer_id,
            "organizer_name": self.organizer_name,
            "allow_refunds": self.allow_refunds,
        }
