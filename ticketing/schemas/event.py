"""
Pydantic schemas for event operations.
"""

import re
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, Dict, Any
from enum import Enum
from pydantic import BaseModel, Field, field_validator

from ticketing.models import EventCategory, EventStatus

_TIME_PATTERN = re.compile(r"^([0-1]?[0-9]|2[0-3]):[0-5][0-9]$")

MAX_EVENT_CAPACITY = 50000


class EventCategoryEnum(str, Enum):
    CONFERENCE = "conference"
    WORKSHOP = "workshop"
    CONCERT = "concert"
    SPORTS = "sports"
    NETWORKING = "networking"
    OTHER = "other"


def _check_time(v: Optional[str]) -> Optional[str]:
    if v is not None and not _TIME_PATTERN.match(v):
        raise ValueError("Please enter valid time format (HH:MM)")
    return v


class EventCreate(BaseModel):
    """Schema for creating a new event."""
    title: str = Field(..., min_length=1, max_length=100, description="Event title")
    description: Optional[str] = Field(None, max_length=2000, description="Event description")
    event_date: date = Field(..., description="Day the event takes place")
    event_time: str = Field(..., description="Start time, HH:MM")
    venue: str = Field(..., min_length=1, max_length=255, description="Event venue")
    category: EventCategoryEnum = Field(EventCategoryEnum.OTHER, description="Event category")
    capacity: int = Field(..., ge=1, le=MAX_EVENT_CAPACITY, description="Number of seats")
    price: Decimal = Field(..., ge=0, description="Price per ticket")
    allow_refunds: bool = Field(False, description="Whether the organizer may refund tickets")

    @field_validator('event_time')
    @classmethod
    def validate_time(cls, v):
        return _check_time(v)

    @field_validator('event_date')
    @classmethod
    def validate_date(cls, v):
        """New events cannot be scheduled in the past."""
        if v < date.today():
            raise ValueError('Event date must be in the future')
        return v

    @field_validator('price')
    @classmethod
    def validate_price(cls, v):
        if v.as_tuple().exponent < -2:
            raise ValueError('Price cannot have more than 2 decimal places')
        return v


class EventUpdate(BaseModel):
    """
    Schema for updating an event.
    event_date, event_time, venue and capacity are frozen once tickets are sold.
    """
    title: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, max_length=2000)
    event_date: Optional[date] = None
    event_time: Optional[str] = None
    venue: Optional[str] = Field(None, min_length=1, max_length=255)
    category: Optional[EventCategoryEnum] = None
    capacity: Optional[int] = Field(None, ge=1, le=MAX_EVENT_CAPACITY)
    price: Optional[Decimal] = Field(None, ge=0)
    allow_refunds: Optional[bool] = None

    @field_validator('event_time')
    @classmethod
    def validate_time(cls, v):
        return _check_time(v)


class EventResponse(BaseModel):
    """Schema for event response."""
    id: int
    title: str
    description: Optional[str] = None
    event_date: date
    event_time: str
    venue: str
    category: EventCategory
    capacity: int
    tickets_sold: int
    available_tickets: int
    price: Decimal
    status: EventStatus
    organizer_id: int
    organizer_name: Optional[str] = None
    allow_refunds: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class AvailabilityResponse(BaseModel):
    """Schema for event availability response."""
    event_id: int
    capacity: int
    tickets_sold: int
    available_tickets: int
    status: EventStatus


class ReconcileResponse(BaseModel):
    event_id: int
    previous_tickets_sold: int
    tickets_sold: int
    corrected: bool


class EventTicketStats(BaseModel):
    """Per-status ticket counts for an event."""
    total: int = 0
    valid: int = 0
    used: int = 0
    cancelled: int = 0
    refunded: int = 0

    @classmethod
    def from_counts(cls, counts: Dict[str, Any]) -> "EventTicketStats":
        return cls(**{key: counts.get(key, 0) for key in cls.model_fields})


class MessageResponse(BaseModel):
    """Generic message response schema."""
    message: str
    success: bool = True
