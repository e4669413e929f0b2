"""
Pydantic schemas for Ticketing Service.
Handles request/response validation and serialization.
"""

from pydantic import BaseModel, Field, field_validator
from typing import Optional, List, Dict, Any
from datetime import datetime
from decimal import Decimal

from ticketing.models import TicketStatus
from ticketing.schemas.event import EventTicketStats


# Request schemas
class PurchaseRequest(BaseModel):
    """
    Schema for a ticket purchase.
    quantity bounds are enforced by the issuance service so that every
    caller gets the same VALIDATION_ERROR.
    """

    event_id: int = Field(..., gt=0, description="ID of the event to buy into")
    quantity: int = Field(1, description="Number of tickets, 1 to 10")


class CheckInRequest(BaseModel):
    """Schema for check-in and credential validation."""

    credential: str = Field(..., min_length=1, max_length=2048, description="Ticket credential or scanned payload")

    @field_validator('credential')
    @classmethod
    def strip_credential(cls, v):
        v = v.strip()
        if not v:
            raise ValueError('Credential is required')
        return v


class TicketReleaseRequest(BaseModel):
    """Schema for cancellation and refund requests."""

    reason: Optional[str] = Field(None, max_length=500, description="Reason recorded in the audit trail")


# Response schemas
class TicketResponse(BaseModel):
    """Schema for ticket response."""

    id: str
    event_id: int
    user_id: int
    user_name: Optional[str] = None
    price: Decimal
    credential: str
    status: TicketStatus
    check_in_time: Optional[datetime] = None
    purchase_reference: str
    created_at: Optional[datetime] = None
    qr_payload: Optional[str] = Field(None, description="String to render as the holder's scannable code")

    class Config:
        from_attributes = True


class PurchaseResponse(BaseModel):
    """Schema for purchase response."""

    success: bool = True
    message: str = "Tickets purchased successfully"
    event_id: int
    purchase_reference: str
    quantity: int
    tickets: List[TicketResponse]
    notification_dispatched: bool


class TicketListResponse(BaseModel):
    tickets: List[TicketResponse]
    total: int
    page: int
    page_size: int
    total_pages: int


class EventTicketListResponse(TicketListResponse):
    stats: EventTicketStats


class CheckInResponse(BaseModel):
    success: bool = True
    message: str = "Ticket checked in successfully"
    ticket: TicketResponse


class CredentialValidationResponse(BaseModel):
    """Schema for a scan that does not check the ticket in."""

    message: str = "Credential validated successfully"
    ticket: TicketResponse
    can_check_in: bool
    reason: Optional[str] = None


class TicketReleaseResponse(BaseModel):
    """Schema for cancellation and refund responses."""

    success: bool = True
    message: str
    ticket: TicketResponse
    capacity_released: bool


# Error schemas
class ErrorResponse(BaseModel):
    """Schema for error responses."""

    error_code: str = Field(..., description="Error code")
    error_message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=datetime.now, description="Error timestamp")


# Health check schemas
class HealthCheckResponse(BaseModel):
    """Schema for health check response."""

    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(default_factory=datetime.now, description="Health check timestamp")
    version: str = Field(..., description="Service version")
    database: str = Field(..., description="Database connection status")
    redis: str = Field(..., description="Redis connection status")
