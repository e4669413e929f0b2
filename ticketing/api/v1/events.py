"""
Event API endpoints for Ticketing Service.
Organizer event lifecycle plus inventory views.
"""

from fastapi import APIRouter, Depends, Query, Path, status
from typing import Optional
import logging

from ticketing.api.dependencies import Principal, get_current_principal, require_admin, require_organizer, unwrap
from ticketing.api.v1.tickets import to_ticket_response
from ticketing.models import TicketStatus
from ticketing.schemas.event import (
    AvailabilityResponse,
    EventCreate,
    EventResponse,
    EventTicketStats,
    EventUpdate,
    MessageResponse,
    ReconcileResponse
)
from ticketing.schemas.ticket import EventTicketListResponse
from ticketing.services.event_service import event_service
from ticketing.services.inventory_service import inventory_service
from ticketing.services.ticket_query_service import ticket_query_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/events", tags=["events"])


@router.post("", response_model=EventResponse, status_code=status.HTTP_201_CREATED)
async def create_event(
    event_data: EventCreate,
    principal: Principal = Depends(require_organizer)
):
    """Create a draft event owned by the caller."""
    event = unwrap(await event_service.create_event(event_data, principal.user_id, principal.name))
    return EventResponse.model_validate(event)


@router.get("/{event_id}", response_model=EventResponse)
async def get_event(
    event_id: int = Path(..., gt=0, description="Event ID"),
    principal: Principal = Depends(get_current_principal)
):
    """Get an event. Drafts are visible only to their organizer."""
    event = unwrap(await event_service.get_event(event_id, principal.user_id))
    return EventResponse.model_validate(event)


@router.put("/{event_id}", response_model=EventResponse)
async def update_event(
    event_data: EventUpdate,
    event_id: int = Path(..., gt=0, description="Event ID"),
    principal: Principal = Depends(require_organizer)
):
    """
    Update an event.
    Date, time, venue and capacity cannot change once tickets are sold.
    """
    event = unwrap(await event_service.update_event(event_id, principal.user_id, event_data))
    return EventResponse.model_validate(event)


@router.delete("/{event_id}", response_model=MessageResponse)
async def delete_event(
    event_id: int = Path(..., gt=0, description="Event ID"),
    principal: Principal = Depends(require_organizer)
):
    """
    Delete an event that has never sold a ticket.
    Events with sales have to be cancelled instead.
    """
    unwrap(await event_service.delete_event(event_id, principal.user_id))
    return MessageResponse(message="Event deleted successfully")


@router.post("/{event_id}/publish", response_model=EventResponse)
async def publish_event(
    event_id: int = Path(..., gt=0, description="Event ID"),
    principal: Principal = Depends(require_organizer)
):
    """Publish a draft event so tickets can be purchased."""
    event = unwrap(await event_service.publish_event(event_id, principal.user_id))
    return EventResponse.model_validate(event)


@router.post("/{event_id}/cancel", response_model=EventResponse)
async def cancel_event(
    event_id: int = Path(..., gt=0, description="Event ID"),
    principal: Principal = Depends(require_organizer)
):
    """Cancel an event; no further purchases are accepted."""
    event = unwrap(await event_service.cancel_event(event_id, principal.user_id))
    return EventResponse.model_validate(event)


@router.get("/{event_id}/availability", response_model=AvailabilityResponse)
async def get_event_availability(
    event_id: int = Path(..., gt=0, description="Event ID"),
    use_cache: bool = Query(True, description="Whether to use cached data")
):
    """Get capacity, sold and available seats for an event."""
    availability = unwrap(await inventory_service.get_availability(event_id, use_cache))
    return AvailabilityResponse(**availability)


@router.get("/{event_id}/tickets", response_model=EventTicketListResponse)
async def get_event_tickets(
    event_id: int = Path(..., gt=0, description="Event ID"),
    status_filter: Optional[TicketStatus] = Query(None, alias="status", description="Filter by ticket status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Number of items per page"),
    principal: Principal = Depends(require_organizer)
):
    """List an event's tickets with per-status counts (organizer only)."""
    listing = unwrap(await ticket_query_service.list_event_tickets(
        event_id, principal.user_id, status_filter, page, page_size
    ))
    return EventTicketListResponse(
        tickets=[to_ticket_response(ticket) for ticket in listing["tickets"]],
        stats=EventTicketStats.from_counts(listing["stats"]),
        total=listing["total"],
        page=listing["page"],
        page_size=listing["page_size"],
        total_pages=listing["total_pages"]
    )


@router.post("/{event_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_event_inventory(
    event_id: int = Path(..., gt=0, description="Event ID"),
    principal: Principal = Depends(require_admin)
):
    """Recompute the sold count from the ticket ledger (admin only)."""
    result = unwrap(await inventory_service.reconcile(event_id))
    logger.info(f"Admin {principal.user_id} reconciled event {event_id}")
    return ReconcileResponse(**result)
