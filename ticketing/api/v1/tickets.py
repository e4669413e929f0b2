"""
Ticket API endpoints for Ticketing Service.
Handles purchase, holder lookups, cancellation and refund.
"""

from fastapi import APIRouter, Depends, Query, Path, status
from typing import Optional
import logging

from ticketing.api.dependencies import Principal, get_current_principal, require_attendee, unwrap
from ticketing.models import Ticket, TicketStatus
from ticketing.schemas.ticket import (
    PurchaseRequest,
    PurchaseResponse,
    TicketReleaseRequest,
    TicketReleaseResponse,
    TicketListResponse,
    TicketResponse
)
from ticketing.services.cancellation_service import cancellation_service
from ticketing.services.credential_encoder import credential_encoder
from ticketing.services.issuance_service import issuance_service
from ticketing.services.ticket_query_service import ticket_query_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tickets", tags=["tickets"])


def to_ticket_response(ticket: Ticket) -> TicketResponse:
    """Serialize a ticket together with its scannable payload."""
    response = TicketResponse.model_validate(ticket)
    response.qr_payload = credential_encoder.render_payload(ticket)
    return response


@router.post("/purchase", response_model=PurchaseResponse, status_code=status.HTTP_201_CREATED)
async def purchase_tickets(
    purchase: PurchaseRequest,
    principal: Principal = Depends(require_attendee)
):
    """
    Purchase tickets for a published event (attendees only).

    Returns:
        The minted tickets and their shared purchase reference
    """
    outcome = unwrap(await issuance_service.purchase(
        event_id=purchase.event_id,
        user_id=principal.user_id,
        quantity=purchase.quantity,
        user_email=principal.email,
        user_name=principal.name
    ))

    return PurchaseResponse(
        event_id=outcome.event_id,
        purchase_reference=outcome.purchase_reference,
        quantity=outcome.quantity,
        tickets=[to_ticket_response(ticket) for ticket in outcome.tickets],
        notification_dispatched=outcome.notification_dispatched
    )


@router.get("/mine", response_model=TicketListResponse)
async def get_my_tickets(
    status_filter: Optional[TicketStatus] = Query(None, alias="status", description="Filter by ticket status"),
    page: int = Query(1, ge=1, description="Page number"),
    page_size: int = Query(20, ge=1, le=100, description="Number of items per page"),
    principal: Principal = Depends(get_current_principal)
):
    """Get the caller's tickets, newest first."""
    listing = unwrap(await ticket_query_service.list_user_tickets(
        principal.user_id, status_filter, page, page_size
    ))
    return TicketListResponse(
        tickets=[to_ticket_response(ticket) for ticket in listing["tickets"]],
        total=listing["total"],
        page=listing["page"],
        page_size=listing["page_size"],
        total_pages=listing["total_pages"]
    )


@router.get("/{ticket_id}", response_model=TicketResponse)
async def get_ticket(
    ticket_id: str = Path(..., description="Ticket ID"),
    principal: Principal = Depends(get_current_principal)
):
    """Get a single ticket. Visible to its holder and the event organizer."""
    ticket = unwrap(await ticket_query_service.get_ticket(ticket_id, principal.user_id))
    return to_ticket_response(ticket)


@router.post("/{ticket_id}/cancel", response_model=TicketReleaseResponse)
async def cancel_ticket(
    release: Optional[TicketReleaseRequest] = None,
    ticket_id: str = Path(..., description="Ticket ID"),
    principal: Principal = Depends(get_current_principal)
):
    """
    Cancel a ticket that has not been used.
    The holder or the event organizer may cancel.
    """
    outcome = unwrap(await cancellation_service.cancel(
        ticket_id, principal.user_id, release.reason if release else None
    ))
    return TicketReleaseResponse(
        message="Ticket cancelled successfully",
        ticket=to_ticket_response(outcome.ticket),
        capacity_released=outcome.capacity_released
    )


@router.post("/{ticket_id}/refund", response_model=TicketReleaseResponse)
async def refund_ticket(
    release: Optional[TicketReleaseRequest] = None,
    ticket_id: str = Path(..., description="Ticket ID"),
    principal: Principal = Depends(get_current_principal)
):
    """
    Refund a ticket.
    Admins may always refund; organizers only for events that allow refunds.
    """
    outcome = unwrap(await cancellation_service.refund(
        ticket_id, principal.user_id, principal.is_admin, release.reason if release else None
    ))
    return TicketReleaseResponse(
        message="Ticket refunded successfully",
        ticket=to_ticket_response(outcome.ticket),
        capacity_released=outcome.capacity_released
    )
