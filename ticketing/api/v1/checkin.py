"""
Check-in API endpoints for Ticketing Service.
Used by organizers' scanners at the venue.
"""

from fastapi import APIRouter, Depends
import logging

from ticketing.api.dependencies import Principal, require_organizer, unwrap
from ticketing.api.v1.tickets import to_ticket_response
from ticketing.schemas.ticket import CheckInRequest, CheckInResponse, CredentialValidationResponse
from ticketing.services.checkin_service import checkin_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/check-in", tags=["check-in"])


@router.post("", response_model=CheckInResponse)
async def check_in_ticket(
    request: CheckInRequest,
    principal: Principal = Depends(require_organizer)
):
    """
    Check a ticket in by its credential.
    Only the event's organizer may check in, and only from the event date on.
    """
    ticket = unwrap(await checkin_service.check_in(request.credential, principal.user_id))
    return CheckInResponse(ticket=to_ticket_response(ticket))


@router.post("/validate", response_model=CredentialValidationResponse)
async def validate_credential(
    request: CheckInRequest,
    principal: Principal = Depends(require_organizer)
):
    """Look up a scanned credential without checking the ticket in."""
    validation = unwrap(await checkin_service.validate_credential(request.credential, principal.user_id))
    return CredentialValidationResponse(
        ticket=to_ticket_response(validation.ticket),
        can_check_in=validation.can_check_in,
        reason=validation.reason
    )
