"""
Ticket Query Service for Ticketing Service.
Read paths over the ledger for holders and organizers.
"""

from typing import Optional, Dict, Any
import logging

from ticketing.core.errors import EventNotFoundError, ForbiddenError, ValidationError
from ticketing.core.results import ServiceResult
from ticketing.db.database import db_manager
from ticketing.models import Event, Ticket, TicketStatus
from .ticket_ledger import ticket_ledger

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100


def _check_paging(page: int, page_size: int):
    if page < 1 or page_size < 1 or page_size > MAX_PAGE_SIZE:
        raise ValidationError(
            "Invalid pagination parameters",
            {"page": page, "page_size": page_size, "max_page_size": MAX_PAGE_SIZE}
        )


class TicketQueryService:
    """Ticket lookups with owner and organizer visibility rules."""

    async def get_ticket(self, ticket_id: str, requester_id: int) -> ServiceResult[Ticket]:
        """
        Get a ticket visible to its holder or the event organizer.

        Returns:
            ServiceResult with the ticket
        """
        try:
            with db_manager.get_session() as session:
                ticket = ticket_ledger.get_by_id(session, ticket_id)
                if requester_id not in (ticket.user_id, ticket.event.organizer_id):
                    raise ForbiddenError("Not authorized to view this ticket", {"ticket_id": ticket_id})
            return ServiceResult.success(ticket)
        except Exception as e:
            return ServiceResult.from_exception(e, f"Lookup of ticket {ticket_id}")

    async def list_user_tickets(
        self,
        user_id: int,
        status: Optional[TicketStatus] = None,
        page: int = 1,
        page_size: int = 20
    ) -> ServiceResult[Dict[str, Any]]:
        """List a user's tickets, newest first."""
        try:
            _check_paging(page, page_size)
            with db_manager.get_session() as session:
                tickets, total = ticket_ledger.list_for_user(session, user_id, status, page, page_size)
            return ServiceResult.success({
                "tickets": tickets,
                "total": total,
                "page": page,
                "page_size": page_size,
                "total_pages": (total + page_size - 1) // page_size,
            })
        except Exception as e:
            return ServiceResult.from_exception(e, f"Ticket listing for user {user_id}")

    async def list_event_tickets(
        self,
        event_id: int,
        organizer_id: int,
        status: Optional[TicketStatus] = None,
        page: int = 1,
        page_size: int = 20
    ) -> ServiceResult[Dict[str, Any]]:
        """
        List an event's tickets for its organizer, with per-status counts.
        """
        try:
            _check_paging(page, page_size)
            with db_manager.get_session() as session:
                event = session.query(Event).filter(Event.id == event_id).first()
                if not event:
                    raise EventNotFoundError(event_id)
                if event.organizer_id != organizer_id:
                    raise ForbiddenError("Not authorized to view tickets for this event", {"event_id": event_id})

                tickets, total = ticket_ledger.list_for_event(session, event_id, status, page, page_size)
                stats = ticket_ledger.status_counts(session, event_id)

            return ServiceResult.success({
                "tickets": tickets,
                "stats": stats,
                "total": total,
                "page": page,
                "page_size": page_size,
                "total_pages": (total + page_size - 1) // page_size,
            })
        except Exception as e:
            return ServiceResult.from_exception(e, f"Ticket listing for event {event_id}")


# Global ticket query service instance
ticket_query_service = TicketQueryService()
