"""
Cancellation Service for Ticketing Service.
Cancels and refunds tickets, returning seats to inventory when the ticket was
never used.
"""

from dataclasses import dataclass
from typing import Optional, Callable
from sqlalchemy.orm import Session
import logging

from ticketing.core.errors import ForbiddenError
from ticketing.core.results import ServiceResult
from ticketing.db.database import db_manager
from ticketing.db.redis_client import redis_manager
from ticketing.models import Ticket, TicketStatus
from .event_publisher import TicketEventPublisher
from .inventory_service import inventory_service
from .ticket_ledger import ticket_ledger

logger = logging.getLogger(__name__)


@dataclass
class ReleaseOutcome:
    """Result of a cancellation or refund."""

    ticket: Ticket
    capacity_released: bool
    holding_closed: bool


class CancellationService:
    """
    Ticket cancellation and refund.
    Only a ticket that was still valid gives its seat back; a used ticket
    keeps holding capacity even when refunded.
    """

    def __init__(self):
        self.event_publisher = None

    async def _get_event_publisher(self):
        """Get event publisher instance."""
        if not self.event_publisher:
            self.event_publisher = TicketEventPublisher(redis_manager)
        return self.event_publisher

    def _release(
        self,
        ticket_id: str,
        authorize: Callable[[Ticket], None],
        transition: Callable[[Session, Ticket], Ticket]
    ) -> ReleaseOutcome:
        with db_manager.get_transaction_session() as session:
            ticket = ticket_ledger.get_by_id(session, ticket_id)
            authorize(ticket)

            was_valid = ticket.status == TicketStatus.VALID
            ticket = transition(session, ticket)

            released = False
            if was_valid:
                released = inventory_service.release_capacity(session, ticket.event_id, 1)
            holding_closed = ticket_ledger.close_holding_if_released(session, ticket.event_id, ticket.user_id)

            session.commit()
            session.refresh(ticket)

        return ReleaseOutcome(ticket=ticket, capacity_released=released, holding_closed=holding_closed)

    async def cancel(self, ticket_id: str, requester_id: int, reason: Optional[str] = None) -> ServiceResult[ReleaseOutcome]:
        """
        Cancel a ticket on behalf of its holder or the event organizer.

        Args:
            ticket_id: Ticket to cancel
            requester_id: User asking for the cancellation
            reason: Optional free-text reason for the audit trail

        Returns:
            ServiceResult with the cancelled ticket and whether a seat was released
        """
        def authorize(ticket: Ticket):
            if requester_id not in (ticket.user_id, ticket.event.organizer_id):
                raise ForbiddenError("Not authorized to cancel this ticket", {"ticket_id": ticket.id})

        def transition(session: Session, ticket: Ticket) -> Ticket:
            return ticket_ledger.cancel(session, ticket, requester_id, reason)

        try:
            outcome = self._release(ticket_id, authorize, transition)
        except Exception as e:
            return ServiceResult.from_exception(e, f"Cancellation of ticket {ticket_id}")

        logger.info(f"Ticket {ticket_id} cancelled by user {requester_id} (seat released: {outcome.capacity_released})")
        await self._after_commit(outcome, refunded=False)
        return ServiceResult.success(outcome)

    async def refund(
        self,
        ticket_id: str,
        requester_id: int,
        is_admin: bool = False,
        reason: Optional[str] = None
    ) -> ServiceResult[ReleaseOutcome]:
        """
        Refund a ticket. Admins may always refund; the organizer only when
        the event allows refunds.
        """
        def authorize(ticket: Ticket):
            if is_admin:
                return
            if requester_id == ticket.event.organizer_id and ticket.event.allow_refunds:
                return
            raise ForbiddenError("Not authorized to refund this ticket", {"ticket_id": ticket.id})

        def transition(session: Session, ticket: Ticket) -> Ticket:
            return ticket_ledger.refund(session, ticket, requester_id, reason)

        try:
            outcome = self._release(ticket_id, authorize, transition)
        except Exception as e:
            return ServiceResult.from_exception(e, f"Refund of ticket {ticket_id}")

        logger.info(f"Ticket {ticket_id} refunded by user {requester_id} (seat released: {outcome.capacity_released})")
        await self._after_commit(outcome, refunded=True)
        return ServiceResult.success(outcome)

    async def _after_commit(self, outcome: ReleaseOutcome, refunded: bool):
        try:
            await inventory_service.invalidate_cache(outcome.ticket.event_id)
        except Exception as e:
            logger.error(f"Failed to invalidate availability cache for event {outcome.ticket.event_id}: {e}")

        try:
            publisher = await self._get_event_publisher()
            if refunded:
                await publisher.publish_ticket_refunded(outcome.ticket, outcome.capacity_released)
            else:
                await publisher.publish_ticket_cancelled(outcome.ticket, outcome.capacity_released)
        except Exception as e:
            logger.error(f"Failed to publish release of ticket {outcome.ticket.id}: {e}")


# Global cancellation service instance
cancellation_service = CancellationService()
