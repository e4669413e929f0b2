"""
Check-in Service for Ticketing Service.
Resolves a presented credential to a ticket and admits its holder.
"""

from dataclasses import dataclass
from datetime import date
from typing import Optional
from sqlalchemy.orm import Session
import logging

from ticketing.core.errors import ForbiddenError, InvalidStateError
from ticketing.core.results import ServiceResult
from ticketing.db.database import db_manager
from ticketing.db.redis_client import redis_manager
from ticketing.models import Ticket, TicketStatus
from .credential_encoder import credential_encoder, InvalidCredentialError
from .event_publisher import TicketEventPublisher
from .ticket_ledger import ticket_ledger

logger = logging.getLogger(__name__)


@dataclass
class CredentialValidation:
    """Read-only scan result for an organizer's scanner."""

    ticket: Ticket
    can_check_in: bool
    reason: Optional[str] = None


def _today() -> date:
    return date.today()


class CheckInService:
    """
    Check-in of tickets by event organizers.
    Authority comes only from the ledger row found by credential, never from
    the contents of a scanned payload.
    """

    def __init__(self):
        self.event_publisher = None

    async def _get_event_publisher(self):
        """Get event publisher instance."""
        if not self.event_publisher:
            self.event_publisher = TicketEventPublisher(redis_manager)
        return self.event_publisher

    def _resolve(self, session: Session, scanned: str, organizer_id: int) -> Ticket:
        """Find the ticket behind a scan and confirm the organizer may act on it."""
        credential = credential_encoder.extract_credential(scanned)
        ticket = ticket_ledger.get_by_credential(session, credential)

        if ticket.event.organizer_id != organizer_id:
            logger.warning(f"Organizer {organizer_id} denied check-in for ticket {ticket.id}")
            raise ForbiddenError(
                "Not authorized to check in tickets for this event",
                {"event_id": ticket.event_id}
            )
        return ticket

    def _gate_reason(self, ticket: Ticket) -> Optional[str]:
        if ticket.event.event_date > _today():
            return "event_not_started"
        if ticket.status == TicketStatus.USED:
            return "already_used"
        if ticket.status != TicketStatus.VALID:
            return ticket.status.value
        return None

    async def check_in(self, credential: str, organizer_id: int) -> ServiceResult[Ticket]:
        """
        Check a ticket in by its credential.

        Args:
            credential: Raw credential or the scanned payload carrying it
            organizer_id: Organizer performing the check-in

        Returns:
            ServiceResult with the used ticket
        """
        try:
            with db_manager.get_transaction_session() as session:
                ticket = self._resolve(session, credential, organizer_id)

                event_date = ticket.event.event_date
                if event_date > _today():
                    raise InvalidStateError(
                        "Cannot check in before the event date",
                        {"reason": "event_not_started", "event_date": event_date.isoformat()}
                    )

                ticket = ticket_ledger.mark_used(session, ticket, organizer_id)
                session.commit()

        except Exception as e:
            return ServiceResult.from_exception(e, "Ticket check-in")

        logger.info(f"Ticket {ticket.id} checked in for event {ticket.event_id} by organizer {organizer_id}")

        try:
            publisher = await self._get_event_publisher()
            await publisher.publish_ticket_checked_in(ticket)
        except Exception as e:
            logger.error(f"Failed to publish check-in of ticket {ticket.id}: {e}")

        return ServiceResult.success(ticket)

    async def validate_credential(self, credential: str, organizer_id: int) -> ServiceResult[CredentialValidation]:
        """
        Look a credential up without changing the ticket.
        Forged or malformed codes are rejected before the ledger is consulted.
        """
        await credential_encoder.configure()
        try:
            code = credential_encoder.extract_credential(credential)
            credential_encoder.verify(code)
        except InvalidCredentialError as e:
            return ServiceResult.from_exception(e, "Credential validation")

        try:
            with db_manager.get_session() as session:
                ticket = self._resolve(session, code, organizer_id)
                reason = self._gate_reason(ticket)
        except Exception as e:
            return ServiceResult.from_exception(e, "Credential validation")

        return ServiceResult.success(CredentialValidation(
            ticket=ticket,
            can_check_in=reason is None,
            reason=reason
        ))


# Global check-in service instance
checkin_service = CheckInService()
