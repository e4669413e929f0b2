"""
Ticket Ledger for Ticketing Service.
The only module allowed to create tickets or change their status.

Lifecycle:

    valid -> used        check-in
    valid -> cancelled   attendee or organizer cancellation
    valid -> refunded    refund before check-in
    used  -> refunded    refund after check-in

cancelled and refunded are terminal. A transition is applied with a
compare-and-set UPDATE on the current status, so two racing requests for the
same ticket cannot both win.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict, Any, Tuple
from sqlalchemy import and_, func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from ticketing.core.errors import DuplicateHoldingError, InvalidStateError, TicketNotFoundError
from ticketing.models import Event, Ticket, TicketAuditLog, TicketHolding, TicketStatus, LIVE_STATUSES

logger = logging.getLogger(__name__)


ALLOWED_TRANSITIONS = {
    TicketStatus.VALID: frozenset({TicketStatus.USED, TicketStatus.CANCELLED, TicketStatus.REFUNDED}),
    TicketStatus.USED: frozenset({TicketStatus.REFUNDED}),
    TicketStatus.CANCELLED: frozenset(),
    TicketStatus.REFUNDED: frozenset(),
}

_ACTIONS = {
    TicketStatus.USED: "CHECK_IN",
    TicketStatus.CANCELLED: "CANCEL",
    TicketStatus.REFUNDED: "REFUND",
}


def can_transition(current: TicketStatus, target: TicketStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, frozenset())


def _rejection_message(current: TicketStatus, target: TicketStatus) -> str:
    if current == TicketStatus.USED and target == TicketStatus.USED:
        return "Ticket has already been used"
    if current == TicketStatus.USED and target == TicketStatus.CANCELLED:
        return "Cannot cancel a used ticket"
    if current == TicketStatus.CANCELLED:
        return "Ticket has been cancelled"
    if current == TicketStatus.REFUNDED:
        return "Ticket has been refunded"
    return f"Ticket cannot move from {current.value} to {target.value}"


class TicketLedger:
    """
    Ticket persistence and the ticket state machine.
    All methods are synchronous and run inside the caller's transaction.
    """

    # Lookups
    def get_by_id(self, session: Session, ticket_id: str) -> Ticket:
        ticket = session.query(Ticket).filter(Ticket.id == ticket_id).first()
        if not ticket:
            raise TicketNotFoundError(ticket_id)
        return ticket

    def get_by_credential(self, session: Session, credential: str) -> Ticket:
        ticket = session.query(Ticket).filter(Ticket.credential == credential).first()
        if not ticket:
            raise TicketNotFoundError(message="Ticket not found for this credential")
        return ticket

    def credential_exists(self, session: Session, credential: str) -> bool:
        return session.query(Ticket.id).filter(Ticket.credential == credential).first() is not None

    def has_live_ticket(self, session: Session, event_id: int, user_id: int) -> bool:
        return session.query(Ticket.id).filter(
            and_(
                Ticket.event_id == event_id,
                Ticket.user_id == user_id,
                Ticket.status.in_(LIVE_STATUSES)
            )
        ).first() is not None

    # Holdings
    def open_holding(self, session: Session, event_id: int, user_id: int, purchase_reference: str) -> TicketHolding:
        """
        Claim the (event, user) holding slot.
        The unique constraint turns a racing second purchase into DuplicateHoldingError.
        """
        holding = TicketHolding(event_id=event_id, user_id=user_id, purchase_reference=purchase_reference)
        session.add(holding)
        try:
            session.flush()
        except IntegrityError:
            logger.warning(f"Concurrent holding detected for event {event_id}, user {user_id}")
            raise DuplicateHoldingError(event_id, user_id)
        return holding

    def close_holding_if_released(self, session: Session, event_id: int, user_id: int) -> bool:
        """Delete the holding row once the user has no live ticket left for the event."""
        if self.has_live_ticket(session, event_id, user_id):
            return False
        deleted = session.query(TicketHolding).filter(
            and_(TicketHolding.event_id == event_id, TicketHolding.user_id == user_id)
        ).delete(synchronize_session=False)
        return deleted > 0

    # Issuance
    def issue(
        self,
        session: Session,
        ticket_id: str,
        event: Event,
        user_id: int,
        credential: str,
        purchase_reference: str,
        user_email: Optional[str] = None,
        user_name: Optional[str] = None
    ) -> Ticket:
        """Add a valid ticket with the event price snapshotted onto it."""
        ticket = Ticket(
            id=ticket_id,
            event=event,
            user_id=user_id,
            user_email=user_email,
            user_name=user_name,
            price=event.price if event.price is not None else Decimal("0"),
            credential=credential,
            status=TicketStatus.VALID,
            purchase_reference=purchase_reference
        )
        session.add(ticket)
        self._audit(session, ticket_id, "ISSUE", None, TicketStatus.VALID, user_id, f"Issued under {purchase_reference}")
        return ticket

    # Transitions
    def transition(
        self,
        session: Session,
        ticket: Ticket,
        target: TicketStatus,
        changed_by: Optional[int] = None,
        reason: Optional[str] = None
    ) -> Ticket:
        """
        Move a ticket to target status.

        Raises:
            InvalidStateError: If the transition is illegal or another request changed the ticket first
        """
        current = ticket.status
        if not can_transition(current, target):
            raise InvalidStateError(
                _rejection_message(current, target),
                {"ticket_id": ticket.id, "status": current.value, "requested": target.value}
            )

        now = datetime.now(timezone.utc)
        values: Dict[Any, Any] = {Ticket.status: target, Ticket.updated_at: now}
        if target == TicketStatus.USED:
            values[Ticket.check_in_time] = now
            values[Ticket.checked_in_by] = changed_by
        elif target == TicketStatus.CANCELLED:
            values[Ticket.cancelled_at] = now
        elif target == TicketStatus.REFUNDED:
            values[Ticket.refunded_at] = now

        updated = session.query(Ticket).filter(
            and_(Ticket.id == ticket.id, Ticket.status == current)
        ).update(values, synchronize_session=False)

        if updated != 1:
            session.refresh(ticket)
            raise InvalidStateError(
                _rejection_message(ticket.status, target),
                {"ticket_id": ticket.id, "status": ticket.status.value, "requested": target.value}
            )

        self._audit(session, ticket.id, _ACTIONS[target], current, target, changed_by, reason)
        session.refresh(ticket)
        logger.debug(f"Ticket {ticket.id}: {current.value} -> {target.value}")
        return ticket

    def mark_used(self, session: Session, ticket: Ticket, checked_in_by: int) -> Ticket:
        return self.transition(session, ticket, TicketStatus.USED, checked_in_by, "Checked in")

    def cancel(self, session: Session, ticket: Ticket, cancelled_by: int, reason: Optional[str] = None) -> Ticket:
        return self.transition(session, ticket, TicketStatus.CANCELLED, cancelled_by, reason or "Cancelled")

    def refund(self, session: Session, ticket: Ticket, refunded_by: int, reason: Optional[str] = None) -> Ticket:
        return self.transition(session, ticket, TicketStatus.REFUNDED, refunded_by, reason or "Refunded")

    def _audit(
        self,
        session: Session,
        ticket_id: str,
        action: str,
        old_status: Optional[TicketStatus],
        new_status: TicketStatus,
        changed_by: Optional[int],
        reason: Optional[str]
    ):
        session.add(TicketAuditLog(
            ticket_id=ticket_id,
            action=action,
            old_status=old_status.value if old_status else None,
            new_status=new_status.value,
            changed_by=changed_by,
            reason=reason
        ))

    # Queries
    def list_for_user(
        self,
        session: Session,
        user_id: int,
        status: Optional[TicketStatus] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Ticket], int]:
        query = session.query(Ticket).filter(Ticket.user_id == user_id)
        if status:
            query = query.filter(Ticket.status == status)
        total = query.count()
        tickets = query.order_by(Ticket.created_at.desc(), Ticket.id).offset((page - 1) * page_size).limit(page_size).all()
        return tickets, total

    def list_for_event(
        self,
        session: Session,
        event_id: int,
        status: Optional[TicketStatus] = None,
        page: int = 1,
        page_size: int = 20
    ) -> Tuple[List[Ticket], int]:
        query = session.query(Ticket).filter(Ticket.event_id == event_id)
        if status:
            query = query.filter(Ticket.status == status)
        total = query.count()
        tickets = query.order_by(Ticket.created_at.desc(), Ticket.id).offset((page - 1) * page_size).limit(page_size).all()
        return tickets, total

    def status_counts(self, session: Session, event_id: int) -> Dict[str, int]:
        """Per-status ticket counts for an event, zero-filled."""
        counts = {status.value: 0 for status in TicketStatus}
        rows = session.query(Ticket.status, func.count(Ticket.id)).filter(
            Ticket.event_id == event_id
        ).group_by(Ticket.status).all()
        for status, count in rows:
            counts[status.value] = count
        counts["total"] = sum(counts.values())
        return counts

    def audit_trail(self, session: Session, ticket_id: str) -> List[TicketAuditLog]:
        return session.query(TicketAuditLog).filter(
            TicketAuditLog.ticket_id == ticket_id
        ).order_by(TicketAuditLog.id).all()


# Global ledger instance
ticket_ledger = TicketLedger()
