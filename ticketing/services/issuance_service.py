"""
Issuance Service for Ticketing Service.
Turns a purchase request into a batch of tickets in one atomic transaction.

Capacity reservation, the holding claim, every ticket row and every audit row
commit together or not at all. Publishing, cache invalidation and the
confirmation email happen only after commit and can never fail a purchase.
"""

import contextlib
import secrets
import time
import uuid
from dataclasses import dataclass
from typing import Optional, List, Set
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
import logging

from ticketing.core.config import config
from ticketing.core.errors import (
    DuplicateHoldingError, EventNotFoundError, InvalidStateError, UnavailableError
)
from ticketing.core.results import ServiceResult
from ticketing.db.database import db_manager
from ticketing.db.redis_client import redis_manager, get_distributed_lock
from ticketing.models import Event, EventStatus, Ticket
from .credential_encoder import credential_encoder
from .event_publisher import TicketEventPublisher
from .inventory_service import inventory_service, validate_quantity
from .notification_service import notification_service
from .ticket_ledger import ticket_ledger

logger = logging.getLogger(__name__)

CREDENTIAL_MINT_ATTEMPTS = 5


@dataclass
class PurchaseOutcome:
    """A committed purchase batch."""

    event_id: int
    purchase_reference: str
    tickets: List[Ticket]
    notification_dispatched: bool = False

    @property
    def quantity(self) -> int:
        return len(self.tickets)


class IssuanceService:
    """
    Purchase orchestration.
    Preconditions are checked in order: quantity, event exists, event is
    published, no live holding, capacity.
    """

    def __init__(self):
        self.consistency_config = None
        self.ticketing_config = None
        self.event_publisher = None

    async def _get_configs(self):
        """Get configuration settings."""
        if not self.consistency_config:
            self.consistency_config = await config.get_consistency_config()
        if not self.ticketing_config:
            self.ticketing_config = await config.get_ticketing_config()

    async def _get_event_publisher(self):
        """Get event publisher instance."""
        if not self.event_publisher:
            self.event_publisher = TicketEventPublisher(redis_manager)
        return self.event_publisher

    def _generate_purchase_reference(self) -> str:
        """Time plus 64 random bits, e.g. TXN-1718000000000-3F9A1C2B7D0E4A61."""
        prefix = self.ticketing_config["purchase_reference_prefix"]
        return f"{prefix}-{int(time.time() * 1000)}-{secrets.token_hex(8).upper()}"

    def _purchase_lock(self, event_id: int, user_id: int):
        if not self.consistency_config["enable_distributed_locks"]:
            return contextlib.nullcontext()
        return get_distributed_lock(
            f"tickets:purchase:{event_id}:{user_id}",
            timeout=self.consistency_config["lock_timeout_seconds"]
        )

    def _mint_unique_credential(self, session: Session, ticket_id: str, event_id: int, user_id: int, taken: Set[str]) -> str:
        """Mint a credential not already in the ledger or in this batch."""
        for _ in range(CREDENTIAL_MINT_ATTEMPTS):
            credential = credential_encoder.mint(ticket_id, event_id, user_id)
            if credential not in taken and not ticket_ledger.credential_exists(session, credential):
                taken.add(credential)
                return credential
            logger.warning(f"Credential collision while minting ticket {ticket_id}, regenerating")
        raise UnavailableError("Could not mint a unique ticket credential")

    def _issue_batch(
        self,
        event_id: int,
        user_id: int,
        quantity: int,
        user_email: Optional[str],
        user_name: Optional[str]
    ) -> PurchaseOutcome:
        """Run one purchase attempt in a single transaction."""
        with db_manager.get_transaction_session() as session:
            event = session.query(Event).filter(Event.id == event_id).first()
            if not event:
                raise EventNotFoundError(event_id)
            if event.status != EventStatus.PUBLISHED:
                raise InvalidStateError(
                    "Event is not open for ticket sales",
                    {"event_id": event_id, "status": event.status.value}
                )
            if ticket_ledger.has_live_ticket(session, event_id, user_id):
                raise DuplicateHoldingError(event_id, user_id)

            event = inventory_service.reserve_capacity(session, event_id, quantity)

            purchase_reference = self._generate_purchase_reference()
            ticket_ledger.open_holding(session, event_id, user_id, purchase_reference)

            tickets = []
            taken: Set[str] = set()
            for _ in range(quantity):
                ticket_id = str(uuid.uuid4())
                credential = self._mint_unique_credential(session, ticket_id, event_id, user_id, taken)
                tickets.append(ticket_ledger.issue(
                    session,
                    ticket_id=ticket_id,
                    event=event,
                    user_id=user_id,
                    credential=credential,
                    purchase_reference=purchase_reference,
                    user_email=user_email,
                    user_name=user_name
                ))

            session.flush()
            session.commit()

            for ticket in tickets:
                session.refresh(ticket)

            return PurchaseOutcome(
                event_id=event_id,
                purchase_reference=purchase_reference,
                tickets=tickets
            )

    def _issue_with_retry(self, event_id: int, user_id: int, quantity: int, user_email, user_name) -> PurchaseOutcome:
        """Retry the whole attempt when the credential index rejects a mint."""
        attempts = max(1, self.consistency_config["max_retry_attempts"])
        for attempt in range(1, attempts + 1):
            try:
                return self._issue_batch(event_id, user_id, quantity, user_email, user_name)
            except IntegrityError as e:
                logger.warning(f"Purchase attempt {attempt}/{attempts} for event {event_id} hit a constraint: {e.orig}")
        raise UnavailableError(
            "Could not complete the purchase, please retry",
            {"attempts": attempts}
        )

    async def purchase(
        self,
        event_id: int,
        user_id: int,
        quantity: int,
        user_email: Optional[str] = None,
        user_name: Optional[str] = None
    ) -> ServiceResult[PurchaseOutcome]:
        """
        Purchase quantity tickets for a user.

        Args:
            event_id: Event to buy into
            user_id: Buyer
            quantity: Number of tickets, 1 to 10
            user_email: Recipient of the confirmation email
            user_name: Name snapshotted onto the tickets

        Returns:
            ServiceResult with the PurchaseOutcome, or the first failed precondition
        """
        try:
            validate_quantity(quantity)
        except Exception as e:
            return ServiceResult.from_exception(e, "Ticket purchase")

        try:
            await self._get_configs()
            await credential_encoder.configure()
            async with self._purchase_lock(event_id, user_id):
                outcome = self._issue_with_retry(event_id, user_id, quantity, user_email, user_name)
        except Exception as e:
            return ServiceResult.from_exception(e, f"Ticket purchase for event {event_id}")

        logger.info(
            f"Issued {outcome.quantity} tickets for event {event_id} to user {user_id} "
            f"under {outcome.purchase_reference}"
        )

        await self._after_commit(outcome, user_email, user_name)
        return ServiceResult.success(outcome)

    async def _after_commit(self, outcome: PurchaseOutcome, user_email: Optional[str], user_name: Optional[str]):
        """Best-effort side effects of a committed purchase."""
        try:
            publisher = await self._get_event_publisher()
            await publisher.publish_tickets_purchased(outcome.purchase_reference, outcome.tickets)
        except Exception as e:
            logger.error(f"Failed to publish purchase {outcome.purchase_reference}: {e}")

        try:
            await inventory_service.invalidate_cache(outcome.event_id)
        except Exception as e:
            logger.error(f"Failed to invalidate availability cache for event {outcome.event_id}: {e}")

        try:
            payload = notification_service.build_purchase_payload(
                outcome.tickets[0].event, outcome.tickets, user_name
            )
            outcome.notification_dispatched = await notification_service.send_purchase_confirmation(user_email, payload)
        except Exception as e:
            logger.error(f"Failed to dispatch confirmation for {outcome.purchase_reference}: {e}")
            outcome.notification_dispatched = False

        if not outcome.notification_dispatched:
            logger.warning(f"Confirmation for {outcome.purchase_reference} was not dispatched")


# Global issuance service instance
issuance_service = IssuanceService()
