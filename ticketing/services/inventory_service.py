"""
Inventory Service for Ticketing Service.
Owns every write to Event.tickets_sold: reservation on purchase, release on
cancellation or refund before check-in, and reconciliation against the ledger.
"""

from typing import Dict, Any
from sqlalchemy import and_, or_, func
from sqlalchemy.orm import Session
import logging

from ticketing.core.config import config
from ticketing.core.errors import (
    CapacityExceededError, EventNotFoundError, InvalidStateError, ValidationError
)
from ticketing.core.results import ServiceResult
from ticketing.db.database import db_manager
from ticketing.db.redis_client import redis_manager
from ticketing.models import Event, EventStatus, Ticket, TicketStatus

logger = logging.getLogger(__name__)

MIN_QUANTITY = 1
MAX_QUANTITY = 10


def validate_quantity(quantity) -> int:
    """Reject anything that is not an integer in [MIN_QUANTITY, MAX_QUANTITY]."""
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise ValidationError("Quantity must be a whole number", {"quantity": quantity})
    if quantity < MIN_QUANTITY or quantity > MAX_QUANTITY:
        raise ValidationError(
            f"Quantity must be between {MIN_QUANTITY} and {MAX_QUANTITY}",
            {"quantity": quantity, "min": MIN_QUANTITY, "max": MAX_QUANTITY}
        )
    return quantity


def capacity_holding_filter():
    """Tickets that occupy a seat: live ones, and ones refunded after check-in."""
    return or_(
        Ticket.status.in_([TicketStatus.VALID, TicketStatus.USED]),
        and_(Ticket.status == TicketStatus.REFUNDED, Ticket.check_in_time.isnot(None))
    )


class InventoryService:
    """
    Capacity bookkeeping for events.
    The sync methods take the caller's session so that reservation commits or
    rolls back together with the tickets it backs.
    """

    def __init__(self):
        self.cache_config = None

    async def _get_configs(self):
        """Get configuration settings."""
        if not self.cache_config:
            self.cache_config = await config.get_cache_config()

    @staticmethod
    def cache_key(event_id: int) -> str:
        return f"availability:event:{event_id}"

    def reserve_capacity(self, session: Session, event_id: int, quantity: int) -> Event:
        """
        Atomically add quantity to tickets_sold.

        The increment is a single conditional UPDATE, so two concurrent
        reservations for the last seats cannot both match.

        Returns:
            The event, refreshed with its new sold count

        Raises:
            EventNotFoundError, InvalidStateError, ValidationError, CapacityExceededError
        """
        validate_quantity(quantity)

        event = session.query(Event).filter(Event.id == event_id).first()
        if not event:
            raise EventNotFoundError(event_id)
        if event.status != EventStatus.PUBLISHED:
            raise InvalidStateError(
                "Event is not open for ticket sales",
                {"event_id": event_id, "status": event.status.value}
            )

        updated = session.query(Event).filter(
            and_(
                Event.id == event_id,
                Event.status == EventStatus.PUBLISHED,
                Event.tickets_sold + quantity <= Event.capacity
            )
        ).update(
            {Event.tickets_sold: Event.tickets_sold + quantity},
            synchronize_session=False
        )

        if updated != 1:
            current = session.query(Event.capacity, Event.tickets_sold, Event.status).filter(
                Event.id == event_id
            ).one()
            if current.status != EventStatus.PUBLISHED:
                raise InvalidStateError(
                    "Event is not open for ticket sales",
                    {"event_id": event_id, "status": current.status.value}
                )
            available = max(0, current.capacity - current.tickets_sold)
            raise CapacityExceededError(available=available, requested=quantity)

        session.refresh(event)
        logger.debug(f"Reserved {quantity} seats for event {event_id} ({event.tickets_sold}/{event.capacity})")
        return event

    def release_capacity(self, session: Session, event_id: int, quantity: int = 1) -> bool:
        """
        Give seats back after a valid ticket is cancelled or refunded.
        A counter that would go negative is left alone; reconcile() repairs it.
        """
        updated = session.query(Event).filter(
            and_(Event.id == event_id, Event.tickets_sold >= quantity)
        ).update(
            {Event.tickets_sold: Event.tickets_sold - quantity},
            synchronize_session=False
        )

        if updated != 1:
            logger.error(f"Sold counter for event {event_id} is below {quantity}, release skipped")
            return False
        return True

    def count_held_seats(self, session: Session, event_id: int) -> int:
        """Authoritative seat count derived from the ledger."""
        return session.query(func.count(Ticket.id)).filter(
            Ticket.event_id == event_id,
            capacity_holding_filter()
        ).scalar() or 0

    async def get_availability(self, event_id: int, use_cache: bool = True) -> ServiceResult[Dict[str, Any]]:
        """
        Get current availability for an event.

        Args:
            event_id: ID of the event
            use_cache: Whether to use Redis cache

        Returns:
            ServiceResult holding capacity, sold, available and status
        """
        try:
            await self._get_configs()

            if use_cache:
                cached = await redis_manager.get_json(self.cache_key(event_id))
                if cached:
                    return ServiceResult.success(cached)

            with db_manager.get_session() as session:
                event = session.query(Event).filter(Event.id == event_id).first()
                if not event:
                    raise EventNotFoundError(event_id)
                availability = {
                    "event_id": event.id,
                    "capacity": event.capacity,
                    "tickets_sold": event.tickets_sold,
                    "available_tickets": event.available_tickets,
                    "status": event.status.value,
                }

            if use_cache:
                await redis_manager.set_json(
                    self.cache_key(event_id),
                    availability,
                    ttl=self.cache_config["availability_ttl"]
                )
            return ServiceResult.success(availability)

        except Exception as e:
            return ServiceResult.from_exception(e, f"Availability lookup for event {event_id}")

    async def invalidate_cache(self, event_id: int):
        """Drop the cached availability for an event."""
        await redis_manager.delete(self.cache_key(event_id))

    async def reconcile(self, event_id: int) -> ServiceResult[Dict[str, Any]]:
        """
        Recompute tickets_sold from the ledger and correct any drift.

        Returns:
            ServiceResult with previous and recomputed counts
        """
        try:
            with db_manager.get_transaction_session() as session:
                event = session.query(Event).filter(Event.id == event_id).with_for_update().first()
                if not event:
                    raise EventNotFoundError(event_id)

                previous = event.tickets_sold
                held = self.count_held_seats(session, event_id)
                if held > event.capacity:
                    raise InvalidStateError(
                        "Ledger holds more seats than the event capacity",
                        {"event_id": event_id, "capacity": event.capacity, "held": held}
                    )

                if held != previous:
                    logger.warning(f"Inventory drift on event {event_id}: counter={previous}, ledger={held}")
                    event.tickets_sold = held
                session.commit()

            await self.invalidate_cache(event_id)
            logger.info(f"Reconciled inventory for event {event_id}: {previous} -> {held}")
            return ServiceResult.success({
                "event_id": event_id,
                "previous_tickets_sold": previous,
                "tickets_sold": held,
                "corrected": held != previous,
            })

        except Exception as e:
            return ServiceResult.from_exception(e, f"Inventory reconcile for event {event_id}")


# Global inventory service instance
inventory_service = InventoryService()
