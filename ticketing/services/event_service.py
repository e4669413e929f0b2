"""
Event Service for Ticketing Service.
Organizer-side event lifecycle: create, edit, publish, cancel and delete.
Never writes tickets_sold.
"""

from typing import Optional, Dict, Any
from sqlalchemy.orm import Session
import logging

from ticketing.core.errors import EventNotFoundError, ForbiddenError, InvalidStateError
from ticketing.core.results import ServiceResult
from ticketing.db.database import db_manager
from ticketing.models import Event, EventCategory, EventStatus, Ticket
from ticketing.models.event import IMMUTABLE_AFTER_SALE
from ticketing.schemas.event import EventCreate, EventUpdate
from .inventory_service import inventory_service

logger = logging.getLogger(__name__)


class EventService:
    """Event lifecycle management for organizers."""

    def _get_owned_event(self, session: Session, event_id: int, organizer_id: int) -> Event:
        # Locked so the sold-count check still holds at commit
        event = session.query(Event).filter(Event.id == event_id).with_for_update().first()
        if not event:
            raise EventNotFoundError(event_id)
        if event.organizer_id != organizer_id:
            raise ForbiddenError("Not authorized to modify this event", {"event_id": event_id})
        return event

    async def create_event(
        self,
        data: EventCreate,
        organizer_id: int,
        organizer_name: Optional[str] = None
    ) -> ServiceResult[Event]:
        """
        Create an event in draft.

        Args:
            data: Validated event fields
            organizer_id: Owner of the event
            organizer_name: Display name snapshotted onto the event

        Returns:
            ServiceResult with the new event
        """
        try:
            fields = data.model_dump()
            fields["category"] = EventCategory(fields["category"])

            with db_manager.get_transaction_session() as session:
                event = Event(
                    **fields,
                    organizer_id=organizer_id,
                    organizer_name=organizer_name,
                    status=EventStatus.DRAFT,
                    tickets_sold=0
                )
                session.add(event)
                session.commit()
                session.refresh(event)

            logger.info(f"Event {event.id} created by organizer {organizer_id}")
            return ServiceResult.success(event)

        except Exception as e:
            return ServiceResult.from_exception(e, "Event creation")

    async def get_event(self, event_id: int, requester_id: Optional[int] = None) -> ServiceResult[Event]:
        """Get an event. Drafts are only visible to their organizer."""
        try:
            with db_manager.get_session() as session:
                event = session.query(Event).filter(Event.id == event_id).first()
                if not event or (event.status == EventStatus.DRAFT and event.organizer_id != requester_id):
                    raise EventNotFoundError(event_id)
            return ServiceResult.success(event)
        except Exception as e:
            return ServiceResult.from_exception(e, f"Lookup of event {event_id}")

    async def update_event(self, event_id: int, organizer_id: int, changes: EventUpdate) -> ServiceResult[Event]:
        """
        Apply a partial update.
        Date, time, venue and capacity are frozen once any ticket is sold.
        """
        try:
            updates: Dict[str, Any] = {
                field: value
                for field, value in changes.model_dump(exclude_unset=True).items()
                if value is not None or field == "description"
            }
            if "category" in updates:
                updates["category"] = EventCategory(updates["category"])

            with db_manager.get_transaction_session() as session:
                event = self._get_owned_event(session, event_id, organizer_id)

                if event.status == EventStatus.CANCELLED:
                    raise InvalidStateError("Cancelled events cannot be edited", {"event_id": event_id})

                if event.tickets_sold > 0:
                    frozen = sorted(field for field in updates if field in IMMUTABLE_AFTER_SALE)
                    if frozen:
                        raise InvalidStateError(
                            "Cannot update date, time, venue, or capacity after tickets are sold",
                            {"event_id": event_id, "fields": frozen, "tickets_sold": event.tickets_sold}
                        )

                for field, value in updates.items():
                    setattr(event, field, value)

                session.commit()
                session.refresh(event)

            await inventory_service.invalidate_cache(event_id)
            logger.info(f"Event {event_id} updated by organizer {organizer_id}: {sorted(updates)}")
            return ServiceResult.success(event)

        except Exception as e:
            return ServiceResult.from_exception(e, f"Update of event {event_id}")

    async def delete_event(self, event_id: int, organizer_id: int) -> ServiceResult[int]:
        """
        Delete an event that never sold a ticket.
        Events with sales, or with any ticket history, must be cancelled instead.

        Returns:
            ServiceResult with the deleted event id
        """
        try:
            with db_manager.get_transaction_session() as session:
                event = self._get_owned_event(session, event_id, organizer_id)

                if event.tickets_sold > 0:
                    raise InvalidStateError(
                        "Cannot delete event with sold tickets. Cancel the event instead.",
                        {"event_id": event_id, "tickets_sold": event.tickets_sold}
                    )
                if session.query(Ticket.id).filter(Ticket.event_id == event_id).first() is not None:
                    raise InvalidStateError(
                        "Cannot delete event with ticket history. Cancel the event instead.",
                        {"event_id": event_id}
                    )

                session.delete(event)
                session.commit()

            await inventory_service.invalidate_cache(event_id)
            logger.info(f"Event {event_id} deleted by organizer {organizer_id}")
            return ServiceResult.success(event_id)

        except Exception as e:
            return ServiceResult.from_exception(e, f"Deletion of event {event_id}")

    async def _change_status(
        self,
        event_id: int,
        organizer_id: int,
        allowed_from: tuple,
        target: EventStatus
    ) -> ServiceResult[Event]:
        try:
            with db_manager.get_transaction_session() as session:
                event = self._get_owned_event(session, event_id, organizer_id)
                if event.status not in allowed_from:
                    raise InvalidStateError(
                        f"Event cannot move from {event.status.value} to {target.value}",
                        {"event_id": event_id, "status": event.status.value}
                    )
                event.status = target
                session.commit()
                session.refresh(event)

            await inventory_service.invalidate_cache(event_id)
            logger.info(f"Event {event_id} is now {target.value}")
            return ServiceResult.success(event)

        except Exception as e:
            return ServiceResult.from_exception(e, f"Status change of event {event_id}")

    async def publish_event(self, event_id: int, organizer_id: int) -> ServiceResult[Event]:
        """draft -> published; the event starts accepting purchases."""
        return await self._change_status(event_id, organizer_id, (EventStatus.DRAFT,), EventStatus.PUBLISHED)

    async def cancel_event(self, event_id: int, organizer_id: int) -> ServiceResult[Event]:
        """draft or published -> cancelled; purchases stop, issued tickets are untouched."""
        return await self._change_status(
            event_id, organizer_id, (EventStatus.DRAFT, EventStatus.PUBLISHED), EventStatus.CANCELLED
        )


# Global event service instance
event_service = EventService()
