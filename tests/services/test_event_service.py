"""
Tests for EventService: organizer-side event lifecycle.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal

from ticketing.core.errors import ErrorKind
from ticketing.models import EventCategory, EventStatus
from ticketing.schemas.event import EventCreate, EventUpdate
from ticketing.services.cancellation_service import cancellation_service
from ticketing.services.event_service import event_service
from ticketing.services.issuance_service import issuance_service

ORGANIZER_ID = 500
OTHER_ORGANIZER_ID = 501


@pytest.fixture
def event_create():
    return EventCreate(
        title="Data Conference",
        description="Two tracks",
        event_date=date.today() + timedelta(days=7),
        event_time="09:30",
        venue="Expo Center",
        category="conference",
        capacity=200,
        price=Decimal("99.00"),
    )


class TestCreateAndRead:

    @pytest.mark.asyncio
    async def test_create_event_in_draft(self, event_create):
        result = await event_service.create_event(event_create, ORGANIZER_ID, "Olive Organizer")

        assert result.ok
        event = result.value
        assert event.id is not None
        assert event.status == EventStatus.DRAFT
        assert event.category == EventCategory.CONFERENCE
        assert event.tickets_sold == 0
        assert event.organizer_id == ORGANIZER_ID
        assert event.organizer_name == "Olive Organizer"
        assert event.allow_refunds is False

    @pytest.mark.asyncio
    async def test_draft_visible_only_to_organizer(self, event_create):
        event = (await event_service.create_event(event_create, ORGANIZER_ID)).value

        assert (await event_service.get_event(event.id, ORGANIZER_ID)).ok
        hidden = await event_service.get_event(event.id, 7)
        assert hidden.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_published_event_visible_to_everyone(self, make_event):
        event = make_event()
        result = await event_service.get_event(event.id, 7)
        assert result.value.id == event.id

    @pytest.mark.asyncio
    async def test_missing_event(self):
        result = await event_service.get_event(12345, ORGANIZER_ID)
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestStatusChanges:

    @pytest.mark.asyncio
    async def test_publish_draft(self, make_event):
        event = make_event(status=EventStatus.DRAFT)
        result = await event_service.publish_event(event.id, ORGANIZER_ID)
        assert result.value.status == EventStatus.PUBLISHED

        again = await event_service.publish_event(event.id, ORGANIZER_ID)
        assert again.error.kind == ErrorKind.INVALID_STATE

    @pytest.mark.asyncio
    async def test_publish_requires_owner(self, make_event):
        event = make_event(status=EventStatus.DRAFT)
        result = await event_service.publish_event(event.id, OTHER_ORGANIZER_ID)
        assert result.error.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_cancelled_event_stops_sales(self, make_event):
        event = make_event()
        assert (await issuance_service.purchase(event.id, 1, 1)).ok

        result = await event_service.cancel_event(event.id, ORGANIZER_ID)
        assert result.value.status == EventStatus.CANCELLED
        assert result.value.tickets_sold == 1

        purchase = await issuance_service.purchase(event.id, 2, 1)
        assert purchase.error.kind == ErrorKind.INVALID_STATE

    @pytest.mark.asyncio
    async def test_cancelled_event_cannot_be_republished(self, make_event):
        event = make_event(status=EventStatus.CANCELLED)
        result = await event_service.publish_event(event.id, ORGANIZER_ID)
        assert result.error.kind == ErrorKind.INVALID_STATE

    @pytest.mark.asyncio
    async def test_status_change_drops_availability_cache(self, make_event, mock_redis_manager):
        event = make_event(status=EventStatus.DRAFT)
        await event_service.publish_event(event.id, ORGANIZER_ID)
        mock_redis_manager.delete.assert_awaited_with(f"availability:event:{event.id}")


class TestUpdate:

    @pytest.mark.asyncio
    async def test_update_before_sales(self, make_event):
        event = make_event(capacity=10)
        result = await event_service.update_event(
            event.id, ORGANIZER_ID, EventUpdate(capacity=20, venue="Bigger Hall", title="Renamed")
        )
        assert result.value.capacity == 20
        assert result.value.venue == "Bigger Hall"
        assert result.value.title == "Renamed"

    @pytest.mark.asyncio
    async def test_frozen_fields_after_sales(self, make_event):
        event = make_event(capacity=10)
        assert (await issuance_service.purchase(event.id, 1, 1)).ok

        result = await event_service.update_event(event.id, ORGANIZER_ID, EventUpdate(capacity=50, venue="Elsewhere"))

        assert result.error.kind == ErrorKind.INVALID_STATE
        assert result.error.details["fields"] == ["capacity", "venue"]

    @pytest.mark.asyncio
    async def test_free_fields_after_sales(self, make_event):
        event = make_event(capacity=10)
        assert (await issuance_service.purchase(event.id, 1, 1)).ok

        result = await event_service.update_event(event.id, ORGANIZER_ID, EventUpdate(title="New title"))

        assert result.ok
        assert result.value.title == "New title"
        assert result.value.tickets_sold == 1

    @pytest.mark.asyncio
    async def test_description_can_be_cleared(self, make_event):
        event = make_event()
        result = await event_service.update_event(event.id, ORGANIZER_ID, EventUpdate(description=None))
        assert result.value.description is None

    @pytest.mark.asyncio
    async def test_unset_none_fields_are_ignored(self, make_event):
        event = make_event()
        result = await event_service.update_event(event.id, ORGANIZER_ID, EventUpdate(title=None, venue="Annex"))
        assert result.value.title == event.title
        assert result.value.venue == "Annex"

    @pytest.mark.asyncio
    async def test_update_requires_owner(self, make_event):
        event = make_event()
        result = await event_service.update_event(event.id, OTHER_ORGANIZER_ID, EventUpdate(title="Mine now"))
        assert result.error.kind == ErrorKind.FORBIDDEN

    @pytest.mark.asyncio
    async def test_cancelled_event_cannot_be_edited(self, make_event):
        event = make_event(status=EventStatus.CANCELLED)
        result = await event_service.update_event(event.id, ORGANIZER_ID, EventUpdate(title="Too late"))
        assert result.error.kind == ErrorKind.INVALID_STATE

    @pytest.mark.asyncio
    async def test_update_missing_event(self):
        result = await event_service.update_event(999, ORGANIZER_ID, EventUpdate(title="x"))
        assert result.error.kind == ErrorKind.NOT_FOUND


class TestDelete:

    @pytest.mark.asyncio
    async def test_delete_unsold_event(self, make_event, mock_redis_manager):
        event = make_event(status=EventStatus.DRAFT)

        result = await event_service.delete_event(event.id, ORGANIZER_ID)

        assert result.ok
        assert result.value == event.id
        assert (await event_service.get_event(event.id, ORGANIZER_ID)).error.kind == ErrorKind.NOT_FOUND
        mock_redis_manager.delete.assert_awaited_with(f"availability:event:{event.id}")

    @pytest.mark.asyncio
    async def test_delete_requires_owner(self, make_event):
        event = make_event()

        result = await event_service.delete_event(event.id, OTHER_ORGANIZER_ID)

        assert result.error.kind == ErrorKind.FORBIDDEN
        assert (await event_service.get_event(event.id)).ok

    @pytest.mark.asyncio
    async def test_delete_refused_after_sales(self, make_event):
        event = make_event(capacity=10)
        assert (await issuance_service.purchase(event.id, 42, 1)).ok

        result = await event_service.delete_event(event.id, ORGANIZER_ID)

        assert result.error.kind == ErrorKind.INVALID_STATE
        assert result.error.message == "Cannot delete event with sold tickets. Cancel the event instead."
        assert result.error.details["tickets_sold"] == 1
        assert (await event_service.get_event(event.id)).value.tickets_sold == 1

    @pytest.mark.asyncio
    async def test_delete_refused_with_ticket_history(self, make_event):
        """A fully cancelled event still has ledger rows that must be kept."""
        event = make_event(capacity=10)
        purchase = await issuance_service.purchase(event.id, 42, 1)
        ticket_id = purchase.value.tickets[0].id
        assert (await cancellation_service.cancel(ticket_id, 42)).ok

        result = await event_service.delete_event(event.id, ORGANIZER_ID)

        assert result.error.kind == ErrorKind.INVALID_STATE
        assert (await event_service.get_event(event.id)).ok

    @pytest.mark.asyncio
    async def test_delete_missing_event(self):
        result = await event_service.delete_event(999, ORGANIZER_ID)
        assert result.error.kind == ErrorKind.NOT_FOUND
