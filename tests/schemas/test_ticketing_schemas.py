"""
Tests for ticketing request and response schemas.
"""

import pytest
from datetime import date, timedelta
from decimal import Decimal
from pydantic import ValidationError

from ticketing.models import EventStatus
from ticketing.schemas.event import AvailabilityResponse, EventCreate, EventTicketStats, EventUpdate
from ticketing.schemas.ticket import CheckInRequest, PurchaseRequest


def event_data(**overrides):
    data = {
        "title": "Jazz Night",
        "event_date": date.today() + timedelta(days=3),
        "event_time": "21:00",
        "venue": "Blue Room",
        "capacity": 50,
        "price": Decimal("15.00"),
    }
    data.update(overrides)
    return data


class TestPurchaseRequestSchema:

    def test_quantity_defaults_to_one(self):
        assert PurchaseRequest(event_id=1).quantity == 1

    def test_quantity_bounds_are_left_to_the_service(self):
        """Out-of-range quantities reach the issuance service unchanged."""
        assert PurchaseRequest(event_id=1, quantity=11).quantity == 11

    def test_event_id_must_be_positive(self):
        with pytest.raises(ValidationError) as exc_info:
            PurchaseRequest(event_id=0)
        assert "event_id" in str(exc_info.value)


class TestCheckInRequestSchema:

    def test_credential_is_stripped(self):
        assert CheckInRequest(credential="  abc.def  ").credential == "abc.def"

    def test_blank_credential(self):
        with pytest.raises(ValidationError):
            CheckInRequest(credential="   ")


class TestEventCreateSchema:

    def test_valid_event(self):
        event = EventCreate(**event_data())
        assert event.category.value == "other"
        assert event.allow_refunds is False

    def test_today_is_allowed(self):
        assert EventCreate(**event_data(event_date=date.today())).event_date == date.today()

    def test_past_date(self):
        with pytest.raises(ValidationError) as exc_info:
            EventCreate(**event_data(event_date=date.today() - timedelta(days=1)))
        assert "Event date must be in the future" in str(exc_info.value)

    @pytest.mark.parametrize("event_time", ["24:00", "7pm", "12:60"])
    def test_invalid_time(self, event_time):
        with pytest.raises(ValidationError):
            EventCreate(**event_data(event_time=event_time))

    @pytest.mark.parametrize("capacity", [0, 50001])
    def test_capacity_bounds(self, capacity):
        with pytest.raises(ValidationError):
            EventCreate(**event_data(capacity=capacity))

    def test_price_precision(self):
        with pytest.raises(ValidationError):
            EventCreate(**event_data(price=Decimal("9.999")))


class TestEventUpdateSchema:

    def test_partial_update_only_sets_given_fields(self):
        update = EventUpdate(title="Late Jazz")
        assert update.model_dump(exclude_unset=True) == {"title": "Late Jazz"}

    def test_update_validates_time(self):
        with pytest.raises(ValidationError):
            EventUpdate(event_time="25:00")


class TestInventorySchemas:

    def test_availability_accepts_cached_status_string(self):
        response = AvailabilityResponse(
            event_id=1, capacity=10, tickets_sold=4, available_tickets=6, status="published"
        )
        assert response.status == EventStatus.PUBLISHED

    def test_stats_from_counts(self):
        stats = EventTicketStats.from_counts({"valid": 3, "used": 1, "total": 4, "unknown": 9})
        assert stats.model_dump() == {"total": 4, "valid": 3, "used": 1, "cancelled": 0, "refunded": 0}
