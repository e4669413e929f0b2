"""
Tests for IssuanceService.purchase: preconditions, atomic batch issuance,
credential uniqueness and post-commit side effects.
"""

import json
import re
import pytest
from decimal import Decimal
from unittest.mock import patch
from sqlalchemy.exc import OperationalError

from ticketing.core.errors import ErrorKind
from ticketing.db.database import db_manager
from ticketing.models import Event, EventStatus, Ticket, TicketAuditLog, TicketHolding, TicketStatus
from ticketing.services.cancellation_service import cancellation_service
from ticketing.services.credential_encoder import credential_encoder
from ticketing.services.issuance_service import issuance_service
from ticketing.services.notification_service import PURCHASE_CONFIRMATION_TASK
from ticketing.services.ticket_ledger import ticket_ledger

BUYER_ID = 42


def snapshot(event_id: int):
    """Sold counter, ticket count and holding count for an event."""
    with db_manager.get_session() as session:
        tickets_sold = session.query(Event.tickets_sold).filter(Event.id == event_id).scalar()
        tickets = session.query(Ticket).filter(Ticket.event_id == event_id).count()
        holdings = session.query(TicketHolding).filter(TicketHolding.event_id == event_id).count()
    return tickets_sold, tickets, holdings


class TestPurchaseSuccess:

    @pytest.mark.asyncio
    async def test_batch_purchase(self, make_event):
        event = make_event(capacity=10)

        result = await issuance_service.purchase(event.id, BUYER_ID, 2, "buyer@example.com", "Bea Buyer")

        assert result.ok
        outcome = result.value
        assert outcome.quantity == 2
        assert outcome.event_id == event.id
        assert {ticket.purchase_reference for ticket in outcome.tickets} == {outcome.purchase_reference}
        assert all(ticket.status == TicketStatus.VALID for ticket in outcome.tickets)
        assert all(ticket.user_id == BUYER_ID for ticket in outcome.tickets)
        assert len({ticket.credential for ticket in outcome.tickets}) == 2
        assert snapshot(event.id) == (2, 2, 1)

    @pytest.mark.asyncio
    async def test_purchase_reference_format(self, make_event):
        event = make_event()
        result = await issuance_service.purchase(event.id, BUYER_ID, 1)
        assert re.match(r"^TXN-\d{13}-[0-9A-F]{16}$", result.value.purchase_reference)

    def test_purchase_references_are_distinct_within_one_millisecond(self):
        with patch("ticketing.services.issuance_service.time.time", return_value=1718000000.0):
            references = {issuance_service._generate_purchase_reference() for _ in range(200)}
        assert len(references) == 200
        assert all(reference.startswith("TXN-1718000000000-") for reference in references)

    @pytest.mark.asyncio
    async def test_tickets_carry_price_snapshot_and_buyer(self, make_event):
        event = make_event(price=Decimal("30.00"))
        result = await issuance_service.purchase(event.id, BUYER_ID, 1, "buyer@example.com", "Bea Buyer")
        ticket = result.value.tickets[0]
        assert float(ticket.price) == 30.0
        assert ticket.user_email == "buyer@example.com"
        assert ticket.user_name == "Bea Buyer"

    @pytest.mark.asyncio
    async def test_credentials_verify_to_their_ticket(self, make_event):
        event = make_event()
        result = await issuance_service.purchase(event.id, BUYER_ID, 3)
        for ticket in result.value.tickets:
            assert credential_encoder.verify(ticket.credential) == ticket.id

    @pytest.mark.asyncio
    async def test_issue_is_audited(self, make_event, db_session):
        event = make_event()
        result = await issuance_service.purchase(event.id, BUYER_ID, 2)
        actions = db_session.query(TicketAuditLog.action).all()
        assert sorted(action for (action,) in actions) == ["ISSUE", "ISSUE"]
        assert {ticket.id for ticket in result.value.tickets} == {
            ticket_id for (ticket_id,) in db_session.query(TicketAuditLog.ticket_id).all()
        }

    @pytest.mark.asyncio
    async def test_buying_the_last_seats(self, make_event):
        event = make_event(capacity=5, tickets_sold=2)
        result = await issuance_service.purchase(event.id, BUYER_ID, 3)
        assert result.ok
        assert snapshot(event.id)[0] == 5


class TestPurchasePreconditions:

    @pytest.mark.asyncio
    @pytest.mark.parametrize("quantity", [0, 11, -3])
    async def test_quantity_checked_before_storage(self, make_event, quantity):
        event = make_event()
        with patch.object(db_manager, "get_transaction_session") as mock_session:
            result = await issuance_service.purchase(event.id, BUYER_ID, quantity)
        assert result.error.kind == ErrorKind.VALIDATION_ERROR
        mock_session.assert_not_called()

    @pytest.mark.asyncio
    async def test_quantity_error_wins_over_missing_event(self):
        result = await issuance_service.purchase(999, BUYER_ID, 11)
        assert result.error.kind == ErrorKind.VALIDATION_ERROR

    @pytest.mark.asyncio
    async def test_missing_event(self):
        result = await issuance_service.purchase(999, BUYER_ID, 1)
        assert result.error.kind == ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [EventStatus.DRAFT, EventStatus.CANCELLED])
    async def test_unpublished_event_leaves_inventory_untouched(self, make_event, status):
        event = make_event(status=status, capacity=10)
        result = await issuance_service.purchase(event.id, BUYER_ID, 1)
        assert result.error.kind == ErrorKind.INVALID_STATE
        assert snapshot(event.id) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_capacity_exceeded_reports_available(self, make_event):
        event = make_event(capacity=3, tickets_sold=2)
        result = await issuance_service.purchase(event.id, BUYER_ID, 2)
        assert result.error.kind == ErrorKind.CAPACITY_EXCEEDED
        assert result.error.details["available"] == 1
        assert snapshot(event.id) == (2, 0, 0)

    @pytest.mark.asyncio
    async def test_second_purchase_by_same_user_is_duplicate(self, make_event):
        event = make_event(capacity=10)
        first = await issuance_service.purchase(event.id, BUYER_ID, 2)
        assert first.ok

        second = await issuance_service.purchase(event.id, BUYER_ID, 1)

        assert second.error.kind == ErrorKind.DUPLICATE_HOLDING
        assert snapshot(event.id) == (2, 2, 1)

    @pytest.mark.asyncio
    async def test_duplicate_is_checked_before_capacity(self, make_event):
        event = make_event(capacity=1)
        assert (await issuance_service.purchase(event.id, BUYER_ID, 1)).ok
        result = await issuance_service.purchase(event.id, BUYER_ID, 1)
        assert result.error.kind == ErrorKind.DUPLICATE_HOLDING

    @pytest.mark.asyncio
    async def test_used_ticket_still_blocks_new_purchase(self, make_event):
        event = make_event(capacity=10)
        outcome = (await issuance_service.purchase(event.id, BUYER_ID, 1)).value
        with db_manager.get_transaction_session() as session:
            ticket_ledger.mark_used(session, ticket_ledger.get_by_id(session, outcome.tickets[0].id), event.organizer_id)
            session.commit()

        result = await issuance_service.purchase(event.id, BUYER_ID, 1)
        assert result.error.kind == ErrorKind.DUPLICATE_HOLDING

    @pytest.mark.asyncio
    async def test_user_may_buy_again_after_cancelling_everything(self, make_event):
        event = make_event(capacity=10)
        outcome = (await issuance_service.purchase(event.id, BUYER_ID, 2)).value
        for ticket in outcome.tickets:
            assert (await cancellation_service.cancel(ticket.id, BUYER_ID)).ok
        assert snapshot(event.id) == (0, 2, 0)

        result = await issuance_service.purchase(event.id, BUYER_ID, 1)
        assert result.ok
        assert snapshot(event.id) == (1, 3, 1)


class TestPurchaseAtomicity:

    @pytest.mark.asyncio
    async def test_storage_fault_mid_batch_rolls_everything_back(self, make_event):
        event = make_event(capacity=10)
        real_issue = ticket_ledger.issue
        calls = []

        def failing_issue(*args, **kwargs):
            calls.append(1)
            if len(calls) == 2:
                raise OperationalError("INSERT INTO tickets", {}, Exception("disk I/O error"))
            return real_issue(*args, **kwargs)

        with patch.object(ticket_ledger, "issue", side_effect=failing_issue):
            result = await issuance_service.purchase(event.id, BUYER_ID, 3)

        assert result.error.kind == ErrorKind.UNAVAILABLE
        assert snapshot(event.id) == (0, 0, 0)

    @pytest.mark.asyncio
    async def test_failed_purchase_sends_nothing(self, make_event, mock_celery_app, mock_redis_manager):
        event = make_event(status=EventStatus.DRAFT)
        await issuance_service.purchase(event.id, BUYER_ID, 1, "buyer@example.com")
        mock_celery_app.send_task.assert_not_called()
        mock_redis_manager.publish.assert_not_awaited()


class TestCredentialUniqueness:

    @pytest.mark.asyncio
    async def test_colliding_credential_is_regenerated(self, make_event):
        event = make_event(capacity=10)
        existing = (await issuance_service.purchase(event.id, 1, 1)).value.tickets[0].credential

        with patch.object(credential_encoder, "mint", side_effect=[existing, "fresh-credential"]):
            result = await issuance_service.purchase(event.id, 2, 1)

        assert result.ok
        assert result.value.tickets[0].credential == "fresh-credential"

    @pytest.mark.asyncio
    async def test_collisions_within_one_batch_are_regenerated(self, make_event):
        event = make_event(capacity=10)
        with patch.object(credential_encoder, "mint", side_effect=["same", "same", "other"]):
            result = await issuance_service.purchase(event.id, BUYER_ID, 2)
        assert sorted(ticket.credential for ticket in result.value.tickets) == ["other", "same"]

    @pytest.mark.asyncio
    async def test_constraint_violation_retries_then_gives_up(self, make_event, service_configs):
        event = make_event(capacity=10)
        existing = (await issuance_service.purchase(event.id, 1, 1)).value.tickets[0].credential

        with patch.object(ticket_ledger, "credential_exists", return_value=False), \
             patch.object(credential_encoder, "mint", return_value=existing) as mock_mint:
            result = await issuance_service.purchase(event.id, 2, 1)

        assert result.error.kind == ErrorKind.UNAVAILABLE
        assert result.error.details == {"attempts": service_configs["max_retry_attempts"]}
        assert mock_mint.call_count == service_configs["max_retry_attempts"]
        assert snapshot(event.id) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_constraint_violation_recovers_on_retry(self, make_event):
        event = make_event(capacity=10)
        existing = (await issuance_service.purchase(event.id, 1, 1)).value.tickets[0].credential

        with patch.object(ticket_ledger, "credential_exists", return_value=False), \
             patch.object(credential_encoder, "mint", side_effect=[existing, "second-try"]):
            result = await issuance_service.purchase(event.id, 2, 1)

        assert result.ok
        assert result.value.tickets[0].credential == "second-try"
        assert snapshot(event.id) == (2, 2, 2)


class TestPurchaseSideEffects:

    @pytest.mark.asyncio
    async def test_confirmation_is_queued(self, make_event, mock_celery_app):
        event = make_event()
        result = await issuance_service.purchase(event.id, BUYER_ID, 2, "buyer@example.com", "Bea Buyer")

        assert result.value.notification_dispatched is True
        mock_celery_app.send_task.assert_called_once()
        args, kwargs = mock_celery_app.send_task.call_args
        assert args[0] == PURCHASE_CONFIRMATION_TASK
        user_email, payload = kwargs["args"]
        assert user_email == "buyer@example.com"
        assert payload["eventTitle"] == event.title
        assert payload["userName"] == "Bea Buyer"
        assert payload["purchaseReference"] == result.value.purchase_reference
        assert len(payload["tickets"]) == 2
        assert kwargs["queue"] == "email_notifications"

    @pytest.mark.asyncio
    async def test_missing_email_does_not_fail_purchase(self, make_event, mock_celery_app):
        event = make_event()
        result = await issuance_service.purchase(event.id, BUYER_ID, 1)
        assert result.ok
        assert result.value.notification_dispatched is False
        mock_celery_app.send_task.assert_not_called()

    @pytest.mark.asyncio
    async def test_broker_failure_does_not_fail_purchase(self, make_event, mock_celery_app):
        event = make_event()
        mock_celery_app.send_task.side_effect = ConnectionError("broker down")
        result = await issuance_service.purchase(event.id, BUYER_ID, 1, "buyer@example.com")
        assert result.ok
        assert result.value.notification_dispatched is False
        assert snapshot(event.id) == (1, 1, 1)

    @pytest.mark.asyncio
    async def test_purchase_is_published_and_cache_dropped(self, make_event, mock_redis_manager):
        event = make_event()
        result = await issuance_service.purchase(event.id, BUYER_ID, 2)

        channel, message = mock_redis_manager.publish.await_args.args
        assert channel == "ticketing:tickets:purchased"
        body = json.loads(message)
        assert body["type"] == "TicketsPurchased"
        assert body["purchase_reference"] == result.value.purchase_reference
        assert body["quantity"] == 2
        mock_redis_manager.delete.assert_awaited_with(f"availability:event:{event.id}")

    @pytest.mark.asyncio
    async def test_publish_failure_does_not_fail_purchase(self, make_event, mock_redis_manager):
        event = make_event()
        mock_redis_manager.publish.side_effect = RuntimeError("redis down")
        result = await issuance_service.purchase(event.id, BUYER_ID, 1)
        assert result.ok
