"""
Event Publisher Service for Ticketing Service.
Publishes ticket lifecycle events to Redis after the owning transaction commits.
"""

import json
import logging
from typing import List, Dict, Any
from ..db.redis_client import RedisManager

logger = logging.getLogger(__name__)


def _ticket_data(ticket) -> Dict[str, Any]:
    return {
        "id": ticket.id,
        "event_id": ticket.event_id,
        "user_id": ticket.user_id,
        "status": ticket.status.value if ticket.status else None,
        "price": float(ticket.price) if ticket.price is not None else 0.0,
        "purchase_reference": ticket.purchase_reference,
        "check_in_time": ticket.check_in_time.isoformat() if ticket.check_in_time else None,
    }


class TicketEventPublisher:
    """
    Publishes ticket events to Redis channels for inter-service communication.
    """

    def __init__(self, redis_manager: RedisManager):
        self.redis_manager = redis_manager
        self.channel_prefix = "ticketing:tickets"

    async def _publish(self, suffix: str, message: Dict[str, Any]) -> bool:
        try:
            channel = f"{self.channel_prefix}:{suffix}"
            await self.redis_manager.publish(channel, json.dumps(message, default=str))
            logger.info(f"Published {message['type']} on {channel}")
            return True
        except Exception as e:
            logger.error(f"Failed to publish {message.get('type')}: {e}")
            return False

    async def publish_tickets_purchased(self, purchase_reference: str, tickets: List) -> bool:
        """
        Publish one message for a committed purchase batch.

        Args:
            purchase_reference: Shared reference of the batch
            tickets: Tickets minted in the batch
        """
        if not tickets:
            return False
        first = tickets[0]
        return await self._publish("purchased", {
            "type": "TicketsPurchased",
            "purchase_reference": purchase_reference,
            "event_id": first.event_id,
            "user_id": first.user_id,
            "quantity": len(tickets),
            "tickets": [_ticket_data(ticket) for ticket in tickets],
        })

    async def publish_ticket_checked_in(self, ticket) -> bool:
        return await self._publish("checked_in", {
            "type": "TicketCheckedIn",
            "ticket_id": ticket.id,
            "event_id": ticket.event_id,
            "checked_in_by": ticket.checked_in_by,
            "ticket_data": _ticket_data(ticket),
        })

    async def publish_ticket_cancelled(self, ticket, released: bool) -> bool:
        return await self._publish("cancelled", {
            "type": "TicketCancelled",
            "ticket_id": ticket.id,
            "event_id": ticket.event_id,
            "capacity_released": released,
            "ticket_data": _ticket_data(ticket),
        })

    async def publish_ticket_refunded(self, ticket, released: bool) -> bool:
        return await self._publish("refunded", {
            "type": "TicketRefunded",
            "ticket_id": ticket.id,
            "event_id": ticket.event_id,
            "capacity_released": released,
            "ticket_data": _ticket_data(ticket),
        })
