from ticketing.models.base import Base
from ticketing.models.event import Event, EventCategory, EventStatus
from ticketing.models.ticket import (
    LIVE_STATUSES,
    Ticket,
    TicketAuditLog,
    TicketHolding,
    TicketStatus,
)

__all__ = [
    "Base",
    "Event",
    "EventCategory",
    "EventStatus",
    "LIVE_STATUSES",
    "Ticket",
    "TicketAuditLog",
    "TicketHolding",
    "TicketStatus",
]
