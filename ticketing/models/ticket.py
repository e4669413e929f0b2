"""
Ticket models for Ticketing Service.
Tickets, the per-user holding guard and the transition audit trail.
"""

import uuid
from enum import Enum as PyEnum

from sqlalchemy import (
    Column, Integer, String, DateTime, Enum, Numeric, Text,
    ForeignKey, Index, CheckConstraint, UniqueConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ticketing.models.base import Base


class TicketStatus(PyEnum):
    """Ticket lifecycle states. Only TicketLedger moves a ticket between them."""
    VALID = "valid"
    USED = "used"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


# Statuses that count as a live holding for the one-holding-per-event rule
LIVE_STATUSES = (TicketStatus.VALID, TicketStatus.USED)


def _new_ticket_id() -> str:
    return str(uuid.uuid4())


class Ticket(Base):
    """
    An issued ticket.
    The credential is the only holder-facing lookup key and is unique across all tickets.
    """

    __tablename__ = "tickets"

    id = Column(String(36), primary_key=True, default=_new_ticket_id)

    event_id = Column(Integer, ForeignKey("events.id", ondelete="RESTRICT"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)  # References auth service
    user_email = Column(String(255), nullable=True)
    user_name = Column(String(100), nullable=True)

    price = Column(Numeric(10, 2), nullable=False)  # Snapshot at issuance
    credential = Column(String(128), nullable=False)
    status = Column(Enum(TicketStatus), default=TicketStatus.VALID, nullable=False, index=True)

    check_in_time = Column(DateTime(timezone=True), nullable=True)
    checked_in_by = Column(Integer, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    purchase_reference = Column(String(50), nullable=False, index=True)
    notes = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    event = relationship("Event", lazy="joined", innerjoin=True)
    audit_logs = relationship("TicketAuditLog", back_populates="ticket", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('credential', name='uq_ticket_credential'),
        CheckConstraint('price >= 0', name='check_ticket_price_non_negative'),
        Index('idx_ticket_event_user_status', 'event_id', 'user_id', 'status'),
    )

    def __repr__(self):
        return f"<Ticket(id={self.id}, reference='{self.purchase_reference}', status='{self.status.value}')>"

    @property
    def is_live(self) -> bool:
        return self.status in LIVE_STATUSES

    def to_dict(self) -> dict:
        """Convert ticket to dictionary representation."""
        return {
            "id": self.id,
            "event_id": self.event_id,
            "user_id": self.user_id,
            "price": float(self.price) if self.price is not None else 0.0,
            "credential": self.credential,
            "status": self.status.value if self.status else None,
            "check_in_time": self.check_in_time.isoformat() if self.check_in_time else None,
            "purchase_reference": self.purchase_reference,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


class TicketHolding(Base):
    """
    One row per (event, user) while the user holds a live ticket.
    The unique constraint makes the one-holding rule race-safe at the storage layer.
    """

    __tablename__ = "ticket_holdings"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(Integer, ForeignKey("events.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(Integer, nullable=False)
    purchase_reference = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint('event_id', 'user_id', name='uq_holding_event_user'),
    )

    def __repr__(self):
        return f"<TicketHolding(event_id={self.event_id}, user_id={self.user_id})>"


class TicketAuditLog(Base):
    """
    Audit trail for ticket issuance and transitions.
    """

    __tablename__ = "ticket_audit_logs"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(String(36), ForeignKey("tickets.id", ondelete="CASCADE"), nullable=False, index=True)

    action = Column(String(50), nullable=False)  # ISSUE, CHECK_IN, CANCEL, REFUND
    old_status = Column(String(20), nullable=True)
    new_status = Column(String(20), nullable=False)

    changed_by = Column(Integer, nullable=True)
    changed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    reason = Column(Text, nullable=True)

    ticket = relationship("Ticket", back_populates="audit_logs")

    __table_args__ = (
        Index('idx_ticket_audit_action_date', 'action', 'changed_at'),
    )

    def __repr__(self):
        return f"<TicketAuditLog(id={self.id}, ticket_id={self.ticket_id}, action='{self.action}')>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "ticket_id": self.ticket_id,
            "action": self.action,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
            "reason": self.reason,
        }
