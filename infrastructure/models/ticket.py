"""
Ticket ORM model.
Table mapping only; the rules live in domain.ticket.entity.Ticket.
"""
from sqlalchemy import (
    Boolean, Column, DateTime, Index, Integer, JSON, Numeric, String, Text,
)
from datetime import datetime, timezone

from .base import Base


class TicketModel(Base):
    __tablename__ = "tickets"

    id = Column(Integer, primary_key=True, index=True)
    ticket_id = Column(String(40), unique=True, index=True, nullable=False)
    user_id = Column(String(64), index=True, nullable=False)
    event_type = Column(String(20), nullable=False)

    # event details
    event_name = Column(String(200), nullable=False)
    event_location = Column(String(200), nullable=False)
    event_date = Column(DateTime(timezone=True), nullable=False)
    event_time = Column(String(20), nullable=True)
    event_duration = Column(String(50), nullable=True)
    event_description = Column(Text, nullable=True)
    event_category = Column(String(50), nullable=True)

    # pricing (Numeric keeps exact minor units)
    base_price = Column(Numeric(precision=15, scale=2), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    fee_rate_percent = Column(Numeric(precision=7, scale=4), nullable=False)
    tax_rate_percent = Column(Numeric(precision=7, scale=4), nullable=False)
    discount = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    subtotal = Column(Numeric(precision=15, scale=2), nullable=False)
    platform_fee = Column(Numeric(precision=15, scale=2), nullable=False)
    tax = Column(Numeric(precision=15, scale=2), nullable=False)
    total_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")

    # payment
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default="pending", index=True)
    gateway_order_id = Column(String(100), nullable=True, index=True)
    payment_id = Column(String(100), nullable=True, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    refund_id = Column(String(100), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refund_amount = Column(Numeric(precision=15, scale=2), nullable=True)

    # lifecycle
    status = Column(String(20), nullable=False, default="pending")
    valid_until = Column(DateTime(timezone=True), nullable=False)
    cancellation_allowed = Column(Boolean, nullable=False, default=True)
    refund_percent = Column(Numeric(precision=7, scale=4), nullable=False, default=100)
    deadline_hours = Column(Numeric(precision=10, scale=2), nullable=False, default=24)

    # validation
    qr_secret = Column(String(128), nullable=False)
    scanned_at = Column(DateTime(timezone=True), nullable=True)
    scanned_by = Column(String(64), nullable=True)
    validation_attempts = Column(Integer, nullable=False, default=0)
    validation_history = Column(JSON, nullable=False, default=list)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
        index=True,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    __table_args__ = (
        Index("ix_tickets_user_created", "user_id", "created_at"),
        Index("ix_tickets_status_valid_until", "status", "valid_until"),
    )

    def __repr__(self):
        return (
            f"<TicketModel(ticket_id='{self.ticket_id}', user_id='{self.user_id}', "
            f"total={self.total_amount}, status='{self.status}')>"
        )
