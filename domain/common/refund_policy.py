"""
Refund and return eligibility.

Tickets: refundable while the cancellation policy allows it, the ticket is not
used, cancelled or expired, and at least ``deadline_hours`` remain before the
event. The amount is ``total_amount * refund_percent / 100``. Whether money was
ever collected is the caller's concern.

Orders: returnable while delivered, not already requested, and within
``deadline_days`` of the first ``delivered`` tracking entry.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from domain.common.exceptions import RefundNotAllowedException
from domain.common.money import HUNDRED, ZERO, round_money
from domain.common.time import ensure_utc, utcnow
from domain.order.status import OrderStatus
from domain.ticket.entity import Ticket, TicketStatus

if TYPE_CHECKING:
    from domain.order.entity import Order

_SECONDS_PER_HOUR = Decimal(3600)
_SECONDS_PER_DAY = Decimal(86400)

NON_REFUNDABLE_STATUSES = frozenset({TicketStatus.USED, TicketStatus.CANCELLED, TicketStatus.EXPIRED})


def hours_until(moment: datetime, now: Optional[datetime] = None) -> Decimal:
    delta = ensure_utc(moment) - ensure_utc(now or utcnow())
    return Decimal(str(delta.total_seconds())) / _SECONDS_PER_HOUR


def days_since(moment: datetime, now: Optional[datetime] = None) -> Decimal:
    delta = ensure_utc(now or utcnow()) - ensure_utc(moment)
    return Decimal(str(delta.total_seconds())) / _SECONDS_PER_DAY


def can_refund(ticket: Ticket, now: Optional[datetime] = None) -> bool:
    policy = ticket.cancellation_policy
    if not policy.allowed:
        return False
    if ticket.status in NON_REFUNDABLE_STATUSES:
        return False
    return hours_until(ticket.event.date, now) >= policy.deadline_hours


def calculate_refund(ticket: Ticket, now: Optional[datetime] = None) -> Decimal:
    """Refund amount for ``ticket`` at ``now``; 0.00 when not refundable."""
    if not can_refund(ticket, now):
        return ZERO
    return round_money(ticket.pricing.total_amount * ticket.cancellation_policy.refund_percent / HUNDRED)


def process_refund(ticket: Ticket, refund_id: str, now: Optional[datetime] = None) -> Decimal:
    """
    Record a refund on the ticket and return the refunded amount.

    Raises:
        RefundNotAllowedException: the computed refund is zero
    """
    now = now or utcnow()
    amount = calculate_refund(ticket, now)
    if amount <= 0:
        raise RefundNotAllowedException(ticket.ticket_id)
    ticket.apply_refund(refund_id, amount, now)
    return amount


def can_return(order: "Order", now: Optional[datetime] = None) -> bool:
    if not order.return_policy.allowed:
        return False
    if order.status != OrderStatus.DELIVERED:
        return False
    if order.return_request.requested:
        return False
    if order.payment.escrow_released:
        return False
    delivered_at = order.delivered_at
    if delivered_at is None:
        return False
    return days_since(delivered_at, now) <= order.return_policy.deadline_days
