from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.common.exceptions import RefundNotAllowedException
from domain.common.refund_policy import calculate_refund, can_refund, hours_until, process_refund
from domain.ticket.entity import (
    CancellationPolicy,
    EventDetails,
    EventType,
    PaymentMethod,
    Ticket,
    TicketPayment,
    TicketPaymentStatus,
    TicketStatus,
)
from domain.ticket.pricing import price_ticket

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _ticket(hours_ahead: float, **policy) -> Ticket:
    event_date = NOW + timedelta(hours=hours_ahead)
    return Ticket(
        id=1,
        ticket_id="TKT1",
        user_id="u1",
        event_type=EventType.TOUR,
        event=EventDetails(name="Old Town Walk", location="Jaipur", date=event_date),
        pricing=price_ticket(Decimal("100"), 2),
        payment=TicketPayment(method=PaymentMethod.RAZORPAY),
        valid_until=event_date,
        cancellation_policy=CancellationPolicy(**policy),
    )


def _paid_ticket(hours_ahead: float, **policy) -> Ticket:
    ticket = _ticket(hours_ahead, **policy)
    ticket.confirm_payment("pay_1", now=NOW)
    return ticket


def test_full_refund_well_before_event():
    ticket = _paid_ticket(48)
    assert can_refund(ticket, NOW)
    assert calculate_refund(ticket, NOW) == Decimal("247.80")


def test_partial_refund_percent():
    ticket = _paid_ticket(48, refund_percent=Decimal("50"))
    assert calculate_refund(ticket, NOW) == Decimal("123.90")


def test_deadline_boundary_is_inclusive():
    ticket = _paid_ticket(24)
    assert hours_until(ticket.event.date, NOW) == Decimal(24)
    assert calculate_refund(ticket, NOW) == Decimal("247.80")
    assert calculate_refund(ticket, NOW + timedelta(seconds=1)) == Decimal("0.00")


def test_no_refund_when_policy_disallows():
    assert calculate_refund(_paid_ticket(100, allowed=False), NOW) == Decimal("0.00")


def test_policy_ignores_payment_state():
    ticket = _ticket(48, refund_percent=Decimal("100"), deadline_hours=Decimal("24"))
    assert ticket.payment.status == TicketPaymentStatus.PENDING
    assert can_refund(ticket, NOW)
    assert calculate_refund(ticket, NOW) == Decimal("247.80")


def test_no_refund_for_used_ticket():
    used = _paid_ticket(48)
    used.mark_used(now=NOW)
    assert calculate_refund(used, NOW) == Decimal("0.00")


def test_process_refund_records_and_cancels():
    ticket = _paid_ticket(48)
    amount = process_refund(ticket, "rfnd_1", NOW)
    assert amount == Decimal("247.80")
    assert ticket.status == TicketStatus.CANCELLED
    assert ticket.payment.status == TicketPaymentStatus.REFUNDED
    assert ticket.payment.refund_id == "rfnd_1"
    assert ticket.payment.refund_amount == amount

    with pytest.raises(RefundNotAllowedException):
        process_refund(ticket, "rfnd_2", NOW)


def test_process_refund_too_late():
    ticket = _paid_ticket(2)
    with pytest.raises(RefundNotAllowedException) as exc_info:
        process_refund(ticket, "rfnd_1", NOW)
    assert exc_info.value.reason == "RefundNotAllowed"
    assert ticket.status == TicketStatus.CONFIRMED
