"""
Ticket aggregate - attraction/tour tickets sold with a platform fee.

Lifecycle:
    pending --(verified payment)--> confirmed --(validation scan)--> used
    confirmed --(refund requested)--> confirmed, payment refund_pending
    confirmed --(refund)--> cancelled
    pending/confirmed --(valid_until passed)--> expired

used, cancelled and expired are terminal.
"""
from __future__ import annotations

import hmac
import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException, InvalidTransitionException
from domain.common.money import to_decimal
from domain.common.time import ensure_utc, utcnow
from domain.ticket.pricing import TicketPricing


class TicketStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    USED = "used"
    EXPIRED = "expired"


class TicketPaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"


class EventType(str, Enum):
    ATTRACTION = "attraction"
    TOUR = "tour"
    ACTIVITY = "activity"
    EXPERIENCE = "experience"
    VR_TOUR = "vr_tour"


class PaymentMethod(str, Enum):
    RAZORPAY = "razorpay"
    STRIPE = "stripe"
    WALLET = "wallet"
    UPI = "upi"
    CARD = "card"


TERMINAL_STATUSES = frozenset({TicketStatus.USED, TicketStatus.CANCELLED, TicketStatus.EXPIRED})


def generate_ticket_id() -> str:
    return f"TKT{int(time.time() * 1000)}{secrets.token_hex(3).upper()}"


@dataclass
class EventDetails:
    name: str
    location: str
    date: datetime
    time: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None

    def __post_init__(self):
        self.date = ensure_utc(self.date)


@dataclass
class CancellationPolicy:
    allowed: bool = True
    refund_percent: Decimal = Decimal("100")
    deadline_hours: Decimal = Decimal("24")

    def __post_init__(self):
        self.refund_percent = to_decimal(self.refund_percent, field="refund_percent")
        self.deadline_hours = to_decimal(self.deadline_hours, field="deadline_hours")
        if not (0 <= self.refund_percent <= 100):
            raise DomainValidationException(
                f"refund_percent must be within [0, 100]: {self.refund_percent}",
                field="refund_percent",
            )
        if self.deadline_hours < 0:
            raise DomainValidationException("deadline_hours cannot be negative", field="deadline_hours")


@dataclass
class TicketPayment:
    method: PaymentMethod
    status: TicketPaymentStatus = TicketPaymentStatus.PENDING
    gateway_order_id: Optional[str] = None
    payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    refund_id: Optional[str] = None
    refunded_at: Optional[datetime] = None
    refund_amount: Optional[Decimal] = None

    def __post_init__(self):
        self.paid_at = ensure_utc(self.paid_at)
        self.refunded_at = ensure_utc(self.refunded_at)


@dataclass
class ValidationRecord:
    timestamp: datetime
    success: bool
    validated_by: Optional[str] = None
    location: Optional[dict] = None


@dataclass
class Ticket:
    """
    Ticket aggregate root.

    Pricing is computed once by ``price_ticket`` and stored as an immutable
    ``TicketPricing``; re-pricing replaces the whole block via ``reprice``.
    """

    id: Optional[int]
    ticket_id: str
    user_id: str
    event_type: EventType
    event: EventDetails
    pricing: TicketPricing
    payment: TicketPayment
    valid_until: datetime
    status: TicketStatus = TicketStatus.PENDING
    cancellation_policy: CancellationPolicy = field(default_factory=CancellationPolicy)
    qr_secret: str = field(default_factory=lambda: secrets.token_hex(32))
    scanned_at: Optional[datetime] = None
    scanned_by: Optional[str] = None
    validation_attempts: int = 0
    validation_history: list[ValidationRecord] = field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.valid_until = ensure_utc(self.valid_until)
        self.scanned_at = ensure_utc(self.scanned_at)
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def _touch(self, now: datetime) -> None:
        self.updated_at = now

    def reprice(self, pricing: TicketPricing, now: Optional[datetime] = None) -> None:
        """Swap in a freshly computed pricing block (only while unpaid)."""
        if self.status != TicketStatus.PENDING or self.payment.status != TicketPaymentStatus.PENDING:
            raise InvalidTransitionException("ticket pricing", self.status.value, "repriced")
        self.pricing = pricing
        self._touch(now or utcnow())

    def confirm_payment(self, payment_id: Optional[str] = None, now: Optional[datetime] = None) -> bool:
        """
        Mark the payment completed and the ticket confirmed.

        Only ``pending -> completed`` is a transition; an already completed
        payment is a no-op returning False.
        """
        if self.payment.status == TicketPaymentStatus.COMPLETED:
            return False
        if self.payment.status != TicketPaymentStatus.PENDING:
            raise InvalidTransitionException(
                "ticket payment", self.payment.status.value, TicketPaymentStatus.COMPLETED.value
            )
        if self.status != TicketStatus.PENDING:
            raise InvalidTransitionException("ticket", self.status.value, TicketStatus.CONFIRMED.value)

        now = now or utcnow()
        self.payment.status = TicketPaymentStatus.COMPLETED
        if payment_id:
            self.payment.payment_id = payment_id
        self.payment.paid_at = now
        self.status = TicketStatus.CONFIRMED
        self._touch(now)
        return True

    def mark_payment_failed(self, now: Optional[datetime] = None) -> bool:
        """pending -> failed; anything else is a stale event and is ignored."""
        if self.payment.status != TicketPaymentStatus.PENDING:
            return False
        self.payment.status = TicketPaymentStatus.FAILED
        self._touch(now or utcnow())
        return True

    def check_secret(self, secret: str, validated_by: Optional[str] = None, now: Optional[datetime] = None) -> bool:
        """Compare the scanned QR secret; a mismatch is counted and recorded."""
        if hmac.compare_digest(secret.encode(), self.qr_secret.encode()):
            return True
        now = now or utcnow()
        self.validation_attempts += 1
        self.validation_history.append(ValidationRecord(timestamp=now, success=False, validated_by=validated_by))
        self._touch(now)
        return False

    def mark_used(
        self,
        validated_by: Optional[str] = None,
        location: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> None:
        if self.status != TicketStatus.CONFIRMED:
            raise InvalidTransitionException("ticket", self.status.value, TicketStatus.USED.value)
        if self.payment.status == TicketPaymentStatus.REFUND_PENDING:
            raise InvalidTransitionException("ticket payment", self.payment.status.value, TicketStatus.USED.value)
        now = now or utcnow()
        self.status = TicketStatus.USED
        self.scanned_at = now
        self.scanned_by = validated_by
        self.validation_history.append(
            ValidationRecord(timestamp=now, success=True, validated_by=validated_by, location=location)
        )
        self._touch(now)

    def expire(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        if self.is_terminal or now < self.valid_until:
            return False
        self.status = TicketStatus.EXPIRED
        self._touch(now)
        return True

    def apply_refund(self, refund_id: str, amount: Decimal, now: Optional[datetime] = None) -> None:
        """Record a refund. Eligibility is decided by ``process_refund``."""
        now = now or utcnow()
        self.payment.status = TicketPaymentStatus.REFUNDED
        self.payment.refund_id = refund_id
        self.payment.refunded_at = now
        self.payment.refund_amount = amount
        self.status = TicketStatus.CANCELLED
        self._touch(now)

    def begin_refund(self, amount: Decimal, now: Optional[datetime] = None) -> None:
        """
        Reserve a gateway refund before money moves: completed -> refund_pending.

        A ticket in this state is never refunded a second time; it leaves it
        through ``apply_refund`` or ``abort_refund``.
        """
        if self.payment.status != TicketPaymentStatus.COMPLETED:
            raise InvalidTransitionException(
                "ticket payment", self.payment.status.value, TicketPaymentStatus.REFUND_PENDING.value
            )
        self.payment.status = TicketPaymentStatus.REFUND_PENDING
        self.payment.refund_amount = amount
        self._touch(now or utcnow())

    def abort_refund(self, now: Optional[datetime] = None) -> bool:
        if self.payment.status != TicketPaymentStatus.REFUND_PENDING:
            return False
        self.payment.status = TicketPaymentStatus.COMPLETED
        self.payment.refund_amount = None
        self._touch(now or utcnow())
        return True
