"""
Marketplace order aggregate - commission-based sales held in escrow.
"""
from __future__ import annotations

import secrets
import time
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional

from domain.common.exceptions import (
    DomainValidationException,
    InvalidTransitionException,
    ReturnNotAllowedException,
)
from domain.common.money import to_decimal
from domain.common.refund_policy import can_return
from domain.common.time import ensure_utc, utcnow
from domain.order.escrow import TERMINAL_STATUSES, ensure_transition
from domain.order.pricing import OrderPricing
from domain.order.status import (
    OrderPaymentMethod,
    OrderPaymentStatus,
    OrderStatus,
    PayoutMethod,
    PayoutStatus,
    ReturnStatus,
)


def generate_order_id() -> str:
    return f"ORD{int(time.time() * 1000)}{secrets.token_hex(3).upper()}"


@dataclass
class OrderItem:
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal = Decimal("0.00")
    description: Optional[str] = None
    category: Optional[str] = None
    artisan_name: Optional[str] = None
    village: Optional[str] = None


@dataclass
class OrderPayment:
    method: OrderPaymentMethod
    status: OrderPaymentStatus = OrderPaymentStatus.PENDING
    gateway_order_id: Optional[str] = None
    payment_id: Optional[str] = None
    paid_at: Optional[datetime] = None
    escrow_released: bool = False
    escrow_released_at: Optional[datetime] = None
    refund_id: Optional[str] = None
    refunded_at: Optional[datetime] = None
    refund_amount: Optional[Decimal] = None
    # cancelled or returned: the transition a refund_pending payment completes
    refund_target: Optional[OrderStatus] = None

    def __post_init__(self):
        self.paid_at = ensure_utc(self.paid_at)
        self.escrow_released_at = ensure_utc(self.escrow_released_at)
        self.refunded_at = ensure_utc(self.refunded_at)


@dataclass
class TrackingEntry:
    status: str
    timestamp: datetime
    location: Optional[str] = None
    notes: Optional[str] = None

    def __post_init__(self):
        self.timestamp = ensure_utc(self.timestamp)


@dataclass
class Tracking:
    tracking_number: Optional[str] = None
    courier: Optional[str] = None
    estimated_delivery: Optional[datetime] = None
    status_history: list[TrackingEntry] = field(default_factory=list)


@dataclass
class VendorPayout:
    amount: Decimal
    status: PayoutStatus = PayoutStatus.PENDING
    paid_at: Optional[datetime] = None
    payout_id: Optional[str] = None
    payout_method: Optional[PayoutMethod] = None


@dataclass
class ReturnPolicy:
    allowed: bool = True
    deadline_days: Decimal = Decimal("7")

    def __post_init__(self):
        self.deadline_days = to_decimal(self.deadline_days, field="deadline_days")


@dataclass
class ReturnRequest:
    requested: bool = False
    requested_at: Optional[datetime] = None
    reason: Optional[str] = None
    status: Optional[ReturnStatus] = None


@dataclass
class Order:
    """Order aggregate root; status moves only through ``escrow.ensure_transition``."""

    id: Optional[int]
    order_id: str
    customer_id: str
    vendor_id: str
    items: list[OrderItem]
    pricing: OrderPricing
    payment: OrderPayment
    vendor_payout: VendorPayout
    status: OrderStatus = OrderStatus.PENDING
    shipping_address: dict = field(default_factory=dict)
    tracking: Tracking = field(default_factory=Tracking)
    return_policy: ReturnPolicy = field(default_factory=ReturnPolicy)
    return_request: ReturnRequest = field(default_factory=ReturnRequest)
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)
        if self.shipping_address is None:
            self.shipping_address = {}

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def delivered_at(self) -> Optional[datetime]:
        for entry in self.tracking.status_history:
            if entry.status == OrderStatus.DELIVERED.value:
                return entry.timestamp
        return None

    def apply_pricing(self, pricing: OrderPricing) -> None:
        """Store a pricing block and copy line subtotals / payout amount from it."""
        if len(pricing.line_subtotals) != len(self.items):
            raise DomainValidationException("pricing does not match the order items", field="items")
        self.pricing = pricing
        for item, subtotal in zip(self.items, pricing.line_subtotals):
            item.subtotal = subtotal
        self.vendor_payout.amount = pricing.vendor_payout

    def _move(
        self,
        target: OrderStatus,
        now: datetime,
        location: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> None:
        ensure_transition(self, target)
        self.status = target
        self.tracking.status_history.append(
            TrackingEntry(status=target.value, timestamp=now, location=location, notes=notes)
        )
        self.updated_at = now

    def confirm_payment(self, payment_id: Optional[str] = None, now: Optional[datetime] = None) -> bool:
        """
        pending -> held_in_escrow, order pending -> confirmed.

        Repeating the confirmation of an escrowed payment is a no-op (False).
        """
        if self.payment.status == OrderPaymentStatus.HELD_IN_ESCROW:
            return False
        if self.payment.status != OrderPaymentStatus.PENDING:
            raise InvalidTransitionException(
                "order payment", self.payment.status.value, OrderPaymentStatus.HELD_IN_ESCROW.value
            )
        now = now or utcnow()
        self._move(OrderStatus.CONFIRMED, now)
        self.payment.status = OrderPaymentStatus.HELD_IN_ESCROW
        if payment_id:
            self.payment.payment_id = payment_id
        self.payment.paid_at = now
        return True

    def mark_payment_failed(self, now: Optional[datetime] = None) -> bool:
        if self.payment.status != OrderPaymentStatus.PENDING:
            return False
        self.payment.status = OrderPaymentStatus.FAILED
        self.updated_at = now or utcnow()
        return True

    def advance(
        self,
        target: OrderStatus,
        *,
        location: Optional[str] = None,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> None:
        """Fulfilment progress: processing, shipped or delivered."""
        self._ensure_no_refund_pending(target.value)
        if target not in (OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED):
            raise InvalidTransitionException("order", self.status.value, target.value)
        self._move(target, now or utcnow(), location=location, notes=notes)

    @property
    def refund_due(self) -> bool:
        """True while the customer's money is still held by the platform."""
        return self.payment.status in (OrderPaymentStatus.HELD_IN_ESCROW, OrderPaymentStatus.COMPLETED)

    def ensure_can_cancel(self) -> None:
        self._ensure_no_refund_pending(OrderStatus.CANCELLED.value)
        ensure_transition(self, OrderStatus.CANCELLED)

    def ensure_can_approve_return(self) -> None:
        self._ensure_no_refund_pending(OrderStatus.RETURNED.value)
        self._ensure_return_pending(ReturnStatus.APPROVED)
        ensure_transition(self, OrderStatus.RETURNED)

    def _refund_payment(self, refund_id: Optional[str], now: datetime) -> None:
        if self.refund_due or self.payment.status == OrderPaymentStatus.REFUND_PENDING:
            self.payment.status = OrderPaymentStatus.REFUNDED
            self.payment.refund_id = refund_id
            self.payment.refunded_at = now
            self.payment.refund_amount = self.pricing.total_amount
            self.payment.refund_target = None

    def _ensure_no_refund_pending(self, target: str) -> None:
        if self.payment.status == OrderPaymentStatus.REFUND_PENDING:
            raise InvalidTransitionException("order payment", self.payment.status.value, target)

    def begin_refund(self, target: OrderStatus, now: Optional[datetime] = None) -> None:
        """
        Reserve the gateway refund for a cancellation or an approved return.

        The escrowed payment moves to refund_pending; the order keeps its status
        until ``finish_refund`` applies ``target``.
        """
        if target == OrderStatus.RETURNED:
            self.ensure_can_approve_return()
        elif target == OrderStatus.CANCELLED:
            self.ensure_can_cancel()
        else:
            raise InvalidTransitionException("order", self.status.value, target.value)
        if self.payment.status != OrderPaymentStatus.HELD_IN_ESCROW:
            raise InvalidTransitionException(
                "order payment", self.payment.status.value, OrderPaymentStatus.REFUND_PENDING.value
            )
        self.payment.status = OrderPaymentStatus.REFUND_PENDING
        self.payment.refund_amount = self.pricing.total_amount
        self.payment.refund_target = target
        self.updated_at = now or utcnow()

    def abort_refund(self, now: Optional[datetime] = None) -> bool:
        if self.payment.status != OrderPaymentStatus.REFUND_PENDING:
            return False
        self.payment.status = OrderPaymentStatus.HELD_IN_ESCROW
        self.payment.refund_amount = None
        self.payment.refund_target = None
        self.updated_at = now or utcnow()
        return True

    def finish_refund(self, refund_id: str, now: Optional[datetime] = None, reason: Optional[str] = None) -> bool:
        """Complete a refund_pending payment; False when none is pending."""
        if self.payment.status != OrderPaymentStatus.REFUND_PENDING:
            return False
        now = now or utcnow()
        if self.payment.refund_target == OrderStatus.RETURNED:
            self._apply_return(refund_id, now)
        else:
            self._apply_cancel(refund_id, now, reason)
        return True

    def cancel(self, refund_id: Optional[str] = None, now: Optional[datetime] = None, reason: Optional[str] = None) -> None:
        """Cancel; money held in escrow goes back to the customer in full."""
        self._ensure_no_refund_pending(OrderStatus.CANCELLED.value)
        self._apply_cancel(refund_id, now or utcnow(), reason)

    def _apply_cancel(self, refund_id: Optional[str], now: datetime, reason: Optional[str]) -> None:
        self._move(OrderStatus.CANCELLED, now, notes=reason)
        self._refund_payment(refund_id, now)

    def request_return(self, reason: Optional[str] = None, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        if not can_return(self, now):
            raise ReturnNotAllowedException(self.order_id)
        self.return_request = ReturnRequest(
            requested=True, requested_at=now, reason=reason, status=ReturnStatus.PENDING
        )
        self.updated_at = now

    def _ensure_return_pending(self, target: ReturnStatus) -> None:
        current = self.return_request.status
        if not self.return_request.requested or current != ReturnStatus.PENDING:
            raise InvalidTransitionException(
                "return request", current.value if current else "none", target.value
            )

    def approve_return(self, refund_id: Optional[str] = None, now: Optional[datetime] = None) -> None:
        self.ensure_can_approve_return()
        self._apply_return(refund_id, now or utcnow())

    def _apply_return(self, refund_id: Optional[str], now: datetime) -> None:
        self._ensure_return_pending(ReturnStatus.APPROVED)
        self._move(OrderStatus.RETURNED, now, notes=self.return_request.reason)
        self.return_request.status = ReturnStatus.APPROVED
        self._refund_payment(refund_id, now)

    def reject_return(self, now: Optional[datetime] = None) -> None:
        self._ensure_no_refund_pending(ReturnStatus.REJECTED.value)
        self._ensure_return_pending(ReturnStatus.REJECTED)
        self.return_request.status = ReturnStatus.REJECTED
        self.updated_at = now or utcnow()
