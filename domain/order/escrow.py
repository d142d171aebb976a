"""
Order status / escrow state machine.

    pending -> confirmed (payment held_in_escrow) -> [processing -> shipped ->]
    delivered -> escrow released

cancelled and returned are alternate terminals, reachable from every
non-terminal status (returned only once the order left pending). Once escrow
has been released the money belongs to the vendor and the order can no longer
be cancelled or returned.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from domain.common.exceptions import (
    DeliveryRequiredException,
    EscrowAlreadyReleasedException,
    InvalidTransitionException,
)
from domain.common.time import utcnow
from domain.order.status import OrderPaymentStatus, OrderStatus, PayoutMethod, PayoutStatus

if TYPE_CHECKING:
    from domain.order.entity import Order


ORDER_TRANSITIONS: dict[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING: frozenset({OrderStatus.CONFIRMED, OrderStatus.CANCELLED}),
    OrderStatus.CONFIRMED: frozenset({
        OrderStatus.PROCESSING, OrderStatus.SHIPPED, OrderStatus.DELIVERED,
        OrderStatus.CANCELLED, OrderStatus.RETURNED,
    }),
    OrderStatus.PROCESSING: frozenset({
        OrderStatus.SHIPPED, OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED,
    }),
    OrderStatus.SHIPPED: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED, OrderStatus.RETURNED}),
    OrderStatus.DELIVERED: frozenset({OrderStatus.CANCELLED, OrderStatus.RETURNED}),
    OrderStatus.CANCELLED: frozenset(),
    OrderStatus.RETURNED: frozenset(),
}

TERMINAL_STATUSES = frozenset(s for s, targets in ORDER_TRANSITIONS.items() if not targets)


def can_transition(current: OrderStatus, target: OrderStatus, *, escrow_released: bool = False) -> bool:
    if escrow_released:
        return False
    return target in ORDER_TRANSITIONS.get(current, frozenset())


def ensure_transition(order: "Order", target: OrderStatus) -> None:
    if order.payment.escrow_released:
        raise EscrowAlreadyReleasedException(order.order_id)
    if not can_transition(order.status, target):
        raise InvalidTransitionException("order", order.status.value, target.value)


def release_escrow(order: "Order", now: Optional[datetime] = None) -> Decimal:
    """
    Release the escrowed payment to the vendor; returns the payout amount.

    A second call raises EscrowAlreadyReleasedException.
    """
    if order.status != OrderStatus.DELIVERED:
        raise DeliveryRequiredException(order.order_id, order.status.value)
    if order.payment.status == OrderPaymentStatus.REFUND_PENDING:
        raise InvalidTransitionException("order payment", order.payment.status.value, "escrow_released")
    if order.payment.escrow_released:
        raise EscrowAlreadyReleasedException(order.order_id)

    now = now or utcnow()
    order.payment.escrow_released = True
    order.payment.escrow_released_at = now
    order.vendor_payout.status = PayoutStatus.PROCESSING
    order.updated_at = now
    return order.pricing.vendor_payout


def complete_payout(
    order: "Order",
    payout_id: str,
    method: Optional[PayoutMethod] = None,
    now: Optional[datetime] = None,
) -> None:
    if order.vendor_payout.status != PayoutStatus.PROCESSING:
        raise InvalidTransitionException(
            "vendor payout", order.vendor_payout.status.value, PayoutStatus.COMPLETED.value
        )
    now = now or utcnow()
    order.vendor_payout.status = PayoutStatus.COMPLETED
    order.vendor_payout.payout_id = payout_id
    order.vendor_payout.paid_at = now
    if method is not None:
        order.vendor_payout.payout_method = method
    order.updated_at = now
