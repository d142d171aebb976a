"""
Marketplace order ORM model.
Items, tracking history and shipping address are stored as JSON documents.
"""
from sqlalchemy import (
    Boolean, Column, DateTime, Index, Integer, JSON, Numeric, String, Text,
)
from datetime import datetime, timezone

from .base import Base


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_id = Column(String(40), unique=True, index=True, nullable=False)
    customer_id = Column(String(64), index=True, nullable=False)
    vendor_id = Column(String(64), index=True, nullable=False)
    items = Column(JSON, nullable=False)

    # pricing
    items_total = Column(Numeric(precision=15, scale=2), nullable=False)
    commission_rate = Column(Numeric(precision=7, scale=4), nullable=False)
    platform_commission = Column(Numeric(precision=15, scale=2), nullable=False)
    shipping_cost = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    tax_rate_percent = Column(Numeric(precision=7, scale=4), nullable=False)
    tax = Column(Numeric(precision=15, scale=2), nullable=False)
    discount = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    total_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    vendor_payout_amount = Column(Numeric(precision=15, scale=2), nullable=False)
    currency = Column(String(3), nullable=False, default="INR")

    # payment / escrow
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False, default="pending", index=True)
    gateway_order_id = Column(String(100), nullable=True, index=True)
    payment_id = Column(String(100), nullable=True, index=True)
    paid_at = Column(DateTime(timezone=True), nullable=True)
    escrow_released = Column(Boolean, nullable=False, default=False)
    escrow_released_at = Column(DateTime(timezone=True), nullable=True)
    refund_id = Column(String(100), nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)
    refund_amount = Column(Numeric(precision=15, scale=2), nullable=True)
    refund_target = Column(String(20), nullable=True)

    # vendor payout
    payout_status = Column(String(20), nullable=False, default="pending", index=True)
    payout_id = Column(String(100), nullable=True)
    payout_method = Column(String(20), nullable=True)
    payout_paid_at = Column(DateTime(timezone=True), nullable=True)

    status = Column(String(20), nullable=False, default="pending")
    shipping_address = Column(JSON, nullable=False, default=dict)
    tracking_number = Column(String(100), nullable=True)
    courier = Column(String(100), nullable=True)
    estimated_delivery = Column(DateTime(timezone=True), nullable=True)
    status_history = Column(JSON, nullable=False, default=list)

    # returns
    return_allowed = Column(Boolean, nullable=False, default=True)
    return_deadline_days = Column(Numeric(precision=7, scale=2), nullable=False, default=7)
    return_requested = Column(Boolean, nullable=False, default=False)
    return_requested_at = Column(DateTime(timezone=True), nullable=True)
    return_reason = Column(Text, nullable=True)
    return_status = Column(String(20), nullable=True)

    notes = Column(Text, nullable=True)
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
        Index("ix_orders_customer_created", "customer_id", "created_at"),
        Index("ix_orders_vendor_status", "vendor_id", "status"),
    )

    def __repr__(self):
        return (
            f"<OrderModel(order_id='{self.order_id}', vendor_id='{self.vendor_id}', "
            f"total={self.total_amount}, status='{self.status}')>"
        )
