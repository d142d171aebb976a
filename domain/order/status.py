"""Marketplace order status enums."""
from __future__ import annotations

from enum import Enum


class OrderStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PROCESSING = "processing"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"
    RETURNED = "returned"


class OrderPaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REFUND_PENDING = "refund_pending"
    REFUNDED = "refunded"
    HELD_IN_ESCROW = "held_in_escrow"


class PayoutStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"


class ReturnStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class OrderPaymentMethod(str, Enum):
    RAZORPAY = "razorpay"
    STRIPE = "stripe"
    WALLET = "wallet"
    COD = "cod"


class PayoutMethod(str, Enum):
    BANK_TRANSFER = "bank_transfer"
    UPI = "upi"
    WALLET = "wallet"
