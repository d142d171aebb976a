"""Analytics event - revenue and activity facts emitted after settlement operations."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Optional

from domain.common.money import ZERO
from domain.common.time import ensure_utc, utcnow


class AnalyticsEventType(str, Enum):
    TICKET_PURCHASED = "ticket_purchased"
    TICKET_REFUNDED = "ticket_refunded"
    TICKET_VALIDATED = "ticket_validated"
    ORDER_PLACED = "order_placed"
    ORDER_PAID = "order_paid"
    ESCROW_RELEASED = "escrow_released"
    ORDER_RETURNED = "order_returned"
    WALLET_RECHARGED = "wallet_recharged"
    POINTS_REDEEMED = "points_redeemed"
    PAYMENT_FAILED = "payment_failed"


@dataclass
class AnalyticsEvent:
    event_type: AnalyticsEventType
    entity_id: str
    revenue: Decimal = ZERO
    user_id: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None
    timestamp: datetime = field(default_factory=utcnow)

    def __post_init__(self):
        self.timestamp = ensure_utc(self.timestamp)
