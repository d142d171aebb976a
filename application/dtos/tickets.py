"""
Ticket DTOs
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field
from pydantic.types import condecimal

from application.dtos.base import DTOBase
from domain.ticket.entity import EventType, PaymentMethod, Ticket


class EventDetailsDTO(DTOBase):
    name: str = Field(..., min_length=1, max_length=200)
    location: str = Field(..., min_length=1, max_length=200)
    date: datetime
    time: Optional[str] = None
    duration: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None


class CancellationPolicyDTO(DTOBase):
    allowed: bool = True
    refund_percent: condecimal(ge=0, le=100) = Decimal("100")  # type: ignore[valid-type]
    deadline_hours: condecimal(ge=0) = Decimal("24")  # type: ignore[valid-type]


class TicketPurchaseDTO(DTOBase):
    user_id: str = Field(..., min_length=1, max_length=64)
    event_type: EventType
    event: EventDetailsDTO
    base_price: condecimal(gt=0, max_digits=15, decimal_places=2)  # type: ignore[valid-type]
    quantity: int = Field(..., ge=1, le=100)
    discount: condecimal(ge=0, decimal_places=2) = Decimal("0")  # type: ignore[valid-type]
    payment_method: PaymentMethod = PaymentMethod.RAZORPAY
    valid_until: Optional[datetime] = None
    cancellation_policy: Optional[CancellationPolicyDTO] = None


class PaymentConfirmationDTO(DTOBase):
    gateway_order_id: str
    payment_id: str
    signature: str


class TicketCancelDTO(DTOBase):
    reason: Optional[str] = Field(None, max_length=500)


class TicketValidateDTO(DTOBase):
    secret: str = Field(..., min_length=1)
    validated_by: Optional[str] = None
    location: Optional[dict[str, Any]] = None


class TicketPricingDTO(DTOBase):
    base_price: Decimal
    quantity: int
    fee_rate_percent: Decimal
    tax_rate_percent: Decimal
    subtotal: Decimal
    platform_fee: Decimal
    tax: Decimal
    discount: Decimal
    total_amount: Decimal
    currency: str


class TicketResponseDTO(DTOBase):
    ticket_id: str
    user_id: str
    event_type: str
    event_name: str
    event_location: str
    event_date: datetime
    pricing: TicketPricingDTO
    status: str
    payment_status: str
    payment_method: str
    gateway_order_id: Optional[str] = None
    refund_amount: Optional[Decimal] = None
    valid_until: datetime
    validation_attempts: int = 0
    scanned_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, ticket: Ticket) -> "TicketResponseDTO":
        p = ticket.pricing
        return cls(
            ticket_id=ticket.ticket_id,
            user_id=ticket.user_id,
            event_type=ticket.event_type.value,
            event_name=ticket.event.name,
            event_location=ticket.event.location,
            event_date=ticket.event.date,
            pricing=TicketPricingDTO(
                base_price=p.base_price,
                quantity=p.quantity,
                fee_rate_percent=p.fee_rate_percent,
                tax_rate_percent=p.tax_rate_percent,
                subtotal=p.subtotal,
                platform_fee=p.platform_fee,
                tax=p.tax,
                discount=p.discount,
                total_amount=p.total_amount,
                currency=p.currency,
            ),
            status=ticket.status.value,
            payment_status=ticket.payment.status.value,
            payment_method=ticket.payment.method.value,
            gateway_order_id=ticket.payment.gateway_order_id,
            refund_amount=ticket.payment.refund_amount,
            valid_until=ticket.valid_until,
            validation_attempts=ticket.validation_attempts,
            scanned_at=ticket.scanned_at,
            created_at=ticket.created_at,
        )


class TicketPurchaseResponseDTO(DTOBase):
    ticket: TicketResponseDTO
    # QR payload, handed out once at purchase
    qr_secret: str
    checkout: Optional[dict[str, Any]] = None


class TicketRefundResponseDTO(DTOBase):
    ticket_id: str
    refund_id: str
    refund_amount: Decimal
