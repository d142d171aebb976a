"""
Marketplace order DTOs
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Literal, Optional

from pydantic import Field
from pydantic.types import condecimal

from application.dtos.base import DTOBase
from domain.order.entity import Order
from domain.order.status import OrderPaymentMethod, PayoutMethod


class OrderItemDTO(DTOBase):
    product_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=200)
    unit_price: condecimal(gt=0, max_digits=15, decimal_places=2)  # type: ignore[valid-type]
    quantity: int = Field(..., ge=1)
    description: Optional[str] = None
    category: Optional[str] = None
    artisan_name: Optional[str] = None
    village: Optional[str] = None


class PlaceOrderDTO(DTOBase):
    customer_id: str = Field(..., min_length=1, max_length=64)
    vendor_id: str = Field(..., min_length=1, max_length=64)
    items: list[OrderItemDTO] = Field(..., min_length=1)
    shipping_cost: condecimal(ge=0, decimal_places=2) = Decimal("0")  # type: ignore[valid-type]
    discount: condecimal(ge=0, decimal_places=2) = Decimal("0")  # type: ignore[valid-type]
    payment_method: OrderPaymentMethod = OrderPaymentMethod.RAZORPAY
    shipping_address: dict[str, Any] = Field(default_factory=dict)
    notes: Optional[str] = Field(None, max_length=1000)


class OrderPaymentConfirmationDTO(DTOBase):
    gateway_order_id: str
    payment_id: str
    signature: str


class OrderStatusUpdateDTO(DTOBase):
    status: Literal["processing", "shipped", "delivered"]
    location: Optional[str] = None
    notes: Optional[str] = None
    tracking_number: Optional[str] = None
    courier: Optional[str] = None


class OrderCancelDTO(DTOBase):
    reason: Optional[str] = Field(None, max_length=500)


class ReturnRequestDTO(DTOBase):
    reason: str = Field(..., min_length=1, max_length=500)


class PayoutCompleteDTO(DTOBase):
    payout_id: str = Field(..., min_length=1)
    method: Optional[PayoutMethod] = None


class OrderItemResponseDTO(DTOBase):
    product_id: str
    name: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal


class OrderPricingDTO(DTOBase):
    items_total: Decimal
    commission_rate: Decimal
    platform_commission: Decimal
    shipping_cost: Decimal
    tax_rate_percent: Decimal
    tax: Decimal
    discount: Decimal
    total_amount: Decimal
    vendor_payout: Decimal
    currency: str


class TrackingEntryDTO(DTOBase):
    status: str
    timestamp: datetime
    location: Optional[str] = None
    notes: Optional[str] = None


class OrderResponseDTO(DTOBase):
    order_id: str
    customer_id: str
    vendor_id: str
    items: list[OrderItemResponseDTO]
    pricing: OrderPricingDTO
    status: str
    payment_status: str
    payment_method: str
    gateway_order_id: Optional[str] = None
    escrow_released: bool
    escrow_released_at: Optional[datetime] = None
    payout_status: str
    return_status: Optional[str] = None
    status_history: list[TrackingEntryDTO] = Field(default_factory=list)
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, order: Order) -> "OrderResponseDTO":
        p = order.pricing
        return cls(
            order_id=order.order_id,
            customer_id=order.customer_id,
            vendor_id=order.vendor_id,
            items=[
                OrderItemResponseDTO(
                    product_id=i.product_id,
                    name=i.name,
                    unit_price=i.unit_price,
                    quantity=i.quantity,
                    subtotal=i.subtotal,
                )
                for i in order.items
            ],
            pricing=OrderPricingDTO(
                items_total=p.items_total,
                commission_rate=p.commission_rate,
                platform_commission=p.platform_commission,
                shipping_cost=p.shipping_cost,
                tax_rate_percent=p.tax_rate_percent,
                tax=p.tax,
                discount=p.discount,
                total_amount=p.total_amount,
                vendor_payout=p.vendor_payout,
                currency=p.currency,
            ),
            status=order.status.value,
            payment_status=order.payment.status.value,
            payment_method=order.payment.method.value,
            gateway_order_id=order.payment.gateway_order_id,
            escrow_released=order.payment.escrow_released,
            escrow_released_at=order.payment.escrow_released_at,
            payout_status=order.vendor_payout.status.value,
            return_status=order.return_request.status.value if order.return_request.status else None,
            status_history=[
                TrackingEntryDTO(status=e.status, timestamp=e.timestamp, location=e.location, notes=e.notes)
                for e in order.tracking.status_history
            ],
            created_at=order.created_at,
        )


class PlaceOrderResponseDTO(DTOBase):
    order: OrderResponseDTO
    checkout: Optional[dict[str, Any]] = None


class EscrowReleaseResponseDTO(DTOBase):
    order_id: str
    vendor_id: str
    vendor_payout: Decimal
    released_at: datetime
