"""
Order repository - SQLAlchemy implementation
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.order.entity import (
    Order,
    OrderItem,
    OrderPayment,
    ReturnPolicy,
    ReturnRequest,
    Tracking,
    TrackingEntry,
    VendorPayout,
)
from domain.order.pricing import OrderPricing
from domain.order.repository import OrderRepository
from domain.order.status import (
    OrderPaymentMethod,
    OrderPaymentStatus,
    OrderStatus,
    PayoutMethod,
    PayoutStatus,
    ReturnStatus,
)
from infrastructure.models.order import OrderModel
from shared.codes import BusinessCode


logger = get_logger(__name__)


def _dec(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _items_to_json(items: List[OrderItem]) -> list:
    return [
        {
            "product_id": item.product_id,
            "name": item.name,
            "unit_price": str(item.unit_price),
            "quantity": item.quantity,
            "subtotal": str(item.subtotal),
            "description": item.description,
            "category": item.category,
            "artisan_name": item.artisan_name,
            "village": item.village,
        }
        for item in items
    ]


def _items_from_json(raw: list) -> List[OrderItem]:
    return [
        OrderItem(
            product_id=item["product_id"],
            name=item["name"],
            unit_price=Decimal(item["unit_price"]),
            quantity=item["quantity"],
            subtotal=Decimal(item["subtotal"]),
            description=item.get("description"),
            category=item.get("category"),
            artisan_name=item.get("artisan_name"),
            village=item.get("village"),
        )
        for item in raw or []
    ]


def _history_to_json(history: List[TrackingEntry]) -> list:
    return [
        {
            "status": entry.status,
            "timestamp": entry.timestamp.isoformat(),
            "location": entry.location,
            "notes": entry.notes,
        }
        for entry in history
    ]


def _history_from_json(raw: Optional[list]) -> List[TrackingEntry]:
    return [
        TrackingEntry(
            status=entry["status"],
            timestamp=datetime.fromisoformat(entry["timestamp"]),
            location=entry.get("location"),
            notes=entry.get("notes"),
        )
        for entry in raw or []
    ]


class SQLAlchemyOrderRepository(OrderRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: OrderModel) -> Order:
        items = _items_from_json(model.items)
        return Order(
            id=model.id,
            order_id=model.order_id,
            customer_id=model.customer_id,
            vendor_id=model.vendor_id,
            items=items,
            pricing=OrderPricing(
                items_total=_dec(model.items_total),
                commission_rate=_dec(model.commission_rate),
                platform_commission=_dec(model.platform_commission),
                shipping_cost=_dec(model.shipping_cost),
                tax_rate_percent=_dec(model.tax_rate_percent),
                tax=_dec(model.tax),
                discount=_dec(model.discount),
                total_amount=_dec(model.total_amount),
                vendor_payout=_dec(model.vendor_payout_amount),
                line_subtotals=tuple(item.subtotal for item in items),
                currency=model.currency,
            ),
            payment=OrderPayment(
                method=OrderPaymentMethod(model.payment_method),
                status=OrderPaymentStatus(model.payment_status),
                gateway_order_id=model.gateway_order_id,
                payment_id=model.payment_id,
                paid_at=model.paid_at,
                escrow_released=model.escrow_released,
                escrow_released_at=model.escrow_released_at,
                refund_id=model.refund_id,
                refunded_at=model.refunded_at,
                refund_amount=_dec(model.refund_amount),
                refund_target=OrderStatus(model.refund_target) if model.refund_target else None,
            ),
            vendor_payout=VendorPayout(
                amount=_dec(model.vendor_payout_amount),
                status=PayoutStatus(model.payout_status),
                paid_at=model.payout_paid_at,
                payout_id=model.payout_id,
                payout_method=PayoutMethod(model.payout_method) if model.payout_method else None,
            ),
            status=OrderStatus(model.status),
            shipping_address=model.shipping_address or {},
            tracking=Tracking(
                tracking_number=model.tracking_number,
                courier=model.courier,
                estimated_delivery=model.estimated_delivery,
                status_history=_history_from_json(model.status_history),
            ),
            return_policy=ReturnPolicy(
                allowed=model.return_allowed,
                deadline_days=_dec(model.return_deadline_days),
            ),
            return_request=ReturnRequest(
                requested=model.return_requested,
                requested_at=model.return_requested_at,
                reason=model.return_reason,
                status=ReturnStatus(model.return_status) if model.return_status else None,
            ),
            notes=model.notes,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _fill(self, model: OrderModel, order: Order) -> OrderModel:
        pricing, payment, payout = order.pricing, order.payment, order.vendor_payout
        model.order_id = order.order_id
        model.customer_id = order.customer_id
        model.vendor_id = order.vendor_id
        model.items = _items_to_json(order.items)
        model.items_total = pricing.items_total
        model.commission_rate = pricing.commission_rate
        model.platform_commission = pricing.platform_commission
        model.shipping_cost = pricing.shipping_cost
        model.tax_rate_percent = pricing.tax_rate_percent
        model.tax = pricing.tax
        model.discount = pricing.discount
        model.total_amount = pricing.total_amount
        model.vendor_payout_amount = pricing.vendor_payout
        model.currency = pricing.currency
        model.payment_method = payment.method.value
        model.payment_status = payment.status.value
        model.gateway_order_id = payment.gateway_order_id
        model.payment_id = payment.payment_id
        model.paid_at = payment.paid_at
        model.escrow_released = payment.escrow_released
        model.escrow_released_at = payment.escrow_released_at
        model.refund_id = payment.refund_id
        model.refunded_at = payment.refunded_at
        model.refund_amount = payment.refund_amount
        model.refund_target = payment.refund_target.value if payment.refund_target else None
        model.payout_status = payout.status.value
        model.payout_id = payout.payout_id
        model.payout_method = payout.payout_method.value if payout.payout_method else None
        model.payout_paid_at = payout.paid_at
        model.status = order.status.value
        model.shipping_address = order.shipping_address
        model.tracking_number = order.tracking.tracking_number
        model.courier = order.tracking.courier
        model.estimated_delivery = order.tracking.estimated_delivery
        model.status_history = _history_to_json(order.tracking.status_history)
        model.return_allowed = order.return_policy.allowed
        model.return_deadline_days = order.return_policy.deadline_days
        model.return_requested = order.return_request.requested
        model.return_requested_at = order.return_request.requested_at
        model.return_reason = order.return_request.reason
        model.return_status = order.return_request.status.value if order.return_request.status else None
        model.notes = order.notes
        if order.created_at is not None:
            model.created_at = order.created_at
        if order.updated_at is not None:
            model.updated_at = order.updated_at
        return model

    async def _get_model(self, order_id: str, *, for_update: bool = False) -> Optional[OrderModel]:
        query = select(OrderModel).where(OrderModel.order_id == order_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create(self, order: Order) -> Order:
        try:
            db_order = self._fill(OrderModel(), order)
            self.session.add(db_order)
            await self.session.flush()
            await self.session.refresh(db_order)
        except IntegrityError:
            logger.warning("order_create_conflict", order_id=order.order_id)
            raise BusinessException(
                code=BusinessCode.BUSINESS_ERROR,
                message=f"Order already exists: {order.order_id}",
                error_type="OrderAlreadyExists",
            )
        logger.info(
            "order_created",
            order_id=db_order.order_id,
            customer_id=db_order.customer_id,
            vendor_id=db_order.vendor_id,
        )
        return self._to_entity(db_order)

    async def get_by_order_id(self, order_id: str) -> Optional[Order]:
        db_order = await self._get_model(order_id)
        return self._to_entity(db_order) if db_order else None

    async def get_for_update(self, order_id: str) -> Optional[Order]:
        db_order = await self._get_model(order_id, for_update=True)
        return self._to_entity(db_order) if db_order else None

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Order]:
        result = await self.session.execute(
            select(OrderModel).where(OrderModel.gateway_order_id == gateway_order_id)
        )
        db_order = result.scalars().first()
        return self._to_entity(db_order) if db_order else None

    async def get_by_payment_id(self, payment_id: str) -> Optional[Order]:
        result = await self.session.execute(select(OrderModel).where(OrderModel.payment_id == payment_id))
        db_order = result.scalars().first()
        return self._to_entity(db_order) if db_order else None

    async def list_by_customer(self, customer_id: str, skip: int = 0, limit: int = 100) -> List[Order]:
        result = await self.session.execute(
            select(OrderModel)
            .where(OrderModel.customer_id == customer_id)
            .order_by(OrderModel.created_at.desc())
            .offset(skip)
            .limit(limit)
        )
        return [self._to_entity(o) for o in result.scalars().all()]

    async def list_by_vendor(
        self,
        vendor_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[OrderStatus] = None,
    ) -> List[Order]:
        query = select(OrderModel).where(OrderModel.vendor_id == vendor_id)
        if status:
            query = query.where(OrderModel.status == status.value)
        query = query.order_by(OrderModel.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(o) for o in result.scalars().all()]

    async def update(self, order: Order) -> Order:
        db_order = await self._get_model(order.order_id)
        if not db_order:
            raise ValueError(f"Order {order.order_id} not found")

        self._fill(db_order, order)
        await self.session.flush()
        await self.session.refresh(db_order)

        logger.info(
            "order_updated",
            order_id=db_order.order_id,
            status=db_order.status,
            payment_status=db_order.payment_status,
            escrow_released=db_order.escrow_released,
        )
        return self._to_entity(db_order)
