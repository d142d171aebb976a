"""
Ticket repository - SQLAlchemy implementation
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.common.exceptions import BusinessException
from domain.ticket.entity import (
    CancellationPolicy,
    EventDetails,
    EventType,
    PaymentMethod,
    TERMINAL_STATUSES,
    Ticket,
    TicketPayment,
    TicketPaymentStatus,
    TicketStatus,
    ValidationRecord,
)
from domain.ticket.pricing import TicketPricing
from domain.ticket.repository import TicketRepository
from infrastructure.models.ticket import TicketModel
from shared.codes import BusinessCode


logger = get_logger(__name__)


def _dec(value) -> Optional[Decimal]:
    return Decimal(str(value)) if value is not None else None


def _history_to_json(history: List[ValidationRecord]) -> list:
    return [
        {
            "timestamp": record.timestamp.isoformat(),
            "success": record.success,
            "validated_by": record.validated_by,
            "location": record.location,
        }
        for record in history
    ]


def _history_from_json(raw: Optional[list]) -> List[ValidationRecord]:
    return [
        ValidationRecord(
            timestamp=datetime.fromisoformat(item["timestamp"]),
            success=item["success"],
            validated_by=item.get("validated_by"),
            location=item.get("location"),
        )
        for item in raw or []
    ]


class SQLAlchemyTicketRepository(TicketRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: TicketModel) -> Ticket:
        return Ticket(
            id=model.id,
            ticket_id=model.ticket_id,
            user_id=model.user_id,
            event_type=EventType(model.event_type),
            event=EventDetails(
                name=model.event_name,
                location=model.event_location,
                date=model.event_date,
                time=model.event_time,
                duration=model.event_duration,
                description=model.event_description,
                category=model.event_category,
            ),
            pricing=TicketPricing(
                base_price=_dec(model.base_price),
                quantity=model.quantity,
                fee_rate_percent=_dec(model.fee_rate_percent),
                tax_rate_percent=_dec(model.tax_rate_percent),
                discount=_dec(model.discount),
                subtotal=_dec(model.subtotal),
                platform_fee=_dec(model.platform_fee),
                tax=_dec(model.tax),
                total_amount=_dec(model.total_amount),
                currency=model.currency,
            ),
            payment=TicketPayment(
                method=PaymentMethod(model.payment_method),
                status=TicketPaymentStatus(model.payment_status),
                gateway_order_id=model.gateway_order_id,
                payment_id=model.payment_id,
                paid_at=model.paid_at,
                refund_id=model.refund_id,
                refunded_at=model.refunded_at,
                refund_amount=_dec(model.refund_amount),
            ),
            valid_until=model.valid_until,
            status=TicketStatus(model.status),
            cancellation_policy=CancellationPolicy(
                allowed=model.cancellation_allowed,
                refund_percent=_dec(model.refund_percent),
                deadline_hours=_dec(model.deadline_hours),
            ),
            qr_secret=model.qr_secret,
            scanned_at=model.scanned_at,
            scanned_by=model.scanned_by,
            validation_attempts=model.validation_attempts,
            validation_history=_history_from_json(model.validation_history),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _fill(self, model: TicketModel, ticket: Ticket) -> TicketModel:
        """Copy every persisted field of ``ticket`` onto ``model``."""
        pricing, payment, event = ticket.pricing, ticket.payment, ticket.event
        model.ticket_id = ticket.ticket_id
        model.user_id = ticket.user_id
        model.event_type = ticket.event_type.value
        model.event_name = event.name
        model.event_location = event.location
        model.event_date = event.date
        model.event_time = event.time
        model.event_duration = event.duration
        model.event_description = event.description
        model.event_category = event.category
        model.base_price = pricing.base_price
        model.quantity = pricing.quantity
        model.fee_rate_percent = pricing.fee_rate_percent
        model.tax_rate_percent = pricing.tax_rate_percent
        model.discount = pricing.discount
        model.subtotal = pricing.subtotal
        model.platform_fee = pricing.platform_fee
        model.tax = pricing.tax
        model.total_amount = pricing.total_amount
        model.currency = pricing.currency
        model.payment_method = payment.method.value
        model.payment_status = payment.status.value
        model.gateway_order_id = payment.gateway_order_id
        model.payment_id = payment.payment_id
        model.paid_at = payment.paid_at
        model.refund_id = payment.refund_id
        model.refunded_at = payment.refunded_at
        model.refund_amount = payment.refund_amount
        model.status = ticket.status.value
        model.valid_until = ticket.valid_until
        model.cancellation_allowed = ticket.cancellation_policy.allowed
        model.refund_percent = ticket.cancellation_policy.refund_percent
        model.deadline_hours = ticket.cancellation_policy.deadline_hours
        model.qr_secret = ticket.qr_secret
        model.scanned_at = ticket.scanned_at
        model.scanned_by = ticket.scanned_by
        model.validation_attempts = ticket.validation_attempts
        model.validation_history = _history_to_json(ticket.validation_history)
        if ticket.created_at is not None:
            model.created_at = ticket.created_at
        if ticket.updated_at is not None:
            model.updated_at = ticket.updated_at
        return model

    async def _get_model(self, ticket_id: str, *, for_update: bool = False) -> Optional[TicketModel]:
        query = select(TicketModel).where(TicketModel.ticket_id == ticket_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create(self, ticket: Ticket) -> Ticket:
        try:
            db_ticket = self._fill(TicketModel(), ticket)
            self.session.add(db_ticket)
            await self.session.flush()
            await self.session.refresh(db_ticket)
        except IntegrityError:
            logger.warning("ticket_create_conflict", ticket_id=ticket.ticket_id)
            raise BusinessException(
                code=BusinessCode.BUSINESS_ERROR,
                message=f"Ticket already exists: {ticket.ticket_id}",
                error_type="TicketAlreadyExists",
            )
        logger.info("ticket_created", ticket_id=db_ticket.ticket_id, user_id=db_ticket.user_id)
        return self._to_entity(db_ticket)

    async def get_by_ticket_id(self, ticket_id: str) -> Optional[Ticket]:
        db_ticket = await self._get_model(ticket_id)
        return self._to_entity(db_ticket) if db_ticket else None

    async def get_for_update(self, ticket_id: str) -> Optional[Ticket]:
        db_ticket = await self._get_model(ticket_id, for_update=True)
        return self._to_entity(db_ticket) if db_ticket else None

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[Ticket]:
        result = await self.session.execute(
            select(TicketModel).where(TicketModel.gateway_order_id == gateway_order_id)
        )
        db_ticket = result.scalars().first()
        return self._to_entity(db_ticket) if db_ticket else None

    async def get_by_payment_id(self, payment_id: str) -> Optional[Ticket]:
        result = await self.session.execute(select(TicketModel).where(TicketModel.payment_id == payment_id))
        db_ticket = result.scalars().first()
        return self._to_entity(db_ticket) if db_ticket else None

    async def list_by_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[TicketStatus] = None,
    ) -> List[Ticket]:
        query = select(TicketModel).where(TicketModel.user_id == user_id)
        if status:
            query = query.where(TicketModel.status == status.value)
        query = query.order_by(TicketModel.created_at.desc()).offset(skip).limit(limit)
        result = await self.session.execute(query)
        return [self._to_entity(t) for t in result.scalars().all()]

    async def list_expirable(self, now: datetime, limit: int = 100) -> List[Ticket]:
        result = await self.session.execute(
            select(TicketModel)
            .where(
                TicketModel.status.notin_([s.value for s in TERMINAL_STATUSES]),
                TicketModel.valid_until <= now,
            )
            .order_by(TicketModel.valid_until)
            .limit(limit)
        )
        return [self._to_entity(t) for t in result.scalars().all()]

    async def update(self, ticket: Ticket) -> Ticket:
        db_ticket = await self._get_model(ticket.ticket_id)
        if not db_ticket:
            raise ValueError(f"Ticket {ticket.ticket_id} not found")

        self._fill(db_ticket, ticket)
        await self.session.flush()
        await self.session.refresh(db_ticket)

        logger.info(
            "ticket_updated",
            ticket_id=db_ticket.ticket_id,
            status=db_ticket.status,
            payment_status=db_ticket.payment_status,
        )
        return self._to_entity(db_ticket)
