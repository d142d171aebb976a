"""
Marketplace order application service - checkout, escrow, fulfilment, returns and payout.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, List, Optional

from application.dtos.orders import (
    EscrowReleaseResponseDTO,
    OrderCancelDTO,
    OrderPaymentConfirmationDTO,
    OrderResponseDTO,
    OrderStatusUpdateDTO,
    PayoutCompleteDTO,
    PlaceOrderDTO,
    PlaceOrderResponseDTO,
    ReturnRequestDTO,
)
from application.services.analytics_service import AnalyticsRecorder
from application.services.entity_locks import KeyedLock, account_key, order_key
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from domain.account.rewards import add_balance, deduct_balance
from domain.analytics.entity import AnalyticsEventType
from domain.common.exceptions import (
    AccountNotFoundException,
    DomainValidationException,
    OrderNotFoundException,
    PaymentVerificationFailedException,
)
from domain.common.money import DEFAULT_RATES, SettlementRates
from domain.common.time import utcnow
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.order.entity import (
    Order,
    OrderItem,
    OrderPayment,
    ReturnPolicy,
    TrackingEntry,
    VendorPayout,
    generate_order_id,
)
from domain.order.escrow import complete_payout, release_escrow
from domain.order.pricing import price_order
from domain.order.status import OrderPaymentMethod, OrderStatus
from infrastructure.external.payments.exceptions import PaymentProviderError


logger = get_logger(__name__)


class OrderApplicationService:
    """Order use cases"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payments: PaymentService,
        rates: SettlementRates = DEFAULT_RATES,
        analytics: Optional[AnalyticsRecorder] = None,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._uow_factory = uow_factory
        self._payments = payments
        self._rates = rates
        self._analytics = analytics
        self._locks = locks or KeyedLock()
        self._clock = clock

    async def _emit(self, event_type: AnalyticsEventType, order: Order, **kwargs) -> None:
        if self._analytics is not None:
            await self._analytics.emit(event_type, order.order_id, user_id=order.customer_id, **kwargs)

    async def _snapshot(self, order_id: str) -> Order:
        async with self._uow_factory(readonly=True) as uow:
            order = await uow.orders.get_by_order_id(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    async def _load_for_update(self, uow: AbstractUnitOfWork, order_id: str) -> Order:
        order = await uow.orders.get_for_update(order_id)
        if order is None:
            raise OrderNotFoundException(order_id)
        return order

    async def place_order(self, data: PlaceOrderDTO) -> PlaceOrderResponseDTO:
        """
        Price the cart with the vendor's commission and open the payment.

        The vendor account must exist; its own commission rate, when set,
        overrides the marketplace default.
        """
        if data.payment_method == OrderPaymentMethod.COD:
            raise DomainValidationException("Cash on delivery is not supported", field="payment_method")

        async with self._uow_factory(readonly=True) as uow:
            vendor = await uow.accounts.get_by_user_id(data.vendor_id)
        if vendor is None:
            raise AccountNotFoundException(data.vendor_id)
        commission_rate = (
            vendor.commission_rate
            if vendor.commission_rate is not None
            else self._rates.marketplace_commission_rate
        )

        now = self._clock()
        items = [
            OrderItem(
                product_id=i.product_id,
                name=i.name,
                unit_price=i.unit_price,
                quantity=i.quantity,
                description=i.description,
                category=i.category,
                artisan_name=i.artisan_name,
                village=i.village,
            )
            for i in data.items
        ]
        pricing = price_order(
            items,
            commission_rate=commission_rate,
            shipping_cost=data.shipping_cost,
            tax_rate_percent=self._rates.tax_percent,
            discount=data.discount,
            currency=self._rates.currency,
        )
        order = Order(
            id=None,
            order_id=generate_order_id(),
            customer_id=data.customer_id,
            vendor_id=data.vendor_id,
            items=items,
            pricing=pricing,
            payment=OrderPayment(method=data.payment_method),
            vendor_payout=VendorPayout(amount=pricing.vendor_payout),
            shipping_address=dict(data.shipping_address),
            return_policy=ReturnPolicy(deadline_days=self._rates.return_deadline_days),
            notes=data.notes,
            created_at=now,
            updated_at=now,
        )
        order.apply_pricing(pricing)
        order.tracking.status_history.append(
            TrackingEntry(status=OrderStatus.PENDING.value, timestamp=now, notes="Order placed")
        )
        amount = pricing.total_amount

        if order.payment.method == OrderPaymentMethod.WALLET:
            async with self._locks.hold(account_key(order.customer_id), order_key(order.order_id)):
                async with self._uow_factory() as uow:
                    account = await uow.accounts.get_for_update(order.customer_id)
                    if account is None:
                        raise AccountNotFoundException(order.customer_id)
                    deduct_balance(account, amount, now=now)
                    await uow.accounts.update(account)
                    order.confirm_payment(payment_id=f"wallet:{order.order_id}", now=now)
                    order = await uow.orders.create(order)
            logger.info(
                "order_placed",
                order_id=order.order_id,
                vendor_id=order.vendor_id,
                method="wallet",
                amount=str(amount),
            )
            await self._emit(AnalyticsEventType.ORDER_PLACED, order, total_amount=amount)
            await self._emit(
                AnalyticsEventType.ORDER_PAID,
                order,
                revenue=pricing.platform_commission,
                total_amount=amount,
                vendor_id=order.vendor_id,
            )
            return PlaceOrderResponseDTO(order=OrderResponseDTO.from_entity(order))

        intent = await self._payments.create_payment(
            order.order_id,
            amount,
            pricing.currency,
            metadata={"kind": "order", "customer_id": order.customer_id, "vendor_id": order.vendor_id},
        )
        order.payment.gateway_order_id = intent.intent_id
        async with self._uow_factory() as uow:
            order = await uow.orders.create(order)
        logger.info(
            "order_placed",
            order_id=order.order_id,
            vendor_id=order.vendor_id,
            gateway_order_id=intent.intent_id,
            amount=str(amount),
        )
        await self._emit(AnalyticsEventType.ORDER_PLACED, order, total_amount=amount)
        return PlaceOrderResponseDTO(
            order=OrderResponseDTO.from_entity(order),
            checkout=intent.client_secret_or_params,
        )

    async def _apply_confirmation(
        self,
        order_id: str,
        payment_id: str,
        gateway_order_id: Optional[str] = None,
    ) -> tuple[Order, bool]:
        async with self._locks.hold(order_key(order_id)):
            async with self._uow_factory() as uow:
                order = await self._load_for_update(uow, order_id)
                if gateway_order_id is not None and order.payment.gateway_order_id != gateway_order_id:
                    raise PaymentVerificationFailedException(gateway_order_id)
                changed = order.confirm_payment(payment_id=payment_id, now=self._clock())
                if changed:
                    order = await uow.orders.update(order)

        if changed:
            logger.info("order_payment_held_in_escrow", order_id=order_id, payment_id=payment_id)
            await self._emit(
                AnalyticsEventType.ORDER_PAID,
                order,
                revenue=order.pricing.platform_commission,
                total_amount=order.pricing.total_amount,
                vendor_id=order.vendor_id,
            )
        else:
            logger.info("order_payment_already_confirmed", order_id=order_id, payment_id=payment_id)
        return order, changed

    async def confirm_payment(self, order_id: str, data: OrderPaymentConfirmationDTO) -> OrderResponseDTO:
        self._payments.verify(data.gateway_order_id, data.payment_id, data.signature)
        order, _ = await self._apply_confirmation(order_id, data.payment_id, gateway_order_id=data.gateway_order_id)
        return OrderResponseDTO.from_entity(order)

    async def confirm_captured(self, gateway_order_id: str, payment_id: str) -> Optional[bool]:
        async with self._uow_factory(readonly=True) as uow:
            snapshot = await uow.orders.get_by_gateway_order_id(gateway_order_id)
        if snapshot is None:
            return None
        _, changed = await self._apply_confirmation(snapshot.order_id, payment_id)
        return changed

    async def mark_failed(self, gateway_order_id: str) -> Optional[bool]:
        async with self._uow_factory(readonly=True) as uow:
            snapshot = await uow.orders.get_by_gateway_order_id(gateway_order_id)
        if snapshot is None:
            return None
        async with self._locks.hold(order_key(snapshot.order_id)):
            async with self._uow_factory() as uow:
                order = await self._load_for_update(uow, snapshot.order_id)
                changed = order.mark_payment_failed(now=self._clock())
                if changed:
                    await uow.orders.update(order)
        if changed:
            logger.warning("order_payment_failed", order_id=order.order_id, gateway_order_id=gateway_order_id)
            await self._emit(AnalyticsEventType.PAYMENT_FAILED, order, kind="order")
        return changed

    async def update_status(self, order_id: str, data: OrderStatusUpdateDTO) -> OrderResponseDTO:
        """Fulfilment progress; each move is appended to the tracking history."""
        async with self._locks.hold(order_key(order_id)):
            async with self._uow_factory() as uow:
                order = await self._load_for_update(uow, order_id)
                if data.tracking_number:
                    order.tracking.tracking_number = data.tracking_number
                if data.courier:
                    order.tracking.courier = data.courier
                order.advance(
                    OrderStatus(data.status),
                    location=data.location,
                    notes=data.notes,
                    now=self._clock(),
                )
                order = await uow.orders.update(order)
        logger.info("order_status_updated", order_id=order_id, status=order.status.value)
        return OrderResponseDTO.from_entity(order)

    async def release_escrow(self, order_id: str) -> EscrowReleaseResponseDTO:
        async with self._locks.hold(order_key(order_id)):
            async with self._uow_factory() as uow:
                order = await self._load_for_update(uow, order_id)
                payout = release_escrow(order, now=self._clock())
                order = await uow.orders.update(order)

        logger.info("escrow_released", order_id=order_id, vendor_id=order.vendor_id, payout=str(payout))
        await self._emit(
            AnalyticsEventType.ESCROW_RELEASED,
            order,
            revenue=order.pricing.platform_commission,
            vendor_id=order.vendor_id,
            vendor_payout=payout,
        )
        return EscrowReleaseResponseDTO(
            order_id=order.order_id,
            vendor_id=order.vendor_id,
            vendor_payout=payout,
            released_at=order.payment.escrow_released_at,
        )

    async def complete_payout(self, order_id: str, data: PayoutCompleteDTO) -> OrderResponseDTO:
        async with self._locks.hold(order_key(order_id)):
            async with self._uow_factory() as uow:
                order = await self._load_for_update(uow, order_id)
                complete_payout(order, data.payout_id, method=data.method, now=self._clock())
                order = await uow.orders.update(order)
        logger.info("vendor_payout_completed", order_id=order_id, payout_id=data.payout_id)
        return OrderResponseDTO.from_entity(order)

    async def request_return(self, order_id: str, data: ReturnRequestDTO) -> OrderResponseDTO:
        async with self._locks.hold(order_key(order_id)):
            async with self._uow_factory() as uow:
                order = await self._load_for_update(uow, order_id)
                order.request_return(data.reason, now=self._clock())
                order = await uow.orders.update(order)
        logger.info("order_return_requested", order_id=order_id)
        return OrderResponseDTO.from_entity(order)

    async def _refund_to_wallet(self, uow: AbstractUnitOfWork, order: Order, now: datetime) -> Optional[str]:
        """Credit a wallet-paid order back; None when nothing was collected."""
        if not order.refund_due:
            return None
        account = await uow.accounts.get_for_update(order.customer_id)
        if account is None:
            raise AccountNotFoundException(order.customer_id)
        add_balance(account, order.pricing.total_amount, now=now)
        await uow.accounts.update(account)
        return f"wallet-refund:{order.order_id}"

    @staticmethod
    def _close(order: Order, target: OrderStatus, refund_id: Optional[str], reason: Optional[str], now: datetime) -> None:
        if target == OrderStatus.RETURNED:
            order.approve_return(refund_id, now=now)
        else:
            order.cancel(refund_id, now=now, reason=reason)

    async def _close_with_refund(
        self, order_id: str, target: OrderStatus, reason: Optional[str]
    ) -> tuple[Order, Optional[str]]:
        """
        Cancel or return an order, sending the escrowed money back.

        Gateway refunds run in three steps: the payment is reserved as
        ``refund_pending`` and committed, the gateway is asked, and the outcome
        is recorded. A rejected refund releases the reservation; an unknown
        outcome leaves it for the gateway's refund notification.
        """
        snapshot = await self._snapshot(order_id)
        async with self._locks.hold(order_key(order_id), account_key(snapshot.customer_id)):
            now = self._clock()
            async with self._uow_factory() as uow:
                order = await self._load_for_update(uow, order_id)
                if target == OrderStatus.RETURNED:
                    order.ensure_can_approve_return()
                else:
                    order.ensure_can_cancel()
                if not order.refund_due or order.payment.method == OrderPaymentMethod.WALLET:
                    refund_id = await self._refund_to_wallet(uow, order, now)
                    self._close(order, target, refund_id, reason, now)
                    return await uow.orders.update(order), refund_id
                order.begin_refund(target, now=now)
                order = await uow.orders.update(order)

            try:
                result = await self._payments.refund(
                    order.order_id,
                    order.payment.payment_id,
                    order.pricing.total_amount,
                    order.pricing.currency,
                    reason=reason,
                )
            except PaymentProviderError:
                async with self._uow_factory() as uow:
                    current = await self._load_for_update(uow, order_id)
                    if current.abort_refund(now=now):
                        await uow.orders.update(current)
                logger.warning("order_refund_rejected", order_id=order_id, target=target.value)
                raise

            async with self._uow_factory() as uow:
                order = await self._load_for_update(uow, order_id)
                order.finish_refund(result.refund_id, now=now, reason=reason)
                order = await uow.orders.update(order)
        return order, result.refund_id

    async def approve_return(self, order_id: str) -> OrderResponseDTO:
        snapshot = await self._snapshot(order_id)
        order, refund_id = await self._close_with_refund(
            order_id, OrderStatus.RETURNED, snapshot.return_request.reason
        )
        logger.info("order_returned", order_id=order_id, refund_id=refund_id)
        await self._emit(
            AnalyticsEventType.ORDER_RETURNED,
            order,
            refund_amount=order.payment.refund_amount or 0,
            vendor_id=order.vendor_id,
        )
        return OrderResponseDTO.from_entity(order)

    async def reject_return(self, order_id: str) -> OrderResponseDTO:
        async with self._locks.hold(order_key(order_id)):
            async with self._uow_factory() as uow:
                order = await self._load_for_update(uow, order_id)
                order.reject_return(now=self._clock())
                order = await uow.orders.update(order)
        logger.info("order_return_rejected", order_id=order_id)
        return OrderResponseDTO.from_entity(order)

    async def cancel(self, order_id: str, data: Optional[OrderCancelDTO] = None) -> OrderResponseDTO:
        reason = data.reason if data else None
        order, refund_id = await self._close_with_refund(order_id, OrderStatus.CANCELLED, reason)
        logger.info("order_cancelled", order_id=order_id, refund_id=refund_id)
        return OrderResponseDTO.from_entity(order)

    async def complete_refund(self, payment_id: str, refund_id: str) -> Optional[bool]:
        """Settle a reserved refund from the gateway's refund notification."""
        async with self._uow_factory(readonly=True) as uow:
            snapshot = await uow.orders.get_by_payment_id(payment_id)
        if snapshot is None:
            return None
        async with self._locks.hold(order_key(snapshot.order_id)):
            async with self._uow_factory() as uow:
                order = await self._load_for_update(uow, snapshot.order_id)
                changed = order.finish_refund(refund_id, now=self._clock())
                if changed:
                    order = await uow.orders.update(order)
        if changed:
            logger.info("order_refund_settled", order_id=order.order_id, refund_id=refund_id, status=order.status.value)
        return changed

    async def get_order(self, order_id: str) -> OrderResponseDTO:
        return OrderResponseDTO.from_entity(await self._snapshot(order_id))

    async def list_for_customer(self, customer_id: str, skip: int = 0, limit: int = 100) -> List[OrderResponseDTO]:
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.orders.list_by_customer(customer_id, skip=skip, limit=limit)
        return [OrderResponseDTO.from_entity(o) for o in orders]

    async def list_for_vendor(
        self,
        vendor_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[OrderStatus] = None,
    ) -> List[OrderResponseDTO]:
        async with self._uow_factory(readonly=True) as uow:
            orders = await uow.orders.list_by_vendor(vendor_id, skip=skip, limit=limit, status=status)
        return [OrderResponseDTO.from_entity(o) for o in orders]
