"""
Ticket application service - purchase, payment confirmation, refund and gate validation.

Every write runs inside the ticket's exclusive section (and the owner's
account section when the wallet or reward points are touched), with the row
loaded through ``get_for_update``.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Callable, List, Optional

from application.dtos.tickets import (
    PaymentConfirmationDTO,
    TicketCancelDTO,
    TicketPurchaseDTO,
    TicketPurchaseResponseDTO,
    TicketRefundResponseDTO,
    TicketResponseDTO,
    TicketValidateDTO,
)
from application.services.analytics_service import AnalyticsRecorder
from application.services.entity_locks import KeyedLock, account_key, ticket_key
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from domain.account.rewards import add_balance, add_points, deduct_balance, reward_points_for
from domain.analytics.entity import AnalyticsEventType
from domain.common.exceptions import (
    AccountNotFoundException,
    InvalidTicketSecretException,
    InvalidTransitionException,
    PaymentVerificationFailedException,
    RefundNotAllowedException,
    TicketNotFoundException,
)
from domain.common.money import DEFAULT_RATES, SettlementRates
from domain.common.refund_policy import calculate_refund, process_refund
from domain.common.time import utcnow
from domain.common.unit_of_work import AbstractUnitOfWork
from domain.ticket.entity import (
    CancellationPolicy,
    EventDetails,
    PaymentMethod,
    Ticket,
    TicketPayment,
    TicketPaymentStatus,
    TicketStatus,
    generate_ticket_id,
)
from domain.ticket.pricing import price_ticket
from infrastructure.external.payments.exceptions import PaymentProviderError


logger = get_logger(__name__)


class TicketApplicationService:
    """Ticket use cases"""

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

    async def _emit(self, event_type: AnalyticsEventType, ticket: Ticket, **kwargs) -> None:
        if self._analytics is not None:
            await self._analytics.emit(event_type, ticket.ticket_id, user_id=ticket.user_id, **kwargs)

    def _build_ticket(self, data: TicketPurchaseDTO, now: datetime) -> Ticket:
        rates = self._rates
        pricing = price_ticket(
            data.base_price,
            data.quantity,
            fee_rate_percent=rates.ticket_fee_percent,
            tax_rate_percent=rates.tax_percent,
            discount=data.discount,
            currency=rates.currency,
        )
        if data.cancellation_policy is not None:
            policy = CancellationPolicy(**data.cancellation_policy.model_dump())
        else:
            policy = CancellationPolicy(
                refund_percent=rates.refund_percent,
                deadline_hours=rates.refund_deadline_hours,
            )
        event = EventDetails(**data.event.model_dump())
        return Ticket(
            id=None,
            ticket_id=generate_ticket_id(),
            user_id=data.user_id,
            event_type=data.event_type,
            event=event,
            pricing=pricing,
            payment=TicketPayment(method=data.payment_method),
            valid_until=data.valid_until or event.date,
            cancellation_policy=policy,
            created_at=now,
            updated_at=now,
        )

    async def _award_points(self, uow: AbstractUnitOfWork, ticket: Ticket, now: datetime) -> int:
        points = reward_points_for(ticket.pricing.total_amount, self._rates.ticket_points_divisor)
        if points <= 0:
            return 0
        account = await uow.accounts.get_for_update(ticket.user_id)
        if account is None:
            logger.info("ticket_reward_skipped_no_account", ticket_id=ticket.ticket_id, user_id=ticket.user_id)
            return 0
        add_points(account, points, reason="ticket_purchase", now=now)
        await uow.accounts.update(account)
        return points

    async def purchase(self, data: TicketPurchaseDTO) -> TicketPurchaseResponseDTO:
        """
        Price and create a ticket.

        Wallet purchases are debited and confirmed at once; any other method
        opens a gateway order and leaves the ticket pending until the payment
        is confirmed.
        """
        now = self._clock()
        ticket = self._build_ticket(data, now)
        amount = ticket.pricing.total_amount

        if ticket.payment.method == PaymentMethod.WALLET:
            async with self._locks.hold(account_key(ticket.user_id), ticket_key(ticket.ticket_id)):
                async with self._uow_factory() as uow:
                    account = await uow.accounts.get_for_update(ticket.user_id)
                    if account is None:
                        raise AccountNotFoundException(ticket.user_id)
                    deduct_balance(account, amount, now=now)
                    await uow.accounts.update(account)
                    ticket.confirm_payment(payment_id=f"wallet:{ticket.ticket_id}", now=now)
                    ticket = await uow.tickets.create(ticket)
                    points = await self._award_points(uow, ticket, now)
            logger.info(
                "ticket_purchased",
                ticket_id=ticket.ticket_id,
                user_id=ticket.user_id,
                method="wallet",
                amount=str(amount),
                points=points,
            )
            await self._emit(
                AnalyticsEventType.TICKET_PURCHASED,
                ticket,
                revenue=ticket.pricing.platform_fee,
                total_amount=amount,
                method=PaymentMethod.WALLET.value,
            )
            return TicketPurchaseResponseDTO(
                ticket=TicketResponseDTO.from_entity(ticket), qr_secret=ticket.qr_secret
            )

        intent = await self._payments.create_payment(
            ticket.ticket_id,
            amount,
            ticket.pricing.currency,
            metadata={"kind": "ticket", "user_id": ticket.user_id},
        )
        ticket.payment.gateway_order_id = intent.intent_id
        async with self._uow_factory() as uow:
            ticket = await uow.tickets.create(ticket)
        logger.info(
            "ticket_created",
            ticket_id=ticket.ticket_id,
            user_id=ticket.user_id,
            gateway_order_id=intent.intent_id,
            amount=str(amount),
        )
        return TicketPurchaseResponseDTO(
            ticket=TicketResponseDTO.from_entity(ticket),
            qr_secret=ticket.qr_secret,
            checkout=intent.client_secret_or_params,
        )

    async def _snapshot(self, ticket_id: str) -> Ticket:
        async with self._uow_factory(readonly=True) as uow:
            ticket = await uow.tickets.get_by_ticket_id(ticket_id)
        if ticket is None:
            raise TicketNotFoundException(ticket_id)
        return ticket

    async def _apply_confirmation(
        self,
        ticket_id: str,
        user_id: str,
        payment_id: str,
        gateway_order_id: Optional[str] = None,
    ) -> tuple[Ticket, bool]:
        now = self._clock()
        async with self._locks.hold(ticket_key(ticket_id), account_key(user_id)):
            async with self._uow_factory() as uow:
                ticket = await uow.tickets.get_for_update(ticket_id)
                if ticket is None:
                    raise TicketNotFoundException(ticket_id)
                if gateway_order_id is not None and ticket.payment.gateway_order_id != gateway_order_id:
                    raise PaymentVerificationFailedException(gateway_order_id)
                changed = ticket.confirm_payment(payment_id=payment_id, now=now)
                if changed:
                    ticket = await uow.tickets.update(ticket)
                    await self._award_points(uow, ticket, now)

        if changed:
            logger.info("ticket_payment_confirmed", ticket_id=ticket_id, payment_id=payment_id)
            await self._emit(
                AnalyticsEventType.TICKET_PURCHASED,
                ticket,
                revenue=ticket.pricing.platform_fee,
                total_amount=ticket.pricing.total_amount,
                method=ticket.payment.method.value,
            )
        else:
            logger.info("ticket_payment_already_confirmed", ticket_id=ticket_id, payment_id=payment_id)
        return ticket, changed

    async def confirm_payment(self, ticket_id: str, data: PaymentConfirmationDTO) -> TicketResponseDTO:
        """Verify the checkout signature and confirm; repeating it changes nothing."""
        self._payments.verify(data.gateway_order_id, data.payment_id, data.signature)
        snapshot = await self._snapshot(ticket_id)
        ticket, _ = await self._apply_confirmation(
            ticket_id, snapshot.user_id, data.payment_id, gateway_order_id=data.gateway_order_id
        )
        return TicketResponseDTO.from_entity(ticket)

    async def confirm_captured(self, gateway_order_id: str, payment_id: str) -> Optional[bool]:
        """Webhook path; None when no ticket owns the gateway order."""
        async with self._uow_factory(readonly=True) as uow:
            snapshot = await uow.tickets.get_by_gateway_order_id(gateway_order_id)
        if snapshot is None:
            return None
        _, changed = await self._apply_confirmation(snapshot.ticket_id, snapshot.user_id, payment_id)
        return changed

    async def mark_failed(self, gateway_order_id: str) -> Optional[bool]:
        async with self._uow_factory(readonly=True) as uow:
            snapshot = await uow.tickets.get_by_gateway_order_id(gateway_order_id)
        if snapshot is None:
            return None
        async with self._locks.hold(ticket_key(snapshot.ticket_id)):
            async with self._uow_factory() as uow:
                ticket = await uow.tickets.get_for_update(snapshot.ticket_id)
                changed = ticket.mark_payment_failed(now=self._clock())
                if changed:
                    await uow.tickets.update(ticket)
        if changed:
            logger.warning("ticket_payment_failed", ticket_id=ticket.ticket_id, gateway_order_id=gateway_order_id)
            await self._emit(AnalyticsEventType.PAYMENT_FAILED, ticket, kind="ticket")
        return changed

    def _refundable_amount(self, ticket: Ticket, now: datetime) -> Decimal:
        if ticket.payment.status == TicketPaymentStatus.REFUND_PENDING:
            raise RefundNotAllowedException(ticket.ticket_id, "Refund already in progress for this ticket")
        if ticket.payment.status != TicketPaymentStatus.COMPLETED:
            raise RefundNotAllowedException(ticket.ticket_id, "Ticket has not been paid")
        amount = calculate_refund(ticket, now)
        if amount <= 0:
            raise RefundNotAllowedException(ticket.ticket_id)
        return amount

    async def cancel(self, ticket_id: str, data: Optional[TicketCancelDTO] = None) -> TicketRefundResponseDTO:
        """
        Cancel a paid ticket and refund it under its cancellation policy.

        Wallet-paid tickets are refunded to the wallet in one transaction. A
        gateway refund is reserved first (payment ``refund_pending`` is
        committed), then requested, then recorded; a retry never reaches the
        gateway twice for the same ticket.
        """
        reason = data.reason if data else None
        snapshot = await self._snapshot(ticket_id)
        async with self._locks.hold(ticket_key(ticket_id), account_key(snapshot.user_id)):
            now = self._clock()
            async with self._uow_factory() as uow:
                ticket = await uow.tickets.get_for_update(ticket_id)
                if ticket is None:
                    raise TicketNotFoundException(ticket_id)
                amount = self._refundable_amount(ticket, now)

                if ticket.payment.method == PaymentMethod.WALLET:
                    account = await uow.accounts.get_for_update(ticket.user_id)
                    if account is None:
                        raise AccountNotFoundException(ticket.user_id)
                    add_balance(account, amount, now=now)
                    await uow.accounts.update(account)
                    refund_id = f"wallet-refund:{ticket_id}"
                    refunded = process_refund(ticket, refund_id, now)
                    ticket = await uow.tickets.update(ticket)
                else:
                    ticket.begin_refund(amount, now=now)
                    ticket = await uow.tickets.update(ticket)

            if ticket.payment.method != PaymentMethod.WALLET:
                ticket, refund_id, refunded = await self._refund_through_gateway(ticket, amount, reason, now)

        logger.info("ticket_refunded", ticket_id=ticket_id, refund_id=refund_id, amount=str(refunded))
        await self._emit(
            AnalyticsEventType.TICKET_REFUNDED,
            ticket,
            refund_amount=refunded,
            reason=reason or "",
        )
        return TicketRefundResponseDTO(ticket_id=ticket_id, refund_id=refund_id, refund_amount=refunded)

    async def _refund_through_gateway(
        self, ticket: Ticket, amount: Decimal, reason: Optional[str], now: datetime
    ) -> tuple[Ticket, str, Decimal]:
        try:
            result = await self._payments.refund(
                ticket.ticket_id,
                ticket.payment.payment_id,
                amount,
                ticket.pricing.currency,
                reason=reason,
            )
        except PaymentProviderError:
            # rejected outright: nothing moved, so the reservation is released
            async with self._uow_factory() as uow:
                current = await uow.tickets.get_for_update(ticket.ticket_id)
                if current is not None and current.abort_refund(now=now):
                    await uow.tickets.update(current)
            logger.warning("ticket_refund_rejected", ticket_id=ticket.ticket_id)
            raise

        async with self._uow_factory() as uow:
            current = await uow.tickets.get_for_update(ticket.ticket_id)
            refunded = process_refund(current, result.refund_id, now)
            current = await uow.tickets.update(current)
        return current, result.refund_id, refunded

    async def complete_refund(self, payment_id: str, refund_id: str) -> Optional[bool]:
        """
        Settle a reserved refund from the gateway's refund notification.

        None when no ticket owns the payment, False when nothing was pending.
        """
        async with self._uow_factory(readonly=True) as uow:
            snapshot = await uow.tickets.get_by_payment_id(payment_id)
        if snapshot is None:
            return None
        async with self._locks.hold(ticket_key(snapshot.ticket_id)):
            async with self._uow_factory() as uow:
                ticket = await uow.tickets.get_for_update(snapshot.ticket_id)
                if ticket.payment.status != TicketPaymentStatus.REFUND_PENDING:
                    return False
                ticket.apply_refund(refund_id, ticket.payment.refund_amount, now=self._clock())
                ticket = await uow.tickets.update(ticket)
        logger.info("ticket_refund_settled", ticket_id=ticket.ticket_id, refund_id=refund_id)
        await self._emit(AnalyticsEventType.TICKET_REFUNDED, ticket, refund_amount=ticket.payment.refund_amount)
        return True

    async def validate(self, ticket_id: str, data: TicketValidateDTO) -> TicketResponseDTO:
        """
        Gate scan. A wrong secret is recorded before the error is raised, so the
        attempt counter survives the failed request.
        """
        async with self._locks.hold(ticket_key(ticket_id)):
            async with self._uow_factory() as uow:
                ticket = await uow.tickets.get_for_update(ticket_id)
                if ticket is None:
                    raise TicketNotFoundException(ticket_id)
                now = self._clock()

                if not ticket.check_secret(data.secret, validated_by=data.validated_by, now=now):
                    await uow.tickets.update(ticket)
                    await uow.commit()
                    logger.warning(
                        "ticket_secret_mismatch",
                        ticket_id=ticket_id,
                        attempts=ticket.validation_attempts,
                    )
                    raise InvalidTicketSecretException(ticket_id, ticket.validation_attempts)

                if ticket.expire(now):
                    await uow.tickets.update(ticket)
                    await uow.commit()
                    logger.info("ticket_expired", ticket_id=ticket_id)
                    raise InvalidTransitionException("ticket", TicketStatus.EXPIRED.value, TicketStatus.USED.value)

                ticket.mark_used(validated_by=data.validated_by, location=data.location, now=now)
                ticket = await uow.tickets.update(ticket)

        logger.info("ticket_validated", ticket_id=ticket_id, validated_by=data.validated_by)
        await self._emit(AnalyticsEventType.TICKET_VALIDATED, ticket, validated_by=data.validated_by or "")
        return TicketResponseDTO.from_entity(ticket)

    async def expire_due(self, limit: int = 100) -> int:
        """Expire every non-terminal ticket past ``valid_until``; returns how many changed."""
        now = self._clock()
        async with self._uow_factory(readonly=True) as uow:
            candidates = await uow.tickets.list_expirable(now, limit=limit)

        expired = 0
        for candidate in candidates:
            async with self._locks.hold(ticket_key(candidate.ticket_id)):
                async with self._uow_factory() as uow:
                    ticket = await uow.tickets.get_for_update(candidate.ticket_id)
                    if ticket is not None and ticket.expire(now):
                        await uow.tickets.update(ticket)
                        expired += 1
        if expired:
            logger.info("tickets_expired", count=expired)
        return expired

    async def get_ticket(self, ticket_id: str) -> TicketResponseDTO:
        return TicketResponseDTO.from_entity(await self._snapshot(ticket_id))

    async def list_for_user(
        self,
        user_id: str,
        skip: int = 0,
        limit: int = 100,
        status: Optional[TicketStatus] = None,
    ) -> List[TicketResponseDTO]:
        async with self._uow_factory(readonly=True) as uow:
            tickets = await uow.tickets.list_by_user(user_id, skip=skip, limit=limit, status=status)
        return [TicketResponseDTO.from_entity(t) for t in tickets]
