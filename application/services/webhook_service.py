"""
Gateway webhook handling.

An event id is only recorded once its handling succeeded, so a failed
delivery is retried by the gateway; handlers are idempotent by state, which
makes a retry after a partial failure safe.
"""
from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional

from application.dtos.payments import WebhookEvent
from application.services.order_service import OrderApplicationService
from application.services.payment_service import PaymentService
from application.services.ticket_service import TicketApplicationService
from application.services.wallet_service import WalletApplicationService
from core.logging_config import get_logger
from domain.common.exceptions import InvalidTransitionException
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)

Handler = Callable[..., Awaitable[Optional[bool]]]


class WebhookService:
    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payments: PaymentService,
        tickets: TicketApplicationService,
        orders: OrderApplicationService,
        wallet: WalletApplicationService,
    ):
        self._uow_factory = uow_factory
        self._payments = payments
        self._captured: tuple[Handler, ...] = (
            tickets.confirm_captured,
            orders.confirm_captured,
            wallet.confirm_captured_recharge,
        )
        self._failed: tuple[Handler, ...] = (
            tickets.mark_failed,
            orders.mark_failed,
            wallet.mark_recharge_failed,
        )
        self._refunded: tuple[Handler, ...] = (
            tickets.complete_refund,
            orders.complete_refund,
        )

    async def handle(self, headers: dict[str, Any], body: bytes) -> dict[str, Any]:
        """Verify, deduplicate and dispatch one delivery."""
        event = self._payments.handle_webhook(headers, body)
        scope = f"webhook:{event.provider}"

        async with self._uow_factory(readonly=True) as uow:
            duplicate = await uow.idempotency.seen(event.id)
        if duplicate:
            logger.info("webhook_duplicate_ignored", event_id=event.id, event_type=event.type)
            return {"status": "duplicate", "event_id": event.id, "event_type": event.type}

        outcome = await self._dispatch(event)

        async with self._uow_factory() as uow:
            await uow.idempotency.claim(event.id, scope)
        logger.info("webhook_handled", event_id=event.id, event_type=event.type, outcome=outcome)
        return {"status": outcome, "event_id": event.id, "event_type": event.type}

    async def _dispatch(self, event: WebhookEvent) -> str:
        if event.type == "payment.captured":
            return await self._route(event, self._captured, with_payment_id=True)
        if event.type == "payment.failed":
            return await self._route(event, self._failed, with_payment_id=False)
        if event.type in ("refund.created", "refund.processed"):
            return await self._settle_refund(event)
        logger.info("webhook_event_ignored", event_id=event.id, event_type=event.type)
        return "ignored"

    async def _route(self, event: WebhookEvent, handlers: tuple[Handler, ...], *, with_payment_id: bool) -> str:
        payment = event.payment_entity
        gateway_order_id = payment.get("order_id")
        if not gateway_order_id:
            logger.warning("webhook_missing_order_id", event_id=event.id, event_type=event.type)
            return "ignored"

        args = (gateway_order_id, payment.get("id")) if with_payment_id else (gateway_order_id,)
        for handler in handlers:
            try:
                result = await handler(*args)
            except InvalidTransitionException as exc:
                # e.g. a capture arriving after the payment was already marked failed
                logger.warning(
                    "webhook_state_conflict",
                    event_id=event.id,
                    gateway_order_id=gateway_order_id,
                    error=exc.message,
                )
                return "conflict"
            if result is not None:
                return "processed"

        logger.info("webhook_unknown_order", event_id=event.id, gateway_order_id=gateway_order_id)
        return "ignored"

    async def _settle_refund(self, event: WebhookEvent) -> str:
        """A refund notification finishes a refund still reserved as refund_pending."""
        refund = ((event.data.get("refund") or {}).get("entity")) or {}
        refund_id, payment_id = refund.get("id"), refund.get("payment_id")
        if refund_id and payment_id:
            for handler in self._refunded:
                if await handler(payment_id, refund_id) is not None:
                    break
        logger.info("webhook_refund_acknowledged", refund_id=refund_id, payment_id=payment_id)
        return "processed"
