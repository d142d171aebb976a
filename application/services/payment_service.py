"""
Application service wrapping the payment gateway port.

Settlement services talk to the gateway only through this class. The gateway
implementation is provided by infrastructure and injected from the
composition root, keeping dependencies one-way.
"""
from __future__ import annotations

import hashlib
from decimal import Decimal
from typing import Any, Optional

from application.dtos.payments import (
    CreatePayment,
    PaymentIntent,
    RefundRequest,
    RefundResult,
    WebhookEvent,
)
from application.ports.payment_gateway import PaymentGateway
from core.logging_config import get_logger
from domain.common.exceptions import PaymentVerificationFailedException


logger = get_logger(__name__)


def _ensure_idempotency_key(req: CreatePayment | RefundRequest) -> None:
    if getattr(req, "idempotency_key", None):
        return
    # stable key from business identifiers only (no timestamp)
    if isinstance(req, CreatePayment):
        base = f"create|{req.order_id}|{req.amount}|{req.currency}|{(req.provider or '').lower()}"
    else:
        base = f"refund|{req.order_id}|{req.provider_ref or ''}|{req.amount}|{req.currency}"
    setattr(req, "idempotency_key", hashlib.sha256(base.encode("utf-8")).hexdigest())


class PaymentService:
    def __init__(self, gateway: PaymentGateway) -> None:
        self.gateway = gateway

    @property
    def provider(self) -> str:
        return self.gateway.provider

    async def create_payment(
        self,
        reference: str,
        amount: Decimal,
        currency: str,
        metadata: Optional[dict[str, Any]] = None,
    ) -> PaymentIntent:
        req = CreatePayment(order_id=reference, amount=amount, currency=currency, metadata=metadata)
        _ensure_idempotency_key(req)
        logger.info(
            "payment_create_request",
            reference=reference,
            amount=str(amount),
            provider=self.gateway.provider,
            idempotency_key=req.idempotency_key,
        )
        intent = await self.gateway.create_payment(req)
        logger.info(
            "payment_create_response",
            reference=reference,
            gateway_order_id=intent.intent_id,
            status=intent.status,
        )
        return intent

    def verify(self, gateway_order_id: str, payment_id: str, signature: str) -> None:
        """Raise PaymentVerificationFailedException unless the checkout signature matches."""
        if not self.gateway.verify_signature(gateway_order_id, payment_id, signature):
            logger.warning("payment_verification_failed", gateway_order_id=gateway_order_id, payment_id=payment_id)
            raise PaymentVerificationFailedException(gateway_order_id)

    async def refund(
        self,
        reference: str,
        payment_id: Optional[str],
        amount: Decimal,
        currency: str,
        reason: Optional[str] = None,
    ) -> RefundResult:
        req = RefundRequest(
            order_id=reference,
            amount=amount,
            currency=currency,
            reason=reason,
            provider_ref=payment_id,
        )
        _ensure_idempotency_key(req)
        logger.info("payment_refund_request", reference=reference, amount=str(amount), provider=self.gateway.provider)
        return await self.gateway.refund(req)

    def handle_webhook(self, headers: dict, body: bytes) -> WebhookEvent:
        event = self.gateway.parse_webhook(headers, body)
        logger.info("payment_webhook_parsed", provider=self.gateway.provider, event_type=event.type, event_id=event.id)
        return event

    async def aclose(self) -> None:
        close = getattr(self.gateway, "aclose", None)
        if callable(close):
            await close()
