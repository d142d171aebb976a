"""
Payment gateway port (application/ports) exposing a replaceable protocol.

Application depends on this Protocol; infrastructure implements adapters.
"""
from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from application.dtos.payments import (
    CreatePayment,
    PaymentIntent,
    RefundRequest,
    RefundResult,
    WebhookEvent,
)


@runtime_checkable
class PaymentGateway(Protocol):
    """Gateway protocol for third-party payment providers.

    Only ids and booleans flow back into the settlement services; provider
    payloads stay inside the adapter.
    """

    provider: str

    async def create_payment(self, req: CreatePayment) -> PaymentIntent: ...

    def verify_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> bool: ...

    async def refund(self, req: RefundRequest) -> RefundResult: ...

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent: ...
