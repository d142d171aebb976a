"""
Razorpay Orders/Payments adapter over the REST API (httpx + basic auth).

- Orders: POST /orders with the amount in paise; the returned order id is
  handed to Checkout on the client.
- Checkout signature: HMAC-SHA256(key_secret, "<order_id>|<payment_id>").
- Refunds: POST /payments/{payment_id}/refund.
- Webhooks: HMAC-SHA256(webhook_secret, raw body) in X-Razorpay-Signature;
  the delivery id comes in X-Razorpay-Event-Id.
"""
from __future__ import annotations

import hashlib
import json
from typing import Any, Optional

import httpx

from application.dtos.payments import (
    CreatePayment,
    PaymentIntent,
    RefundRequest,
    RefundResult,
    WebhookEvent,
)
from infrastructure.external.payments.base import BasePaymentClient
from infrastructure.external.payments.exceptions import (
    PaymentProviderError,
    PaymentRecoverableError,
    PaymentSignatureError,
    from_razorpay_error,
)
from core.settings import payment_settings
from shared.codes.payment_codes import PaymentCode


class RazorpayClient(BasePaymentClient):
    provider = "razorpay"

    def __init__(
        self,
        *,
        key_id: Optional[str] = None,
        key_secret: Optional[str] = None,
        webhook_secret: Optional[str] = None,
        api_base: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(
            timeouts=payment_settings.timeouts.model_dump(),
            retry={"max": payment_settings.retry.max, "base": payment_settings.retry.base_backoff},
            transport=transport,
        )
        cfg = payment_settings.razorpay
        self.key_id = key_id or cfg.key_id
        self.key_secret = key_secret or cfg.key_secret
        self.webhook_secret = webhook_secret or cfg.webhook_secret
        self.api_base = (api_base or cfg.api_base).rstrip("/")
        if not self.key_id or not self.key_secret:
            raise RuntimeError("PAYMENT__RAZORPAY__KEY_ID / KEY_SECRET not configured")

    def _client_kwargs(self) -> dict[str, Any]:
        return {"auth": httpx.BasicAuth(self.key_id, self.key_secret), "base_url": self.api_base}

    def _raise_for_response(self, resp: httpx.Response) -> None:
        if resp.status_code < 400:
            return
        try:
            body = resp.json()
        except ValueError:
            body = None
        raise from_razorpay_error(resp.status_code, body, provider=self.provider)

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        async def call():
            async with self.client() as client:
                resp = await client.post(path, json=payload)
            self._raise_for_response(resp)
            return resp.json()

        try:
            return await self._retry(call)
        except httpx.TimeoutException as exc:
            raise PaymentRecoverableError(
                str(exc) or "Razorpay request timed out", provider=self.provider, code=PaymentCode.TIMEOUT
            ) from exc
        except httpx.TransportError as exc:
            raise PaymentRecoverableError(str(exc) or exc.__class__.__name__, provider=self.provider) from exc

    async def create_payment(self, req: CreatePayment) -> PaymentIntent:  # type: ignore[override]
        notes = {k: str(v) for k, v in (req.metadata or {}).items()}
        notes.setdefault("reference", req.order_id)
        amount_minor = self._to_minor(req.amount, req.currency)
        data = await self._post(
            "/orders",
            {
                "amount": amount_minor,
                "currency": req.currency,
                "receipt": req.order_id[:40],
                "notes": notes,
            },
        )
        self._log("payment_order_created", order_id=req.order_id, gateway_order_id=data.get("id"))
        return PaymentIntent(
            intent_id=str(data["id"]),
            status=self._map_status(str(data.get("status", "created"))),
            client_secret_or_params={
                "key_id": self.key_id,
                "order_id": data["id"],
                "amount": amount_minor,
                "currency": req.currency,
            },
            provider=self.provider,
            order_id=req.order_id,
        )

    def verify_signature(self, gateway_order_id: str, payment_id: str, signature: str) -> bool:  # type: ignore[override]
        payload = f"{gateway_order_id}|{payment_id}".encode()
        ok = self._hmac_sha256_matches(self.key_secret, payload, signature)
        if not ok:
            self._log("payment_signature_mismatch", gateway_order_id=gateway_order_id, payment_id=payment_id)
        return ok

    async def refund(self, req: RefundRequest) -> RefundResult:  # type: ignore[override]
        if not req.provider_ref:
            raise PaymentProviderError("Razorpay refund needs the payment id", provider=self.provider)
        data = await self._post(
            f"/payments/{req.provider_ref}/refund",
            {
                "amount": self._to_minor(req.amount, req.currency),
                "receipt": req.order_id[:40],
                "notes": {"reason": req.reason or ""},
            },
        )
        self._log("payment_refund_created", order_id=req.order_id, refund_id=data.get("id"))
        return RefundResult(
            refund_id=str(data["id"]),
            status=self._map_status(str(data.get("status", ""))),
            provider=self.provider,
            provider_ref=str(data.get("payment_id") or req.provider_ref),
        )

    def parse_webhook(self, headers: dict[str, Any], body: bytes) -> WebhookEvent:  # type: ignore[override]
        if not self.webhook_secret:
            raise PaymentSignatureError("Missing PAYMENT__RAZORPAY__WEBHOOK_SECRET", provider=self.provider)
        lowered = {str(k).lower(): v for k, v in headers.items()}
        sig = lowered.get("x-razorpay-signature")
        if not sig:
            raise PaymentSignatureError("Missing X-Razorpay-Signature header", provider=self.provider)
        if not self._hmac_sha256_matches(self.webhook_secret, body, sig):
            raise PaymentSignatureError("Webhook signature mismatch", provider=self.provider)
        try:
            event = json.loads(body)
        except ValueError as exc:
            raise PaymentSignatureError("Webhook body is not JSON", provider=self.provider) from exc

        event_type = str(event.get("event", ""))
        payload = event.get("payload") or {}
        event_id = lowered.get("x-razorpay-event-id")
        if not event_id:
            # no delivery id: derive a stable one from the body
            event_id = f"{event_type}:{hashlib.sha256(body).hexdigest()[:32]}"
        return WebhookEvent(
            id=str(event_id),
            type=event_type,
            provider=self.provider,
            data=payload,
            raw_headers=headers,
            raw_body=body,
        )
