"""
Payment gateway DTOs (Pydantic v2) used at the application boundary.
"""
from __future__ import annotations

from typing import Any, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.types import condecimal

# currencies the gateway adapter accepts
ISO_4217 = {"INR", "USD", "EUR", "GBP", "SGD", "AED"}


def _validate_currency(v: str) -> str:
    u = (v or "").upper()
    if len(u) != 3 or not u.isalpha():
        raise ValueError("currency must be ISO-4217 alpha-3")
    if u not in ISO_4217:
        raise ValueError("unsupported currency")
    return u


class CreatePayment(BaseModel):
    """Gateway order for an amount in major units; ``order_id`` is our receipt reference."""

    order_id: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="INR")
    provider: Optional[str] = None
    idempotency_key: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency(cls, v: str) -> str:
        return _validate_currency(v)


class PaymentIntent(BaseModel):
    intent_id: str
    status: str
    client_secret_or_params: Optional[dict[str, Any]] = None
    provider: str
    order_id: Optional[str] = None


class RefundRequest(BaseModel):
    order_id: str
    amount: condecimal(gt=0)  # type: ignore[valid-type]
    currency: str = Field(default="INR")
    reason: Optional[str] = None
    provider: Optional[str] = None
    idempotency_key: Optional[str] = None
    provider_ref: Optional[str] = None  # gateway payment id

    @field_validator("currency")
    @classmethod
    def _upper_and_validate_currency_refund(cls, v: str) -> str:
        return _validate_currency(v)


class RefundResult(BaseModel):
    refund_id: str
    status: str
    provider: str
    provider_ref: Optional[str] = None


class WebhookEvent(BaseModel):
    id: str
    type: str
    provider: str
    data: dict[str, Any]
    raw_headers: Optional[dict[str, Any]] = None
    raw_body: Optional[bytes] = None

    model_config = ConfigDict(arbitrary_types_allowed=True)

    @property
    def payment_entity(self) -> dict[str, Any]:
        return ((self.data.get("payment") or {}).get("entity")) or {}
