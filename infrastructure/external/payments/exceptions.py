"""
Razorpay failures as BusinessException variants.

Razorpay answers an error with ``{"error": {"code", "description", "source",
"step", "reason", "field"}}``. ``from_razorpay_error`` turns that body and the
HTTP status into one of the classes below:

- PaymentRecoverableError: 429, 5xx or transport trouble; retried by the
  client and never taken as a final answer by the settlement services.
- PaymentProviderError: Razorpay refused the request (BAD_REQUEST_ERROR and
  friends); nothing moved on its side.
- PaymentSignatureError: a Checkout or webhook signature did not verify.
"""
from __future__ import annotations

from typing import Any, Optional

from domain.common.exceptions import BusinessException
from shared.codes.payment_codes import PaymentCode

RAZORPAY = "razorpay"

# error.* keys worth keeping on the exception for support tickets
_ERROR_FIELDS = ("source", "step", "reason", "field")


class PaymentError(BusinessException):
    """Common base; ``retryable`` tells the caller whether the outcome is still open."""

    retryable = False

    def __init__(
        self,
        message: str,
        *,
        code: PaymentCode,
        provider: str = RAZORPAY,
        provider_code: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        self.provider = provider
        self.provider_code = provider_code
        merged: dict[str, Any] = {"provider": provider, "provider_code": provider_code}
        if details:
            merged.update(details)
        super().__init__(code=code, message=message, error_type=type(self).__name__, details=merged)


class PaymentProviderError(PaymentError):
    def __init__(self, message: str, *, provider: str = RAZORPAY, provider_code: Optional[str] = None,
                 details: Optional[dict] = None):
        super().__init__(
            message, code=PaymentCode.PROVIDER_ERROR, provider=provider, provider_code=provider_code, details=details
        )


class PaymentRecoverableError(PaymentError):
    retryable = True

    def __init__(self, message: str, *, provider: str = RAZORPAY, provider_code: Optional[str] = None,
                 details: Optional[dict] = None, code: PaymentCode = PaymentCode.PROVIDER_RECOVERABLE):
        super().__init__(message, code=code, provider=provider, provider_code=provider_code, details=details)


class PaymentSignatureError(PaymentError):
    def __init__(self, message: str, *, provider: str = RAZORPAY, details: Optional[dict] = None):
        super().__init__(message, code=PaymentCode.SIGNATURE_ERROR, provider=provider, details=details)


def from_razorpay_error(status_code: int, body: Any, *, provider: str = RAZORPAY) -> PaymentError:
    """Classify a failed Razorpay response; ``body`` is the decoded JSON or None."""
    error = body.get("error") if isinstance(body, dict) else None
    error = error if isinstance(error, dict) else {}
    message = error.get("description") or f"Razorpay HTTP {status_code}"
    provider_code = error.get("code")
    details: dict[str, Any] = {"http_status": status_code}
    details.update({key: error[key] for key in _ERROR_FIELDS if error.get(key) not in (None, "", "NA")})

    if status_code == 429:
        return PaymentRecoverableError(
            message, provider=provider, provider_code=provider_code, details=details, code=PaymentCode.RATE_LIMITED
        )
    if status_code >= 500 or provider_code == "SERVER_ERROR":
        return PaymentRecoverableError(message, provider=provider, provider_code=provider_code, details=details)
    return PaymentProviderError(message, provider=provider, provider_code=provider_code, details=details)
