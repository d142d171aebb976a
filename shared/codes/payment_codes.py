"""
Payment specific codes and provider status mapping.
"""
from __future__ import annotations

from enum import IntEnum


class PaymentCode(IntEnum):
    # Generic success
    SUCCESS = 0

    # Provider/Network errors (6xxxx)
    PROVIDER_ERROR = 60000
    PROVIDER_RECOVERABLE = 60001
    SIGNATURE_ERROR = 60002
    TIMEOUT = 60003
    RATE_LIMITED = 60004


# Razorpay entity status -> internal status
PROVIDER_STATUS_TO_INTERNAL = {
    "razorpay": {
        # orders
        "created": "pending",
        "attempted": "pending",
        "paid": "completed",
        # payments
        "authorized": "pending",
        "captured": "completed",
        "failed": "failed",
        "refunded": "refunded",
        # refunds
        "pending": "refund_pending",
        "processed": "refunded",
    },
}
