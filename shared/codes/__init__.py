"""
Shared business codes used across layers (Domain/Core/API).

This package exposes BusinessCode at `shared.codes` and keeps
payment-specific codes under `shared.codes.payment_codes`.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """Unified business status codes (single source of truth)."""

    # Success
    SUCCESS = 0

    # Parameter errors (1xxxx)
    PARAM_ERROR = 10000
    PARAM_MISSING = 10001
    PARAM_TYPE_ERROR = 10002
    PARAM_VALIDATION_ERROR = 10003

    # Business errors (2xxxx)
    BUSINESS_ERROR = 20000
    NOT_FOUND = 20006  # Generic resource not found
    TICKET_NOT_FOUND = 20010
    ORDER_NOT_FOUND = 20011
    ACCOUNT_NOT_FOUND = 20012
    ACCOUNT_ALREADY_EXISTS = 20013

    # Settlement rule violations (21xxx)
    INVALID_TRANSITION = 21000
    REFUND_NOT_ALLOWED = 21001
    RETURN_NOT_ALLOWED = 21002
    DELIVERY_REQUIRED = 21003
    ESCROW_ALREADY_RELEASED = 21004
    INSUFFICIENT_BALANCE = 21005
    INSUFFICIENT_POINTS = 21006
    BELOW_MINIMUM = 21007
    WALLET_LIMIT_EXCEEDED = 21008
    INVALID_TICKET_SECRET = 21009
    PAYMENT_VERIFICATION_FAILED = 21010

    # Authorization errors (3xxxx)
    PERMISSION_ERROR = 30000
    UNAUTHORIZED = 30001
    FORBIDDEN = 30002

    # System errors (4xxxx)
    SYSTEM_ERROR = 40000
    DATABASE_ERROR = 40001
    NETWORK_ERROR = 40002
    SERVICE_UNAVAILABLE = 40003


__all__ = ["BusinessCode"]
