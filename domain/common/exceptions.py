"""Business exceptions shared by the domain and infrastructure layers.

The core layer only maps these onto HTTP responses; the domain never imports
from core.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Optional

from shared.codes import BusinessCode


class BusinessException(Exception):
    """Base business exception."""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        super().__init__(self.message)


class DomainValidationException(BusinessException):
    """Malformed input (non-positive price, zero quantity, bad rate...)."""

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict | None = None,
    ):
        super().__init__(
            code=BusinessCode.PARAM_VALIDATION_ERROR,
            message=message,
            error_type="DomainValidationError",
            details=details,
            field=field,
        )


class TicketNotFoundException(BusinessException):
    def __init__(self, ticket_id: str):
        super().__init__(
            code=BusinessCode.TICKET_NOT_FOUND,
            message="Ticket not found",
            error_type="TicketNotFound",
            details={"ticket_id": ticket_id},
        )


class OrderNotFoundException(BusinessException):
    def __init__(self, order_id: str):
        super().__init__(
            code=BusinessCode.ORDER_NOT_FOUND,
            message="Order not found",
            error_type="OrderNotFound",
            details={"order_id": order_id},
        )


class AccountNotFoundException(BusinessException):
    def __init__(self, user_id: str):
        super().__init__(
            code=BusinessCode.ACCOUNT_NOT_FOUND,
            message="Account not found",
            error_type="AccountNotFound",
            details={"user_id": user_id},
        )


class AccountAlreadyExistsException(BusinessException):
    def __init__(self, user_id: str):
        super().__init__(
            code=BusinessCode.ACCOUNT_ALREADY_EXISTS,
            message=f"Account {user_id} already exists",
            error_type="AccountAlreadyExists",
            details={"user_id": user_id},
        )


class RechargeNotFoundException(BusinessException):
    def __init__(self, gateway_order_id: str):
        super().__init__(
            code=BusinessCode.NOT_FOUND,
            message="Wallet recharge not found",
            error_type="RechargeNotFound",
            details={"gateway_order_id": gateway_order_id},
        )


class SettlementRuleException(BusinessException):
    """Business-rule violation.

    ``error_type`` is the stable reason code callers switch on. These are never
    retryable: retrying cannot change the outcome of the rule.
    """

    def __init__(self, code: int, reason: str, message: str, details: Optional[dict] = None):
        super().__init__(code=code, message=message, error_type=reason, details=details)

    @property
    def reason(self) -> str:
        return self.error_type


class InvalidTransitionException(SettlementRuleException):
    def __init__(self, entity: str, current: str, target: str):
        super().__init__(
            BusinessCode.INVALID_TRANSITION,
            "InvalidTransition",
            f"Cannot move {entity} from {current} to {target}",
            details={"entity": entity, "current": current, "target": target},
        )


class RefundNotAllowedException(SettlementRuleException):
    def __init__(self, ticket_id: str, message: str = "Refund not allowed for this ticket"):
        super().__init__(
            BusinessCode.REFUND_NOT_ALLOWED,
            "RefundNotAllowed",
            message,
            details={"ticket_id": ticket_id},
        )


class ReturnNotAllowedException(SettlementRuleException):
    def __init__(self, order_id: str):
        super().__init__(
            BusinessCode.RETURN_NOT_ALLOWED,
            "ReturnNotAllowed",
            "Return not allowed for this order",
            details={"order_id": order_id},
        )


class DeliveryRequiredException(SettlementRuleException):
    def __init__(self, order_id: str, status: str):
        super().__init__(
            BusinessCode.DELIVERY_REQUIRED,
            "DeliveryRequired",
            "Cannot release escrow before delivery confirmation",
            details={"order_id": order_id, "status": status},
        )


class EscrowAlreadyReleasedException(SettlementRuleException):
    def __init__(self, order_id: str):
        super().__init__(
            BusinessCode.ESCROW_ALREADY_RELEASED,
            "AlreadyReleased",
            "Escrow already released",
            details={"order_id": order_id},
        )


class InsufficientBalanceException(SettlementRuleException):
    def __init__(self, balance: Decimal, amount: Decimal):
        super().__init__(
            BusinessCode.INSUFFICIENT_BALANCE,
            "InsufficientBalance",
            "Insufficient balance",
            details={"balance": str(balance), "amount": str(amount)},
        )


class InsufficientPointsException(SettlementRuleException):
    def __init__(self, available: int, requested: int):
        super().__init__(
            BusinessCode.INSUFFICIENT_POINTS,
            "InsufficientPoints",
            "Insufficient reward points",
            details={"available": available, "requested": requested},
        )


class BelowMinimumRedemptionException(SettlementRuleException):
    def __init__(self, requested: int, minimum: int):
        super().__init__(
            BusinessCode.BELOW_MINIMUM,
            "BelowMinimum",
            f"Minimum {minimum} points required for redemption",
            details={"requested": requested, "minimum": minimum},
        )


class WalletLimitExceededException(SettlementRuleException):
    def __init__(self, balance: Decimal, amount: Decimal, limit: Decimal):
        super().__init__(
            BusinessCode.WALLET_LIMIT_EXCEEDED,
            "WalletLimitExceeded",
            "Wallet balance limit exceeded",
            details={"balance": str(balance), "amount": str(amount), "limit": str(limit)},
        )


class InvalidTicketSecretException(SettlementRuleException):
    def __init__(self, ticket_id: str, attempts: int):
        super().__init__(
            BusinessCode.INVALID_TICKET_SECRET,
            "InvalidTicketSecret",
            "Invalid ticket. Possible fraud attempt.",
            details={"ticket_id": ticket_id, "validation_attempts": attempts},
        )


class PaymentVerificationFailedException(SettlementRuleException):
    def __init__(self, reference: str):
        super().__init__(
            BusinessCode.PAYMENT_VERIFICATION_FAILED,
            "PaymentVerificationFailed",
            "Payment verification failed",
            details={"reference": reference},
        )
