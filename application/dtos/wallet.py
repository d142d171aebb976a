"""
Wallet and rewards DTOs
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import Field
from pydantic.types import condecimal

from application.dtos.base import DTOBase
from domain.account.entity import Account, UserType


class OpenAccountDTO(DTOBase):
    user_id: str = Field(..., min_length=1, max_length=64)
    name: str = Field(..., min_length=1, max_length=200)
    user_type: UserType = UserType.TOURIST
    commission_rate: Optional[condecimal(ge=0, le=1)] = None  # type: ignore[valid-type]


class RechargeDTO(DTOBase):
    amount: condecimal(gt=0, max_digits=15, decimal_places=2)  # type: ignore[valid-type]


class RechargeConfirmDTO(DTOBase):
    gateway_order_id: str
    payment_id: str
    signature: str


class RedeemPointsDTO(DTOBase):
    points: int = Field(..., gt=0)


class WalletPaymentDTO(DTOBase):
    amount: condecimal(gt=0, max_digits=15, decimal_places=2)  # type: ignore[valid-type]
    reference: str = Field(..., min_length=1, max_length=100)


class AccountResponseDTO(DTOBase):
    user_id: str
    name: str
    user_type: str
    commission_rate: Optional[Decimal] = None
    balance: Decimal
    total_deposited: Decimal
    total_spent: Decimal
    currency: str
    points: int
    lifetime_points: int
    lifetime_spending: Decimal
    tier: str
    referral_code: str
    created_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, account: Account) -> "AccountResponseDTO":
        return cls(
            user_id=account.user_id,
            name=account.name,
            user_type=account.user_type.value,
            commission_rate=account.commission_rate,
            balance=account.wallet.balance,
            total_deposited=account.wallet.total_deposited,
            total_spent=account.wallet.total_spent,
            currency=account.wallet.currency,
            points=account.rewards.points,
            lifetime_points=account.rewards.lifetime_points,
            lifetime_spending=account.rewards.lifetime_spending,
            tier=account.rewards.tier.value,
            referral_code=account.rewards.referral_code,
            created_at=account.created_at,
        )


class RechargeStartResponseDTO(DTOBase):
    gateway_order_id: str
    amount: Decimal
    current_balance: Decimal
    checkout: Optional[dict[str, Any]] = None


class RechargeResultDTO(DTOBase):
    gateway_order_id: str
    amount_added: Decimal
    bonus: Decimal
    balance: Decimal
    already_applied: bool = False


class RedemptionResultDTO(DTOBase):
    points_redeemed: int
    cash_value: Decimal
    remaining_points: int
    balance: Decimal


class WalletPaymentResultDTO(DTOBase):
    reference: str
    amount: Decimal
    balance: Decimal
    already_applied: bool = False
