"""
Account aggregate - a platform user's wallet and loyalty rewards.

The wallet and reward fields are only mutated through the functions in
``domain.account.rewards``.
"""
from __future__ import annotations

import secrets
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from domain.common.exceptions import DomainValidationException, InvalidTransitionException
from domain.common.money import DEFAULT_CURRENCY, ZERO, validate_rate
from domain.common.time import ensure_utc


class UserType(str, Enum):
    TOURIST = "tourist"
    BUSINESS = "business"
    ADMIN = "admin"


class RewardTier(str, Enum):
    BRONZE = "bronze"
    SILVER = "silver"
    GOLD = "gold"
    PLATINUM = "platinum"


TIER_ORDER = (RewardTier.BRONZE, RewardTier.SILVER, RewardTier.GOLD, RewardTier.PLATINUM)


def generate_referral_code() -> str:
    return f"ECH{secrets.token_hex(3).upper()}"


@dataclass
class Wallet:
    balance: Decimal = ZERO
    total_deposited: Decimal = ZERO
    total_spent: Decimal = ZERO
    currency: str = DEFAULT_CURRENCY


@dataclass
class RewardEntry:
    points: int
    reason: str
    timestamp: datetime

    def __post_init__(self):
        self.timestamp = ensure_utc(self.timestamp)


@dataclass
class Rewards:
    points: int = 0
    lifetime_points: int = 0
    lifetime_spending: Decimal = ZERO
    tier: RewardTier = RewardTier.BRONZE
    referral_code: str = field(default_factory=generate_referral_code)
    history: list[RewardEntry] = field(default_factory=list)


@dataclass
class Account:
    id: Optional[int]
    user_id: str
    name: str
    user_type: UserType = UserType.TOURIST
    commission_rate: Optional[Decimal] = None
    wallet: Wallet = field(default_factory=Wallet)
    rewards: Rewards = field(default_factory=Rewards)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def __post_init__(self):
        if not self.user_id:
            raise DomainValidationException("user_id is required", field="user_id")
        if self.commission_rate is not None:
            self.commission_rate = validate_rate(self.commission_rate, field="commission_rate")
        self.created_at = ensure_utc(self.created_at)
        self.updated_at = ensure_utc(self.updated_at)

    @property
    def is_vendor(self) -> bool:
        return self.user_type == UserType.BUSINESS


class RechargeStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class WalletRecharge:
    """A gateway-funded top-up; the amount is fixed when the gateway order is created."""

    gateway_order_id: str
    user_id: str
    amount: Decimal
    status: RechargeStatus = RechargeStatus.PENDING
    payment_id: Optional[str] = None
    bonus: Decimal = ZERO
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    def __post_init__(self):
        self.created_at = ensure_utc(self.created_at)
        self.completed_at = ensure_utc(self.completed_at)

    def complete(self, payment_id: str, bonus: Decimal, now: datetime) -> bool:
        """pending -> completed; a repeat is a no-op returning False."""
        if self.status == RechargeStatus.COMPLETED:
            return False
        if self.status != RechargeStatus.PENDING:
            raise InvalidTransitionException("wallet recharge", self.status.value, RechargeStatus.COMPLETED.value)
        self.status = RechargeStatus.COMPLETED
        self.payment_id = payment_id
        self.bonus = bonus
        self.completed_at = now
        return True

    def mark_failed(self) -> bool:
        if self.status != RechargeStatus.PENDING:
            return False
        self.status = RechargeStatus.FAILED
        return True
