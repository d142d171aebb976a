"""
Wallet and reward-point ledger operations on an ``Account``.

These are the only functions allowed to change wallet or reward fields.
They assume the caller holds the account's exclusive section for the whole
check-then-write sequence.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal, ROUND_FLOOR
from typing import Optional

from domain.account.entity import TIER_ORDER, Account, RewardEntry, RewardTier
from domain.common.exceptions import (
    BelowMinimumRedemptionException,
    DomainValidationException,
    InsufficientBalanceException,
    InsufficientPointsException,
    WalletLimitExceededException,
)
from domain.common.money import ZERO, Number, round_money, to_decimal, to_money
from domain.common.time import utcnow

# lifetime points -> tier, highest first
TIER_THRESHOLDS: tuple[tuple[int, RewardTier], ...] = (
    (10000, RewardTier.PLATINUM),
    (5000, RewardTier.GOLD),
    (2000, RewardTier.SILVER),
)


def calculate_tier(lifetime_points: int) -> RewardTier:
    for threshold, tier in TIER_THRESHOLDS:
        if lifetime_points >= threshold:
            return tier
    return RewardTier.BRONZE


def _higher_tier(current: RewardTier, candidate: RewardTier) -> RewardTier:
    return max(current, candidate, key=TIER_ORDER.index)


def _positive_points(points: int, field: str = "points") -> int:
    if isinstance(points, bool) or not isinstance(points, int) or points <= 0:
        raise DomainValidationException(f"{field} must be a positive integer: {points!r}", field=field)
    return points


def _positive_amount(amount: Number) -> Decimal:
    value = to_money(amount, field="amount")
    if value <= 0:
        raise DomainValidationException(f"amount must be positive: {value}", field="amount")
    return value


def reward_points_for(amount: Number, divisor: Number = Decimal("100")) -> int:
    """Points earned for spending ``amount``: one point per ``divisor`` currency units."""
    value = to_money(amount, field="amount")
    return int((value / to_decimal(divisor, field="divisor")).to_integral_value(rounding=ROUND_FLOOR))


def add_points(account: Account, points: int, reason: str = "activity", now: Optional[datetime] = None) -> Account:
    """
    Credit reward points and recompute the tier.

    The tier only ever moves up: it is the higher of the current tier and the
    one implied by the new lifetime total.
    """
    points = _positive_points(points)
    now = now or utcnow()
    rewards = account.rewards
    rewards.points += points
    rewards.lifetime_points += points
    rewards.tier = _higher_tier(rewards.tier, calculate_tier(rewards.lifetime_points))
    rewards.history.append(RewardEntry(points=points, reason=reason, timestamp=now))
    account.updated_at = now
    return account


def _ensure_within_limit(account: Account, amount: Decimal, max_balance: Optional[Decimal]) -> None:
    if max_balance is not None and account.wallet.balance + amount > max_balance:
        raise WalletLimitExceededException(account.wallet.balance, amount, max_balance)


def add_balance(
    account: Account,
    amount: Number,
    *,
    max_balance: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> Decimal:
    """Credit the wallet; returns the new balance."""
    value = _positive_amount(amount)
    _ensure_within_limit(account, value, max_balance)
    wallet = account.wallet
    wallet.balance += value
    wallet.total_deposited += value
    account.updated_at = now or utcnow()
    return wallet.balance


def deduct_balance(account: Account, amount: Number, now: Optional[datetime] = None) -> Decimal:
    """Debit the wallet; returns the new balance.

    Raises:
        InsufficientBalanceException: balance < amount
    """
    value = _positive_amount(amount)
    wallet = account.wallet
    if wallet.balance < value:
        raise InsufficientBalanceException(wallet.balance, value)
    wallet.balance -= value
    wallet.total_spent += value
    account.rewards.lifetime_spending += value
    account.updated_at = now or utcnow()
    return wallet.balance


def redeem_points(
    account: Account,
    points: int,
    ratio: Number = Decimal("0.5"),
    *,
    minimum: int = 100,
    max_balance: Optional[Decimal] = None,
    now: Optional[datetime] = None,
) -> Decimal:
    """
    Convert reward points into wallet balance; returns the cash value.

    Every check runs before anything is written, so a failure leaves the
    account untouched.

    Raises:
        BelowMinimumRedemptionException: points < minimum
        InsufficientPointsException: account holds fewer than ``points``
        WalletLimitExceededException: the credit would pass ``max_balance``
    """
    points = _positive_points(points)
    ratio = to_decimal(ratio, field="ratio")
    if ratio <= 0:
        raise DomainValidationException("ratio must be positive", field="ratio")
    if points < minimum:
        raise BelowMinimumRedemptionException(points, minimum)
    if account.rewards.points < points:
        raise InsufficientPointsException(account.rewards.points, points)

    cash_value = round_money(points * ratio)
    _ensure_within_limit(account, cash_value, max_balance)

    now = now or utcnow()
    account.rewards.points -= points
    account.rewards.history.append(RewardEntry(points=-points, reason="redeemed", timestamp=now))
    if cash_value > 0:
        add_balance(account, cash_value, max_balance=max_balance, now=now)
    return cash_value


def recharge_bonus(amount: Number, threshold: Number = Decimal("5000"), rate: Number = Decimal("0.05")) -> Decimal:
    """Bonus credited on a large recharge, floored to whole currency units."""
    value = to_money(amount, field="amount")
    if value < to_decimal(threshold, field="threshold"):
        return ZERO
    bonus = (value * to_decimal(rate, field="rate")).to_integral_value(rounding=ROUND_FLOOR)
    return round_money(bonus)
