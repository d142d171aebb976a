import random
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from domain.account.entity import Account, RechargeStatus, RewardTier, WalletRecharge
from domain.account.rewards import (
    add_balance,
    add_points,
    calculate_tier,
    deduct_balance,
    recharge_bonus,
    redeem_points,
    reward_points_for,
)
from domain.common.exceptions import (
    BelowMinimumRedemptionException,
    DomainValidationException,
    InsufficientBalanceException,
    InsufficientPointsException,
    InvalidTransitionException,
    WalletLimitExceededException,
)

NOW = datetime(2026, 5, 1, 12, 0, tzinfo=timezone.utc)


def _account(balance: str = "0", points: int = 0) -> Account:
    account = Account(id=1, user_id="u1", name="Asha")
    account.wallet.balance = Decimal(balance)
    account.rewards.points = points
    return account


def test_tiers():
    assert calculate_tier(0) == RewardTier.BRONZE
    assert calculate_tier(1999) == RewardTier.BRONZE
    assert calculate_tier(2000) == RewardTier.SILVER
    assert calculate_tier(5000) == RewardTier.GOLD
    assert calculate_tier(10000) == RewardTier.PLATINUM


def test_add_points_moves_tier_up_only():
    account = _account()
    add_points(account, 2500, now=NOW)
    assert account.rewards.tier == RewardTier.SILVER
    assert account.rewards.lifetime_points == 2500

    account.rewards.tier = RewardTier.GOLD
    add_points(account, 10, now=NOW)
    assert account.rewards.tier == RewardTier.GOLD


def test_add_points_rejects_non_positive():
    with pytest.raises(DomainValidationException):
        add_points(_account(), 0)
    with pytest.raises(DomainValidationException):
        add_points(_account(), -5)


def test_reward_points_for_spend():
    assert reward_points_for(Decimal("247.80")) == 2
    assert reward_points_for(Decimal("99.99")) == 0
    assert reward_points_for(Decimal("1000"), Decimal("50")) == 20


def test_redeem_points():
    account = _account(points=150)
    cash = redeem_points(account, 100, Decimal("0.5"), now=NOW)
    assert cash == Decimal("50.00")
    assert account.rewards.points == 50
    assert account.wallet.balance == Decimal("50.00")
    assert account.wallet.total_deposited == Decimal("50.00")
    assert account.rewards.history[-1].points == -100


def test_redeem_more_than_held():
    account = _account(points=150)
    with pytest.raises(InsufficientPointsException) as exc_info:
        redeem_points(account, 200)
    assert exc_info.value.details == {"available": 150, "requested": 200}
    assert account.rewards.points == 150


def test_minimum_checked_before_balance():
    account = _account(points=10)
    with pytest.raises(BelowMinimumRedemptionException):
        redeem_points(account, 50, minimum=100)


def test_redeem_respects_wallet_ceiling():
    account = _account(balance="990", points=500)
    with pytest.raises(WalletLimitExceededException):
        redeem_points(account, 100, Decimal("0.5"), max_balance=Decimal("1000"))
    assert account.rewards.points == 500
    assert account.wallet.balance == Decimal("990")


def test_deduct_balance():
    account = _account(balance="100")
    assert deduct_balance(account, Decimal("40"), now=NOW) == Decimal("60.00")
    assert account.wallet.total_spent == Decimal("40.00")
    assert account.rewards.lifetime_spending == Decimal("40.00")
    with pytest.raises(InsufficientBalanceException):
        deduct_balance(account, Decimal("60.01"))
    with pytest.raises(DomainValidationException):
        deduct_balance(account, Decimal("0"))


def test_add_balance_ceiling_is_optional():
    account = _account(balance="10")
    add_balance(account, Decimal("1000000"))
    with pytest.raises(WalletLimitExceededException):
        add_balance(account, Decimal("1"), max_balance=Decimal("100"))


@pytest.mark.parametrize("seed", [20260501, 7, 99991])
def test_balance_and_points_never_negative_under_random_operations(seed):
    rng = random.Random(seed)
    account = _account(balance="500", points=400)
    added = redeemed = 0
    rejected = set()
    for _ in range(600):
        amount = Decimal(rng.randint(1, 30000)) / 100
        op = rng.choice(("add_balance", "deduct_balance", "add_points", "redeem_points"))
        try:
            if op == "add_balance":
                add_balance(account, amount, now=NOW)
            elif op == "deduct_balance":
                deduct_balance(account, amount, now=NOW)
            elif op == "add_points":
                points = rng.randint(1, 150)
                add_points(account, points, now=NOW)
                added += points
            else:
                points = rng.randint(1, 600)
                redeem_points(account, points, Decimal("0.5"), now=NOW)
                redeemed += points
        except (InsufficientBalanceException, InsufficientPointsException, BelowMinimumRedemptionException) as exc:
            rejected.add(type(exc))
        assert account.wallet.balance >= 0
        assert account.rewards.points >= 0

    assert account.rewards.points == 400 + added - redeemed
    assert account.rewards.lifetime_points == added
    assert account.wallet.balance == account.wallet.total_deposited + Decimal("500") - account.wallet.total_spent
    assert rejected



def test_recharge_bonus():
    assert recharge_bonus(Decimal("4999.99")) == Decimal("0.00")
    assert recharge_bonus(Decimal("5000")) == Decimal("250.00")
    assert recharge_bonus(Decimal("5019.99")) == Decimal("250.00")


def test_wallet_recharge_completes_once():
    recharge = WalletRecharge(gateway_order_id="order_1", user_id="u1", amount=Decimal("100"))
    assert recharge.complete("pay_1", Decimal("0"), NOW) is True
    assert recharge.status == RechargeStatus.COMPLETED
    assert recharge.complete("pay_2", Decimal("0"), NOW) is False
    assert recharge.payment_id == "pay_1"
    assert recharge.mark_failed() is False

    failed = WalletRecharge(gateway_order_id="order_2", user_id="u1", amount=Decimal("100"))
    assert failed.mark_failed() is True
    with pytest.raises(InvalidTransitionException):
        failed.complete("pay_3", Decimal("0"), NOW)
