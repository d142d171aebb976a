from decimal import Decimal

import pytest

from conftest import sign
from application.dtos.wallet import (
    OpenAccountDTO,
    RechargeConfirmDTO,
    RechargeDTO,
    RedeemPointsDTO,
    WalletPaymentDTO,
)
from application.services.wallet_service import WalletApplicationService
from domain.account.entity import RechargeStatus, UserType
from domain.analytics.entity import AnalyticsEventType
from domain.common.exceptions import (
    AccountAlreadyExistsException,
    AccountNotFoundException,
    BelowMinimumRedemptionException,
    DomainValidationException,
    InsufficientBalanceException,
    InsufficientPointsException,
    InvalidTransitionException,
    PaymentVerificationFailedException,
    RechargeNotFoundException,
    WalletLimitExceededException,
)
from domain.common.money import SettlementRates


def _confirm(gid: str, payment_id: str = "pay_1") -> RechargeConfirmDTO:
    return RechargeConfirmDTO(gateway_order_id=gid, payment_id=payment_id, signature=sign(gid, payment_id))


@pytest.mark.asyncio
async def test_open_account(wallet_service):
    account = await wallet_service.open_account(
        OpenAccountDTO(user_id="v9", name="Weavers Co-op", user_type=UserType.BUSINESS, commission_rate=Decimal("0.12"))
    )
    assert account.balance == Decimal("0.00")
    assert account.tier == "bronze"
    assert account.referral_code.startswith("ECH")
    assert account.commission_rate == Decimal("0.12")

    with pytest.raises(AccountAlreadyExistsException):
        await wallet_service.open_account(OpenAccountDTO(user_id="v9", name="Again"))
    with pytest.raises(AccountNotFoundException):
        await wallet_service.get_account("ghost")


@pytest.mark.asyncio
async def test_recharge_credits_stored_amount_once(wallet_service, seed_account, gateway, db):
    seed_account("u1")
    started = await wallet_service.start_recharge("u1", RechargeDTO(amount=Decimal("1000")))
    gid = started.gateway_order_id
    assert gateway.orders[0].amount == Decimal("1000")
    assert gateway.orders[0].order_id.startswith("RCH")
    assert db.state.recharges[gid].status == RechargeStatus.PENDING

    first = await wallet_service.confirm_recharge("u1", _confirm(gid))
    second = await wallet_service.confirm_recharge("u1", _confirm(gid))

    assert first.balance == Decimal("1000.00")
    assert first.already_applied is False
    assert second.already_applied is True
    assert second.balance == Decimal("1000.00")
    assert db.state.accounts["u1"].wallet.total_deposited == Decimal("1000.00")
    assert len([e for e in db.state.events if e.event_type == AnalyticsEventType.WALLET_RECHARGED]) == 1


@pytest.mark.asyncio
async def test_large_recharge_earns_bonus(wallet_service, seed_account):
    seed_account("u1")
    started = await wallet_service.start_recharge("u1", RechargeDTO(amount=Decimal("5000")))
    result = await wallet_service.confirm_recharge("u1", _confirm(started.gateway_order_id))
    assert result.bonus == Decimal("250.00")
    assert result.balance == Decimal("5250.00")


@pytest.mark.asyncio
async def test_recharge_below_minimum(wallet_service, seed_account, gateway):
    seed_account("u1")
    with pytest.raises(DomainValidationException) as exc_info:
        await wallet_service.start_recharge("u1", RechargeDTO(amount=Decimal("50")))
    assert exc_info.value.field == "amount"
    assert gateway.orders == []


@pytest.mark.asyncio
async def test_recharge_confirm_guards(wallet_service, seed_account):
    seed_account("u1")
    seed_account("u2")
    started = await wallet_service.start_recharge("u1", RechargeDTO(amount=Decimal("200")))

    with pytest.raises(PaymentVerificationFailedException):
        await wallet_service.confirm_recharge("u2", _confirm(started.gateway_order_id))
    with pytest.raises(RechargeNotFoundException):
        await wallet_service.confirm_recharge("u1", _confirm("order_404"))
    with pytest.raises(PaymentVerificationFailedException):
        await wallet_service.confirm_recharge(
            "u1",
            RechargeConfirmDTO(gateway_order_id=started.gateway_order_id, payment_id="pay_1", signature="bad"),
        )


@pytest.mark.asyncio
async def test_failed_recharge_cannot_complete(wallet_service, seed_account, db):
    seed_account("u1")
    started = await wallet_service.start_recharge("u1", RechargeDTO(amount=Decimal("200")))
    gid = started.gateway_order_id

    assert await wallet_service.mark_recharge_failed(gid) is True
    assert await wallet_service.mark_recharge_failed(gid) is False
    assert await wallet_service.mark_recharge_failed("order_404") is None
    with pytest.raises(InvalidTransitionException):
        await wallet_service.confirm_recharge("u1", _confirm(gid))
    assert db.state.accounts["u1"].wallet.balance == Decimal("0")


@pytest.mark.asyncio
async def test_wallet_ceiling(uow_factory, payments, clock, seed_account, gateway):
    service = WalletApplicationService(
        uow_factory,
        payments,
        rates=SettlementRates(max_wallet_balance=Decimal("1000")),
        clock=clock,
    )
    seed_account("u1", balance=Decimal("900"), points=400)

    with pytest.raises(WalletLimitExceededException):
        await service.start_recharge("u1", RechargeDTO(amount=Decimal("200")))
    assert gateway.orders == []
    with pytest.raises(WalletLimitExceededException):
        await service.redeem_points("u1", RedeemPointsDTO(points=400))

    redeemed = await service.redeem_points("u1", RedeemPointsDTO(points=200))
    assert redeemed.balance == Decimal("1000.00")


@pytest.mark.asyncio
async def test_redeem_points(wallet_service, seed_account, db):
    seed_account("u1", points=150)

    result = await wallet_service.redeem_points("u1", RedeemPointsDTO(points=100))
    assert result.cash_value == Decimal("50.00")
    assert result.remaining_points == 50
    assert result.balance == Decimal("50.00")
    assert len([e for e in db.state.events if e.event_type == AnalyticsEventType.POINTS_REDEEMED]) == 1

    with pytest.raises(BelowMinimumRedemptionException):
        await wallet_service.redeem_points("u1", RedeemPointsDTO(points=50))
    with pytest.raises(InsufficientPointsException):
        await wallet_service.redeem_points("u1", RedeemPointsDTO(points=120))


@pytest.mark.asyncio
async def test_pay_with_wallet_once_per_reference(wallet_service, seed_account, db):
    seed_account("u1", balance=Decimal("500"))

    paid = await wallet_service.pay_with_wallet("u1", WalletPaymentDTO(amount=Decimal("200"), reference="INV-1"))
    again = await wallet_service.pay_with_wallet("u1", WalletPaymentDTO(amount=Decimal("200"), reference="INV-1"))
    other = await wallet_service.pay_with_wallet("u1", WalletPaymentDTO(amount=Decimal("100"), reference="INV-2"))

    assert paid.balance == Decimal("300.00")
    assert again.already_applied is True and again.balance == Decimal("300.00")
    assert other.balance == Decimal("200.00")
    assert db.state.accounts["u1"].wallet.total_spent == Decimal("300.00")


@pytest.mark.asyncio
async def test_failed_wallet_payment_can_be_retried(wallet_service, seed_account, db):
    seed_account("u1", balance=Decimal("50"))
    with pytest.raises(InsufficientBalanceException):
        await wallet_service.pay_with_wallet("u1", WalletPaymentDTO(amount=Decimal("80"), reference="INV-9"))
    assert db.state.keys == set()

    db.state.accounts["u1"].wallet.balance = Decimal("100")
    result = await wallet_service.pay_with_wallet("u1", WalletPaymentDTO(amount=Decimal("80"), reference="INV-9"))
    assert result.already_applied is False
    assert result.balance == Decimal("20.00")
