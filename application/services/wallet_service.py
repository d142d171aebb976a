"""
Wallet application service - accounts, gateway top-ups, point redemption and wallet spend.
"""
from __future__ import annotations

import secrets
import time
from datetime import datetime
from typing import Callable, Optional

from application.dtos.wallet import (
    AccountResponseDTO,
    OpenAccountDTO,
    RechargeConfirmDTO,
    RechargeDTO,
    RechargeResultDTO,
    RechargeStartResponseDTO,
    RedeemPointsDTO,
    RedemptionResultDTO,
    WalletPaymentDTO,
    WalletPaymentResultDTO,
)
from application.services.analytics_service import AnalyticsRecorder
from application.services.entity_locks import KeyedLock, account_key, recharge_key
from application.services.payment_service import PaymentService
from core.logging_config import get_logger
from domain.account.entity import Account, RechargeStatus, Wallet, WalletRecharge
from domain.account.rewards import add_balance, deduct_balance, recharge_bonus, redeem_points
from domain.analytics.entity import AnalyticsEventType
from domain.common.exceptions import (
    AccountAlreadyExistsException,
    AccountNotFoundException,
    DomainValidationException,
    PaymentVerificationFailedException,
    RechargeNotFoundException,
    WalletLimitExceededException,
)
from domain.common.money import DEFAULT_RATES, SettlementRates
from domain.common.time import utcnow
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


def _recharge_receipt() -> str:
    return f"RCH{int(time.time() * 1000)}{secrets.token_hex(3).upper()}"


class WalletApplicationService:
    """Account, wallet and rewards use cases"""

    def __init__(
        self,
        uow_factory: Callable[..., AbstractUnitOfWork],
        payments: PaymentService,
        rates: SettlementRates = DEFAULT_RATES,
        analytics: Optional[AnalyticsRecorder] = None,
        locks: Optional[KeyedLock] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._uow_factory = uow_factory
        self._payments = payments
        self._rates = rates
        self._analytics = analytics
        self._locks = locks or KeyedLock()
        self._clock = clock

    async def _emit(self, event_type: AnalyticsEventType, entity_id: str, user_id: str, **kwargs) -> None:
        if self._analytics is not None:
            await self._analytics.emit(event_type, entity_id, user_id=user_id, **kwargs)

    async def _load_for_update(self, uow: AbstractUnitOfWork, user_id: str) -> Account:
        account = await uow.accounts.get_for_update(user_id)
        if account is None:
            raise AccountNotFoundException(user_id)
        return account

    async def open_account(self, data: OpenAccountDTO) -> AccountResponseDTO:
        now = self._clock()
        account = Account(
            id=None,
            user_id=data.user_id,
            name=data.name,
            user_type=data.user_type,
            commission_rate=data.commission_rate,
            wallet=Wallet(currency=self._rates.currency),
            created_at=now,
            updated_at=now,
        )
        async with self._locks.hold(account_key(data.user_id)):
            async with self._uow_factory() as uow:
                if await uow.accounts.exists(data.user_id):
                    raise AccountAlreadyExistsException(data.user_id)
                account = await uow.accounts.create(account)
        return AccountResponseDTO.from_entity(account)

    async def get_account(self, user_id: str) -> AccountResponseDTO:
        async with self._uow_factory(readonly=True) as uow:
            account = await uow.accounts.get_by_user_id(user_id)
        if account is None:
            raise AccountNotFoundException(user_id)
        return AccountResponseDTO.from_entity(account)

    async def start_recharge(self, user_id: str, data: RechargeDTO) -> RechargeStartResponseDTO:
        """
        Open a gateway order for a top-up and remember its amount.

        The amount credited later is the one stored here, never one supplied
        at confirmation time.
        """
        amount = data.amount
        if amount < self._rates.min_recharge_amount:
            raise DomainValidationException(
                f"Minimum recharge amount is {self._rates.min_recharge_amount}",
                field="amount",
            )
        async with self._uow_factory(readonly=True) as uow:
            account = await uow.accounts.get_by_user_id(user_id)
        if account is None:
            raise AccountNotFoundException(user_id)

        limit = self._rates.max_wallet_balance
        credit = amount + recharge_bonus(amount, self._rates.recharge_bonus_threshold, self._rates.recharge_bonus_rate)
        if limit is not None and account.wallet.balance + credit > limit:
            raise WalletLimitExceededException(account.wallet.balance, credit, limit)

        intent = await self._payments.create_payment(
            _recharge_receipt(),
            amount,
            self._rates.currency,
            metadata={"kind": "wallet_recharge", "user_id": user_id},
        )
        async with self._uow_factory() as uow:
            await uow.recharges.create(
                WalletRecharge(
                    gateway_order_id=intent.intent_id,
                    user_id=user_id,
                    amount=amount,
                    created_at=self._clock(),
                )
            )
        logger.info("wallet_recharge_started", user_id=user_id, gateway_order_id=intent.intent_id, amount=str(amount))
        return RechargeStartResponseDTO(
            gateway_order_id=intent.intent_id,
            amount=amount,
            current_balance=account.wallet.balance,
            checkout=intent.client_secret_or_params,
        )

    async def _complete_recharge(
        self,
        gateway_order_id: str,
        payment_id: str,
        user_id: str,
    ) -> RechargeResultDTO:
        async with self._locks.hold(recharge_key(gateway_order_id), account_key(user_id)):
            async with self._uow_factory() as uow:
                recharge = await uow.recharges.get_for_update(gateway_order_id)
                if recharge is None:
                    raise RechargeNotFoundException(gateway_order_id)
                if recharge.user_id != user_id:
                    raise PaymentVerificationFailedException(gateway_order_id)
                account = await self._load_for_update(uow, user_id)

                if recharge.status == RechargeStatus.COMPLETED:
                    logger.info("wallet_recharge_already_applied", gateway_order_id=gateway_order_id)
                    return RechargeResultDTO(
                        gateway_order_id=gateway_order_id,
                        amount_added=recharge.amount,
                        bonus=recharge.bonus,
                        balance=account.wallet.balance,
                        already_applied=True,
                    )

                now = self._clock()
                bonus = recharge_bonus(
                    recharge.amount, self._rates.recharge_bonus_threshold, self._rates.recharge_bonus_rate
                )
                recharge.complete(payment_id, bonus, now)
                # the money is already captured, so the ceiling is not re-checked
                balance = add_balance(account, recharge.amount + bonus, now=now)
                await uow.accounts.update(account)
                await uow.recharges.update(recharge)

        logger.info(
            "wallet_recharged",
            user_id=user_id,
            gateway_order_id=gateway_order_id,
            amount=str(recharge.amount),
            bonus=str(bonus),
        )
        await self._emit(
            AnalyticsEventType.WALLET_RECHARGED,
            gateway_order_id,
            user_id,
            amount=recharge.amount,
            bonus=bonus,
        )
        return RechargeResultDTO(
            gateway_order_id=gateway_order_id,
            amount_added=recharge.amount,
            bonus=bonus,
            balance=balance,
        )

    async def confirm_recharge(self, user_id: str, data: RechargeConfirmDTO) -> RechargeResultDTO:
        self._payments.verify(data.gateway_order_id, data.payment_id, data.signature)
        return await self._complete_recharge(data.gateway_order_id, data.payment_id, user_id)

    async def confirm_captured_recharge(self, gateway_order_id: str, payment_id: str) -> Optional[bool]:
        async with self._uow_factory(readonly=True) as uow:
            snapshot = await uow.recharges.get_by_gateway_order_id(gateway_order_id)
        if snapshot is None:
            return None
        result = await self._complete_recharge(gateway_order_id, payment_id, snapshot.user_id)
        return not result.already_applied

    async def mark_recharge_failed(self, gateway_order_id: str) -> Optional[bool]:
        async with self._locks.hold(recharge_key(gateway_order_id)):
            async with self._uow_factory() as uow:
                recharge = await uow.recharges.get_for_update(gateway_order_id)
                if recharge is None:
                    return None
                changed = recharge.mark_failed()
                if changed:
                    await uow.recharges.update(recharge)
        if changed:
            logger.warning("wallet_recharge_failed", gateway_order_id=gateway_order_id, user_id=recharge.user_id)
        return changed

    async def redeem_points(self, user_id: str, data: RedeemPointsDTO) -> RedemptionResultDTO:
        async with self._locks.hold(account_key(user_id)):
            async with self._uow_factory() as uow:
                account = await self._load_for_update(uow, user_id)
                cash = redeem_points(
                    account,
                    data.points,
                    self._rates.points_to_currency_ratio,
                    minimum=self._rates.min_redeem_points,
                    max_balance=self._rates.max_wallet_balance,
                    now=self._clock(),
                )
                account = await uow.accounts.update(account)

        logger.info("points_redeemed", user_id=user_id, points=data.points, cash_value=str(cash))
        await self._emit(AnalyticsEventType.POINTS_REDEEMED, user_id, user_id, points=data.points, cash_value=cash)
        return RedemptionResultDTO(
            points_redeemed=data.points,
            cash_value=cash,
            remaining_points=account.rewards.points,
            balance=account.wallet.balance,
        )

    async def pay_with_wallet(self, user_id: str, data: WalletPaymentDTO) -> WalletPaymentResultDTO:
        """Debit the wallet once per ``reference``; a repeated reference is a no-op."""
        key = f"wallet-payment:{user_id}:{data.reference}"
        async with self._locks.hold(account_key(user_id)):
            async with self._uow_factory() as uow:
                account = await self._load_for_update(uow, user_id)
                if await uow.idempotency.seen(key):
                    logger.info("wallet_payment_duplicate", user_id=user_id, reference=data.reference)
                    return WalletPaymentResultDTO(
                        reference=data.reference,
                        amount=data.amount,
                        balance=account.wallet.balance,
                        already_applied=True,
                    )
                balance = deduct_balance(account, data.amount, now=self._clock())
                await uow.accounts.update(account)
                await uow.idempotency.claim(key, scope="wallet_payment")

        logger.info("wallet_payment", user_id=user_id, reference=data.reference, amount=str(data.amount))
        return WalletPaymentResultDTO(reference=data.reference, amount=data.amount, balance=balance)
