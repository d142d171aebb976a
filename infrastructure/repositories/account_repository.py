"""
Account repository - SQLAlchemy implementation
"""
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.account.entity import (
    Account,
    RechargeStatus,
    RewardEntry,
    RewardTier,
    Rewards,
    UserType,
    Wallet,
    WalletRecharge,
)
from domain.account.repository import AccountRepository, WalletRechargeRepository
from domain.common.exceptions import AccountAlreadyExistsException
from infrastructure.models.account import AccountModel, WalletRechargeModel


logger = get_logger(__name__)


def _history_to_json(history: List[RewardEntry]) -> list:
    return [
        {"points": e.points, "reason": e.reason, "timestamp": e.timestamp.isoformat()}
        for e in history
    ]


def _history_from_json(raw: Optional[list]) -> List[RewardEntry]:
    return [
        RewardEntry(points=e["points"], reason=e["reason"], timestamp=datetime.fromisoformat(e["timestamp"]))
        for e in raw or []
    ]


class SQLAlchemyAccountRepository(AccountRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: AccountModel) -> Account:
        return Account(
            id=model.id,
            user_id=model.user_id,
            name=model.name,
            user_type=UserType(model.user_type),
            commission_rate=Decimal(str(model.commission_rate)) if model.commission_rate is not None else None,
            wallet=Wallet(
                balance=Decimal(str(model.wallet_balance)),
                total_deposited=Decimal(str(model.wallet_total_deposited)),
                total_spent=Decimal(str(model.wallet_total_spent)),
                currency=model.wallet_currency,
            ),
            rewards=Rewards(
                points=model.reward_points,
                lifetime_points=model.lifetime_points,
                lifetime_spending=Decimal(str(model.lifetime_spending)),
                tier=RewardTier(model.reward_tier),
                referral_code=model.referral_code,
                history=_history_from_json(model.reward_history),
            ),
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

    def _fill(self, model: AccountModel, account: Account) -> AccountModel:
        model.user_id = account.user_id
        model.name = account.name
        model.user_type = account.user_type.value
        model.commission_rate = account.commission_rate
        model.wallet_balance = account.wallet.balance
        model.wallet_total_deposited = account.wallet.total_deposited
        model.wallet_total_spent = account.wallet.total_spent
        model.wallet_currency = account.wallet.currency
        model.reward_points = account.rewards.points
        model.lifetime_points = account.rewards.lifetime_points
        model.lifetime_spending = account.rewards.lifetime_spending
        model.reward_tier = account.rewards.tier.value
        model.referral_code = account.rewards.referral_code
        model.reward_history = _history_to_json(account.rewards.history)
        if account.created_at is not None:
            model.created_at = account.created_at
        if account.updated_at is not None:
            model.updated_at = account.updated_at
        return model

    async def _get_model(self, user_id: str, *, for_update: bool = False) -> Optional[AccountModel]:
        query = select(AccountModel).where(AccountModel.user_id == user_id)
        if for_update:
            query = query.with_for_update()
        result = await self.session.execute(query)
        return result.scalar_one_or_none()

    async def create(self, account: Account) -> Account:
        try:
            db_account = self._fill(AccountModel(), account)
            self.session.add(db_account)
            await self.session.flush()
            await self.session.refresh(db_account)
        except IntegrityError:
            logger.warning("account_create_conflict", user_id=account.user_id)
            raise AccountAlreadyExistsException(account.user_id)
        logger.info("account_created", user_id=db_account.user_id, user_type=db_account.user_type)
        return self._to_entity(db_account)

    async def get_by_user_id(self, user_id: str) -> Optional[Account]:
        db_account = await self._get_model(user_id)
        return self._to_entity(db_account) if db_account else None

    async def get_for_update(self, user_id: str) -> Optional[Account]:
        db_account = await self._get_model(user_id, for_update=True)
        return self._to_entity(db_account) if db_account else None

    async def update(self, account: Account) -> Account:
        db_account = await self._get_model(account.user_id)
        if not db_account:
            raise ValueError(f"Account {account.user_id} not found")

        self._fill(db_account, account)
        await self.session.flush()
        await self.session.refresh(db_account)

        logger.info(
            "account_updated",
            user_id=db_account.user_id,
            balance=str(db_account.wallet_balance),
            points=db_account.reward_points,
            tier=db_account.reward_tier,
        )
        return self._to_entity(db_account)

    async def exists(self, user_id: str) -> bool:
        result = await self.session.execute(
            select(func.count(AccountModel.id)).where(AccountModel.user_id == user_id)
        )
        return result.scalar_one() > 0


class SQLAlchemyWalletRechargeRepository(WalletRechargeRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    def _to_entity(self, model: WalletRechargeModel) -> WalletRecharge:
        return WalletRecharge(
            id=model.id,
            gateway_order_id=model.gateway_order_id,
            user_id=model.user_id,
            amount=Decimal(str(model.amount)),
            bonus=Decimal(str(model.bonus)),
            status=RechargeStatus(model.status),
            payment_id=model.payment_id,
            created_at=model.created_at,
            completed_at=model.completed_at,
        )

    async def create(self, recharge: WalletRecharge) -> WalletRecharge:
        db_recharge = WalletRechargeModel(
            gateway_order_id=recharge.gateway_order_id,
            user_id=recharge.user_id,
            amount=recharge.amount,
            bonus=recharge.bonus,
            status=recharge.status.value,
            payment_id=recharge.payment_id,
        )
        self.session.add(db_recharge)
        await self.session.flush()
        await self.session.refresh(db_recharge)
        return self._to_entity(db_recharge)

    async def get_by_gateway_order_id(self, gateway_order_id: str) -> Optional[WalletRecharge]:
        result = await self.session.execute(
            select(WalletRechargeModel).where(WalletRechargeModel.gateway_order_id == gateway_order_id)
        )
        db_recharge = result.scalar_one_or_none()
        return self._to_entity(db_recharge) if db_recharge else None

    async def get_for_update(self, gateway_order_id: str) -> Optional[WalletRecharge]:
        result = await self.session.execute(
            select(WalletRechargeModel)
            .where(WalletRechargeModel.gateway_order_id == gateway_order_id)
            .with_for_update()
        )
        db_recharge = result.scalar_one_or_none()
        return self._to_entity(db_recharge) if db_recharge else None

    async def update(self, recharge: WalletRecharge) -> WalletRecharge:
        result = await self.session.execute(
            select(WalletRechargeModel).where(WalletRechargeModel.gateway_order_id == recharge.gateway_order_id)
        )
        db_recharge = result.scalar_one_or_none()
        if not db_recharge:
            raise ValueError(f"Recharge {recharge.gateway_order_id} not found")
        db_recharge.status = recharge.status.value
        db_recharge.payment_id = recharge.payment_id
        db_recharge.bonus = recharge.bonus
        db_recharge.completed_at = recharge.completed_at
        await self.session.flush()
        logger.info(
            "wallet_recharge_updated",
            gateway_order_id=db_recharge.gateway_order_id,
            user_id=db_recharge.user_id,
            status=db_recharge.status,
        )
        return self._to_entity(db_recharge)
