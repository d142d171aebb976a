"""
Account ORM model - wallet and reward columns of a platform user.
"""
from sqlalchemy import Column, DateTime, Integer, JSON, Numeric, String
from datetime import datetime, timezone

from .base import Base


class AccountModel(Base):
    __tablename__ = "accounts"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(64), unique=True, index=True, nullable=False)
    name = Column(String(200), nullable=False)
    user_type = Column(String(20), nullable=False, default="tourist")
    commission_rate = Column(Numeric(precision=7, scale=4), nullable=True)

    wallet_balance = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    wallet_total_deposited = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    wallet_total_spent = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    wallet_currency = Column(String(3), nullable=False, default="INR")

    reward_points = Column(Integer, nullable=False, default=0)
    lifetime_points = Column(Integer, nullable=False, default=0)
    lifetime_spending = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    reward_tier = Column(String(20), nullable=False, default="bronze")
    referral_code = Column(String(20), unique=True, nullable=False)
    reward_history = Column(JSON, nullable=False, default=list)

    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )

    def __repr__(self):
        return f"<AccountModel(user_id='{self.user_id}', balance={self.wallet_balance}, tier='{self.reward_tier}')>"


class WalletRechargeModel(Base):
    __tablename__ = "wallet_recharges"

    id = Column(Integer, primary_key=True, index=True)
    gateway_order_id = Column(String(100), unique=True, index=True, nullable=False)
    user_id = Column(String(64), index=True, nullable=False)
    amount = Column(Numeric(precision=15, scale=2), nullable=False)
    bonus = Column(Numeric(precision=15, scale=2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default="pending")
    payment_id = Column(String(100), nullable=True)
    created_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
    completed_at = Column(DateTime(timezone=True), nullable=True)
