"""Unit of Work abstraction"""
from __future__ import annotations

from abc import ABC, abstractmethod

from domain.account.repository import AccountRepository, WalletRechargeRepository
from domain.analytics.repository import AnalyticsRepository
from domain.common.idempotency import IdempotencyRepository
from domain.order.repository import OrderRepository
from domain.ticket.repository import TicketRepository


class AbstractUnitOfWork(ABC):
    """Transaction boundary used by the application services"""

    tickets: TicketRepository
    orders: OrderRepository
    accounts: AccountRepository
    recharges: WalletRechargeRepository
    analytics: AnalyticsRepository
    idempotency: IdempotencyRepository

    def __init__(self, *, readonly: bool = False) -> None:
        self._committed = False
        self._readonly = readonly
        self.tickets = None  # type: ignore[assignment]
        self.orders = None  # type: ignore[assignment]
        self.accounts = None  # type: ignore[assignment]
        self.recharges = None  # type: ignore[assignment]
        self.analytics = None  # type: ignore[assignment]
        self.idempotency = None  # type: ignore[assignment]

    async def __aenter__(self) -> "AbstractUnitOfWork":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        if exc:
            await self.rollback()
        else:
            # auto-commit unless read-only or already committed
            if not self._readonly and not self._committed:
                await self.commit()

    @abstractmethod
    async def commit(self) -> None:
        ...

    @abstractmethod
    async def rollback(self) -> None:
        ...
