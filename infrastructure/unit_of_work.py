"""SQLAlchemy Unit of Work"""
from __future__ import annotations

import inspect
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from domain.common.unit_of_work import AbstractUnitOfWork
from infrastructure.database import AsyncSessionLocal
from infrastructure.repositories.account_repository import (
    SQLAlchemyAccountRepository,
    SQLAlchemyWalletRechargeRepository,
)
from infrastructure.repositories.analytics_repository import (
    SQLAlchemyAnalyticsRepository,
    SQLAlchemyIdempotencyRepository,
)
from infrastructure.repositories.order_repository import SQLAlchemyOrderRepository
from infrastructure.repositories.ticket_repository import SQLAlchemyTicketRepository


class SQLAlchemyUnitOfWork(AbstractUnitOfWork):
    """One session and one transaction per ``async with`` block."""

    def __init__(
        self,
        session_factory: Callable[[], AsyncSession] = AsyncSessionLocal,
        session: Optional[AsyncSession] = None,
        *,
        readonly: bool = False,
    ) -> None:
        super().__init__(readonly=readonly)
        self._session_factory = session_factory
        self._external_session = session
        self.session: Optional[AsyncSession] = session

    def _bind_repositories(self, session: Optional[AsyncSession]) -> None:
        if session is None:
            self.tickets = self.orders = self.accounts = self.recharges = None  # type: ignore[assignment]
            self.analytics = self.idempotency = None  # type: ignore[assignment]
            return
        self.tickets = SQLAlchemyTicketRepository(session)
        self.orders = SQLAlchemyOrderRepository(session)
        self.accounts = SQLAlchemyAccountRepository(session)
        self.recharges = SQLAlchemyWalletRechargeRepository(session)
        self.analytics = SQLAlchemyAnalyticsRepository(session)
        self.idempotency = SQLAlchemyIdempotencyRepository(session)

    async def __aenter__(self) -> "SQLAlchemyUnitOfWork":
        if self.session is None:
            self.session = self._session_factory()
        self._committed = False
        self._bind_repositories(self.session)
        # only open an explicit transaction for writes
        if not self._readonly:
            self._transaction = await self.session.begin()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            await super().__aexit__(exc_type, exc, tb)
        finally:
            tx = getattr(self, "_transaction", None)
            if tx is not None and getattr(tx, "is_active", False):
                close = getattr(tx, "close", None)
                if callable(close):
                    res = close()
                    if inspect.isawaitable(res):
                        await res
            self._transaction = None
            if self._external_session is None and self.session is not None:
                await self.session.close()
                self.session = None
            self._bind_repositories(None)

    async def commit(self) -> None:
        if self._readonly:
            self._committed = True
            return
        if self.session and self.session.in_transaction():
            await self.session.commit()
        self._committed = True

    async def rollback(self) -> None:
        if self.session and self.session.in_transaction():
            await self.session.rollback()
        self._committed = False
