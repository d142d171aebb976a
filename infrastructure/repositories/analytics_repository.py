"""
Analytics and processed-key repositories - SQLAlchemy implementation
"""
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.logging_config import get_logger
from domain.analytics.entity import AnalyticsEvent, AnalyticsEventType
from domain.analytics.repository import AnalyticsRepository
from domain.common.idempotency import IdempotencyRepository
from infrastructure.models.analytics import AnalyticsEventModel, ProcessedKeyModel


logger = get_logger(__name__)


class SQLAlchemyAnalyticsRepository(AnalyticsRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, event: AnalyticsEvent) -> AnalyticsEvent:
        db_event = AnalyticsEventModel(
            event_type=event.event_type.value,
            entity_id=event.entity_id,
            user_id=event.user_id,
            revenue=event.revenue,
            extra_metadata=event.metadata,
            timestamp=event.timestamp,
        )
        self.session.add(db_event)
        await self.session.flush()
        event.id = db_event.id
        return event

    async def total_revenue(
        self,
        event_type: AnalyticsEventType,
        since: Optional[datetime] = None,
    ) -> Decimal:
        query = select(func.sum(AnalyticsEventModel.revenue)).where(
            AnalyticsEventModel.event_type == event_type.value
        )
        if since is not None:
            query = query.where(AnalyticsEventModel.timestamp >= since)
        result = await self.session.execute(query)
        total = result.scalar_one_or_none()
        return Decimal(str(total)) if total else Decimal("0")


class SQLAlchemyIdempotencyRepository(IdempotencyRepository):
    """Unique-key table; the insert runs in a savepoint so a conflict leaves the outer transaction usable."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def claim(self, key: str, scope: str) -> bool:
        if await self.seen(key):
            return False
        try:
            async with self.session.begin_nested():
                self.session.add(ProcessedKeyModel(key=key, scope=scope))
        except IntegrityError:
            logger.info("processed_key_conflict", key=key, scope=scope)
            return False
        return True

    async def seen(self, key: str) -> bool:
        result = await self.session.execute(
            select(func.count(ProcessedKeyModel.id)).where(ProcessedKeyModel.key == key)
        )
        return result.scalar_one() > 0
