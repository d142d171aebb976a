"""
Best-effort analytics emission.

Events are written in their own unit of work after the business transaction
has committed; a failure is logged and never reaches the caller.
"""
from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from core.logging_config import get_logger
from domain.analytics.entity import AnalyticsEvent, AnalyticsEventType
from domain.common.money import ZERO
from domain.common.unit_of_work import AbstractUnitOfWork


logger = get_logger(__name__)


class AnalyticsRecorder:
    def __init__(self, uow_factory: Callable[..., AbstractUnitOfWork]):
        self._uow_factory = uow_factory

    async def emit(
        self,
        event_type: AnalyticsEventType,
        entity_id: str,
        revenue: Decimal = ZERO,
        user_id: Optional[str] = None,
        **metadata: Any,
    ) -> None:
        event = AnalyticsEvent(
            event_type=event_type,
            entity_id=entity_id,
            revenue=revenue,
            user_id=user_id,
            metadata={k: str(v) for k, v in metadata.items()},
        )
        try:
            async with self._uow_factory() as uow:
                await uow.analytics.add(event)
        except Exception as exc:
            logger.warning(
                "analytics_emit_failed",
                event_type=event_type.value,
                entity_id=entity_id,
                error=str(exc),
            )

    async def total_revenue(self, event_type: AnalyticsEventType, since: Optional[datetime] = None) -> Decimal:
        async with self._uow_factory(readonly=True) as uow:
            return await uow.analytics.total_revenue(event_type, since)
