"""Analytics event repository port."""
from abc import ABC, abstractmethod
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .entity import AnalyticsEvent, AnalyticsEventType


class AnalyticsRepository(ABC):

    @abstractmethod
    async def add(self, event: AnalyticsEvent) -> AnalyticsEvent:
        pass

    @abstractmethod
    async def total_revenue(
        self,
        event_type: AnalyticsEventType,
        since: Optional[datetime] = None,
    ) -> Decimal:
        pass
