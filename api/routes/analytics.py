"""
Analytics API routes
"""
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_analytics
from application.services.analytics_service import AnalyticsRecorder
from core.response import Response as ApiResponse, success_response
from domain.analytics.entity import AnalyticsEventType

router = APIRouter(
    prefix="/analytics",
    tags=["Analytics"]
)


@router.get("/revenue", summary="Platform revenue by event type", response_model=ApiResponse[Any])
async def revenue(
    event_type: AnalyticsEventType = Query(AnalyticsEventType.TICKET_PURCHASED),
    since: Optional[datetime] = Query(None, description="Only events at or after this time"),
    analytics: AnalyticsRecorder = Depends(get_analytics),
):
    total = await analytics.total_revenue(event_type, since)
    return success_response(data={"event_type": event_type.value, "revenue": str(total)})
