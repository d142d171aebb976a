"""
Gateway webhook routes.

Kept thin: signature checks and dispatch live in the webhook service.
"""
from __future__ import annotations

from fastapi import APIRouter, Depends, Request

from api.dependencies import get_webhook_service
from application.services.webhook_service import WebhookService
from core.logging_config import get_logger
from core.response import success_response


router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
logger = get_logger(__name__)


@router.post("/razorpay")
async def razorpay_webhook(request: Request, service: WebhookService = Depends(get_webhook_service)):
    ct = (request.headers.get("content-type") or "").lower()
    if "application/json" not in ct:
        logger.warning("webhook_unsupported_content_type", content_type=ct)
        return success_response(data={"status": "ignored"}, message="Unsupported content type")

    raw_body = await request.body()
    headers = {k: v for k, v in request.headers.items()}
    result = await service.handle(headers, raw_body)
    # 200 acknowledges the delivery; errors above propagate so the gateway retries
    return success_response(data=result, message="Webhook received")
