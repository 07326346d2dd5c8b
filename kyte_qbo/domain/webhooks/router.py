"""Webhook router - QuickBooks change notifications"""

import asyncio
import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import ValidationError as SchemaValidationError
from sqlalchemy.orm import Session

from ... import config
from ...database import get_db
from ...exceptions import ConversionTimeoutError, ValidationError
from ...rate_limiter import create_rate_limiter
from ...services.quickbooks_service import QuickBooksClient, get_quickbooks_client
from ...webhook_security import intuit_webhook_body
from .schemas import WebhookPayload
from .service import WebhookService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["Webhooks"])

webhook_rate_limit = create_rate_limiter(
    limit=config.WEBHOOK_RATE_LIMIT,
    window_seconds=config.WEBHOOK_RATE_WINDOW_SECONDS,
    key_prefix="qbo_webhook",
)


def get_webhook_service(
    db: Session = Depends(get_db),
    client: QuickBooksClient = Depends(get_quickbooks_client),
) -> WebhookService:
    """Dependency injection for WebhookService"""
    return WebhookService(db, client)


@router.post("/qbo")
async def quickbooks_webhook(
    _: None = Depends(webhook_rate_limit),
    raw_body: bytes = Depends(intuit_webhook_body),
    service: WebhookService = Depends(get_webhook_service),
):
    """
    Receive QuickBooks data change notifications.

    The signature is verified on the raw body before it is parsed. Responds
    500 when any customer could not be synced so Intuit redelivers.
    """
    try:
        payload = WebhookPayload.model_validate_json(raw_body)
    except SchemaValidationError as e:
        logger.error(f"❌ Malformed QuickBooks webhook payload: {e.errors()[:3]}")
        raise ValidationError("Malformed webhook payload") from e

    logger.info(f"📥 QuickBooks webhook with {len(payload.eventNotifications)} notifications")
    try:
        summary = await asyncio.wait_for(service.handle(payload), timeout=config.WEBHOOK_DEADLINE_SECONDS)
    except asyncio.TimeoutError:
        logger.error(f"⏰ QuickBooks webhook handling exceeded {config.WEBHOOK_DEADLINE_SECONDS}s")
        raise ConversionTimeoutError("Webhook processing timed out") from None

    if summary.failed:
        return JSONResponse(
            status_code=500,
            content={"message": "Some notifications could not be processed", **summary.model_dump()},
        )
    return {"message": "Webhook processed successfully", **summary.model_dump()}
