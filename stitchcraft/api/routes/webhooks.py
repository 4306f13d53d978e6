"""Paystack webhook receiver."""
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from stitchcraft.api.dependencies import get_webhook_handler
from stitchcraft.api.schemas import WebhookResponse
from stitchcraft.database.connection import get_db
from stitchcraft.integrations.webhook_handler import WebhookHandler

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post(
    "/paystack",
    response_model=WebhookResponse,
    summary="Paystack webhook endpoint",
    description="Handle Paystack webhook events",
)
async def paystack_webhook(
    request: Request,
    paystack_signature: Optional[str] = Header(default=None, alias="x-paystack-signature"),
    db: AsyncSession = Depends(get_db),
    handler: WebhookHandler = Depends(get_webhook_handler),
) -> Dict[str, Any]:
    """
    Handle Paystack webhook events.

    The signature is checked against the raw body before anything is
    parsed. Events that cannot be applied are acknowledged as ignored.
    """
    body = await request.body()
    event = handler.verify_signature(body, paystack_signature)

    logger.info("api_webhook_received", event_type=event.get("event"))
    return await handler.process_event(event, db)
