"""
app/api/webhook.py

Purpose: LINE webhook endpoint

- Verifies the X-Line-Signature header
- Validates and classifies the event batch
- Hands the batch to the dispatcher in the background
- Acknowledges immediately (LINE expects a fast 200)
"""

from typing import Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Header, Request
from pydantic import ValidationError as PydanticValidationError

from app.api.deps import get_flow_context
from app.core.config import settings
from app.core.exceptions import AuthenticationError, ValidationError
from app.core.logging import get_logger
from app.flow.context import FlowContext
from app.flow.dispatcher import dispatch_events
from app.schemas.response import WebhookAck
from app.schemas.webhook import LineWebhookPayload, classify_event
from app.services.line_service import verify_line_signature

logger = get_logger(__name__)
router = APIRouter()


def _check_signature(body: bytes, signature: Optional[str]) -> None:
    secret = settings.LINE_CHANNEL_SECRET
    if not secret:
        if settings.is_production:
            raise AuthenticationError("LINE channel secret is not configured")
        logger.warning("LINE_CHANNEL_SECRET not set, skipping signature check")
        return

    if not verify_line_signature(body, signature, secret):
        logger.warning("Rejected webhook with invalid signature")
        raise AuthenticationError("Invalid LINE signature")


@router.post("/webhook", response_model=WebhookAck)
async def line_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    x_line_signature: Optional[str] = Header(None),
    ctx: FlowContext = Depends(get_flow_context),
):
    """
    LINE webhook endpoint.

    Events are processed after the response is sent; per-event failures
    are handled (and logged) by the dispatcher.
    """
    body = await request.body()
    _check_signature(body, x_line_signature)

    try:
        payload = LineWebhookPayload.model_validate_json(body or b"{}")
    except PydanticValidationError as e:
        raise ValidationError(
            "Invalid webhook payload",
            details=[err.get("msg") for err in e.errors()],
        )

    events = [classify_event(raw) for raw in payload.events]
    handled = [event for event in events if event.is_handled]

    logger.info(f"📱 LINE webhook: {len(events)} event(s), {len(handled)} handled")

    if handled:
        background_tasks.add_task(dispatch_events, handled, ctx)

    return WebhookAck(status="success", events=len(handled))


@router.get("/webhook")
async def webhook_verification():
    """
    Liveness check for the webhook URL.
    """
    return {"status": "ok", "message": "Webhook endpoint is active"}
