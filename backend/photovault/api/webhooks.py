"""Stripe webhook endpoint (signature verification boundary)"""
import time

import stripe
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from photovault.core.config import settings
from photovault.core.logging import webhook_logger
from photovault.core.metrics import record_webhook_outcome
from photovault.db.session import get_db
from photovault.schemas.webhooks import StripeEventEnvelope, WebhookErrorResponse, WebhookResponse
from photovault.services.stripe_service import construct_event
from photovault.services.webhooks import process_webhook_event
from photovault.services.webhooks.helpers import log_webhook_error

router = APIRouter(prefix="/api/webhooks", tags=["webhooks"])
# Older Stripe dashboard endpoints still point here
legacy_router = APIRouter(prefix="/api/stripe", tags=["webhooks"])
logger = webhook_logger


def _error_response(status_code: int, error: str, message: str = None) -> JSONResponse:
    body = WebhookErrorResponse(error=error, message=message)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


@router.post("/stripe", response_model=WebhookResponse)
async def stripe_webhook(request: Request, db: Session = Depends(get_db)):
    """Handle Stripe webhook events

    Note: the body must reach this route as raw bytes; the signature covers
    the exact payload.
    Status codes drive Stripe's retries: 400 is never retried, 500 is.
    """
    start = time.monotonic()
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature")

    if not sig_header:
        logger.warning("Stripe webhook received without signature header")
        return _error_response(400, "Missing signature")

    if not settings.STRIPE_WEBHOOK_SECRET:
        logger.error("STRIPE_WEBHOOK_SECRET is not configured")
        return _error_response(500, "Webhook secret not configured")

    try:
        construct_event(payload, sig_header, settings.STRIPE_WEBHOOK_SECRET)
    except (ValueError, stripe.SignatureVerificationError) as e:
        logger.error(f"Webhook signature verification failed: {e}")
        return _error_response(400, f"Webhook signature verification failed: {e}")

    try:
        event = StripeEventEnvelope.model_validate_json(payload)
    except ValidationError as e:
        logger.error(f"Invalid webhook event payload: {e}")
        return _error_response(400, "Invalid event payload")

    logger.info(f"Received {event.type} ({event.id})")

    try:
        result = process_webhook_event(event, db)
    except Exception as e:
        elapsed = time.monotonic() - start
        logger.error(f"Error processing webhook {event.id} ({event.type}): {e}", exc_info=True)
        log_webhook_error(e, int(elapsed * 1000), event_id=event.id, event_type=event.type)
        record_webhook_outcome(event.type, 'failed', elapsed)
        return _error_response(500, "Webhook processing failed", str(e))

    return WebhookResponse(
        message=result.message,
        event_type=event.type,
        processing_time_ms=int((time.monotonic() - start) * 1000),
    )


legacy_router.add_api_route("/webhook", stripe_webhook, methods=["POST"], response_model=WebhookResponse)
