"""Stripe webhook event processing

Idempotency gate, routing by event type, and success bookkeeping. The
ProcessedWebhookEvent row is written only after the handler returns, so a
handler that raises leaves the event unprocessed and Stripe retries it.
"""
import logging
import time
from typing import Callable, Dict, Optional

import stripe
from sqlalchemy.orm import Session

from photovault.core.metrics import record_webhook_outcome
from photovault.schemas.webhooks import StripeEventEnvelope
from photovault.services.stripe_service import get_stripe_client
from photovault.services.webhooks.checkout import handle_checkout_completed
from photovault.services.webhooks.discount import handle_discount_created
from photovault.services.webhooks.errors import WebhookProcessingError
from photovault.services.webhooks.helpers import (
    HandlerResult, WebhookContext, check_idempotency, log_webhook_result, mark_processed
)
from photovault.services.webhooks.invoice import handle_payment_failed, handle_payment_succeeded
from photovault.services.webhooks.payout import handle_payout_created
from photovault.services.webhooks.subscription import (
    handle_subscription_created, handle_subscription_deleted, handle_subscription_updated
)

logger = logging.getLogger("webhook")

EVENT_HANDLERS: Dict[str, Callable[[dict, WebhookContext], HandlerResult]] = {
    'checkout.session.completed': handle_checkout_completed,
    'customer.subscription.created': handle_subscription_created,
    'customer.subscription.updated': handle_subscription_updated,
    'customer.subscription.deleted': handle_subscription_deleted,
    'invoice.payment_succeeded': handle_payment_succeeded,
    'invoice.payment_failed': handle_payment_failed,
    'payout.created': handle_payout_created,
    'customer.discount.created': handle_discount_created,
}


def process_webhook_event(
    event: StripeEventEnvelope,
    db: Session,
    stripe_client: Optional[stripe.StripeClient] = None
) -> HandlerResult:
    """
    Process one verified Stripe event.

    Unknown event types succeed (and are marked processed): Stripe must never
    retry events we deliberately ignore.

    Raises:
        Whatever the handler raises. The event is then NOT marked processed.
    """
    start = time.monotonic()
    event_id, event_type = event.id, event.type

    if check_idempotency(db, event_id):
        logger.info(f"Event {event_id} already processed, skipping")
        record_webhook_outcome(event_type, 'duplicate')
        return HandlerResult(success=True, message="Already processed")

    ctx = WebhookContext(
        db=db,
        stripe=stripe_client or get_stripe_client(),
        event_id=event_id,
        event_type=event_type,
    )

    handler = EVENT_HANDLERS.get(event_type)
    if handler is None:
        logger.info(f"Unhandled event type: {event_type}")
        result = HandlerResult(success=True, message=f"Unhandled event type: {event_type}")
    else:
        result = handler(event.data.object, ctx)
        if not result.success:
            raise WebhookProcessingError(result.message)

    elapsed = time.monotonic() - start
    mark_processed(db, event_id, event_type)
    log_webhook_result(db, event_id, event_type, result.message, int(elapsed * 1000))
    record_webhook_outcome(event_type, 'success', elapsed)
    logger.info(f"Processed {event_type} ({event_id}) in {int(elapsed * 1000)}ms: {result.message}")
    return result


__all__ = [
    "EVENT_HANDLERS",
    "HandlerResult",
    "WebhookContext",
    "process_webhook_event",
]
