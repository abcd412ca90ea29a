"""Family takeover handler (checkout.session.completed with type=family_takeover)"""
import logging

from photovault.schemas.webhooks import CheckoutSessionMetadata
from photovault.services.family_takeover_service import TakeoverRequest, complete_takeover
from photovault.services.stripe_service import get_stripe_id
from photovault.services.webhooks.errors import MissingMetadataError
from photovault.services.webhooks.helpers import HandlerResult, WebhookContext

logger = logging.getLogger("webhook")


def handle_family_takeover(session: dict, ctx: WebhookContext) -> HandlerResult:
    metadata = CheckoutSessionMetadata.from_session(session)
    if not metadata.account_id:
        raise MissingMetadataError("Missing account_id in family takeover checkout metadata")

    logger.info(f"Processing family takeover for account {metadata.account_id}")

    complete_takeover(
        ctx.db,
        TakeoverRequest(
            account_id=metadata.account_id,
            secondary_id=metadata.secondary_id or "",
            takeover_type=metadata.takeover_type or 'billing_only',
            reason=metadata.reason or "",
            reason_text=metadata.reason_text or "",
            new_payer_user_id=metadata.new_payer_user_id or "",
            previous_primary_id=metadata.previous_primary_id or "",
        ),
        get_stripe_id(session.get('subscription')),
    )

    return HandlerResult(
        success=True,
        message=f"Family takeover completed for account {metadata.account_id} by secondary {metadata.secondary_id}",
    )
