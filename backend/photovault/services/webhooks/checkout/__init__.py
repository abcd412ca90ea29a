"""Checkout session router

Routes checkout.session.completed by the metadata our own checkout endpoints
attach: gallery, tokens, subscription, family takeover, reactivation.
"""
import logging

from photovault.schemas.webhooks import CheckoutSessionMetadata
from photovault.services.webhooks.checkout.family import handle_family_takeover
from photovault.services.webhooks.checkout.gallery import handle_gallery_checkout
from photovault.services.webhooks.checkout.reactivation import handle_reactivation
from photovault.services.webhooks.checkout.tokens import handle_token_purchase
from photovault.services.webhooks.helpers import HandlerResult, WebhookContext

logger = logging.getLogger("webhook")


def handle_checkout_completed(session: dict, ctx: WebhookContext) -> HandlerResult:
    metadata = CheckoutSessionMetadata.from_session(session)

    if (metadata.is_public_checkout or metadata.type == 'gallery_payment') and metadata.galleryId:
        return handle_gallery_checkout(session, ctx)

    if metadata.purchase_type == 'tokens':
        return handle_token_purchase(session, ctx)

    if metadata.purchase_type == 'subscription':
        # customer.subscription.created follows and does the work
        return HandlerResult(
            success=True,
            message=f"Subscription checkout completed for user {metadata.user_id}, handled by subscription.created event",
        )

    if metadata.type == 'family_takeover':
        return handle_family_takeover(session, ctx)

    if metadata.type == 'reactivation':
        return handle_reactivation(session, ctx)

    checkout_kind = metadata.purchase_type or metadata.type or 'unknown'
    logger.info(f"Unhandled checkout type: {checkout_kind}")
    return HandlerResult(success=True, message=f"Checkout completed, type: {checkout_kind}")


__all__ = [
    "handle_checkout_completed",
    "handle_gallery_checkout",
    "handle_token_purchase",
    "handle_family_takeover",
    "handle_reactivation",
]
