"""Reactivation handler (checkout.session.completed with type=reactivation)

A flat fee restores a suspended gallery for a fixed decision window.
"""
import logging
from datetime import timedelta

from photovault.core.config import settings
from photovault.models._helpers import utcnow
from photovault.models.gallery import PhotoGallery
from photovault.models.payment_history import PaymentHistory
from photovault.models.subscription import Subscription
from photovault.models.user import UserProfile
from photovault.schemas.webhooks import CheckoutSessionMetadata
from photovault.services import auth_service, email_service
from photovault.services.stripe_service import get_stripe_id
from photovault.services.webhooks.errors import MissingMetadataError
from photovault.services.webhooks.helpers import HandlerResult, WebhookContext, send_notification_safely

logger = logging.getLogger("webhook")


def handle_reactivation(session: dict, ctx: WebhookContext) -> HandlerResult:
    db = ctx.db
    metadata = CheckoutSessionMetadata.from_session(session)
    subscription_id = metadata.stripe_subscription_id
    user_id = metadata.user_id
    gallery_id = metadata.gallery_id

    if not subscription_id:
        raise MissingMetadataError("Missing stripe_subscription_id in reactivation checkout metadata")

    window_days = settings.REACTIVATION_ACCESS_DAYS
    logger.info(f"Processing reactivation payment for subscription {subscription_id}")

    now = utcnow()
    access_end = now + timedelta(days=window_days)

    updated = db.query(Subscription).filter(Subscription.stripe_subscription_id == subscription_id).update(
        {
            Subscription.status: 'active',
            Subscription.access_suspended: False,
            Subscription.access_suspended_at: None,
            Subscription.payment_failure_count: 0,
            Subscription.last_payment_failure_at: None,
            Subscription.current_period_start: now,
            Subscription.current_period_end: access_end,
            Subscription.updated_at: now,
        },
        synchronize_session=False
    )
    db.commit()
    if not updated:
        logger.warning(f"No local subscription {subscription_id} to reactivate")

    db.add(PaymentHistory(
        stripe_invoice_id=get_stripe_id(session.get('payment_intent')),
        stripe_subscription_id=subscription_id,
        amount_paid_cents=session.get('amount_total') or settings.REACTIVATION_FEE_CENTS,
        currency=session.get('currency') or 'usd',
        status='succeeded',
        paid_at=now,
    ))
    db.commit()

    if not user_id:
        logger.warning("No user_id in reactivation metadata, skipping email")
        return HandlerResult(
            success=True,
            message=f"Reactivation completed for subscription {subscription_id}, "
                    f"{window_days}-day access window (no email sent - missing user_id)",
        )

    user_email = auth_service.get_user_email(db, user_id)
    if user_email:
        profile = db.query(UserProfile).filter(UserProfile.id == user_id).first()
        gallery = db.query(PhotoGallery).filter(PhotoGallery.id == gallery_id).first() if gallery_id else None
        send_notification_safely(
            email_service.send_gallery_access_restored_email,
            customer_name=(profile.full_name if profile else None) or 'Valued Customer',
            customer_email=user_email,
            gallery_name=(gallery.gallery_name if gallery else None) or 'your gallery',
            photographer_name='PhotoVault',
            access_link=f"{settings.SITE_URL}/gallery/{gallery_id}",
        )

    logger.info(f"Reactivation completed for subscription {subscription_id}, access until {access_end.isoformat()}")
    return HandlerResult(
        success=True,
        message=f"Reactivation completed for subscription {subscription_id}, user {user_id}, {window_days}-day access window",
    )
