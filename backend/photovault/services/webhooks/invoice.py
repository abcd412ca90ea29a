"""Invoice lifecycle handlers

invoice.payment_succeeded restores access and books recurring commission.
invoice.payment_failed runs the dunning state machine: failures are counted,
the grace clock starts at the first failure of a cycle, and access is
suspended on the first failure at or past GRACE_PERIOD_DAYS.
"""
import logging
import math
from datetime import datetime, timedelta
from typing import Optional

from photovault.core.config import settings
from photovault.core.metrics import access_suspensions_counter
from photovault.models._helpers import utcnow
from photovault.models.gallery import Client, PhotoGallery
from photovault.models.payment_history import PaymentHistory
from photovault.models.subscription import Subscription
from photovault.models.user import User, UserProfile
from photovault.services import analytics_service, auth_service, commission_service, email_service
from photovault.services.analytics_service import EVENTS
from photovault.services.stripe_service import (
    from_timestamp, get_stripe_id, get_stripe_value, get_transfer_id_for_charge
)
from photovault.services.webhooks.helpers import (
    HandlerResult, WebhookContext, as_utc, send_notification_safely
)
from photovault.tasks import background

logger = logging.getLogger("webhook")

SECONDS_PER_DAY = 24 * 60 * 60


def get_invoice_subscription_id(invoice: dict) -> Optional[str]:
    """Subscription id from `subscription` (id or expanded) or, on newer API versions, `parent.subscription_details`"""
    subscription_id = get_stripe_id(invoice.get('subscription'))
    if subscription_id:
        return subscription_id
    parent = invoice.get('parent') or {}
    details = parent.get('subscription_details') or {}
    return get_stripe_id(details.get('subscription'))


def _photographer_display_name(db, photographer_id: Optional[str]) -> str:
    if not photographer_id:
        return 'Your Photographer'
    profile = db.query(UserProfile).filter(UserProfile.id == photographer_id).first()
    if not profile:
        return 'Your Photographer'
    return profile.business_name or profile.full_name or 'Your Photographer'


# ============================================================================
# PAYMENT SUCCEEDED
# ============================================================================

def handle_payment_succeeded(invoice: dict, ctx: WebhookContext) -> HandlerResult:
    logger.info(f"Processing invoice.payment_succeeded {invoice.get('id')}")
    db = ctx.db

    subscription_id = get_invoice_subscription_id(invoice)
    if not subscription_id:
        return HandlerResult(success=True, message=f"Invoice {invoice.get('id')} paid (not subscription-related)")

    row = db.query(Subscription).filter(Subscription.stripe_subscription_id == subscription_id).first()
    was_suspended = bool(row and row.access_suspended)

    if row:
        row.status = 'active'
        row.current_period_start = from_timestamp(invoice.get('period_start')) or row.current_period_start
        row.current_period_end = from_timestamp(invoice.get('period_end')) or row.current_period_end
        # Any successful payment ends the dunning cycle
        row.payment_failure_count = 0
        row.last_payment_failure_at = None
        row.access_suspended = False
        row.access_suspended_at = None
        db.commit()
    else:
        logger.warning(f"No local subscription {subscription_id} for paid invoice {invoice.get('id')}")

    if was_suspended:
        logger.info(f"Access restored for subscription {subscription_id}")
        _send_access_restored(db, row)

    paid_at = from_timestamp((invoice.get('status_transitions') or {}).get('paid_at')) or utcnow()
    db.add(PaymentHistory(
        stripe_invoice_id=invoice.get('id'),
        stripe_subscription_id=subscription_id,
        amount_paid_cents=invoice.get('amount_paid') or 0,
        currency=invoice.get('currency'),
        status='succeeded',
        paid_at=paid_at,
    ))
    db.commit()

    # The invoice does not carry our ids; the subscription metadata does
    stripe_subscription = ctx.stripe.subscriptions.retrieve(subscription_id)
    metadata = get_stripe_value(stripe_subscription, 'metadata', {})
    photographer_id = get_stripe_value(metadata, 'photographer_id')
    client_id = get_stripe_value(metadata, 'client_id')
    gallery_id = get_stripe_value(metadata, 'gallery_id')

    commission = None
    if photographer_id:
        commission = _record_recurring_commission(db, ctx, invoice, photographer_id, gallery_id)
    else:
        logger.warning(f"Missing photographer_id in subscription {subscription_id} metadata")

    if commission and client_id and gallery_id:
        _send_payment_receipt(db, invoice, client_id, gallery_id, photographer_id)

    return HandlerResult(
        success=True,
        message=f"Payment succeeded for subscription {subscription_id}, "
                f"commission {'created' if commission else 'skipped'}",
        data={"access_restored": was_suspended},
    )


def _record_recurring_commission(db, ctx: WebhookContext, invoice: dict, photographer_id: str, gallery_id: Optional[str]):
    amount_paid_cents = invoice.get('amount_paid') or 0
    split = commission_service.split_recurring_payment(amount_paid_cents)
    payment_intent_id = get_stripe_id(invoice.get('payment_intent'))
    transfer_id = get_transfer_id_for_charge(ctx.stripe, invoice.get('charge'))

    return commission_service.record_commission(
        db,
        split,
        photographer_id=photographer_id,
        gallery_id=gallery_id,
        client_email=invoice.get('customer_email'),
        total_paid_cents=amount_paid_cents,
        payment_type='upfront' if invoice.get('billing_reason') == 'subscription_create' else 'monthly',
        stripe_payment_intent_id=payment_intent_id or invoice.get('id'),
        stripe_transfer_id=transfer_id,
    )


def _send_access_restored(db, row: Subscription) -> None:
    """Restoration notice. Missing pieces just skip the email."""
    try:
        user_email = auth_service.get_user_email(db, row.user_id)
        if not user_email:
            return
        profile = db.query(UserProfile).filter(UserProfile.id == row.user_id).first()
        gallery = db.query(PhotoGallery).filter(PhotoGallery.id == row.gallery_id).first() if row.gallery_id else None
        send_notification_safely(
            email_service.send_gallery_access_restored_email,
            customer_name=(profile.full_name if profile else None) or 'Valued Customer',
            customer_email=user_email,
            gallery_name=(gallery.gallery_name if gallery else None) or 'your gallery',
            photographer_name=_photographer_display_name(db, gallery.photographer_id if gallery else None),
            access_link=f"{settings.SITE_URL}/gallery/{row.gallery_id}",
        )
    except Exception as e:
        logger.error(f"Error sending access restored email for {row.stripe_subscription_id}: {e}", exc_info=True)


def _send_payment_receipt(db, invoice: dict, client_id: str, gallery_id: str, photographer_id: str) -> None:
    try:
        client = db.query(Client).filter(Client.id == client_id).first()
        if client:
            email, name = client.email, client.name
        else:
            user = db.query(User).filter(User.id == client_id).first()
            email = user.email if user else None
            name = (user.user_metadata or {}).get('full_name') if user else None
        gallery = db.query(PhotoGallery).filter(PhotoGallery.id == gallery_id).first()
        if not email or not gallery:
            return

        next_billing = from_timestamp(invoice.get('period_end')) or utcnow()
        plan_name = 'Gallery Access - Monthly'
        if invoice.get('billing_reason') == 'subscription_create':
            plan_name += ' (First Payment)'

        send_notification_safely(
            email_service.send_payment_successful_email,
            customer_name=name or 'Valued Customer',
            customer_email=email,
            amount_paid=(invoice.get('amount_paid') or 0) / 100,
            plan_name=plan_name,
            gallery_name=gallery.gallery_name or 'your gallery',
            photographer_name=_photographer_display_name(db, photographer_id),
            next_billing_date=next_billing.strftime('%B %d, %Y'),
            receipt_url=invoice.get('hosted_invoice_url'),
        )
    except Exception as e:
        logger.error(f"Error sending payment successful email for invoice {invoice.get('id')}: {e}", exc_info=True)


# ============================================================================
# PAYMENT FAILED
# ============================================================================

def grace_days_remaining(first_failure_at: datetime, now: datetime) -> int:
    """Whole days left in the grace period (0 once it has run out)"""
    remaining = timedelta(days=settings.GRACE_PERIOD_DAYS) - (now - first_failure_at)
    return math.ceil(max(0.0, remaining.total_seconds()) / SECONDS_PER_DAY)


def handle_payment_failed(invoice: dict, ctx: WebhookContext) -> HandlerResult:
    logger.info(f"Processing invoice.payment_failed {invoice.get('id')}")
    db = ctx.db

    subscription_id = get_invoice_subscription_id(invoice)
    if not subscription_id:
        return HandlerResult(success=True, message=f"Invoice {invoice.get('id')} payment failed (not subscription-related)")

    now = utcnow()
    grace_period = timedelta(days=settings.GRACE_PERIOD_DAYS)
    row = db.query(Subscription).filter(Subscription.stripe_subscription_id == subscription_id).first()

    failure_count = 1
    first_failure_at = now
    suspended = False
    if row:
        failure_count = (row.payment_failure_count or 0) + 1
        first_failure_at = as_utc(row.last_payment_failure_at) or now
        suspended = now - first_failure_at >= grace_period and not row.access_suspended

        row.status = 'past_due'
        row.payment_failure_count = failure_count
        if row.last_payment_failure_at is None:
            # The clock only starts on the first failure of a cycle
            row.last_payment_failure_at = now
        if suspended:
            row.access_suspended = True
            row.access_suspended_at = now
            logger.info(f"Suspending access for subscription {subscription_id} - grace period exceeded")
        db.commit()
        if suspended:
            access_suspensions_counter.inc()
    else:
        logger.warning(f"No local subscription {subscription_id} for failed invoice {invoice.get('id')}")

    db.add(PaymentHistory(
        stripe_invoice_id=invoice.get('id'),
        stripe_subscription_id=subscription_id,
        amount_paid_cents=0,
        currency=invoice.get('currency'),
        status='failed',
    ))
    db.commit()

    if row:
        background.fire_and_forget(
            analytics_service.track_event_safely,
            row.user_id,
            EVENTS.CLIENT_PAYMENT_FAILED,
            {
                "gallery_id": row.gallery_id or "",
                "failure_reason": "card_declined",
                "failure_count": failure_count,
                "amount_cents": invoice.get('amount_due'),
            },
        )
        _send_dunning_notice(db, row, invoice, first_failure_at, now)

    return HandlerResult(
        success=True,
        message=f"Payment failed for subscription {subscription_id}, failure count: {failure_count}, suspended: {suspended}",
        data={"failure_count": failure_count, "suspended": suspended},
    )


def _send_dunning_notice(db, row: Subscription, invoice: dict, first_failure_at: datetime, now: datetime) -> None:
    try:
        user_email = auth_service.get_user_email(db, row.user_id)
        if not user_email:
            return
        profile = db.query(UserProfile).filter(UserProfile.id == row.user_id).first()
        gallery = db.query(PhotoGallery).filter(PhotoGallery.id == row.gallery_id).first() if row.gallery_id else None

        days_remaining = grace_days_remaining(first_failure_at, now)
        # First failure: nothing has elapsed yet, show the full period
        grace_period_days = days_remaining or settings.GRACE_PERIOD_DAYS

        send_notification_safely(
            email_service.send_payment_failed_email,
            customer_name=(profile.full_name if profile else None) or 'Valued Customer',
            customer_email=user_email,
            amount_due=(invoice.get('amount_due') or 0) / 100,
            gallery_name=(gallery.gallery_name if gallery else None) or 'your gallery',
            update_payment_link=f"{settings.SITE_URL}/client/billing",
            grace_period_days=grace_period_days,
        )
        logger.info(
            f"Sent payment failure email to {user_email} "
            f"({days_remaining} days / ~{math.ceil(days_remaining / 30)} months remaining in grace period)"
        )
    except Exception as e:
        logger.error(f"Error sending payment failed email for {row.stripe_subscription_id}: {e}", exc_info=True)
