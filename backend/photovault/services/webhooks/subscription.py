"""Subscription lifecycle handlers

Handles customer.subscription.created/updated/deleted. Deletion also emits a
churn analytics event from a detached task.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from photovault.core.config import settings
from photovault.core.logging import churn_logger
from photovault.db import session as db_session
from photovault.models._helpers import utcnow
from photovault.models.commission import Commission
from photovault.models.gallery import Client, PhotoGallery
from photovault.models.subscription import Subscription
from photovault.models.user import User, UserProfile
from photovault.models.webhook_event import ErrorLog
from photovault.services import analytics_service
from photovault.services.analytics_service import EVENTS
from photovault.services.stripe_service import from_timestamp, get_stripe_id
from photovault.services.webhooks.errors import UserNotFoundError
from photovault.services.webhooks.helpers import HandlerResult, WebhookContext, as_utc
from photovault.tasks import background

logger = logging.getLogger("webhook")

PHOTOGRAPHER_STATS_DEFAULT = {"total_revenue_cents": 0, "client_count": 0, "gallery_count": 0}
CLIENT_STATS_DEFAULT = {"photographer_id": None, "gallery_count": 0}


def _billing_period(subscription: dict):
    """Period of the first subscription item (single-item subscriptions assumed)"""
    items = (subscription.get('items') or {}).get('data') or []
    first_item = items[0] if items else {}
    start = first_item.get('current_period_start') or subscription.get('current_period_start')
    end = first_item.get('current_period_end') or subscription.get('current_period_end')
    return from_timestamp(start), from_timestamp(end)


def _resolve_user_id(db: Session, customer_id: Optional[str]) -> str:
    if customer_id:
        user = db.query(User.id).filter(User.stripe_customer_id == customer_id).first()
        if user:
            return user.id
        profile = db.query(UserProfile.id).filter(UserProfile.stripe_customer_id == customer_id).first()
        if profile:
            return profile.id
    raise UserNotFoundError(f"User not found for Stripe customer: {customer_id}")


def _apply_state(row: Subscription, subscription: dict) -> None:
    period_start, period_end = _billing_period(subscription)
    row.status = subscription.get('status') or row.status or 'active'
    if period_start:
        row.current_period_start = period_start
    if period_end:
        row.current_period_end = period_end
    row.cancel_at_period_end = bool(subscription.get('cancel_at_period_end'))
    row.canceled_at = from_timestamp(subscription.get('canceled_at'))


def handle_subscription_created(subscription: dict, ctx: WebhookContext) -> HandlerResult:
    logger.info(f"Processing customer.subscription.created {subscription.get('id')}")
    db = ctx.db
    customer_id = get_stripe_id(subscription.get('customer'))
    user_id = _resolve_user_id(db, customer_id)

    row = db.query(Subscription).filter(Subscription.stripe_subscription_id == subscription['id']).first()
    if row is None:
        now = utcnow()
        row = Subscription(
            stripe_subscription_id=subscription['id'],
            current_period_start=now,
            current_period_end=now,
        )
        db.add(row)

    metadata = subscription.get('metadata') or {}
    row.user_id = user_id
    row.stripe_customer_id = customer_id
    row.gallery_id = metadata.get('gallery_id') or row.gallery_id
    row.plan_type = metadata.get('plan_type') or row.plan_type or 'unknown'
    _apply_state(row, subscription)
    db.commit()

    return HandlerResult(success=True, message=f"Created subscription {subscription['id']} for user {user_id}")


def handle_subscription_updated(subscription: dict, ctx: WebhookContext) -> HandlerResult:
    logger.info(f"Processing customer.subscription.updated {subscription.get('id')}")
    db = ctx.db

    row = db.query(Subscription).filter(Subscription.stripe_subscription_id == subscription['id']).first()
    if row is None:
        # Update arrived before (or instead of) created: mirror it as a create
        return handle_subscription_created(subscription, ctx)

    _apply_state(row, subscription)
    db.commit()
    return HandlerResult(success=True, message=f"Subscription {subscription['id']} updated")


def handle_subscription_deleted(subscription: dict, ctx: WebhookContext) -> HandlerResult:
    logger.info(f"Processing customer.subscription.deleted {subscription.get('id')}")
    db = ctx.db

    row = db.query(Subscription).filter(Subscription.stripe_subscription_id == subscription['id']).first()
    if row is None:
        logger.warning(f"No local subscription {subscription['id']} to cancel")
        return HandlerResult(success=True, message=f"Subscription {subscription['id']} canceled (no local record)")

    now = utcnow()
    row.status = 'canceled'
    row.canceled_at = now
    row.cancel_at_period_end = False
    db.commit()

    profile = db.query(UserProfile).filter(UserProfile.id == row.user_id).first()
    if profile:
        signup_date = as_utc(profile.created_at)
        tenure_days = round((now - signup_date).total_seconds() / 86400) if signup_date else 0
        churn_reason = (subscription.get('cancellation_details') or {}).get('reason')
        background.fire_and_forget(track_churn, row.user_id, profile.user_type, tenure_days, churn_reason)

    return HandlerResult(success=True, message=f"Subscription {subscription['id']} canceled")


# ============================================================================
# CHURN TRACKING (detached)
# ============================================================================

def get_photographer_churn_stats(photographer_id: str) -> Dict[str, Any]:
    with db_session.session_scope() as db:
        revenue = db.query(func.coalesce(func.sum(Commission.amount_cents), 0)).filter(
            Commission.photographer_id == photographer_id,
            Commission.status == 'paid'
        ).scalar()
        client_count = db.query(Client).filter(Client.photographer_id == photographer_id).count()
        gallery_count = db.query(PhotoGallery).filter(PhotoGallery.photographer_id == photographer_id).count()
    return {"total_revenue_cents": int(revenue or 0), "client_count": client_count, "gallery_count": gallery_count}


def get_client_churn_stats(user_id: str) -> Dict[str, Any]:
    with db_session.session_scope() as db:
        clients = db.query(Client).filter(Client.user_id == user_id).all()
        client_ids = [c.id for c in clients]
        gallery_count = db.query(PhotoGallery).filter(PhotoGallery.client_id.in_(client_ids)).count() if client_ids else 0
    return {
        "photographer_id": clients[0].photographer_id if clients else None,
        "gallery_count": gallery_count,
    }


def track_churn(user_id: str, user_type: Optional[str], tenure_days: int, churn_reason: Optional[str]) -> None:
    """
    Emit the churn event for a canceled subscription.

    Aggregate stats are bounded by CHURN_STATS_TIMEOUT_SECONDS; a slow or
    failing query sends zeroed stats instead. Any other failure is written to
    error_logs, since the webhook response is long gone.
    """
    timeout = settings.CHURN_STATS_TIMEOUT_SECONDS
    try:
        if user_type == 'photographer':
            stats = background.call_with_timeout(
                get_photographer_churn_stats, timeout, dict(PHOTOGRAPHER_STATS_DEFAULT), user_id
            )
            analytics_service.track_server_event(user_id, EVENTS.PHOTOGRAPHER_CHURNED, {
                "tenure_days": tenure_days,
                "total_revenue_cents": stats.get("total_revenue_cents") or 0,
                "client_count": stats.get("client_count") or 0,
                "gallery_count": stats.get("gallery_count") or 0,
                "churn_reason": churn_reason,
            })
            churn_logger.info(f"Photographer churn tracked: {user_id}")
        elif user_type == 'client':
            stats = background.call_with_timeout(
                get_client_churn_stats, timeout, dict(CLIENT_STATS_DEFAULT), user_id
            )
            analytics_service.track_server_event(user_id, EVENTS.CLIENT_CHURNED, {
                "tenure_days": tenure_days,
                "photographer_id": stats.get("photographer_id"),
                "gallery_count": stats.get("gallery_count") or 0,
                "churn_reason": churn_reason,
            })
            churn_logger.info(f"Client churn tracked: {user_id}")
    except Exception as e:
        churn_logger.error(f"Failed to track churn event for {user_id}: {e}")
        _record_churn_error(user_id, e)


def _record_churn_error(user_id: str, error: Exception) -> None:
    try:
        with db_session.session_scope() as db:
            db.add(ErrorLog(
                user_id=user_id,
                error_type='ChurnTrackingError',
                error_message=str(error),
                page='/api/webhooks/stripe',
            ))
            db.commit()
    except Exception as log_error:
        churn_logger.error(f"Failed to log churn error: {log_error}")
