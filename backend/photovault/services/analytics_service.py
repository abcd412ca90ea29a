"""Server-side product analytics (PostHog capture API)"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import httpx
from sqlalchemy import func
from sqlalchemy.orm import Session

from photovault.core.config import settings
from photovault.core.metrics import notification_failures_counter
from photovault.models.user import Photographer

logger = logging.getLogger(__name__)


class EVENTS:
    CLIENT_CREATED_ACCOUNT = "client_created_account"
    CLIENT_PAYMENT_COMPLETED = "client_payment_completed"
    PHOTOGRAPHER_RECEIVED_FIRST_PAYMENT = "photographer_received_first_payment"
    CLIENT_PAYMENT_FAILED = "client_payment_failed"
    PHOTOGRAPHER_CHURNED = "photographer_churned"
    CLIENT_CHURNED = "client_churned"


PAYMENT_OPTION_PLAN_TYPES = {
    'year_package': 'annual',
    'six_month_package': '6month',
    'monthly': 'monthly',
    'client_monthly': 'monthly',
}


def track_server_event(user_id: str, event_name: str, properties: Optional[Dict[str, Any]] = None) -> None:
    """
    Send one event to PostHog and wait for the response.

    Events are not batched: the process may go away right after the webhook
    returns, so each capture is flushed in its own call.

    Raises:
        httpx.HTTPError: If PostHog rejects the event or is unreachable
    """
    if not settings.POSTHOG_API_KEY:
        logger.warning("POSTHOG_API_KEY not set, skipping server-side tracking")
        return

    payload = {
        "api_key": settings.POSTHOG_API_KEY,
        "event": event_name,
        "distinct_id": user_id,
        "properties": {
            **{k: v for k, v in (properties or {}).items() if v is not None},
            "$source": "server",
        },
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }

    response = httpx.post(
        f"{settings.POSTHOG_HOST.rstrip('/')}/capture/",
        json=payload,
        timeout=settings.ANALYTICS_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    logger.debug(f"Tracked {event_name} for {user_id}")


def track_event_safely(user_id: str, event_name: str, properties: Optional[Dict[str, Any]] = None) -> bool:
    """Track an event, logging (never raising) on failure. Returns True when sent."""
    try:
        track_server_event(user_id, event_name, properties)
        return True
    except Exception as e:
        notification_failures_counter.labels(kind="analytics").inc()
        logger.error(f"Error tracking {event_name} for {user_id}: {e}")
        return False


# ============================================================================
# PROPERTY HELPERS
# ============================================================================

def is_first_time(db: Session, model, column, value, **filters) -> bool:
    """
    True when no `model` row has `column == value` (plus equality filters).

    Call this BEFORE creating the record being counted. Errors return False
    so a failed lookup never marks something as a first.
    """
    try:
        query = db.query(func.count(model.id)).filter(column == value)
        for key, filter_value in filters.items():
            query = query.filter(getattr(model, key) == filter_value)
        return (query.scalar() or 0) == 0
    except Exception as e:
        logger.error(f"is_first_time check failed for {model.__tablename__}: {e}")
        return False


def calculate_time_from_signup(signup_date: Optional[datetime]) -> Optional[int]:
    """Seconds since signup, or None when the date is unknown"""
    if not signup_date:
        return None
    if signup_date.tzinfo is None:
        signup_date = signup_date.replace(tzinfo=timezone.utc)
    return round((datetime.now(timezone.utc) - signup_date).total_seconds())


def get_photographer_signup_date(db: Session, photographer_id: str) -> Optional[datetime]:
    try:
        photographer = db.query(Photographer).filter(Photographer.id == photographer_id).first()
        return photographer.created_at if photographer else None
    except Exception as e:
        logger.error(f"get_photographer_signup_date failed for {photographer_id}: {e}")
        return None


def map_payment_option_to_plan_type(payment_option_id: Optional[str]) -> Optional[str]:
    if not payment_option_id:
        return None
    return PAYMENT_OPTION_PLAN_TYPES.get(payment_option_id)
