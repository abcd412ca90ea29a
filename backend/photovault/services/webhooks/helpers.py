"""Shared webhook plumbing: handler context, idempotency gate and audit log"""
import logging
import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

import stripe
from sqlalchemy.orm import Session

from photovault.core.metrics import notification_failures_counter
from photovault.db import session as db_session
from photovault.models.webhook_event import ProcessedWebhookEvent, WebhookLog

logger = logging.getLogger("webhook")


@dataclass
class WebhookContext:
    """Dependencies handed to every event handler"""
    db: Session
    stripe: stripe.StripeClient
    event_id: str
    event_type: str


@dataclass
class HandlerResult:
    success: bool
    message: str
    data: Optional[Dict[str, Any]] = field(default=None)


def check_idempotency(db: Session, event_id: str) -> bool:
    """True if the event was already processed"""
    return db.query(ProcessedWebhookEvent.id).filter(
        ProcessedWebhookEvent.stripe_event_id == event_id
    ).first() is not None


def mark_processed(db: Session, event_id: str, event_type: str) -> None:
    """Record the event as processed. Call ONLY after the handler succeeded."""
    db.add(ProcessedWebhookEvent(stripe_event_id=event_id, event_type=event_type))
    db.commit()


def log_webhook_result(db: Session, event_id: str, event_type: str, message: str, processing_time_ms: int) -> None:
    db.add(WebhookLog(
        event_id=event_id,
        event_type=event_type,
        status='success',
        processing_time_ms=processing_time_ms,
        result_message=message,
    ))
    db.commit()


def log_webhook_error(
    error: BaseException,
    processing_time_ms: int,
    event_id: Optional[str] = None,
    event_type: Optional[str] = None,
) -> None:
    """Write a failed WebhookLog in a fresh session. Never raises."""
    try:
        with db_session.session_scope() as db:
            db.add(WebhookLog(
                event_id=event_id,
                event_type=event_type or 'error',
                status='failed',
                processing_time_ms=processing_time_ms,
                error_message=str(error) or error.__class__.__name__,
                stack_trace=''.join(traceback.format_exception(type(error), error, error.__traceback__)),
            ))
            db.commit()
    except Exception as log_error:
        logger.error(f"Failed to log webhook error: {log_error}")


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Stores without timezone support (SQLite) hand back naive datetimes, which are UTC"""
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=timezone.utc)


def send_notification_safely(send_fn, **kwargs) -> bool:
    """Run an email sender, swallowing and counting failures. Payment state is already committed."""
    try:
        sent = send_fn(**kwargs)
    except Exception as e:
        logger.error(f"Error in {getattr(send_fn, '__name__', send_fn)}: {e}", exc_info=True)
        sent = False
    if not sent:
        notification_failures_counter.labels(kind="email").inc()
    return bool(sent)


def add_years(value: datetime, years: int) -> datetime:
    """Same calendar date `years` later (Feb 29 falls back to Feb 28)"""
    try:
        return value.replace(year=value.year + years)
    except ValueError:
        return value.replace(year=value.year + years, day=28)
