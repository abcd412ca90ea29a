"""Webhook failure monitor - alerts the operator when deliveries keep failing"""
import logging
import threading
from collections import Counter
from datetime import datetime, timedelta, timezone
from html import escape
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from photovault.core.config import settings
from photovault.models.webhook_event import WebhookLog
from photovault.services import email_service

logger = logging.getLogger("monitor")

# In-process only: a restart may send one extra alert
_last_alert_sent_at: Optional[datetime] = None
_alert_lock = threading.Lock()


def reset_alert_state():
    global _last_alert_sent_at
    with _alert_lock:
        _last_alert_sent_at = None


def check_webhook_failures(db: Session, now: Optional[datetime] = None) -> Dict[str, Any]:
    """Count failed webhook logs in the last hour and alert at or above the threshold"""
    global _last_alert_sent_at
    now = now or datetime.now(timezone.utc)
    threshold = settings.WEBHOOK_FAILURE_ALERT_THRESHOLD

    failures = db.query(WebhookLog).filter(
        WebhookLog.status == 'failed',
        WebhookLog.processed_at >= now - timedelta(hours=1)
    ).order_by(WebhookLog.processed_at.desc()).all()
    failure_count = len(failures)

    result = {
        "success": True,
        "failure_count": failure_count,
        "threshold": threshold,
        "alert_sent": False,
    }

    if failure_count < threshold:
        logger.info(f"Webhook check OK: {failure_count} failures in last hour (threshold: {threshold})")
        result["status"] = "healthy"
        return result

    cooldown = timedelta(minutes=settings.WEBHOOK_ALERT_COOLDOWN_MINUTES)
    with _alert_lock:
        last_sent = _last_alert_sent_at
        if last_sent and now - last_sent <= cooldown:
            remaining = cooldown - (now - last_sent)
            result["reason"] = "cooldown_active"
            result["cooldown_remaining_minutes"] = int(-(-remaining.total_seconds() // 60))
            logger.info(f"{failure_count} failures but alert cooldown active")
            return result
        _last_alert_sent_at = now

    failures_by_type = Counter(f.event_type for f in failures)
    result["failures_by_type"] = dict(failures_by_type)

    if not settings.ADMIN_EMAIL:
        logger.warning(f"ALERT: {failure_count} webhook failures in last hour but ADMIN_EMAIL is not set")
        return result

    logger.warning(f"ALERT: {failure_count} webhook failures in last hour (threshold: {threshold})")
    result["alert_sent"] = email_service.send_alert_email(
        settings.ADMIN_EMAIL,
        f"PhotoVault: {failure_count} Webhook Failures Detected",
        _render_alert(failure_count, threshold, failures_by_type, failures[:3]),
    )
    return result


def _render_alert(failure_count, threshold, failures_by_type, samples) -> str:
    summary = "".join(
        f"<li><strong>{escape(event_type)}:</strong> {count} failures</li>"
        for event_type, count in failures_by_type.most_common()
    )
    sample_errors = "".join(
        f"<li><strong>{escape(f.event_type)}</strong> at {f.processed_at.isoformat() if f.processed_at else 'unknown'}<br>"
        f"<span style=\"color: #dc2626;\">Error: {escape(f.error_message or 'No error message')}</span></li>"
        for f in samples
    )
    return f"""
    <h2>Webhook Failure Alert</h2>
    <p><strong>{failure_count} webhooks failed in the last hour.</strong></p>
    <p>Threshold: {threshold} failures/hour</p>
    <h3>Failures by Type:</h3>
    <ul>{summary}</ul>
    <h3>Recent Errors (Sample):</h3>
    <ul>{sample_errors}</ul>
    """
