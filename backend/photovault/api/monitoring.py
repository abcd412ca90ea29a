"""Monitoring API routes for health checks, metrics and webhook failure alerts"""
import secrets

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from photovault.core.config import settings
from photovault.core.logging import monitor_logger
from photovault.db.session import get_db
from photovault.services import email_service
from photovault.services.webhook_monitor_service import check_webhook_failures

router = APIRouter(tags=["monitoring"])
logger = monitor_logger


@router.get("/metrics")
def metrics_endpoint():
    """Prometheus metrics endpoint"""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@router.get("/health")
def health_check():
    """Health check endpoint"""
    return {"status": "healthy"}


def _is_authorized_cron(request: Request) -> bool:
    if request.headers.get("x-cron") == "1":
        return True
    if not settings.CRON_SECRET:
        return False
    auth_header = request.headers.get("authorization") or ""
    return secrets.compare_digest(auth_header.encode(), f"Bearer {settings.CRON_SECRET}".encode())


@router.get("/api/internal/monitor-webhooks")
def monitor_webhooks(request: Request, db: Session = Depends(get_db)):
    """Alert the admin when too many webhooks failed in the last hour (called by the scheduler)"""
    if not _is_authorized_cron(request):
        logger.warning("Unauthorized access attempt to webhook monitor")
        return JSONResponse(status_code=401, content={"error": "Unauthorized"})

    try:
        return check_webhook_failures(db)
    except SQLAlchemyError as e:
        logger.error(f"Failed to query webhook_logs: {e}", exc_info=True)
        if settings.ADMIN_EMAIL:
            email_service.send_alert_email(
                settings.ADMIN_EMAIL,
                "PhotoVault: Webhook Monitoring Failed",
                "<h2>Monitoring System Error</h2>"
                "<p>The webhook monitor could not query the database. "
                "Webhook failures may go undetected until this is resolved.</p>",
            )
        return JSONResponse(
            status_code=500,
            content={"success": False, "error": "Database query failed"}
        )
