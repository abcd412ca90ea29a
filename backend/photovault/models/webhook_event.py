"""Webhook idempotency and audit models"""
from sqlalchemy import Column, Integer, String, Text, DateTime

from photovault.models.base import Base
from photovault.models._helpers import utcnow


class ProcessedWebhookEvent(Base):
    """One row per Stripe event id, written only after its handler succeeded"""
    __tablename__ = "processed_webhook_events"

    id = Column(Integer, primary_key=True, index=True)
    stripe_event_id = Column(String(255), unique=True, nullable=False, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    processed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class WebhookLog(Base):
    """Append-only audit record, one per processing attempt"""
    __tablename__ = "webhook_logs"

    id = Column(Integer, primary_key=True, index=True)
    event_id = Column(String(255), nullable=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)
    status = Column(String(20), nullable=False, index=True)  # 'success', 'failed'
    processing_time_ms = Column(Integer, nullable=True)
    result_message = Column(Text, nullable=True)
    error_message = Column(Text, nullable=True)
    stack_trace = Column(Text, nullable=True)
    processed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)


class ErrorLog(Base):
    """Errors from detached work that can no longer fail its request"""
    __tablename__ = "error_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=True, index=True)
    error_type = Column(String(100), nullable=False)
    error_message = Column(Text, nullable=True)
    page = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
