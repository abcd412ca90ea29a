"""Subscription model"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean

from photovault.models.base import Base
from photovault.models._helpers import utcnow


class Subscription(Base):
    """Gallery access subscription (recurring, or a one-year grant for upfront payments)"""
    __tablename__ = "subscriptions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    gallery_id = Column(String(36), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), unique=True, nullable=False, index=True)
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    status = Column(String(50), nullable=False)  # 'active', 'trialing', 'past_due', 'canceled'
    plan_type = Column(String(50), nullable=False)  # 'annual_upfront', 'monthly', ...
    current_period_start = Column(DateTime(timezone=True), nullable=True)
    current_period_end = Column(DateTime(timezone=True), nullable=True)
    cancel_at_period_end = Column(Boolean, default=False, nullable=False)
    canceled_at = Column(DateTime(timezone=True), nullable=True)

    # Dunning state. last_payment_failure_at anchors the grace period at the FIRST failure of a cycle.
    payment_failure_count = Column(Integer, default=0, nullable=False)
    last_payment_failure_at = Column(DateTime(timezone=True), nullable=True)
    access_suspended = Column(Boolean, default=False, nullable=False)
    access_suspended_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<Subscription(id={self.stripe_subscription_id}, status={self.status}, suspended={self.access_suspended})>"
