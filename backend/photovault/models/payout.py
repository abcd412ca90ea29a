"""Payout model"""
from sqlalchemy import Column, Integer, String, DateTime

from photovault.models.base import Base
from photovault.models._helpers import utcnow


class Payout(Base):
    """Stripe Connect payout to a photographer"""
    __tablename__ = "payouts"

    id = Column(Integer, primary_key=True, index=True)
    photographer_id = Column(String(36), nullable=False, index=True)
    stripe_payout_id = Column(String(255), unique=True, nullable=False, index=True)
    amount_cents = Column(Integer, nullable=False)
    currency = Column(String(10), nullable=True)
    status = Column(String(50), nullable=True)
    arrival_date = Column(DateTime(timezone=True), nullable=True)
    description = Column(String(500), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
