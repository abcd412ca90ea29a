"""Commission model"""
from sqlalchemy import Column, Integer, String, DateTime

from photovault.models.base import Base
from photovault.models._helpers import utcnow


class Commission(Base):
    """Photographer earnings per payment (gross = shoot fee + half the storage fee)"""
    __tablename__ = "commissions"

    id = Column(Integer, primary_key=True, index=True)
    photographer_id = Column(String(36), nullable=True, index=True)
    gallery_id = Column(String(36), nullable=True, index=True)
    client_email = Column(String(255), nullable=True, index=True)
    amount_cents = Column(Integer, nullable=False)  # photographer gross
    total_paid_cents = Column(Integer, nullable=False)
    shoot_fee_cents = Column(Integer, default=0, nullable=False)
    storage_fee_cents = Column(Integer, default=0, nullable=False)
    photovault_commission_cents = Column(Integer, nullable=False)
    payment_type = Column(String(50), nullable=False)  # 'upfront', 'monthly', 'reactivation'
    # Unique: a redelivered payment collides here and is logged instead of double-counted
    stripe_payment_intent_id = Column(String(255), unique=True, nullable=True)
    stripe_transfer_id = Column(String(255), nullable=True)
    status = Column(String(50), default="paid", nullable=False)  # 'paid', 'refunded'
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
