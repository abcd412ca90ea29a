"""PaymentHistory model"""
from sqlalchemy import Column, Integer, String, DateTime

from photovault.models.base import Base
from photovault.models._helpers import utcnow


class PaymentHistory(Base):
    """Append-only ledger of invoice outcomes"""
    __tablename__ = "payment_history"

    id = Column(Integer, primary_key=True, index=True)
    stripe_invoice_id = Column(String(255), nullable=True, index=True)
    stripe_subscription_id = Column(String(255), nullable=True, index=True)
    amount_paid_cents = Column(Integer, default=0, nullable=False)
    currency = Column(String(10), nullable=True)
    status = Column(String(50), nullable=False)  # 'succeeded', 'failed'
    paid_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
