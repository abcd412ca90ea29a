"""TokenTransaction model"""
from sqlalchemy import Column, Integer, String, Index, DateTime

from photovault.models.base import Base
from photovault.models._helpers import utcnow


class TokenTransaction(Base):
    """Token transaction audit log"""
    __tablename__ = "token_transactions"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), nullable=False, index=True)
    transaction_type = Column(String(50), nullable=False)  # 'purchase', 'refund', 'grant'
    tokens_amount = Column(Integer, nullable=False)
    stripe_payment_intent_id = Column(String(255), nullable=True, index=True)
    amount_paid_cents = Column(Integer, nullable=True)
    currency = Column(String(10), nullable=True)
    description = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False, index=True)

    __table_args__ = (
        Index('ix_token_transactions_user_created', 'user_id', 'created_at'),
    )
