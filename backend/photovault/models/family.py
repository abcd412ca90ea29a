"""Family account models (secondaries and billing takeovers)"""
from sqlalchemy import Column, Integer, String, DateTime, Boolean, Text

from photovault.models.base import Base
from photovault.models._helpers import new_uuid, utcnow


class Secondary(Base):
    """Household member attached to a primary client account"""
    __tablename__ = "secondaries"

    id = Column(String(36), primary_key=True, default=new_uuid)
    account_id = Column(String(36), nullable=False, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    relationship = Column(String(50), nullable=True)
    is_billing_payer = Column(Boolean, default=False, nullable=False)
    became_billing_payer_at = Column(DateTime(timezone=True), nullable=True)
    has_payment_method = Column(Boolean, default=False, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)


class AccountTakeover(Base):
    """Audit row for a secondary taking over billing (or the whole account)"""
    __tablename__ = "account_takeovers"

    id = Column(Integer, primary_key=True, index=True)
    account_id = Column(String(36), nullable=False, index=True)
    previous_primary_id = Column(String(36), nullable=True)
    new_primary_id = Column(String(36), nullable=True)
    billing_payer_id = Column(String(36), nullable=True)
    takeover_type = Column(String(50), nullable=False)  # 'full_primary', 'billing_only'
    reason = Column(String(100), nullable=True)
    reason_text = Column(Text, nullable=True)
    stripe_subscription_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
