"""User identity and profile models"""
from sqlalchemy import Column, String, DateTime, Boolean, JSON, ForeignKey, Numeric
from sqlalchemy.orm import relationship

from photovault.models.base import Base
from photovault.models._helpers import new_uuid, utcnow


class User(Base):
    """Auth identities (one per login email)"""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_uuid)
    email = Column(String(255), unique=True, nullable=False, index=True)  # stored lower-cased
    password_hash = Column(String(255), nullable=True)
    email_confirmed = Column(Boolean, default=False, nullable=False)
    user_metadata = Column(JSON, default=dict)  # full_name, user_type
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    stripe_connect_account_id = Column(String(255), nullable=True, index=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    profile = relationship("UserProfile", back_populates="user", uselist=False, cascade="all, delete-orphan")


class UserProfile(Base):
    """Public profile row keyed by the identity id"""
    __tablename__ = "user_profiles"

    id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    full_name = Column(String(255), nullable=True)
    business_name = Column(String(255), nullable=True)
    user_type = Column(String(50), nullable=False, default="client")  # 'client', 'photographer', 'admin'
    stripe_customer_id = Column(String(255), nullable=True, index=True)
    original_primary_id = Column(String(36), nullable=True)  # set when a family takeover makes a secondary primary
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    user = relationship("User", back_populates="profile")


class Photographer(Base):
    """Photographer account flags"""
    __tablename__ = "photographers"

    id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    is_beta_tester = Column(Boolean, default=False, nullable=False)
    beta_start_date = Column(DateTime(timezone=True), nullable=True)
    price_locked_at = Column(Numeric(10, 2), nullable=True)  # locked monthly price in dollars
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
