"""TokenBalance model"""
from sqlalchemy import Column, Integer, String, DateTime

from photovault.models.base import Base
from photovault.models._helpers import utcnow


class TokenBalance(Base):
    """Purchased token balance per user"""
    __tablename__ = "token_balances"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String(36), unique=True, nullable=False, index=True)
    tokens_remaining = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    def __repr__(self):
        return f"<TokenBalance(user_id={self.user_id}, remaining={self.tokens_remaining})>"
