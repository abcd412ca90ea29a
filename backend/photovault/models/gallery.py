"""Client and PhotoGallery models"""
from sqlalchemy import Column, String, DateTime, ForeignKey

from photovault.models.base import Base
from photovault.models._helpers import new_uuid, utcnow


class Client(Base):
    """A photographer's client record (linked to a login once they pay)"""
    __tablename__ = "clients"

    id = Column(String(36), primary_key=True, default=new_uuid)
    photographer_id = Column(String(36), nullable=True, index=True)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    email = Column(String(255), nullable=True, index=True)
    name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)


class PhotoGallery(Base):
    """Gallery payment state (the viewer itself lives elsewhere)"""
    __tablename__ = "photo_galleries"

    id = Column(String(36), primary_key=True, default=new_uuid)
    photographer_id = Column(String(36), nullable=True, index=True)
    client_id = Column(String(36), nullable=True, index=True)
    gallery_name = Column(String(255), nullable=True)
    payment_status = Column(String(50), default="unpaid", nullable=False)  # 'unpaid', 'paid'
    paid_at = Column(DateTime(timezone=True), nullable=True)
    stripe_payment_intent_id = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
