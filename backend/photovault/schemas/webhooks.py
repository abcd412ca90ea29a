"""Pydantic schemas for Stripe webhook payloads and responses"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class StripeEventData(BaseModel):
    """The `data` member of a Stripe event"""
    model_config = ConfigDict(extra="allow")

    object: Dict[str, Any]
    previous_attributes: Optional[Dict[str, Any]] = None


class StripeEventEnvelope(BaseModel):
    """Verified Stripe event, parsed from the exact bytes that were signed"""
    model_config = ConfigDict(extra="allow")

    id: str
    type: str
    data: StripeEventData
    created: Optional[int] = None
    livemode: bool = False


class CheckoutSessionMetadata(BaseModel):
    """Metadata attached by our own checkout-creation endpoints.

    Stripe metadata values are always strings. Covers every checkout flow:
    gallery (public and authenticated), tokens, subscription, family takeover
    and reactivation.
    """
    model_config = ConfigDict(extra="allow")

    # Common fields
    user_id: Optional[str] = None
    type: Optional[str] = None  # 'gallery_payment', 'family_takeover', 'reactivation'
    purchase_type: Optional[str] = None  # 'tokens', 'subscription'
    isPublicCheckout: Optional[str] = None

    # Gallery checkout fields
    galleryId: Optional[str] = None
    photographerId: Optional[str] = None
    clientId: Optional[str] = None
    clientEmail: Optional[str] = None
    clientName: Optional[str] = None
    galleryName: Optional[str] = None
    totalAmount: Optional[str] = None
    shootFee: Optional[str] = None
    storageFee: Optional[str] = None
    shootFeeCents: Optional[str] = None
    storageFeeCents: Optional[str] = None
    photovaultRevenueCents: Optional[str] = None
    photographerPayoutCents: Optional[str] = None
    paymentOptionId: Optional[str] = None
    payment_option_id: Optional[str] = None

    # Token purchase fields
    tokens: Optional[str] = None

    # Family takeover fields
    account_id: Optional[str] = None
    secondary_id: Optional[str] = None
    takeover_type: Optional[str] = None  # 'full_primary', 'billing_only'
    reason: Optional[str] = None
    reason_text: Optional[str] = None
    new_payer_user_id: Optional[str] = None
    previous_primary_id: Optional[str] = None

    # Reactivation fields
    stripe_subscription_id: Optional[str] = None
    gallery_id: Optional[str] = None

    @property
    def is_public_checkout(self) -> bool:
        return self.isPublicCheckout == "true"

    @classmethod
    def from_session(cls, session: Dict[str, Any]) -> "CheckoutSessionMetadata":
        metadata = session.get("metadata") or {}
        # Coerce to strings the way Stripe would deliver them
        return cls(**{k: (str(v) if v is not None else None) for k, v in metadata.items()})


class WebhookResponse(BaseModel):
    """Body returned to Stripe on success"""
    message: str
    event_type: str
    processing_time_ms: int = Field(ge=0)


class WebhookErrorResponse(BaseModel):
    error: str
    message: Optional[str] = None
