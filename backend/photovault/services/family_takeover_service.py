"""Family account takeover - a secondary member takes over billing (or ownership)"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.orm import Session

from photovault.models._helpers import utcnow
from photovault.models.family import AccountTakeover, Secondary
from photovault.models.gallery import PhotoGallery
from photovault.models.subscription import Subscription
from photovault.models.user import User, UserProfile
from photovault.services import email_service

logger = logging.getLogger(__name__)

TAKEOVER_TYPES = ('full_primary', 'billing_only')


@dataclass
class TakeoverRequest:
    account_id: str
    secondary_id: str
    takeover_type: str
    reason: str = ""
    reason_text: str = ""
    new_payer_user_id: str = ""
    previous_primary_id: str = ""


def complete_takeover(db: Session, request: TakeoverRequest, stripe_subscription_id: Optional[str]) -> AccountTakeover:
    """
    Apply a paid takeover.

    Steps 1-4 (audit row, billing payer flag, ownership tracking, access
    restore) are required and raise on failure. Notification emails are
    best-effort.
    """
    takeover_type = request.takeover_type if request.takeover_type in TAKEOVER_TYPES else 'billing_only'
    now = utcnow()

    # 1. Audit log
    takeover = AccountTakeover(
        account_id=request.account_id,
        previous_primary_id=request.previous_primary_id or None,
        new_primary_id=request.new_payer_user_id if takeover_type == 'full_primary' else None,
        billing_payer_id=request.new_payer_user_id if takeover_type == 'billing_only' else None,
        takeover_type=takeover_type,
        reason=None if request.reason in ('', 'not_specified') else request.reason,
        reason_text=request.reason_text or None,
        stripe_subscription_id=stripe_subscription_id,
    )
    db.add(takeover)

    # 2. Secondary becomes billing payer
    secondary = db.query(Secondary).filter(Secondary.id == request.secondary_id).first()
    if secondary:
        secondary.is_billing_payer = True
        secondary.became_billing_payer_at = now
        secondary.has_payment_method = True
    else:
        logger.warning(f"Secondary {request.secondary_id} not found for account {request.account_id}")

    # 3. Ownership tracking
    if takeover_type == 'full_primary':
        profile = db.query(UserProfile).filter(UserProfile.id == request.account_id).first()
        if profile:
            profile.original_primary_id = request.previous_primary_id or None

    db.commit()

    # 4. Restore access on every subscription of the account
    restored = db.query(Subscription).filter(Subscription.user_id == request.account_id).update(
        {
            Subscription.access_suspended: False,
            Subscription.access_suspended_at: None,
            Subscription.payment_failure_count: 0,
            Subscription.last_payment_failure_at: None,
            Subscription.updated_at: now,
        },
        synchronize_session=False
    )
    db.commit()
    db.refresh(takeover)
    logger.info(
        f"Completed {takeover_type} takeover for account {request.account_id} by secondary "
        f"{request.secondary_id} ({restored} subscription(s) restored)"
    )

    try:
        _notify_takeover(db, request, takeover_type, secondary)
    except Exception as e:
        logger.error(f"Error sending takeover notifications for account {request.account_id}: {e}", exc_info=True)

    return takeover


def _notify_takeover(db: Session, request: TakeoverRequest, takeover_type: str, secondary: Optional[Secondary]):
    if not secondary or not secondary.email:
        return

    primary = db.query(UserProfile).filter(UserProfile.id == request.previous_primary_id).first()
    primary_name = primary.full_name if primary and primary.full_name else None

    galleries = db.query(PhotoGallery).filter(PhotoGallery.client_id == request.account_id)
    gallery_count = galleries.count()

    email_service.send_takeover_confirmation_email(
        new_payer_name=secondary.name or "there",
        new_payer_email=secondary.email,
        previous_primary_name=primary_name or "Account Holder",
        takeover_type=takeover_type,
        gallery_count=gallery_count,
    )

    first_gallery = galleries.filter(PhotoGallery.photographer_id.isnot(None)).first()
    if not first_gallery:
        return

    photographer = db.query(User).filter(User.id == first_gallery.photographer_id).first()
    if not photographer or not photographer.email:
        return
    photographer_profile = db.query(UserProfile).filter(UserProfile.id == photographer.id).first()

    email_service.send_photographer_takeover_notification_email(
        photographer_name=(photographer_profile.full_name if photographer_profile else None) or "Photographer",
        photographer_email=photographer.email,
        original_client_name=primary_name or "Client",
        new_contact_name=secondary.name or secondary.email,
        new_contact_email=secondary.email,
        relationship=secondary.relationship,
        reason='other' if request.reason in ('', 'not_specified') else request.reason,
        reason_text=request.reason_text or None,
    )
