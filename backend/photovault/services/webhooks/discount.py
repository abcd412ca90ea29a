"""Discount handler (customer.discount.created)

Only the beta coupon matters: it marks the photographer as a beta tester and
locks in the beta price. Every other coupon is ignored.
"""
import logging
from decimal import Decimal

from photovault.core.config import settings
from photovault.models._helpers import utcnow
from photovault.models.user import Photographer, User, UserProfile
from photovault.services import email_service
from photovault.services.stripe_service import get_customer_email, get_stripe_id
from photovault.services.webhooks.helpers import HandlerResult, WebhookContext
from photovault.tasks import background

logger = logging.getLogger("webhook")


def _coupon_id(discount: dict):
    # Newer API versions nest the coupon under source
    coupon = (discount.get('source') or {}).get('coupon') or discount.get('coupon')
    return get_stripe_id(coupon)


def send_beta_welcome(photographer_name: str, email: str) -> None:
    if email_service.send_beta_welcome_email(photographer_name, email):
        logger.info(f"Beta welcome email sent to {email}")
    else:
        logger.warning(f"Failed to send beta welcome email to {email}")


def handle_discount_created(discount: dict, ctx: WebhookContext) -> HandlerResult:
    logger.info(f"Processing customer.discount.created {discount.get('id')}")
    db = ctx.db

    coupon_id = _coupon_id(discount)
    if coupon_id != settings.BETA_COUPON_ID:
        logger.info(f"Ignoring non-beta coupon: {coupon_id}")
        return HandlerResult(success=True, message=f"Ignored coupon: {coupon_id}")

    customer_id = get_stripe_id(discount.get('customer'))
    if not customer_id:
        logger.warning("No customer ID in discount event")
        return HandlerResult(success=True, message="No customer ID in discount")

    profile = db.query(UserProfile).filter(UserProfile.stripe_customer_id == customer_id).first()
    if profile is None:
        profile = db.query(UserProfile).join(User, User.id == UserProfile.id).filter(
            User.stripe_customer_id == customer_id
        ).first()
    if profile is None:
        logger.warning(f"No user found for Stripe customer: {customer_id}")
        return HandlerResult(success=True, message=f"No user found for customer: {customer_id}")

    if profile.user_type != 'photographer':
        logger.warning(f"Beta coupon applied to non-photographer: {profile.id}")
        return HandlerResult(success=True, message="Coupon applied to non-photographer")

    photographer = db.query(Photographer).filter(Photographer.id == profile.id).first()
    if photographer is None:
        logger.warning(f"No photographers row for {profile.id}, beta status not applied")
        return HandlerResult(success=True, message=f"No photographer record for {profile.id}")
    photographer.is_beta_tester = True
    photographer.beta_start_date = utcnow()
    photographer.price_locked_at = Decimal(str(settings.BETA_LOCKED_PRICE))
    db.commit()
    logger.info(f"Marked photographer {profile.id} as beta tester")

    email = get_customer_email(ctx.stripe, customer_id)
    if email:
        background.fire_and_forget(send_beta_welcome, profile.full_name or 'Photographer', email)

    return HandlerResult(success=True, message=f"Beta tester status applied to photographer {profile.id}")
