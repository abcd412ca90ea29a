"""Gallery checkout handler (checkout.session.completed for gallery payments)

Public checkouts (isPublicCheckout=true) come from clients without an account:
one is provisioned with a temporary password. Authenticated checkouts
(type=gallery_payment) come from clients who already have one.
"""
import logging
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from photovault.core.config import settings
from photovault.models._helpers import utcnow
from photovault.models.commission import Commission
from photovault.models.gallery import Client, PhotoGallery
from photovault.models.subscription import Subscription
from photovault.schemas.webhooks import CheckoutSessionMetadata
from photovault.services import analytics_service, auth_service, commission_service, email_service
from photovault.services.analytics_service import EVENTS
from photovault.services.stripe_service import get_stripe_id, get_transfer_id_for_payment_intent
from photovault.services.webhooks.errors import CustomerEmailMissingError, IdentityProvisioningError
from photovault.services.webhooks.helpers import (
    HandlerResult, WebhookContext, add_years, send_notification_safely
)
from photovault.tasks import background

logger = logging.getLogger("webhook")


def handle_gallery_checkout(session: dict, ctx: WebhookContext) -> HandlerResult:
    db = ctx.db
    metadata = CheckoutSessionMetadata.from_session(session)
    gallery_id = metadata.galleryId
    photographer_id = metadata.photographerId
    client_id = metadata.clientId
    checkout_type = 'Public' if metadata.is_public_checkout else 'Authenticated'

    logger.info(f"Processing {checkout_type.lower()} gallery checkout for gallery {gallery_id}")

    customer_email, customer_name = _resolve_customer(db, session, metadata)
    if not customer_email:
        raise CustomerEmailMissingError(f"No customer email found in checkout {session.get('id')}")

    user = auth_service.find_user_by_email(db, customer_email)
    user_id = user.id if user else None
    temp_password = None

    if user_id:
        logger.info(f"Found existing user {user_id} for {customer_email}")
    elif metadata.is_public_checkout:
        user_id, temp_password = _provision_client(db, customer_email, customer_name, metadata)

    payment_intent_id = get_stripe_id(session.get('payment_intent'))

    # Gallery payment state
    gallery = db.query(PhotoGallery).filter(PhotoGallery.id == gallery_id).first()
    if gallery:
        gallery.payment_status = 'paid'
        gallery.paid_at = utcnow()
        gallery.stripe_payment_intent_id = payment_intent_id
        db.commit()
    else:
        logger.warning(f"Gallery {gallery_id} not found, payment status not updated")

    if client_id and user_id:
        _link_client(db, client_id, user_id)
    elif client_id:
        logger.warning(f"Cannot link client {client_id} - no user ID available")

    # Commission (destination charge: the photographer share is already transferred)
    amount_paid_cents = session.get('amount_total') or commission_service.to_cents(metadata.totalAmount)
    split = commission_service.split_from_checkout_metadata(metadata, amount_paid_cents)
    is_first_payment = analytics_service.is_first_time(db, Commission, Commission.client_email, customer_email)
    transfer_id = get_transfer_id_for_payment_intent(ctx.stripe, payment_intent_id)

    commission_service.record_commission(
        db,
        split,
        photographer_id=photographer_id,
        gallery_id=gallery_id,
        client_email=customer_email,
        total_paid_cents=amount_paid_cents,
        payment_type='upfront',
        stripe_payment_intent_id=payment_intent_id,
        stripe_transfer_id=transfer_id,
    )

    _track_payment(db, metadata, user_id, amount_paid_cents, split, is_first_payment)

    if user_id and gallery_id:
        _grant_annual_access(db, session, user_id, gallery_id, payment_intent_id)

    if temp_password and user_id:
        send_notification_safely(
            email_service.send_welcome_email_with_password,
            customer_name=customer_name or 'Valued Customer',
            customer_email=customer_email,
            temp_password=temp_password,
            gallery_name=(gallery.gallery_name if gallery else None) or metadata.galleryName or 'your gallery',
            gallery_url=f"{settings.SITE_URL}/gallery/{gallery_id}",
            login_url=f"{settings.SITE_URL}/login",
        )

    message = f"{checkout_type} gallery checkout completed for gallery {gallery_id}, customer {customer_email}"
    logger.info(message)
    return HandlerResult(
        success=True,
        message=message,
        data={
            "user_id": user_id,
            "account_created": temp_password is not None,
            "photographer_gross_cents": split.photographer_gross_cents,
            "photovault_fee_cents": split.photovault_fee_cents,
        },
    )


def _resolve_customer(db, session: dict, metadata: CheckoutSessionMetadata) -> Tuple[str, str]:
    """Email/name: the photographer's client record first, then Stripe's billing details, then metadata"""
    email, name = "", ""
    if metadata.clientId:
        client = db.query(Client).filter(Client.id == metadata.clientId).first()
        if client:
            email, name = client.email or "", client.name or ""

    if not email:
        details = session.get('customer_details') or {}
        email = details.get('email') or metadata.clientEmail or ""
        name = details.get('name') or metadata.clientName or name
    return email.strip(), name


def _provision_client(db, email: str, name: str, metadata: CheckoutSessionMetadata) -> Tuple[str, Optional[str]]:
    """Create the client's identity. Returns (user_id, temp_password or None if it already existed)."""
    logger.info(f"Creating new user account for public checkout: {email}")
    temp_password = auth_service.generate_temp_password()
    try:
        user = auth_service.create_client_user(db, email, temp_password, full_name=name)
    except auth_service.UserAlreadyExistsError:
        # Another checkout for the same email won the race
        user = auth_service.find_user_by_email(db, email)
        if not user:
            raise IdentityProvisioningError(f"User lookup failed after duplicate registration of {email}")
        logger.info(f"User already exists, using existing user {user.id}")
        temp_password = None
    else:
        background.fire_and_forget(
            analytics_service.track_event_safely,
            user.id,
            EVENTS.CLIENT_CREATED_ACCOUNT,
            {
                "gallery_id": metadata.galleryId,
                "photographer_id": metadata.photographerId,
                "signup_method": "email",
            },
        )

    auth_service.ensure_client_profile(db, user.id, full_name=name)
    return user.id, temp_password


def _link_client(db, client_id: str, user_id: str) -> None:
    """Best-effort: the payment is captured whether or not the link sticks"""
    try:
        client = db.query(Client).filter(Client.id == client_id).first()
        if not client:
            logger.warning(f"Client {client_id} not found, cannot link user {user_id}")
            return
        client.user_id = user_id
        db.commit()
        logger.info(f"Linked user {user_id} to client {client_id}")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error linking user {user_id} to client {client_id}: {e}")


def _track_payment(db, metadata, user_id, amount_paid_cents, split, is_first_payment) -> None:
    """Queue payment analytics. Lookups run here, the HTTP calls run detached."""
    try:
        plan_type = analytics_service.map_payment_option_to_plan_type(
            metadata.paymentOptionId or metadata.payment_option_id
        )
        if user_id:
            background.fire_and_forget(
                analytics_service.track_event_safely,
                user_id,
                EVENTS.CLIENT_PAYMENT_COMPLETED,
                {
                    "gallery_id": metadata.galleryId,
                    "photographer_id": metadata.photographerId or "",
                    "plan_type": plan_type or "annual",
                    "amount_cents": amount_paid_cents,
                    "is_first_payment": is_first_payment,
                },
            )

        photographer_id = metadata.photographerId
        # The count includes the commission just inserted
        if photographer_id and commission_service.count_paid_commissions(db, photographer_id) == 1:
            signup_date = analytics_service.get_photographer_signup_date(db, photographer_id)
            background.fire_and_forget(
                analytics_service.track_event_safely,
                photographer_id,
                EVENTS.PHOTOGRAPHER_RECEIVED_FIRST_PAYMENT,
                {
                    "amount_cents": split.photographer_gross_cents,
                    "client_id": metadata.clientId or "",
                    "gallery_id": metadata.galleryId,
                    "time_from_signup_seconds": analytics_service.calculate_time_from_signup(signup_date) or 0,
                },
            )
    except Exception as e:
        logger.error(f"Error tracking payment analytics: {e}")


def _grant_annual_access(db, session: dict, user_id: str, gallery_id: str, payment_intent_id: Optional[str]) -> Subscription:
    """Upsert the one-year access grant the gallery viewer checks"""
    # One-time payments have no Stripe subscription, so derive a stable id from the payment
    pseudo_subscription_id = f"pi_{payment_intent_id}" if payment_intent_id else f"cs_{session.get('id')}"
    period_start = utcnow()

    subscription = db.query(Subscription).filter(
        Subscription.stripe_subscription_id == pseudo_subscription_id
    ).first()
    if subscription is None:
        subscription = Subscription(stripe_subscription_id=pseudo_subscription_id)
        db.add(subscription)

    subscription.user_id = user_id
    subscription.gallery_id = gallery_id
    subscription.stripe_customer_id = get_stripe_id(session.get('customer'))
    subscription.status = 'active'
    subscription.plan_type = 'annual_upfront'
    subscription.current_period_start = period_start
    subscription.current_period_end = add_years(period_start, 1)
    subscription.cancel_at_period_end = False
    db.commit()
    logger.info(f"Created subscription record {pseudo_subscription_id} for user {user_id}, gallery {gallery_id}")
    return subscription
