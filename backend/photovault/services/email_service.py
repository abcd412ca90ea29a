"""Email service - transactional email via Resend"""
import logging
from html import escape
from typing import Optional

import resend

from photovault.core.config import settings

logger = logging.getLogger(__name__)


def validate_email_config() -> tuple[bool, str]:
    """
    Validate email service configuration.

    Returns:
        tuple: (is_valid, error_message)
    """
    if not settings.RESEND_API_KEY:
        return False, "RESEND_API_KEY is not set in environment variables"

    if not settings.SITE_URL:
        return False, "SITE_URL is not set in environment variables"

    return True, ""


def _send_email(to: str, subject: str, html: str) -> bool:
    """
    Internal helper function to send email via Resend API.

    Args:
        to: Recipient email address
        subject: Email subject
        html: HTML email content

    Returns:
        bool: True on success, False on failure
    """
    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY is not set; skipping email")
        return False

    try:
        resend.api_key = settings.RESEND_API_KEY

        response = resend.Emails.send(
            {
                "from": settings.RESEND_FROM_EMAIL,
                "to": to,
                "subject": subject,
                "html": html,
            }
        )

        # Resend returns dict with 'id' field on success
        email_id = None
        if isinstance(response, dict):
            email_id = response.get('id')
        elif hasattr(response, 'id'):
            email_id = response.id

        if email_id:
            logger.info(f"Email sent successfully to {to} (id: {email_id})")
            return True
        else:
            logger.error(f"Email send returned invalid response: {response} (type: {type(response)})")
            return False

    except Exception as exc:
        logger.error(f"Failed to send email to {to}: {exc}", exc_info=True)
        return False


def _button(href: str, label: str) -> str:
    return f"""
    <p style="margin: 20px 0;">
      <a href="{escape(href, quote=True)}" target="_blank" rel="noopener noreferrer"
         style="display: inline-block; padding: 12px 24px; background-color: #1e3a5f; color: white; text-decoration: none; border-radius: 4px; font-weight: bold;">
        {escape(label)}
      </a>
    </p>
    """


def send_welcome_email_with_password(
    customer_name: str,
    customer_email: str,
    temp_password: str,
    gallery_name: str,
    gallery_url: str,
    login_url: str
) -> bool:
    """Welcome a client whose account was created by their first gallery purchase"""
    html = f"""
    <p>Hi {escape(customer_name)},</p>
    <p>Thank you for your purchase! Your gallery <strong>{escape(gallery_name)}</strong> is ready.</p>
    <p>We created a PhotoVault account for you so you can come back any time:</p>
    <p>Email: <strong>{escape(customer_email)}</strong><br/>
       Temporary password: <strong style="font-family: monospace; font-size: 16px;">{escape(temp_password)}</strong></p>
    <p>Please change your password after you log in.</p>
    {_button(login_url, "Log in to PhotoVault")}
    <p style="color: #999; font-size: 12px;">Gallery link: {escape(gallery_url)}</p>
    """
    return _send_email(customer_email, "Your PhotoVault gallery is ready", html)


def send_payment_successful_email(
    customer_name: str,
    customer_email: str,
    amount_paid: float,
    plan_name: str,
    gallery_name: str,
    photographer_name: str,
    next_billing_date: str,
    receipt_url: Optional[str] = None
) -> bool:
    """Receipt for a recurring gallery payment"""
    receipt = _button(receipt_url, "View receipt") if receipt_url else ""
    html = f"""
    <p>Hi {escape(customer_name)},</p>
    <p>We received your payment of <strong>${amount_paid:.2f}</strong> for {escape(plan_name)}.</p>
    <p>Gallery: {escape(gallery_name)}<br/>Photographer: {escape(photographer_name)}</p>
    <p>Your next billing date is {escape(next_billing_date)}.</p>
    {receipt}
    """
    return _send_email(customer_email, "Payment received - thank you!", html)


def send_payment_failed_email(
    customer_name: str,
    customer_email: str,
    amount_due: float,
    gallery_name: str,
    update_payment_link: str,
    grace_period_days: int
) -> bool:
    """Dunning notice stating how long access remains before suspension"""
    months = max(1, -(-grace_period_days // 30))
    html = f"""
    <p>Hi {escape(customer_name)},</p>
    <p>We couldn't process your payment of <strong>${amount_due:.2f}</strong> for <strong>{escape(gallery_name)}</strong>.</p>
    <p>Your photos are safe. You have <strong>{grace_period_days} days</strong> (about {months} month{'s' if months != 1 else ''})
       to update your payment method before gallery access is paused.</p>
    {_button(update_payment_link, "Update payment method")}
    """
    return _send_email(customer_email, "Action needed: payment failed", html)


def send_gallery_access_restored_email(
    customer_name: str,
    customer_email: str,
    gallery_name: str,
    photographer_name: str,
    access_link: str
) -> bool:
    """Tell a client their suspended gallery is viewable again"""
    html = f"""
    <p>Hi {escape(customer_name)},</p>
    <p>Good news! Your access to <strong>{escape(gallery_name)}</strong> by {escape(photographer_name)} has been restored.</p>
    {_button(access_link, "View your gallery")}
    """
    return _send_email(customer_email, "Your gallery access has been restored", html)


def send_beta_welcome_email(photographer_name: str, photographer_email: str) -> bool:
    """Welcome a photographer into the beta program"""
    html = f"""
    <p>Hi {escape(photographer_name)},</p>
    <p>Welcome to the PhotoVault beta! Your price is locked in at
       <strong>${settings.BETA_LOCKED_PRICE:.2f}/month</strong> for as long as you stay subscribed.</p>
    {_button(f"{settings.SITE_URL}/photographer/dashboard", "Go to your dashboard")}
    """
    return _send_email(photographer_email, "Welcome to the PhotoVault beta", html)


def send_takeover_confirmation_email(
    new_payer_name: str,
    new_payer_email: str,
    previous_primary_name: str,
    takeover_type: str,
    gallery_count: int
) -> bool:
    """Confirm to a family member that they now pay for (or own) the account"""
    role = "the account owner" if takeover_type == "full_primary" else "the billing contact"
    html = f"""
    <p>Hi {escape(new_payer_name)},</p>
    <p>You are now {role} for {escape(previous_primary_name)}'s PhotoVault account.</p>
    <p>{gallery_count} galler{'y is' if gallery_count == 1 else 'ies are'} preserved and accessible.</p>
    {_button(f"{settings.SITE_URL}/client/billing", "Manage billing")}
    """
    return _send_email(new_payer_email, "You've taken over a PhotoVault account", html)


def send_photographer_takeover_notification_email(
    photographer_name: str,
    photographer_email: str,
    original_client_name: str,
    new_contact_name: str,
    new_contact_email: str,
    relationship: Optional[str],
    reason: Optional[str],
    reason_text: Optional[str] = None
) -> bool:
    """Let the photographer know who their new client contact is"""
    details = f"<p>Reason: {escape(reason)}{' - ' + escape(reason_text) if reason_text else ''}</p>" if reason else ""
    html = f"""
    <p>Hi {escape(photographer_name)},</p>
    <p>{escape(new_contact_name)} ({escape(new_contact_email)}{', ' + escape(relationship) if relationship else ''})
       has taken over the account of your client {escape(original_client_name)}.</p>
    {details}
    """
    return _send_email(photographer_email, "Client account update", html)


def send_alert_email(to: str, subject: str, body: str) -> bool:
    """Operator alert (body is trusted HTML built by us)"""
    return _send_email(to, subject, body)
