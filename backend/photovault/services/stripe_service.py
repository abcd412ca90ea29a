"""Stripe client construction and payload access helpers"""
import logging
from datetime import datetime, timezone
from functools import lru_cache
from typing import Any, Optional

import stripe

from photovault.core.config import settings

logger = logging.getLogger(__name__)


@lru_cache(maxsize=4)
def _build_client(secret_key: str, api_version: str) -> stripe.StripeClient:
    return stripe.StripeClient(secret_key, stripe_version=api_version)


def get_stripe_client() -> stripe.StripeClient:
    """Lazily build (and cache) the Stripe client.

    The client is stateless and keyed only by the secret, so caching it across
    requests is safe.

    Raises:
        RuntimeError: If STRIPE_SECRET_KEY is not configured
    """
    if not settings.STRIPE_SECRET_KEY:
        raise RuntimeError("STRIPE_SECRET_KEY is not configured")
    return _build_client(settings.STRIPE_SECRET_KEY, settings.STRIPE_API_VERSION)


def construct_event(payload: bytes, sig_header: str, secret: str):
    """Verify the signature over the raw payload (constant-time HMAC compare).

    Raises:
        ValueError: For a payload that is not valid JSON
        stripe.SignatureVerificationError: For a bad or stale signature
    """
    return stripe.Webhook.construct_event(payload, sig_header, secret)


# ============================================================================
# STRIPE OBJECT ACCESS HELPERS
# ============================================================================

def get_stripe_value(obj: Any, key: str, default=None):
    """Safely extract value from Stripe object (supports both dict and attribute access)."""
    if obj is None:
        return default
    if isinstance(obj, dict):
        value = obj.get(key, default)
        return default if value is None else value
    value = getattr(obj, key, None)
    if value is not None:
        return value
    try:
        value = obj[key]
    except (KeyError, TypeError, IndexError):
        return default
    return default if value is None else value


def get_stripe_id(value: Any) -> Optional[str]:
    """Return the id of a field that is either an id string or an expanded object"""
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return get_stripe_value(value, 'id')


def from_timestamp(ts: Optional[int]) -> Optional[datetime]:
    """Convert a Stripe epoch timestamp to an aware datetime"""
    if not ts:
        return None
    return datetime.fromtimestamp(int(ts), tz=timezone.utc)


# ============================================================================
# RECONCILIATION LOOKUPS (non-critical)
# ============================================================================

def get_transfer_id_for_payment_intent(client: stripe.StripeClient, payment_intent_id: str) -> Optional[str]:
    """Find the Connect transfer created by a destination charge, or None.

    Never raises: the transfer id is only used for reconciliation.
    """
    if not payment_intent_id:
        return None
    try:
        payment_intent = client.payment_intents.retrieve(
            payment_intent_id, params={"expand": ["latest_charge"]}
        )
        charge = get_stripe_value(payment_intent, 'latest_charge')
        if charge is None or isinstance(charge, str):
            return None
        return get_stripe_id(get_stripe_value(charge, 'transfer'))
    except Exception as e:
        logger.warning(f"Could not retrieve transfer ID for payment intent {payment_intent_id}: {e}")
        return None


def get_transfer_id_for_charge(client: stripe.StripeClient, charge_id: str) -> Optional[str]:
    """Same as above, starting from a charge id (invoices carry the charge)"""
    if not charge_id or not isinstance(charge_id, str):
        return None
    try:
        charge = client.charges.retrieve(charge_id)
        transfer = get_stripe_value(charge, 'transfer')
        return transfer if isinstance(transfer, str) else get_stripe_id(transfer)
    except Exception as e:
        logger.warning(f"Could not retrieve transfer ID for charge {charge_id}: {e}")
        return None


def get_customer_email(client: stripe.StripeClient, customer_id: str) -> Optional[str]:
    """Email of a (non-deleted) Stripe customer, or None"""
    try:
        customer = client.customers.retrieve(customer_id)
    except Exception as e:
        logger.warning(f"Could not retrieve customer {customer_id} from Stripe: {e}")
        return None
    if get_stripe_value(customer, 'deleted', False):
        return None
    return get_stripe_value(customer, 'email')
