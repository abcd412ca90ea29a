"""Payout handler (payout.created on a connected account)"""
import logging

from photovault.models.payout import Payout
from photovault.models.user import User
from photovault.services.stripe_service import from_timestamp, get_stripe_id
from photovault.services.webhooks.helpers import HandlerResult, WebhookContext

logger = logging.getLogger("webhook")


def handle_payout_created(payout: dict, ctx: WebhookContext) -> HandlerResult:
    logger.info(f"Processing payout.created {payout.get('id')}")
    db = ctx.db
    destination = get_stripe_id(payout.get('destination'))

    photographer = db.query(User.id).filter(User.stripe_connect_account_id == destination).first() if destination else None
    if not photographer:
        # Connect account not synced yet; nothing to attach the payout to
        logger.warning(f"Photographer not found for Stripe Connect account: {destination}")
        return HandlerResult(
            success=True,
            message=f"Payout {payout.get('id')} created but photographer not found in database",
        )

    row = db.query(Payout).filter(Payout.stripe_payout_id == payout['id']).first()
    if row is None:
        row = Payout(stripe_payout_id=payout['id'])
        db.add(row)

    row.photographer_id = photographer.id
    row.amount_cents = payout.get('amount') or 0
    row.currency = payout.get('currency')
    row.status = payout.get('status')
    row.arrival_date = from_timestamp(payout.get('arrival_date'))
    row.description = payout.get('description') or 'Photographer earnings payout'
    db.commit()

    return HandlerResult(success=True, message=f"Payout {payout['id']} created for photographer {photographer.id}")
