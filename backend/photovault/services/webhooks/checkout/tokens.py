"""Token purchase handler (checkout.session.completed with purchase_type=tokens)"""
import logging

from photovault.models.token_balance import TokenBalance
from photovault.models.token_transaction import TokenTransaction
from photovault.schemas.webhooks import CheckoutSessionMetadata
from photovault.services.stripe_service import get_stripe_id
from photovault.services.webhooks.errors import MissingMetadataError
from photovault.services.webhooks.helpers import HandlerResult, WebhookContext

logger = logging.getLogger("webhook")


def handle_token_purchase(session: dict, ctx: WebhookContext) -> HandlerResult:
    db = ctx.db
    metadata = CheckoutSessionMetadata.from_session(session)
    user_id = metadata.user_id

    if not user_id:
        raise MissingMetadataError("Missing user_id in token purchase checkout metadata")
    if not metadata.tokens:
        raise MissingMetadataError("Missing tokens amount in checkout metadata")
    try:
        token_amount = int(metadata.tokens)
    except ValueError:
        raise MissingMetadataError(f"Invalid tokens amount in checkout metadata: {metadata.tokens}")

    payment_intent_id = get_stripe_id(session.get('payment_intent'))
    logger.info(f"Processing token purchase: {token_amount} tokens for user {user_id}")

    if payment_intent_id:
        already_credited = db.query(TokenTransaction.id).filter(
            TokenTransaction.stripe_payment_intent_id == payment_intent_id,
            TokenTransaction.transaction_type == 'purchase'
        ).first()
        if already_credited:
            logger.info(f"Token purchase {payment_intent_id} already credited to user {user_id}")
            return HandlerResult(success=True, message=f"Tokens for {payment_intent_id} already added to user {user_id}")

    # Increment in SQL so concurrent purchases can't overwrite each other
    updated = db.query(TokenBalance).filter(TokenBalance.user_id == user_id).update(
        {TokenBalance.tokens_remaining: TokenBalance.tokens_remaining + token_amount},
        synchronize_session=False
    )
    if not updated:
        # First purchase: no balance row yet
        db.add(TokenBalance(user_id=user_id, tokens_remaining=token_amount))

    db.add(TokenTransaction(
        user_id=user_id,
        transaction_type='purchase',
        tokens_amount=token_amount,
        stripe_payment_intent_id=payment_intent_id,
        amount_paid_cents=session.get('amount_total'),
        currency=session.get('currency'),
        description=f"Token purchase - {token_amount} tokens",
    ))
    db.commit()

    return HandlerResult(success=True, message=f"Added {token_amount} tokens to user {user_id}")
