"""Commission service - revenue split and commission bookkeeping

Photographers keep the whole shoot fee plus half of the storage fee. PhotoVault
keeps the other half of the storage fee and absorbs card-processing fees from
that share, so the photographer gross never depends on processor fees.
"""
import logging
from dataclasses import dataclass
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from photovault.models._helpers import utcnow
from photovault.models.commission import Commission

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommissionSplit:
    shoot_fee_cents: int
    storage_fee_cents: int
    photographer_gross_cents: int
    photovault_fee_cents: int

    @property
    def total_cents(self) -> int:
        return self.photographer_gross_cents + self.photovault_fee_cents


def half_rounded(cents: int) -> int:
    """Half of an amount in cents, rounding .5 up"""
    return (cents + 1) // 2


def split_payment(shoot_fee_cents: int, storage_fee_cents: int) -> CommissionSplit:
    """Split a payment: photographer gets S + round(G/2), PhotoVault gets the rest of G"""
    photographer_storage_share = half_rounded(storage_fee_cents)
    return CommissionSplit(
        shoot_fee_cents=shoot_fee_cents,
        storage_fee_cents=storage_fee_cents,
        photographer_gross_cents=shoot_fee_cents + photographer_storage_share,
        photovault_fee_cents=storage_fee_cents - photographer_storage_share,
    )


def split_recurring_payment(amount_paid_cents: int) -> CommissionSplit:
    """Split a subscription invoice. All storage; PhotoVault takes the rounded half."""
    photovault_fee = half_rounded(amount_paid_cents)
    return CommissionSplit(
        shoot_fee_cents=0,
        storage_fee_cents=amount_paid_cents,
        photographer_gross_cents=amount_paid_cents - photovault_fee,
        photovault_fee_cents=photovault_fee,
    )


def to_cents(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def split_from_checkout_metadata(metadata, amount_paid_cents: int) -> CommissionSplit:
    """
    Commission split for a gallery checkout.

    Authenticated checkouts (type=gallery_payment) carry a split computed at
    session creation. Public checkouts carry shootFee/storageFee and the split
    is computed here; old sessions without storageFee treat the whole
    totalAmount as storage.
    """
    if metadata.type == 'gallery_payment' and metadata.shootFeeCents:
        return CommissionSplit(
            shoot_fee_cents=to_cents(metadata.shootFeeCents),
            storage_fee_cents=to_cents(metadata.storageFeeCents),
            photographer_gross_cents=to_cents(metadata.photographerPayoutCents),
            photovault_fee_cents=to_cents(metadata.photovaultRevenueCents),
        )

    shoot_fee = to_cents(metadata.shootFee)
    storage_fee = to_cents(metadata.storageFee or metadata.totalAmount)
    split = split_payment(shoot_fee, storage_fee)
    if split.total_cents != amount_paid_cents:
        logger.warning(
            f"Commission split {split.total_cents} does not match amount paid {amount_paid_cents} "
            f"(shoot={shoot_fee}, storage={storage_fee})"
        )
    return split


def record_commission(
    db: Session,
    split: CommissionSplit,
    *,
    photographer_id: Optional[str],
    gallery_id: Optional[str],
    client_email: Optional[str],
    total_paid_cents: int,
    payment_type: str,
    stripe_payment_intent_id: Optional[str],
    stripe_transfer_id: Optional[str] = None,
) -> Optional[Commission]:
    """
    Insert a paid commission row.

    A duplicate payment intent (redelivered event) violates the unique key; that
    and any other insert failure is logged and None is returned.
    """
    commission = Commission(
        photographer_id=photographer_id,
        gallery_id=gallery_id,
        client_email=client_email or "",
        amount_cents=split.photographer_gross_cents,
        total_paid_cents=total_paid_cents,
        shoot_fee_cents=split.shoot_fee_cents,
        storage_fee_cents=split.storage_fee_cents,
        photovault_commission_cents=split.photovault_fee_cents,
        payment_type=payment_type,
        stripe_payment_intent_id=stripe_payment_intent_id,
        stripe_transfer_id=stripe_transfer_id,
        status='paid',
        paid_at=utcnow(),
    )
    try:
        db.add(commission)
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.warning(f"Commission insert error (may be duplicate) for {stripe_payment_intent_id}: {e}")
        return None

    logger.info(
        f"Recorded {payment_type} commission for photographer {photographer_id}: "
        f"gross={split.photographer_gross_cents} fee={split.photovault_fee_cents} total={total_paid_cents}"
    )
    return commission


def count_paid_commissions(db: Session, photographer_id: str) -> int:
    return db.query(Commission).filter(
        Commission.photographer_id == photographer_id,
        Commission.status == 'paid'
    ).count()
