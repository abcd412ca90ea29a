"""Non-gallery checkout flows: tokens, reactivation, family takeover and routing"""
from datetime import datetime, timedelta, timezone

import pytest

from photovault.models.family import AccountTakeover, Secondary
from photovault.models.gallery import PhotoGallery
from photovault.models.payment_history import PaymentHistory
from photovault.models.subscription import Subscription
from photovault.models.token_balance import TokenBalance
from photovault.models.token_transaction import TokenTransaction
from photovault.models.user import UserProfile
from photovault.services.webhooks.checkout import handle_checkout_completed
from photovault.services.webhooks.errors import MissingMetadataError

from conftest import as_aware, sent_emails


def checkout_session(metadata, **overrides):
    session = {
        "id": "cs_flow_1",
        "object": "checkout.session",
        "payment_intent": "pi_flow_1",
        "amount_total": 1999,
        "currency": "usd",
        "metadata": metadata,
    }
    session.update(overrides)
    return session


@pytest.fixture
def suspended_subscription(db_session, client_user, gallery):
    row = Subscription(
        user_id=client_user.id,
        gallery_id=gallery.id,
        stripe_subscription_id="sub_suspended",
        status="past_due",
        plan_type="monthly",
        payment_failure_count=6,
        last_payment_failure_at=datetime.now(timezone.utc) - timedelta(days=200),
        access_suspended=True,
        access_suspended_at=datetime.now(timezone.utc) - timedelta(days=20),
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.mark.critical
class TestTokenPurchase:
    def test_first_purchase_creates_balance(self, db_session, client_user, webhook_ctx):
        result = handle_checkout_completed(
            checkout_session({"purchase_type": "tokens", "user_id": client_user.id, "tokens": "50"}),
            webhook_ctx,
        )

        assert result.success is True
        balance = db_session.query(TokenBalance).one()
        assert balance.tokens_remaining == 50
        transaction = db_session.query(TokenTransaction).one()
        assert transaction.transaction_type == "purchase"
        assert transaction.tokens_amount == 50
        assert transaction.stripe_payment_intent_id == "pi_flow_1"
        assert transaction.amount_paid_cents == 1999

    def test_purchases_accumulate(self, db_session, client_user, webhook_ctx):
        db_session.add(TokenBalance(user_id=client_user.id, tokens_remaining=10))
        db_session.commit()

        handle_checkout_completed(
            checkout_session({"purchase_type": "tokens", "user_id": client_user.id, "tokens": "25"}),
            webhook_ctx,
        )

        db_session.expire_all()
        assert db_session.query(TokenBalance).one().tokens_remaining == 35

    def test_same_payment_credited_once(self, db_session, client_user, webhook_ctx):
        session = checkout_session({"purchase_type": "tokens", "user_id": client_user.id, "tokens": "25"})

        handle_checkout_completed(session, webhook_ctx)
        result = handle_checkout_completed(session, webhook_ctx)

        assert "already added" in result.message
        db_session.expire_all()
        assert db_session.query(TokenBalance).one().tokens_remaining == 25
        assert db_session.query(TokenTransaction).count() == 1

    @pytest.mark.parametrize("metadata", [
        {"purchase_type": "tokens", "tokens": "25"},
        {"purchase_type": "tokens", "user_id": "u-1"},
        {"purchase_type": "tokens", "user_id": "u-1", "tokens": "lots"},
    ])
    def test_bad_metadata_raises(self, db_session, webhook_ctx, metadata):
        with pytest.raises(MissingMetadataError):
            handle_checkout_completed(checkout_session(metadata), webhook_ctx)

        assert db_session.query(TokenBalance).count() == 0


@pytest.mark.high
class TestReactivation:
    def test_restores_access_for_window(self, db_session, client_user, suspended_subscription, webhook_ctx, mock_resend):
        metadata = {
            "type": "reactivation",
            "stripe_subscription_id": "sub_suspended",
            "user_id": client_user.id,
            "gallery_id": "G1",
        }

        result = handle_checkout_completed(checkout_session(metadata, amount_total=None), webhook_ctx)

        assert result.success is True
        db_session.refresh(suspended_subscription)
        assert suspended_subscription.status == "active"
        assert suspended_subscription.access_suspended is False
        assert suspended_subscription.payment_failure_count == 0
        assert suspended_subscription.last_payment_failure_at is None
        window = as_aware(suspended_subscription.current_period_end) - as_aware(suspended_subscription.current_period_start)
        assert window == timedelta(days=30)

        history = db_session.query(PaymentHistory).one()
        assert history.amount_paid_cents == 2000
        assert history.status == "succeeded"

        emails = sent_emails(mock_resend)
        assert len(emails) == 1
        assert emails[0]["to"] == "client@example.com"
        assert "Smith Wedding" in emails[0]["html"]
        assert "PhotoVault" in emails[0]["html"]

    def test_missing_subscription_id_raises(self, webhook_ctx):
        with pytest.raises(MissingMetadataError):
            handle_checkout_completed(checkout_session({"type": "reactivation"}), webhook_ctx)

    def test_without_user_id_skips_email(self, db_session, suspended_subscription, webhook_ctx, mock_resend):
        result = handle_checkout_completed(
            checkout_session({"type": "reactivation", "stripe_subscription_id": "sub_suspended"}),
            webhook_ctx,
        )

        assert "no email sent" in result.message
        assert sent_emails(mock_resend) == []


@pytest.mark.high
class TestFamilyTakeover:
    @pytest.fixture
    def secondary(self, db_session, client_user):
        row = Secondary(
            account_id=client_user.id,
            name="Sam Spouse",
            email="sam@example.com",
            relationship="spouse",
        )
        db_session.add(row)
        db_session.commit()
        return row

    def takeover_metadata(self, client_user, secondary, takeover_type):
        return {
            "type": "family_takeover",
            "account_id": client_user.id,
            "secondary_id": secondary.id,
            "takeover_type": takeover_type,
            "reason": "death",
            "new_payer_user_id": "new-payer-1",
            "previous_primary_id": client_user.id,
        }

    def test_billing_takeover(self, db_session, client_user, secondary, suspended_subscription, webhook_ctx):
        session = checkout_session(self.takeover_metadata(client_user, secondary, "billing_only"), subscription="sub_new")

        result = handle_checkout_completed(session, webhook_ctx)

        assert result.success is True
        audit = db_session.query(AccountTakeover).one()
        assert audit.takeover_type == "billing_only"
        assert audit.billing_payer_id == "new-payer-1"
        assert audit.new_primary_id is None
        assert audit.stripe_subscription_id == "sub_new"

        db_session.refresh(secondary)
        assert secondary.is_billing_payer is True
        assert secondary.has_payment_method is True

        db_session.refresh(suspended_subscription)
        assert suspended_subscription.access_suspended is False
        assert suspended_subscription.payment_failure_count == 0

    def test_full_primary_records_original_owner(self, db_session, client_user, secondary, webhook_ctx):
        handle_checkout_completed(
            checkout_session(self.takeover_metadata(client_user, secondary, "full_primary")),
            webhook_ctx,
        )

        audit = db_session.query(AccountTakeover).one()
        assert audit.new_primary_id == "new-payer-1"
        profile = db_session.query(UserProfile).filter(UserProfile.id == client_user.id).one()
        assert profile.original_primary_id == client_user.id

    def test_notifies_secondary_and_photographer(self, db_session, client_user, photographer, secondary, webhook_ctx, mock_resend):
        db_session.add(PhotoGallery(id="G9", photographer_id=photographer.id, client_id=client_user.id))
        db_session.commit()

        handle_checkout_completed(
            checkout_session(self.takeover_metadata(client_user, secondary, "billing_only")),
            webhook_ctx,
        )

        recipients = [e["to"] for e in sent_emails(mock_resend)]
        assert recipients == ["sam@example.com", "photographer@example.com"]

    def test_notification_failure_does_not_fail(self, db_session, client_user, secondary, webhook_ctx, mock_resend):
        mock_resend.Emails.send.side_effect = Exception("Resend is down")

        result = handle_checkout_completed(
            checkout_session(self.takeover_metadata(client_user, secondary, "billing_only")),
            webhook_ctx,
        )

        assert result.success is True
        assert db_session.query(AccountTakeover).count() == 1

    def test_missing_account_id_raises(self, webhook_ctx):
        with pytest.raises(MissingMetadataError):
            handle_checkout_completed(checkout_session({"type": "family_takeover"}), webhook_ctx)


@pytest.mark.medium
class TestCheckoutRouting:
    def test_subscription_checkout_is_deferred(self, db_session, webhook_ctx):
        result = handle_checkout_completed(
            checkout_session({"purchase_type": "subscription", "user_id": "u-1"}),
            webhook_ctx,
        )

        assert result.success is True
        assert "subscription.created" in result.message
        assert db_session.query(Subscription).count() == 0

    def test_unknown_checkout_succeeds(self, webhook_ctx):
        result = handle_checkout_completed(checkout_session({}), webhook_ctx)

        assert result.success is True
        assert result.message == "Checkout completed, type: unknown"

    def test_public_checkout_without_gallery_id_is_unrouted(self, webhook_ctx):
        result = handle_checkout_completed(checkout_session({"isPublicCheckout": "true"}), webhook_ctx)

        assert result.message == "Checkout completed, type: unknown"
