"""Subscription lifecycle handler tests (including churn tracking)"""
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone

import pytest
from unittest.mock import patch

from photovault.core.config import settings
from photovault.models.commission import Commission
from photovault.models.gallery import Client, PhotoGallery
from photovault.models.subscription import Subscription
from photovault.models.webhook_event import ErrorLog, ProcessedWebhookEvent
from photovault.services import analytics_service
from photovault.services.webhooks import process_webhook_event
from photovault.services.webhooks import subscription as subscription_module
from photovault.services.webhooks.errors import UserNotFoundError
from photovault.services.webhooks.subscription import (
    handle_subscription_created,
    handle_subscription_deleted,
    handle_subscription_updated,
    track_churn,
)
from photovault.tasks import background

from conftest import as_aware, make_event, tracked_events

PERIOD_START = 1767225600  # 2026-01-01
PERIOD_END = 1769904000  # 2026-02-01


def stripe_subscription(**overrides):
    subscription = {
        "id": "sub_123",
        "object": "subscription",
        "customer": "cus_client",
        "status": "active",
        "cancel_at_period_end": False,
        "canceled_at": None,
        "items": {"data": [{"current_period_start": PERIOD_START, "current_period_end": PERIOD_END}]},
        "metadata": {"gallery_id": "G1", "plan_type": "monthly"},
    }
    subscription.update(overrides)
    return subscription


@pytest.mark.critical
class TestSubscriptionCreated:
    def test_creates_row(self, db_session, client_user, webhook_ctx):
        result = handle_subscription_created(stripe_subscription(), webhook_ctx)

        assert result.success is True
        row = db_session.query(Subscription).one()
        assert row.user_id == client_user.id
        assert row.stripe_customer_id == "cus_client"
        assert row.gallery_id == "G1"
        assert row.plan_type == "monthly"
        assert row.status == "active"
        assert as_aware(row.current_period_start) == datetime(2026, 1, 1, tzinfo=timezone.utc)
        assert as_aware(row.current_period_end) == datetime(2026, 2, 1, tzinfo=timezone.utc)

    def test_redelivered_create_is_an_upsert(self, db_session, client_user, webhook_ctx):
        handle_subscription_created(stripe_subscription(), webhook_ctx)
        handle_subscription_created(stripe_subscription(status="trialing"), webhook_ctx)

        row = db_session.query(Subscription).one()
        assert row.status == "trialing"

    def test_customer_resolved_through_profile(self, db_session, client_user, webhook_ctx):
        client_user.stripe_customer_id = None
        db_session.commit()

        handle_subscription_created(stripe_subscription(), webhook_ctx)

        assert db_session.query(Subscription).one().user_id == client_user.id

    def test_missing_plan_type_defaults_to_unknown(self, db_session, client_user, webhook_ctx):
        handle_subscription_created(stripe_subscription(metadata={}), webhook_ctx)

        assert db_session.query(Subscription).one().plan_type == "unknown"

    def test_unknown_customer_raises(self, db_session, webhook_ctx):
        with pytest.raises(UserNotFoundError):
            handle_subscription_created(stripe_subscription(customer="cus_nobody"), webhook_ctx)

        assert db_session.query(Subscription).count() == 0

    def test_unknown_customer_leaves_event_unprocessed(self, db_session, stripe_client):
        event = make_event("customer.subscription.created", stripe_subscription(customer="cus_nobody"))

        with pytest.raises(UserNotFoundError):
            process_webhook_event(event, db_session, stripe_client)

        assert db_session.query(ProcessedWebhookEvent).count() == 0


@pytest.mark.high
class TestSubscriptionUpdated:
    def test_updates_status_and_cancellation(self, db_session, client_user, webhook_ctx):
        handle_subscription_created(stripe_subscription(), webhook_ctx)

        handle_subscription_updated(
            stripe_subscription(status="past_due", cancel_at_period_end=True, canceled_at=PERIOD_START),
            webhook_ctx,
        )

        row = db_session.query(Subscription).one()
        assert row.status == "past_due"
        assert row.cancel_at_period_end is True
        assert as_aware(row.canceled_at) == datetime(2026, 1, 1, tzinfo=timezone.utc)

    def test_update_before_create_creates_row(self, db_session, client_user, webhook_ctx):
        result = handle_subscription_updated(stripe_subscription(), webhook_ctx)

        assert result.success is True
        assert db_session.query(Subscription).one().user_id == client_user.id


@pytest.mark.high
class TestSubscriptionDeleted:
    def test_cancels_row(self, db_session, client_user, webhook_ctx):
        handle_subscription_created(stripe_subscription(), webhook_ctx)

        result = handle_subscription_deleted(stripe_subscription(status="canceled"), webhook_ctx)

        assert result.success is True
        row = db_session.query(Subscription).one()
        assert row.status == "canceled"
        assert row.canceled_at is not None
        assert row.cancel_at_period_end is False

    def test_unknown_subscription_is_not_an_error(self, db_session, webhook_ctx, inline_background):
        result = handle_subscription_deleted(stripe_subscription(id="sub_gone"), webhook_ctx)

        assert result.success is True
        assert inline_background == []

    def test_client_churn_event(self, db_session, client_user, photographer, webhook_ctx, mock_posthog, inline_background):
        linked = Client(photographer_id=photographer.id, user_id=client_user.id, email="client@example.com")
        db_session.add(linked)
        db_session.flush()
        db_session.add(PhotoGallery(id="G2", photographer_id=photographer.id, client_id=linked.id))
        db_session.commit()
        handle_subscription_created(stripe_subscription(), webhook_ctx)

        handle_subscription_deleted(
            stripe_subscription(cancellation_details={"reason": "cancellation_requested"}),
            webhook_ctx,
        )

        assert inline_background == ["track_churn"]
        event, distinct_id, properties = tracked_events(mock_posthog)[0]
        assert event == "client_churned"
        assert distinct_id == client_user.id
        assert properties["tenure_days"] == 400
        assert properties["photographer_id"] == photographer.id
        assert properties["gallery_count"] == 1
        assert properties["churn_reason"] == "cancellation_requested"

    def test_photographer_churn_event(self, db_session, photographer, webhook_ctx, mock_posthog):
        db_session.add(Commission(
            photographer_id=photographer.id,
            amount_cents=8500,
            total_paid_cents=10000,
            photovault_commission_cents=1500,
            payment_type="upfront",
            status="paid",
        ))
        db_session.add(Client(photographer_id=photographer.id, email="a@example.com"))
        db_session.commit()
        handle_subscription_created(stripe_subscription(customer="cus_photographer", metadata={}), webhook_ctx)

        handle_subscription_deleted(stripe_subscription(customer="cus_photographer"), webhook_ctx)

        event, distinct_id, properties = tracked_events(mock_posthog)[0]
        assert event == "photographer_churned"
        assert distinct_id == photographer.id
        assert properties["total_revenue_cents"] == 8500
        assert properties["client_count"] == 1
        assert properties["gallery_count"] == 0
        assert "churn_reason" not in properties  # None values are dropped


@pytest.mark.medium
class TestTrackChurn:
    def test_slow_stats_fall_back_to_defaults(self, client_user, mock_posthog):
        def slow_stats(user_id):
            time.sleep(1)
            return {"photographer_id": "late", "gallery_count": 99}

        with patch.object(settings, "CHURN_STATS_TIMEOUT_SECONDS", 0.05), \
                patch.object(subscription_module, "get_client_churn_stats", side_effect=slow_stats):
            track_churn(client_user.id, "client", 12, None)

        event, _, properties = tracked_events(mock_posthog)[0]
        assert event == "client_churned"
        assert properties["gallery_count"] == 0
        assert "photographer_id" not in properties

    def test_stats_arrive_when_churn_runs_on_a_full_pool(self, client_user, mock_posthog):
        # One worker, held by track_churn itself for the whole run
        pool = ThreadPoolExecutor(max_workers=1)
        stats = {"photographer_id": None, "gallery_count": 7}
        try:
            with patch.object(background, "_executor", pool), \
                    patch.object(settings, "CHURN_STATS_TIMEOUT_SECONDS", 0.5), \
                    patch.object(subscription_module, "get_client_churn_stats", return_value=stats):
                future = background.get_executor().submit(
                    background.run_safely, track_churn, client_user.id, "client", 12, None
                )
                future.result(timeout=5)
        finally:
            pool.shutdown(wait=True)

        event, _, properties = tracked_events(mock_posthog)[0]
        assert event == "client_churned"
        assert properties["gallery_count"] == 7

    def test_failure_written_to_error_log(self, db_session, client_user):
        with patch.object(analytics_service, "track_server_event", side_effect=Exception("PostHog is down")):
            track_churn(client_user.id, "client", 12, None)

        error = db_session.query(ErrorLog).one()
        assert error.user_id == client_user.id
        assert error.error_type == "ChurnTrackingError"
        assert error.error_message == "PostHog is down"
        assert error.page == "/api/webhooks/stripe"

    def test_other_user_types_are_ignored(self, mock_posthog):
        track_churn("user-1", "admin", 5, None)

        assert tracked_events(mock_posthog) == []
