"""Shared pytest fixtures for test suite"""
import hashlib
import hmac
import json
import os
import sys
import time
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator
from unittest.mock import MagicMock, Mock, patch

import pytest

# Settings are read at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_123")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("RESEND_API_KEY", "re_test_123")
os.environ.setdefault("POSTHOG_API_KEY", "phc_test_123")

# Add backend directory to Python path
backend_dir = Path(__file__).parent.parent
if str(backend_dir) not in sys.path:
    sys.path.insert(0, str(backend_dir))

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from photovault.main import app
from photovault.db import session as session_module
from photovault.db.session import get_db
from photovault.models import Base
from photovault.models.gallery import Client, PhotoGallery
from photovault.models.user import Photographer, User, UserProfile
from photovault.schemas.webhooks import StripeEventEnvelope
from photovault.services import webhook_monitor_service
from photovault.services.auth_service import hash_password
from photovault.services.webhooks.helpers import WebhookContext
from photovault.tasks import background


# SQLite in-memory database for testing
TEST_DATABASE_URL = "sqlite:///:memory:"

# StaticPool: every session (including detached ones) sees the same in-memory database
test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=test_engine)

WEBHOOK_SECRET = os.environ["STRIPE_WEBHOOK_SECRET"]


@pytest.fixture(scope="function")
def db_session() -> Generator[Session, None, None]:
    """Create a fresh SQLite in-memory database session for each test"""
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()

    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function", autouse=True)
def detached_sessions():
    """Point session_scope() (failure logs, churn tasks) at the test database"""
    with patch.object(session_module, "SessionLocal", TestSessionLocal):
        yield


@pytest.fixture(scope="function", autouse=True)
def inline_background():
    """Run fire-and-forget work inline so tests can assert on its effects"""
    calls = []

    def run_inline(fn, *args, **kwargs):
        calls.append(getattr(fn, "__name__", repr(fn)))
        background.run_safely(fn, *args, **kwargs)

    with patch.object(background, "fire_and_forget", side_effect=run_inline):
        yield calls


@pytest.fixture(scope="function", autouse=True)
def mock_resend():
    """Automatically mock Resend so no test sends real email"""
    with patch("photovault.services.email_service.resend") as mock_resend_module:
        mock_resend_module.Emails.send = Mock(return_value={"id": "email_test123"})
        yield mock_resend_module


@pytest.fixture(scope="function", autouse=True)
def mock_posthog():
    """Automatically mock the PostHog capture API"""
    with patch("photovault.services.analytics_service.httpx") as mock_httpx:
        mock_httpx.post = Mock(return_value=Mock(status_code=200, raise_for_status=Mock()))
        yield mock_httpx


@pytest.fixture(scope="function", autouse=True)
def reset_monitor():
    webhook_monitor_service.reset_alert_state()
    yield
    webhook_monitor_service.reset_alert_state()


@pytest.fixture(scope="function", autouse=True)
def stripe_client():
    """Mock StripeClient handed to every handler (and returned by get_stripe_client)"""
    client = MagicMock(name="StripeClient")
    client.payment_intents.retrieve.return_value = {
        "id": "pi_test123",
        "latest_charge": {"id": "ch_test123", "transfer": "tr_test123"},
    }
    client.charges.retrieve.return_value = {"id": "ch_sub123", "transfer": "tr_sub123"}
    client.subscriptions.retrieve.return_value = {"id": "sub_test123", "metadata": {}}
    client.customers.retrieve.return_value = {"id": "cus_test123", "email": "delivered@resend.dev"}

    with patch("photovault.services.webhooks.get_stripe_client", return_value=client):
        yield client


@pytest.fixture(scope="function")
def client(db_session: Session) -> Generator[TestClient, None, None]:
    """FastAPI test client with test database"""

    def override_get_db():
        try:
            yield db_session
        finally:
            pass  # Don't close session here, handled by fixture

    app.dependency_overrides[get_db] = override_get_db

    try:
        with patch("photovault.main.init_db"):
            with TestClient(app) as test_client:
                yield test_client
    finally:
        app.dependency_overrides.clear()


# ============================================================================
# DOMAIN FIXTURES
# ============================================================================

@pytest.fixture(scope="function")
def photographer(db_session: Session) -> User:
    """Photographer with profile, photographer row and connected account"""
    user = User(
        email="photographer@example.com",
        password_hash=hash_password("PhotoPass123!"),
        email_confirmed=True,
        user_metadata={"full_name": "Pat Photographer", "user_type": "photographer"},
        stripe_customer_id="cus_photographer",
        stripe_connect_account_id="acct_photographer",
    )
    db_session.add(user)
    db_session.flush()
    db_session.add(UserProfile(
        id=user.id,
        full_name="Pat Photographer",
        business_name="Pat Photo Co",
        user_type="photographer",
        stripe_customer_id="cus_photographer",
    ))
    db_session.add(Photographer(
        id=user.id,
        created_at=datetime.now(timezone.utc) - timedelta(days=30),
    ))
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def client_user(db_session: Session) -> User:
    """Existing client login with profile"""
    user = User(
        email="client@example.com",
        password_hash=hash_password("ClientPass123!"),
        email_confirmed=True,
        user_metadata={"full_name": "Casey Client", "user_type": "client"},
        stripe_customer_id="cus_client",
    )
    db_session.add(user)
    db_session.flush()
    db_session.add(UserProfile(
        id=user.id,
        full_name="Casey Client",
        user_type="client",
        stripe_customer_id="cus_client",
        created_at=datetime.now(timezone.utc) - timedelta(days=400),
    ))
    db_session.commit()
    db_session.refresh(user)
    return user


@pytest.fixture(scope="function")
def gallery(db_session: Session, photographer: User) -> PhotoGallery:
    row = PhotoGallery(
        id="G1",
        photographer_id=photographer.id,
        gallery_name="Smith Wedding",
    )
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row


@pytest.fixture(scope="function")
def client_record(db_session: Session, photographer: User) -> Client:
    """Photographer's client record, not yet linked to a login"""
    row = Client(
        photographer_id=photographer.id,
        email="stored@example.com",
        name="Stored Client",
    )
    db_session.add(row)
    db_session.commit()
    db_session.refresh(row)
    return row


@pytest.fixture(scope="function")
def webhook_ctx(db_session: Session, stripe_client) -> WebhookContext:
    return WebhookContext(
        db=db_session,
        stripe=stripe_client,
        event_id="evt_test123",
        event_type="test.event",
    )


# ============================================================================
# HELPERS
# ============================================================================

def make_event(event_type: str, obj: dict, event_id: str = "evt_test123") -> StripeEventEnvelope:
    return StripeEventEnvelope(id=event_id, type=event_type, data={"object": obj}, created=int(time.time()))


def event_payload(event_type: str, obj: dict, event_id: str = "evt_test123") -> bytes:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": event_type,
        "created": int(time.time()),
        "livemode": False,
        "data": {"object": obj},
    }).encode("utf-8")


def sign_payload(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Stripe-Signature header: t=<ts>,v1=HMAC-SHA256(secret, "<ts>.<payload>")"""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def sent_emails(mock_resend) -> list:
    """Payloads passed to resend.Emails.send"""
    return [c.args[0] for c in mock_resend.Emails.send.call_args_list]


def tracked_events(mock_posthog) -> list:
    """(event, distinct_id, properties) captured by PostHog"""
    return [
        (c.kwargs["json"]["event"], c.kwargs["json"]["distinct_id"], c.kwargs["json"]["properties"])
        for c in mock_posthog.post.call_args_list
    ]


def as_aware(value: datetime) -> datetime:
    """SQLite returns naive datetimes"""
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
