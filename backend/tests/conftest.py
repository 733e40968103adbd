# backend/tests/conftest.py
"""
Pytest configuration for the Casaora check-out service.

Every test gets its own SQLite database file so services that commit (and
tests that use several sessions from worker threads) stay isolated.
Outbound email is patched globally; Stripe captures go through a fake.
"""

import os
import tempfile

# CRITICAL: Set testing mode BEFORE any casaora imports!
_TEST_DB_DIR = tempfile.mkdtemp(prefix="casaora-tests-")
os.environ["CI"] = "true"
os.environ["IS_TESTING"] = "true"
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DB_DIR, 'app.db')}"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["WEBHOOK_TOLERANCE_SECONDS"] = "300"
os.environ["RESEND_API_KEY"] = ""
os.environ["REBOOK_NUDGE_ENABLED"] = "false"

# CRITICAL: Mock Resend API globally to prevent real emails in ANY test
import unittest.mock

global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

from datetime import datetime, timedelta, timezone
import hashlib
import hmac
import time
from typing import Any, Callable, Optional

from fastapi.testclient import TestClient
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker
import stripe
import ulid

from casaora.database import Base, build_engine_kwargs, get_db
from casaora.main import app
from casaora.models.booking import Booking, BookingStatus, PaymentStatus
from casaora.models.user import User, UserRole
from casaora.services.dependencies import get_notification_service, get_stripe_service
from casaora.services.stripe_service import StripeService

WEBHOOK_SECRET = "whsec_test_secret"


# ============================================================================
# Database
# ============================================================================


@pytest.fixture
def engine(tmp_path):
    url = f"sqlite:///{tmp_path / 'casaora_test.db'}"
    test_engine = create_engine(url, **build_engine_kwargs(url))
    Base.metadata.create_all(bind=test_engine)
    yield test_engine
    test_engine.dispose()


@pytest.fixture
def session_factory(engine):
    """Sessionmaker bound to the per-test database (one session per worker thread)."""
    return sessionmaker(autocommit=False, autoflush=False, bind=engine, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.rollback()
    session.close()


# ============================================================================
# Fakes
# ============================================================================


class FakeStripeService(StripeService):
    """Real signature verification; captures are recorded and optionally failed."""

    def __init__(self, error: Optional[Exception] = None, amount_received: Optional[int] = None):
        super().__init__()
        self.error = error
        self.amount_received = amount_received
        self.captures: list[dict[str, Any]] = []

    def capture_payment_intent(
        self, payment_intent_id: str, *, amount_to_capture: int, idempotency_key: str
    ) -> dict[str, Any]:
        self.captures.append(
            {
                "payment_intent_id": payment_intent_id,
                "amount_to_capture": amount_to_capture,
                "idempotency_key": idempotency_key,
            }
        )
        if self.error is not None:
            raise self.error
        received = amount_to_capture if self.amount_received is None else self.amount_received
        return {"payment_intent": None, "status": "succeeded", "amount_received": received}


class DummyNotificationService:
    def __init__(self) -> None:
        self.completed: list[dict[str, Any]] = []
        self.capture_failed: list[dict[str, Any]] = []
        self.not_persisted: list[dict[str, Any]] = []
        self.fail_completion = False

    def send_booking_completed(self, booking, *, duration_minutes: int, amount: int) -> bool:
        if self.fail_completion:
            raise RuntimeError("notification backend down")
        self.completed.append(
            {"booking_id": booking.id, "duration_minutes": duration_minutes, "amount": amount}
        )
        return True

    def notify_admins_payment_capture_failed(self, booking, *, amount: int, error_message: str) -> int:
        self.capture_failed.append(
            {"booking_id": booking.id, "amount": amount, "error_message": error_message}
        )
        return 1

    def notify_admins_payment_captured_not_persisted(
        self, booking, *, amount_captured: int, payment_intent_id: str, attempts: int
    ) -> int:
        self.not_persisted.append(
            {
                "booking_id": booking.id,
                "amount_captured": amount_captured,
                "payment_intent_id": payment_intent_id,
                "attempts": attempts,
            }
        )
        return 1


def capture_declined_error() -> stripe.StripeError:
    return stripe.InvalidRequestError(
        "This PaymentIntent could not be captured because it has expired.",
        param=None,
        code="payment_intent_unexpected_state",
    )


@pytest.fixture
def fake_stripe() -> FakeStripeService:
    return FakeStripeService()


@pytest.fixture
def failing_stripe() -> FakeStripeService:
    return FakeStripeService(error=capture_declined_error())


@pytest.fixture
def notifications() -> DummyNotificationService:
    return DummyNotificationService()


# ============================================================================
# Data
# ============================================================================


def _make_user(db: Session, role: UserRole, name: str) -> User:
    user = User(
        id=str(ulid.ULID()),
        email=f"{role.value}_{ulid.ULID()}@example.com",
        full_name=name,
        role=role.value,
        is_active=True,
    )
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def professional(db: Session) -> User:
    return _make_user(db, UserRole.PROFESSIONAL, "Valentina Rojas")


@pytest.fixture
def customer(db: Session) -> User:
    return _make_user(db, UserRole.CUSTOMER, "Andrés Gómez")


@pytest.fixture
def admin(db: Session) -> User:
    return _make_user(db, UserRole.ADMIN, "Ops Admin")


SERVICE_ADDRESS = {
    "formatted": "Calle 93 #11-26, Bogotá",
    "latitude": 4.6767,
    "longitude": -74.0483,
}


@pytest.fixture
def make_booking(db: Session, professional: User, customer: User) -> Callable[..., Booking]:
    """Factory for bookings; defaults to a checked-in, authorized booking."""

    def _make(**overrides: Any) -> Booking:
        values: dict[str, Any] = {
            "id": str(ulid.ULID()),
            "professional_id": professional.id,
            "customer_id": customer.id,
            "service_name": "Limpieza profunda",
            "status": BookingStatus.IN_PROGRESS.value,
            "duration_minutes": 120,
            "checked_in_at": datetime.now(timezone.utc) - timedelta(minutes=95),
            "amount_authorized": 120_000,
            "time_extension_amount": 0,
            "currency": "COP",
            "address": dict(SERVICE_ADDRESS),
            "payment_reference": f"pi_{ulid.ULID()}",
            "payment_status": PaymentStatus.AUTHORIZED.value,
        }
        values.update(overrides)
        booking = Booking(**values)
        db.add(booking)
        db.commit()
        return booking

    return _make


@pytest.fixture
def booking(make_booking) -> Booking:
    return make_booking()


# ============================================================================
# Webhook signing
# ============================================================================


def sign_stripe_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    ts = int(time.time()) if timestamp is None else timestamp
    digest = hmac.new(
        secret.encode("utf-8"), f"{ts}.{payload}".encode("utf-8"), hashlib.sha256
    ).hexdigest()
    return f"t={ts},v1={digest}"


@pytest.fixture
def sign() -> Callable[..., str]:
    return sign_stripe_payload


# ============================================================================
# HTTP client
# ============================================================================


@pytest.fixture
def client(db: Session, fake_stripe: FakeStripeService, notifications: DummyNotificationService):
    """Create a test client with the test database and faked outbound services."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_service] = lambda: fake_stripe
    app.dependency_overrides[get_notification_service] = lambda: notifications

    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()
