# backend/tests/conftest.py
"""
Pytest configuration for the MixLab booking backend.

Environment is set BEFORE any mixlab import so Settings picks up the
in-memory database, the fake payment provider and the console mailer.
"""

import os

# CRITICAL: Set test settings BEFORE any app imports!
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["PAYMENT_PROVIDER_FAKE"] = "true"
os.environ["EMAIL_PROVIDER"] = "console"
os.environ["XENDIT_WEBHOOK_TOKEN"] = "test-callback-token"
os.environ["SECRET_KEY"] = "test-secret-key-for-check-in-tokens"
os.environ.pop("BROADCAST_URL", None)

# Mock Resend API globally to prevent real emails in ANY test
import unittest.mock

global_resend_mock = unittest.mock.patch("resend.Emails.send")
mocked_send = global_resend_mock.start()
mocked_send.return_value = {"id": "test-email-id"}

from datetime import date, time
from decimal import Decimal
from typing import Any, Callable, List

from fastapi.testclient import TestClient
import pytest
from sqlalchemy.orm import Session

from mixlab.api.dependencies import get_db, get_notification_channel, get_payment_client
from mixlab.auth import create_access_token
from mixlab.core.timeutils import combine, interval_minutes, from_minutes
from mixlab.database import Base, SessionLocal, engine
from mixlab.events.notification_events import BookingConfirmationRequested
from mixlab.integrations import FakeXenditClient
from mixlab.main import app
from mixlab.models.reservation import Reservation
from mixlab.schemas.reservation import BookingCreate
from mixlab.services.admin_booking_service import AdminBookingService
from mixlab.services.booking_service import BookingService
from mixlab.services.email_console import ConsoleEmailService
from mixlab.services.notification_service import (
    EmailSubscriber,
    NotificationChannel,
    RealtimeSubscriber,
)
from mixlab.services.payment_reconciler import PaymentReconciler

BOOKING_DATE = date(2030, 5, 17)


@pytest.fixture(scope="function")
def db():
    """Fresh schema and session per test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()

    yield session

    session.rollback()
    session.close()
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def fake_provider() -> FakeXenditClient:
    return FakeXenditClient()


@pytest.fixture
def console_email() -> ConsoleEmailService:
    return ConsoleEmailService()


@pytest.fixture
def published() -> List[Any]:
    """Every event published on the notification channel, in order."""
    return []


@pytest.fixture
def notifications(console_email: ConsoleEmailService, published: List[Any]) -> NotificationChannel:
    channel = NotificationChannel()
    channel.subscribe(published.append)
    channel.subscribe(EmailSubscriber(console_email), BookingConfirmationRequested)
    channel.subscribe(RealtimeSubscriber())
    return channel


@pytest.fixture
def booking_service(
    db: Session, fake_provider: FakeXenditClient, notifications: NotificationChannel
) -> BookingService:
    return BookingService(db, payment_client=fake_provider, notifications=notifications)


@pytest.fixture
def reconciler(
    db: Session, fake_provider: FakeXenditClient, notifications: NotificationChannel
) -> PaymentReconciler:
    return PaymentReconciler(db, payment_client=fake_provider, notifications=notifications)


@pytest.fixture
def admin_service(db: Session, notifications: NotificationChannel) -> AdminBookingService:
    return AdminBookingService(db, notifications=notifications)


@pytest.fixture
def booking_request() -> Callable[..., BookingCreate]:
    """Factory for valid booking requests; keyword overrides replace defaults."""

    def _make(**overrides: Any) -> BookingCreate:
        payload = {
            "name": "Dana Reyes",
            "email": "dana@example.com",
            "contact": "09171234567",
            "service_kind": "rehearsal",
            "booking_date": BOOKING_DATE.isoformat(),
            "start_time": "10:00",
            "duration_hours": 2,
            "payment_method": "cash",
        }
        payload.update(overrides)
        return BookingCreate.model_validate(payload)

    return _make


@pytest.fixture
def make_reservation(db: Session) -> Callable[..., Reservation]:
    """Insert a reservation row directly, bypassing the booking flow."""
    counter = {"n": 0}

    def _make(
        start: time,
        hours: int = 1,
        booking_date: date = BOOKING_DATE,
        payment_status: str = "paid",
        check_in_status: str = "not_arrived",
        payment_method: str = "card",
        **extra: Any,
    ) -> Reservation:
        counter["n"] += 1
        _, end_min = interval_minutes(start, hours)
        reservation = Reservation(
            booking_id=extra.pop("booking_id", f"MIX-TEST{counter['n']:04d}"),
            name=extra.pop("name", "Seeded Guest"),
            service_kind=extra.pop("service_kind", "rehearsal"),
            booking_date=booking_date,
            start_time=start,
            end_time=from_minutes(end_min),
            duration_hours=hours,
            starts_at=combine(booking_date, start),
            ends_at=combine(booking_date, start, hours),
            amount=extra.pop("amount", Decimal(800 * hours)),
            payment_method=payment_method,
            payment_status=payment_status,
            check_in_status=check_in_status,
            **extra,
        )
        db.add(reservation)
        db.commit()
        return reservation

    return _make


@pytest.fixture
def client(db: Session, fake_provider: FakeXenditClient, notifications: NotificationChannel):
    """Test client sharing the test session, fake provider and recording channel."""

    def override_get_db():
        try:
            yield db
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_client] = lambda: fake_provider
    app.dependency_overrides[get_notification_channel] = lambda: notifications

    test_client = TestClient(app)

    yield test_client

    app.dependency_overrides.clear()
    test_client.close()


@pytest.fixture
def admin_headers() -> dict:
    token = create_access_token(data={"id": "admin-1", "role": "admin"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def user_headers() -> dict:
    token = create_access_token(data={"id": "acct-42"})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def webhook_headers() -> dict:
    return {"x-callback-token": "test-callback-token"}
