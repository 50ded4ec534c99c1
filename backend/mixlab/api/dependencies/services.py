# backend/mixlab/api/dependencies/services.py
"""
Service layer dependencies for dependency injection.

Provider clients and the notification channel are process-wide singletons;
services are built per request around the request's database session.
"""

from functools import lru_cache
import logging
from typing import Union

from fastapi import BackgroundTasks, Depends
from sqlalchemy.orm import Session

from ...core.config import settings
from ...core.exceptions import ServiceException
from ...integrations import FakeXenditClient, XenditClient
from ...services.admin_booking_service import AdminBookingService
from ...services.availability_service import AvailabilityService
from ...services.booking_service import BookingService
from ...services.email import EmailService
from ...services.email_console import ConsoleEmailService
from ...services.notification_service import (
    NotificationChannel,
    NotificationOutbox,
    build_notification_channel,
)
from ...services.payment_reconciler import PaymentReconciler
from .database import get_db

logger = logging.getLogger(__name__)


@lru_cache(maxsize=1)
def get_payment_client() -> XenditClient:
    """
    Xendit client, or the in-memory fake when no secret key is configured.

    Production refuses the fake unless PAYMENT_PROVIDER_FAKE asks for it.
    """
    logger.info(
        "Payment client selection",
        extra={"environment": settings.environment, "fake": settings.use_fake_payment_provider},
    )
    if settings.use_fake_payment_provider:
        if settings.environment == "production":
            if not settings.payment_provider_fake:
                raise ServiceException(
                    "XENDIT_SECRET_KEY is required in production",
                    code="PAYMENT_PROVIDER_NOT_CONFIGURED",
                )
            logger.warning("Using FakeXenditClient in production; payments will not be collected")
        return FakeXenditClient()
    return XenditClient(
        secret_key=settings.xendit_secret_key,
        base_url=settings.xendit_api_base,
        currency=settings.currency,
        invoice_duration_seconds=settings.payment_expiry_hours * 3600,
        success_redirect_url=f"{settings.frontend_url}/payment-success.html",
        failure_redirect_url=f"{settings.frontend_url}/payment-failed.html",
    )


def _build_email_service() -> Union[EmailService, ConsoleEmailService]:
    if settings.email_provider == "resend":
        try:
            return EmailService()
        except ServiceException as exc:
            if settings.environment == "production":
                raise
            logger.warning(
                "Falling back to ConsoleEmailService due to configuration error",
                extra={"error": exc.message},
            )
    return ConsoleEmailService()


@lru_cache(maxsize=1)
def get_notification_channel() -> NotificationChannel:
    return build_notification_channel(_build_email_service())


def get_notification_outbox(
    background_tasks: BackgroundTasks,
    channel: NotificationChannel = Depends(get_notification_channel),
) -> NotificationOutbox:
    """Per-request outbox, flushed once the response has been sent."""
    outbox = NotificationOutbox(channel)
    background_tasks.add_task(outbox.flush)
    return outbox


def get_booking_service(
    db: Session = Depends(get_db),
    payment_client: XenditClient = Depends(get_payment_client),
    notifications: NotificationOutbox = Depends(get_notification_outbox),
) -> BookingService:
    return BookingService(db, payment_client=payment_client, notifications=notifications)


def get_payment_reconciler(
    db: Session = Depends(get_db),
    payment_client: XenditClient = Depends(get_payment_client),
    notifications: NotificationOutbox = Depends(get_notification_outbox),
) -> PaymentReconciler:
    return PaymentReconciler(db, payment_client=payment_client, notifications=notifications)


def get_availability_service(db: Session = Depends(get_db)) -> AvailabilityService:
    return AvailabilityService(db)


def get_admin_booking_service(
    db: Session = Depends(get_db),
    notifications: NotificationOutbox = Depends(get_notification_outbox),
) -> AdminBookingService:
    return AdminBookingService(db, notifications=notifications)
