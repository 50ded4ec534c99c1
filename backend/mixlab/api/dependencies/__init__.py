"""FastAPI dependency providers."""

from .database import get_db
from .services import (
    get_admin_booking_service,
    get_availability_service,
    get_booking_service,
    get_notification_channel,
    get_notification_outbox,
    get_payment_client,
    get_payment_reconciler,
)

__all__ = [
    "get_admin_booking_service",
    "get_availability_service",
    "get_booking_service",
    "get_db",
    "get_notification_channel",
    "get_notification_outbox",
    "get_payment_client",
    "get_payment_reconciler",
]
