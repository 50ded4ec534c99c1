# backend/mixlab/services/notification_service.py
"""
Post-commit booking notifications.

BookingService and PaymentReconciler publish events onto a NotificationChannel
instead of talking to email or sockets directly. Each subscriber runs in
isolation: a failing subscriber is logged and the remaining ones still run.
Routes hand services a NotificationOutbox instead, which holds the events
until the response has gone out.
"""

import logging
from typing import Any, Callable, Dict, List, Protocol, Sequence, Tuple, Type, Union

from ..core.broadcast import publish_threadsafe
from ..core.constants import ADMIN_CHANNEL, USER_CHANNEL_TEMPLATE
from ..events.notification_events import (
    AdminNotification,
    BookingConfirmationRequested,
    UserNotification,
)

logger = logging.getLogger(__name__)

NotificationEvent = Union[BookingConfirmationRequested, UserNotification, AdminNotification]
Subscriber = Callable[[NotificationEvent], None]


class ConfirmationSender(Protocol):
    def send_booking_confirmation(self, booking: Dict[str, Any], qr_data_url: str) -> bool:
        ...


class NotificationChannel:
    """In-process publish/subscribe fan-out for notification events."""

    def __init__(self) -> None:
        self._subscribers: List[Tuple[Tuple[Type[Any], ...], Subscriber]] = []

    def subscribe(self, subscriber: Subscriber, *event_types: Type[Any]) -> None:
        """Register ``subscriber`` for ``event_types`` (every event when none are given)."""
        self._subscribers.append((event_types, subscriber))

    def unsubscribe(self, subscriber: Subscriber) -> None:
        self._subscribers = [(t, s) for t, s in self._subscribers if s is not subscriber]

    def subscribers(self) -> Sequence[Subscriber]:
        return tuple(s for _, s in self._subscribers)

    def publish(self, event: NotificationEvent) -> int:
        """
        Deliver ``event`` to every matching subscriber.

        Returns:
            Number of subscribers that handled the event without raising
        """
        delivered = 0
        for event_types, subscriber in list(self._subscribers):
            if event_types and not isinstance(event, event_types):
                continue
            try:
                subscriber(event)
                delivered += 1
            except Exception:
                logger.exception(
                    "Notification subscriber %s failed for %s",
                    getattr(subscriber, "__name__", type(subscriber).__name__),
                    type(event).__name__,
                )
        return delivered


class NotificationSink(Protocol):
    def publish(self, event: NotificationEvent) -> int:
        ...


class NotificationOutbox:
    """
    Request-scoped buffer in front of a NotificationChannel.

    Services publish into the outbox while handling a request; the route's
    background task calls ``flush`` after the response has been sent, so email
    and real-time delivery never delay the caller.
    """

    def __init__(self, channel: NotificationChannel):
        self.channel = channel
        self._pending: List[NotificationEvent] = []

    @property
    def pending(self) -> Sequence[NotificationEvent]:
        return tuple(self._pending)

    def publish(self, event: NotificationEvent) -> int:
        self._pending.append(event)
        return 0

    def flush(self) -> int:
        events, self._pending = self._pending, []
        delivered = 0
        for event in events:
            delivered += self.channel.publish(event)
        if events:
            logger.debug("Flushed %d notification(s), %d deliveries", len(events), delivered)
        return delivered


class EmailSubscriber:
    """Sends booking confirmation emails."""

    def __init__(self, email_service: ConfirmationSender):
        self.email_service = email_service

    def __call__(self, event: NotificationEvent) -> None:
        if isinstance(event, BookingConfirmationRequested):
            self.email_service.send_booking_confirmation(event.booking, event.qr_data_url)


class RealtimeSubscriber:
    """Forwards user and admin notifications to the broadcaster channels."""

    def __init__(self, publish: Callable[[str, Dict[str, Any]], bool] = publish_threadsafe):
        self._publish = publish

    def __call__(self, event: NotificationEvent) -> None:
        if isinstance(event, UserNotification):
            channel = USER_CHANNEL_TEMPLATE.format(account_id=event.account_id)
        elif isinstance(event, AdminNotification):
            channel = ADMIN_CHANNEL
        else:
            return
        payload = {"event": "notification", **event.to_dict()}
        self._publish(channel, payload)


def build_notification_channel(email_service: ConfirmationSender) -> NotificationChannel:
    channel = NotificationChannel()
    channel.subscribe(EmailSubscriber(email_service), BookingConfirmationRequested)
    channel.subscribe(RealtimeSubscriber(), UserNotification, AdminNotification)
    return channel
