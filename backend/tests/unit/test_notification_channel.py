import asyncio
import json
import logging
import threading
import time
from unittest.mock import MagicMock

from fastapi import BackgroundTasks
import pytest

from mixlab.api.dependencies import get_notification_outbox
from mixlab.core import broadcast
from mixlab.events.notification_events import (
    AdminNotification,
    BookingConfirmationRequested,
    UserNotification,
)
from mixlab.services.notification_service import (
    EmailSubscriber,
    NotificationChannel,
    NotificationOutbox,
    RealtimeSubscriber,
    build_notification_channel,
)


class TestNotificationChannel:
    def test_failing_subscriber_does_not_block_others(self):
        channel = NotificationChannel()
        received = []

        def broken(event):
            raise RuntimeError("socket closed")

        channel.subscribe(broken)
        channel.subscribe(received.append)

        event = AdminNotification(type="booking", message="New booking")
        delivered = channel.publish(event)

        assert delivered == 1
        assert received == [event]

    def test_subscription_filters_by_event_type(self):
        channel = NotificationChannel()
        admin_only = []
        channel.subscribe(admin_only.append, AdminNotification)

        channel.publish(UserNotification(account_id="acct-1", type="booking", message="hi"))
        channel.publish(AdminNotification(type="booking", message="hi"))

        assert [type(e) for e in admin_only] == [AdminNotification]

    def test_unsubscribe(self):
        channel = NotificationChannel()
        received = []
        channel.subscribe(received.append)
        channel.unsubscribe(received.append)
        assert channel.publish(AdminNotification(type="x", message="y")) == 0
        assert received == []

    def test_build_wires_email_and_realtime(self):
        channel = build_notification_channel(MagicMock())
        kinds = {type(s) for s in channel.subscribers()}
        assert kinds == {EmailSubscriber, RealtimeSubscriber}


class TestSubscribers:
    def test_email_subscriber_sends_confirmation_only(self):
        email_service = MagicMock()
        subscriber = EmailSubscriber(email_service)

        subscriber(AdminNotification(type="booking", message="ignored"))
        subscriber(BookingConfirmationRequested(booking={"booking_id": "MIX-A"}, qr_data_url="data:x"))

        email_service.send_booking_confirmation.assert_called_once_with(
            {"booking_id": "MIX-A"}, "data:x"
        )

    def test_realtime_subscriber_routes_channels(self):
        publish = MagicMock(return_value=True)
        subscriber = RealtimeSubscriber(publish=publish)

        subscriber(UserNotification(account_id="acct-42", type="payment", message="Paid"))
        subscriber(AdminNotification(type="booking", message="New", link="/admin/bookings"))
        subscriber(BookingConfirmationRequested(booking={}, qr_data_url="data:x"))

        assert publish.call_count == 2
        user_channel, user_payload = publish.call_args_list[0].args
        admin_channel, admin_payload = publish.call_args_list[1].args
        assert user_channel == "user:acct-42"
        assert user_payload["event"] == "notification"
        assert user_payload["message"] == "Paid"
        assert admin_channel == "admins"
        assert admin_payload["link"] == "/admin/bookings"

    def test_realtime_without_broadcaster_is_a_noop(self):
        # No broadcaster is connected under test
        RealtimeSubscriber()(AdminNotification(type="booking", message="New"))


class TestNotificationOutbox:
    def test_holds_events_until_flushed(self):
        channel = NotificationChannel()
        received = []
        channel.subscribe(received.append)
        outbox = NotificationOutbox(channel)

        outbox.publish(AdminNotification(type="booking", message="New booking"))
        outbox.publish(UserNotification(account_id="acct-42", type="booking", message="Booked"))

        assert received == []
        assert len(outbox.pending) == 2
        assert outbox.flush() == 2
        assert [e.type for e in received] == ["booking", "booking"]
        assert outbox.pending == ()
        assert outbox.flush() == 0

    def test_dependency_flushes_after_the_response(self):
        channel = NotificationChannel()
        received = []
        channel.subscribe(received.append)
        tasks = BackgroundTasks()

        outbox = get_notification_outbox(tasks, channel)
        outbox.publish(AdminNotification(type="booking", message="New booking"))
        assert received == []

        asyncio.run(tasks())

        assert [e.message for e in received] == ["New booking"]


class SlowBroadcaster:
    def __init__(self, delay):
        self.delay = delay
        self.messages = []

    async def publish(self, channel, message):
        await asyncio.sleep(self.delay)
        self.messages.append((channel, json.loads(message)))


class TestPublishThreadsafe:
    @pytest.fixture
    def running_loop(self):
        loop = asyncio.new_event_loop()
        thread = threading.Thread(target=loop.run_forever, daemon=True)
        thread.start()
        yield loop
        loop.call_soon_threadsafe(loop.stop)
        thread.join(timeout=5)
        loop.close()

    def test_returns_before_delivery_completes(self, monkeypatch, running_loop):
        slow = SlowBroadcaster(delay=0.5)
        monkeypatch.setattr(broadcast, "_broadcast", slow)
        monkeypatch.setattr(broadcast, "_loop", running_loop)

        started = time.monotonic()
        assert broadcast.publish_threadsafe("admins", {"type": "booking"}) is True
        assert time.monotonic() - started < 0.25
        assert slow.messages == []

        deadline = time.monotonic() + 5
        while not slow.messages and time.monotonic() < deadline:
            time.sleep(0.05)
        assert slow.messages == [("admins", {"type": "booking"})]

    def test_delivery_failure_is_logged(self, monkeypatch, running_loop, caplog):
        class BrokenBroadcaster:
            async def publish(self, channel, message):
                raise ConnectionError("redis down")

        monkeypatch.setattr(broadcast, "_broadcast", BrokenBroadcaster())
        monkeypatch.setattr(broadcast, "_loop", running_loop)

        with caplog.at_level(logging.WARNING, logger="mixlab.core.broadcast"):
            assert broadcast.publish_threadsafe("user:acct-42", {"type": "payment"}) is True
            deadline = time.monotonic() + 5
            while "redis down" not in caplog.text and time.monotonic() < deadline:
                time.sleep(0.05)

        assert "Broadcast publish to user:acct-42 failed" in caplog.text

    def test_disabled_broadcaster_drops_the_message(self):
        assert broadcast.publish_threadsafe("admins", {"type": "booking"}) is False
