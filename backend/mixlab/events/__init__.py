"""Notification events published after booking state changes."""
from .notification_events import AdminNotification, BookingConfirmationRequested, UserNotification

__all__ = ["AdminNotification", "BookingConfirmationRequested", "UserNotification"]
