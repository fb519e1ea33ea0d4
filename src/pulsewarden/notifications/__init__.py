"""Notification system for heartbeat alerts."""

from pulsewarden.notifications.dispatcher import (
    LogNotificationChannel,
    Notification,
    NotificationChannel,
    NotificationDispatcher,
    NotificationPriority,
    NotificationType,
)

__all__ = [
    "LogNotificationChannel",
    "Notification",
    "NotificationChannel",
    "NotificationDispatcher",
    "NotificationPriority",
    "NotificationType",
]
