"""Notification dispatcher for routing heartbeat alerts to operator channels."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pulsewarden.logging import get_logger

log = get_logger("pulsewarden.notifications.dispatcher")


class NotificationType(Enum):
    """Types of notifications."""

    CHECK_OK = "check_ok"
    CHECK_WARNING = "check_warning"
    CHECK_ERROR = "check_error"


class NotificationPriority(Enum):
    """Priority levels for notifications."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


_PRIORITY_ORDER = {
    NotificationPriority.LOW: 0,
    NotificationPriority.MEDIUM: 1,
    NotificationPriority.HIGH: 2,
    NotificationPriority.CRITICAL: 3,
}


@dataclass
class Notification:
    """A notification to be sent."""

    type: NotificationType
    title: str
    message: str
    priority: NotificationPriority = NotificationPriority.MEDIUM
    timestamp: datetime = field(default_factory=datetime.now)
    metadata: dict[str, Any] = field(default_factory=dict)


class NotificationChannel(ABC):
    """Abstract base class for notification channels."""

    @abstractmethod
    async def send(self, notification: Notification) -> bool:
        """Send a notification.

        Args:
            notification: The notification to send.

        Returns:
            True if sent successfully, False otherwise.
        """
        pass

    @abstractmethod
    def supports_priority(self, priority: NotificationPriority) -> bool:
        """Check if this channel supports a priority level.

        Args:
            priority: The priority to check.

        Returns:
            True if supported.
        """
        pass


class LogNotificationChannel(NotificationChannel):
    """Writes notifications to the structured log at alert severity."""

    def __init__(self, min_priority: NotificationPriority = NotificationPriority.LOW):
        self._min_priority = min_priority
        self._log = get_logger("pulsewarden.notifications.alerts")

    def supports_priority(self, priority: NotificationPriority) -> bool:
        return _PRIORITY_ORDER[priority] >= _PRIORITY_ORDER[self._min_priority]

    async def send(self, notification: Notification) -> bool:
        self._log.warning(
            "heartbeat_alert",
            severity="alert",
            type=notification.type.value,
            priority=notification.priority.value,
            title=notification.title,
            message=notification.message,
            **notification.metadata,
        )
        return True


class NotificationDispatcher:
    """Dispatches notifications to registered channels.

    Supports multiple channels and priority-based routing.
    """

    def __init__(self, channels: list[NotificationChannel] | None = None) -> None:
        """Initialize the dispatcher.

        Args:
            channels: Channels to register up front.
        """
        self._channels: list[NotificationChannel] = []
        self._type_filters: dict[NotificationType, bool] = {}
        for channel in channels or []:
            self.register_channel(channel)

    def register_channel(self, channel: NotificationChannel) -> None:
        """Register a notification channel.

        Args:
            channel: The channel to register.
        """
        self._channels.append(channel)
        log.info("channel_registered", channel=channel.__class__.__name__)

    def set_type_enabled(
        self,
        notification_type: NotificationType,
        enabled: bool,
    ) -> None:
        """Enable or disable a notification type.

        Args:
            notification_type: The type to configure.
            enabled: Whether to enable it.
        """
        self._type_filters[notification_type] = enabled

    def is_type_enabled(self, notification_type: NotificationType) -> bool:
        """Check if a notification type is enabled (default is True)."""
        return self._type_filters.get(notification_type, True)

    async def dispatch(self, notification: Notification) -> int:
        """Dispatch a notification to all appropriate channels.

        Channel failures are logged and never propagate.

        Args:
            notification: The notification to dispatch.

        Returns:
            Number of channels that successfully received the notification.
        """
        if not self.is_type_enabled(notification.type):
            log.debug(
                "notification_filtered",
                type=notification.type.value,
            )
            return 0

        sent_count = 0
        for channel in self._channels:
            if channel.supports_priority(notification.priority):
                try:
                    success = await channel.send(notification)
                    if success:
                        sent_count += 1
                except Exception as e:
                    log.error(
                        "channel_send_failed",
                        channel=channel.__class__.__name__,
                        error=str(e),
                    )

        if sent_count > 0:
            log.info(
                "notification_dispatched",
                type=notification.type.value,
                priority=notification.priority.value,
                channels=sent_count,
            )
        else:
            log.warning(
                "notification_not_sent",
                type=notification.type.value,
                reason="no channels available",
            )

        return sent_count
