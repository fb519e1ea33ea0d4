"""Unit tests for the notifications package."""

import pytest

from pulsewarden.notifications.dispatcher import (
    LogNotificationChannel,
    Notification,
    NotificationChannel,
    NotificationDispatcher,
    NotificationPriority,
    NotificationType,
)


class MockChannel(NotificationChannel):
    """Mock notification channel for testing."""

    def __init__(self, min_priority: NotificationPriority = NotificationPriority.LOW):
        self.min_priority = min_priority
        self.sent: list[Notification] = []
        self.should_fail = False

    async def send(self, notification: Notification) -> bool:
        if self.should_fail:
            raise RuntimeError("Channel failed")
        self.sent.append(notification)
        return True

    def supports_priority(self, priority: NotificationPriority) -> bool:
        priority_order = {
            NotificationPriority.LOW: 0,
            NotificationPriority.MEDIUM: 1,
            NotificationPriority.HIGH: 2,
            NotificationPriority.CRITICAL: 3,
        }
        return priority_order[priority] >= priority_order[self.min_priority]


def _notification(
    priority: NotificationPriority = NotificationPriority.MEDIUM,
    notification_type: NotificationType = NotificationType.CHECK_ERROR,
) -> Notification:
    return Notification(
        type=notification_type,
        title="Heartbeat check health: error",
        message="[error] health: boom",
        priority=priority,
    )


class TestNotification:
    """Tests for Notification dataclass."""

    def test_notification_creation(self):
        """Test creating a notification."""
        notification = Notification(
            type=NotificationType.CHECK_WARNING,
            title="Heartbeat check health: warning",
            message="High memory usage.",
        )
        assert notification.type == NotificationType.CHECK_WARNING
        assert notification.priority == NotificationPriority.MEDIUM  # default
        assert notification.metadata == {}

    def test_notification_types(self):
        """Notification types mirror check statuses."""
        assert NotificationType.CHECK_OK.value == "check_ok"
        assert NotificationType.CHECK_WARNING.value == "check_warning"
        assert NotificationType.CHECK_ERROR.value == "check_error"


class TestNotificationDispatcher:
    """Tests for NotificationDispatcher."""

    @pytest.mark.asyncio
    async def test_dispatch_to_channel(self):
        """Test dispatching to a single channel."""
        channel = MockChannel()
        dispatcher = NotificationDispatcher([channel])

        count = await dispatcher.dispatch(_notification())

        assert count == 1
        assert len(channel.sent) == 1

    @pytest.mark.asyncio
    async def test_dispatch_respects_priority(self):
        """Channels below their minimum priority are skipped."""
        low = MockChannel(NotificationPriority.LOW)
        high = MockChannel(NotificationPriority.HIGH)
        dispatcher = NotificationDispatcher([low, high])

        count = await dispatcher.dispatch(_notification(NotificationPriority.MEDIUM))

        assert count == 1
        assert len(low.sent) == 1
        assert high.sent == []

    @pytest.mark.asyncio
    async def test_dispatch_handles_channel_failure(self):
        """A failing channel does not stop the others."""
        failing = MockChannel()
        failing.should_fail = True
        working = MockChannel()
        dispatcher = NotificationDispatcher([failing, working])

        count = await dispatcher.dispatch(_notification())

        assert count == 1
        assert len(working.sent) == 1

    @pytest.mark.asyncio
    async def test_dispatch_respects_type_filter(self):
        """Disabled types are not sent."""
        channel = MockChannel()
        dispatcher = NotificationDispatcher([channel])
        dispatcher.set_type_enabled(NotificationType.CHECK_OK, False)

        assert dispatcher.is_type_enabled(NotificationType.CHECK_OK) is False
        assert dispatcher.is_type_enabled(NotificationType.CHECK_ERROR) is True
        count = await dispatcher.dispatch(
            _notification(notification_type=NotificationType.CHECK_OK)
        )
        assert count == 0
        assert channel.sent == []

    @pytest.mark.asyncio
    async def test_dispatch_without_channels(self):
        assert await NotificationDispatcher().dispatch(_notification()) == 0


class TestLogNotificationChannel:
    """Tests for LogNotificationChannel."""

    def test_supports_priority(self):
        channel = LogNotificationChannel(min_priority=NotificationPriority.HIGH)
        assert channel.supports_priority(NotificationPriority.CRITICAL) is True
        assert channel.supports_priority(NotificationPriority.HIGH) is True
        assert channel.supports_priority(NotificationPriority.MEDIUM) is False

    @pytest.mark.asyncio
    async def test_send(self):
        channel = LogNotificationChannel()
        notification = _notification()
        notification.metadata["check_name"] = "health"
        assert await channel.send(notification) is True
