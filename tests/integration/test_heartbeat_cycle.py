"""Heartbeat full cycle integration tests.

Exercises the full heartbeat pipeline:
    HeartbeatConfig.from_dict()
    -> HeartbeatManager.beat()
    -> CheckExecutors (real handlers, mocked psutil)
    -> ActionDispatcher (webhook over httpx.MockTransport, notify, remember)
    -> InMemoryHeartbeatLogStore

No external services are required.
"""

import json
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from pulsewarden.notifications.dispatcher import (
    Notification,
    NotificationChannel,
    NotificationDispatcher,
    NotificationPriority,
)
from pulsewarden.scheduler.actions import ActionDispatcher
from pulsewarden.scheduler.heartbeat import HeartbeatManager
from pulsewarden.scheduler.log_store import HeartbeatLogQuery, InMemoryHeartbeatLogStore
from pulsewarden.scheduler.models import CheckStatus, HeartbeatConfig

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

CONFIG = {
    "enabled": True,
    "intervalMs": 60_000,
    "checks": [
        {"name": "system", "type": "system_health"},
        {
            "name": "logs",
            "type": "log_anomalies",
            "intervalMs": 300_000,
            "config": {"error_threshold": 2},
            "actions": [
                {
                    "action": "webhook",
                    "condition": "on_error",
                    "config": {
                        "url": "https://hooks.test/alerts",
                        "retryCount": 1,
                        "retryDelayMs": 0,
                        "messageTemplate": "{{check.name}}: {{result.message}}",
                    },
                }
            ],
        },
        {
            "name": "office-hours",
            "type": "reflective_task",
            "intervalMs": 3_600_000,
            "schedule": {
                "daysOfWeek": ["mon", "tue", "wed", "thu", "fri"],
                "activeHours": {"start": "09:00", "end": "17:00", "timezone": "UTC"},
            },
            "config": {"prompt": "review open incidents"},
        },
    ],
    "defaultActions": [{"action": "notify", "condition": "on_error"}],
}


class RecordingChannel(NotificationChannel):
    """Notification channel that records what it receives."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> bool:
        self.sent.append(notification)
        return True

    def supports_priority(self, priority: NotificationPriority) -> bool:
        return True


class FakeClock:
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def _fake_psutil(percent: float = 40.0) -> MagicMock:
    fake = MagicMock()
    fake.Process.return_value.memory_info.return_value.rss = 128 * 1024 * 1024
    fake.virtual_memory.return_value.percent = percent
    return fake


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def pipeline(mock_brain):
    """Build a manager wired to in-process collaborators.

    Returns a dict with the manager and its observers.
    """
    clock = FakeClock(datetime(2024, 1, 1, 10, 0, tzinfo=UTC))  # Monday
    webhook_requests: list[httpx.Request] = []
    webhook_codes = [500, 200]

    def handler(request: httpx.Request) -> httpx.Response:
        webhook_requests.append(request)
        return httpx.Response(webhook_codes.pop(0) if webhook_codes else 200)

    channel = RecordingChannel()
    audit = MagicMock()
    audit.record = AsyncMock()
    store = InMemoryHeartbeatLogStore()
    dispatcher = ActionDispatcher(
        brain=mock_brain,
        notifier=NotificationDispatcher([channel]),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        clock=clock,
    )
    manager = HeartbeatManager(
        mock_brain,
        HeartbeatConfig.from_dict(CONFIG),
        log_store=store,
        audit_chain=audit,
        dispatcher=dispatcher,
        personality_id="ops",
        clock=clock,
    )
    return {
        "manager": manager,
        "clock": clock,
        "store": store,
        "channel": channel,
        "audit": audit,
        "webhook_requests": webhook_requests,
    }


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.integration
@pytest.mark.asyncio
async def test_healthy_first_beat(pipeline, mock_brain) -> None:
    """All three checks run on the first beat and nothing alerts."""
    manager = pipeline["manager"]

    with patch("pulsewarden.scheduler.checks.psutil", _fake_psutil()):
        result = await manager.beat()

    assert [c.name for c in result.checks] == ["system", "logs", "office-hours"]
    assert all(c.status is CheckStatus.OK for c in result.checks)
    assert pipeline["channel"].sent == []
    assert pipeline["webhook_requests"] == []

    page = await pipeline["store"].list()
    assert page.total == 3
    assert {e.personality_id for e in page.entries} == {"ops"}

    contents = [c.args[1] for c in mock_brain.remember.await_args_list]
    assert contents == [
        "Reflective task: review open incidents",
        "Heartbeat #1: system: ok, logs: ok, office-hours: ok",
    ]
    pipeline["audit"].record.assert_awaited_once()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_error_burst_alerts_through_webhook_and_notify(pipeline, mock_brain) -> None:
    """An error spike fires the check's webhook (with one retry) and the default notify."""
    manager = pipeline["manager"]
    mock_brain.has_audit_storage.return_value = True
    mock_brain.query_audit_logs.return_value = {"entries": [], "total": 5}

    with patch("pulsewarden.scheduler.checks.psutil", _fake_psutil()):
        result = await manager.beat()

    logs = next(c for c in result.checks if c.name == "logs")
    assert logs.status is CheckStatus.ERROR

    requests = pipeline["webhook_requests"]
    assert len(requests) == 2
    body = json.loads(requests[-1].content)
    assert body["check"]["name"] == "logs"
    assert body["message"].startswith("logs: High error rate!")

    sent = pipeline["channel"].sent
    assert len(sent) == 1
    assert sent[0].metadata["check_name"] == "logs"
    assert sent[0].priority is NotificationPriority.CRITICAL

    summary = mock_brain.remember.await_args_list[-1]
    assert summary.args[4] == 0.8

    errors = await pipeline["store"].list(HeartbeatLogQuery(status=CheckStatus.ERROR))
    assert [e.check_name for e in errors.entries] == ["logs"]


@pytest.mark.integration
@pytest.mark.asyncio
async def test_later_beats_respect_intervals_and_windows(pipeline) -> None:
    """Per-check intervals and the office-hours window gate later beats."""
    manager = pipeline["manager"]
    clock = pipeline["clock"]

    with patch("pulsewarden.scheduler.checks.psutil", _fake_psutil()):
        await manager.beat()

        # One minute later only the global-interval check is due.
        clock.now += timedelta(minutes=1)
        second = await manager.beat()
        assert [c.name for c in second.checks] == ["system"]

        # Outside office hours the reflective task stays quiet.
        clock.now = datetime(2024, 1, 1, 18, 0, tzinfo=UTC)
        third = await manager.beat()
        assert [c.name for c in third.checks] == ["system", "logs"]

        # Saturday inside office hours is still outside the window.
        clock.now = datetime(2024, 1, 6, 10, 0, tzinfo=UTC)
        fourth = await manager.beat()
        assert "office-hours" not in [c.name for c in fourth.checks]

    status = manager.get_status()
    assert status["beat_count"] == 4
    assert (await pipeline["store"].list()).total == 3 + 1 + 2 + 2

    await manager.stop()
