"""Heartbeat scheduler for periodic self-checks.

This package provides:
- HeartbeatManager: Runs due checks each beat and records the outcome
- CheckRegistry: The configured checks and their last-run state
- ScheduleEvaluator: Interval, weekday and active-hours due-ness
- CheckExecutors: One handler per check type
- ActionDispatcher: Webhook, notify, remember, execute and analyze actions
- Heartbeat log stores: PostgreSQL and in-memory history
"""

from pulsewarden.scheduler.actions import ActionDispatcher, ActionResult, render_template
from pulsewarden.scheduler.checks import CheckExecutors, CheckOutcome, CheckReport
from pulsewarden.scheduler.errors import (
    HeartbeatConfigError,
    HeartbeatError,
    TaskNotFoundError,
    WebhookDeliveryError,
)
from pulsewarden.scheduler.heartbeat import HeartbeatManager, create_heartbeat_manager
from pulsewarden.scheduler.log_store import (
    HeartbeatLogPage,
    HeartbeatLogQuery,
    HeartbeatLogStore,
    InMemoryHeartbeatLogStore,
    PostgresHeartbeatLogStore,
)
from pulsewarden.scheduler.models import (
    ActionTrigger,
    ActionType,
    ActiveHours,
    BeatResult,
    CheckResult,
    CheckStatus,
    CheckType,
    HeartbeatConfig,
    HeartbeatLogEntry,
    MemoryWrite,
    ScheduleWindow,
    TaskDefinition,
    TriggerCondition,
    Weekday,
)
from pulsewarden.scheduler.registry import CheckRegistry
from pulsewarden.scheduler.schedule import ScheduleEvaluator

__all__ = [
    # Heartbeat
    "HeartbeatManager",
    "create_heartbeat_manager",
    "HeartbeatConfig",
    "BeatResult",
    # Checks
    "CheckRegistry",
    "CheckExecutors",
    "CheckOutcome",
    "CheckReport",
    "CheckResult",
    "CheckStatus",
    "CheckType",
    "MemoryWrite",
    "TaskDefinition",
    # Scheduling
    "ScheduleEvaluator",
    "ScheduleWindow",
    "ActiveHours",
    "Weekday",
    # Actions
    "ActionDispatcher",
    "ActionResult",
    "ActionTrigger",
    "ActionType",
    "TriggerCondition",
    "render_template",
    # History
    "HeartbeatLogEntry",
    "HeartbeatLogPage",
    "HeartbeatLogQuery",
    "HeartbeatLogStore",
    "InMemoryHeartbeatLogStore",
    "PostgresHeartbeatLogStore",
    # Errors
    "HeartbeatError",
    "HeartbeatConfigError",
    "TaskNotFoundError",
    "WebhookDeliveryError",
]
