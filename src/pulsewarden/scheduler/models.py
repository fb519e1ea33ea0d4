"""Heartbeat models: check definitions, schedule windows, triggers and results.

Checks flow through states per beat: not due (skipped) -> running ->
OK | WARNING | ERROR. Only checks that actually ran produce a CheckResult,
a HeartbeatLogEntry and action dispatch.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import time
from enum import Enum
from typing import TYPE_CHECKING, Any

from pulsewarden.scheduler.errors import HeartbeatConfigError

if TYPE_CHECKING:
    from pulsewarden.config import Settings

_HHMM_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")
_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


class CheckType(str, Enum):
    """Closed set of check kinds, one executor each."""

    SYSTEM_HEALTH = "system_health"
    MEMORY_STATUS = "memory_status"
    LOG_ANOMALIES = "log_anomalies"
    INTEGRATION_HEALTH = "integration_health"
    REFLECTIVE_TASK = "reflective_task"
    CUSTOM = "custom"


class CheckStatus(str, Enum):
    """Terminal outcome of a check execution."""

    OK = "ok"
    WARNING = "warning"
    ERROR = "error"


class TriggerCondition(str, Enum):
    """When an action trigger fires."""

    ALWAYS = "always"
    ON_OK = "on_ok"
    ON_WARNING = "on_warning"
    ON_ERROR = "on_error"


class ActionType(str, Enum):
    """Side effects an action trigger can invoke."""

    WEBHOOK = "webhook"
    NOTIFY = "notify"
    REMEMBER = "remember"
    EXECUTE = "execute"
    LLM_ANALYZE = "llm_analyze"


class Weekday(str, Enum):
    """Weekday tokens, ordered to match ``datetime.weekday()``."""

    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"
    SUN = "sun"

    @property
    def number(self) -> int:
        """Weekday number with Monday as 0."""
        return list(Weekday).index(self)

    @classmethod
    def parse(cls, token: str) -> Weekday:
        """Parse ``mon``/``Monday``/``MON`` style tokens."""
        key = token.strip().lower()[:3]
        try:
            return cls(key)
        except ValueError:
            raise HeartbeatConfigError(f"Unknown weekday token: {token!r}") from None


_CONDITION_STATUS = {
    TriggerCondition.ON_OK: CheckStatus.OK,
    TriggerCondition.ON_WARNING: CheckStatus.WARNING,
    TriggerCondition.ON_ERROR: CheckStatus.ERROR,
}


def _parse_hhmm(value: str) -> time:
    match = _HHMM_RE.match(value.strip())
    if not match:
        raise HeartbeatConfigError(f"Expected HH:MM in 24-hour form, got: {value!r}")
    return time(int(match.group(1)), int(match.group(2)))


def _pick(data: dict[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    """Read a key accepting both snake_case and the platform's camelCase."""
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def _snake_keys(data: dict[str, Any]) -> dict[str, Any]:
    return {_CAMEL_RE.sub("_", key).lower(): value for key, value in data.items()}


@dataclass(frozen=True)
class ActiveHours:
    """Time-of-day window ``[start, end)`` that does not wrap past midnight."""

    start: str
    end: str
    timezone: str | None = None

    def __post_init__(self) -> None:
        # Malformed HH:MM is rejected at load time.
        _parse_hhmm(self.start)
        _parse_hhmm(self.end)

    @property
    def start_time(self) -> time:
        return _parse_hhmm(self.start)

    @property
    def end_time(self) -> time:
        return _parse_hhmm(self.end)

    def contains(self, moment: time) -> bool:
        """Whether a wall-clock time lies inside the window."""
        return self.start_time <= moment < self.end_time

    def to_dict(self) -> dict[str, Any]:
        return {"start": self.start, "end": self.end, "timezone": self.timezone}


@dataclass(frozen=True)
class ScheduleWindow:
    """Calendar gating layered on top of interval due-ness."""

    days_of_week: frozenset[Weekday] | None = None
    active_hours: ActiveHours | None = None

    @property
    def timezone(self) -> str | None:
        return self.active_hours.timezone if self.active_hours else None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "days_of_week": (
                [d.value for d in Weekday if d in self.days_of_week]
                if self.days_of_week is not None
                else None
            ),
            "active_hours": self.active_hours.to_dict() if self.active_hours else None,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduleWindow:
        """Create from dictionary."""
        days = _pick(data, "days_of_week", "daysOfWeek")
        hours = _pick(data, "active_hours", "activeHours")
        return cls(
            days_of_week=frozenset(Weekday.parse(d) for d in days) if days is not None else None,
            active_hours=(
                ActiveHours(
                    start=hours.get("start", ""),
                    end=hours.get("end", ""),
                    timezone=hours.get("timezone"),
                )
                if hours
                else None
            ),
        )


@dataclass
class ActionTrigger:
    """A condition -> action binding attached to a check or registry-wide."""

    action: ActionType
    condition: TriggerCondition = TriggerCondition.ALWAYS
    config: dict[str, Any] = field(default_factory=dict)

    def matches(self, status: CheckStatus) -> bool:
        """Whether this trigger fires for a result status."""
        if self.condition is TriggerCondition.ALWAYS:
            return True
        return _CONDITION_STATUS[self.condition] is status

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "action": self.action.value,
            "condition": self.condition.value,
            "config": dict(self.config),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ActionTrigger:
        """Create from dictionary. Config keys are normalised to snake_case."""
        try:
            return cls(
                action=ActionType(data["action"]),
                condition=TriggerCondition(data.get("condition", "always")),
                config=_snake_keys(data.get("config") or {}),
            )
        except (KeyError, ValueError) as exc:
            raise HeartbeatConfigError(f"Invalid action trigger {data!r}: {exc}") from exc


@dataclass
class TaskDefinition:
    """A named, independently scheduled check."""

    name: str
    type: CheckType
    enabled: bool = True
    interval_ms: int | None = None
    schedule: ScheduleWindow | None = None
    config: dict[str, Any] = field(default_factory=dict)
    actions: list[ActionTrigger] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "type": self.type.value,
            "enabled": self.enabled,
            "interval_ms": self.interval_ms,
            "schedule": self.schedule.to_dict() if self.schedule else None,
            "config": dict(self.config),
            "actions": [a.to_dict() for a in self.actions],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TaskDefinition:
        """Create from dictionary."""
        try:
            check_type = CheckType(data["type"])
            name = data["name"]
        except (KeyError, ValueError) as exc:
            raise HeartbeatConfigError(f"Invalid check definition {data!r}: {exc}") from exc
        schedule = data.get("schedule")
        return cls(
            name=name,
            type=check_type,
            enabled=data.get("enabled", True),
            interval_ms=_pick(data, "interval_ms", "intervalMs"),
            schedule=ScheduleWindow.from_dict(schedule) if schedule else None,
            config=dict(data.get("config") or {}),
            actions=[ActionTrigger.from_dict(a) for a in data.get("actions") or []],
        )


@dataclass(frozen=True)
class CheckResult:
    """Immutable outcome of one check execution."""

    name: str
    type: CheckType
    status: CheckStatus
    message: str
    duration_ms: int = 0
    error_detail: str | None = None
    data: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "name": self.name,
            "type": self.type.value,
            "status": self.status.value,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "error_detail": self.error_detail,
            "data": dict(self.data),
        }


@dataclass(frozen=True)
class MemoryWrite:
    """A memory entry an executor declares as a side effect of its check."""

    content: str
    category: str
    context: dict[str, str] = field(default_factory=dict)
    importance: float = 0.5
    memory_type: str = "episodic"


@dataclass
class HeartbeatLogEntry:
    """Durable record of one check execution.

    Attributes:
        check_name: Name of the check that ran.
        ran_at: Epoch milliseconds at which the check started.
        status: Terminal status of the run.
        message: Human-readable result message.
        duration_ms: Execution time of the check.
        personality_id: Persona the run was scoped to, if any.
        error_detail: Diagnostic trace for failed runs.
        id: Unique identifier, assigned on persist when absent.
    """

    check_name: str
    ran_at: int
    status: CheckStatus
    message: str
    duration_ms: int = 0
    personality_id: str | None = None
    error_detail: str | None = None
    id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "check_name": self.check_name,
            "personality_id": self.personality_id,
            "ran_at": self.ran_at,
            "status": self.status.value,
            "message": self.message,
            "duration_ms": self.duration_ms,
            "error_detail": self.error_detail,
        }


@dataclass
class BeatResult:
    """Aggregate of one beat: results of the checks that actually ran."""

    timestamp: int
    duration_ms: int = 0
    checks: list[CheckResult] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(c.status is CheckStatus.ERROR for c in self.checks)

    @property
    def has_warnings(self) -> bool:
        return any(c.status is CheckStatus.WARNING for c in self.checks)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "timestamp": self.timestamp,
            "duration_ms": self.duration_ms,
            "checks": [c.to_dict() for c in self.checks],
        }


@dataclass
class HeartbeatConfig:
    """Configuration surface for the heartbeat, loaded once at startup."""

    enabled: bool = True
    interval_ms: int = 30_000
    checks: list[TaskDefinition] = field(default_factory=list)
    default_actions: list[ActionTrigger] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> HeartbeatConfig:
        """Create from an externally loaded mapping."""
        return cls(
            enabled=data.get("enabled", True),
            interval_ms=_pick(data, "interval_ms", "intervalMs", 30_000),
            checks=[TaskDefinition.from_dict(c) for c in data.get("checks") or []],
            default_actions=[
                ActionTrigger.from_dict(a)
                for a in _pick(data, "default_actions", "defaultActions") or []
            ],
        )

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        checks: list[TaskDefinition] | None = None,
        default_actions: list[ActionTrigger] | None = None,
    ) -> HeartbeatConfig:
        """Seed the global switches from Settings."""
        return cls(
            enabled=settings.heartbeat_enabled,
            interval_ms=settings.heartbeat_interval_ms,
            checks=list(checks or []),
            default_actions=list(default_actions or []),
        )
