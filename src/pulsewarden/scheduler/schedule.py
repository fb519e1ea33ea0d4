"""Due-ness decisions for heartbeat checks.

A check is due when it is enabled, its interval has elapsed since the last
run (or it never ran) and, when it has a schedule window, the current instant
falls on an allowed weekday and inside the active hours. Evaluation is pure:
nothing here mutates the check or the registry.
"""

from datetime import datetime, tzinfo
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pulsewarden.logging import get_logger
from pulsewarden.scheduler.models import ScheduleWindow, TaskDefinition

log = get_logger("pulsewarden.scheduler.schedule")


def to_epoch_ms(moment: datetime) -> int:
    """Convert an aware datetime to epoch milliseconds."""
    return int(moment.timestamp() * 1000)


class ScheduleEvaluator:
    """Decides whether a check may run at a given instant."""

    def __init__(self, global_interval_ms: int, default_timezone: str | None = None):
        """Initialize the evaluator.

        Args:
            global_interval_ms: Interval used by checks that set none.
            default_timezone: Zone for window gating when a window names none.
                ``None`` means the system local zone.
        """
        self._global_interval_ms = global_interval_ms
        self._default_timezone = default_timezone

    @property
    def global_interval_ms(self) -> int:
        return self._global_interval_ms

    def effective_interval(self, task: TaskDefinition) -> int:
        """The task's interval after falling back to the global one."""
        if task.interval_ms is not None:
            return task.interval_ms
        return self._global_interval_ms

    def is_interval_due(
        self, task: TaskDefinition, last_run_at: int | None, now: datetime
    ) -> bool:
        """Whether the interval since ``last_run_at`` has elapsed."""
        if last_run_at is None:
            return True
        return to_epoch_ms(now) - last_run_at >= self.effective_interval(task)

    def is_window_open(self, schedule: ScheduleWindow | None, now: datetime) -> bool:
        """Whether ``now`` satisfies the weekday and active-hours gates."""
        if schedule is None:
            return True

        local_now = now.astimezone(self._resolve_zone(schedule.timezone))

        if schedule.days_of_week is not None:
            if local_now.weekday() not in {d.number for d in schedule.days_of_week}:
                return False

        if schedule.active_hours is not None:
            if not schedule.active_hours.contains(local_now.time().replace(tzinfo=None)):
                return False

        return True

    def is_due(self, task: TaskDefinition, last_run_at: int | None, now: datetime) -> bool:
        """Final due-ness: enabled AND interval due AND window open."""
        if not task.enabled:
            return False
        return self.is_interval_due(task, last_run_at, now) and self.is_window_open(
            task.schedule, now
        )

    def _resolve_zone(self, name: str | None) -> tzinfo | None:
        """Resolve a zone name; ``None`` yields the system local zone."""
        for candidate in (name, self._default_timezone):
            if candidate is None:
                continue
            try:
                return ZoneInfo(candidate)
            except (ZoneInfoNotFoundError, ValueError):
                log.warning("schedule_timezone_invalid", timezone=candidate)
        return None
