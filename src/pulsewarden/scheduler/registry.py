"""Registry of configured heartbeat checks and their runtime state."""

import copy
from collections.abc import Iterator
from typing import Any

from pulsewarden.logging import get_logger
from pulsewarden.scheduler.errors import HeartbeatConfigError, TaskNotFoundError
from pulsewarden.scheduler.models import ActionTrigger, HeartbeatConfig, TaskDefinition

log = get_logger("pulsewarden.scheduler.registry")


class CheckRegistry:
    """Owns the checks of one heartbeat instance.

    Checks keep their configuration order, which is the order a beat
    processes them in. The set of checks is fixed for the registry's
    lifetime; only ``last_run_at`` and the fields touched by
    :meth:`update_task` change.
    """

    def __init__(
        self,
        checks: list[TaskDefinition],
        default_actions: list[ActionTrigger] | None = None,
    ):
        """Initialize the registry.

        Args:
            checks: Check definitions in configuration order.
            default_actions: Triggers applied to every check after its own.

        Raises:
            HeartbeatConfigError: If two checks share a name.
        """
        self._tasks: dict[str, TaskDefinition] = {}
        for task in checks:
            if task.name in self._tasks:
                raise HeartbeatConfigError(f'Duplicate check name "{task.name}"')
            self._tasks[task.name] = task
        self._default_actions = list(default_actions or [])
        self._last_run: dict[str, int] = {}

        log.debug("check_registry_initialized", checks=len(self._tasks))

    @classmethod
    def from_config(cls, config: HeartbeatConfig) -> "CheckRegistry":
        """Build a registry from a heartbeat configuration."""
        return cls(checks=config.checks, default_actions=config.default_actions)

    def __iter__(self) -> Iterator[TaskDefinition]:
        return iter(self._tasks.values())

    def __len__(self) -> int:
        return len(self._tasks)

    def __contains__(self, name: object) -> bool:
        return name in self._tasks

    @property
    def default_actions(self) -> list[ActionTrigger]:
        return list(self._default_actions)

    def get(self, name: str) -> TaskDefinition:
        """Look up a check by name.

        Raises:
            TaskNotFoundError: If no check has this name.
        """
        try:
            return self._tasks[name]
        except KeyError:
            raise TaskNotFoundError(name) from None

    def last_run_at(self, name: str) -> int | None:
        """Epoch milliseconds of the last run, or ``None`` if never run."""
        return self._last_run.get(name)

    def mark_ran(self, name: str, ran_at: int) -> None:
        """Record that a check ran at ``ran_at`` (epoch milliseconds)."""
        self.get(name)
        self._last_run[name] = ran_at

    def effective_actions(self, task: TaskDefinition) -> list[ActionTrigger]:
        """Task triggers followed by the registry-wide defaults."""
        return [*task.actions, *self._default_actions]

    def update_task(
        self,
        name: str,
        *,
        interval_ms: int | None = None,
        enabled: bool | None = None,
        config: dict[str, Any] | None = None,
    ) -> TaskDefinition:
        """Merge the given fields into a check; omitted fields are untouched.

        ``config`` replaces the check's config as a whole.

        Raises:
            TaskNotFoundError: If no check has this name.
        """
        task = self.get(name)
        if interval_ms is not None:
            task.interval_ms = interval_ms
        if enabled is not None:
            task.enabled = enabled
        if config is not None:
            task.config = dict(config)

        log.info(
            "check_updated",
            name=name,
            interval_ms=task.interval_ms,
            enabled=task.enabled,
        )
        return task

    def snapshot(self, global_interval_ms: int) -> list[dict[str, Any]]:
        """Read-only view of every check for status reporting."""
        return [
            {
                "name": task.name,
                "type": task.type.value,
                "enabled": task.enabled,
                "interval_ms": (
                    task.interval_ms if task.interval_ms is not None else global_interval_ms
                ),
                "last_run_at": self._last_run.get(task.name),
                "config": copy.deepcopy(task.config),
                "schedule": task.schedule.to_dict() if task.schedule else None,
            }
            for task in self._tasks.values()
        ]
