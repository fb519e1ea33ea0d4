"""Executors for the heartbeat check types.

Each check type maps to one handler that inspects a subsystem and reports a
status. Handlers never raise for expected conditions (a missing integration
manager, no audit storage); an exception escaping a handler is a genuine
failure and is turned into an ``error`` result by the heartbeat manager.

Handlers may also declare memory writes as part of their outcome; the
heartbeat manager applies them after the check. The reflective task records
its prompt this way.
"""

import inspect
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

import psutil

from pulsewarden.logging import get_logger
from pulsewarden.scheduler.interfaces import Brain, IntegrationManager
from pulsewarden.scheduler.models import (
    CheckResult,
    CheckStatus,
    CheckType,
    MemoryWrite,
    TaskDefinition,
)

log = get_logger("pulsewarden.scheduler.checks")

REFLECTION_IMPORTANCE = 0.4


@dataclass
class CheckReport:
    """What a handler found, before timing is attached."""

    status: CheckStatus
    message: str
    data: dict[str, Any] = field(default_factory=dict)
    effects: tuple[MemoryWrite, ...] = ()


@dataclass(frozen=True)
class CheckOutcome:
    """A finished check: its result plus the memory writes it declared."""

    result: CheckResult
    effects: tuple[MemoryWrite, ...] = ()


CustomCheckHandler = Callable[[TaskDefinition], Awaitable[CheckReport] | CheckReport]
_Handler = Callable[[TaskDefinition], Awaitable[CheckReport]]


def _total(stats: dict[str, Any], key: str) -> int:
    """Read a count that may be reported as ``n`` or ``{"total": n}``."""
    value = stats.get(key, 0)
    if isinstance(value, dict):
        return int(value.get("total", 0))
    return int(value or 0)


class CheckExecutors:
    """Runs checks by dispatching on their type."""

    def __init__(
        self,
        brain: Brain,
        integration_manager: IntegrationManager | None = None,
        custom_handlers: dict[str, CustomCheckHandler] | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the executors.

        Args:
            brain: Memory store queried by the memory and log checks.
            integration_manager: Optional source for integration health.
            custom_handlers: Handlers for ``custom`` checks, keyed by the
                check's ``config["handler"]`` or, failing that, its name.
            clock: Source of the current instant.
        """
        self._brain = brain
        self._integration_manager = integration_manager
        self._custom_handlers: dict[str, CustomCheckHandler] = dict(custom_handlers or {})
        self._clock = clock or (lambda: datetime.now(UTC))
        self._handlers: dict[CheckType, _Handler] = {
            CheckType.SYSTEM_HEALTH: self._check_system_health,
            CheckType.MEMORY_STATUS: self._check_memory_status,
            CheckType.LOG_ANOMALIES: self._check_log_anomalies,
            CheckType.INTEGRATION_HEALTH: self._check_integration_health,
            CheckType.REFLECTIVE_TASK: self._run_reflective_task,
            CheckType.CUSTOM: self._run_custom,
        }

    def register_custom(self, name: str, handler: CustomCheckHandler) -> None:
        """Register a handler for ``custom`` checks."""
        self._custom_handlers[name] = handler
        log.debug("custom_check_registered", handler=name)

    async def run(self, task: TaskDefinition) -> CheckOutcome:
        """Run a check and time it.

        Raises:
            Exception: Whatever the handler raised for an unexpected failure.
        """
        started = time.monotonic()
        report = await self._handlers[task.type](task)
        duration_ms = int((time.monotonic() - started) * 1000)

        return CheckOutcome(
            result=CheckResult(
                name=task.name,
                type=task.type,
                status=report.status,
                message=report.message,
                duration_ms=duration_ms,
                data=report.data,
            ),
            effects=report.effects,
        )

    async def _check_system_health(self, task: TaskDefinition) -> CheckReport:
        warning_pct = float(task.config.get("memory_warning_percent", 90))
        error_pct = float(task.config.get("memory_error_percent", 97))
        rss_warning_mb = task.config.get("rss_warning_mb")

        rss_mb = round(psutil.Process().memory_info().rss / 1024 / 1024)
        host_pct = psutil.virtual_memory().percent

        data: dict[str, Any] = {"rss_mb": rss_mb, "memory_percent": host_pct}
        parts = [f"RSS: {rss_mb}MB", f"Host memory: {host_pct}%"]

        try:
            stats = await self._brain.get_stats()
        except Exception as e:
            log.warning("system_health_stats_unavailable", check=task.name, error=str(e))
        else:
            data.update(
                memories=_total(stats, "memories"),
                knowledge=_total(stats, "knowledge"),
                skills=_total(stats, "skills"),
            )
            parts.insert(0, f"Memories: {data['memories']}, Knowledge: {data['knowledge']}")

        message = ", ".join(parts)
        if host_pct >= error_pct:
            return CheckReport(CheckStatus.ERROR, f"Critical memory usage. {message}", data)
        if host_pct >= warning_pct:
            return CheckReport(CheckStatus.WARNING, f"High memory usage. {message}", data)
        if rss_warning_mb is not None and rss_mb > float(rss_warning_mb):
            return CheckReport(CheckStatus.WARNING, f"High process memory. {message}", data)
        return CheckReport(CheckStatus.OK, message, data)

    async def _check_memory_status(self, task: TaskDefinition) -> CheckReport:
        stats = await self._brain.get_stats()
        if stats.get("error"):
            return CheckReport(
                CheckStatus.ERROR,
                f"Memory subsystem reported an error: {stats['error']}",
                {"error": str(stats["error"])},
            )

        data: dict[str, Any] = {
            "memories": _total(stats, "memories"),
            "knowledge": _total(stats, "knowledge"),
            "skills": _total(stats, "skills"),
        }
        message = (
            f"Memories: {data['memories']}, Knowledge: {data['knowledge']}, "
            f"Skills: {data['skills']}"
        )

        if not task.config.get("run_maintenance"):
            return CheckReport(CheckStatus.OK, message, data)

        maintenance = await self._brain.run_maintenance()
        decayed = int(maintenance.get("decayed", 0))
        pruned = int(maintenance.get("pruned", 0))
        data.update(decayed=decayed, pruned=pruned)
        message = f"{message}. Maintenance: {decayed} decayed, {pruned} pruned"

        if pruned > int(task.config.get("prune_warning_threshold", 10)):
            return CheckReport(CheckStatus.WARNING, f"High pruning count. {message}", data)
        return CheckReport(CheckStatus.OK, message, data)

    async def _check_log_anomalies(self, task: TaskDefinition) -> CheckReport:
        if not self._brain.has_audit_storage():
            return CheckReport(CheckStatus.OK, "Audit storage not available for log analysis")

        window_minutes = int(task.config.get("window_minutes", 5))
        error_threshold = int(task.config.get("error_threshold", 10))
        levels = list(task.config.get("levels", ["error", "critical"]))

        since = self._clock() - timedelta(minutes=window_minutes)
        result = await self._brain.query_audit_logs(
            levels=levels,
            from_ms=int(since.timestamp() * 1000),
            limit=20,
        )
        total = int(result.get("total", 0))
        message = f"{total} {'/'.join(levels)} entries in last {window_minutes} minutes"
        data = {"error_count": total}

        if total > error_threshold:
            return CheckReport(CheckStatus.ERROR, f"High error rate! {message}", data)
        if total > 0:
            return CheckReport(CheckStatus.WARNING, message, data)
        return CheckReport(CheckStatus.OK, message, data)

    async def _check_integration_health(self, task: TaskDefinition) -> CheckReport:
        if self._integration_manager is None:
            return CheckReport(CheckStatus.OK, "Integration manager not available")

        running = self._integration_manager.get_running_count()
        message = f"{running} integrations running"
        data = {"running_count": running}

        min_running = task.config.get("min_running")
        if min_running is not None and running < int(min_running):
            return CheckReport(
                CheckStatus.WARNING,
                f"Fewer integrations than expected ({min_running}). {message}",
                data,
            )
        return CheckReport(CheckStatus.OK, message, data)

    async def _run_reflective_task(self, task: TaskDefinition) -> CheckReport:
        prompt = str(task.config.get("prompt") or "reflect")
        return CheckReport(
            CheckStatus.OK,
            f'Reflection recorded: "{prompt}"',
            effects=(
                MemoryWrite(
                    content=f"Reflective task: {prompt}",
                    category="heartbeat",
                    context={"task": task.name},
                    importance=REFLECTION_IMPORTANCE,
                ),
            ),
        )

    async def _run_custom(self, task: TaskDefinition) -> CheckReport:
        key = task.config.get("handler", task.name)
        handler = self._custom_handlers.get(key)
        if handler is None:
            return CheckReport(CheckStatus.OK, "Custom check placeholder", dict(task.config))

        report = handler(task)
        if inspect.isawaitable(report):
            report = await report
        return report
