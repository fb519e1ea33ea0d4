"""Heartbeat manager for proactive checks.

One beat:
1. Walks the registered checks in configuration order
2. Skips checks that are not due (interval, weekday, active hours)
3. Runs each due check and applies the memory writes it declares
4. Dispatches the check's triggered actions and persists a log entry
5. Records a single summary memory when at least one check ran
"""

import asyncio
import contextlib
import time
import traceback
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

import asyncpg  # type: ignore[import-not-found,import-untyped]

from pulsewarden.config import Settings, get_settings
from pulsewarden.logging import get_logger
from pulsewarden.notifications.dispatcher import (
    LogNotificationChannel,
    NotificationDispatcher,
    NotificationType,
)
from pulsewarden.scheduler.actions import ActionDispatcher
from pulsewarden.scheduler.checks import CheckExecutors, CheckOutcome, CustomCheckHandler
from pulsewarden.scheduler.interfaces import (
    Analyzer,
    AuditChain,
    Brain,
    IntegrationManager,
    TaskRunner,
)
from pulsewarden.scheduler.log_store import (
    HeartbeatLogStore,
    InMemoryHeartbeatLogStore,
    PostgresHeartbeatLogStore,
)
from pulsewarden.scheduler.models import (
    ActionTrigger,
    BeatResult,
    CheckResult,
    CheckStatus,
    HeartbeatConfig,
    HeartbeatLogEntry,
    MemoryWrite,
    TaskDefinition,
)
from pulsewarden.scheduler.registry import CheckRegistry
from pulsewarden.scheduler.schedule import ScheduleEvaluator, to_epoch_ms

log = get_logger("pulsewarden.scheduler.heartbeat")


def _summary_importance(result: BeatResult) -> float:
    if result.has_errors:
        return 0.8
    if result.has_warnings:
        return 0.5
    return 0.2


class HeartbeatManager:
    """Periodic self-check system.

    The manager:
    - Owns a CheckRegistry built from the heartbeat configuration
    - Runs due checks one at a time per beat, in configuration order
    - Converts check exceptions into ``error`` results
    - Never lets action, memory or persistence failures abort a beat
    - Optionally drives itself with an asyncio run loop (``start``/``stop``)
    """

    def __init__(
        self,
        brain: Brain,
        config: HeartbeatConfig,
        *,
        log_store: HeartbeatLogStore | None = None,
        audit_chain: AuditChain | None = None,
        integration_manager: IntegrationManager | None = None,
        dispatcher: ActionDispatcher | None = None,
        executors: CheckExecutors | None = None,
        custom_handlers: dict[str, CustomCheckHandler] | None = None,
        task_runner: TaskRunner | None = None,
        analyzer: Analyzer | None = None,
        personality_id: str | None = None,
        default_timezone: str | None = None,
        clock: Callable[[], datetime] | None = None,
        pool: asyncpg.Pool | None = None,
    ):
        """Initialize the heartbeat manager.

        Args:
            brain: Memory store for reflective tasks and beat summaries.
            config: Heartbeat configuration (checks, defaults, interval).
            log_store: History backend; in-memory when omitted.
            audit_chain: Optional audit ledger for beat events.
            integration_manager: Optional source for integration health.
            dispatcher: Action dispatcher; built from the collaborators when omitted.
            executors: Check executors; built from the collaborators when omitted.
            custom_handlers: Handlers for ``custom`` checks.
            task_runner: Sandboxed execution for ``execute`` actions.
            analyzer: Model inference for ``llm_analyze`` actions.
            personality_id: Persona the history entries are scoped to.
            default_timezone: Zone for schedule windows that name none.
            clock: Source of the current instant (timezone-aware).
            pool: Connection pool owned by the manager, closed on :meth:`stop`.
        """
        self._brain = brain
        self._config = config
        self._clock = clock or (lambda: datetime.now(UTC))
        self._registry = CheckRegistry.from_config(config)
        self._evaluator = ScheduleEvaluator(config.interval_ms, default_timezone=default_timezone)
        self._log_store: HeartbeatLogStore = (
            log_store if log_store is not None else InMemoryHeartbeatLogStore()
        )
        self._audit_chain = audit_chain
        self._executors = executors or CheckExecutors(
            brain,
            integration_manager=integration_manager,
            custom_handlers=custom_handlers,
            clock=self._clock,
        )
        self._dispatcher = dispatcher or ActionDispatcher(
            brain=brain,
            task_runner=task_runner,
            analyzer=analyzer,
            clock=self._clock,
        )
        self._personality_id = personality_id
        self._pool = pool
        self._running = False
        self._task: asyncio.Task[None] | None = None
        self._beat_count = 0
        self._last_beat: BeatResult | None = None

        log.info(
            "heartbeat_manager_initialized",
            checks=len(self._registry),
            interval_ms=config.interval_ms,
        )

    @property
    def registry(self) -> CheckRegistry:
        return self._registry

    @property
    def log_store(self) -> HeartbeatLogStore:
        return self._log_store

    @property
    def is_running(self) -> bool:
        """Check if the run loop is active."""
        return self._running

    @property
    def beat_count(self) -> int:
        return self._beat_count

    @property
    def last_beat(self) -> BeatResult | None:
        return self._last_beat

    # ------------------------------------------------------------------
    # Run loop
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start beating every ``interval_ms`` until :meth:`stop`."""
        if not self._config.enabled:
            log.info("heartbeat_disabled")
            return
        if self._running:
            log.warning("heartbeat_already_running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        log.info("heartbeat_started", interval_ms=self._config.interval_ms)

    async def stop(self) -> None:
        """Stop the run loop and release owned resources."""
        self._running = False
        task = self._task
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
            self._task = None
        await self._dispatcher.close()
        if self._pool is not None:
            await self._pool.close()
            self._pool = None
        log.info("heartbeat_stopped")

    async def _run_loop(self) -> None:
        """Main heartbeat loop."""
        while self._running:
            try:
                await self.beat()
            except Exception as e:
                log.error("heartbeat_failed", error=str(e))

            await asyncio.sleep(self._config.interval_ms / 1000)

    # ------------------------------------------------------------------
    # Beat
    # ------------------------------------------------------------------

    async def beat(self) -> BeatResult:
        """Run every due check once.

        Returns:
            Results for the checks that ran, in configuration order.
        """
        now = self._clock()
        now_ms = to_epoch_ms(now)
        started = time.monotonic()
        checks: list[CheckResult] = []

        for task in self._registry:
            if not self._evaluator.is_due(task, self._registry.last_run_at(task.name), now):
                continue
            checks.append(await self._process(task, now_ms))

        result = BeatResult(
            timestamp=now_ms,
            duration_ms=int((time.monotonic() - started) * 1000),
            checks=checks,
        )
        self._last_beat = result
        self._beat_count += 1

        if checks:
            await self._record_summary(result)

        log.debug("heartbeat_complete", beat=self._beat_count, checks=len(checks))
        return result

    async def _process(self, task: TaskDefinition, now_ms: int) -> CheckResult:
        """Run one due check through execution, effects, actions and logging."""
        log.debug("check_running", check=task.name, type=task.type.value)
        started = time.monotonic()

        try:
            outcome = await self._executors.run(task)
        except Exception as e:
            log.error("check_failed", check=task.name, error=str(e))
            outcome = CheckOutcome(
                result=CheckResult(
                    name=task.name,
                    type=task.type,
                    status=CheckStatus.ERROR,
                    message=str(e) or "Check failed",
                    duration_ms=int((time.monotonic() - started) * 1000),
                    error_detail=traceback.format_exc(),
                )
            )

        # A failing check waits a full interval like any other.
        self._registry.mark_ran(task.name, now_ms)
        result = outcome.result

        for effect in outcome.effects:
            await self._apply_effect(task, effect)

        await self._dispatcher.dispatch(task, result, self._registry.default_actions)
        await self._persist(result, now_ms)

        log.debug("check_finished", check=task.name, status=result.status.value)
        return result

    async def _apply_effect(self, task: TaskDefinition, effect: MemoryWrite) -> None:
        try:
            await self._brain.remember(
                effect.memory_type,
                effect.content,
                effect.category,
                effect.context,
                effect.importance,
            )
        except Exception as e:
            log.warning("check_effect_failed", check=task.name, error=str(e))

    async def _persist(self, result: CheckResult, ran_at: int) -> None:
        entry = HeartbeatLogEntry(
            check_name=result.name,
            personality_id=self._personality_id,
            ran_at=ran_at,
            status=result.status,
            message=result.message,
            duration_ms=result.duration_ms,
            error_detail=result.error_detail,
        )
        try:
            await self._log_store.persist(entry)
        except Exception as e:
            log.warning("heartbeat_log_persist_failed", check_name=result.name, error=str(e))

    async def _record_summary(self, result: BeatResult) -> None:
        """Record the beat as one memory and, when attached, one audit event."""
        summary = ", ".join(f"{c.name}: {c.status.value}" for c in result.checks)
        try:
            await self._brain.remember(
                "episodic",
                f"Heartbeat #{self._beat_count}: {summary}",
                "heartbeat",
                {"beat_count": str(self._beat_count)},
                _summary_importance(result),
            )
        except Exception as e:
            log.warning("heartbeat_summary_failed", beat=self._beat_count, error=str(e))

        if self._audit_chain is None:
            return
        try:
            await self._audit_chain.record(
                {
                    "event": "heartbeat",
                    "level": "warn" if result.has_errors else "info",
                    "message": (
                        f"Heartbeat #{self._beat_count} completed in {result.duration_ms}ms"
                    ),
                    "metadata": {
                        "beat_count": self._beat_count,
                        "checks_run": len(result.checks),
                        "has_warnings": result.has_warnings,
                        "has_errors": result.has_errors,
                    },
                }
            )
        except Exception as e:
            log.warning("heartbeat_audit_failed", beat=self._beat_count, error=str(e))

    # ------------------------------------------------------------------
    # Status surface
    # ------------------------------------------------------------------

    def update_task(
        self,
        name: str,
        *,
        interval_ms: int | None = None,
        enabled: bool | None = None,
        config: dict[str, Any] | None = None,
    ) -> None:
        """Change a check's interval, enabled flag or config.

        Raises:
            TaskNotFoundError: If ``name`` is not a registered check.
        """
        self._registry.update_task(name, interval_ms=interval_ms, enabled=enabled, config=config)

    def get_status(self) -> dict[str, Any]:
        """Snapshot of the heartbeat and every check. Side-effect free."""
        return {
            "running": self._running,
            "enabled": self._config.enabled,
            "interval_ms": self._config.interval_ms,
            "beat_count": self._beat_count,
            "last_beat": self._last_beat.to_dict() if self._last_beat else None,
            "tasks": self._registry.snapshot(self._config.interval_ms),
        }


async def create_heartbeat_manager(
    brain: Brain,
    checks: list[TaskDefinition],
    default_actions: list[ActionTrigger] | None = None,
    settings: Settings | None = None,
    **kwargs: Any,
) -> HeartbeatManager:
    """Create a heartbeat manager wired from Settings.

    Uses PostgreSQL history when ``POSTGRES_DSN`` is set, otherwise keeps
    history in memory. The manager owns the pool it creates and closes it
    on :meth:`HeartbeatManager.stop`.

    Args:
        brain: Memory store.
        checks: Check definitions in configuration order.
        default_actions: Triggers applied to every check.
        settings: Optional settings; the cached settings are used when omitted.
        **kwargs: Passed through to :class:`HeartbeatManager`.

    Returns:
        Configured heartbeat manager.
    """
    settings = settings or get_settings()
    config = HeartbeatConfig.from_settings(settings, checks, default_actions)

    if "log_store" not in kwargs and settings.postgres_dsn:
        pool = await asyncpg.create_pool(dsn=settings.postgres_dsn, min_size=1, max_size=5)
        store = PostgresHeartbeatLogStore(pool)
        try:
            await store.ensure_schema()
        except Exception:
            await pool.close()
            raise
        kwargs["log_store"] = store
        kwargs["pool"] = pool
        log.info("heartbeat_log_store_postgres")

    if "dispatcher" not in kwargs:
        notifier = NotificationDispatcher(channels=[LogNotificationChannel()])
        notifier.set_type_enabled(NotificationType.CHECK_OK, settings.heartbeat_notify_ok)
        kwargs["dispatcher"] = ActionDispatcher(
            brain=brain,
            notifier=notifier,
            task_runner=kwargs.get("task_runner"),
            analyzer=kwargs.get("analyzer"),
            default_timeout_ms=settings.webhook_default_timeout_ms,
            clock=kwargs.get("clock"),
        )

    kwargs.setdefault("personality_id", settings.heartbeat_personality_id)
    return HeartbeatManager(brain, config, **kwargs)
