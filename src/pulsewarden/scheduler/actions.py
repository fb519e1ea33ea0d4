"""Action dispatch for heartbeat check results.

This module defines:
- ActionResult: Outcome of one triggered action
- ActionDispatcher: Evaluates a check's triggers and runs the matching actions
- render_template: Placeholder substitution for action messages
"""

import asyncio
import re
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import httpx

from pulsewarden.logging import get_logger
from pulsewarden.notifications.dispatcher import (
    LogNotificationChannel,
    Notification,
    NotificationDispatcher,
    NotificationPriority,
    NotificationType,
)
from pulsewarden.scheduler.errors import WebhookDeliveryError
from pulsewarden.scheduler.interfaces import Analyzer, Brain, TaskRunner
from pulsewarden.scheduler.models import (
    ActionTrigger,
    ActionType,
    CheckResult,
    CheckStatus,
    TaskDefinition,
)

log = get_logger("pulsewarden.scheduler.actions")

SOURCE_TAG = "pulsewarden"

DEFAULT_NOTIFY_TEMPLATE = "[{{result.status}}] {{check.name}}: {{result.message}}"
DEFAULT_REMEMBER_TEMPLATE = (
    "Heartbeat check {{check.name}} ({{check.type}}) reported {{result.status}}: "
    "{{result.message}}"
)
DEFAULT_ANALYZE_PROMPT = (
    "Heartbeat check {{check.name}} ({{check.type}}) finished with status "
    "{{result.status}}: {{result.message}}\n"
    "Explain the likely cause and suggest a next step."
)

_PLACEHOLDER_RE = re.compile(r"\{\{\s*([A-Za-z_.]+)\s*\}\}")

_STATUS_PRIORITY = {
    CheckStatus.OK: NotificationPriority.LOW,
    CheckStatus.WARNING: NotificationPriority.HIGH,
    CheckStatus.ERROR: NotificationPriority.CRITICAL,
}

_STATUS_NOTIFICATION = {
    CheckStatus.OK: NotificationType.CHECK_OK,
    CheckStatus.WARNING: NotificationType.CHECK_WARNING,
    CheckStatus.ERROR: NotificationType.CHECK_ERROR,
}


def render_template(
    template: str,
    task: TaskDefinition,
    result: CheckResult,
    now: datetime | None = None,
) -> str:
    """Substitute the known ``{{...}}`` placeholders; unknown ones are kept."""
    values = {
        "check.name": task.name,
        "check.type": task.type.value,
        "result.status": result.status.value,
        "result.message": result.message,
        "result.duration_ms": str(result.duration_ms),
        "result.durationMs": str(result.duration_ms),
        "result.error_detail": result.error_detail or "",
        "timestamp": (now or datetime.now(UTC)).isoformat(),
    }
    return _PLACEHOLDER_RE.sub(lambda m: values.get(m.group(1), m.group(0)), template)


@dataclass
class ActionResult:
    """Result of executing one triggered action."""

    check_name: str
    action: ActionType
    success: bool = True
    message: str | None = None
    error: str | None = None
    attempts: int = 1

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {
            "check_name": self.check_name,
            "action": self.action.value,
            "success": self.success,
            "message": self.message,
            "error": self.error,
            "attempts": self.attempts,
        }


_ActionHandler = Callable[[TaskDefinition, CheckResult, ActionTrigger], Awaitable[ActionResult]]


class ActionDispatcher:
    """Runs the actions a check result triggers.

    Handles the action types:
    - webhook: POST (or other method) a JSON payload, with retries
    - notify: Route an alert through the notification dispatcher
    - remember: Store the result in the memory subsystem
    - execute: Hand the result to the sandboxed task runner
    - llm_analyze: Ask the model subsystem to analyse the result

    Every trigger is isolated: a failing action is logged and reported in its
    ActionResult, and the remaining triggers still run.
    """

    def __init__(
        self,
        brain: Brain | None = None,
        notifier: NotificationDispatcher | None = None,
        task_runner: TaskRunner | None = None,
        analyzer: Analyzer | None = None,
        http_client: httpx.AsyncClient | None = None,
        default_timeout_ms: int = 5_000,
        clock: Callable[[], datetime] | None = None,
    ):
        """Initialize the action dispatcher.

        Args:
            brain: Memory store for ``remember`` actions.
            notifier: Notification dispatcher; defaults to one that logs alerts.
            task_runner: Sandboxed execution for ``execute`` actions.
            analyzer: Model inference for ``llm_analyze`` actions.
            http_client: Client for webhooks; created lazily when omitted.
            default_timeout_ms: Webhook attempt timeout when a trigger sets none.
            clock: Source of the current instant.
        """
        self._brain = brain
        self._notifier = notifier or NotificationDispatcher(channels=[LogNotificationChannel()])
        self._task_runner = task_runner
        self._analyzer = analyzer
        self._client = http_client
        self._owns_client = http_client is None
        self._default_timeout_ms = default_timeout_ms
        self._clock = clock or (lambda: datetime.now(UTC))
        self._handlers: dict[ActionType, _ActionHandler] = {
            ActionType.WEBHOOK: self._handle_webhook,
            ActionType.NOTIFY: self._handle_notify,
            ActionType.REMEMBER: self._handle_remember,
            ActionType.EXECUTE: self._handle_execute,
            ActionType.LLM_ANALYZE: self._handle_llm_analyze,
        }

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self._client

    async def close(self) -> None:
        """Close the HTTP client if this dispatcher created it."""
        if self._owns_client and self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None
            log.debug("action_dispatcher_client_closed")

    async def dispatch(
        self,
        task: TaskDefinition,
        result: CheckResult,
        default_actions: Sequence[ActionTrigger] = (),
    ) -> list[ActionResult]:
        """Run every trigger whose condition matches the result.

        Task triggers run first, then ``default_actions``; all are evaluated
        independently. Never raises.

        Returns:
            Results for the triggers that fired, in firing order.
        """
        results: list[ActionResult] = []
        for trigger in [*task.actions, *default_actions]:
            if not trigger.matches(result.status):
                continue

            log.debug(
                "executing_action",
                check=task.name,
                action=trigger.action.value,
                condition=trigger.condition.value,
            )
            try:
                outcome = await self._handlers[trigger.action](task, result, trigger)
            except Exception as e:
                log.error(
                    "action_failed",
                    check=task.name,
                    action=trigger.action.value,
                    error=str(e),
                )
                outcome = ActionResult(
                    check_name=task.name,
                    action=trigger.action,
                    success=False,
                    error=str(e),
                )
            results.append(outcome)
        return results

    def _render(self, template: str, task: TaskDefinition, result: CheckResult) -> str:
        return render_template(template, task, result, now=self._clock())

    # ------------------------------------------------------------------
    # webhook
    # ------------------------------------------------------------------

    def _webhook_payload(
        self, task: TaskDefinition, result: CheckResult, config: dict[str, Any]
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "check": {"name": task.name, "type": task.type.value},
            "result": {
                "status": result.status.value,
                "message": result.message,
                "duration_ms": result.duration_ms,
                "error_detail": result.error_detail,
                "data": result.data,
            },
            "source": SOURCE_TAG,
            "timestamp": self._clock().isoformat(),
        }
        template = config.get("message_template")
        if template:
            payload["message"] = self._render(str(template), task, result)
        return payload

    async def _deliver_webhook(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        payload: dict[str, Any],
        timeout: float,
    ) -> int:
        """Make one webhook attempt, returning the status code.

        ``timeout`` bounds the whole attempt, not just each httpx phase.

        Raises:
            WebhookDeliveryError: On a network error, timeout or non-2xx response.
        """
        client = await self._get_client()
        try:
            async with asyncio.timeout(timeout):
                response = await client.request(
                    method, url, headers=headers, json=payload, timeout=timeout
                )
        except TimeoutError as e:
            raise WebhookDeliveryError(f"Request timed out after {timeout:g}s") from e
        except httpx.HTTPError as e:
            raise WebhookDeliveryError(f"Request failed: {e}") from e

        if not response.is_success:
            raise WebhookDeliveryError(
                f"Webhook returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
        return response.status_code

    async def _handle_webhook(
        self, task: TaskDefinition, result: CheckResult, trigger: ActionTrigger
    ) -> ActionResult:
        config = trigger.config
        url = config.get("url")
        if not url:
            return ActionResult(
                check_name=task.name,
                action=ActionType.WEBHOOK,
                success=False,
                error="No webhook url configured",
            )

        method = str(config.get("method", "POST")).upper()
        headers = {"Content-Type": "application/json", **(config.get("headers") or {})}
        timeout = float(config.get("timeout_ms", self._default_timeout_ms)) / 1000
        retry_delay = max(0.0, float(config.get("retry_delay_ms", 1000))) / 1000
        attempts = 1 + max(0, int(config.get("retry_count", 0)))
        payload = self._webhook_payload(task, result, config)

        last_error: str | None = None
        for attempt in range(1, attempts + 1):
            try:
                status_code = await self._deliver_webhook(method, url, headers, payload, timeout)
            except WebhookDeliveryError as e:
                last_error = str(e)
                log.warning(
                    "webhook_attempt_failed",
                    check=task.name,
                    url=url,
                    attempt=attempt,
                    attempts=attempts,
                    error=last_error,
                )
                if attempt < attempts:
                    await asyncio.sleep(retry_delay)
                continue

            log.info(
                "webhook_delivered",
                check=task.name,
                url=url,
                status_code=status_code,
                attempt=attempt,
            )
            return ActionResult(
                check_name=task.name,
                action=ActionType.WEBHOOK,
                success=True,
                message=f"Delivered with HTTP {status_code}",
                attempts=attempt,
            )

        log.error("webhook_failed", check=task.name, url=url, attempts=attempts, error=last_error)
        return ActionResult(
            check_name=task.name,
            action=ActionType.WEBHOOK,
            success=False,
            error=last_error,
            attempts=attempts,
        )

    # ------------------------------------------------------------------
    # notify / remember
    # ------------------------------------------------------------------

    async def _handle_notify(
        self, task: TaskDefinition, result: CheckResult, trigger: ActionTrigger
    ) -> ActionResult:
        config = trigger.config
        message = self._render(
            str(config.get("message_template") or DEFAULT_NOTIFY_TEMPLATE), task, result
        )
        priority = (
            NotificationPriority(config["priority"])
            if config.get("priority")
            else _STATUS_PRIORITY[result.status]
        )
        notification = Notification(
            type=_STATUS_NOTIFICATION[result.status],
            title=str(config.get("title") or f"Heartbeat check {task.name}: {result.status.value}"),
            message=message,
            priority=priority,
            metadata={
                "check_name": task.name,
                "check_type": task.type.value,
                "status": result.status.value,
            },
        )

        sent = await self._notifier.dispatch(notification)
        return ActionResult(
            check_name=task.name,
            action=ActionType.NOTIFY,
            success=sent > 0,
            message=f"Notified {sent} channel(s)" if sent else None,
            error=None if sent else "No channel accepted the notification",
        )

    async def _handle_remember(
        self, task: TaskDefinition, result: CheckResult, trigger: ActionTrigger
    ) -> ActionResult:
        if self._brain is None:
            log.warning("no_memory_store", check=task.name)
            return ActionResult(
                check_name=task.name,
                action=ActionType.REMEMBER,
                success=False,
                error="Memory store not available",
            )

        config = trigger.config
        content = self._render(
            str(config.get("message_template") or DEFAULT_REMEMBER_TEMPLATE), task, result
        )
        await self._brain.remember(
            str(config.get("memory_type", "episodic")),
            content,
            str(config.get("category", "heartbeat")),
            {"check_name": task.name, "check_type": task.type.value},
            float(config.get("importance", 0.5)),
        )
        return ActionResult(
            check_name=task.name,
            action=ActionType.REMEMBER,
            success=True,
            message="Memory recorded",
        )

    # ------------------------------------------------------------------
    # execute / llm_analyze
    # ------------------------------------------------------------------

    async def _handle_execute(
        self, task: TaskDefinition, result: CheckResult, trigger: ActionTrigger
    ) -> ActionResult:
        if self._task_runner is None:
            log.warning("no_task_runner", check=task.name)
            return ActionResult(
                check_name=task.name,
                action=ActionType.EXECUTE,
                success=False,
                error="Task runner not available",
            )

        task_name = str(trigger.config.get("task_name") or task.name)
        task_input = dict(trigger.config.get("task_input") or {})
        task_input.setdefault("check_result", result.to_dict())

        await self._task_runner.run_task(task_name, task_input)
        log.info("heartbeat_task_executed", check=task.name, task_name=task_name)
        return ActionResult(
            check_name=task.name,
            action=ActionType.EXECUTE,
            success=True,
            message=f"Task {task_name} executed",
        )

    async def _handle_llm_analyze(
        self, task: TaskDefinition, result: CheckResult, trigger: ActionTrigger
    ) -> ActionResult:
        if self._analyzer is None:
            log.warning("no_analyzer", check=task.name)
            return ActionResult(
                check_name=task.name,
                action=ActionType.LLM_ANALYZE,
                success=False,
                error="Analyzer not available",
            )

        config = trigger.config
        prompt = self._render(str(config.get("prompt") or DEFAULT_ANALYZE_PROMPT), task, result)
        analysis = await self._analyzer.analyze(prompt)
        log.info("heartbeat_analysis_complete", check=task.name, length=len(analysis))

        if config.get("remember") and self._brain is not None:
            await self._brain.remember(
                "episodic",
                f"Analysis of heartbeat check {task.name}: {analysis}",
                str(config.get("category", "heartbeat")),
                {"check_name": task.name, "check_type": task.type.value},
                float(config.get("importance", 0.5)),
            )

        return ActionResult(
            check_name=task.name,
            action=ActionType.LLM_ANALYZE,
            success=True,
            message=analysis,
        )
