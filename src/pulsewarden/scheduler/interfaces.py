"""Protocols for the subsystems the heartbeat talks to.

The memory store, audit ledger, integration manager, sandboxed task runner
and model inference live outside this package; the heartbeat only depends on
the narrow surface declared here.
"""

from typing import Any, Protocol


class Brain(Protocol):
    """Long-term memory store."""

    async def remember(
        self,
        memory_type: str,
        content: str,
        category: str,
        context: dict[str, str],
        importance: float,
    ) -> None:
        """Store a memory entry."""
        ...

    async def get_stats(self) -> dict[str, Any]:
        """Return counts for memories, knowledge and skills."""
        ...

    async def run_maintenance(self) -> dict[str, int]:
        """Decay and prune memories, returning ``{"decayed": n, "pruned": n}``."""
        ...

    def has_audit_storage(self) -> bool:
        """Whether audit logs can be queried."""
        ...

    async def query_audit_logs(
        self,
        levels: list[str],
        from_ms: int,
        limit: int,
    ) -> dict[str, Any]:
        """Query audit entries, returning ``{"entries": [...], "total": n}``."""
        ...


class AuditChain(Protocol):
    """Append-only audit ledger."""

    async def record(self, event: dict[str, Any]) -> None:
        """Append an event."""
        ...


class IntegrationManager(Protocol):
    """Registry of external integrations (chat platforms, calendars, ...)."""

    def get_running_count(self) -> int:
        """Number of integrations currently running."""
        ...


class TaskRunner(Protocol):
    """Sandboxed execution subsystem."""

    async def run_task(self, task_name: str, task_input: dict[str, Any]) -> Any:
        """Run a named task with input and return its output."""
        ...


class Analyzer(Protocol):
    """Model inference subsystem."""

    async def analyze(self, prompt: str) -> str:
        """Return the model's analysis of a prompt."""
        ...
