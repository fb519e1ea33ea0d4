"""Durable history of heartbeat check executions.

Provides append and filtered, paginated listing. ``PostgresHeartbeatLogStore``
follows the same ``asyncpg.Pool`` patterns as the rest of the platform;
``InMemoryHeartbeatLogStore`` keeps history for processes without a database.
Write failures propagate to the caller, which is expected to degrade them to a
warning.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol
from uuid import uuid4

import asyncpg  # type: ignore[import-not-found,import-untyped]

from pulsewarden.logging import get_logger
from pulsewarden.scheduler.models import CheckStatus, HeartbeatLogEntry

log = get_logger("pulsewarden.scheduler.log_store")

DEFAULT_LIMIT = 20
MAX_LIMIT = 200

HEARTBEAT_LOG_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS heartbeat_log (
    id              TEXT         PRIMARY KEY,
    seq             BIGSERIAL,
    check_name      TEXT         NOT NULL,
    personality_id  TEXT,
    ran_at          BIGINT       NOT NULL,
    status          TEXT         NOT NULL,
    message         TEXT         NOT NULL,
    duration_ms     INTEGER      NOT NULL DEFAULT 0,
    error_detail    TEXT
);

ALTER TABLE heartbeat_log ADD COLUMN IF NOT EXISTS seq BIGSERIAL;

CREATE INDEX IF NOT EXISTS idx_heartbeat_log_ran_at_seq
    ON heartbeat_log (ran_at DESC, seq DESC);
CREATE INDEX IF NOT EXISTS idx_heartbeat_log_check_name_seq
    ON heartbeat_log (check_name, ran_at DESC, seq DESC);
"""


@dataclass
class HeartbeatLogQuery:
    """Filter and pagination for listing heartbeat history.

    ``limit`` is clamped to ``[1, MAX_LIMIT]`` and a negative ``offset`` is
    treated as 0.
    """

    check_name: str | None = None
    status: CheckStatus | None = None
    limit: int = DEFAULT_LIMIT
    offset: int = 0
    ascending: bool = False

    def __post_init__(self) -> None:
        self.limit = min(max(int(self.limit), 1), MAX_LIMIT)
        self.offset = max(int(self.offset), 0)
        if self.status is not None:
            self.status = CheckStatus(self.status)


@dataclass
class HeartbeatLogPage:
    """One page of heartbeat history plus the unpaginated match count."""

    entries: list[HeartbeatLogEntry] = field(default_factory=list)
    total: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary."""
        return {"entries": [e.to_dict() for e in self.entries], "total": self.total}


class HeartbeatLogStore(Protocol):
    """Storage backend for heartbeat history."""

    async def persist(self, entry: HeartbeatLogEntry) -> HeartbeatLogEntry:
        """Store an entry, assigning an ``id`` when it has none."""
        ...

    async def list(self, query: HeartbeatLogQuery | None = None) -> HeartbeatLogPage:
        """List entries matching ``query``, newest first by default."""
        ...


def _with_id(entry: HeartbeatLogEntry) -> HeartbeatLogEntry:
    if entry.id is None:
        entry.id = str(uuid4())
    return entry


def _row_to_entry(row: asyncpg.Record) -> HeartbeatLogEntry:
    """Convert an ``asyncpg.Record`` to a :class:`HeartbeatLogEntry`."""
    return HeartbeatLogEntry(
        id=row["id"],
        check_name=row["check_name"],
        personality_id=row["personality_id"],
        ran_at=int(row["ran_at"]),
        status=CheckStatus(row["status"]),
        message=row["message"],
        duration_ms=int(row["duration_ms"]),
        error_detail=row["error_detail"],
    )


class PostgresHeartbeatLogStore:
    """PostgreSQL storage backend for heartbeat history.

    Accepts an existing asyncpg pool so there is only one connection pool
    per process.
    """

    def __init__(self, pool: asyncpg.Pool) -> None:  # type: ignore[type-arg]
        self._pool: asyncpg.Pool = pool  # type: ignore[type-arg]

    async def ensure_schema(self) -> None:
        """Create the heartbeat_log table and indexes if they don't exist."""
        try:
            async with self._pool.acquire() as conn:
                await conn.execute(HEARTBEAT_LOG_SCHEMA_SQL)
            log.info("heartbeat_log_schema_ensured")
        except asyncpg.PostgresError as exc:
            log.error("heartbeat_log_schema_creation_failed", error=str(exc))
            raise

    async def persist(self, entry: HeartbeatLogEntry) -> HeartbeatLogEntry:
        """Insert a single entry.

        Args:
            entry: The entry to insert; an ``id`` is generated if missing.

        Returns:
            The stored entry.
        """
        entry = _with_id(entry)
        async with self._pool.acquire() as conn:
            await conn.execute(
                """
                INSERT INTO heartbeat_log
                    (id, check_name, personality_id, ran_at, status,
                     message, duration_ms, error_detail)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8)
                """,
                entry.id,
                entry.check_name,
                entry.personality_id,
                entry.ran_at,
                entry.status.value,
                entry.message,
                entry.duration_ms,
                entry.error_detail,
            )
        log.debug("heartbeat_log_persisted", entry_id=entry.id, check_name=entry.check_name)
        return entry

    async def list(self, query: HeartbeatLogQuery | None = None) -> HeartbeatLogPage:
        """List entries matching the query, with the total match count."""
        query = query or HeartbeatLogQuery()

        clauses: list[str] = []
        params: list[Any] = []
        if query.check_name is not None:
            params.append(query.check_name)
            clauses.append(f"check_name = ${len(params)}")
        if query.status is not None:
            params.append(query.status.value)
            clauses.append(f"status = ${len(params)}")
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        order = "ASC" if query.ascending else "DESC"

        async with self._pool.acquire() as conn:
            total = await conn.fetchval(f"SELECT COUNT(*) FROM heartbeat_log {where}", *params)
            rows = await conn.fetch(
                f"""
                SELECT * FROM heartbeat_log
                {where}
                ORDER BY ran_at {order}, seq {order}
                LIMIT ${len(params) + 1} OFFSET ${len(params) + 2}
                """,  # nosec B608 - only placeholders are interpolated
                *params,
                query.limit,
                query.offset,
            )
        return HeartbeatLogPage(entries=[_row_to_entry(r) for r in rows], total=int(total or 0))


class InMemoryHeartbeatLogStore:
    """Process-local heartbeat history.

    Entries sharing a ``ran_at`` are ordered by insertion, matching the
    ``seq`` column of the PostgreSQL store.
    """

    def __init__(self) -> None:
        self._entries: list[tuple[int, HeartbeatLogEntry]] = []

    def __len__(self) -> int:
        return len(self._entries)

    async def persist(self, entry: HeartbeatLogEntry) -> HeartbeatLogEntry:
        entry = _with_id(entry)
        self._entries.append((len(self._entries), entry))
        return entry

    async def list(self, query: HeartbeatLogQuery | None = None) -> HeartbeatLogPage:
        query = query or HeartbeatLogQuery()
        matches = [
            (seq, e)
            for seq, e in self._entries
            if (query.check_name is None or e.check_name == query.check_name)
            and (query.status is None or e.status is query.status)
        ]
        matches.sort(key=lambda item: (item[1].ran_at, item[0]), reverse=not query.ascending)
        return HeartbeatLogPage(
            entries=[e for _, e in matches[query.offset : query.offset + query.limit]],
            total=len(matches),
        )
