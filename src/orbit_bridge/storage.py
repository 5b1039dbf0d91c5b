"""PostgreSQL storage for messages, tasks and keyword rules.

Follows the usual asyncpg.Pool pattern: create the pool at start-up, hand it
to ``initialize(pool)`` (which creates any missing tables), then use the
async methods for reads and writes. Every driver or connection failure is
re-raised as ``PersistenceError``.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from typing import Any

import asyncpg  # type: ignore[import-not-found,import-untyped]

from orbit_bridge.errors import PersistenceError
from orbit_bridge.logging import get_logger
from orbit_bridge.models import KeywordRule, Message, Task, TaskStatus

log = get_logger("orbit_bridge.storage")

# ------------------------------------------------------------------
# DDL
# ------------------------------------------------------------------

_CREATE_MESSAGES_TABLE = """
CREATE TABLE IF NOT EXISTS telegram_messages (
    id            BIGSERIAL PRIMARY KEY,
    telegram_id   BIGINT NOT NULL,
    chat_id       BIGINT NOT NULL,
    user_id       BIGINT NOT NULL,
    username      TEXT,
    first_name    TEXT,
    text          TEXT,
    transcription TEXT,
    message_type  TEXT NOT NULL DEFAULT 'text'
                  CHECK (message_type IN ('text', 'voice', 'audio', 'photo', 'document')),
    raw_data      JSONB,
    read          BOOLEAN NOT NULL DEFAULT false,
    timestamp     TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    project_id    TEXT NOT NULL DEFAULT 'uncategorized'
);
CREATE INDEX IF NOT EXISTS idx_telegram_messages_read
    ON telegram_messages (read);
CREATE INDEX IF NOT EXISTS idx_telegram_messages_timestamp
    ON telegram_messages (timestamp DESC);
"""

_CREATE_TASKS_TABLE = """
CREATE TABLE IF NOT EXISTS orbit_tasks (
    id            BIGSERIAL PRIMARY KEY,
    project_id    TEXT NOT NULL,
    source        TEXT NOT NULL CHECK (source IN ('telegram', 'manual')),
    source_msg_id BIGINT REFERENCES telegram_messages(id) ON DELETE SET NULL,
    title         TEXT NOT NULL,
    body          TEXT,
    status        TEXT NOT NULL DEFAULT 'pending'
                  CHECK (status IN ('pending', 'in_progress', 'done')),
    priority      SMALLINT NOT NULL DEFAULT 0 CHECK (priority BETWEEN 0 AND 2),
    created_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at    TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    completed_at  TIMESTAMPTZ
);
CREATE INDEX IF NOT EXISTS idx_orbit_tasks_project_status
    ON orbit_tasks (project_id, status);
CREATE INDEX IF NOT EXISTS idx_orbit_tasks_source_msg
    ON orbit_tasks (source_msg_id);
"""

_CREATE_KEYWORDS_TABLE = """
CREATE TABLE IF NOT EXISTS orbit_project_keywords (
    id          SERIAL PRIMARY KEY,
    keyword     TEXT NOT NULL,
    project_id  TEXT NOT NULL,
    priority    INTEGER NOT NULL DEFAULT 0
);
"""

# Columns a PATCH may touch, in the order they are written
_TASK_UPDATE_COLUMNS = ("status", "priority", "project_id", "title", "updated_at", "completed_at")

_DRIVER_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class BridgeStorage:
    """asyncpg-backed store for the bridge's three tables."""

    def __init__(self) -> None:
        self._pool: asyncpg.Pool | None = None

    async def initialize(self, pool: asyncpg.Pool) -> None:
        """Create tables and store the connection pool."""
        self._pool = pool
        async with self._connection() as conn:
            await conn.execute(_CREATE_MESSAGES_TABLE)
            await conn.execute(_CREATE_TASKS_TABLE)
            await conn.execute(_CREATE_KEYWORDS_TABLE)
        log.info("bridge_storage_initialized")

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[Any]:
        if self._pool is None:
            raise PersistenceError("storage is not initialized")
        try:
            async with self._pool.acquire() as conn:
                yield conn
        except _DRIVER_ERRORS as exc:
            raise PersistenceError(str(exc) or exc.__class__.__name__) from exc

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def insert_message(self, message: Message) -> Message:
        """Insert a message and return it with its store id."""
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO telegram_messages
                    (telegram_id, chat_id, user_id, username, first_name, text,
                     transcription, message_type, raw_data, read, timestamp, project_id)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
                RETURNING *
                """,
                message.telegram_id,
                message.chat_id,
                message.user_id,
                message.username,
                message.first_name,
                message.text,
                message.transcription,
                message.message_type.value,
                json.dumps(message.raw_data),
                message.read,
                message.timestamp,
                message.project_id,
            )
        if row is None:
            raise PersistenceError("insert into telegram_messages returned no row")
        return Message.from_record(dict(row))

    async def list_unread_messages(self) -> list[Message]:
        """Unread messages, oldest first."""
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT * FROM telegram_messages WHERE read = false ORDER BY timestamp ASC"
            )
        return [Message.from_record(dict(r)) for r in rows]

    async def list_latest_messages(self, limit: int) -> list[Message]:
        """The ``limit`` most recent messages, newest first."""
        async with self._connection() as conn:
            rows = await conn.fetch(
                "SELECT * FROM telegram_messages ORDER BY timestamp DESC LIMIT $1",
                limit,
            )
        return [Message.from_record(dict(r)) for r in rows]

    async def mark_messages_read(self, ids: Sequence[int]) -> int:
        """Flag the given message ids as read; returns the number of rows touched."""
        async with self._connection() as conn:
            result = await conn.execute(
                "UPDATE telegram_messages SET read = true WHERE id = ANY($1::bigint[])",
                list(ids),
            )
        return _affected_rows(result)

    async def update_message_project(self, message_id: int, project_id: str) -> int:
        async with self._connection() as conn:
            result = await conn.execute(
                "UPDATE telegram_messages SET project_id = $2 WHERE id = $1",
                message_id,
                project_id,
            )
        return _affected_rows(result)

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def insert_task(self, task: Task) -> Task:
        """Insert a task and return it with its id and timestamps."""
        async with self._connection() as conn:
            row = await conn.fetchrow(
                """
                INSERT INTO orbit_tasks
                    (project_id, source, source_msg_id, title, body, status, priority)
                VALUES ($1, $2, $3, $4, $5, $6, $7)
                RETURNING *
                """,
                task.project_id,
                task.source.value,
                task.source_msg_id,
                task.title,
                task.body,
                task.status.value,
                task.priority,
            )
        if row is None:
            raise PersistenceError("insert into orbit_tasks returned no row")
        return Task.from_record(dict(row))

    async def update_tasks_for_message(
        self, message_id: int, project_id: str, updated_at: Any
    ) -> int:
        """Move every task derived from ``message_id`` to ``project_id``."""
        async with self._connection() as conn:
            result = await conn.execute(
                """
                UPDATE orbit_tasks
                SET project_id = $2, updated_at = $3
                WHERE source_msg_id = $1
                """,
                message_id,
                project_id,
                updated_at,
            )
        return _affected_rows(result)

    async def list_tasks(
        self,
        project_id: str | None = None,
        status: TaskStatus | None = None,
        limit: int | None = None,
    ) -> list[Task]:
        """Tasks by priority (high first), then creation time (old first)."""
        clauses: list[str] = []
        params: list[Any] = []
        idx = 1

        if project_id:
            clauses.append(f"project_id = ${idx}")
            params.append(project_id)
            idx += 1

        if status is not None:
            clauses.append(f"status = ${idx}")
            params.append(status.value)
            idx += 1

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        query = f"SELECT * FROM orbit_tasks {where} ORDER BY priority DESC, created_at ASC"  # nosec B608
        if limit is not None:
            query += f" LIMIT ${idx}"
            params.append(limit)

        async with self._connection() as conn:
            rows = await conn.fetch(query, *params)
        return [Task.from_record(dict(r)) for r in rows]

    async def list_task_statuses(self) -> list[dict[str, Any]]:
        """Project id and status of every task, for summaries."""
        async with self._connection() as conn:
            rows = await conn.fetch("SELECT project_id, status FROM orbit_tasks")
        return [dict(r) for r in rows]

    async def update_task(self, task_id: int, fields: dict[str, Any]) -> Task | None:
        """Apply a partial update; returns the updated task or None if missing."""
        columns = [col for col in _TASK_UPDATE_COLUMNS if col in fields]
        if not columns:
            raise ValueError("no updatable task fields given")

        assignments = ", ".join(f"{col} = ${i}" for i, col in enumerate(columns, start=2))
        params = [_column_value(fields[col]) for col in columns]
        query = f"UPDATE orbit_tasks SET {assignments} WHERE id = $1 RETURNING *"  # nosec B608

        async with self._connection() as conn:
            row = await conn.fetchrow(query, task_id, *params)
        return Task.from_record(dict(row)) if row is not None else None

    # ------------------------------------------------------------------
    # Keyword rules
    # ------------------------------------------------------------------

    async def fetch_keyword_rules(self) -> list[KeywordRule]:
        """All keyword rules, highest priority first."""
        async with self._connection() as conn:
            rows = await conn.fetch(
                """
                SELECT keyword, project_id, priority
                FROM orbit_project_keywords
                ORDER BY priority DESC, id ASC
                """
            )
        return [KeywordRule.from_record(dict(r)) for r in rows]


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, TaskStatus) else value


def _affected_rows(status: str) -> int:
    """Parse the row count out of an asyncpg command tag like ``UPDATE 3``."""
    try:
        return int(str(status).rsplit(" ", 1)[-1])
    except ValueError:
        return 0
