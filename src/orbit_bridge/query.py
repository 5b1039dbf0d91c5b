"""Read/update surface for stored messages and tasks.

Validation happens here, before any store call. Store failures propagate as
``PersistenceError`` so the HTTP layer can report them; the one exception is
task reassignment after a message is moved, which is logged and tolerated.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from orbit_bridge.constants import DEFAULT_LATEST_LIMIT, MAX_TASK_PRIORITY, MAX_TITLE_LENGTH
from orbit_bridge.errors import NotFoundError, PersistenceError, ValidationError
from orbit_bridge.logging import get_logger
from orbit_bridge.models import KeywordRule, Message, Task, TaskSource, TaskStatus

if TYPE_CHECKING:
    from orbit_bridge.classification import KeywordCache
    from orbit_bridge.storage import BridgeStorage

log = get_logger("orbit_bridge.query")


def _utcnow() -> datetime:
    return datetime.now(UTC)


def parse_status(value: Any) -> TaskStatus:
    try:
        return TaskStatus(value)
    except ValueError:
        allowed = ", ".join(s.value for s in TaskStatus)
        raise ValidationError(f"status must be one of: {allowed}") from None


def parse_priority(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError("priority must be an integer")
    if not 0 <= value <= MAX_TASK_PRIORITY:
        raise ValidationError(f"priority must be between 0 and {MAX_TASK_PRIORITY}")
    return value


def _require_text(value: Any, name: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} is required")
    return value


def _require_title(value: Any) -> str:
    title = _require_text(value, "title")
    if len(title) > MAX_TITLE_LENGTH:
        raise ValidationError(f"title must be at most {MAX_TITLE_LENGTH} characters")
    return title


class QueryService:
    """Listing, read-marking, reassignment and task maintenance."""

    def __init__(
        self,
        storage: BridgeStorage,
        keyword_cache: KeywordCache,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._storage = storage
        self._keyword_cache = keyword_cache
        self._clock = clock

    # ------------------------------------------------------------------
    # Messages
    # ------------------------------------------------------------------

    async def list_unread(self) -> list[Message]:
        return await self._storage.list_unread_messages()

    async def list_latest(self, limit: int | None = DEFAULT_LATEST_LIMIT) -> list[Message]:
        if not limit or limit <= 0:
            limit = DEFAULT_LATEST_LIMIT
        return await self._storage.list_latest_messages(limit)

    async def mark_read(self, ids: Any) -> int:
        """Mark message ids read; returns how many rows changed."""
        if not isinstance(ids, list) or not all(
            isinstance(i, int) and not isinstance(i, bool) for i in ids
        ):
            raise ValidationError("ids must be a list of integers")
        if not ids:
            return 0
        return await self._storage.mark_messages_read(ids)

    async def assign_project(self, message_id: int, project_id: Any) -> None:
        """Move a message, and any task derived from it, to another project."""
        project_id = _require_text(project_id, "project_id")

        updated = await self._storage.update_message_project(message_id, project_id)
        if not updated:
            raise NotFoundError(f"message {message_id} not found")

        try:
            moved = await self._storage.update_tasks_for_message(
                message_id, project_id, self._clock()
            )
        except PersistenceError as exc:
            log.error("task_reassign_failed", message_id=message_id, error=str(exc))
            return
        log.info(
            "message_reassigned",
            message_id=message_id,
            project_id=project_id,
            tasks_moved=moved,
        )

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    async def list_tasks(
        self,
        project_id: str | None = None,
        status: str | None = None,
        limit: int | None = None,
    ) -> list[Task]:
        parsed_status = parse_status(status) if status else None
        return await self._storage.list_tasks(
            project_id=project_id or None,
            status=parsed_status,
            limit=limit,
        )

    async def summarize_tasks(self) -> dict[str, Any]:
        """Per-project task counts by status, plus overall totals."""
        rows = await self._storage.list_task_statuses()

        empty = {s.value: 0 for s in TaskStatus}
        total = dict(empty)
        projects: dict[str, dict[str, int]] = {}

        for row in rows:
            status = row["status"]
            counts = projects.setdefault(row["project_id"], dict(empty))
            counts[status] = counts.get(status, 0) + 1
            if status in total:
                total[status] += 1

        return {"total": total, "projects": projects}

    async def update_task(
        self,
        task_id: int,
        *,
        status: Any = None,
        priority: Any = None,
        project_id: Any = None,
        title: Any = None,
    ) -> Task:
        """Apply a partial update. Moving to done stamps ``completed_at``."""
        now = self._clock()
        fields: dict[str, Any] = {"updated_at": now}

        if status:
            fields["status"] = parse_status(status)
            if fields["status"] is TaskStatus.DONE:
                fields["completed_at"] = now
        if priority is not None:
            fields["priority"] = parse_priority(priority)
        if project_id:
            fields["project_id"] = _require_text(project_id, "project_id")
        if title:
            fields["title"] = _require_title(title)

        task = await self._storage.update_task(task_id, fields)
        if task is None:
            raise NotFoundError(f"task {task_id} not found")
        log.info("task_updated", task_id=task_id, fields=sorted(fields))
        return task

    async def create_task(
        self,
        project_id: Any,
        title: Any,
        body: Any = None,
        priority: Any = None,
    ) -> Task:
        """Create a manual task. Requires a project and a title."""
        if not project_id or not title:
            raise ValidationError("project_id and title are required")
        task = Task(
            project_id=_require_text(project_id, "project_id"),
            title=_require_title(title),
            body=body if isinstance(body, str) and body else None,
            priority=parse_priority(priority) if priority is not None else 0,
            source=TaskSource.MANUAL,
            status=TaskStatus.PENDING,
        )
        created = await self._storage.insert_task(task)
        log.info("task_created", task_id=created.id, project_id=created.project_id, manual=True)
        return created

    # ------------------------------------------------------------------
    # Keywords
    # ------------------------------------------------------------------

    async def get_keywords(self) -> list[KeywordRule]:
        return await self._keyword_cache.get_rules()
