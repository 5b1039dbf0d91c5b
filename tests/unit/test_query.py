"""Unit tests for QueryService."""

from __future__ import annotations

from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock

import pytest

from orbit_bridge.errors import NotFoundError, PersistenceError, ValidationError
from orbit_bridge.models import KeywordRule, Task, TaskSource, TaskStatus
from orbit_bridge.query import QueryService, parse_priority, parse_status

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def storage() -> MagicMock:
    store = MagicMock()
    store.list_unread_messages = AsyncMock(return_value=[])
    store.list_latest_messages = AsyncMock(return_value=[])
    store.mark_messages_read = AsyncMock(return_value=2)
    store.update_message_project = AsyncMock(return_value=1)
    store.update_tasks_for_message = AsyncMock(return_value=1)
    store.list_tasks = AsyncMock(return_value=[])
    store.list_task_statuses = AsyncMock(return_value=[])
    store.update_task = AsyncMock(
        return_value=Task(id=7, project_id="orbit", title="Ship it", updated_at=NOW)
    )
    store.insert_task = AsyncMock(
        side_effect=lambda task: Task(**{**task.__dict__, "id": 99, "created_at": NOW})
    )
    return store


@pytest.fixture
def keyword_cache() -> MagicMock:
    cache = MagicMock()
    cache.get_rules = AsyncMock(
        return_value=[KeywordRule(keyword="Squire:", project_id="squire", priority=10)]
    )
    return cache


@pytest.fixture
def service(storage, keyword_cache) -> QueryService:
    return QueryService(storage, keyword_cache, clock=lambda: NOW)


class TestParsers:
    @pytest.mark.parametrize("value", ["pending", "in_progress", "done"])
    def test_parse_status_valid(self, value):
        assert parse_status(value).value == value

    @pytest.mark.parametrize("value", ["finished", "", None, 3])
    def test_parse_status_invalid(self, value):
        with pytest.raises(ValidationError, match="pending, in_progress, done"):
            parse_status(value)

    @pytest.mark.parametrize("value", [0, 1, 2])
    def test_parse_priority_valid(self, value):
        assert parse_priority(value) == value

    @pytest.mark.parametrize("value", [-1, 3, "1", 1.5, True])
    def test_parse_priority_invalid(self, value):
        with pytest.raises(ValidationError):
            parse_priority(value)


class TestMessages:
    async def test_list_unread(self, service, storage):
        await service.list_unread()
        storage.list_unread_messages.assert_awaited_once()

    async def test_list_latest_default_limit(self, service, storage):
        await service.list_latest(None)
        storage.list_latest_messages.assert_awaited_once_with(10)

    async def test_list_latest_custom_limit(self, service, storage):
        await service.list_latest(25)
        storage.list_latest_messages.assert_awaited_once_with(25)

    async def test_mark_read(self, service, storage):
        assert await service.mark_read([1, 2]) == 2
        storage.mark_messages_read.assert_awaited_once_with([1, 2])

    async def test_mark_read_empty_list_skips_store(self, service, storage):
        assert await service.mark_read([]) == 0
        storage.mark_messages_read.assert_not_awaited()

    @pytest.mark.parametrize("ids", [None, "1,2", [1, "2"], [True], {"ids": [1]}])
    async def test_mark_read_rejects_bad_ids(self, service, storage, ids):
        with pytest.raises(ValidationError, match="list of integers"):
            await service.mark_read(ids)
        storage.mark_messages_read.assert_not_awaited()


class TestAssignProject:
    async def test_moves_message_and_its_tasks(self, service, storage):
        await service.assign_project(101, "orbit")

        storage.update_message_project.assert_awaited_once_with(101, "orbit")
        storage.update_tasks_for_message.assert_awaited_once_with(101, "orbit", NOW)

    async def test_unknown_message_raises_not_found(self, service, storage):
        storage.update_message_project.return_value = 0

        with pytest.raises(NotFoundError, match="101"):
            await service.assign_project(101, "orbit")

        storage.update_tasks_for_message.assert_not_awaited()

    async def test_task_reassign_failure_is_tolerated(self, service, storage):
        storage.update_tasks_for_message.side_effect = PersistenceError("deadlock")

        await service.assign_project(101, "orbit")

        storage.update_message_project.assert_awaited_once()

    async def test_message_update_failure_propagates(self, service, storage):
        storage.update_message_project.side_effect = PersistenceError("db down")

        with pytest.raises(PersistenceError):
            await service.assign_project(101, "orbit")

    @pytest.mark.parametrize("project_id", [None, "", "   ", 5])
    async def test_project_id_required(self, service, storage, project_id):
        with pytest.raises(ValidationError, match="project_id"):
            await service.assign_project(101, project_id)
        storage.update_message_project.assert_not_awaited()


class TestTasks:
    async def test_list_tasks_with_filters(self, service, storage):
        await service.list_tasks(project_id="squire", status="in_progress", limit=5)

        storage.list_tasks.assert_awaited_once_with(
            project_id="squire", status=TaskStatus.IN_PROGRESS, limit=5
        )

    async def test_list_tasks_without_filters(self, service, storage):
        await service.list_tasks()

        storage.list_tasks.assert_awaited_once_with(project_id=None, status=None, limit=None)

    async def test_list_tasks_invalid_status(self, service, storage):
        with pytest.raises(ValidationError):
            await service.list_tasks(status="later")
        storage.list_tasks.assert_not_awaited()

    async def test_summary_counts_per_project_and_total(self, service, storage):
        storage.list_task_statuses.return_value = [
            {"project_id": "squire", "status": "pending"},
            {"project_id": "squire", "status": "pending"},
            {"project_id": "squire", "status": "done"},
            {"project_id": "orbit", "status": "in_progress"},
        ]

        summary = await service.summarize_tasks()

        assert summary == {
            "total": {"pending": 2, "in_progress": 1, "done": 1},
            "projects": {
                "squire": {"pending": 2, "in_progress": 0, "done": 1},
                "orbit": {"pending": 0, "in_progress": 1, "done": 0},
            },
        }

    async def test_summary_empty(self, service):
        summary = await service.summarize_tasks()

        assert summary == {"total": {"pending": 0, "in_progress": 0, "done": 0}, "projects": {}}


class TestUpdateTask:
    async def test_done_sets_completed_at(self, service, storage):
        await service.update_task(7, status="done")

        fields = storage.update_task.call_args.args[1]
        assert fields == {"updated_at": NOW, "status": TaskStatus.DONE, "completed_at": NOW}

    async def test_in_progress_does_not_set_completed_at(self, service, storage):
        await service.update_task(7, status="in_progress")

        fields = storage.update_task.call_args.args[1]
        assert "completed_at" not in fields
        assert fields["status"] is TaskStatus.IN_PROGRESS

    async def test_updated_at_always_set(self, service, storage):
        await service.update_task(7, title="Renamed")

        assert storage.update_task.call_args.args[1] == {"updated_at": NOW, "title": "Renamed"}

    async def test_priority_zero_is_applied(self, service, storage):
        await service.update_task(7, priority=0)

        assert storage.update_task.call_args.args[1]["priority"] == 0

    async def test_move_project(self, service, storage):
        await service.update_task(7, project_id="orbit")

        assert storage.update_task.call_args.args[1]["project_id"] == "orbit"

    async def test_unknown_task_raises_not_found(self, service, storage):
        storage.update_task.return_value = None

        with pytest.raises(NotFoundError, match="task 7"):
            await service.update_task(7, status="done")

    async def test_invalid_status_rejected_before_store(self, service, storage):
        with pytest.raises(ValidationError):
            await service.update_task(7, status="archived")
        storage.update_task.assert_not_awaited()

    async def test_invalid_priority_rejected_before_store(self, service, storage):
        with pytest.raises(ValidationError):
            await service.update_task(7, priority=5)
        storage.update_task.assert_not_awaited()

    async def test_overlong_title_rejected_before_store(self, service, storage):
        with pytest.raises(ValidationError, match="at most 80 characters"):
            await service.update_task(7, title="x" * 150)
        storage.update_task.assert_not_awaited()


class TestCreateTask:
    async def test_creates_manual_pending_task(self, service, storage):
        task = await service.create_task("orbit", "Write release notes", body="for 2.1")

        assert task.id == 99
        inserted = storage.insert_task.call_args.args[0]
        assert inserted.source is TaskSource.MANUAL
        assert inserted.status is TaskStatus.PENDING
        assert inserted.priority == 0
        assert inserted.body == "for 2.1"
        assert inserted.source_msg_id is None

    async def test_explicit_priority(self, service, storage):
        await service.create_task("orbit", "Hotfix", priority=2)

        assert storage.insert_task.call_args.args[0].priority == 2

    @pytest.mark.parametrize(
        ("project_id", "title"),
        [(None, "Title"), ("orbit", None), ("", "Title"), ("orbit", "")],
    )
    async def test_missing_fields_rejected(self, service, storage, project_id, title):
        with pytest.raises(ValidationError, match="project_id and title are required"):
            await service.create_task(project_id, title)
        storage.insert_task.assert_not_awaited()

    async def test_overlong_title_rejected(self, service, storage):
        with pytest.raises(ValidationError, match="at most 80 characters"):
            await service.create_task("orbit", "x" * 200)
        storage.insert_task.assert_not_awaited()

    async def test_title_at_limit_accepted(self, service, storage):
        await service.create_task("orbit", "y" * 80)

        assert storage.insert_task.call_args.args[0].title == "y" * 80

    async def test_store_failure_propagates(self, service, storage):
        storage.insert_task.side_effect = PersistenceError("insert failed")

        with pytest.raises(PersistenceError, match="insert failed"):
            await service.create_task("orbit", "Title")


async def test_get_keywords_reads_cache(service, keyword_cache):
    rules = await service.get_keywords()

    assert rules[0].project_id == "squire"
    keyword_cache.get_rules.assert_awaited_once()
