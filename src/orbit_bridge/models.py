"""Data models for messages, keyword rules and tasks.

All models are plain dataclasses. ``from_record`` builds an instance from a
store row (asyncpg ``Record`` or dict) and ``to_dict`` produces the JSON
shape served by the HTTP API.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any

from orbit_bridge.constants import UNCATEGORIZED_PROJECT

# ------------------------------------------------------------------
# Enums
# ------------------------------------------------------------------


class MessageKind(Enum):
    """Shape of an inbound Telegram message."""

    TEXT = "text"
    VOICE = "voice"
    AUDIO = "audio"
    PHOTO = "photo"
    DOCUMENT = "document"

    @property
    def is_audio(self) -> bool:
        return self in (MessageKind.VOICE, MessageKind.AUDIO)


class TaskStatus(Enum):
    """Lifecycle state of a task."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    DONE = "done"


class TaskSource(Enum):
    """Where a task came from."""

    TELEGRAM = "telegram"
    MANUAL = "manual"


def _isoformat(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def _as_datetime(value: Any) -> datetime | None:
    if value is None or isinstance(value, datetime):
        return value
    return datetime.fromisoformat(str(value))


# ------------------------------------------------------------------
# Keyword rules
# ------------------------------------------------------------------


@dataclass(frozen=True)
class KeywordRule:
    """Maps a keyword or ``Prefix:`` phrase to a project."""

    keyword: str
    project_id: str
    priority: int = 0

    @property
    def is_prefix(self) -> bool:
        """Rules ending in a colon only match at the start of a message."""
        return self.keyword.endswith(":")

    def to_dict(self) -> dict[str, Any]:
        return {
            "keyword": self.keyword,
            "project_id": self.project_id,
            "priority": self.priority,
        }

    @classmethod
    def from_record(cls, row: Mapping[str, Any]) -> KeywordRule:
        return cls(
            keyword=str(row["keyword"]),
            project_id=str(row["project_id"]),
            priority=int(row.get("priority") or 0),
        )


# ------------------------------------------------------------------
# Messages
# ------------------------------------------------------------------


@dataclass
class Message:
    """A Telegram message as stored in ``telegram_messages``."""

    telegram_id: int
    chat_id: int
    user_id: int
    timestamp: datetime
    message_type: MessageKind = MessageKind.TEXT
    username: str | None = None
    first_name: str | None = None
    text: str | None = None
    transcription: str | None = None
    raw_data: dict[str, Any] = field(default_factory=dict)
    read: bool = False
    project_id: str = UNCATEGORIZED_PROJECT
    id: int | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "telegram_id": self.telegram_id,
            "chat_id": self.chat_id,
            "user_id": self.user_id,
            "username": self.username,
            "first_name": self.first_name,
            "text": self.text,
            "transcription": self.transcription,
            "message_type": self.message_type.value,
            "raw_data": self.raw_data,
            "read": self.read,
            "timestamp": _isoformat(self.timestamp),
            "created_at": _isoformat(self.created_at),
            "project_id": self.project_id,
        }

    @classmethod
    def from_record(cls, row: Mapping[str, Any]) -> Message:
        raw = row.get("raw_data")
        if isinstance(raw, str):
            raw = json.loads(raw)
        return cls(
            id=row["id"],
            telegram_id=row["telegram_id"],
            chat_id=row["chat_id"],
            user_id=row["user_id"],
            username=row.get("username"),
            first_name=row.get("first_name"),
            text=row.get("text"),
            transcription=row.get("transcription"),
            message_type=MessageKind(row.get("message_type") or MessageKind.TEXT.value),
            raw_data=raw or {},
            read=bool(row.get("read")),
            timestamp=_as_datetime(row["timestamp"]) or datetime.now(UTC),
            created_at=_as_datetime(row.get("created_at")),
            project_id=row.get("project_id") or UNCATEGORIZED_PROJECT,
        )


# ------------------------------------------------------------------
# Tasks
# ------------------------------------------------------------------


@dataclass
class Task:
    """A unit of work in ``orbit_tasks``, derived from a message or created by hand."""

    project_id: str
    title: str
    source: TaskSource = TaskSource.MANUAL
    body: str | None = None
    status: TaskStatus = TaskStatus.PENDING
    priority: int = 0
    source_msg_id: int | None = None
    id: int | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None
    completed_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "project_id": self.project_id,
            "source": self.source.value,
            "source_msg_id": self.source_msg_id,
            "title": self.title,
            "body": self.body,
            "status": self.status.value,
            "priority": self.priority,
            "created_at": _isoformat(self.created_at),
            "updated_at": _isoformat(self.updated_at),
            "completed_at": _isoformat(self.completed_at),
        }

    @classmethod
    def from_record(cls, row: Mapping[str, Any]) -> Task:
        return cls(
            id=row["id"],
            project_id=row["project_id"],
            source=TaskSource(row.get("source") or TaskSource.MANUAL.value),
            source_msg_id=row.get("source_msg_id"),
            title=row["title"],
            body=row.get("body"),
            status=TaskStatus(row.get("status") or TaskStatus.PENDING.value),
            priority=int(row.get("priority") or 0),
            created_at=_as_datetime(row.get("created_at")),
            updated_at=_as_datetime(row.get("updated_at")),
            completed_at=_as_datetime(row.get("completed_at")),
        )
