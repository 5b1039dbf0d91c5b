"""Boundary parser for Telegram webhook updates.

Turns the loosely-typed update JSON into an ``InboundMessage``. Only the
fields the pipeline needs are lifted out; the full update is kept verbatim
as the audit blob stored alongside the message.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from orbit_bridge.errors import IngestionError
from orbit_bridge.models import Message, MessageKind

# Attachment keys checked in order; the first present decides the kind
_KIND_KEYS: tuple[tuple[str, MessageKind], ...] = (
    ("voice", MessageKind.VOICE),
    ("audio", MessageKind.AUDIO),
    ("photo", MessageKind.PHOTO),
    ("document", MessageKind.DOCUMENT),
)


@dataclass
class InboundMessage:
    """The parts of a Telegram message the ingestion pipeline works with."""

    message_id: int
    chat_id: int
    user_id: int
    date: datetime
    kind: MessageKind
    text: str | None = None
    username: str | None = None
    first_name: str | None = None
    file_id: str | None = None
    raw_update: dict[str, Any] = field(default_factory=dict)

    def to_message(
        self,
        *,
        project_id: str,
        text: str | None = None,
        transcription: str | None = None,
    ) -> Message:
        """Build the record to persist once text and project are settled."""
        return Message(
            telegram_id=self.message_id,
            chat_id=self.chat_id,
            user_id=self.user_id,
            username=self.username,
            first_name=self.first_name,
            text=text,
            transcription=transcription,
            message_type=self.kind,
            raw_data=self.raw_update,
            read=False,
            timestamp=self.date,
            project_id=project_id,
        )


def detect_kind(message: Mapping[str, Any]) -> MessageKind:
    """Voice, audio, photo or document by attachment key, else text."""
    for key, kind in _KIND_KEYS:
        if message.get(key):
            return kind
    return MessageKind.TEXT


def _require_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise IngestionError(f"update message has no valid {name}")
    return value


def _optional_str(value: Any) -> str | None:
    return value if isinstance(value, str) and value else None


def parse_update(update: Any) -> InboundMessage:
    """Parse a webhook update into an ``InboundMessage``.

    Raises:
        IngestionError: The update has no ``message``/``edited_message`` or
            the message lacks ids or a date.
    """
    if not isinstance(update, Mapping):
        raise IngestionError("update is not a JSON object")

    message = update.get("message") or update.get("edited_message")
    if not isinstance(message, Mapping):
        raise IngestionError("update has no message")

    chat = message.get("chat")
    sender = message.get("from")
    if not isinstance(chat, Mapping) or not isinstance(sender, Mapping):
        raise IngestionError("update message has no chat or sender")

    date = message.get("date")
    if isinstance(date, bool) or not isinstance(date, int | float):
        raise IngestionError("update message has no valid date")

    kind = detect_kind(message)
    file_id: str | None = None
    if kind.is_audio:
        attachment = message.get(kind.value)
        if isinstance(attachment, Mapping):
            file_id = _optional_str(attachment.get("file_id"))

    return InboundMessage(
        message_id=_require_int(message.get("message_id"), "message_id"),
        chat_id=_require_int(chat.get("id"), "chat.id"),
        user_id=_require_int(sender.get("id"), "from.id"),
        date=datetime.fromtimestamp(date, tz=UTC),
        kind=kind,
        text=_optional_str(message.get("text")) or _optional_str(message.get("caption")),
        username=_optional_str(sender.get("username")),
        first_name=_optional_str(sender.get("first_name")),
        file_id=file_id,
        raw_update=dict(update),
    )
