"""Heuristic task derivation.

A stored message becomes a pending task unless it is empty, short, or opens
like small talk ("hi", "ok", "are you ..."). Priority is read off a handful
of urgency words.
"""

from __future__ import annotations

import re

from orbit_bridge.constants import (
    MAX_TITLE_LENGTH,
    MIN_TASK_TEXT_LENGTH,
    TITLE_ELLIPSIS,
    UNTITLED_TASK,
)
from orbit_bridge.models import Message, Task, TaskSource, TaskStatus

# Anchored at the start only: "no" also catches "now ..." and "hi" catches "hide".
TRIVIAL_PATTERN = re.compile(
    r"^(sup|hi|hello|hey|yo|ok|yes|no|are you|test|listen|let me know)",
    re.IGNORECASE,
)
URGENT_PATTERN = re.compile(r"urgent|asap|now|immediately", re.IGNORECASE)
DEFERRED_PATTERN = re.compile(r"next|soon|important", re.IGNORECASE)

_WHITESPACE = re.compile(r"\s+")


def generate_title(text: str | None) -> str:
    """Collapse whitespace and cap the result at 80 characters."""
    if not text:
        return UNTITLED_TASK
    clean = _WHITESPACE.sub(" ", text).strip()
    if len(clean) <= MAX_TITLE_LENGTH:
        return clean
    return clean[: MAX_TITLE_LENGTH - len(TITLE_ELLIPSIS)] + TITLE_ELLIPSIS


def score_priority(text: str) -> int:
    """2 for urgent wording, 1 for deferred urgency, else 0."""
    if URGENT_PATTERN.search(text):
        return 2
    if DEFERRED_PATTERN.search(text):
        return 1
    return 0


def is_trivial(text: str) -> bool:
    """True for greetings, acknowledgements and other short chatter."""
    stripped = text.strip()
    return bool(TRIVIAL_PATTERN.match(stripped)) or len(stripped) <= MIN_TASK_TEXT_LENGTH


def derive_task(message: Message) -> Task | None:
    """Build a pending task for a stored message, or None if it isn't worth one."""
    text = message.text
    if not text or is_trivial(text):
        return None

    return Task(
        project_id=message.project_id,
        source=TaskSource.TELEGRAM,
        source_msg_id=message.id,
        title=generate_title(text),
        body=text,
        status=TaskStatus.PENDING,
        priority=score_priority(text),
    )
