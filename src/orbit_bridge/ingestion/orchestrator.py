"""Webhook ingestion orchestrator.

Coordinates the flow for one Telegram update:
1. Parse the update and work out the message kind and text
2. Transcribe voice/audio attachments (best effort)
3. Classify the text into a project
4. Persist the message
5. Derive and persist a task when the message warrants one

The HTTP layer calls ``accept()`` and answers immediately; processing runs
as a background task whose outcome is only visible in the logs.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

from orbit_bridge.classification import classify
from orbit_bridge.constants import TRANSCRIPTION_FAILED_TEMPLATE
from orbit_bridge.errors import IngestionError, PersistenceError, TranscriptionError
from orbit_bridge.ingestion.updates import InboundMessage, parse_update
from orbit_bridge.logging import get_logger
from orbit_bridge.tasks import derive_task
from orbit_bridge.utils import timed_operation

if TYPE_CHECKING:
    from orbit_bridge.classification import KeywordCache
    from orbit_bridge.storage import BridgeStorage
    from orbit_bridge.transcription import MediaTranscriber

log = get_logger("orbit_bridge.ingestion.orchestrator")


class IngestionState(Enum):
    """Where a single update's processing ended up."""

    RECEIVED = "received"
    TRANSCRIBING = "transcribing"
    CLASSIFYING = "classifying"
    PERSISTED = "persisted"
    TASK_DERIVED = "task_derived"
    DONE = "done"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class IngestionResult:
    """Outcome of processing one update.

    ``states`` lists every stage the update passed through; ``state`` is
    where it ended (done, skipped or failed).
    """

    states: list[IngestionState] = field(default_factory=lambda: [IngestionState.RECEIVED])
    message_id: int | None = None
    project_id: str | None = None
    task_id: int | None = None
    transcription: str | None = None
    error: str | None = None

    @property
    def state(self) -> IngestionState:
        return self.states[-1]

    def advance(self, state: IngestionState) -> None:
        self.states.append(state)


class IngestionOrchestrator:
    """Runs Telegram updates through transcription, classification and storage."""

    def __init__(
        self,
        *,
        storage: BridgeStorage,
        keyword_cache: KeywordCache,
        transcriber: MediaTranscriber | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            storage: Store for messages and tasks.
            keyword_cache: Source of classification rules.
            transcriber: Voice/audio transcriber; None when either the
                Telegram or the OpenAI credential is missing, in which
                case audio messages are stored without a transcript.
        """
        self._storage = storage
        self._keyword_cache = keyword_cache
        self._transcriber = transcriber
        self._pending: set[asyncio.Task[IngestionResult | None]] = set()

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    # ------------------------------------------------------------------
    # Fire-and-forget entry point
    # ------------------------------------------------------------------

    def accept(self, update: Any) -> asyncio.Task[IngestionResult | None]:
        """Schedule background processing of ``update`` and return at once."""
        task = asyncio.create_task(self.process(update))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for every in-flight ingestion to finish."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def process(self, update: Any) -> IngestionResult | None:
        """Process one update; never raises.

        Returns None when an unexpected error aborted processing.
        """
        try:
            async with timed_operation("webhook_processed", log=log) as timing:
                result = await self._run(update)
                timing["state"] = result.state.value
            return result
        except Exception:
            log.exception("webhook_processing_error")
            return None

    async def _run(self, update: Any) -> IngestionResult:
        result = IngestionResult()
        try:
            inbound = parse_update(update)
        except IngestionError as exc:
            log.info("webhook_update_skipped", reason=str(exc))
            result.error = str(exc)
            result.advance(IngestionState.SKIPPED)
            return result

        text = inbound.text
        if inbound.kind.is_audio and self._transcriber is not None:
            result.advance(IngestionState.TRANSCRIBING)
            transcript, ok = await self._transcribe(self._transcriber, inbound)
            result.transcription = transcript
            if ok and not text:
                text = transcript

        result.advance(IngestionState.CLASSIFYING)
        rules = await self._keyword_cache.get_rules()
        result.project_id = classify(text, rules)
        log.debug("message_classified", project_id=result.project_id, rule_count=len(rules))

        record = inbound.to_message(
            project_id=result.project_id,
            text=text,
            transcription=result.transcription,
        )
        try:
            stored = await self._storage.insert_message(record)
        except PersistenceError as exc:
            log.error("message_insert_failed", telegram_id=inbound.message_id, error=str(exc))
            result.error = str(exc)
            result.advance(IngestionState.FAILED)
            return result

        result.message_id = stored.id
        result.advance(IngestionState.PERSISTED)
        log.info(
            "message_stored",
            message_id=stored.id,
            message_type=stored.message_type.value,
            project_id=stored.project_id,
            has_text=bool(text),
        )

        candidate = derive_task(stored)
        if candidate is not None:
            try:
                task = await self._storage.insert_task(candidate)
            except PersistenceError as exc:
                log.error("task_insert_failed", message_id=stored.id, error=str(exc))
                result.error = str(exc)
            else:
                result.task_id = task.id
                result.advance(IngestionState.TASK_DERIVED)
                log.info(
                    "task_created",
                    task_id=task.id,
                    project_id=task.project_id,
                    priority=task.priority,
                )

        result.advance(IngestionState.DONE)
        return result

    async def _transcribe(
        self, transcriber: MediaTranscriber, inbound: InboundMessage
    ) -> tuple[str, bool]:
        """Return ``(transcript, True)`` or ``(failure placeholder, False)``."""
        if not inbound.file_id:
            return TRANSCRIPTION_FAILED_TEMPLATE.format(reason="attachment has no file_id"), False
        try:
            transcript = await transcriber.transcribe(inbound.file_id)
        except TranscriptionError as exc:
            log.warning("transcription_failed", telegram_id=inbound.message_id, error=str(exc))
            return TRANSCRIPTION_FAILED_TEMPLATE.format(reason=exc), False
        log.info("transcription_succeeded", telegram_id=inbound.message_id)
        return transcript, True
