"""Telegram voice/audio download and Whisper transcription.

Fetching a voice note is a two-call contract with the Bot API: ``getFile``
resolves the ``file_id`` to a server-side path, then the raw bytes are
downloaded from the file endpoint. The bytes are sent to OpenAI's audio
transcription endpoint as a single file.

No step is retried. Any failure surfaces as one ``TranscriptionError``.
"""

from __future__ import annotations

from typing import Any

import httpx
import openai

from orbit_bridge.constants import AUDIO_CONTENT_TYPE, DEFAULT_AUDIO_EXTENSION
from orbit_bridge.errors import TranscriptionError
from orbit_bridge.logging import get_logger

log = get_logger("orbit_bridge.transcription.transcriber")

TELEGRAM_API_BASE = "https://api.telegram.org"
DEFAULT_MODEL = "whisper-1"


def audio_extension(file_path: str) -> str:
    """Return the extension of the last path segment, or ``oga`` if it has none."""
    name = file_path.rsplit("/", 1)[-1]
    stem, dot, ext = name.rpartition(".")
    if not dot or not stem or not ext:
        return DEFAULT_AUDIO_EXTENSION
    return ext


class MediaTranscriber:
    """Downloads Telegram attachments and transcribes them with Whisper."""

    def __init__(
        self,
        bot_token: str,
        openai_api_key: str | None = None,
        *,
        api_base: str = TELEGRAM_API_BASE,
        model: str = DEFAULT_MODEL,
        timeout: float = 30.0,
        openai_client: openai.AsyncOpenAI | None = None,
    ) -> None:
        """Initialize the transcriber.

        Args:
            bot_token: Telegram bot token used for the file API.
            openai_api_key: OpenAI key; ignored when ``openai_client`` is given.
            api_base: Telegram Bot API base URL.
            model: OpenAI transcription model.
            timeout: HTTP timeout in seconds for Telegram requests.
            openai_client: Pre-built client (mainly for tests).
        """
        if not bot_token:
            raise ValueError("bot_token is required")
        if openai_client is None:
            if not openai_api_key:
                raise ValueError("openai_api_key is required")
            openai_client = openai.AsyncOpenAI(api_key=openai_api_key, max_retries=0)
        self._bot_token = bot_token
        self._api_base = api_base.rstrip("/")
        self._model = model
        self._timeout = timeout
        self._openai = openai_client

    # ------------------------------------------------------------------
    # Telegram file API
    # ------------------------------------------------------------------

    async def resolve_file_path(self, file_id: str) -> str:
        """Look up the download path for a Telegram ``file_id``."""
        url = f"{self._api_base}/bot{self._bot_token}/getFile"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url, params={"file_id": file_id})
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"Telegram getFile request failed: {exc}") from exc

        if not resp.is_success:
            raise TranscriptionError(f"Telegram getFile failed: {resp.status_code}")

        try:
            data: Any = resp.json()
        except ValueError as exc:
            raise TranscriptionError("Telegram getFile returned invalid JSON") from exc

        if not isinstance(data, dict):
            raise TranscriptionError("Telegram getFile returned an unexpected payload")
        if not data.get("ok"):
            raise TranscriptionError(f"Telegram getFile error: {data.get('description')}")

        result = data.get("result")
        if not isinstance(result, dict):
            raise TranscriptionError("Telegram getFile returned an unexpected payload")
        file_path = result.get("file_path")
        if not file_path:
            raise TranscriptionError("Telegram getFile error: no file_path in response")
        return str(file_path)

    async def download(self, file_path: str) -> bytes:
        """Fetch the raw bytes of a resolved Telegram file."""
        url = f"{self._api_base}/file/bot{self._bot_token}/{file_path}"
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                resp = await client.get(url)
        except httpx.HTTPError as exc:
            raise TranscriptionError(f"Telegram download request failed: {exc}") from exc

        if not resp.is_success:
            raise TranscriptionError(f"Telegram download failed: {resp.status_code}")
        return resp.content

    # ------------------------------------------------------------------
    # Speech-to-text
    # ------------------------------------------------------------------

    async def transcribe_bytes(self, audio: bytes, ext: str) -> str:
        """Send audio bytes to Whisper and return the transcript text."""
        try:
            result = await self._openai.audio.transcriptions.create(
                model=self._model,
                file=(f"voice.{ext}", audio, AUDIO_CONTENT_TYPE),
            )
        except openai.OpenAIError as exc:
            raise TranscriptionError(f"Whisper API error: {exc}") from exc
        return str(result.text)

    async def transcribe(self, file_id: str) -> str:
        """Resolve, download and transcribe a Telegram voice/audio file."""
        file_path = await self.resolve_file_path(file_id)
        audio = await self.download(file_path)
        ext = audio_extension(file_path)
        log.debug(
            "telegram_file_downloaded",
            file_path=file_path,
            size_bytes=len(audio),
            ext=ext,
        )
        transcript = await self.transcribe_bytes(audio, ext)
        log.info("audio_transcribed", ext=ext, transcript_length=len(transcript))
        return transcript

    async def close(self) -> None:
        """Close the OpenAI client."""
        await self._openai.close()
