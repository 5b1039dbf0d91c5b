"""Voice and audio transcription for Telegram attachments."""

from orbit_bridge.transcription.transcriber import MediaTranscriber, audio_extension

__all__ = ["MediaTranscriber", "audio_extension"]
