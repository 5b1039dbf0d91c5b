"""Centralized constants for Orbit Bridge."""

# Classification
UNCATEGORIZED_PROJECT = "uncategorized"
COLON_PREFIX_MAX_INDEX = 40

# Task derivation
MAX_TITLE_LENGTH = 80
TITLE_ELLIPSIS = "..."
UNTITLED_TASK = "Untitled task"
MIN_TASK_TEXT_LENGTH = 20
MAX_TASK_PRIORITY = 2

# Transcription
DEFAULT_AUDIO_EXTENSION = "oga"
AUDIO_CONTENT_TYPE = "audio/ogg"
TRANSCRIPTION_FAILED_TEMPLATE = "[transcription failed: {reason}]"

# Query defaults
DEFAULT_LATEST_LIMIT = 10

SERVICE_NAME = "telegram-bridge"
