"""Telegram webhook ingestion.

This package provides:
- parse_update: boundary parser from raw update JSON to InboundMessage
- IngestionOrchestrator: transcribe, classify and persist one update
"""

from orbit_bridge.ingestion.orchestrator import (
    IngestionOrchestrator,
    IngestionResult,
    IngestionState,
)
from orbit_bridge.ingestion.updates import InboundMessage, detect_kind, parse_update

__all__ = [
    "InboundMessage",
    "IngestionOrchestrator",
    "IngestionResult",
    "IngestionState",
    "detect_kind",
    "parse_update",
]
