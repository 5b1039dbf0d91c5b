"""Derivation of actionable tasks from stored messages."""

from orbit_bridge.tasks.deriver import derive_task, generate_title, is_trivial, score_priority

__all__ = ["derive_task", "generate_title", "is_trivial", "score_priority"]
