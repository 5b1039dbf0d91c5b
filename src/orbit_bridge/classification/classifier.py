"""Three-phase keyword classifier.

Phase order is fixed and each phase short-circuits on its first match:

1. ``Prefix:`` rules whose keyword starts the message (rule order).
2. The text before an early colon equals a keyword exactly (rule order).
3. Any plain keyword occurring in the text, longest keyword first.

Phase 3 ignores rule priority; among plain keywords the longest match wins.
"""

from __future__ import annotations

from collections.abc import Sequence

from orbit_bridge.constants import COLON_PREFIX_MAX_INDEX, UNCATEGORIZED_PROJECT
from orbit_bridge.models import KeywordRule


def _match_prefix_rule(text: str, rules: Sequence[KeywordRule]) -> str | None:
    for rule in rules:
        if rule.is_prefix and text.startswith(rule.keyword.lower()):
            return rule.project_id
    return None


def _match_colon_split(text: str, rules: Sequence[KeywordRule]) -> str | None:
    colon_idx = text.find(":")
    if not 0 < colon_idx < COLON_PREFIX_MAX_INDEX:
        return None
    prefix = text[:colon_idx].strip()
    for rule in rules:
        if rule.keyword.lower() == prefix:
            return rule.project_id
    return None


def _match_substring(text: str, rules: Sequence[KeywordRule]) -> str | None:
    by_length = sorted(rules, key=lambda rule: len(rule.keyword), reverse=True)
    for rule in by_length:
        if not rule.is_prefix and rule.keyword.lower() in text:
            return rule.project_id
    return None


def classify(text: str | None, rules: Sequence[KeywordRule]) -> str:
    """Map message text to a project id.

    Args:
        text: Message body or transcript; may be empty or None.
        rules: Keyword rules in priority order (as served by KeywordCache).

    Returns:
        The matched project id, or ``"uncategorized"``.
    """
    if not text:
        return UNCATEGORIZED_PROJECT

    lower_text = text.lower().strip()
    for phase in (_match_prefix_rule, _match_colon_split, _match_substring):
        project_id = phase(lower_text, rules)
        if project_id is not None:
            return project_id

    return UNCATEGORIZED_PROJECT
