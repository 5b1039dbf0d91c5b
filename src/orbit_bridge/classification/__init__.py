"""Keyword-based project classification.

This package provides:
- KeywordCache: TTL-bounded read-through cache of keyword rules
- classify: three-phase keyword matcher mapping text to a project
"""

from orbit_bridge.classification.cache import KeywordCache
from orbit_bridge.classification.classifier import classify

__all__ = ["KeywordCache", "classify"]
