"""
Aletheia detectors package.

Provider rules, context checks and overlap resolution.
"""
from __future__ import annotations

from Aletheia.detectors.context import ContextValidator
from Aletheia.detectors.dedup import Deduplicator
from Aletheia.detectors.regex_patterns import DEFAULT_RULES, PatternLibrary, ProviderRule

__all__ = [
    "DEFAULT_RULES",
    "ContextValidator",
    "Deduplicator",
    "PatternLibrary",
    "ProviderRule",
]
