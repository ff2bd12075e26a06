"""
Context checks for candidate secrets.

Some provider formats are structurally indistinguishable from generic hex or
alphanumeric strings. For those rules the only disambiguator is the text around
the match: the provider name, its SDK import, or the header it is sent in.
"""
from __future__ import annotations

import logging
import re
from typing import List, Optional, Pattern, Tuple

from Aletheia.core.errors import ConfigurationError
from Aletheia.core.result import Candidate
from Aletheia.detectors.regex_patterns import PatternLibrary, ProviderRule

logger = logging.getLogger(__name__)

DEFAULT_RADIUS = 200
PREVIEW_RADIUS = 60
REDACTION_MARKER = "[REDACTED_KEY]"

# Substrings that mark a token as documentation or a placeholder
PLACEHOLDER_MARKERS: Tuple[str, ...] = (
    "example",
    "placeholder",
    "your_api_key",
    "your-api-key",
    "yourapikey",
    "insert",
    "replace_me",
    "dummy",
    "fake",
    "xxxxxxxx",
    "redacted",
    "1234567890",
    "abcdefghij",
)

MIN_DISTINCT_CHARS = 6

_WHITESPACE: Pattern[str] = re.compile(r"\s+")


def looks_like_placeholder(token: str, prefix: str = "") -> bool:
    """
    Check whether a token is an obvious placeholder rather than a leaked key.

    Args:
        token: The matched text
        prefix: The rule prefix the token starts with; excluded from the
            distinct-character count

    Returns:
        True if the token carries a placeholder marker or its body is too
        repetitive to be a real key
    """
    lowered = token.lower()
    if any(marker in lowered for marker in PLACEHOLDER_MARKERS):
        return True
    body = token[len(prefix):] if prefix and token.startswith(prefix) else token
    return len(set(body)) < MIN_DISTINCT_CHARS


def matched_prefix(rule: ProviderRule, token: str) -> str:
    """Longest rule prefix the token starts with ('' for unprefixed rules)."""
    best = ""
    for prefix in rule.prefixes:
        if prefix and token.startswith(prefix) and len(prefix) > len(best):
            best = prefix
    return best


def redact_context(text: str, span: Tuple[int, int], radius: int = PREVIEW_RADIUS) -> str:
    """
    Build a short, display-safe preview of the text around a span.

    The secret itself is replaced with ``[REDACTED_KEY]`` and runs of
    whitespace are collapsed to single spaces.
    """
    start, end = span
    before = text[max(0, start - radius):start]
    after = text[end:end + radius]
    preview = f"{before}{REDACTION_MARKER}{after}"
    return _WHITESPACE.sub(" ", preview).strip()


class ContextValidator:
    """
    Keyword-window check for rules with required context.

    Args:
        radius: Characters of context taken on each side of the candidate
        library: Rules that candidates are resolved against by name (the
            default rule set if omitted)
    """

    def __init__(self, radius: int = DEFAULT_RADIUS, library: Optional[PatternLibrary] = None) -> None:
        if radius < 0:
            raise ValueError("radius must be non-negative")
        self.radius = radius
        self.library = library

    def rule_for(self, candidate: Candidate) -> ProviderRule:
        """
        Rule that produced a candidate.

        Raises:
            ConfigurationError: The library has no rule with that name
        """
        if self.library is None:
            self.library = PatternLibrary()
        if candidate.rule_name not in self.library:
            raise ConfigurationError(f"Unknown rule: {candidate.rule_name!r}")
        return self.library.get(candidate.rule_name)

    def window(self, text: str, span: Tuple[int, int]) -> str:
        """Lower-cased text within ``radius`` characters of the span (span included)."""
        start, end = span
        return text[max(0, start - self.radius):end + self.radius].lower()

    def matched_keywords(self, rule: ProviderRule, text: str, span: Tuple[int, int]) -> List[str]:
        """Distinct required keywords present in the window, sorted."""
        window = self.window(text, span)
        return sorted(k for k in rule.required_context_keywords if k in window)

    def check(self, rule: ProviderRule, text: str, span: Tuple[int, int]) -> bool:
        """Rule-level form of ``is_contextually_valid``."""
        if not rule.needs_context:
            return True
        found = self.matched_keywords(rule, text, span)
        if len(found) >= rule.min_context_matches:
            return True
        logger.debug(
            "Dropped %s candidate at %d:%d: %d/%d context keywords",
            rule.name, span[0], span[1], len(found), rule.min_context_matches,
        )
        return False

    def is_contextually_valid(
        self,
        candidate: Candidate,
        text: str,
        rule: Optional[ProviderRule] = None,
    ) -> bool:
        """
        Decide whether a candidate has enough supporting context.

        Args:
            candidate: Candidate whose span indexes into ``text``
            text: The blob the candidate was found in
            rule: Rule that produced the candidate; when omitted, it is
                looked up by name in the validator's library

        Returns:
            True if the rule has no context requirement, or if at least
            ``min_context_matches`` distinct keywords appear in the window

        Raises:
            ConfigurationError: ``rule`` is omitted and the library has no
                rule named ``candidate.rule_name``
        """
        if rule is None:
            rule = self.rule_for(candidate)
        return self.check(rule, text, candidate.span)


__all__ = [
    "ContextValidator",
    "DEFAULT_RADIUS",
    "PLACEHOLDER_MARKERS",
    "REDACTION_MARKER",
    "looks_like_placeholder",
    "matched_prefix",
    "redact_context",
]
