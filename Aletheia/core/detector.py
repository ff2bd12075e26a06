"""
Classification pipeline for Aletheia.

Turns a raw text blob into labelled candidates: every applicable rule is run
over the blob, obvious placeholders and candidates lacking required context
are dropped, and overlapping matches are resolved by declared priority.
"""
from __future__ import annotations

import bisect
import logging
from typing import TYPE_CHECKING, List, Optional

from Aletheia.core.result import Candidate, Origin
from Aletheia.detectors.context import (
    ContextValidator,
    looks_like_placeholder,
    matched_prefix,
    redact_context,
)
from Aletheia.detectors.dedup import Deduplicator
from Aletheia.detectors.regex_patterns import PatternLibrary

if TYPE_CHECKING:
    from Aletheia.harvest.base import HarvestedBlob

logger = logging.getLogger(__name__)


def _line_starts(text: str) -> List[int]:
    starts = [0]
    idx = text.find("\n")
    while idx != -1:
        starts.append(idx + 1)
        idx = text.find("\n", idx + 1)
    return starts


class ClassificationPipeline:
    """
    Orchestrates PatternLibrary, ContextValidator and Deduplicator over one blob.

    Args:
        library: Rules to match with (the default rule set if omitted)
        validator: Context checker (radius 200 if omitted)
        deduplicator: Overlap resolver (built from the library's order if omitted)
        filter_placeholders: Drop tokens that look like documentation placeholders
    """

    def __init__(
        self,
        library: Optional[PatternLibrary] = None,
        validator: Optional[ContextValidator] = None,
        deduplicator: Optional[Deduplicator] = None,
        filter_placeholders: bool = True,
    ) -> None:
        self.library = library if library is not None else PatternLibrary()
        self.validator = validator or ContextValidator(library=self.library)
        if self.validator.library is None:
            self.validator.library = self.library
        self.deduplicator = deduplicator or Deduplicator(
            {rule.name: self.library.order_of(rule.name) for rule in self.library.rules}
        )
        self.filter_placeholders = filter_placeholders

    def classify(self, text: str, origin: Origin) -> List[Candidate]:
        """
        Classify one blob.

        Args:
            text: The blob's text
            origin: Where the blob came from

        Returns:
            Retained candidates, pairwise non-overlapping, sorted by position
        """
        if not text:
            return []

        line_starts = _line_starts(text)
        found: List[Candidate] = []

        for rule in self.library.rules_for(text):
            for match in rule.pattern.finditer(text):
                token = match.group(0)
                span = (match.start(), match.end())

                if self.filter_placeholders and looks_like_placeholder(token, matched_prefix(rule, token)):
                    logger.debug("Dropped placeholder-like %s match at %d", rule.name, span[0])
                    continue
                if not self.validator.check(rule, text, span):
                    continue

                found.append(
                    Candidate(
                        raw_text=token,
                        span=span,
                        provider_id=rule.provider_id,
                        confidence_tier=rule.tier,
                        origin=origin,
                        rule_name=rule.name,
                        line=bisect.bisect_right(line_starts, span[0]),
                        context_preview=redact_context(text, span),
                    )
                )

        retained = self.deduplicator.resolve(found)
        if retained:
            logger.debug("%s: %d candidates (%d before dedup)", origin, len(retained), len(found))
        return retained

    def classify_blob(self, blob: "HarvestedBlob") -> List[Candidate]:
        """Classify a harvested blob using its own origin."""
        return self.classify(blob.text, blob.origin)


__all__ = ["ClassificationPipeline"]
