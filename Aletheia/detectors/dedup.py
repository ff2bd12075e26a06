"""
Overlap resolution for candidates found in one blob.

A single physical secret often matches several rules: a provider-specific
prefixed rule and a generic hex or dash rule. Resolution is a greedy
interval selection in priority order (higher tier, then longer span, then
earlier rule registration), which guarantees no two retained candidates
overlap.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from Aletheia.core.result import Candidate

logger = logging.getLogger(__name__)


class Deduplicator:
    """
    Args:
        rule_order: Mapping of rule name to registration index. Rules not in
            the mapping sort after every registered rule.
    """

    def __init__(self, rule_order: Optional[Mapping[str, int]] = None) -> None:
        self.rule_order: Dict[str, int] = dict(rule_order or {})

    def priority(self, candidate: Candidate) -> Tuple[int, int, int, int]:
        """Sort key; smaller sorts first."""
        order = self.rule_order.get(candidate.rule_name, len(self.rule_order))
        return (candidate.confidence_tier.rank, -candidate.length, order, candidate.start)

    def resolve(self, candidates: Iterable[Candidate]) -> List[Candidate]:
        """
        Return the retained candidates, sorted by span start.

        Repeated occurrences of the same secret under the same provider are
        collapsed to the earliest one.
        """
        kept: List[Candidate] = []
        for candidate in sorted(candidates, key=self.priority):
            clash = next((k for k in kept if k.overlaps(candidate)), None)
            if clash is not None:
                logger.debug(
                    "Dropped %s match at %d:%d overlapping %s at %d:%d",
                    candidate.rule_name, candidate.start, candidate.end,
                    clash.rule_name, clash.start, clash.end,
                )
                continue
            kept.append(candidate)

        kept.sort(key=lambda c: c.start)

        seen = set()
        unique: List[Candidate] = []
        for candidate in kept:
            key = (candidate.provider_id, candidate.raw_text)
            if key in seen:
                logger.debug("Collapsed repeated %s secret at %d", candidate.provider_id, candidate.start)
                continue
            seen.add(key)
            unique.append(candidate)
        return unique


__all__ = ["Deduplicator"]
