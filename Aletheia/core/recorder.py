"""Record classified candidates in the key store."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable

from Aletheia.core.result import Candidate, ConfidenceTier, Severity, utcnow
from Aletheia.store.base import KeyStore, MetadataUpsert
from Aletheia.utils.path_filters import severity_hint

logger = logging.getLogger(__name__)

_SEVERITY_RANK = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}

# A key can never be more severe than the confidence in its detection
_TIER_CAP = {
    ConfidenceTier.HIGH: Severity.HIGH,
    ConfidenceTier.MEDIUM: Severity.MEDIUM,
    ConfidenceTier.LOW: Severity.LOW,
}


def assess_severity(candidate: Candidate) -> Severity:
    """Severity from the file location, capped by the candidate's tier."""
    hinted = Severity(severity_hint(candidate.origin.location))
    cap = _TIER_CAP[candidate.confidence_tier]
    return max(hinted, cap, key=lambda s: _SEVERITY_RANK[s])


@dataclass(frozen=True)
class RecordResult:
    key_id: str
    is_new: bool


class KeyRecorder:
    """
    Insert-if-absent persistence of candidates, keyed by the secret's sha256.

    The raw secret goes only to the store's restricted side; the metadata
    upsert carries the masked preview.
    """

    def __init__(self, store: KeyStore, clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock

    def record(self, candidate: Candidate) -> RecordResult:
        """
        Persist a candidate if its secret has not been seen before.

        Raises:
            PersistenceError: If either write fails
        """
        key_id = candidate.key_id
        if self.store.get(key_id) is not None:
            return RecordResult(key_id=key_id, is_new=False)

        self.store.write_secret(key_id, candidate.raw_text)
        inserted = self.store.upsert_metadata(
            MetadataUpsert(
                key_id=key_id,
                provider_id=candidate.provider_id,
                confidence_tier=candidate.confidence_tier,
                origin=candidate.origin,
                first_seen=self.clock(),
                severity=assess_severity(candidate),
                key_preview=candidate.redacted_text,
                context_preview=candidate.context_preview,
            )
        )
        if inserted:
            logger.info(
                "New %s key %s (%s) at %s",
                candidate.provider_id, candidate.redacted_text, candidate.confidence_tier.value, candidate.origin,
            )
        return RecordResult(key_id=key_id, is_new=inserted)


__all__ = ["KeyRecorder", "RecordResult", "assess_severity"]
