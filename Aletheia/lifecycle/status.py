"""
Key status lifecycle.

States and transitions::

    unknown --outcome--> valid | invalid
    valid | invalid --outcome--> valid | invalid   (re-verification)
    valid | invalid --reset--> unknown
    unknown | valid | invalid --revoke--> revoked   (terminal)

Unverifiable outcomes never transition. An outcome is stale, and ignored, if
its ``checked_at`` is not newer than both ``last_verified`` and the last
reset. All mutations of one key are serialised by a per-key lock and reach
the store only as a StatusUpdate.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Callable, Dict, Optional

from Aletheia.core.errors import InvalidTransitionError, PersistenceError
from Aletheia.core.result import ConfidenceTier, Origin, Severity, Verdict, VerificationOutcome, utcnow
from Aletheia.lifecycle.locks import KeyedLock

if TYPE_CHECKING:
    from Aletheia.store.base import KeyStore

logger = logging.getLogger(__name__)


class KeyStatus(Enum):
    UNKNOWN = "unknown"
    VALID = "valid"
    INVALID = "invalid"
    REVOKED = "revoked"


def _dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


@dataclass(frozen=True)
class KeyRecord:
    """
    Persisted lifecycle entity for one unique secret.

    Attributes:
        key_id: sha256 of the secret
        provider_id: Provider the secret belongs to
        status: Current status
        confidence_tier: Tier of the rule that first found it
        first_seen: When it was first recorded
        origin: Where it was first seen
        last_verified: checked_at of the last applied outcome
        severity: Triage severity
        key_preview: Masked secret for display
        context_preview: Redacted surrounding text
        last_reset: When the record was last reset to unknown
    """
    key_id: str
    provider_id: str
    status: KeyStatus
    confidence_tier: ConfidenceTier
    first_seen: datetime
    origin: Origin
    last_verified: Optional[datetime] = None
    severity: Severity = Severity.LOW
    key_preview: str = ""
    context_preview: str = ""
    last_reset: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_id": self.key_id,
            "provider": self.provider_id,
            "status": self.status.value,
            "confidence": self.confidence_tier.value,
            "first_seen": _iso(self.first_seen),
            "origin": self.origin.to_dict(),
            "last_verified": _iso(self.last_verified),
            "severity": self.severity.value,
            "key_preview": self.key_preview,
            "context_preview": self.context_preview,
            "last_reset": _iso(self.last_reset),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "KeyRecord":
        return cls(
            key_id=data["key_id"],
            provider_id=data["provider"],
            status=KeyStatus(data["status"]),
            confidence_tier=ConfidenceTier(data["confidence"]),
            first_seen=_dt(data["first_seen"]),
            origin=Origin.from_dict(data["origin"]),
            last_verified=_dt(data.get("last_verified")),
            severity=Severity(data.get("severity", "low")),
            key_preview=data.get("key_preview", ""),
            context_preview=data.get("context_preview", ""),
            last_reset=_dt(data.get("last_reset")),
        )


@dataclass(frozen=True)
class StatusUpdate:
    """The only form in which status changes reach the store."""
    key_id: str
    status: KeyStatus
    last_verified: Optional[datetime]
    last_reset: Optional[datetime] = None


@dataclass(frozen=True)
class StatusTransition:
    """History entry."""
    key_id: str
    from_status: KeyStatus
    to_status: KeyStatus
    at: datetime
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_id": self.key_id,
            "from": self.from_status.value,
            "to": self.to_status.value,
            "at": self.at.isoformat(),
            "reason": self.reason,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusTransition":
        return cls(
            key_id=data["key_id"],
            from_status=KeyStatus(data["from"]),
            to_status=KeyStatus(data["to"]),
            at=datetime.fromisoformat(data["at"]),
            reason=data.get("reason", ""),
        )


_VERDICT_STATUS = {
    Verdict.VALID: KeyStatus.VALID,
    Verdict.INVALID: KeyStatus.INVALID,
}


def transition(record: KeyRecord, outcome: VerificationOutcome) -> Optional[KeyRecord]:
    """
    Apply an outcome to a record without side effects.

    Returns:
        The updated record, or None if the outcome causes no transition
        (unverifiable, stale, or the record is revoked)
    """
    target = _VERDICT_STATUS.get(outcome.verdict)
    if target is None or record.status == KeyStatus.REVOKED:
        return None
    if record.last_verified is not None and outcome.checked_at <= record.last_verified:
        return None
    if record.last_reset is not None and outcome.checked_at <= record.last_reset:
        return None
    return replace(record, status=target, last_verified=outcome.checked_at)


class StatusLifecycle:
    """
    Args:
        store: Where records live
        clock: Timestamp source for resets, revocations and history
    """

    def __init__(self, store: "KeyStore", clock: Callable[[], datetime] = utcnow) -> None:
        self.store = store
        self.clock = clock
        self._locks = KeyedLock()

    def _load(self, key_id: str) -> KeyRecord:
        record = self.store.get(key_id)
        if record is None:
            raise KeyError(f"No record for key {key_id}")
        return record

    @staticmethod
    def _update_of(record: KeyRecord) -> StatusUpdate:
        return StatusUpdate(
            key_id=record.key_id,
            status=record.status,
            last_verified=record.last_verified,
            last_reset=record.last_reset,
        )

    def _commit(self, before: KeyRecord, after: KeyRecord, reason: str) -> KeyRecord:
        # Status and history land together: a failed history write restores the old status
        self.store.update_status(self._update_of(after))
        try:
            self.store.append_history(
                StatusTransition(
                    key_id=after.key_id,
                    from_status=before.status,
                    to_status=after.status,
                    at=self.clock(),
                    reason=reason,
                )
            )
        except PersistenceError:
            logger.error("History write for key %s failed, restoring %s", after.key_id[:12], before.status.value)
            self.store.update_status(self._update_of(before))
            raise
        logger.info("Key %s: %s -> %s (%s)", after.key_id[:12], before.status.value, after.status.value, reason)
        return after

    def apply_outcome(self, outcome: VerificationOutcome) -> KeyRecord:
        """
        Apply a verification outcome to its key.

        Returns:
            The record after the outcome (unchanged if it caused no transition)

        Raises:
            KeyError: No record exists for the outcome's key
        """
        if outcome.candidate_ref is None:
            raise KeyError("Outcome has no candidate_ref")
        with self._locks.hold(outcome.candidate_ref):
            record = self._load(outcome.candidate_ref)
            updated = transition(record, outcome)
            if updated is None:
                if outcome.verdict == Verdict.UNVERIFIABLE:
                    logger.info(
                        "Key %s unverifiable (%s), status stays %s",
                        record.key_id[:12], outcome.transport_error, record.status.value,
                    )
                else:
                    logger.debug("Ignored %s outcome for key %s", outcome.verdict.value, record.key_id[:12])
                return record
            return self._commit(record, updated, f"verified {outcome.verdict.value}")

    def reset(self, key_id: str) -> KeyRecord:
        """
        Return a key to unknown and clear ``last_verified``.

        Raises:
            InvalidTransitionError: The key is revoked
        """
        with self._locks.hold(key_id):
            record = self._load(key_id)
            if record.status == KeyStatus.REVOKED:
                raise InvalidTransitionError(f"Key {key_id} is revoked and cannot be reset")
            updated = replace(record, status=KeyStatus.UNKNOWN, last_verified=None, last_reset=self.clock())
            return self._commit(record, updated, "reset")

    def revoke(self, key_id: str) -> KeyRecord:
        """Mark a key revoked. ``last_verified`` is kept. Revoking twice is a no-op."""
        with self._locks.hold(key_id):
            record = self._load(key_id)
            if record.status == KeyStatus.REVOKED:
                return record
            updated = replace(record, status=KeyStatus.REVOKED)
            return self._commit(record, updated, "revoked")

    def reset_all(self) -> int:
        """Reset every valid or invalid key. Returns the number reset."""
        count = 0
        for record in self.store.list_records():
            if record.status in (KeyStatus.VALID, KeyStatus.INVALID):
                try:
                    self.reset(record.key_id)
                except InvalidTransitionError:
                    # Revoked concurrently
                    continue
                count += 1
        logger.info("Reset %d keys", count)
        return count


__all__ = [
    "KeyRecord",
    "KeyStatus",
    "StatusLifecycle",
    "StatusTransition",
    "StatusUpdate",
    "transition",
]
