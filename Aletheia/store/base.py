"""
Persistence interface.

Public metadata and raw secrets are kept apart: ``upsert_metadata`` never
receives the secret, which is written only through ``write_secret``. Status
changes arrive only through ``update_status``; nothing here deletes records.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from Aletheia.core.result import ConfidenceTier, Origin, Severity
from Aletheia.lifecycle.status import KeyRecord, KeyStatus, StatusTransition, StatusUpdate


@dataclass(frozen=True)
class MetadataUpsert:
    """Insert-if-absent request for a key's public metadata."""
    key_id: str
    provider_id: str
    confidence_tier: ConfidenceTier
    origin: Origin
    first_seen: datetime
    status: KeyStatus = KeyStatus.UNKNOWN
    severity: Severity = Severity.LOW
    key_preview: str = ""
    context_preview: str = ""

    def to_record(self) -> KeyRecord:
        return KeyRecord(
            key_id=self.key_id,
            provider_id=self.provider_id,
            status=self.status,
            confidence_tier=self.confidence_tier,
            first_seen=self.first_seen,
            origin=self.origin,
            severity=self.severity,
            key_preview=self.key_preview,
            context_preview=self.context_preview,
        )


class KeyStore(ABC):
    """
    Storage for key records, secrets and status history.

    Implementations raise PersistenceError when a write fails.
    """

    @abstractmethod
    def get(self, key_id: str) -> Optional[KeyRecord]:
        """The record for ``key_id``, or None."""

    @abstractmethod
    def list_records(self, status: Optional[KeyStatus] = None) -> List[KeyRecord]:
        """All records, optionally filtered by status, oldest first."""

    @abstractmethod
    def upsert_metadata(self, upsert: MetadataUpsert) -> bool:
        """Insert the record if absent. Returns True if it was inserted."""

    @abstractmethod
    def write_secret(self, key_id: str, secret: str) -> None:
        """Store the raw secret in restricted storage."""

    @abstractmethod
    def read_secret(self, key_id: str) -> Optional[str]:
        """The raw secret for ``key_id``, or None."""

    @abstractmethod
    def update_status(self, update: StatusUpdate) -> None:
        """Apply a status change to an existing record."""

    @abstractmethod
    def append_history(self, entry: StatusTransition) -> None:
        """Append a status history entry."""

    @abstractmethod
    def history(self, key_id: str) -> List[StatusTransition]:
        """History entries for ``key_id``, oldest first."""


__all__ = ["KeyStore", "MetadataUpsert"]
