from __future__ import annotations

import threading
from dataclasses import replace
from typing import Dict, List, Optional

from Aletheia.core.errors import PersistenceError
from Aletheia.lifecycle.status import KeyRecord, KeyStatus, StatusTransition, StatusUpdate
from Aletheia.store.base import KeyStore, MetadataUpsert


class InMemoryKeyStore(KeyStore):
    """Thread-safe store kept in process memory."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records: Dict[str, KeyRecord] = {}
        self._secrets: Dict[str, str] = {}
        self._history: List[StatusTransition] = []

    def get(self, key_id: str) -> Optional[KeyRecord]:
        with self._lock:
            return self._records.get(key_id)

    def list_records(self, status: Optional[KeyStatus] = None) -> List[KeyRecord]:
        with self._lock:
            records = list(self._records.values())
        if status is not None:
            records = [r for r in records if r.status == status]
        return records

    def upsert_metadata(self, upsert: MetadataUpsert) -> bool:
        with self._lock:
            if upsert.key_id in self._records:
                return False
            self._records[upsert.key_id] = upsert.to_record()
            return True

    def write_secret(self, key_id: str, secret: str) -> None:
        with self._lock:
            self._secrets[key_id] = secret

    def read_secret(self, key_id: str) -> Optional[str]:
        with self._lock:
            return self._secrets.get(key_id)

    def update_status(self, update: StatusUpdate) -> None:
        with self._lock:
            record = self._records.get(update.key_id)
            if record is None:
                raise PersistenceError(f"No record for key {update.key_id}")
            self._records[update.key_id] = replace(
                record,
                status=update.status,
                last_verified=update.last_verified,
                last_reset=update.last_reset,
            )

    def append_history(self, entry: StatusTransition) -> None:
        with self._lock:
            self._history.append(entry)

    def history(self, key_id: str) -> List[StatusTransition]:
        with self._lock:
            return [h for h in self._history if h.key_id == key_id]


__all__ = ["InMemoryKeyStore"]
