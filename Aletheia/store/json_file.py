"""
JSON file key store.

``keys.json`` holds public metadata and status history; ``secrets.json``
holds raw secrets and is created with mode 0600. Both files are rewritten
atomically (temporary file plus rename) on every change.
"""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional

from Aletheia.core.errors import PersistenceError
from Aletheia.lifecycle.status import KeyRecord, KeyStatus, StatusTransition, StatusUpdate
from Aletheia.store.base import KeyStore, MetadataUpsert

logger = logging.getLogger(__name__)

KEYS_FILE = "keys.json"
SECRETS_FILE = "secrets.json"


def _atomic_write(path: Path, payload: Any, mode: int) -> None:
    fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            os.chmod(tmp, mode)
            json.dump(payload, f, indent=2, sort_keys=True)
        os.replace(tmp, path)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


class JsonFileKeyStore(KeyStore):
    """
    Args:
        directory: Directory holding ``keys.json`` and ``secrets.json``;
            created if missing
    """

    def __init__(self, directory: str | Path) -> None:
        self.directory = Path(directory)
        self._lock = threading.RLock()
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceError(f"Cannot create store directory {self.directory}: {e}") from e
        self._records: Dict[str, KeyRecord] = {}
        self._history: List[StatusTransition] = []
        self._secrets: Dict[str, str] = {}
        self._load()

    @property
    def keys_path(self) -> Path:
        return self.directory / KEYS_FILE

    @property
    def secrets_path(self) -> Path:
        return self.directory / SECRETS_FILE

    def _load(self) -> None:
        try:
            if self.keys_path.exists():
                data = json.loads(self.keys_path.read_text(encoding="utf-8"))
                self._records = {k: KeyRecord.from_dict(v) for k, v in data.get("records", {}).items()}
                self._history = [StatusTransition.from_dict(h) for h in data.get("history", [])]
            if self.secrets_path.exists():
                self._secrets = json.loads(self.secrets_path.read_text(encoding="utf-8"))
        except (OSError, ValueError, KeyError) as e:
            raise PersistenceError(f"Cannot read key store in {self.directory}: {e}") from e
        logger.debug("Loaded %d records from %s", len(self._records), self.directory)

    def _save_keys(self) -> None:
        payload = {
            "records": {k: r.to_dict() for k, r in self._records.items()},
            "history": [h.to_dict() for h in self._history],
        }
        try:
            _atomic_write(self.keys_path, payload, 0o644)
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.keys_path}: {e}") from e

    def _save_secrets(self) -> None:
        try:
            _atomic_write(self.secrets_path, self._secrets, 0o600)
        except OSError as e:
            raise PersistenceError(f"Cannot write {self.secrets_path}: {e}") from e

    def get(self, key_id: str) -> Optional[KeyRecord]:
        with self._lock:
            return self._records.get(key_id)

    def list_records(self, status: Optional[KeyStatus] = None) -> List[KeyRecord]:
        with self._lock:
            records = sorted(self._records.values(), key=lambda r: r.first_seen)
        if status is not None:
            records = [r for r in records if r.status == status]
        return records

    def upsert_metadata(self, upsert: MetadataUpsert) -> bool:
        with self._lock:
            if upsert.key_id in self._records:
                return False
            self._records[upsert.key_id] = upsert.to_record()
            try:
                self._save_keys()
            except PersistenceError:
                del self._records[upsert.key_id]
                raise
            return True

    def write_secret(self, key_id: str, secret: str) -> None:
        with self._lock:
            previous = self._secrets.get(key_id)
            self._secrets[key_id] = secret
            try:
                self._save_secrets()
            except PersistenceError:
                if previous is None:
                    del self._secrets[key_id]
                else:
                    self._secrets[key_id] = previous
                raise

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
            try:
                self._save_keys()
            except PersistenceError:
                self._records[update.key_id] = record
                raise

    def append_history(self, entry: StatusTransition) -> None:
        with self._lock:
            self._history.append(entry)
            try:
                self._save_keys()
            except PersistenceError:
                self._history.pop()
                raise

    def history(self, key_id: str) -> List[StatusTransition]:
        with self._lock:
            return [h for h in self._history if h.key_id == key_id]


__all__ = ["JsonFileKeyStore"]
