"""Tests for the key stores."""
from __future__ import annotations

import json
import os
import stat
import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from unittest.mock import patch

import pytest

from Aletheia.core.errors import PersistenceError
from Aletheia.core.result import ConfidenceTier, Origin, Severity
from Aletheia.lifecycle.status import KeyStatus, StatusTransition, StatusUpdate
from Aletheia.store.base import KeyStore, MetadataUpsert
from Aletheia.store.json_file import JsonFileKeyStore
from Aletheia.store.memory import InMemoryKeyStore

from helpers import ANTHROPIC_KEY

BASE = datetime(2024, 1, 1, tzinfo=timezone.utc)


def _upsert(key_id: str, minutes: int = 0, provider: str = "anthropic") -> MetadataUpsert:
    return MetadataUpsert(
        key_id=key_id,
        provider_id=provider,
        confidence_tier=ConfidenceTier.HIGH,
        origin=Origin("github:acme/app", "deploy/prod.env", "https://github.com/acme/app/blob/main/deploy/prod.env"),
        first_seen=BASE + timedelta(minutes=minutes),
        severity=Severity.HIGH,
        key_preview="sk-ant-a...Zq8R",
        context_preview="ANTHROPIC_API_KEY=[REDACTED_KEY]",
    )


@pytest.fixture(params=["memory", "json"])
def store(request, tmp_path: Path) -> KeyStore:
    if request.param == "memory":
        return InMemoryKeyStore()
    return JsonFileKeyStore(tmp_path / "store")


def test_upsert_is_insert_if_absent(store: KeyStore) -> None:
    assert store.upsert_metadata(_upsert("k1"))
    assert not store.upsert_metadata(_upsert("k1", minutes=5, provider="other"))

    record = store.get("k1")
    assert record.provider_id == "anthropic"
    assert record.first_seen == BASE
    assert record.status == KeyStatus.UNKNOWN


def test_get_missing(store: KeyStore) -> None:
    assert store.get("nope") is None
    assert store.read_secret("nope") is None


def test_secrets_kept_apart(store: KeyStore) -> None:
    store.write_secret("k1", ANTHROPIC_KEY)
    store.upsert_metadata(_upsert("k1"))
    assert store.read_secret("k1") == ANTHROPIC_KEY
    assert ANTHROPIC_KEY not in json.dumps(store.get("k1").to_dict())


def test_list_records_filters_by_status(store: KeyStore) -> None:
    store.upsert_metadata(_upsert("k1", minutes=1))
    store.upsert_metadata(_upsert("k2", minutes=2))
    store.update_status(StatusUpdate("k2", KeyStatus.VALID, BASE + timedelta(hours=1)))

    assert [r.key_id for r in store.list_records()] == ["k1", "k2"]
    assert [r.key_id for r in store.list_records(KeyStatus.VALID)] == ["k2"]
    assert [r.key_id for r in store.list_records(KeyStatus.REVOKED)] == []


def test_update_status_missing_record(store: KeyStore) -> None:
    with pytest.raises(PersistenceError):
        store.update_status(StatusUpdate("nope", KeyStatus.VALID, BASE))


def test_history_per_key(store: KeyStore) -> None:
    store.append_history(StatusTransition("k1", KeyStatus.UNKNOWN, KeyStatus.VALID, BASE, "verified valid"))
    store.append_history(StatusTransition("k2", KeyStatus.UNKNOWN, KeyStatus.INVALID, BASE, "verified invalid"))
    store.append_history(StatusTransition("k1", KeyStatus.VALID, KeyStatus.UNKNOWN, BASE, "reset"))

    assert [h.reason for h in store.history("k1")] == ["verified valid", "reset"]


class TestJsonFileKeyStore:
    def test_survives_reopen(self, tmp_path: Path) -> None:
        store = JsonFileKeyStore(tmp_path)
        store.write_secret("k1", ANTHROPIC_KEY)
        store.upsert_metadata(_upsert("k1"))
        store.update_status(StatusUpdate("k1", KeyStatus.VALID, BASE + timedelta(hours=1)))
        store.append_history(StatusTransition("k1", KeyStatus.UNKNOWN, KeyStatus.VALID, BASE, "verified valid"))

        reopened = JsonFileKeyStore(tmp_path)
        record = reopened.get("k1")
        assert record.status == KeyStatus.VALID
        assert record.last_verified == BASE + timedelta(hours=1)
        assert record.origin.url.endswith("deploy/prod.env")
        assert record.severity == Severity.HIGH
        assert reopened.read_secret("k1") == ANTHROPIC_KEY
        assert len(reopened.history("k1")) == 1

    def test_secret_never_in_metadata_file(self, tmp_path: Path) -> None:
        store = JsonFileKeyStore(tmp_path)
        store.write_secret("k1", ANTHROPIC_KEY)
        store.upsert_metadata(_upsert("k1"))

        assert ANTHROPIC_KEY not in (tmp_path / "keys.json").read_text(encoding="utf-8")
        assert ANTHROPIC_KEY in (tmp_path / "secrets.json").read_text(encoding="utf-8")

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    def test_secrets_file_is_private(self, tmp_path: Path) -> None:
        store = JsonFileKeyStore(tmp_path)
        store.write_secret("k1", ANTHROPIC_KEY)
        mode = stat.S_IMODE(os.stat(tmp_path / "secrets.json").st_mode)
        assert mode == 0o600

    def test_failed_write_rolls_back(self, tmp_path: Path) -> None:
        store = JsonFileKeyStore(tmp_path)
        with patch("Aletheia.store.json_file._atomic_write", side_effect=OSError("disk full")):
            with pytest.raises(PersistenceError):
                store.upsert_metadata(_upsert("k1"))
            with pytest.raises(PersistenceError):
                store.write_secret("k1", ANTHROPIC_KEY)

        assert store.get("k1") is None
        assert store.read_secret("k1") is None
        # The same upsert succeeds once the disk recovers
        assert store.upsert_metadata(_upsert("k1"))

    def test_failed_chmod_closes_temporary_file(self, tmp_path: Path) -> None:
        store = JsonFileKeyStore(tmp_path)
        opened = []
        real_fdopen = os.fdopen

        def tracking_fdopen(*args, **kwargs):
            handle = real_fdopen(*args, **kwargs)
            opened.append(handle)
            return handle

        with patch("Aletheia.store.json_file.os.fdopen", side_effect=tracking_fdopen), \
                patch("Aletheia.store.json_file.os.chmod", side_effect=OSError("read-only")):
            with pytest.raises(PersistenceError):
                store.write_secret("k1", ANTHROPIC_KEY)

        assert len(opened) == 1 and opened[0].closed
        assert list(tmp_path.iterdir()) == []

    def test_corrupt_file_is_persistence_error(self, tmp_path: Path) -> None:
        (tmp_path / "keys.json").write_text("{not json", encoding="utf-8")
        with pytest.raises(PersistenceError):
            JsonFileKeyStore(tmp_path)

    def test_no_temporary_files_left(self, tmp_path: Path) -> None:
        store = JsonFileKeyStore(tmp_path)
        store.upsert_metadata(_upsert("k1"))
        store.write_secret("k1", ANTHROPIC_KEY)
        assert sorted(p.name for p in tmp_path.iterdir()) == ["keys.json", "secrets.json"]
