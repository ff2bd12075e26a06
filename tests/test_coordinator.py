"""Tests for concurrent verification of stored keys."""
from __future__ import annotations

import threading
from datetime import datetime, timezone
from typing import List

from Aletheia.core.errors import PersistenceError
from Aletheia.core.result import ConfidenceTier, Origin, Verdict, VerificationOutcome, hash_secret
from Aletheia.lifecycle.status import KeyStatus, StatusLifecycle
from Aletheia.store.base import MetadataUpsert
from Aletheia.store.memory import InMemoryKeyStore
from Aletheia.verify.coordinator import VerificationCoordinator

from helpers import GROQ_KEY, OPENAI_KEY, Clock


class FakeDispatcher:
    """Answers every check with a fixed verdict, optionally blocking until released."""

    def __init__(self, verdict: Verdict = Verdict.VALID, block: bool = False) -> None:
        self.verdict = verdict
        self.clock = Clock()
        self.calls: List[str] = []
        self.release = threading.Event()
        self.started = threading.Event()
        if not block:
            self.release.set()

    def verify(self, provider_id: str, secret: str, candidate_ref=None) -> VerificationOutcome:
        self.calls.append(candidate_ref)
        self.started.set()
        self.release.wait(5)
        return VerificationOutcome(
            candidate_ref=candidate_ref,
            provider_id=provider_id,
            verdict=self.verdict,
            checked_at=self.clock(),
        )


def _seed(store: InMemoryKeyStore, secret: str, provider: str) -> str:
    key_id = hash_secret(secret)
    store.write_secret(key_id, secret)
    store.upsert_metadata(
        MetadataUpsert(
            key_id=key_id,
            provider_id=provider,
            confidence_tier=ConfidenceTier.HIGH,
            origin=Origin("local:.", ".env"),
            first_seen=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
    )
    return key_id


def test_verify_keys_updates_status() -> None:
    store = InMemoryKeyStore()
    keys = [_seed(store, OPENAI_KEY, "openai"), _seed(store, GROQ_KEY, "groq")]
    dispatcher = FakeDispatcher(Verdict.INVALID)

    with VerificationCoordinator(dispatcher, StatusLifecycle(store), store, max_workers=2) as coordinator:
        outcomes = coordinator.verify_keys(keys)

    assert len(outcomes) == 2
    assert all(store.get(k).status == KeyStatus.INVALID for k in keys)


def test_concurrent_requests_share_one_call() -> None:
    """A key already being verified is not verified a second time."""
    store = InMemoryKeyStore()
    key_id = _seed(store, OPENAI_KEY, "openai")
    dispatcher = FakeDispatcher(block=True)

    with VerificationCoordinator(dispatcher, StatusLifecycle(store), store) as coordinator:
        first = coordinator.submit(key_id)
        assert dispatcher.started.wait(5)
        second = coordinator.submit(key_id)
        dispatcher.release.set()

        assert second is first
        assert first.result(5).verdict == Verdict.VALID

    assert dispatcher.calls == [key_id]


def test_failures_reported_per_key() -> None:
    """A missing secret or record fails only that key."""
    store = InMemoryKeyStore()
    good = _seed(store, OPENAI_KEY, "openai")
    store.upsert_metadata(
        MetadataUpsert(
            key_id="nosecret",
            provider_id="groq",
            confidence_tier=ConfidenceTier.HIGH,
            origin=Origin("local:.", ".env"),
            first_seen=datetime(2024, 1, 1, tzinfo=timezone.utc),
        )
    )
    errors: List[str] = []

    with VerificationCoordinator(FakeDispatcher(), StatusLifecycle(store), store) as coordinator:
        outcomes = coordinator.verify_keys([good, "nosecret", "missing"], errors=errors)

    assert [o.candidate_ref for o in outcomes] == [good]
    assert len(errors) == 2
    assert store.get(good).status == KeyStatus.VALID


def test_persistence_failure_reported() -> None:
    class FailingStore(InMemoryKeyStore):
        def update_status(self, update):
            raise PersistenceError("read-only")

    store = FailingStore()
    key_id = _seed(store, OPENAI_KEY, "openai")
    errors: List[str] = []

    with VerificationCoordinator(FakeDispatcher(), StatusLifecycle(store), store) as coordinator:
        assert coordinator.verify_keys([key_id], errors=errors) == []

    assert errors and "read-only" in errors[0]
