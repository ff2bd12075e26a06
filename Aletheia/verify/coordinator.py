"""
Concurrent verification of stored keys.

Verifications run on a bounded thread pool. At most one verification per
key_id is in flight: a second request for a key already being checked gets
the in-flight future instead of starting another call.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from typing import Dict, Iterable, List, Optional

from Aletheia.core.errors import AletheiaError, ConfigurationError
from Aletheia.core.result import VerificationOutcome
from Aletheia.lifecycle.status import StatusLifecycle
from Aletheia.store.base import KeyStore
from Aletheia.verify.dispatcher import VerificationDispatcher

logger = logging.getLogger(__name__)


class VerificationCoordinator:
    """
    Args:
        dispatcher: Performs the live checks
        lifecycle: Applies outcomes to key records
        store: Source of records and secrets
        max_workers: Size of the verification pool
    """

    def __init__(
        self,
        dispatcher: VerificationDispatcher,
        lifecycle: StatusLifecycle,
        store: KeyStore,
        max_workers: int = 8,
    ) -> None:
        self.dispatcher = dispatcher
        self.lifecycle = lifecycle
        self.store = store
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="aletheia-verify")
        self._inflight: Dict[str, "Future[VerificationOutcome]"] = {}
        self._lock = threading.Lock()

    def _run(self, key_id: str) -> VerificationOutcome:
        record = self.store.get(key_id)
        if record is None:
            raise KeyError(f"No record for key {key_id}")
        secret = self.store.read_secret(key_id)
        if secret is None:
            raise ConfigurationError(f"No stored secret for key {key_id}")
        outcome = self.dispatcher.verify(record.provider_id, secret, candidate_ref=key_id)
        self.lifecycle.apply_outcome(outcome)
        return outcome

    def _done(self, key_id: str, future: "Future[VerificationOutcome]") -> None:
        with self._lock:
            if self._inflight.get(key_id) is future:
                del self._inflight[key_id]

    def submit(self, key_id: str) -> "Future[VerificationOutcome]":
        """Schedule verification of a key, or join the one already in flight."""
        with self._lock:
            future = self._inflight.get(key_id)
            if future is not None:
                logger.debug("Joining in-flight verification of %s", key_id[:12])
                return future
            future = self._executor.submit(self._run, key_id)
            self._inflight[key_id] = future
        future.add_done_callback(lambda f: self._done(key_id, f))
        return future

    def verify_keys(self, key_ids: Iterable[str], errors: Optional[List[str]] = None) -> List[VerificationOutcome]:
        """
        Verify several keys concurrently.

        A failure for one key (unknown provider, missing record or secret,
        persistence error) is logged and appended to ``errors``; the other
        keys are unaffected.

        Returns:
            Outcomes for the keys that could be verified
        """
        futures = {self.submit(key_id): key_id for key_id in dict.fromkeys(key_ids)}
        outcomes: List[VerificationOutcome] = []
        for future in as_completed(futures):
            key_id = futures[future]
            try:
                outcomes.append(future.result())
            except (AletheiaError, KeyError) as e:
                logger.error("Verification of %s failed: %s", key_id[:12], e)
                if errors is not None:
                    errors.append(f"{key_id}: {e}")
        return outcomes

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __enter__(self) -> "VerificationCoordinator":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()


__all__ = ["VerificationCoordinator"]
