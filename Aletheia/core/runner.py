"""
Harvest runner: queries in parallel, recording on the calling thread.

Each query runs on its own worker with its own page cursor and candidate
buffer; workers share nothing mutable. When a worker finishes, its
candidates are recorded by the coordinating thread. A query that fails
(exhausted rate limit, source or configuration error) is abandoned for this
run with a checkpoint to resume from; the other queries carry on.
"""
from __future__ import annotations

import json
import logging
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Union

from Aletheia.core.detector import ClassificationPipeline
from Aletheia.core.errors import AletheiaError, PersistenceError, RateLimitExhausted
from Aletheia.core.recorder import KeyRecorder
from Aletheia.core.result import Candidate, QueryCheckpoint, ScanResult
from Aletheia.harvest.harvester import HarvestProgress, Harvester
from Aletheia.verify.coordinator import VerificationCoordinator

logger = logging.getLogger(__name__)


@dataclass
class QueryRun:
    """What one worker produced for one query."""
    query: str
    progress: HarvestProgress
    candidates: List[Candidate] = field(default_factory=list)
    blobs: int = 0
    lines: int = 0
    checkpoint: Optional[QueryCheckpoint] = None
    error: Optional[str] = None


class HarvestRunner:
    """
    Args:
        harvester: A Harvester, or a factory returning one per query
        pipeline: Classification pipeline
        recorder: Persists candidates
        coordinator: Verifies newly recorded keys when given
        workers: Number of queries harvested in parallel
    """

    def __init__(
        self,
        harvester: Union[Harvester, Callable[[], Harvester]],
        pipeline: ClassificationPipeline,
        recorder: KeyRecorder,
        coordinator: Optional[VerificationCoordinator] = None,
        workers: int = 4,
    ) -> None:
        self._harvester = harvester
        self.pipeline = pipeline
        self.recorder = recorder
        self.coordinator = coordinator
        self.workers = max(1, workers)

    def _harvester_for_query(self) -> Harvester:
        if isinstance(self._harvester, Harvester):
            return self._harvester
        return self._harvester()

    def _harvest_query(self, query: str, max_pages: int, per_page: int, start_page: int) -> QueryRun:
        progress = HarvestProgress(query=query, next_page=start_page)
        run = QueryRun(query=query, progress=progress)
        harvester = self._harvester_for_query()
        try:
            for blob in harvester.search(query, max_pages, per_page, start_page=start_page, progress=progress):
                run.blobs += 1
                run.lines += blob.text.count("\n") + 1
                run.candidates.extend(self.pipeline.classify_blob(blob))
        except RateLimitExhausted as e:
            run.checkpoint = QueryCheckpoint(query=query, resume_page=e.page, reason="rate limit exhausted")
        except AletheiaError as e:
            run.checkpoint = QueryCheckpoint(query=query, resume_page=progress.next_page, reason=str(e))
            run.error = f"{query}: {e}"
        return run

    def record(self, candidates: Iterable[Candidate], result: ScanResult) -> None:
        """Record candidates into ``result``; failures land in ``result.unpersisted``."""
        for candidate in candidates:
            try:
                recorded = self.recorder.record(candidate)
            except PersistenceError as e:
                logger.error("Could not persist %s: %s", candidate, e)
                result.unpersisted.append(candidate)
                continue
            if recorded.is_new and recorded.key_id not in result.new_keys:
                result.new_keys.append(recorded.key_id)

    def retry_unpersisted(self, result: ScanResult) -> int:
        """Retry writes that failed earlier. Returns how many still fail."""
        pending, result.unpersisted = result.unpersisted, []
        self.record(pending, result)
        return len(result.unpersisted)

    def run(
        self,
        queries: Iterable[str],
        max_pages: int,
        per_page: int,
        resume: Optional[Dict[str, int]] = None,
    ) -> ScanResult:
        """
        Harvest, classify and record every query.

        Args:
            queries: Search queries
            max_pages: Pages per query
            per_page: Results per page
            resume: query -> page to start from (from earlier checkpoints)

        Returns:
            ScanResult with candidates, new keys, checkpoints and outcomes
        """
        start_time = time.time()
        resume = resume or {}
        result = ScanResult()
        query_list = list(dict.fromkeys(queries))

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="aletheia-harvest") as pool:
            futures = [
                pool.submit(self._harvest_query, q, max_pages, per_page, resume.get(q, 1))
                for q in query_list
            ]
            for future in as_completed(futures):
                run = future.result()
                result.scanned_files += run.blobs
                result.total_lines += run.lines
                result.pages_fetched += run.progress.pages_fetched
                result.candidates.extend(run.candidates)
                if run.checkpoint is not None:
                    logger.warning(
                        "Abandoned %r, resume from page %d (%s)",
                        run.query, run.checkpoint.resume_page, run.checkpoint.reason,
                    )
                    result.abandoned.append(run.checkpoint)
                if run.error:
                    result.errors.append(run.error)
                self.record(run.candidates, result)

        logger.info(
            "Harvested %d queries: %d pages, %d blobs, %d candidates, %d new keys",
            len(query_list), result.pages_fetched, result.scanned_files,
            len(result.candidates), len(result.new_keys),
        )

        if self.coordinator is not None and result.new_keys:
            result.outcomes = self.coordinator.verify_keys(result.new_keys, errors=result.errors)

        result.duration_ms = (time.time() - start_time) * 1000
        return result


def save_checkpoints(path: Path, checkpoints: Iterable[QueryCheckpoint]) -> None:
    """Write abandoned queries so the next run can resume them."""
    payload = [
        {"query": c.query, "resume_page": c.resume_page, "reason": c.reason}
        for c in checkpoints
    ]
    try:
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
    except OSError as e:
        raise PersistenceError(f"Cannot write checkpoints to {path}: {e}") from e


def load_checkpoints(path: Path) -> Dict[str, int]:
    """query -> resume page, from a file written by ``save_checkpoints``."""
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise PersistenceError(f"Cannot read checkpoints from {path}: {e}") from e
    return {entry["query"]: int(entry["resume_page"]) for entry in data}


__all__ = ["HarvestRunner", "QueryRun", "load_checkpoints", "save_checkpoints"]
