"""
Paginated harvesting loop.

The Harvester walks a query's pages in strictly increasing order, yielding
blobs lazily. It owns the rate-limit policy: one cool-down and retry per page,
after which the query is given up for this run with a resumable checkpoint.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Iterator, Optional

from Aletheia.core.errors import RateLimited, RateLimitExhausted
from Aletheia.harvest.base import HarvestedBlob, SearchPage, SearchSource

logger = logging.getLogger(__name__)


@dataclass
class HarvestProgress:
    """
    Cursor of one query's harvest.

    Attributes:
        query: The query being harvested
        next_page: First page not yet fully yielded; resume from here
        pages_fetched: Pages fetched during this run
        total_count: Total hits last reported by the source
        exhausted: True once the source reported no further pages or
            returned an empty page
    """
    query: str
    next_page: int = 1
    pages_fetched: int = 0
    total_count: int = 0
    exhausted: bool = False


class Harvester:
    """
    Args:
        source: Search backend
        page_delay: Seconds to wait between successive pages of one query
        rate_limit_fallback: Cool-down used when the source gives none
        max_cooldown: Longer cool-downs are not waited out; the query is
            abandoned for this run instead
        sleep: Sleep function (injected in tests)
    """

    def __init__(
        self,
        source: SearchSource,
        page_delay: float = 3.0,
        rate_limit_fallback: float = 60.0,
        max_cooldown: float = 300.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.source = source
        self.page_delay = page_delay
        self.rate_limit_fallback = rate_limit_fallback
        self.max_cooldown = max_cooldown
        self.sleep = sleep

    def _fetch(self, query: str, page: int, per_page: int) -> SearchPage:
        try:
            return self.source.fetch_page(query, page, per_page)
        except RateLimited as e:
            cooldown = e.retry_after if e.retry_after is not None else self.rate_limit_fallback
            if cooldown > self.max_cooldown:
                logger.warning(
                    "%s: cool-down of %.0fs for %r page %d exceeds %.0fs, abandoning query",
                    self.source.name, cooldown, query, page, self.max_cooldown,
                )
                raise RateLimitExhausted(query, page, retry_after=cooldown) from e
            logger.warning(
                "%s: rate limited on %r page %d, retrying in %.0fs",
                self.source.name, query, page, cooldown,
            )
            self.sleep(cooldown)

        try:
            return self.source.fetch_page(query, page, per_page)
        except RateLimited as e:
            logger.warning("%s: rate limited again on %r page %d, abandoning query", self.source.name, query, page)
            raise RateLimitExhausted(query, page, retry_after=e.retry_after) from e

    def search(
        self,
        query: str,
        max_pages: int,
        per_page: int,
        start_page: int = 1,
        progress: Optional[HarvestProgress] = None,
    ) -> Iterator[HarvestedBlob]:
        """
        Lazily yield the blobs of up to ``max_pages`` pages, starting at ``start_page``.

        Args:
            query: Search query
            max_pages: Maximum number of pages to fetch in this call
            per_page: Page size requested from the source
            start_page: First page to fetch (for resuming)
            progress: Cursor updated in place as pages complete

        Raises:
            RateLimitExhausted: The query hit a rate limit it could not wait out;
                ``progress.next_page`` is the page to resume from
            SourceError: Transport failure from the source
            ConfigurationError: Missing or rejected credentials
        """
        if start_page < 1:
            raise ValueError("start_page must be >= 1")
        if per_page < 1:
            raise ValueError("per_page must be >= 1")

        if progress is None:
            progress = HarvestProgress(query=query)
        progress.next_page = start_page

        page = start_page
        fetched = 0
        while fetched < max_pages:
            if fetched:
                self.sleep(self.page_delay)

            result = self._fetch(query, page, per_page)
            fetched += 1
            progress.pages_fetched += 1
            progress.total_count = result.total_count
            logger.debug("%s: %r page %d yielded %d blobs", self.source.name, query, page, len(result.blobs))

            for blob in result.blobs:
                yield blob

            page += 1
            progress.next_page = page
            if not result.has_next or result.is_empty:
                progress.exhausted = True
                break


__all__ = ["HarvestProgress", "Harvester"]
