"""
Search source interface.

A source turns (query, page, per_page) into one page of text blobs. Sources
never sleep or retry: rate limits are reported with ``RateLimited`` and
handled by the Harvester.
"""
from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from email.utils import parsedate_to_datetime
from typing import List, Mapping, Optional

from Aletheia.core.result import Origin

MAX_BLOB_CHARS = 100_000


@dataclass(frozen=True)
class HarvestedBlob:
    """A text blob pulled from a search source."""
    text: str
    origin: Origin
    query: str
    page: int


@dataclass
class SearchPage:
    """
    One page of search results.

    Attributes:
        blobs: Blobs fetched for this page (may be fewer than the hits)
        total_count: Total hits the source reports for the query
        has_next: Whether the source reports a further page
        hit_count: Raw hits on the page before filtering, when the source
            knows it; None means ``len(blobs)``
    """
    blobs: List[HarvestedBlob] = field(default_factory=list)
    total_count: int = 0
    has_next: bool = False
    hit_count: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        """True when the page carried no results at all."""
        hits = len(self.blobs) if self.hit_count is None else self.hit_count
        return hits == 0


class SearchSource(ABC):
    """Paginated code-search backend."""

    name: str = "source"

    @abstractmethod
    def fetch_page(self, query: str, page: int, per_page: int) -> SearchPage:
        """
        Fetch one page of results.

        Raises:
            RateLimited: The remote API reported a rate limit
            SourceError: Transport failure or malformed response
            ConfigurationError: Missing or rejected credentials
        """


def parse_retry_after(headers: Mapping[str, str], now: Optional[float] = None) -> Optional[float]:
    """
    Cool-down in seconds from ``Retry-After`` or ``X-RateLimit-Reset`` headers.

    ``Retry-After`` may be a number of seconds or an HTTP date;
    ``X-RateLimit-Reset`` is an epoch timestamp.
    """
    now = time.time() if now is None else now
    retry_after = headers.get("Retry-After")
    if retry_after:
        try:
            return max(0.0, float(retry_after))
        except ValueError:
            try:
                return max(0.0, parsedate_to_datetime(retry_after).timestamp() - now)
            except (TypeError, ValueError):
                pass
    reset = headers.get("X-RateLimit-Reset")
    if reset:
        try:
            return max(0.0, float(reset) - now)
        except ValueError:
            return None
    return None


__all__ = [
    "HarvestedBlob",
    "MAX_BLOB_CHARS",
    "SearchPage",
    "SearchSource",
    "parse_retry_after",
]
