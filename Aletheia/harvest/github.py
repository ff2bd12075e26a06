"""
GitHub code search source.

Each search page is one ``GET /search/code`` request; every hit is then read
through the contents API. GitHub caps code search at 1 000 results and
answers 422 beyond that, which ends pagination.
"""
from __future__ import annotations

import base64
import binascii
import logging
from typing import Any, Dict, Optional

import requests

from Aletheia import __version__
from Aletheia.core.errors import MissingCredentialsError, RateLimited, SourceError
from Aletheia.core.result import Origin
from Aletheia.harvest.base import (
    MAX_BLOB_CHARS,
    HarvestedBlob,
    SearchPage,
    SearchSource,
    parse_retry_after,
)
from Aletheia.utils.notebook import extract_notebook_text, is_notebook_path
from Aletheia.utils.path_filters import should_skip_remote_path

logger = logging.getLogger(__name__)

GITHUB_API_URL = "https://api.github.com"
SEARCH_RESULT_CAP = 1000


def _is_rate_limited(response: requests.Response) -> bool:
    if response.status_code not in (403, 429):
        return False
    if response.status_code == 429 or response.headers.get("Retry-After"):
        return True
    if response.headers.get("X-RateLimit-Remaining") == "0":
        return True
    body = (response.text or "").lower()
    return "rate limit" in body or "abuse detection" in body


class GitHubCodeSearch(SearchSource):
    """Search public GitHub code."""

    name = "github"

    def __init__(
        self,
        token: Optional[str],
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        api_url: str = GITHUB_API_URL,
        max_blob_chars: int = MAX_BLOB_CHARS,
    ):
        """
        Args:
            token: GitHub token; code search requires authentication
            session: HTTP session (a new one if omitted)
            timeout: Per-request timeout in seconds
            api_url: API base URL (GitHub Enterprise installs differ)
            max_blob_chars: Files longer than this are skipped
        """
        self.token = token
        self.timeout = timeout
        self.api_url = api_url.rstrip("/")
        self.max_blob_chars = max_blob_chars
        self.session = session or requests.Session()
        self.session.headers.update({
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": f"aletheia/{__version__}",
        })
        if token:
            self.session.headers["Authorization"] = f"token {token}"

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        try:
            return self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise SourceError(f"GitHub request failed: {e}") from e

    def _check_status(self, response: requests.Response) -> None:
        if response.status_code == 401:
            raise MissingCredentialsError("GitHub rejected the token (401)")
        if _is_rate_limited(response):
            raise RateLimited(
                f"GitHub rate limit ({response.status_code})",
                retry_after=parse_retry_after(response.headers),
            )

    def fetch_page(self, query: str, page: int, per_page: int) -> SearchPage:
        if not self.token:
            raise MissingCredentialsError("GitHub code search requires a token (GITHUB_TOKEN)")

        params = {
            "q": query,
            "page": page,
            "per_page": per_page,
            "sort": "indexed",
            "order": "desc",
        }
        response = self._get(f"{self.api_url}/search/code", params=params)
        self._check_status(response)

        if response.status_code == 422:
            logger.info("GitHub returned 422 for %r page %d, treating as end of results", query, page)
            return SearchPage(blobs=[], total_count=0, has_next=False)
        if response.status_code != 200:
            raise SourceError(f"GitHub search failed: HTTP {response.status_code} {response.text[:200]}")

        try:
            data = response.json()
        except ValueError as e:
            raise SourceError("GitHub search returned invalid JSON") from e
        if not isinstance(data, dict):
            raise SourceError("GitHub search returned an unexpected payload")

        items = data.get("items") or []
        if not isinstance(items, list):
            raise SourceError("GitHub search returned an unexpected payload")
        try:
            total = int(data.get("total_count") or 0)
        except (TypeError, ValueError) as e:
            raise SourceError("GitHub search returned an invalid total_count") from e

        blobs = []
        for item in items:
            blob = self._fetch_item(item, query, page)
            if blob is not None:
                blobs.append(blob)

        if "next" in response.links:
            has_next = True
        else:
            has_next = page * per_page < min(total, SEARCH_RESULT_CAP)

        logger.info(
            "GitHub %r page %d: %d hits, %d blobs fetched (total %d)",
            query, page, len(items), len(blobs), total,
        )
        return SearchPage(
            blobs=blobs,
            total_count=total,
            has_next=has_next and bool(items),
            hit_count=len(items),
        )

    def _fetch_item(self, item: Dict[str, Any], query: str, page: int) -> Optional[HarvestedBlob]:
        if not isinstance(item, dict):
            logger.warning("Ignoring malformed search hit on %r page %d", query, page)
            return None
        path = item.get("path") or ""
        if should_skip_remote_path(path):
            logger.debug("Skipping %s", path)
            return None

        url = item.get("url")
        if not url:
            return None

        try:
            response = self._get(url)
        except SourceError as e:
            logger.warning("Could not fetch %s: %s", path, e)
            return None
        self._check_status(response)
        if response.status_code != 200:
            logger.warning("Could not fetch %s: HTTP %d", path, response.status_code)
            return None

        try:
            payload = response.json()
        except ValueError:
            logger.warning("Contents response for %s was not JSON", path)
            return None
        if not isinstance(payload, dict):
            logger.warning("Contents response for %s was not a file object", path)
            return None

        if int(payload.get("size") or 0) > self.max_blob_chars:
            logger.debug("Skipping oversized file %s (%s bytes)", path, payload.get("size"))
            return None

        encoded = payload.get("content")
        if not encoded or payload.get("encoding", "base64") != "base64":
            return None
        try:
            text = base64.b64decode(encoded).decode("utf-8", errors="ignore")
        except (binascii.Error, ValueError):
            logger.warning("Could not decode contents of %s", path)
            return None

        if len(text) > self.max_blob_chars:
            return None
        if is_notebook_path(path):
            text = extract_notebook_text(text)

        repo = (item.get("repository") or {}).get("full_name", "unknown")
        origin = Origin(
            source_identifier=f"github:{repo}",
            location=path,
            url=item.get("html_url"),
        )
        return HarvestedBlob(text=text, origin=origin, query=query, page=page)


__all__ = ["GitHubCodeSearch"]
