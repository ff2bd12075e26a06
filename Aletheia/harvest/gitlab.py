"""GitLab blob search source."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional
from urllib.parse import quote

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

GITLAB_URL = "https://gitlab.com"


class GitLabBlobSearch(SearchSource):
    """
    Search GitLab blobs through ``/api/v4/search?scope=blobs``.

    Pagination comes from the ``X-Next-Page`` and ``X-Total`` headers. Hits
    carry only a snippet, so each file is read in full from the raw endpoint.
    """

    name = "gitlab"

    def __init__(
        self,
        token: Optional[str],
        base_url: str = GITLAB_URL,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
        max_blob_chars: int = MAX_BLOB_CHARS,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.api_url = f"{self.base_url}/api/v4"
        self.timeout = timeout
        self.max_blob_chars = max_blob_chars
        self.session = session or requests.Session()
        self.session.headers["User-Agent"] = f"aletheia/{__version__}"
        if token:
            self.session.headers["PRIVATE-TOKEN"] = token

    def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        try:
            response = self.session.get(url, params=params, timeout=self.timeout)
        except requests.RequestException as e:
            raise SourceError(f"GitLab request failed: {e}") from e
        if response.status_code == 401:
            raise MissingCredentialsError("GitLab rejected the token (401)")
        if response.status_code == 429:
            raise RateLimited("GitLab rate limit (429)", retry_after=parse_retry_after(response.headers))
        return response

    def fetch_page(self, query: str, page: int, per_page: int) -> SearchPage:
        if not self.token:
            raise MissingCredentialsError("GitLab search requires a token (GITLAB_TOKEN)")

        response = self._get(
            f"{self.api_url}/search",
            params={"scope": "blobs", "search": query, "page": page, "per_page": per_page},
        )
        if response.status_code != 200:
            raise SourceError(f"GitLab search failed: HTTP {response.status_code}")
        try:
            items = response.json()
        except ValueError as e:
            raise SourceError("GitLab search returned invalid JSON") from e
        if not isinstance(items, list):
            raise SourceError("GitLab search returned an unexpected payload")

        blobs = []
        for item in items:
            blob = self._fetch_item(item, query, page)
            if blob is not None:
                blobs.append(blob)

        total_header = response.headers.get("X-Total")
        total = int(total_header) if total_header and total_header.isdigit() else len(items)
        has_next = bool(response.headers.get("X-Next-Page", "").strip())

        logger.info("GitLab %r page %d: %d hits, %d blobs fetched", query, page, len(items), len(blobs))
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
        path = item.get("path") or item.get("filename") or ""
        project_id = item.get("project_id")
        if should_skip_remote_path(path) or project_id is None:
            return None

        ref = item.get("ref") or "HEAD"
        url = f"{self.api_url}/projects/{project_id}/repository/files/{quote(path, safe='')}/raw"
        try:
            response = self._get(url, params={"ref": ref})
        except SourceError as e:
            logger.warning("Could not fetch %s: %s", path, e)
            return None
        if response.status_code != 200:
            logger.warning("Could not fetch %s: HTTP %d", path, response.status_code)
            return None

        text = response.text
        if len(text) > self.max_blob_chars:
            logger.debug("Skipping oversized file %s", path)
            return None
        if is_notebook_path(path):
            text = extract_notebook_text(text)

        origin = Origin(
            source_identifier=f"gitlab:{project_id}",
            location=path,
        )
        return HarvestedBlob(text=text, origin=origin, query=query, page=page)


__all__ = ["GitLabBlobSearch"]
