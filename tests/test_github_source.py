"""Tests for the GitHub code search source."""
from __future__ import annotations

import base64
import json
from unittest.mock import patch

import pytest
import requests

from Aletheia.core.errors import MissingCredentialsError, RateLimited, SourceError
from Aletheia.harvest.github import GitHubCodeSearch

from helpers import ANTHROPIC_KEY, make_response

API = "https://api.github.com"


def _item(path: str, repo: str = "acme/app", sha: str = "abc") -> dict:
    return {
        "path": path,
        "url": f"{API}/repos/{repo}/contents/{path}?ref={sha}",
        "html_url": f"https://github.com/{repo}/blob/{sha}/{path}",
        "repository": {"full_name": repo},
    }


def _contents(text: str) -> requests.Response:
    encoded = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return make_response(200, {"size": len(text), "encoding": "base64", "content": encoded})


def _search(items, total: int, headers=None) -> requests.Response:
    return make_response(200, {"total_count": total, "items": items}, headers=headers)


def test_fetch_page_reads_contents() -> None:
    """Each hit is read through the contents API and decoded."""
    source = GitHubCodeSearch(token="ghp_test")
    text = f'ANTHROPIC_API_KEY="{ANTHROPIC_KEY}"\n'
    responses = [_search([_item("app/settings.py")], total=1), _contents(text)]

    with patch.object(source.session, "get", side_effect=responses) as mock_get:
        page = source.fetch_page("sk-ant-api03", page=1, per_page=30)

    assert len(page.blobs) == 1
    blob = page.blobs[0]
    assert blob.text == text
    assert blob.origin.source_identifier == "github:acme/app"
    assert blob.origin.location == "app/settings.py"
    assert blob.origin.url == "https://github.com/acme/app/blob/abc/app/settings.py"
    assert blob.query == "sk-ant-api03"
    assert blob.page == 1
    assert page.total_count == 1
    assert not page.has_next

    search_call = mock_get.call_args_list[0]
    assert search_call.args[0] == f"{API}/search/code"
    assert search_call.kwargs["params"]["q"] == "sk-ant-api03"
    assert search_call.kwargs["params"]["per_page"] == 30
    assert search_call.kwargs["timeout"] == 10.0


def test_token_sent_in_authorization_header() -> None:
    source = GitHubCodeSearch(token="ghp_test")
    assert source.session.headers["Authorization"] == "token ghp_test"


def test_missing_token_is_configuration_error() -> None:
    source = GitHubCodeSearch(token=None)
    with patch.object(source.session, "get") as mock_get:
        with pytest.raises(MissingCredentialsError):
            source.fetch_page("q", 1, 30)
    mock_get.assert_not_called()


def test_rejected_token() -> None:
    source = GitHubCodeSearch(token="bad")
    with patch.object(source.session, "get", return_value=make_response(401, {"message": "Bad credentials"})):
        with pytest.raises(MissingCredentialsError):
            source.fetch_page("q", 1, 30)


def test_rate_limit_carries_retry_after() -> None:
    source = GitHubCodeSearch(token="ghp_test")
    response = make_response(
        403,
        {"message": "You have exceeded a secondary rate limit."},
        headers={"Retry-After": "45"},
    )
    with patch.object(source.session, "get", return_value=response):
        with pytest.raises(RateLimited) as excinfo:
            source.fetch_page("q", 1, 30)
    assert excinfo.value.retry_after == 45.0


def test_primary_rate_limit_detected_from_remaining_header() -> None:
    source = GitHubCodeSearch(token="ghp_test")
    response = make_response(403, {"message": "Forbidden"}, headers={"X-RateLimit-Remaining": "0"})
    with patch.object(source.session, "get", return_value=response):
        with pytest.raises(RateLimited):
            source.fetch_page("q", 1, 30)


def test_plain_forbidden_is_source_error() -> None:
    source = GitHubCodeSearch(token="ghp_test")
    with patch.object(source.session, "get", return_value=make_response(403, {"message": "Forbidden"})):
        with pytest.raises(SourceError):
            source.fetch_page("q", 1, 30)


def test_result_cap_422_ends_pagination() -> None:
    """GitHub answers 422 past its 1000-result cap; that is the last page."""
    source = GitHubCodeSearch(token="ghp_test")
    with patch.object(source.session, "get", return_value=make_response(422, {"message": "Cannot access beyond"})):
        page = source.fetch_page("q", 35, 30)
    assert page.blobs == []
    assert not page.has_next


def test_transport_failure_is_source_error() -> None:
    source = GitHubCodeSearch(token="ghp_test")
    with patch.object(source.session, "get", side_effect=requests.ConnectionError("reset")):
        with pytest.raises(SourceError):
            source.fetch_page("q", 1, 30)


def test_has_next_from_total_count() -> None:
    source = GitHubCodeSearch(token="ghp_test")
    responses = [_search([_item("a.py")], total=90), _contents("x = 1\n")]
    with patch.object(source.session, "get", side_effect=responses):
        page = source.fetch_page("q", 1, 30)
    assert page.has_next


def test_has_next_from_link_header() -> None:
    source = GitHubCodeSearch(token="ghp_test")
    link = f'<{API}/search/code?q=q&page=2>; rel="next"'
    responses = [_search([_item("a.py")], total=1, headers={"Link": link}), _contents("x = 1\n")]
    with patch.object(source.session, "get", side_effect=responses):
        page = source.fetch_page("q", 1, 30)
    assert page.has_next


def test_skipped_paths_are_not_fetched() -> None:
    """Docs, lock files and test fixtures are skipped without a contents request."""
    source = GitHubCodeSearch(token="ghp_test")
    items = [_item("README.md"), _item("tests/test_keys.py"), _item("node_modules/x/index.js")]
    with patch.object(source.session, "get", side_effect=[_search(items, total=3)]) as mock_get:
        page = source.fetch_page("q", 1, 30)
    assert page.blobs == []
    assert mock_get.call_count == 1


def test_oversized_file_skipped() -> None:
    source = GitHubCodeSearch(token="ghp_test", max_blob_chars=10)
    responses = [_search([_item("big.py")], total=1), _contents("x = 1\n" * 10)]
    with patch.object(source.session, "get", side_effect=responses):
        page = source.fetch_page("q", 1, 30)
    assert page.blobs == []


def test_failed_contents_fetch_drops_only_that_item() -> None:
    source = GitHubCodeSearch(token="ghp_test")
    responses = [
        _search([_item("gone.py"), _item("kept.py")], total=2),
        make_response(404, {"message": "Not Found"}),
        _contents("x = 1\n"),
    ]
    with patch.object(source.session, "get", side_effect=responses):
        page = source.fetch_page("q", 1, 30)
    assert [b.origin.location for b in page.blobs] == ["kept.py"]


def test_notebooks_are_flattened() -> None:
    source = GitHubCodeSearch(token="ghp_test")
    notebook = json.dumps({
        "cells": [
            {"cell_type": "code", "source": ["import openai\n", "openai.api_key = 'k'\n"], "outputs": []},
        ]
    })
    responses = [_search([_item("analysis.ipynb")], total=1), _contents(notebook)]
    with patch.object(source.session, "get", side_effect=responses):
        page = source.fetch_page("q", 1, 30)
    assert page.blobs[0].text == "import openai\nopenai.api_key = 'k'\n"


@pytest.mark.parametrize("body", [[{"path": "a.py"}], "items", {"items": {"path": "a.py"}}])
def test_unexpected_search_payload_is_source_error(body) -> None:
    source = GitHubCodeSearch(token="ghp_test")
    with patch.object(source.session, "get", return_value=make_response(200, body)):
        with pytest.raises(SourceError):
            source.fetch_page("q", 1, 30)


def test_malformed_hits_and_contents_are_dropped() -> None:
    """A hit or contents body that is not an object skips only that item."""
    source = GitHubCodeSearch(token="ghp_test")
    responses = [
        _search(["not-a-hit", _item("listing.py"), _item("kept.py")], total=3),
        make_response(200, [{"name": "listing.py"}]),
        _contents("x = 1\n"),
    ]
    with patch.object(source.session, "get", side_effect=responses):
        page = source.fetch_page("q", 1, 30)
    assert [b.origin.location for b in page.blobs] == ["kept.py"]
    assert page.hit_count == 3
