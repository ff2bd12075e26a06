"""Tests for live verification dispatch."""
from __future__ import annotations

from unittest.mock import patch

import pytest
import requests

from Aletheia.core.errors import ConfigurationError, UnknownProviderError
from Aletheia.core.result import Verdict, hash_secret
from Aletheia.verify.dispatcher import VerificationDispatcher
from Aletheia.verify.providers import AUTH_QUERY, DEFAULT_CHECKS, ProviderCheck

from helpers import ANTHROPIC_KEY, GOOGLE_KEY, OPENAI_KEY, Clock, make_response


@pytest.fixture
def dispatcher() -> VerificationDispatcher:
    return VerificationDispatcher(clock=Clock())


@pytest.mark.parametrize(
    "status, verdict",
    [
        (200, Verdict.VALID),
        (429, Verdict.VALID),
        (400, Verdict.VALID),
        (401, Verdict.INVALID),
        (403, Verdict.INVALID),
    ],
)
def test_status_classification(dispatcher: VerificationDispatcher, status: int, verdict: Verdict) -> None:
    """Only authentication rejections mean invalid; quota and validation errors mean valid."""
    with patch.object(dispatcher.session, "request", return_value=make_response(status, {})):
        outcome = dispatcher.verify("openai", OPENAI_KEY)

    assert outcome.verdict == verdict
    assert outcome.http_status == status
    assert outcome.transport_error is None
    assert outcome.provider_id == "openai"
    assert outcome.candidate_ref == hash_secret(OPENAI_KEY)


@pytest.mark.parametrize("error", [requests.Timeout("timed out"), requests.ConnectionError("refused")])
def test_transport_failure_is_unverifiable(dispatcher: VerificationDispatcher, error: Exception) -> None:
    with patch.object(dispatcher.session, "request", side_effect=error):
        outcome = dispatcher.verify("openai", OPENAI_KEY, candidate_ref="k1")

    assert outcome.verdict == Verdict.UNVERIFIABLE
    assert outcome.transport_error == type(error).__name__
    assert outcome.http_status is None
    assert outcome.candidate_ref == "k1"


def test_transport_error_never_contains_secret(dispatcher: VerificationDispatcher) -> None:
    error = requests.ConnectionError(f"failed for https://example.com/?key={GOOGLE_KEY}")
    with patch.object(dispatcher.session, "request", side_effect=error):
        outcome = dispatcher.verify("google", GOOGLE_KEY)
    assert GOOGLE_KEY not in (outcome.transport_error or "")


def test_unknown_provider(dispatcher: VerificationDispatcher) -> None:
    with patch.object(dispatcher.session, "request") as mock_request:
        with pytest.raises(UnknownProviderError) as excinfo:
            dispatcher.verify("nonexistent", "secret")
    assert excinfo.value.provider_id == "nonexistent"
    mock_request.assert_not_called()


def test_provider_without_live_check(dispatcher: VerificationDispatcher) -> None:
    """Providers with no metadata endpoint are reported unverifiable without a request."""
    with patch.object(dispatcher.session, "request") as mock_request:
        outcome = dispatcher.verify("azure_openai", "9f3a7c1e5b2d80649f3a7c1e5b2d8064")
    assert outcome.verdict == Verdict.UNVERIFIABLE
    assert "azure_openai" in outcome.transport_error
    assert not dispatcher.supports("azure_openai")
    assert dispatcher.supports("openai")
    mock_request.assert_not_called()


def test_anthropic_uses_api_key_header(dispatcher: VerificationDispatcher) -> None:
    with patch.object(dispatcher.session, "request", return_value=make_response(200, {"data": []})) as mock_request:
        dispatcher.verify("anthropic", ANTHROPIC_KEY)

    kwargs = mock_request.call_args.kwargs
    assert kwargs["method"] == "GET"
    assert kwargs["url"] == "https://api.anthropic.com/v1/models"
    assert kwargs["headers"]["x-api-key"] == ANTHROPIC_KEY
    assert "anthropic-version" in kwargs["headers"]
    assert kwargs["timeout"] == 10.0


def test_google_key_in_query_and_400_is_invalid(dispatcher: VerificationDispatcher) -> None:
    response = make_response(400, {"error": {"status": "INVALID_ARGUMENT", "message": "API key not valid"}})
    with patch.object(dispatcher.session, "request", return_value=response) as mock_request:
        outcome = dispatcher.verify("google", GOOGLE_KEY)

    assert mock_request.call_args.kwargs["params"] == {"key": GOOGLE_KEY}
    assert outcome.verdict == Verdict.INVALID


def test_post_checks_send_empty_body(dispatcher: VerificationDispatcher) -> None:
    with patch.object(dispatcher.session, "request", return_value=make_response(400, {})) as mock_request:
        outcome = dispatcher.verify("perplexity", "pplx-" + "a1" * 24)
    assert mock_request.call_args.kwargs["method"] == "POST"
    assert mock_request.call_args.kwargs["json"] == {}
    assert outcome.verdict == Verdict.VALID


def test_checked_at_comes_from_clock() -> None:
    clock = Clock()
    dispatcher = VerificationDispatcher(clock=clock)
    with patch.object(dispatcher.session, "request", return_value=make_response(200, {})):
        first = dispatcher.verify("groq", "gsk_x")
        second = dispatcher.verify("groq", "gsk_x")
    assert second.checked_at > first.checked_at


def test_every_default_provider_has_a_check() -> None:
    """Every provider the default rules can emit has a registered procedure."""
    from Aletheia.detectors.regex_patterns import PatternLibrary

    for provider in PatternLibrary().providers():
        assert provider in DEFAULT_CHECKS


class TestProviderCheck:
    def test_bearer(self) -> None:
        check = ProviderCheck(provider_id="x", url="https://x/models")
        kwargs = check.request_kwargs("s3cret")
        assert kwargs == {"method": "GET", "url": "https://x/models", "headers": {"Authorization": "Bearer s3cret"}}

    def test_query(self) -> None:
        check = ProviderCheck(provider_id="x", url="https://x", auth=AUTH_QUERY, auth_name="token")
        assert check.request_kwargs("s3cret")["params"] == {"token": "s3cret"}

    def test_static_headers_not_mutated(self) -> None:
        check = ProviderCheck(provider_id="x", url="https://x", headers={"v": "1"})
        check.request_kwargs("s3cret")
        assert dict(check.headers) == {"v": "1"}

    def test_unknown_auth_style(self) -> None:
        """A misconfigured check is rejected when it is defined, not when it is used."""
        with pytest.raises(ConfigurationError):
            ProviderCheck(provider_id="x", url="https://x", auth="cookie")
