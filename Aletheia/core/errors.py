"""
Exception hierarchy for Aletheia.

Filtering outcomes (failed context checks, duplicate spans) are not errors and
never raise. Everything here is either recoverable by the caller (rate limits,
source and persistence failures) or a configuration problem scoped to a single
operation.
"""
from __future__ import annotations

from typing import Optional


class AletheiaError(Exception):
    """Base class for all Aletheia errors."""


class ConfigurationError(AletheiaError):
    """Raised when an operation is misconfigured (bad rule, missing provider...)."""


class UnknownProviderError(ConfigurationError):
    """Raised when no verification procedure is registered for a provider."""

    def __init__(self, provider_id: str):
        super().__init__(f"No verification procedure registered for provider '{provider_id}'")
        self.provider_id = provider_id


class MissingCredentialsError(ConfigurationError):
    """Raised when an external API needs credentials that were not supplied or were rejected."""


class SourceError(AletheiaError):
    """Transport failure talking to a search source (timeout, DNS, bad payload)."""


class RateLimited(AletheiaError):
    """
    Signal raised by a search source when the remote API reports a rate limit.

    Attributes:
        retry_after: Cool-down in seconds requested by the provider, if it gave one.
    """

    def __init__(self, message: str = "rate limited", retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class RateLimitExhausted(AletheiaError):
    """
    A query hit a rate limit that could not be waited out within this run.

    The query should be resumed from ``page`` on the next scheduled run.
    """

    def __init__(self, query: str, page: int, retry_after: Optional[float] = None):
        super().__init__(f"Rate limit exhausted for query {query!r} at page {page}")
        self.query = query
        self.page = page
        self.retry_after = retry_after


class PersistenceError(AletheiaError):
    """Raised when writing candidates or outcomes to the key store fails."""


class InvalidTransitionError(AletheiaError):
    """Raised when a status change is not allowed from the record's current state."""


__all__ = [
    "AletheiaError",
    "ConfigurationError",
    "UnknownProviderError",
    "MissingCredentialsError",
    "SourceError",
    "RateLimited",
    "RateLimitExhausted",
    "PersistenceError",
    "InvalidTransitionError",
]
