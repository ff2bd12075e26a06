"""
Verification dispatcher.

Maps a provider to its live check and classifies the response by HTTP status
only: a rejection status means the key is invalid, any other response means
the key was accepted (quota or validation errors happen after
authentication), and a transport failure means nothing can be concluded.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Mapping, Optional

import requests

from Aletheia import __version__
from Aletheia.core.errors import UnknownProviderError
from Aletheia.core.result import Verdict, VerificationOutcome, hash_secret, utcnow
from Aletheia.verify.providers import DEFAULT_CHECKS, ProviderCheck

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 10.0


class VerificationDispatcher:
    """
    Args:
        checks: provider_id -> ProviderCheck mapping
        session: HTTP session (a new one if omitted)
        timeout: Per-request timeout in seconds
        clock: Source of ``checked_at`` timestamps
    """

    def __init__(
        self,
        checks: Optional[Mapping[str, ProviderCheck]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = DEFAULT_TIMEOUT,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.checks = dict(DEFAULT_CHECKS if checks is None else checks)
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", f"aletheia/{__version__}")
        self.timeout = timeout
        self.clock = clock

    def check_for(self, provider_id: str) -> ProviderCheck:
        try:
            return self.checks[provider_id]
        except KeyError:
            raise UnknownProviderError(provider_id) from None

    def supports(self, provider_id: str) -> bool:
        check = self.checks.get(provider_id)
        return check is not None and check.supported

    def verify(self, provider_id: str, secret: str, candidate_ref: Optional[str] = None) -> VerificationOutcome:
        """
        Check one secret against its provider.

        Args:
            provider_id: Provider the secret belongs to
            secret: Raw secret value
            candidate_ref: key_id to record on the outcome (sha256 of the
                secret if omitted)

        Returns:
            VerificationOutcome with a valid, invalid or unverifiable verdict

        Raises:
            UnknownProviderError: No check is registered for ``provider_id``
        """
        check = self.check_for(provider_id)
        ref = candidate_ref or hash_secret(secret)

        if not check.supported:
            logger.debug("No live check for %s, marking %s unverifiable", provider_id, ref[:12])
            return VerificationOutcome(
                candidate_ref=ref,
                provider_id=provider_id,
                verdict=Verdict.UNVERIFIABLE,
                checked_at=self.clock(),
                transport_error=f"no live check available for {provider_id}",
            )

        try:
            response = self.session.request(timeout=self.timeout, **check.request_kwargs(secret))
        except requests.RequestException as e:
            # Messages may embed the request URL, which carries the key for query auth
            error = type(e).__name__
            logger.warning("Verification of %s key %s failed: %s", provider_id, ref[:12], error)
            return VerificationOutcome(
                candidate_ref=ref,
                provider_id=provider_id,
                verdict=Verdict.UNVERIFIABLE,
                checked_at=self.clock(),
                transport_error=error,
            )

        status = response.status_code
        verdict = Verdict.INVALID if status in check.rejection_statuses else Verdict.VALID
        logger.info("Verified %s key %s: %s (HTTP %d)", provider_id, ref[:12], verdict.value, status)
        return VerificationOutcome(
            candidate_ref=ref,
            provider_id=provider_id,
            verdict=verdict,
            checked_at=self.clock(),
            http_status=status,
        )


__all__ = ["DEFAULT_TIMEOUT", "VerificationDispatcher"]
