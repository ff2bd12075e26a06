"""
Live verification of leaked keys against their providers.
"""
from __future__ import annotations

from Aletheia.verify.coordinator import VerificationCoordinator
from Aletheia.verify.dispatcher import VerificationDispatcher
from Aletheia.verify.providers import DEFAULT_CHECKS, ProviderCheck

__all__ = [
    "DEFAULT_CHECKS",
    "ProviderCheck",
    "VerificationCoordinator",
    "VerificationDispatcher",
]
