"""
Aletheia core: data model, classification, recording and run orchestration.
"""
from __future__ import annotations

from Aletheia.core.detector import ClassificationPipeline
from Aletheia.core.result import Candidate, ConfidenceTier, Origin, ScanResult, Verdict, VerificationOutcome

__all__ = [
    "Candidate",
    "ClassificationPipeline",
    "ConfidenceTier",
    "Origin",
    "ScanResult",
    "Verdict",
    "VerificationOutcome",
]
