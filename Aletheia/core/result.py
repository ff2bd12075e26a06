from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def hash_secret(secret: str) -> str:
    """Stable identifier for a secret value (sha256 hex digest)."""
    return hashlib.sha256(secret.encode("utf-8")).hexdigest()


def mask_secret(value: str) -> str:
    """
    Mask a secret for display, keeping the first 8 and last 4 characters.

    Short values are fully hidden.
    """
    if len(value) <= 12:
        return "*" * len(value)
    return f"{value[:8]}...{value[-4:]}"


class ConfidenceTier(Enum):
    """Declared reliability of a detection rule, absent context."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """0 for high, 1 for medium, 2 for low. Lower sorts first."""
        return _TIER_RANK[self]


_TIER_RANK = {
    ConfidenceTier.HIGH: 0,
    ConfidenceTier.MEDIUM: 1,
    ConfidenceTier.LOW: 2,
}


class Severity(Enum):
    """Triage severity of a leaked key."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Verdict(Enum):
    """Three-way outcome of a live verification call."""
    VALID = "valid"
    INVALID = "invalid"
    UNVERIFIABLE = "unverifiable"


@dataclass(frozen=True)
class Origin:
    """
    Where a blob came from.

    Attributes:
        source_identifier: Source plus repository, e.g. "github:owner/repo",
            or the scan root for local files
        location: Path of the file inside the source
        url: Browser URL of the file, when known
    """
    source_identifier: str
    location: str
    url: Optional[str] = None

    def __str__(self) -> str:
        return f"{self.source_identifier}:{self.location}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source_identifier": self.source_identifier,
            "location": self.location,
            "url": self.url,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Origin":
        return cls(
            source_identifier=data["source_identifier"],
            location=data["location"],
            url=data.get("url"),
        )


@dataclass(frozen=True)
class Candidate:
    """
    A text span suspected of being a leaked secret.

    Attributes:
        raw_text: The matched secret (handle with care)
        span: Half-open [start, end) offsets into the classified blob
        provider_id: Provider the matching rule belongs to
        confidence_tier: Tier of the matching rule
        origin: Where the blob came from
        rule_name: Name of the rule that produced the match
        line: 1-based line number of the match start
        context_preview: Surrounding text with the secret replaced by [REDACTED_KEY]
    """
    raw_text: str
    span: Tuple[int, int]
    provider_id: str
    confidence_tier: ConfidenceTier
    origin: Origin
    rule_name: str
    line: Optional[int] = None
    context_preview: str = ""

    @property
    def start(self) -> int:
        return self.span[0]

    @property
    def end(self) -> int:
        return self.span[1]

    @property
    def length(self) -> int:
        return self.span[1] - self.span[0]

    @property
    def key_id(self) -> str:
        """Identifier shared by every sighting of the same secret."""
        return hash_secret(self.raw_text)

    @property
    def redacted_text(self) -> str:
        return mask_secret(self.raw_text)

    def overlaps(self, other: "Candidate") -> bool:
        return self.start < other.end and other.start < self.end

    def to_json_dict(self) -> Dict[str, Any]:
        """Public-safe representation; never includes the raw secret."""
        return {
            "key_id": self.key_id,
            "provider": self.provider_id,
            "confidence": self.confidence_tier.value,
            "rule": self.rule_name,
            "key_preview": self.redacted_text,
            "origin": self.origin.to_dict(),
            "line": self.line,
            "span": list(self.span),
            "context_preview": self.context_preview,
        }

    def __str__(self) -> str:
        loc = f"{self.origin}:{self.line}" if self.line else str(self.origin)
        return (
            f"[{self.confidence_tier.value.upper()}] {self.provider_id} "
            f"{self.redacted_text} at {loc}"
        )


@dataclass(frozen=True)
class VerificationOutcome:
    """Immutable result of one live verification call."""
    candidate_ref: Optional[str]
    provider_id: str
    verdict: Verdict
    checked_at: datetime
    transport_error: Optional[str] = None
    http_status: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key_id": self.candidate_ref,
            "provider": self.provider_id,
            "verdict": self.verdict.value,
            "checked_at": self.checked_at.isoformat(),
            "transport_error": self.transport_error,
            "http_status": self.http_status,
        }


@dataclass
class QueryCheckpoint:
    """A query abandoned for this run, and the page to resume it from."""
    query: str
    resume_page: int
    reason: str


@dataclass
class ScanResult:
    """
    Represents the complete result of a scan or harvest run.

    Attributes:
        candidates: Every retained candidate
        scanned_files: Number of blobs classified
        pages_fetched: Number of search pages fetched (harvest runs only)
        total_lines: Total lines of text classified
        duration_ms: Run duration in milliseconds
        new_keys: key_ids recorded for the first time during this run
        unpersisted: Candidates whose persistence write failed
        abandoned: Queries abandoned for this run, with their resume page
        outcomes: Verification outcomes produced during this run
        errors: List of errors encountered
    """
    candidates: List[Candidate] = field(default_factory=list)
    scanned_files: int = 0
    pages_fetched: int = 0
    total_lines: int = 0
    duration_ms: float = 0.0
    new_keys: List[str] = field(default_factory=list)
    unpersisted: List[Candidate] = field(default_factory=list)
    abandoned: List[QueryCheckpoint] = field(default_factory=list)
    outcomes: List[VerificationOutcome] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def found_secrets(self) -> bool:
        """Returns True if any candidates were retained"""
        return len(self.candidates) > 0

    @property
    def high_count(self) -> int:
        """Count of high-confidence candidates"""
        return sum(1 for c in self.candidates if c.confidence_tier == ConfidenceTier.HIGH)

    def to_dict(self) -> Dict[str, Any]:
        """Convert scan result to a dictionary"""
        return {
            "findings": [c.to_json_dict() for c in self.candidates],
            "scanned_files": self.scanned_files,
            "pages_fetched": self.pages_fetched,
            "total_lines": self.total_lines,
            "duration_ms": self.duration_ms,
            "new_keys": list(self.new_keys),
            "abandoned": [
                {"query": a.query, "resume_page": a.resume_page, "reason": a.reason}
                for a in self.abandoned
            ],
            "outcomes": [o.to_dict() for o in self.outcomes],
            "errors": self.errors,
            "summary": {
                "total_findings": len(self.candidates),
                "high": self.high_count,
            },
        }

    def __str__(self) -> str:
        """Human readable summary"""
        return (
            f"Scan complete: {len(self.candidates)} findings in "
            f"{self.scanned_files} files ({self.total_lines} lines) "
            f"[{self.duration_ms:.2f}ms]"
        )


__all__ = [
    "Candidate",
    "ConfidenceTier",
    "Origin",
    "QueryCheckpoint",
    "ScanResult",
    "Severity",
    "Verdict",
    "VerificationOutcome",
    "hash_secret",
    "mask_secret",
    "utcnow",
]
