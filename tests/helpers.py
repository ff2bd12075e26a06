"""Shared builders for the test suite."""
from __future__ import annotations

import itertools
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import requests

ALNUM_CYCLE = "Zq8Rm2Kx7Vw4Tn6Hp3Ly5Jc9Bs"
HEX_CYCLE = "9f3a7c1e5b2d8064"


def body(n: int, alphabet: str = ALNUM_CYCLE) -> str:
    """Deterministic, non-repetitive key body of length ``n``."""
    return "".join(itertools.islice(itertools.cycle(alphabet), n))


ANTHROPIC_KEY = "sk-ant-api03-" + body(95)
OPENAI_KEY = "sk-" + body(48)
OPENAI_PROJECT_KEY = "sk-proj-" + body(64)
DEEPSEEK_KEY = "sk-" + body(32, HEX_CYCLE)
OPENROUTER_KEY = "sk-or-v1-" + body(64, HEX_CYCLE)
GOOGLE_KEY = "AIza" + body(35)
GROQ_KEY = "gsk_" + body(52)
MISTRAL_KEY = body(32)


def make_response(
    status: int = 200,
    json_body: Any = None,
    headers: Optional[Dict[str, str]] = None,
    text: Optional[str] = None,
) -> requests.Response:
    """A real ``requests.Response`` with the given status, body and headers."""
    response = requests.Response()
    response.status_code = status
    if json_body is not None:
        response._content = json.dumps(json_body).encode("utf-8")
        response.headers["Content-Type"] = "application/json"
    else:
        response._content = (text or "").encode("utf-8")
    response.encoding = "utf-8"
    for name, value in (headers or {}).items():
        response.headers[name] = value
    return response


class Clock:
    """Deterministic clock advancing one second per call."""

    def __init__(self, start: Optional[datetime] = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now = self.now + timedelta(seconds=1)
        return self.now
