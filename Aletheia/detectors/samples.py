"""
Synthetic secrets generated from a rule's declared structure.

Used by the ``rules --check`` self-test and by property tests. The values are
well-formed for their rule but are never valid credentials.
"""
from __future__ import annotations

import random
from typing import List, Optional

from Aletheia.detectors.context import looks_like_placeholder
from Aletheia.detectors.regex_patterns import ProviderRule


def expand_charset(charset: str) -> str:
    """
    Expand a regex character-class body (e.g. ``A-Za-z0-9_\\-``) into the
    characters it contains.
    """
    chars: List[str] = []
    i = 0
    while i < len(charset):
        c = charset[i]
        if c == "\\" and i + 1 < len(charset):
            chars.append(charset[i + 1])
            i += 2
            continue
        if i + 2 < len(charset) and charset[i + 1] == "-":
            lo, hi = c, charset[i + 2]
            chars.extend(chr(o) for o in range(ord(lo), ord(hi) + 1))
            i += 3
            continue
        chars.append(c)
        i += 1
    # Keep first-seen order so seeded output is stable
    return "".join(dict.fromkeys(chars))


def _random_string(length: int, charset: str, rng: random.Random) -> str:
    """Generate random string from character set."""
    return "".join(rng.choice(charset) for _ in range(length))


def synthesize(
    rule: ProviderRule,
    rng: Optional[random.Random] = None,
    length: Optional[int] = None,
) -> str:
    """
    Generate a secret that matches ``rule``.

    Args:
        rule: Rule to generate for
        rng: Random source (a fresh unseeded one if omitted)
        length: Body length; defaults to the rule's minimum

    Returns:
        The first prefix of the rule followed by a random body
    """
    rng = rng or random.Random()
    body_len = rule.min_length if length is None else length
    if not rule.min_length <= body_len <= rule.max_length:
        raise ValueError(f"length {body_len} outside {rule.min_length}..{rule.max_length} for {rule.name}")
    charset = expand_charset(rule.charset)
    prefix = rule.prefixes[0]
    while True:
        body = _random_string(body_len, charset, rng)
        # A body starting with an excluded continuation would not match
        candidate = prefix + body
        if any(candidate.startswith(p) for p in rule.excluded_prefixes):
            continue
        if not looks_like_placeholder(candidate, prefix):
            return candidate


def context_sentence(rule: ProviderRule, secret: str) -> str:
    """A line of code placing ``secret`` next to every required keyword."""
    keywords = " ".join(sorted(rule.required_context_keywords))
    name = (rule.display_name or rule.provider_id).upper().replace(" ", "_")
    if keywords:
        return f'# {keywords}\n{name}_KEY = "{secret}"\n'
    return f'{name}_KEY = "{secret}"\n'


__all__ = ["context_sentence", "expand_charset", "synthesize"]
