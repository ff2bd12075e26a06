"""
Provider detection rules and the PatternLibrary that holds them.

Rules are declared as structured data (prefixes, body charset, body length
bounds, tier and context requirements) rather than as free-form regexes. The
library compiles each rule into an anchored pattern: the characters in
``boundary`` may not touch either end of a match, so a truncated key shown in
documentation or a longer token that merely contains a key-shaped substring
is never accepted as a full secret.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from re import Pattern
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Tuple

from Aletheia.core.errors import ConfigurationError
from Aletheia.core.result import ConfidenceTier

logger = logging.getLogger(__name__)

DEFAULT_BOUNDARY = r"A-Za-z0-9_\-"

ALNUM = "A-Za-z0-9"
URLSAFE = r"A-Za-z0-9_\-"
LOWER_HEX = "a-f0-9"


@dataclass(frozen=True)
class ProviderRule:
    """
    A single provider detection rule.

    Attributes:
        name: Unique rule identifier
        provider_id: Provider the secret belongs to (several rules may share one)
        prefixes: Literal prefixes the secret starts with; ("",) for unprefixed rules
        charset: Regex character-class body of the characters after the prefix
        min_length: Minimum body length (after the prefix)
        max_length: Maximum body length; equal to min_length for fixed-length formats
        tier: Declared confidence tier
        required_context_keywords: Keywords of which at least
            ``min_context_matches`` must appear near the match; empty means no check
        min_context_matches: Number of distinct keywords required
        excluded_prefixes: Literal prefixes a match must not start with
        display_name: Human readable provider name
        boundary: Character-class body of characters that may not touch the match
    """
    name: str
    provider_id: str
    prefixes: Tuple[str, ...]
    charset: str
    min_length: int
    max_length: int
    tier: ConfidenceTier
    required_context_keywords: FrozenSet[str] = field(default_factory=frozenset)
    min_context_matches: int = 1
    excluded_prefixes: Tuple[str, ...] = ()
    display_name: str = ""
    boundary: str = DEFAULT_BOUNDARY

    def __post_init__(self) -> None:
        if not self.name or not self.provider_id:
            raise ConfigurationError("Rules need both a name and a provider_id")
        if not self.prefixes:
            raise ConfigurationError(f"Rule {self.name!r} needs at least one prefix (use '' for none)")
        if self.min_length < 1:
            raise ConfigurationError(f"Rule {self.name!r}: min_length must be >= 1")
        if self.max_length < self.min_length:
            raise ConfigurationError(f"Rule {self.name!r}: max_length is below min_length")
        if self.min_context_matches < 1:
            raise ConfigurationError(f"Rule {self.name!r}: min_context_matches must be >= 1")
        if self.required_context_keywords and self.min_context_matches > len(self.required_context_keywords):
            raise ConfigurationError(
                f"Rule {self.name!r} requires {self.min_context_matches} context matches "
                f"but only declares {len(self.required_context_keywords)} keywords"
            )
        # Keywords are matched against a lower-cased window.
        object.__setattr__(
            self,
            "required_context_keywords",
            frozenset(k.lower() for k in self.required_context_keywords),
        )
        try:
            compiled = re.compile(self.regex_source)
        except re.error as e:
            raise ConfigurationError(f"Rule {self.name!r} does not compile: {e}") from e
        object.__setattr__(self, "_compiled", compiled)

    @property
    def fixed_length(self) -> bool:
        return self.min_length == self.max_length

    @property
    def has_prefix(self) -> bool:
        return any(self.prefixes)

    @property
    def needs_context(self) -> bool:
        return bool(self.required_context_keywords)

    @property
    def regex_source(self) -> str:
        alternatives = "|".join(re.escape(p) for p in sorted(self.prefixes, key=len, reverse=True))
        exclusions = "".join(f"(?!{re.escape(p)})" for p in self.excluded_prefixes)
        return (
            f"(?<![{self.boundary}])"
            f"{exclusions}"
            f"(?:{alternatives})"
            f"[{self.charset}]{{{self.min_length},{self.max_length}}}"
            f"(?![{self.boundary}])"
        )

    @property
    def pattern(self) -> Pattern[str]:
        return self._compiled  # type: ignore[attr-defined]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "provider": self.provider_id,
            "prefixes": list(self.prefixes),
            "charset": self.charset,
            "min_length": self.min_length,
            "max_length": self.max_length,
            "tier": self.tier.value,
            "context": sorted(self.required_context_keywords),
            "min_context_matches": self.min_context_matches,
            "excluded_prefixes": list(self.excluded_prefixes),
            "display_name": self.display_name,
        }


def _rule(
    name: str,
    provider_id: str,
    prefixes: Iterable[str],
    charset: str,
    length: Tuple[int, int],
    tier: ConfidenceTier,
    display_name: str,
    context: Iterable[str] = (),
    min_context_matches: int = 1,
    excluded_prefixes: Iterable[str] = (),
) -> ProviderRule:
    return ProviderRule(
        name=name,
        provider_id=provider_id,
        prefixes=tuple(prefixes),
        charset=charset,
        min_length=length[0],
        max_length=length[1],
        tier=tier,
        required_context_keywords=frozenset(context),
        min_context_matches=min_context_matches,
        excluded_prefixes=tuple(excluded_prefixes),
        display_name=display_name,
    )


HIGH = ConfidenceTier.HIGH
MEDIUM = ConfidenceTier.MEDIUM
LOW = ConfidenceTier.LOW

# Registration order matters within a tier: rules sharing a literal prefix must
# list the more specific prefix first (sk-ant-, sk-or-v1-, sk-proj- before sk-).
DEFAULT_RULES: Tuple[ProviderRule, ...] = (
    # --- High: provider-unique prefixes ---
    _rule("anthropic", "anthropic", ["sk-ant-api03-", "sk-ant-admin01-"], URLSAFE, (95, 95), HIGH,
          "Anthropic Claude"),
    _rule("openrouter", "openrouter", ["sk-or-v1-"], LOWER_HEX, (64, 64), HIGH, "OpenRouter"),
    _rule("openai_project", "openai", ["sk-proj-", "sk-svcacct-", "sk-admin-", "sk-None-"], URLSAFE,
          (40, 250), HIGH, "OpenAI Project"),
    _rule("openai", "openai", ["sk-"], ALNUM, (48, 48), HIGH, "OpenAI"),
    _rule("google", "google", ["AIza"], r"0-9A-Za-z_\-", (35, 35), HIGH, "Google AI"),
    _rule("huggingface", "huggingface", ["hf_"], ALNUM, (34, 34), HIGH, "HuggingFace"),
    _rule("replicate", "replicate", ["r8_"], ALNUM, (37, 37), HIGH, "Replicate"),
    _rule("groq", "groq", ["gsk_"], ALNUM, (52, 52), HIGH, "Groq"),
    _rule("perplexity", "perplexity", ["pplx-"], ALNUM, (48, 48), HIGH, "Perplexity AI"),
    _rule("fireworks", "fireworks", ["fw_"], ALNUM, (24, 48), HIGH, "Fireworks AI"),
    _rule("anyscale", "anyscale", ["esecret_"], ALNUM, (24, 40), HIGH, "Anyscale"),
    # --- Medium: shared prefixes or short prefixes ---
    _rule("deepseek", "deepseek", ["sk-"], LOWER_HEX, (32, 32), MEDIUM, "DeepSeek",
          context=["deepseek"]),
    _rule("voyage", "voyage", ["pa-"], URLSAFE, (43, 43), MEDIUM, "Voyage AI"),
    # --- Low: structurally generic, context is the only disambiguator ---
    _rule("openai_generic", "openai", ["sk-"], URLSAFE, (20, 200), LOW, "OpenAI (generic)",
          context=["openai", "api_key", "apikey", "api-key", "secret", "token"],
          excluded_prefixes=["sk-ant-", "sk-or-", "sk-proj-", "sk-svcacct-", "sk-admin-"]),
    _rule("mistral", "mistral", [""], ALNUM, (32, 32), LOW, "Mistral AI", context=["mistral"]),
    _rule("elevenlabs", "elevenlabs", [""], LOWER_HEX, (32, 32), LOW, "ElevenLabs",
          context=["elevenlabs", "eleven", "xi-api-key"]),
    _rule("azure_openai", "azure_openai", [""], LOWER_HEX, (32, 32), LOW, "Azure OpenAI",
          context=["azure", "openai"], min_context_matches=2),
    _rule("cohere", "cohere", [""], ALNUM, (40, 40), LOW, "Cohere", context=["cohere"]),
)


class PatternLibrary:
    """
    Ordered registry of ProviderRules.

    Rules are ordered by descending confidence tier, ties broken by
    registration order. The library never contains matching logic specific
    to a provider: adding a provider means registering another rule.
    """

    def __init__(self, rules: Optional[Iterable[ProviderRule]] = None) -> None:
        self._rules: List[ProviderRule] = []
        self._by_name: Dict[str, ProviderRule] = {}
        self._order: Dict[str, int] = {}
        for rule in DEFAULT_RULES if rules is None else rules:
            self.register(rule)

    def register(self, rule: ProviderRule) -> None:
        """
        Add a rule after every rule already registered.

        Raises:
            ConfigurationError: On a duplicate name, or if an earlier rule of the
                same tier has a prefix that the new rule's prefix extends (the
                less specific rule would be attempted first).
        """
        if rule.name in self._by_name:
            raise ConfigurationError(f"Duplicate rule name: {rule.name!r}")

        for existing in self._rules:
            if existing.tier != rule.tier:
                continue
            for new_prefix in rule.prefixes:
                for old_prefix in existing.prefixes:
                    if old_prefix and new_prefix != old_prefix and new_prefix.startswith(old_prefix):
                        raise ConfigurationError(
                            f"Rule {rule.name!r} (prefix {new_prefix!r}) is shadowed by "
                            f"less specific rule {existing.name!r} (prefix {old_prefix!r}) "
                            f"in tier {rule.tier.value}; register it first"
                        )

        self._order[rule.name] = len(self._rules)
        self._rules.append(rule)
        self._by_name[rule.name] = rule
        logger.debug("Registered rule %s (%s, %s)", rule.name, rule.provider_id, rule.tier.value)

    @property
    def rules(self) -> List[ProviderRule]:
        """All rules in matching order."""
        return sorted(self._rules, key=lambda r: (r.tier.rank, self._order[r.name]))

    def order_of(self, name: str) -> int:
        """Registration index of a rule."""
        return self._order[name]

    def get(self, name: str) -> ProviderRule:
        return self._by_name[name]

    def providers(self) -> List[str]:
        """Distinct provider ids in registration order."""
        seen: Dict[str, None] = {}
        for rule in self._rules:
            seen.setdefault(rule.provider_id, None)
        return list(seen)

    def rules_for(self, text: str) -> List[ProviderRule]:
        """
        Rules worth attempting against ``text``, in matching order.

        Prefixed rules are skipped when none of their prefixes occur in the
        text; unprefixed rules always apply.
        """
        return [
            rule for rule in self.rules
            if not rule.has_prefix or any(p and p in text for p in rule.prefixes)
        ]

    def __len__(self) -> int:
        return len(self._rules)

    def __iter__(self):
        return iter(self.rules)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @classmethod
    def from_yaml(cls, path: str | Path, include_defaults: bool = True) -> "PatternLibrary":
        """Load rules from a YAML file (see ``load_rules`` for the format)."""
        import yaml

        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return load_rules(data, include_defaults=include_defaults)


def rule_from_mapping(data: Mapping[str, Any]) -> ProviderRule:
    """
    Build a ProviderRule from a plain mapping.

    Accepts ``length`` as a single int (fixed length) or the pair of
    ``min_length``/``max_length`` keys.
    """
    try:
        if "length" in data:
            min_len = max_len = int(data["length"])
        else:
            min_len = int(data["min_length"])
            max_len = int(data.get("max_length", min_len))
        prefixes = data.get("prefixes", data.get("prefix", ""))
        if isinstance(prefixes, str):
            prefixes = [prefixes]
        return ProviderRule(
            name=str(data["name"]),
            provider_id=str(data.get("provider", data["name"])),
            prefixes=tuple(str(p) for p in prefixes),
            charset=str(data.get("charset", ALNUM)),
            min_length=min_len,
            max_length=max_len,
            tier=ConfidenceTier(str(data.get("tier", "low")).lower()),
            required_context_keywords=frozenset(data.get("context", []) or []),
            min_context_matches=int(data.get("min_context_matches", 1)),
            excluded_prefixes=tuple(data.get("excluded_prefixes", []) or []),
            display_name=str(data.get("display_name", "")),
            boundary=str(data.get("boundary", DEFAULT_BOUNDARY)),
        )
    except KeyError as e:
        raise ConfigurationError(f"Rule definition is missing field {e}") from e
    except ValueError as e:
        raise ConfigurationError(f"Invalid rule definition {dict(data)!r}: {e}") from e


def load_rules(data: Mapping[str, Any], include_defaults: bool = True) -> PatternLibrary:
    """
    Build a PatternLibrary from a mapping such as::

        aletheia:
          rules:
            - name: together
              provider: together
              prefix: ""
              charset: a-f0-9
              length: 64
              tier: low
              context: [together]

    Custom rules are registered after the defaults.
    """
    if "aletheia" in data:
        data = data["aletheia"] or {}
    entries = data.get("rules", []) or []
    library = PatternLibrary() if include_defaults else PatternLibrary(rules=[])
    for entry in entries:
        library.register(rule_from_mapping(entry))
    return library


__all__ = [
    "DEFAULT_RULES",
    "PatternLibrary",
    "ProviderRule",
    "load_rules",
    "rule_from_mapping",
]
