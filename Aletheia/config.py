"""
Settings for Aletheia runs.

Settings come from defaults, then an optional YAML file, then environment
variables; command-line options override all three.

Example YAML:

    aletheia:
      max_pages: 3
      per_page: 30
      enable_pagination: true
      page_delay: 3
      queries:
        - '"sk-ant-" language:python NOT is:fork'
      store_dir: ~/.aletheia
      rules_file: extra_rules.yaml
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from Aletheia.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_QUERIES: List[str] = [
    '"sk-" language:python NOT is:fork',
    '"sk-ant-" language:python NOT is:fork',
    '"AIza" language:python NOT is:fork',
    '"hf_" language:python NOT is:fork',
    'openai_api_key language:python',
    'anthropic_api_key language:python',
    '"sk-or-v1-" language:python NOT is:fork',
    '"pplx-" language:python NOT is:fork',
    '"gsk_" language:python NOT is:fork',
    '"r8_" language:python NOT is:fork',
    '"fw_" language:python NOT is:fork',
    '"pa-" language:python NOT is:fork',
]

MAX_PER_PAGE = 100
DEFAULT_STORE_DIR = "~/.aletheia"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise ConfigurationError(f"{name} must be a boolean, got {value!r}")


@dataclass
class Settings:
    github_token: Optional[str] = None
    gitlab_token: Optional[str] = None
    gitlab_url: str = "https://gitlab.com"
    queries: List[str] = field(default_factory=lambda: list(DEFAULT_QUERIES))
    max_pages: int = 3
    per_page: int = 30
    enable_pagination: bool = True
    page_delay: float = 3.0
    rate_limit_fallback: float = 60.0
    max_cooldown: float = 300.0
    request_timeout: float = 10.0
    workers: int = 4
    verify_workers: int = 8
    context_radius: int = 200
    rules_file: Optional[str] = None
    store_dir: str = DEFAULT_STORE_DIR

    def __post_init__(self) -> None:
        self.per_page = min(max(int(self.per_page), 1), MAX_PER_PAGE)
        self.max_pages = int(self.max_pages)
        if self.max_pages < 1:
            raise ConfigurationError("max_pages must be >= 1")
        for name in ("page_delay", "rate_limit_fallback", "max_cooldown", "request_timeout"):
            if float(getattr(self, name)) < 0:
                raise ConfigurationError(f"{name} must be non-negative")
        if self.workers < 1 or self.verify_workers < 1:
            raise ConfigurationError("worker counts must be >= 1")

    @property
    def effective_max_pages(self) -> int:
        """Pages per query; a single page when pagination is disabled."""
        return self.max_pages if self.enable_pagination else 1

    @property
    def store_path(self) -> Path:
        return Path(self.store_dir).expanduser()

    def merged(self, **overrides: Any) -> "Settings":
        """A copy with every non-None override applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "Settings":
        """Build settings from a plain mapping (optionally nested under ``aletheia``)."""
        if "aletheia" in data:
            data = data["aletheia"] or {}
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
        values: Dict[str, Any] = dict(data)
        if "enable_pagination" in values:
            values["enable_pagination"] = _parse_bool("enable_pagination", values["enable_pagination"])
        if "queries" in values and isinstance(values["queries"], str):
            values["queries"] = [values["queries"]]
        try:
            return cls(**values)
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid settings: {e}") from e

    @classmethod
    def from_yaml(cls, path: str | Path) -> "Settings":
        """Load settings from a YAML file."""
        import yaml

        try:
            with open(path, encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigurationError(f"Cannot read config file {path}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {path}: {e}") from e
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} must contain a mapping")
        return cls.from_mapping(data)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None, base: Optional["Settings"] = None) -> "Settings":
        """
        Apply environment variables on top of ``base`` (defaults if omitted).

        Recognised: GITHUB_TOKEN, GITLAB_TOKEN, GITLAB_URL, ENABLE_PAGINATION,
        MAX_PAGES, PER_PAGE, PAGE_DELAY, REQUEST_TIMEOUT, ALETHEIA_WORKERS,
        ALETHEIA_STORE_DIR, ALETHEIA_RULES_FILE.
        """
        env = os.environ if environ is None else environ
        settings = base or cls()
        changes: Dict[str, Any] = {}

        def number(var: str, cast: Any) -> Optional[Any]:
            raw = env.get(var)
            if raw is None or raw == "":
                return None
            try:
                return cast(raw)
            except ValueError as e:
                raise ConfigurationError(f"{var} must be a number, got {raw!r}") from e

        for var, name in (("GITHUB_TOKEN", "github_token"), ("GITLAB_TOKEN", "gitlab_token"),
                          ("GITLAB_URL", "gitlab_url"), ("ALETHEIA_STORE_DIR", "store_dir"),
                          ("ALETHEIA_RULES_FILE", "rules_file")):
            if env.get(var):
                changes[name] = env[var]
        if env.get("ENABLE_PAGINATION"):
            changes["enable_pagination"] = _parse_bool("ENABLE_PAGINATION", env["ENABLE_PAGINATION"])
        for var, name, cast in (("MAX_PAGES", "max_pages", int), ("PER_PAGE", "per_page", int),
                                ("PAGE_DELAY", "page_delay", float),
                                ("REQUEST_TIMEOUT", "request_timeout", float),
                                ("ALETHEIA_WORKERS", "workers", int)):
            value = number(var, cast)
            if value is not None:
                changes[name] = value

        return replace(settings, **changes)

    @classmethod
    def load(cls, config_file: Optional[str | Path] = None, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """Defaults, then ``config_file``, then the environment."""
        base = cls.from_yaml(config_file) if config_file else cls()
        settings = cls.from_env(environ, base=base)
        logger.debug(
            "Settings: max_pages=%d per_page=%d pagination=%s",
            settings.max_pages, settings.per_page, settings.enable_pagination,
        )
        return settings


__all__ = ["DEFAULT_QUERIES", "Settings"]
