"""
Live-check procedures, one per provider.

Every check is a metadata-only request: a model listing, a whoami or a key
info endpoint. Where a provider has none, an empty-body POST is used; it is
rejected at authentication (401/403) for a bad key and at validation
(400/422) for a good one, so nothing billable ever runs.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Mapping, Optional

from Aletheia.core.errors import ConfigurationError

AUTH_BEARER = "bearer"
AUTH_HEADER = "header"
AUTH_QUERY = "query"
AUTH_STYLES = (AUTH_BEARER, AUTH_HEADER, AUTH_QUERY)

DEFAULT_REJECTIONS: FrozenSet[int] = frozenset({401, 403})


@dataclass(frozen=True)
class ProviderCheck:
    """
    How to check one provider's keys.

    Attributes:
        provider_id: Provider this check belongs to
        url: Endpoint to call; None means the provider cannot be live-checked
        method: HTTP method
        auth: Where the key goes: "bearer", "header" or "query"
        auth_name: Header or query parameter name for "header"/"query" auth
        headers: Extra static headers
        json_body: JSON body for POST checks
        rejection_statuses: Statuses meaning the key was rejected
    """
    provider_id: str
    url: Optional[str]
    method: str = "GET"
    auth: str = AUTH_BEARER
    auth_name: str = "Authorization"
    headers: Mapping[str, str] = field(default_factory=dict)
    json_body: Optional[Dict[str, Any]] = None
    rejection_statuses: FrozenSet[int] = DEFAULT_REJECTIONS

    def __post_init__(self) -> None:
        if self.auth not in AUTH_STYLES:
            raise ConfigurationError(f"Unknown auth style {self.auth!r} for {self.provider_id}")

    @property
    def supported(self) -> bool:
        return self.url is not None

    def request_kwargs(self, secret: str) -> Dict[str, Any]:
        """Keyword arguments for ``requests.Session.request``."""
        headers = dict(self.headers)
        params: Dict[str, str] = {}
        if self.auth == AUTH_BEARER:
            headers["Authorization"] = f"Bearer {secret}"
        elif self.auth == AUTH_HEADER:
            headers[self.auth_name] = secret
        else:
            params[self.auth_name] = secret

        kwargs: Dict[str, Any] = {"method": self.method, "url": self.url, "headers": headers}
        if params:
            kwargs["params"] = params
        if self.json_body is not None:
            kwargs["json"] = self.json_body
        return kwargs


def _bearer(provider_id: str, url: str, **kwargs: Any) -> ProviderCheck:
    return ProviderCheck(provider_id=provider_id, url=url, auth=AUTH_BEARER, **kwargs)


DEFAULT_CHECKS: Dict[str, ProviderCheck] = {
    check.provider_id: check
    for check in (
        _bearer("openai", "https://api.openai.com/v1/models"),
        _bearer("deepseek", "https://api.deepseek.com/models"),
        ProviderCheck(
            provider_id="anthropic",
            url="https://api.anthropic.com/v1/models",
            auth=AUTH_HEADER,
            auth_name="x-api-key",
            headers={"anthropic-version": "2023-06-01"},
        ),
        _bearer("openrouter", "https://openrouter.ai/api/v1/key"),
        _bearer("perplexity", "https://api.perplexity.ai/chat/completions", method="POST", json_body={}),
        _bearer("groq", "https://api.groq.com/openai/v1/models"),
        ProviderCheck(
            provider_id="google",
            url="https://generativelanguage.googleapis.com/v1beta/models",
            auth=AUTH_QUERY,
            auth_name="key",
            # Invalid Google keys come back as 400 API_KEY_INVALID
            rejection_statuses=frozenset({400, 401, 403}),
        ),
        _bearer("huggingface", "https://huggingface.co/api/whoami-v2"),
        _bearer("replicate", "https://api.replicate.com/v1/account"),
        _bearer("mistral", "https://api.mistral.ai/v1/models"),
        _bearer("cohere", "https://api.cohere.com/v1/models"),
        _bearer("fireworks", "https://api.fireworks.ai/inference/v1/models"),
        ProviderCheck(
            provider_id="elevenlabs",
            url="https://api.elevenlabs.io/v1/user",
            auth=AUTH_HEADER,
            auth_name="xi-api-key",
        ),
        _bearer("voyage", "https://api.voyageai.com/v1/embeddings", method="POST", json_body={}),
        # Endpoint depends on the customer's deployment or has no metadata call
        ProviderCheck(provider_id="anyscale", url=None),
        ProviderCheck(provider_id="azure_openai", url=None),
    )
}


__all__ = [
    "AUTH_BEARER",
    "AUTH_HEADER",
    "AUTH_QUERY",
    "DEFAULT_CHECKS",
    "ProviderCheck",
]
