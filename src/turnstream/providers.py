"""Provider registry and model-identity helpers.

// [LAW:one-source-of-truth] Provider tool-call id constraints live here.
// [LAW:single-enforcer] Same-model checks go through is_same_model().
"""

from __future__ import annotations

import hashlib
import re
from dataclasses import dataclass

from turnstream.conversation import AssistantMessage, ModelIdentity


@dataclass(frozen=True)
class ProviderSpec:
    """Canonical metadata for one provider's history constraints."""

    key: str
    display_name: str
    # None = no length limit.
    tool_call_id_max_len: int | None = None
    # Characters matching this pattern are replaced with "_". None = anything goes.
    tool_call_id_disallowed: re.Pattern[str] | None = None
    # Provider requires ids of exactly tool_call_id_max_len alphanumerics.
    tool_call_id_fixed_len: bool = False


_NOT_ID_SAFE = re.compile(r"[^a-zA-Z0-9_-]")
_NOT_ALNUM = re.compile(r"[^a-zA-Z0-9]")

_DIGEST_LEN = 8

_PERMISSIVE = ProviderSpec(key="", display_name="Unknown")


# // [LAW:one-source-of-truth] All known providers are declared in this registry.
_PROVIDERS: dict[str, ProviderSpec] = {
    "anthropic": ProviderSpec(
        key="anthropic",
        display_name="Anthropic",
        tool_call_id_max_len=64,
        tool_call_id_disallowed=_NOT_ID_SAFE,
    ),
    "openai": ProviderSpec(
        key="openai",
        display_name="OpenAI",
        tool_call_id_max_len=40,
        tool_call_id_disallowed=_NOT_ID_SAFE,
    ),
    "mistral": ProviderSpec(
        key="mistral",
        display_name="Mistral",
        tool_call_id_max_len=9,
        tool_call_id_disallowed=_NOT_ALNUM,
        tool_call_id_fixed_len=True,
    ),
    "google": ProviderSpec(
        key="google",
        display_name="Google",
    ),
}


def normalize_provider(provider: str) -> str:
    return str(provider or "").strip().lower()


def is_known_provider(provider: str) -> bool:
    return normalize_provider(provider) in _PROVIDERS


def get_provider_spec(provider: str) -> ProviderSpec:
    """Return provider spec, or a permissive spec for unknown providers."""
    return _PROVIDERS.get(normalize_provider(provider), _PERMISSIVE)


def all_provider_specs() -> tuple[ProviderSpec, ...]:
    return tuple(_PROVIDERS.values())


def is_same_model(message: AssistantMessage, target: ModelIdentity) -> bool:
    """True when the message was produced by exactly the target model."""
    return message.model == target


def _digest(value: str) -> str:
    return hashlib.sha1(value.encode("utf-8", errors="surrogatepass")).hexdigest()


def _conforms(tool_call_id: str, spec: ProviderSpec) -> bool:
    if not tool_call_id:
        return False
    if spec.tool_call_id_disallowed is not None and spec.tool_call_id_disallowed.search(tool_call_id):
        return False
    limit = spec.tool_call_id_max_len
    if limit is None:
        return True
    if spec.tool_call_id_fixed_len:
        return len(tool_call_id) == limit
    return len(tool_call_id) <= limit


def normalize_tool_call_id(
    tool_call_id: str,
    target: ModelIdentity,
    source: AssistantMessage | None = None,
) -> str:
    """Default id remap: make a tool-call id acceptable to the target provider.

    Conforming ids come back unchanged, so applying this twice is a no-op.
    Ids that must be shortened keep a readable prefix plus a digest of the
    full original id, so two long ids sharing a prefix stay distinct.
    """
    del source  # Remap depends only on the id and the target's constraints.
    spec = get_provider_spec(target.provider)
    if _conforms(tool_call_id, spec):
        return tool_call_id

    digest = _digest(tool_call_id)
    if spec.tool_call_id_fixed_len and spec.tool_call_id_max_len is not None:
        # hex digest is already alphanumeric
        return digest[: spec.tool_call_id_max_len]

    cleaned = tool_call_id
    if spec.tool_call_id_disallowed is not None:
        cleaned = spec.tool_call_id_disallowed.sub("_", cleaned)
    limit = spec.tool_call_id_max_len
    if limit is not None and len(cleaned) > limit:
        keep = max(0, limit - _DIGEST_LEN - 1)
        cleaned = f"{cleaned[:keep]}_{digest[:_DIGEST_LEN]}" if keep else digest[:limit]
    return cleaned or digest[: limit or len(digest)]
