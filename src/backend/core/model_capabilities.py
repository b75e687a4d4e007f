"""
Model capability resolution for the model listing endpoint.

Configured capability records (``LLM_CONFIGURATIONS``) always win. For other
models the capabilities are guessed from the model id.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Any

from core.constants import FALLBACK_TOKEN_LIMIT
from models.config_models import LLMCapabilities
from models.schemas.llm import ModelInfo

_VISION_SUBSTRINGS = ("vision", "-v", "gpt-4o", "gemini-pro-vision", "gemini-1.5")
_VISION_EXACT = ("gpt-4-turbo", "claude-3-opus", "claude-3-sonnet", "claude-3-haiku")
_NO_TOOL_SUBSTRINGS = ("instruct", "davinci", "babbage", "curie", "ada")


def should_skip_model(model_id: str | None) -> bool:
    """Internal, embedding, search and moderation models are not chat models."""
    if not model_id:
        return True
    if model_id.startswith("internal-") or "-internal" in model_id:
        return True
    if "embedding" in model_id or "search" in model_id or model_id.endswith("-e"):
        return True
    return "moderation" in model_id


def pretty_model_name(model_id: str) -> str:
    """``openrouter:gpt-4o_mini`` -> ``Gpt 4o Mini``."""
    name = model_id.split(":", 1)[1] if ":" in model_id else model_id
    words = name.replace("_", "-").split("-")
    return " ".join(word[:1].upper() + word[1:] for word in words)


def provider_from_id(model_id: str) -> str:
    if model_id.startswith(("gpt-", "dall-e")):
        return "openai"
    if model_id.startswith(("anthropic", "claude")):
        return "anthropic"
    if "mistral" in model_id or "mixtral" in model_id:
        return "mistral"
    if "gemini" in model_id:
        return "google"
    if "llama" in model_id:
        return "meta"
    if model_id.startswith("glm") or "chatglm" in model_id:
        return "thudm"
    if ":" in model_id:
        return model_id.split(":", 1)[0].lower()
    return "custom-provider"


def detect_vision(model_id: str) -> bool:
    lowered = model_id.lower()
    return any(s in lowered for s in _VISION_SUBSTRINGS) or lowered in _VISION_EXACT


def detect_tool_support(model_id: str) -> bool:
    lowered = model_id.lower()
    return not any(s in lowered for s in _NO_TOOL_SUBSTRINGS)


class CapabilityCatalog:
    """Lookup of configured capability records by model id."""

    def __init__(self, records: Iterable[LLMCapabilities] = ()) -> None:
        self._records = {record.id: record for record in records}

    def get(self, model_id: str) -> LLMCapabilities | None:
        return self._records.get(model_id)

    def __len__(self) -> int:
        return len(self._records)


def resolve_model(model_id: str, raw: dict[str, Any], catalog: CapabilityCatalog) -> ModelInfo:
    """Build a ModelInfo from a ``/models`` entry."""
    raw_name = raw.get("name") if isinstance(raw.get("name"), str) else None
    record = catalog.get(model_id)

    if record is not None:
        description = " ".join(part for part in (record.description, record.notes) if part)
        return ModelInfo(
            id=model_id,
            name=record.name or raw_name or pretty_model_name(model_id),
            provider=provider_from_id(model_id),
            description=description,
            capabilities="(Configured)",
            token_limit=record.max_tokens or 0,
            supports_text=True,
            supports_image=record.supports_image,
            supports_pdf=record.supports_pdf,
            supports_json=record.supports_json,
            supports_tools=record.supports_tools,
        )

    display_name = raw_name or pretty_model_name(model_id)
    vision = detect_vision(model_id)
    return ModelInfo(
        id=model_id,
        name=display_name,
        provider=provider_from_id(model_id),
        description=f"Basic fallback configuration for {display_name}",
        capabilities="(Fallback)",
        token_limit=FALLBACK_TOKEN_LIMIT,
        supports_text=True,
        supports_image=vision,
        supports_pdf=vision,
        supports_json=True,
        supports_tools=detect_tool_support(model_id),
    )


def resolve_models(entries: Sequence[Any], catalog: CapabilityCatalog) -> list[ModelInfo]:
    """Resolve a ``/models`` ``data`` array, skipping non-chat models, sorted by display name."""
    models: list[ModelInfo] = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        model_id = entry.get("id")
        if not isinstance(model_id, str) or should_skip_model(model_id):
            continue
        models.append(resolve_model(model_id, entry, catalog))
    models.sort(key=lambda m: m.name.lower())
    return models


__all__ = [
    "CapabilityCatalog",
    "detect_tool_support",
    "detect_vision",
    "pretty_model_name",
    "provider_from_id",
    "resolve_model",
    "resolve_models",
    "should_skip_model",
]
