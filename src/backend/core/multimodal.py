"""
Multimodal preprocessing for conversation turns.

Classifies the content of the current turn (text, image, pdf, mixed), decides
whether tools may be offered, picks a system directive for vision/PDF-capable
models, and prepares the outgoing message list:
- ``agent`` roles are sent as ``assistant``
- multimodal parts in earlier messages are replaced by text placeholders so
  base64 payloads are only ever sent for the current turn
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any

from core.exceptions import EmptyConversationError
from core.prompts import (
    IMAGE_ANALYSIS_PROMPT,
    IMAGE_HISTORY_PLACEHOLDER,
    MIXED_ANALYSIS_PROMPT,
    PDF_ANALYSIS_PROMPT,
    PDF_HISTORY_PLACEHOLDER,
)
from models.chat_models import ConversationMessage
from models.config_models import LLMCapabilities
from utils.logger import logger

PDF_DATA_URI_PREFIX = "data:application/pdf"
IMAGE_DATA_URI_PREFIX = "data:image/"


class ContentKind(str, Enum):
    TEXT = "text"
    IMAGE = "image"
    PDF = "pdf"
    MIXED = "mixed"

    @property
    def is_multimodal(self) -> bool:
        return self is not ContentKind.TEXT


def _part_url(part: dict[str, Any]) -> str | None:
    image_url = part.get("image_url")
    if isinstance(image_url, dict):
        url = image_url.get("url")
        return url if isinstance(url, str) else None
    if isinstance(image_url, str):
        return image_url
    return None


def classify_part(part: Any) -> ContentKind:
    """Classify a single content part. Parts that are not image/PDF count as text."""
    if not isinstance(part, dict):
        return ContentKind.TEXT
    url = _part_url(part)
    if url is not None:
        if url.startswith(PDF_DATA_URI_PREFIX):
            return ContentKind.PDF
        return ContentKind.IMAGE
    if part.get("type") == "image_url":
        return ContentKind.IMAGE
    return ContentKind.TEXT


def classify_content(content: str | list[dict[str, Any]] | None) -> ContentKind:
    """Classify message content as text, image, pdf or mixed."""
    if not isinstance(content, list):
        return ContentKind.TEXT

    has_image = False
    has_pdf = False
    for part in content:
        kind = classify_part(part)
        has_image = has_image or kind is ContentKind.IMAGE
        has_pdf = has_pdf or kind is ContentKind.PDF

    if has_image and has_pdf:
        return ContentKind.MIXED
    if has_image:
        return ContentKind.IMAGE
    if has_pdf:
        return ContentKind.PDF
    return ContentKind.TEXT


def history_friendly_content(content: str | list[dict[str, Any]] | None) -> str | None:
    """Flatten multipart content to text, replacing image/PDF parts with placeholders."""
    if not isinstance(content, list):
        return content

    pieces: list[str] = []
    for part in content:
        kind = classify_part(part)
        if kind is ContentKind.IMAGE:
            pieces.append(IMAGE_HISTORY_PLACEHOLDER)
        elif kind is ContentKind.PDF:
            pieces.append(PDF_HISTORY_PLACEHOLDER)
        elif isinstance(part, dict) and isinstance(part.get("text"), str):
            pieces.append(part["text"])
    return " ".join(piece for piece in pieces if piece)


def select_directive(kind: ContentKind, capabilities: LLMCapabilities | None) -> str | None:
    """Pick the system directive for a content kind, if the model supports it."""
    if capabilities is None or not (capabilities.supports_image or capabilities.supports_pdf):
        return None
    if kind is ContentKind.IMAGE and capabilities.supports_image:
        return IMAGE_ANALYSIS_PROMPT
    if kind is ContentKind.PDF and capabilities.supports_pdf:
        return PDF_ANALYSIS_PROMPT
    if kind is ContentKind.MIXED:
        return MIXED_ANALYSIS_PROMPT
    return None


@dataclass(frozen=True)
class TurnPlan:
    """How the outgoing request for a turn is shaped."""

    kind: ContentKind
    include_tools: bool
    directive: str | None = None
    current_index: int | None = None


class MultimodalPreprocessor:
    """Decides tool suppression and system directive, and prepares LLM messages.

    Args:
        capabilities_lookup: Returns the capability record for a model id, or None
    """

    def __init__(self, capabilities_lookup: Callable[[str], LLMCapabilities | None] | None = None) -> None:
        self._capabilities_lookup = capabilities_lookup

    def _capabilities(self, model: str) -> LLMCapabilities | None:
        if self._capabilities_lookup is None:
            return None
        return self._capabilities_lookup(model)

    @staticmethod
    def current_turn_index(messages: Sequence[ConversationMessage]) -> int | None:
        """Index of the newest user message, which carries the current turn."""
        for index in range(len(messages) - 1, -1, -1):
            if messages[index].role == "user":
                return index
        return None

    def plan(self, messages: Sequence[ConversationMessage], model: str) -> TurnPlan:
        index = self.current_turn_index(messages)
        kind = classify_content(messages[index].content) if index is not None else ContentKind.TEXT
        directive = select_directive(kind, self._capabilities(model)) if kind.is_multimodal else None

        if kind.is_multimodal:
            logger.info(
                f"Multimodal content detected ({kind.value}); tools suppressed for this turn",
                model=model,
                content_kind=kind.value,
                directive=directive is not None,
            )

        return TurnPlan(
            kind=kind,
            include_tools=not kind.is_multimodal,
            directive=directive,
            current_index=index,
        )

    def prepare_messages(self, messages: Sequence[ConversationMessage], plan: TurnPlan) -> list[dict[str, Any]]:
        """Build the ``messages`` array for a chat-completions request.

        Raises:
            EmptyConversationError: If nothing but a system directive would be sent
        """
        prepared: list[dict[str, Any]] = []
        if plan.directive:
            prepared.append({"role": "system", "content": plan.directive})

        for index, message in enumerate(messages):
            payload = message.to_llm_payload()
            if message.is_multipart and index != plan.current_index:
                payload["content"] = history_friendly_content(message.content)
            prepared.append(payload)

        if not any(item["role"] != "system" for item in prepared):
            raise EmptyConversationError()
        return prepared


__all__ = [
    "ContentKind",
    "MultimodalPreprocessor",
    "TurnPlan",
    "classify_content",
    "classify_part",
    "history_friendly_content",
    "select_directive",
]
