"""Tests for multimodal classification and message preparation."""

from __future__ import annotations

import pytest

from core.exceptions import EmptyConversationError
from core.multimodal import (
    ContentKind,
    MultimodalPreprocessor,
    classify_content,
    history_friendly_content,
    select_directive,
)
from core.prompts import (
    IMAGE_ANALYSIS_PROMPT,
    IMAGE_HISTORY_PLACEHOLDER,
    MIXED_ANALYSIS_PROMPT,
    PDF_ANALYSIS_PROMPT,
    PDF_HISTORY_PLACEHOLDER,
)
from models.chat_models import ConversationMessage
from models.config_models import LLMCapabilities

IMAGE_PART = {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}}
PDF_PART = {"type": "image_url", "image_url": {"url": "data:application/pdf;base64,JVBE"}}
TEXT_PART = {"type": "text", "text": "What is this?"}


def _caps(image: bool = False, pdf: bool = False) -> LLMCapabilities:
    return LLMCapabilities(id="vision-model", supports_image=image, supports_pdf=pdf)


class TestClassifyContent:
    """Tests for classify_content."""

    def test_plain_string_is_text(self) -> None:
        assert classify_content("hello") is ContentKind.TEXT

    def test_none_is_text(self) -> None:
        assert classify_content(None) is ContentKind.TEXT

    def test_text_parts_only(self) -> None:
        assert classify_content([TEXT_PART]) is ContentKind.TEXT

    def test_image(self) -> None:
        assert classify_content([TEXT_PART, IMAGE_PART]) is ContentKind.IMAGE

    def test_pdf_by_data_uri_prefix(self) -> None:
        assert classify_content([PDF_PART]) is ContentKind.PDF

    def test_mixed(self) -> None:
        assert classify_content([IMAGE_PART, PDF_PART]) is ContentKind.MIXED

    def test_remote_image_url(self) -> None:
        assert classify_content([{"type": "image_url", "image_url": "https://x/y.png"}]) is ContentKind.IMAGE


class TestSelectDirective:
    """Tests for select_directive."""

    def test_no_capabilities_no_directive(self) -> None:
        assert select_directive(ContentKind.IMAGE, None) is None

    def test_model_without_vision_or_pdf(self) -> None:
        assert select_directive(ContentKind.IMAGE, _caps()) is None

    def test_image_directive(self) -> None:
        assert select_directive(ContentKind.IMAGE, _caps(image=True)) == IMAGE_ANALYSIS_PROMPT

    def test_pdf_directive(self) -> None:
        assert select_directive(ContentKind.PDF, _caps(pdf=True)) == PDF_ANALYSIS_PROMPT

    def test_pdf_on_image_only_model(self) -> None:
        assert select_directive(ContentKind.PDF, _caps(image=True)) is None

    def test_mixed_directive(self) -> None:
        assert select_directive(ContentKind.MIXED, _caps(image=True)) == MIXED_ANALYSIS_PROMPT


class TestHistoryFriendlyContent:
    """Tests for history_friendly_content."""

    def test_string_passthrough(self) -> None:
        assert history_friendly_content("plain") == "plain"

    def test_parts_replaced_by_placeholders(self) -> None:
        flattened = history_friendly_content([TEXT_PART, IMAGE_PART, PDF_PART])

        assert flattened == f"What is this? {IMAGE_HISTORY_PLACEHOLDER} {PDF_HISTORY_PLACEHOLDER}"
        assert "base64" not in flattened


class TestMultimodalPreprocessor:
    """Tests for MultimodalPreprocessor."""

    def test_text_turn_keeps_tools(self) -> None:
        preprocessor = MultimodalPreprocessor()
        messages = [ConversationMessage(role="user", content="hi")]

        plan = preprocessor.plan(messages, "gpt-4o-mini")

        assert plan.kind is ContentKind.TEXT
        assert plan.include_tools is True
        assert plan.directive is None
        assert plan.current_index == 0

    def test_image_turn_suppresses_tools_and_adds_directive(self) -> None:
        preprocessor = MultimodalPreprocessor(lambda model: _caps(image=True))
        messages = [ConversationMessage(role="user", content=[TEXT_PART, IMAGE_PART])]

        plan = preprocessor.plan(messages, "vision-model")
        prepared = preprocessor.prepare_messages(messages, plan)

        assert plan.include_tools is False
        assert prepared[0] == {"role": "system", "content": IMAGE_ANALYSIS_PROMPT}
        assert prepared[1]["content"] == [TEXT_PART, IMAGE_PART]

    def test_image_turn_without_capability_record(self) -> None:
        preprocessor = MultimodalPreprocessor(lambda model: None)
        messages = [ConversationMessage(role="user", content=[IMAGE_PART])]

        plan = preprocessor.plan(messages, "unknown")

        assert plan.include_tools is False
        assert plan.directive is None

    def test_current_turn_is_last_user_message(self) -> None:
        preprocessor = MultimodalPreprocessor()
        messages = [
            ConversationMessage(role="user", content=[TEXT_PART, IMAGE_PART]),
            ConversationMessage(role="assistant", content="A cat."),
            ConversationMessage(role="user", content="Thanks, and the weather?"),
        ]

        plan = preprocessor.plan(messages, "gpt-4o-mini")
        prepared = preprocessor.prepare_messages(messages, plan)

        assert plan.kind is ContentKind.TEXT
        assert plan.include_tools is True
        assert plan.current_index == 2
        assert prepared[0]["content"] == f"What is this? {IMAGE_HISTORY_PLACEHOLDER}"

    def test_agent_role_sent_as_assistant(self) -> None:
        preprocessor = MultimodalPreprocessor()
        messages = [
            ConversationMessage(role="user", content="hi"),
            ConversationMessage(role="agent", content="hello"),
            ConversationMessage(role="user", content="again"),
        ]

        prepared = preprocessor.prepare_messages(messages, preprocessor.plan(messages, "m"))

        assert [m["role"] for m in prepared] == ["user", "assistant", "user"]

    def test_only_system_messages_rejected(self) -> None:
        preprocessor = MultimodalPreprocessor()
        messages = [ConversationMessage(role="system", content="be nice")]

        with pytest.raises(EmptyConversationError):
            preprocessor.prepare_messages(messages, preprocessor.plan(messages, "m"))
