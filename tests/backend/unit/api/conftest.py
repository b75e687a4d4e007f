"""Fixtures shared by the API tests: a conversation engine over a scripted LLM."""

from __future__ import annotations

import asyncio

from collections.abc import AsyncIterator, Callable, Sequence
from contextlib import asynccontextmanager
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from core.conversation import ConversationEngine
from core.multimodal import MultimodalPreprocessor
from core.stream_decoder import StreamEvent


class ScriptedLLM:
    """Replays one list of stream events per request.

    An ``asyncio.Event`` in a script pauses the stream until it is set.
    """

    def __init__(self, scripts: Sequence[Sequence[Any]]) -> None:
        self.scripts = [list(script) for script in scripts]
        self.bodies: list[dict[str, Any]] = []

    @asynccontextmanager
    async def open_stream(self, body: dict[str, Any]) -> AsyncIterator[AsyncIterator[StreamEvent]]:
        self.bodies.append(body)
        script = self.scripts.pop(0)

        async def events() -> AsyncIterator[StreamEvent]:
            for item in script:
                if isinstance(item, asyncio.Event):
                    await item.wait()
                    continue
                await asyncio.sleep(0)
                if isinstance(item, Exception):
                    raise item
                yield item

        yield events()


@pytest.fixture
def make_llm() -> Callable[..., ScriptedLLM]:
    def factory(*scripts: Sequence[Any]) -> ScriptedLLM:
        return ScriptedLLM(scripts)

    return factory


@pytest.fixture
def mock_tool_registry() -> MagicMock:
    registry = MagicMock()
    registry.list_tools.return_value = []
    registry.dispatch = AsyncMock()
    return registry


@pytest.fixture
def make_engine(mock_tool_registry: MagicMock) -> Callable[[ScriptedLLM], ConversationEngine]:
    def factory(llm: ScriptedLLM) -> ConversationEngine:
        return ConversationEngine(
            llm=llm,  # type: ignore[arg-type]
            registry=mock_tool_registry,
            preprocessor=MultimodalPreprocessor(),
            default_model="gpt-4o-mini",
        )

    return factory
