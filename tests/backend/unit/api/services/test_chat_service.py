"""Tests for ChatService SSE and WebSocket relaying."""

from __future__ import annotations

import asyncio
import json

from collections.abc import Callable
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from api.middleware.request_context import TURN_ID_PREFIX, RequestContext, get_request_context
from api.services.chat_service import ChatService, sink_event_payload, sse_event
from core.cancellation import CancellationToken
from core.conversation import TurnState
from core.exceptions import StreamDecodeError, TransportError
from core.stream_decoder import DONE_EVENT, StreamEvent
from core.stream_sink import SinkEvent, SinkEventType
from models.chat_models import ChatStreamRequest
from models.error_models import ErrorCode


def _text(*fragments: str) -> list[StreamEvent]:
    return [*(StreamEvent(content=f) for f in fragments), StreamEvent(finish_reason="stop"), DONE_EVENT]


def _request(content: str = "hi") -> ChatStreamRequest:
    return ChatStreamRequest.model_validate({"messages": [{"role": "user", "content": content}]})


def _frames(chunks: list[str]) -> list[dict[str, Any]]:
    return [json.loads(chunk.removeprefix("data: ").strip()) for chunk in chunks]


@pytest.fixture
def mock_websocket() -> MagicMock:
    websocket = MagicMock()
    websocket.send_json = AsyncMock()
    return websocket


class TestPayloads:
    """Tests for SSE formatting helpers."""

    def test_sse_event(self) -> None:
        assert sse_event({"type": "content", "text": "é"}) == 'data: {"type": "content", "text": "é"}\n\n'

    def test_content_and_done(self) -> None:
        assert sink_event_payload(SinkEvent(type=SinkEventType.CONTENT, text="x")) == {"type": "content", "text": "x"}
        assert sink_event_payload(SinkEvent(type=SinkEventType.DONE, finish_reason="tool_limit")) == {
            "type": "done",
            "finish_reason": "tool_limit",
        }

    def test_cancelled(self) -> None:
        payload = sink_event_payload(SinkEvent(type=SinkEventType.CANCELLED, text="User interrupt"))
        assert payload == {"type": "cancelled", "reason": "User interrupt"}

    @pytest.mark.parametrize(
        ("error", "code"),
        [
            (TransportError("HTTP 502", status_code=502), ErrorCode.EXTERNAL_SERVICE_ERROR),
            (TransportError("slow down", status_code=429), ErrorCode.EXTERNAL_RATE_LIMITED),
            (StreamDecodeError("{oops"), ErrorCode.STREAM_DECODE_ERROR),
            (RuntimeError("boom"), ErrorCode.INTERNAL_ERROR),
        ],
    )
    def test_error_codes(self, error: Exception, code: ErrorCode) -> None:
        payload = sink_event_payload(SinkEvent(type=SinkEventType.ERROR, error=error))

        assert payload["type"] == "error"
        assert payload["code"] == code.value
        assert payload["message"] == str(error)


class TestStreamSSE:
    """Tests for ChatService.stream_sse."""

    @pytest.mark.asyncio
    async def test_streams_content_then_done(self, make_llm: Callable[..., Any], make_engine: Callable[..., Any]) -> None:
        service = ChatService(make_engine(make_llm(_text("Hel", "lo"))))

        frames = _frames([chunk async for chunk in service.stream_sse(_request())])

        assert frames == [
            {"type": "content", "text": "Hel"},
            {"type": "content", "text": "lo"},
            {"type": "done", "finish_reason": "stop"},
        ]

    @pytest.mark.asyncio
    async def test_turn_runs_under_turn_context(
        self, make_llm: Callable[..., Any], make_engine: Callable[..., Any]
    ) -> None:
        engine = make_engine(make_llm(_text("ok")))
        seen: list[RequestContext | None] = []
        run_turn = engine.run_turn

        async def recording_run_turn(*args: Any, **kwargs: Any) -> Any:
            seen.append(get_request_context())
            return await run_turn(*args, **kwargs)

        engine.run_turn = recording_run_turn
        service = ChatService(engine)

        frames = _frames([chunk async for chunk in service.stream_sse(_request())])

        assert frames[-1] == {"type": "done", "finish_reason": "stop"}
        assert seen[0] is not None
        assert seen[0].turn_id is not None
        assert seen[0].turn_id.startswith(TURN_ID_PREFIX)
        assert seen[0].model == "gpt-4o-mini"

    @pytest.mark.asyncio
    async def test_failure_ends_with_error_event(
        self, make_llm: Callable[..., Any], make_engine: Callable[..., Any]
    ) -> None:
        llm = make_llm([StreamEvent(content="par"), TransportError("upstream reset", status_code=502)])
        service = ChatService(make_engine(llm))

        frames = _frames([chunk async for chunk in service.stream_sse(_request())])

        assert frames[0] == {"type": "content", "text": "par"}
        assert frames[-1]["type"] == "error"
        assert frames[-1]["code"] == ErrorCode.EXTERNAL_SERVICE_ERROR.value
        assert len(frames) == 2

    @pytest.mark.asyncio
    async def test_cancelled_token_ends_with_cancelled_event(
        self, make_llm: Callable[..., Any], make_engine: Callable[..., Any]
    ) -> None:
        gate = asyncio.Event()
        service = ChatService(make_engine(make_llm([StreamEvent(content="a"), gate, *_text("b")])))
        token = CancellationToken()

        stream = service.stream_sse(_request(), token)
        first = await stream.__anext__()
        token.cancel("User interrupt")
        rest = [chunk async for chunk in stream]
        gate.set()
        await asyncio.sleep(0.01)

        assert _frames([first]) == [{"type": "content", "text": "a"}]
        assert _frames(rest) == [{"type": "cancelled", "reason": "User interrupt"}]

    @pytest.mark.asyncio
    async def test_closing_stream_cancels_turn(
        self, make_llm: Callable[..., Any], make_engine: Callable[..., Any]
    ) -> None:
        gate = asyncio.Event()
        service = ChatService(make_engine(make_llm([StreamEvent(content="a"), gate, *_text("b")])))
        token = CancellationToken()

        before = set(ChatService._detached_turns)

        stream = service.stream_sse(_request(), token)
        await stream.__anext__()
        await stream.aclose()

        assert token.is_cancelled
        assert token.cancel_reason == "client disconnected"
        detached = ChatService._detached_turns - before
        assert len(detached) == 1

        gate.set()
        task = next(iter(detached))
        outcome = await task
        await asyncio.sleep(0)
        assert outcome.state is TurnState.CANCELLED
        assert task not in ChatService._detached_turns


class TestStreamWebSocket:
    """Tests for ChatService.stream_websocket."""

    @pytest.mark.asyncio
    async def test_frames(
        self, make_llm: Callable[..., Any], make_engine: Callable[..., Any], mock_websocket: MagicMock
    ) -> None:
        service = ChatService(make_engine(make_llm(_text("Hi", "!"))))

        await service.stream_websocket(mock_websocket, "s1", _request(), CancellationToken())

        sent = [c.args[0] for c in mock_websocket.send_json.await_args_list]
        assert sent == [
            {"type": "assistant_start", "session_id": "s1"},
            {"type": "assistant_delta", "content": "Hi"},
            {"type": "assistant_delta", "content": "!"},
            {"type": "assistant_end", "session_id": "s1", "finish_reason": "stop"},
        ]

    @pytest.mark.asyncio
    async def test_error_frame_before_end(
        self, make_llm: Callable[..., Any], make_engine: Callable[..., Any], mock_websocket: MagicMock
    ) -> None:
        llm = make_llm([TransportError("slow down", status_code=429)])
        service = ChatService(make_engine(llm))

        await service.stream_websocket(mock_websocket, "s1", _request(), CancellationToken())

        sent = [c.args[0] for c in mock_websocket.send_json.await_args_list]
        assert [frame["type"] for frame in sent] == ["assistant_start", "error", "assistant_end"]
        assert sent[1]["code"] == ErrorCode.EXTERNAL_RATE_LIMITED.value
        assert sent[1]["retryable"] is True
        assert sent[2]["finish_reason"] == "error"

    @pytest.mark.asyncio
    async def test_send_failure_cancels_turn(
        self, make_llm: Callable[..., Any], make_engine: Callable[..., Any], mock_websocket: MagicMock
    ) -> None:
        gate = asyncio.Event()
        service = ChatService(make_engine(make_llm([StreamEvent(content="a"), gate, *_text("b")])))
        mock_websocket.send_json.side_effect = [None, RuntimeError("WebSocket is not connected")]
        token = CancellationToken()

        with pytest.raises(RuntimeError):
            await service.stream_websocket(mock_websocket, "s1", _request(), token)

        assert token.is_cancelled
        gate.set()
        await asyncio.sleep(0.01)
