"""
Decoder for OpenAI-compatible chat-completions SSE streams.

Turns raw stream lines into typed StreamEvent values. Only ``choices[0]`` is
read. Tool calls found in ``choices[0].message.tool_calls`` (non-streaming
servers) are reported the same way as streamed ``delta.tool_calls`` fragments.
"""

from __future__ import annotations

import json

from collections.abc import AsyncIterable, AsyncIterator
from dataclasses import dataclass, field
from typing import Any

from core.exceptions import StreamDecodeError, TransportError

#: Prefix of an SSE data field
DATA_PREFIX = "data:"

#: Sentinel payload marking the end of the stream
DONE_SENTINEL = "[DONE]"

#: SSE fields that carry no payload for this protocol
_IGNORED_FIELDS = ("event:", "id:", "retry:")


@dataclass(frozen=True)
class ToolCallDelta:
    """One fragment of a tool call. Any field may be missing."""

    index: int | None = None
    id: str | None = None
    type: str | None = None
    name: str | None = None
    arguments: str | None = None


@dataclass(frozen=True)
class StreamEvent:
    """A decoded stream event."""

    content: str | None = None
    role: str | None = None
    tool_calls: tuple[ToolCallDelta, ...] = field(default_factory=tuple)
    finish_reason: str | None = None
    done: bool = False


#: Event produced for the ``[DONE]`` sentinel
DONE_EVENT = StreamEvent(done=True)


def _parse_tool_call(raw: Any) -> ToolCallDelta | None:
    if not isinstance(raw, dict):
        return None
    function = raw.get("function")
    if not isinstance(function, dict):
        function = {}
    index = raw.get("index")
    name = function.get("name")
    arguments = function.get("arguments")
    return ToolCallDelta(
        index=index if isinstance(index, int) and not isinstance(index, bool) else None,
        id=raw.get("id") if isinstance(raw.get("id"), str) else None,
        type=raw.get("type") if isinstance(raw.get("type"), str) else None,
        name=name if isinstance(name, str) else None,
        arguments=arguments if isinstance(arguments, str) else None,
    )


def _error_message(error: Any) -> str:
    if isinstance(error, dict):
        return str(error.get("message") or error.get("code") or error)
    return str(error)


def decode_payload(payload: dict[str, Any]) -> StreamEvent:
    """Decode one parsed chat-completions chunk.

    Raises:
        TransportError: If the chunk carries a top-level ``error`` object
    """
    if payload.get("error") is not None:
        error = payload["error"]
        raise TransportError(
            f"LLM stream error: {_error_message(error)}",
            details={"error": error} if isinstance(error, dict) else None,
        )

    choices = payload.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return StreamEvent()

    choice = choices[0]
    delta = choice.get("delta") if isinstance(choice.get("delta"), dict) else {}
    message = choice.get("message") if isinstance(choice.get("message"), dict) else {}

    raw_calls: list[Any] = []
    if isinstance(message.get("tool_calls"), list):
        raw_calls.extend(message["tool_calls"])
    if isinstance(delta.get("tool_calls"), list):
        raw_calls.extend(delta["tool_calls"])
    tool_calls = tuple(tc for tc in (_parse_tool_call(raw) for raw in raw_calls) if tc is not None)

    content = delta.get("content")
    if not isinstance(content, str):
        content = None
    role = delta.get("role") or message.get("role")
    finish_reason = choice.get("finish_reason")

    return StreamEvent(
        content=content,
        role=role if isinstance(role, str) else None,
        tool_calls=tool_calls,
        finish_reason=finish_reason if isinstance(finish_reason, str) else None,
    )


def decode_line(line: str) -> StreamEvent | None:
    """Decode one raw stream line.

    Returns:
        None for lines that carry nothing (blank, comments, non-data fields),
        DONE_EVENT for ``[DONE]``, otherwise the decoded event.

    Raises:
        StreamDecodeError: If the data payload is not valid JSON
        TransportError: If the payload is an error object
    """
    text = line.strip()
    if not text or text.startswith(":") or text.startswith(_IGNORED_FIELDS):
        return None

    if text.startswith(DATA_PREFIX):
        text = text[len(DATA_PREFIX) :].strip()
        if not text:
            return None

    if text == DONE_SENTINEL:
        return DONE_EVENT

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        raise StreamDecodeError(text, cause=e) from e

    if not isinstance(payload, dict):
        raise StreamDecodeError(text)
    return decode_payload(payload)


async def iter_stream_events(lines: AsyncIterable[str]) -> AsyncIterator[StreamEvent]:
    """Yield decoded events from an async line source, stopping after ``[DONE]``."""
    async for line in lines:
        event = decode_line(line)
        if event is None:
            continue
        yield event
        if event.done:
            return


__all__ = [
    "DONE_EVENT",
    "DONE_SENTINEL",
    "StreamEvent",
    "ToolCallDelta",
    "decode_line",
    "decode_payload",
    "iter_stream_events",
]
