"""
Assembly of streamed tool-call fragments into complete ToolCallRequests.

Fragments are grouped by their ``index``. Order of arrival across indices does
not matter; within one index, name and argument fragments are concatenated in
arrival order and the first id seen is kept.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from core.constants import DROPPED_ARGUMENTS_PREVIEW_CHARS
from core.stream_decoder import StreamEvent, ToolCallDelta
from models.chat_models import ConversationMessage, ToolCallRequest
from utils.logger import logger


@dataclass
class ToolCallBuilder:
    """Mutable accumulator for one tool call index."""

    index: int
    id: str = ""
    type: str = "function"
    name: str = ""
    arguments: str = ""

    def apply(self, delta: ToolCallDelta) -> None:
        if delta.id and not self.id:
            self.id = delta.id
        if delta.type:
            self.type = delta.type
        if delta.name:
            self.name += delta.name
        if delta.arguments:
            self.arguments += delta.arguments

    @property
    def is_complete(self) -> bool:
        return bool(self.id) and bool(self.name)

    def build(self) -> ToolCallRequest:
        return ToolCallRequest(id=self.id, name=self.name, arguments=self.arguments, type=self.type or "function")


class ToolCallAssembler:
    """Collects ToolCallDelta fragments and finalizes them once.

    ``finalize()`` returns complete calls in index order. Incomplete builders
    (missing id or name) are dropped with a warning. Calling it again returns
    the same list without logging again.
    """

    def __init__(self) -> None:
        self._builders: dict[int, ToolCallBuilder] = {}
        self._finalized: list[ToolCallRequest] | None = None

    def _next_free_index(self) -> int:
        index = len(self._builders)
        while index in self._builders:
            index += 1
        return index

    def add(self, delta: ToolCallDelta) -> None:
        if self._finalized is not None:
            logger.warning("Tool call fragment received after finalization; ignoring", index=delta.index)
            return
        index = delta.index if delta.index is not None else self._next_free_index()
        builder = self._builders.get(index)
        if builder is None:
            builder = ToolCallBuilder(index=index)
            self._builders[index] = builder
        builder.apply(delta)

    @property
    def has_fragments(self) -> bool:
        return bool(self._builders)

    def finalize(self) -> list[ToolCallRequest]:
        if self._finalized is not None:
            return list(self._finalized)

        complete: list[ToolCallRequest] = []
        for index in sorted(self._builders):
            builder = self._builders[index]
            if builder.is_complete:
                complete.append(builder.build())
                continue
            logger.warning(
                f"Dropping incomplete tool call at index {index}",
                index=index,
                tool_call_id=builder.id or None,
                tool_name=builder.name or None,
                arguments_preview=builder.arguments[:DROPPED_ARGUMENTS_PREVIEW_CHARS],
            )

        self._finalized = complete
        return list(complete)


@dataclass
class StreamingAccumulator:
    """Per-request state: text buffer, tool call fragments, finish reason, role."""

    text_parts: list[str] = field(default_factory=list)
    tool_calls: ToolCallAssembler = field(default_factory=ToolCallAssembler)
    finish_reason: str | None = None
    role: str | None = None

    def apply(self, event: StreamEvent) -> str | None:
        """Fold one event into the accumulator.

        Returns:
            The content fragment to forward, if the event carried one
        """
        if event.role:
            self.role = event.role
        for delta in event.tool_calls:
            self.tool_calls.add(delta)
        if event.finish_reason:
            self.finish_reason = event.finish_reason
        if event.content:
            self.text_parts.append(event.content)
            return event.content
        return None

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    def assistant_message(self) -> ConversationMessage | None:
        """The assistant message produced by this stream, or None if it produced nothing."""
        calls = self.tool_calls.finalize()
        text = self.text
        if not calls and not text:
            return None
        return ConversationMessage(
            role="assistant",
            content=text or None,
            tool_calls=calls or None,
        )


__all__ = ["StreamingAccumulator", "ToolCallAssembler", "ToolCallBuilder"]
