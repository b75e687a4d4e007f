"""
Output channel for one conversation turn.

The engine writes content fragments into a TurnSink; a transport (SSE response,
WebSocket session) drains it with ``events()``. Exactly one terminal event
(done, error or cancelled) is ever delivered. Once the shared cancellation token
fires, content and error writes are redirected to the cancelled completion.
"""

from __future__ import annotations

import asyncio

from collections.abc import AsyncIterator
from dataclasses import dataclass
from enum import Enum

from core.cancellation import CancellationToken
from utils.logger import logger


class SinkEventType(str, Enum):
    CONTENT = "content"
    DONE = "done"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class SinkEvent:
    type: SinkEventType
    text: str | None = None
    finish_reason: str | None = None
    error: Exception | None = None

    @property
    def is_terminal(self) -> bool:
        return self.type is not SinkEventType.CONTENT


class TurnSink:
    """Queue-backed output channel with a once-only completion guard."""

    def __init__(self, token: CancellationToken | None = None) -> None:
        self._queue: asyncio.Queue[SinkEvent] = asyncio.Queue()
        self._closed = False
        self._terminal: SinkEvent | None = None
        self._token = token
        if token is not None:
            token.on_cancel(self._on_token_cancelled)

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def terminal_event(self) -> SinkEvent | None:
        return self._terminal

    def _on_token_cancelled(self) -> None:
        reason = self._token.cancel_reason if self._token is not None else None
        self.cancel(reason)

    def _cancel_requested(self) -> bool:
        return self._token is not None and self._token.is_cancelled

    def _close(self, event: SinkEvent) -> bool:
        if self._closed:
            logger.debug(f"Sink already closed; ignoring {event.type.value} signal")
            return False
        self._closed = True
        self._terminal = event
        self._queue.put_nowait(event)
        return True

    def emit(self, text: str) -> bool:
        """Forward a content fragment. Returns False if it was not delivered."""
        if self._closed:
            return False
        if self._cancel_requested():
            self.cancel()
            return False
        if text:
            self._queue.put_nowait(SinkEvent(type=SinkEventType.CONTENT, text=text))
        return True

    def complete(self, finish_reason: str = "stop") -> bool:
        """Signal successful completion."""
        if self._cancel_requested():
            return self.cancel()
        return self._close(SinkEvent(type=SinkEventType.DONE, finish_reason=finish_reason))

    def fail(self, error: Exception) -> bool:
        """Signal a turn-level failure."""
        if self._cancel_requested():
            return self.cancel()
        return self._close(SinkEvent(type=SinkEventType.ERROR, error=error, finish_reason="error"))

    def cancel(self, reason: str | None = None) -> bool:
        """Signal cancellation."""
        if reason is None and self._token is not None:
            reason = self._token.cancel_reason
        return self._close(SinkEvent(type=SinkEventType.CANCELLED, text=reason, finish_reason="interrupted"))

    async def events(self) -> AsyncIterator[SinkEvent]:
        """Yield queued events up to and including the terminal one."""
        while True:
            event = await self._queue.get()
            yield event
            if event.is_terminal:
                return

    def drain_nowait(self) -> list[SinkEvent]:
        """Return every event queued so far without waiting."""
        drained: list[SinkEvent] = []
        while not self._queue.empty():
            drained.append(self._queue.get_nowait())
        return drained


__all__ = ["SinkEvent", "SinkEventType", "TurnSink"]
