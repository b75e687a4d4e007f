from __future__ import annotations

import asyncio
import json

from collections.abc import AsyncIterator
from typing import Any, ClassVar

from fastapi import WebSocket

from api.middleware.request_context import bind_turn_context
from api.websocket.errors import error_code_for, send_ws_error
from core.cancellation import CancellationToken
from core.conversation import ConversationEngine, TurnOutcome
from core.stream_sink import SinkEvent, SinkEventType, TurnSink
from models.chat_models import ChatStreamRequest
from utils.logger import logger
from utils.metrics import ws_messages_total


def sse_event(payload: dict[str, Any]) -> str:
    """Format one server-sent event."""
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def sink_event_payload(event: SinkEvent) -> dict[str, Any]:
    """JSON body of the SSE event for a sink event."""
    if event.type is SinkEventType.CONTENT:
        return {"type": "content", "text": event.text}
    if event.type is SinkEventType.DONE:
        return {"type": "done", "finish_reason": event.finish_reason}
    if event.type is SinkEventType.CANCELLED:
        return {"type": "cancelled", "reason": event.text}

    error = event.error
    return {
        "type": "error",
        "code": error_code_for(error).value if error is not None else None,
        "message": str(error) if error is not None else "Unknown error",
    }


class ChatService:
    """Runs conversation turns and bridges their output to SSE or WebSocket clients.

    Each turn runs in its own task writing into a TurnSink; the transport side
    drains the sink. Cancelling the turn's token (client disconnect, interrupt,
    newer message) closes the sink with a cancelled completion right away.
    """

    # Turns still winding down after their relay ended; kept referenced until they finish
    _detached_turns: ClassVar[set[asyncio.Task[TurnOutcome]]] = set()

    def __init__(self, engine: ConversationEngine):
        self.engine = engine

    def start_turn(self, request: ChatStreamRequest, token: CancellationToken) -> tuple[TurnSink, asyncio.Task[TurnOutcome]]:
        """Start a turn in a background task and return its sink and task."""
        sink = TurnSink(token)
        task = asyncio.create_task(self._run_turn(request, sink, token))
        return sink, task

    async def _run_turn(self, request: ChatStreamRequest, sink: TurnSink, token: CancellationToken) -> TurnOutcome:
        context = bind_turn_context(model=request.model or self.engine.default_model)
        logger.debug(f"Turn {context.turn_id} started")
        return await self.engine.run_turn(
            request.messages,
            sink,
            token,
            model=request.model,
            tool_selection=request.tool_selection,
        )

    def _detach(self, task: asyncio.Task[TurnOutcome]) -> None:
        self._detached_turns.add(task)
        task.add_done_callback(self._detached_turns.discard)

    async def stream_sse(self, request: ChatStreamRequest, token: CancellationToken | None = None) -> AsyncIterator[str]:
        """Yield SSE frames for one turn. Closing the generator early cancels the turn."""
        token = token or CancellationToken()
        sink, task = self.start_turn(request, token)
        relayed = False
        try:
            async for event in sink.events():
                yield sse_event(sink_event_payload(event))
            relayed = True
        finally:
            if not task.done():
                if not relayed:
                    token.cancel("client disconnected")
                    logger.info("SSE client went away; turn cancelled")
                self._detach(task)

    async def stream_websocket(
        self,
        websocket: WebSocket,
        session_id: str,
        request: ChatStreamRequest,
        token: CancellationToken,
    ) -> None:
        """Run one turn and relay it as assistant_start / assistant_delta / assistant_end frames."""
        sink, task = self.start_turn(request, token)
        relayed = False

        try:
            await self._send(websocket, {"type": "assistant_start", "session_id": session_id})
            async for event in sink.events():
                if event.type is SinkEventType.CONTENT:
                    await self._send(websocket, {"type": "assistant_delta", "content": event.text})
                    continue

                if event.type is SinkEventType.ERROR and event.error is not None:
                    await send_ws_error(
                        websocket,
                        code=error_code_for(event.error),
                        message=str(event.error),
                        session_id=session_id,
                    )
                await self._send(
                    websocket,
                    {"type": "assistant_end", "session_id": session_id, "finish_reason": event.finish_reason},
                )
            relayed = True
        finally:
            if not task.done():
                if not relayed:
                    token.cancel("websocket relay stopped")
                self._detach(task)

    @staticmethod
    async def _send(websocket: WebSocket, payload: dict[str, Any]) -> None:
        await websocket.send_json(payload)
        ws_messages_total.labels(direction="outbound").inc()


__all__ = ["ChatService", "sink_event_payload", "sse_event"]
