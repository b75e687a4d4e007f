"""
Streaming chat endpoint (v1).

Runs one conversation turn and streams it as server-sent events.
"""

from __future__ import annotations

from fastapi import APIRouter
from fastapi.responses import StreamingResponse

from api.dependencies import Chat
from models.chat_models import ChatStreamRequest

router = APIRouter()


@router.post(
    "/chat/stream",
    summary="Stream a chat turn",
    description=(
        "Run one conversation turn with tool calling. The response is a "
        "`text/event-stream` of `content` events followed by exactly one "
        "terminal `done`, `error` or `cancelled` event."
    ),
    responses={
        200: {
            "description": "Server-sent event stream",
            "content": {
                "text/event-stream": {
                    "example": (
                        'data: {"type": "content", "text": "Hel"}\n\n'
                        'data: {"type": "content", "text": "lo"}\n\n'
                        'data: {"type": "done", "finish_reason": "stop"}\n\n'
                    )
                }
            },
        },
        422: {"description": "Invalid request body"},
    },
)
async def stream_chat(body: ChatStreamRequest, chat: Chat) -> StreamingResponse:
    """Stream a conversation turn as SSE."""
    return StreamingResponse(
        chat.stream_sse(body),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
