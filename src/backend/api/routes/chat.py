from __future__ import annotations

import asyncio
import contextlib

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError

from api.middleware.request_context import create_websocket_context
from api.services.chat_service import ChatService
from api.websocket.errors import close_with_error, send_ws_error
from core.cancellation import CancellationToken
from models.chat_models import ChatStreamRequest
from models.error_models import ErrorCode
from utils.logger import logger
from utils.metrics import ws_connections_active, ws_messages_total

router = APIRouter()

#: Seconds between keepalive pings
KEEPALIVE_INTERVAL_SECONDS = 30

#: Seconds a cancelled turn gets to wind down before its task is cancelled
PREVIOUS_TURN_EXIT_TIMEOUT = 5.0

#: Consecutive invalid client frames after which the socket is closed
MAX_CONSECUTIVE_INVALID_MESSAGES = 3


@router.websocket("/chat/{session_id}")
async def chat_websocket(websocket: WebSocket, session_id: str) -> None:
    """WebSocket endpoint for chat streaming."""
    logger.info(f"WebSocket upgrade request received for session {session_id}")

    # Initialize WebSocket request context for logging/tracking
    client_ip = websocket.client.host if websocket.client else None
    create_websocket_context(session_id=session_id, client_ip=client_ip)

    await websocket.accept()
    ws_connections_active.inc()

    chat_service = ChatService(websocket.app.state.engine)

    # Track active chat task and its cancellation token for this session
    active_chat_task: asyncio.Task[None] | None = None
    active_cancellation_token: CancellationToken | None = None
    invalid_messages = 0

    try:
        keepalive_task = asyncio.create_task(_keepalive(websocket))
        try:
            async for data in websocket.iter_json():
                ws_messages_total.labels(direction="inbound").inc()
                msg_type = data.get("type") if isinstance(data, dict) else None

                if msg_type == "message":
                    try:
                        request = ChatStreamRequest.model_validate(data)
                    except ValidationError as e:
                        invalid_messages += 1
                        reason = f"Invalid message: {e.error_count()} validation errors"
                        if not await _reject(websocket, reason, session_id, invalid_messages):
                            break
                        continue
                    invalid_messages = 0

                    # If there's an existing task, cancel it cooperatively
                    if active_chat_task and not active_chat_task.done():
                        if active_cancellation_token:
                            active_cancellation_token.cancel(reason="New message received")

                        # Wait for task to exit cleanly
                        try:
                            await asyncio.wait_for(active_chat_task, timeout=PREVIOUS_TURN_EXIT_TIMEOUT)
                        except asyncio.TimeoutError:
                            logger.warning(f"Previous task didn't exit within timeout for {session_id}")
                            active_chat_task.cancel()
                            with contextlib.suppress(asyncio.CancelledError):
                                await active_chat_task

                    # Create fresh cancellation token for new task
                    active_cancellation_token = CancellationToken()

                    # Run chat processing as background task so we can receive interrupts
                    active_chat_task = asyncio.create_task(
                        _handle_chat_message(request, session_id, chat_service, websocket, active_cancellation_token)
                    )

                elif msg_type == "interrupt":
                    invalid_messages = 0
                    logger.info(f"Interrupt message received for session {session_id}")
                    if active_chat_task and not active_chat_task.done() and active_cancellation_token:
                        active_cancellation_token.cancel(reason="User interrupt")
                    else:
                        logger.info(f"No active chat task to interrupt for session {session_id}")

                elif msg_type == "pong":
                    invalid_messages = 0
                    continue

                else:
                    invalid_messages += 1
                    if not await _reject(websocket, f"Unknown message type: {msg_type}", session_id, invalid_messages):
                        break

        finally:
            keepalive_task.cancel()
            # Clean up any running chat task
            if active_chat_task and not active_chat_task.done():
                if active_cancellation_token:
                    active_cancellation_token.cancel(reason="Connection closing")
                active_chat_task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await active_chat_task
    except WebSocketDisconnect:
        pass  # Normal client disconnect
    except RuntimeError as e:
        # Handle "WebSocket is not connected" errors gracefully
        if "not connected" not in str(e).lower():
            raise
    finally:
        ws_connections_active.dec()
        logger.info(f"WebSocket closed for session {session_id}")


async def _handle_chat_message(
    request: ChatStreamRequest,
    session_id: str,
    chat_service: ChatService,
    websocket: WebSocket,
    cancellation_token: CancellationToken,
) -> None:
    """Handle chat message processing (runs as background task)."""
    try:
        await chat_service.stream_websocket(websocket, session_id, request, cancellation_token)
    except asyncio.CancelledError:
        raise  # Let cancellation propagate
    except (WebSocketDisconnect, RuntimeError) as e:
        logger.info(f"WebSocket gone while streaming for {session_id}: {e}")
        cancellation_token.cancel(reason="Connection lost")
    except Exception as e:
        logger.error(f"Chat processing error: {e}", session_id=session_id, exc_info=True)
        await send_ws_error(
            websocket,
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Chat processing failed: {type(e).__name__}",
            session_id=session_id,
        )


async def _reject(websocket: WebSocket, message: str, session_id: str, invalid_count: int) -> bool:
    """Report an invalid client frame. Returns False once the socket has been closed."""
    if invalid_count >= MAX_CONSECUTIVE_INVALID_MESSAGES:
        logger.warning(f"Closing session {session_id} after {invalid_count} invalid messages")
        await close_with_error(websocket, code=ErrorCode.WS_MESSAGE_INVALID, message=message, session_id=session_id)
        return False
    await send_ws_error(websocket, code=ErrorCode.WS_MESSAGE_INVALID, message=message, session_id=session_id)
    return True


async def _keepalive(websocket: WebSocket) -> None:
    """Send periodic ping frames."""
    while True:
        await asyncio.sleep(KEEPALIVE_INTERVAL_SECONDS)
        try:
            await websocket.send_json({"type": "ping"})
        except (RuntimeError, OSError):
            break
