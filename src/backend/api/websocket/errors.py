"""
WebSocket error handling utilities.

Provides consistent error formatting for chat WebSocket connections.
"""

from __future__ import annotations

import contextlib

from fastapi import WebSocket

from api.middleware.request_context import get_request_id
from core.exceptions import BrokerError, TransportError
from models.error_models import ErrorCode, WebSocketError
from utils.logger import logger
from utils.metrics import ws_messages_total


# WebSocket close codes (RFC 6455)
class WSCloseCode:
    """WebSocket close codes for error scenarios."""

    INVALID_PAYLOAD = 1007


def error_code_for(exc: BaseException) -> ErrorCode:
    """Map an exception to the error code reported to clients."""
    if isinstance(exc, TransportError) and exc.status_code == 429:
        return ErrorCode.EXTERNAL_RATE_LIMITED
    if isinstance(exc, BrokerError):
        return exc.code
    return ErrorCode.INTERNAL_ERROR


def _is_retryable(code: ErrorCode) -> bool:
    return code not in (ErrorCode.VALIDATION_ERROR, ErrorCode.VALIDATION_EMPTY_CONVERSATION, ErrorCode.WS_MESSAGE_INVALID)


async def send_ws_error(
    websocket: WebSocket,
    code: ErrorCode,
    message: str,
    session_id: str | None = None,
    retryable: bool | None = None,
) -> None:
    """Send a standardized error message over WebSocket.

    Args:
        websocket: Active WebSocket connection
        code: Application error code
        message: Human-readable error message
        session_id: Associated session ID (if any)
        retryable: Whether the client may retry; derived from the code when None
    """
    error = WebSocketError(
        code=code,
        message=message,
        request_id=get_request_id(),
        session_id=session_id,
        retryable=_is_retryable(code) if retryable is None else retryable,
    )

    try:
        await websocket.send_json(error.to_dict())
        ws_messages_total.labels(direction="outbound").inc()
    except (RuntimeError, OSError) as e:
        # Connection may already be closed
        logger.warning(f"Failed to send WebSocket error: {e}")


async def close_with_error(
    websocket: WebSocket,
    code: ErrorCode,
    message: str,
    session_id: str | None = None,
    close_code: int = WSCloseCode.INVALID_PAYLOAD,
) -> None:
    """Send error message and close WebSocket connection."""
    await send_ws_error(websocket, code=code, message=message, session_id=session_id, retryable=False)
    with contextlib.suppress(RuntimeError, OSError):
        await websocket.close(
            code=close_code,
            reason=message.encode("utf-8")[:123].decode("utf-8", errors="ignore"),
        )


__all__ = ["WSCloseCode", "close_with_error", "error_code_for", "send_ws_error"]
