"""WebSocket utilities for the chat endpoint.

Provides error formatting and close codes.
"""

from __future__ import annotations

from api.websocket.errors import WSCloseCode, close_with_error, error_code_for, send_ws_error

__all__ = [
    "WSCloseCode",
    "close_with_error",
    "error_code_for",
    "send_ws_error",
]
