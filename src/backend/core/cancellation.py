"""
Cancellation token for cooperative turn cancellation.

One token is shared by the conversation engine, its output sink and the
transport that started the turn (SSE response or WebSocket session):
- Cancellation signaling via asyncio.Event
- Callback registration so the sink can switch to its cancelled completion
- ``check()`` at every decode step and before each tool dispatch
"""

from __future__ import annotations

import asyncio

from collections.abc import Callable

from core.exceptions import CancellationError
from utils.logger import logger


class CancellationToken:
    """Cooperative cancellation token for a single conversation turn.

    Usage:
        token = CancellationToken()

        # In the transport (client disconnect, interrupt message):
        token.cancel("client disconnected")

        # In the engine loop:
        async for event in stream:
            token.check()  # Raises CancellationError if cancelled
            process(event)
    """

    __slots__ = ("_callbacks", "_cancel_reason", "_cancelled")

    def __init__(self) -> None:
        self._cancelled = asyncio.Event()
        self._callbacks: list[Callable[[], None]] = []
        self._cancel_reason: str | None = None

    @property
    def is_cancelled(self) -> bool:
        """Check if cancellation has been requested."""
        return self._cancelled.is_set()

    @property
    def cancel_reason(self) -> str | None:
        """Get the reason for cancellation, if any."""
        return self._cancel_reason

    def cancel(self, reason: str | None = None) -> bool:
        """Request cancellation and notify all callbacks.

        Args:
            reason: Optional reason for cancellation (for logging/debugging)

        Returns:
            True if this call cancelled the token, False if it was already cancelled
        """
        if self._cancelled.is_set():
            return False

        self._cancel_reason = reason
        self._cancelled.set()
        logger.debug(f"Cancellation requested: {reason or 'no reason given'}")

        for callback in list(self._callbacks):
            self._invoke_callback(callback)
        return True

    def _invoke_callback(self, callback: Callable[[], None]) -> None:
        """Invoke a callback, logging any errors."""
        try:
            callback()
        except Exception as e:
            logger.warning(f"Cancellation callback error: {e}")

    def on_cancel(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback to be called when cancelled.

        A callback registered after cancellation runs immediately.
        """
        if self._cancelled.is_set():
            self._invoke_callback(callback)
            return callback

        self._callbacks.append(callback)
        return callback

    def check(self) -> None:
        """Check cancellation and raise if cancelled.

        Raises:
            CancellationError: If token is cancelled
        """
        if self.is_cancelled:
            raise CancellationError(self._cancel_reason)


__all__ = ["CancellationToken"]
