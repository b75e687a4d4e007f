"""
Domain exceptions for the conversation engine and its integrations.

Tool-level failures (ToolNotAvailable, ToolExecutionError, InitializationFailed,
TransportError raised by a tool backend) are recovered by the registry into
ToolError values and reported to the model. StreamDecodeError and LLM transport
errors end the turn. CancellationError ends the turn quietly.
"""

from __future__ import annotations

from typing import Any

from models.error_models import ErrorCode


class BrokerError(Exception):
    """Base class for broker domain errors, carrying an API error code."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, message: str, *, details: dict[str, Any] | None = None, cause: Exception | None = None):
        self.message = message
        self.details = details
        self.cause = cause
        super().__init__(message)


class TransportError(BrokerError):
    """Network failure, non-success HTTP status, or in-stream error object."""

    code = ErrorCode.EXTERNAL_SERVICE_ERROR

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ):
        self.status_code = status_code
        super().__init__(message, details=details, cause=cause)


class ToolNotAvailable(BrokerError):
    """The requested tool is unknown or was not offered for this turn."""

    code = ErrorCode.TOOL_NOT_AVAILABLE

    def __init__(self, tool_name: str):
        self.tool_name = tool_name
        super().__init__(f"Tool '{tool_name}' is not available or not enabled for execution.")


class ToolExecutionError(BrokerError):
    """A tool backend answered with a JSON-RPC error or an invalid response."""

    code = ErrorCode.TOOL_EXECUTION_FAILED

    def __init__(self, tool_name: str, message: str, *, details: Any | None = None):
        self.tool_name = tool_name
        self.error_details = details
        super().__init__(message)


class InitializationFailed(BrokerError):
    """No session id (including the alternates) was accepted by a tool backend."""

    code = ErrorCode.MCP_INITIALIZATION_FAILED

    def __init__(self, server_name: str, message: str | None = None):
        self.server_name = server_name
        super().__init__(message or f"Failed to establish a session with tool server '{server_name}'")


class StreamDecodeError(BrokerError):
    """An SSE ``data:`` payload could not be parsed as JSON."""

    code = ErrorCode.STREAM_DECODE_ERROR

    def __init__(self, line: str, cause: Exception | None = None):
        self.line = line
        super().__init__(f"Malformed stream event: {line[:200]}", cause=cause)


class EmptyConversationError(BrokerError):
    """The request would send no user-visible messages to the LLM."""

    code = ErrorCode.VALIDATION_EMPTY_CONVERSATION

    def __init__(self, message: str = "Cannot send an effectively empty message list to the LLM"):
        super().__init__(message)


class CancellationError(BrokerError):
    """The turn was cancelled by the client."""

    code = ErrorCode.TURN_CANCELLED

    def __init__(self, reason: str | None = None):
        self.reason = reason
        super().__init__(reason or "Cancellation requested")


__all__ = [
    "BrokerError",
    "CancellationError",
    "EmptyConversationError",
    "InitializationFailed",
    "StreamDecodeError",
    "ToolExecutionError",
    "ToolNotAvailable",
    "TransportError",
]
