"""
Pydantic models for MCP (Model Context Protocol) over JSON-RPC 2.0.

These models provide type safety for:
- JSON-RPC envelopes (requests, notifications, responses, errors)
- Tool definitions discovered from backends (MCPTool)
- Tool execution outcomes (ToolResult / ToolError)
"""

from __future__ import annotations

import json
import uuid

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from core.constants import JSONRPC_VERSION


class JsonRpcRequest(BaseModel):
    """A JSON-RPC request that expects a response."""

    jsonrpc: str = JSONRPC_VERSION
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    method: str
    params: dict[str, Any] = Field(default_factory=dict)


class JsonRpcNotification(BaseModel):
    """A JSON-RPC notification (no id, no response expected)."""

    jsonrpc: str = JSONRPC_VERSION
    method: str
    params: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class JsonRpcError(BaseModel):
    """The ``error`` member of a JSON-RPC response."""

    model_config = ConfigDict(extra="allow")

    code: int | None = None
    message: str = "Unknown error"
    data: Any | None = None


class JsonRpcResponse(BaseModel):
    """A JSON-RPC response.

    ``result`` may legitimately be ``null``; use :attr:`has_result` to check
    whether the member was present at all.
    """

    model_config = ConfigDict(extra="allow")

    jsonrpc: str = JSONRPC_VERSION
    id: str | int | None = None
    result: Any | None = None
    error: JsonRpcError | None = None

    @property
    def has_result(self) -> bool:
        return "result" in self.model_fields_set

    @property
    def has_error(self) -> bool:
        return self.error is not None


class MCPTool(BaseModel):
    """Model for an MCP tool definition.

    Represents a tool available on a backend, tagged with the backend that
    serves it so calls can be routed back to the right place.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    name: str
    description: str | None = None
    inputSchema: dict[str, Any] | None = None
    source_server_name: str | None = Field(default=None, alias="sourceMcpServerName")
    source_server_url: str | None = Field(default=None, alias="sourceMcpServerUrl")

    def to_wire(self) -> dict[str, Any]:
        """Dump using the original camelCase keys, including any extra fields."""
        return self.model_dump(by_alias=True, exclude_none=True)


class ToolErrorKind(str, Enum):
    """Tagged failure categories for a dispatched tool call."""

    NOT_AVAILABLE = "ToolNotAvailable"
    EXECUTION = "ToolExecutionError"
    INITIALIZATION = "InitializationFailed"
    TRANSPORT = "TransportError"


class ToolResult(BaseModel):
    """Successful tool call: the JSON-RPC ``result`` member."""

    tool_name: str
    server_name: str | None = None
    result: Any | None = None
    cached: bool = False

    def to_content(self) -> str:
        """Serialize the result for a ``tool`` message."""
        if isinstance(self.result, str):
            return self.result
        return json.dumps(self.result, ensure_ascii=False, default=str)


class ToolError(BaseModel):
    """Failed tool call, always returned as a value and never raised."""

    kind: ToolErrorKind
    tool_name: str
    message: str
    server_name: str | None = None
    details: Any | None = None

    def to_payload(self, tool_call_id: str | None = None, hint: str | None = None) -> dict[str, Any]:
        """Model-readable error body for a ``tool`` message."""
        payload: dict[str, Any] = {
            "error": self.message,
            "error_type": self.kind.value,
            "tool_name": self.tool_name,
        }
        if tool_call_id is not None:
            payload["tool_call_id"] = tool_call_id
        if self.details is not None:
            payload["details"] = self.details
        if hint:
            payload["hint"] = hint
        return payload
