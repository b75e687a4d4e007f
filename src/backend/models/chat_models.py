"""
Pydantic models for conversation messages and tool calls.

ConversationMessage mirrors the OpenAI chat-completions message shape. Messages
are immutable: a conversation grows by appending new messages, never by editing
existing ones.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

MessageRole = Literal["system", "user", "assistant", "tool", "agent"]


class ToolCallRequest(BaseModel):
    """A complete tool call requested by the model."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    arguments: str = ""
    type: str = "function"

    def to_openai(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "function": {"name": self.name, "arguments": self.arguments},
        }

    @classmethod
    def from_openai(cls, data: dict[str, Any]) -> ToolCallRequest:
        """Build from an OpenAI ``tool_calls`` entry."""
        function = data.get("function") or {}
        return cls(
            id=data.get("id") or "",
            name=function.get("name") or "",
            arguments=function.get("arguments") or "",
            type=data.get("type") or "function",
        )


class ConversationMessage(BaseModel):
    """One message in a conversation.

    Invariants:
        - ``assistant`` messages carry content or at least one tool call.
        - ``tool`` messages carry the ``tool_call_id`` they answer.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    role: MessageRole
    content: str | list[dict[str, Any]] | None = None
    tool_calls: list[ToolCallRequest] | None = None
    tool_call_id: str | None = None
    name: str | None = None

    @model_validator(mode="before")
    @classmethod
    def parse_openai_tool_calls(cls, data: Any) -> Any:
        """Accept OpenAI-shaped ``tool_calls`` entries (``{"function": {...}}``)."""
        if isinstance(data, dict) and isinstance(data.get("tool_calls"), list):
            calls = [
                ToolCallRequest.from_openai(call) if isinstance(call, dict) and "function" in call else call
                for call in data["tool_calls"]
            ]
            data = {**data, "tool_calls": calls}
        return data

    @model_validator(mode="after")
    def validate_role_fields(self) -> ConversationMessage:
        if self.effective_role == "assistant" and self.content is None and not self.tool_calls:
            raise ValueError("assistant message requires content or tool_calls")
        if self.role == "tool" and not self.tool_call_id:
            raise ValueError("tool message requires tool_call_id")
        if self.tool_calls and self.effective_role != "assistant":
            raise ValueError("only assistant messages may carry tool_calls")
        return self

    @property
    def effective_role(self) -> str:
        """Role as sent to the LLM (``agent`` is an alias for ``assistant``)."""
        return "assistant" if self.role == "agent" else self.role

    @property
    def is_multipart(self) -> bool:
        return isinstance(self.content, list)

    def to_llm_payload(self) -> dict[str, Any]:
        """Serialize for the chat-completions request body."""
        payload: dict[str, Any] = {"role": self.effective_role}
        if self.content is not None or not self.tool_calls:
            payload["content"] = self.content
        if self.tool_calls:
            payload["tool_calls"] = [call.to_openai() for call in self.tool_calls]
        if self.tool_call_id:
            payload["tool_call_id"] = self.tool_call_id
        if self.name and self.role == "tool":
            payload["name"] = self.name
        return payload


class ToolSelection(BaseModel):
    """Which discovered tools may be offered to the model for a request."""

    enable_tools: bool = Field(default=True, alias="enableTools")
    enabled_tools: list[str] | None = Field(default=None, alias="enabledTools")

    model_config = ConfigDict(populate_by_name=True)


class ChatStreamRequest(BaseModel):
    """Body of the streaming chat endpoint and websocket ``message`` frames."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    model: str | None = None
    messages: list[ConversationMessage] = Field(..., min_length=1)
    tool_selection: ToolSelection | None = Field(default=None, alias="toolSelection")
