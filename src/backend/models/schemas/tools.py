"""
Tool discovery API schemas.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ToolListResponse(BaseModel):
    """Tools in OpenAI function-calling format, plus their source backend."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "tools": [
                    {
                        "type": "function",
                        "function": {
                            "name": "search",
                            "description": "Search the web",
                            "parameters": {"type": "object", "properties": {"q": {"type": "string"}}},
                        },
                        "source": {"server_name": "webcrawl-mcp", "server_url": "http://localhost:5001"},
                    }
                ],
                "count": 1,
            }
        }
    )

    tools: list[dict[str, Any]] = Field(default_factory=list, description="Tool definitions")
    count: int = Field(default=0, ge=0, description="Number of tools")


class RawToolListResponse(BaseModel):
    """Tools exactly as discovered, with their source tags."""

    tools: list[dict[str, Any]] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)


class SkillListResponse(BaseModel):
    """Skills advertised by A2A peers."""

    skills: list[dict[str, Any]] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)


class RegistryStatusResponse(BaseModel):
    """State of the tool registry."""

    servers: list[str] = Field(default_factory=list, description="Configured MCP servers")
    peers: list[str] = Field(default_factory=list, description="Configured A2A peers")
    tool_count: int = Field(default=0, ge=0)
    skill_count: int = Field(default=0, ge=0)
    last_refresh: float | None = Field(default=None, description="Unix time of the last refresh")
    refresh_count: int = Field(default=0, ge=0)
    errors: dict[str, str] = Field(default_factory=dict, description="Per-backend errors from the last refresh")
    periodic_refresh: bool = Field(default=False, description="Background refresh is running")
