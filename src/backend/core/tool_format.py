"""
Conversion of discovered MCP tools to OpenAI function-calling format.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import Any

from models.chat_models import ToolSelection
from models.mcp_models import MCPTool
from utils.logger import logger


def normalize_parameters(raw: Any) -> dict[str, Any]:
    """Return a JSON schema object suitable for ``function.parameters``.

    ``type`` defaults to ``object`` and ``properties`` is always an object.
    Anything that is not a mapping is replaced by an empty object schema.
    """
    if not isinstance(raw, dict):
        if raw is not None:
            logger.warning(f"Tool parameters are not an object ({type(raw).__name__}); using empty schema")
        return {"type": "object", "properties": {}}

    parameters = dict(raw)
    parameters.setdefault("type", "object")
    if not isinstance(parameters.get("properties"), dict):
        if "properties" in parameters:
            logger.warning("Tool parameter 'properties' is not an object; using empty properties")
        parameters["properties"] = {}
    return parameters


def to_openai_tool(tool: MCPTool) -> dict[str, Any]:
    """Convert one discovered tool to ``{"type": "function", "function": {...}}``.

    Tools that already carry a ``function`` definition keep it, with their
    parameters normalized. Tools without any schema omit ``parameters``.
    """
    extra = tool.model_extra or {}
    existing = extra.get("function")
    if isinstance(existing, dict):
        function = dict(existing)
        function.setdefault("name", tool.name)
        if "parameters" in function:
            function["parameters"] = normalize_parameters(function["parameters"])
        return {"type": "function", "function": function}

    function = {"name": tool.name}
    if tool.description:
        function["description"] = tool.description
    if tool.inputSchema is not None:
        function["parameters"] = normalize_parameters(tool.inputSchema)
    elif "parameters" in extra:
        function["parameters"] = normalize_parameters(extra["parameters"])
    return {"type": "function", "function": function}


def tool_function_name(tool: dict[str, Any]) -> str | None:
    """Name of an OpenAI-format tool definition."""
    function = tool.get("function")
    if isinstance(function, dict) and isinstance(function.get("name"), str):
        return function["name"]
    name = tool.get("name")
    return name if isinstance(name, str) else None


def filter_tools(tools: Sequence[MCPTool], selection: ToolSelection | None) -> list[MCPTool]:
    """Apply a tool selection. No selection, or an empty name list, means all tools."""
    effective = selection or ToolSelection()
    if not effective.enable_tools:
        logger.debug("Tools disabled by tool selection")
        return []
    if not effective.enabled_tools:
        return list(tools)
    enabled = set(effective.enabled_tools)
    return [tool for tool in tools if tool.name in enabled]


__all__ = ["filter_tools", "normalize_parameters", "to_openai_tool", "tool_function_name"]
