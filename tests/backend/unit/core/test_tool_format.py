"""Tests for MCP tool to OpenAI function conversion and tool selection."""

from __future__ import annotations

from core.tool_format import filter_tools, normalize_parameters, to_openai_tool, tool_function_name
from models.chat_models import ToolSelection
from models.mcp_models import MCPTool


def _tool(name: str, **extra: object) -> MCPTool:
    return MCPTool.model_validate({"name": name, **extra})


class TestNormalizeParameters:
    """Tests for normalize_parameters."""

    def test_defaults_type_to_object(self) -> None:
        assert normalize_parameters({"properties": {"q": {"type": "string"}}}) == {
            "type": "object",
            "properties": {"q": {"type": "string"}},
        }

    def test_adds_missing_properties(self) -> None:
        assert normalize_parameters({"type": "object"}) == {"type": "object", "properties": {}}

    def test_replaces_non_object_properties(self) -> None:
        assert normalize_parameters({"type": "object", "properties": ["q"]})["properties"] == {}

    def test_non_mapping_becomes_empty_schema(self) -> None:
        assert normalize_parameters("nope") == {"type": "object", "properties": {}}
        assert normalize_parameters(None) == {"type": "object", "properties": {}}

    def test_required_is_preserved(self) -> None:
        params = normalize_parameters({"properties": {"q": {}}, "required": ["q"]})
        assert params["required"] == ["q"]


class TestToOpenAITool:
    """Tests for to_openai_tool."""

    def test_input_schema_becomes_parameters(self) -> None:
        tool = _tool("search", description="Search the web", inputSchema={"properties": {"q": {"type": "string"}}})

        assert to_openai_tool(tool) == {
            "type": "function",
            "function": {
                "name": "search",
                "description": "Search the web",
                "parameters": {"type": "object", "properties": {"q": {"type": "string"}}},
            },
        }

    def test_tool_without_schema_omits_parameters(self) -> None:
        converted = to_openai_tool(_tool("ping"))
        assert converted == {"type": "function", "function": {"name": "ping"}}

    def test_existing_function_definition_is_kept(self) -> None:
        tool = _tool("calc", function={"description": "Calculator", "parameters": {"properties": {}}})

        converted = to_openai_tool(tool)

        assert converted["function"]["name"] == "calc"
        assert converted["function"]["description"] == "Calculator"
        assert converted["function"]["parameters"] == {"type": "object", "properties": {}}

    def test_legacy_parameters_field(self) -> None:
        converted = to_openai_tool(_tool("legacy", parameters={"type": "object", "properties": {"a": {}}}))
        assert converted["function"]["parameters"]["properties"] == {"a": {}}

    def test_source_tags_are_not_sent(self) -> None:
        tool = _tool("search", sourceMcpServerName="webcrawl", sourceMcpServerUrl="http://x")
        assert "sourceMcpServerName" not in to_openai_tool(tool)["function"]


class TestToolFunctionName:
    """Tests for tool_function_name."""

    def test_function_name(self) -> None:
        assert tool_function_name({"type": "function", "function": {"name": "a"}}) == "a"

    def test_bare_name(self) -> None:
        assert tool_function_name({"name": "b"}) == "b"

    def test_missing(self) -> None:
        assert tool_function_name({}) is None


class TestFilterTools:
    """Tests for filter_tools."""

    def test_no_selection_means_all(self) -> None:
        tools = [_tool("a"), _tool("b")]
        assert filter_tools(tools, None) == tools

    def test_tools_disabled(self) -> None:
        assert filter_tools([_tool("a")], ToolSelection(enable_tools=False)) == []

    def test_enabled_subset(self) -> None:
        tools = [_tool("a"), _tool("b"), _tool("c")]
        selected = filter_tools(tools, ToolSelection(enabled_tools=["c", "a"]))
        assert [t.name for t in selected] == ["a", "c"]

    def test_empty_enabled_list_means_all(self) -> None:
        tools = [_tool("a"), _tool("b")]
        assert filter_tools(tools, ToolSelection(enabled_tools=[])) == tools
