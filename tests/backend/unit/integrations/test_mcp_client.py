"""Tests for the MCP JSON-RPC client: handshake, discovery and invocation."""

from __future__ import annotations

import json

from collections.abc import Callable
from typing import Any

import httpx
import pytest

from core.constants import CACHED_TOOL_RESULT_TEXT, MCP_SESSION_HEADER, NO_SESSION_REQUIRED
from core.exceptions import InitializationFailed, ToolExecutionError, TransportError
from integrations.auth_tokens import TokenProvider
from integrations.mcp_client import MCPInvoker, alternate_session_ids, extract_session_id, parse_rpc_body
from models.config_models import MCPServerConfig
from models.mcp_models import JsonRpcResponse

ClientFactory = Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]

NOW_MS = 1700000000000
TOOLS = [{"name": "add", "description": "Add numbers", "inputSchema": {"type": "object", "properties": {}}}]


class FakeBackend:
    """Minimal MCP backend driven by per-test settings.

    Attributes:
        session_header: Session id returned in the initialize response header
        init_result: ``result`` member of the initialize response
        accepted: Session header values accepted by tools/list and tools/call
            (None in the set means "no header")
        init_status: HTTP status of the initialize response
    """

    def __init__(self) -> None:
        self.session_header: str | None = "sess-1"
        self.init_result: dict[str, Any] = {"protocolVersion": "2024-11-05", "serverInfo": {"name": "calc"}}
        self.accepted: set[str | None] = {"sess-1"}
        self.init_status = 200
        self.call_response: Callable[[dict[str, Any]], httpx.Response] | None = None
        self.rest_response: httpx.Response | None = None
        self.requests: list[httpx.Request] = []

    def methods(self) -> list[str]:
        out = []
        for request in self.requests:
            if request.method == "GET":
                out.append(f"GET {request.url.path}")
            else:
                out.append(json.loads(request.content)["method"])
        return out

    def session_headers(self, method: str) -> list[str | None]:
        return [
            r.headers.get(MCP_SESSION_HEADER)
            for r in self.requests
            if r.method == "POST" and json.loads(r.content)["method"] == method
        ]

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)

        if request.method == "GET":
            return self.rest_response or httpx.Response(404)

        body = json.loads(request.content)
        method = body["method"]
        session = request.headers.get(MCP_SESSION_HEADER)

        if method == "initialize":
            headers = {MCP_SESSION_HEADER: self.session_header} if self.session_header else {}
            return httpx.Response(
                self.init_status,
                json={"jsonrpc": "2.0", "id": body["id"], "result": self.init_result},
                headers=headers,
            )
        if method == "notifications/initialized":
            return httpx.Response(202)

        if session not in self.accepted:
            return httpx.Response(
                200,
                json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32001, "message": "Invalid session"}},
            )

        if method == "tools/list":
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": {"tools": TOOLS}})
        if method == "tools/call":
            if self.call_response is not None:
                return self.call_response(body)
            return httpx.Response(
                200,
                json={
                    "jsonrpc": "2.0",
                    "id": body["id"],
                    "result": {"content": [{"type": "text", "text": "3"}]},
                },
            )
        return httpx.Response(400)


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def invoker(backend: FakeBackend, make_http_client: ClientFactory) -> MCPInvoker:
    http = make_http_client(backend)
    return MCPInvoker(http, TokenProvider(http), clock_ms=lambda: NOW_MS)


@pytest.fixture
def server() -> MCPServerConfig:
    return MCPServerConfig(name="calc", url="http://calc.test")


class TestHelpers:
    """Tests for parsing helpers."""

    def test_alternate_session_ids(self) -> None:
        assert alternate_session_ids(42) == ["mcp_session_42", "session-42", "42", "client_42"]

    def test_parse_json_body(self) -> None:
        response = httpx.Response(200, json={"jsonrpc": "2.0", "id": "1", "result": {"ok": True}})
        rpc = parse_rpc_body(response)
        assert rpc is not None and rpc.result == {"ok": True}

    def test_parse_event_stream_body_uses_last_data_line(self) -> None:
        text = (
            'event: message\ndata: {"jsonrpc": "2.0", "id": "1", "result": {"n": 1}}\n\n'
            "data: not-json\n\n"
            'data: {"jsonrpc": "2.0", "id": "1", "result": {"n": 2}}\n\n'
        )
        response = httpx.Response(200, text=text, headers={"content-type": "text/event-stream"})

        rpc = parse_rpc_body(response)

        assert rpc is not None and rpc.result == {"n": 2}

    @pytest.mark.parametrize("text", ["", "not json", "[1, 2]"])
    def test_unreadable_bodies(self, text: str) -> None:
        assert parse_rpc_body(httpx.Response(200, text=text)) is None

    def test_null_result_counts_as_result(self) -> None:
        rpc = parse_rpc_body(httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "result": None}))
        assert rpc is not None and rpc.has_result is True

    def test_session_id_from_header(self) -> None:
        response = httpx.Response(200, headers={MCP_SESSION_HEADER: "h-1"})
        assert extract_session_id(response, None) == "h-1"

    def test_session_id_from_result_keys(self) -> None:
        rpc = JsonRpcResponse(result={"session_id": "r-1"})
        assert extract_session_id(httpx.Response(200), rpc) == "r-1"

    def test_session_id_from_server_info(self) -> None:
        rpc = JsonRpcResponse(result={"serverInfo": {"name": "x", "sessionUUID": "u-1"}})
        assert extract_session_id(httpx.Response(200), rpc) == "u-1"

    def test_no_session_id(self) -> None:
        assert extract_session_id(httpx.Response(200), JsonRpcResponse(result={})) is None


class TestSessionHandshake:
    """Tests for establish_session and list_tools."""

    @pytest.mark.asyncio
    async def test_header_session_validated_and_reused_for_discovery(
        self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig
    ) -> None:
        tools = await invoker.list_tools(server)

        assert [t.name for t in tools] == ["add"]
        assert tools[0].source_server_name == "calc"
        assert tools[0].source_server_url == "http://calc.test"
        assert backend.methods() == ["initialize", "tools/list"]
        assert backend.session_headers("tools/list") == ["sess-1"]

    @pytest.mark.asyncio
    async def test_session_id_from_server_info(
        self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig
    ) -> None:
        backend.session_header = None
        backend.init_result = {"serverInfo": {"name": "calc", "id": "info-7"}}
        backend.accepted = {"info-7"}

        session = await invoker.establish_session(server, None)

        assert session.session_id == "info-7"
        assert session.tools_result == {"tools": TOOLS}

    @pytest.mark.asyncio
    async def test_rejected_session_falls_back_to_alternates(
        self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig
    ) -> None:
        backend.accepted = {f"session-{NOW_MS}"}

        session = await invoker.establish_session(server, None)

        assert session.session_id == f"session-{NOW_MS}"
        assert backend.session_headers("tools/list") == ["sess-1", f"mcp_session_{NOW_MS}", f"session-{NOW_MS}"]

    @pytest.mark.asyncio
    async def test_no_session_required(
        self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig
    ) -> None:
        backend.accepted = {None}

        session = await invoker.establish_session(server, None)

        assert session.session_id == NO_SESSION_REQUIRED
        assert session.header_value is None
        assert backend.session_headers("tools/list") == [
            "sess-1",
            f"mcp_session_{NOW_MS}",
            f"session-{NOW_MS}",
            str(NOW_MS),
            f"client_{NOW_MS}",
            None,
        ]

    @pytest.mark.asyncio
    async def test_all_approaches_fail(
        self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig
    ) -> None:
        backend.accepted = set()

        with pytest.raises(InitializationFailed) as exc_info:
            await invoker.list_tools(server)
        assert exc_info.value.server_name == "calc"

    @pytest.mark.asyncio
    async def test_initialize_http_error_tries_alternates(
        self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig
    ) -> None:
        backend.init_status = 500
        backend.accepted = {f"mcp_session_{NOW_MS}"}

        session = await invoker.establish_session(server, None)

        assert session.session_id == f"mcp_session_{NOW_MS}"

    @pytest.mark.asyncio
    async def test_failsafe_session_skips_validation(
        self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig
    ) -> None:
        backend.session_header = None
        backend.accepted = {f"client_{NOW_MS}"}

        session = await invoker.establish_session(server, None)

        assert session.session_id == f"client_{NOW_MS}"
        first_candidate = backend.session_headers("tools/list")[0]
        assert first_candidate == f"mcp_session_{NOW_MS}"

    @pytest.mark.asyncio
    async def test_empty_url_is_skipped(self, invoker: MCPInvoker, backend: FakeBackend) -> None:
        assert await invoker.list_tools(MCPServerConfig(name="blank", url="  ")) == []
        assert backend.requests == []

    @pytest.mark.asyncio
    async def test_bearer_token_sent(self, backend: FakeBackend, make_http_client: ClientFactory) -> None:
        http = make_http_client(backend)
        invoker = MCPInvoker(http, TokenProvider(http), clock_ms=lambda: NOW_MS)
        server = MCPServerConfig.model_validate(
            {"name": "calc", "url": "http://calc.test", "auth": {"type": "bearer", "token": "t0k"}}
        )

        await invoker.list_tools(server)

        assert all(r.headers["Authorization"] == "Bearer t0k" for r in backend.requests)


class TestWebcrawlVariant:
    """Tests for the webcrawl protocol variant."""

    @pytest.fixture
    def crawl_server(self) -> MCPServerConfig:
        return MCPServerConfig(name="webcrawl-mcp", url="http://crawl.test#frag", protocol_variant="webcrawl")

    @pytest.mark.asyncio
    async def test_rest_listing_used_first(
        self, invoker: MCPInvoker, backend: FakeBackend, crawl_server: MCPServerConfig
    ) -> None:
        backend.rest_response = httpx.Response(200, json={"tools": [{"name": "crawl"}]})

        tools = await invoker.list_tools(crawl_server)

        assert [t.name for t in tools] == ["crawl"]
        assert tools[0].source_server_name == "webcrawl-mcp"
        assert backend.methods() == ["GET /mcp/tools"]

    @pytest.mark.asyncio
    async def test_rest_failure_falls_back_to_handshake_with_notification(
        self, invoker: MCPInvoker, backend: FakeBackend, crawl_server: MCPServerConfig
    ) -> None:
        tools = await invoker.list_tools(crawl_server)

        assert [t.name for t in tools] == ["add"]
        assert backend.methods() == ["GET /mcp/tools", "initialize", "notifications/initialized", "tools/list"]
        notification = backend.requests[2]
        assert notification.headers["X-Mcp-Session-Id"] == "sess-1"
        assert notification.headers["Session-Id"] == "sess-1"
        assert "id" not in json.loads(notification.content)

    @pytest.mark.asyncio
    async def test_synthesized_session_id(
        self, invoker: MCPInvoker, backend: FakeBackend, crawl_server: MCPServerConfig
    ) -> None:
        backend.session_header = None
        backend.accepted = {None}

        await invoker.list_tools(crawl_server)

        assert backend.session_headers("tools/list")[0].startswith("webcrawl-")


class TestCallTool:
    """Tests for call_tool."""

    @pytest.mark.asyncio
    async def test_success(self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig) -> None:
        result = await invoker.call_tool(server, "add", {"a": 1, "b": 2})

        assert result.tool_name == "add"
        assert result.server_name == "calc"
        assert result.result == {"content": [{"type": "text", "text": "3"}]}
        call = json.loads(backend.requests[-1].content)
        assert call["method"] == "tools/call"
        assert call["params"] == {"name": "add", "arguments": {"a": 1, "b": 2}}
        assert backend.requests[-1].headers[MCP_SESSION_HEADER] == "sess-1"

    @pytest.mark.asyncio
    async def test_no_session_header_when_not_required(
        self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig
    ) -> None:
        backend.accepted = {None}

        await invoker.call_tool(server, "add", {})

        assert MCP_SESSION_HEADER not in backend.requests[-1].headers

    @pytest.mark.asyncio
    async def test_json_rpc_error(self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig) -> None:
        backend.call_response = lambda body: httpx.Response(
            200, json={"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32602, "message": "bad args"}}
        )

        with pytest.raises(ToolExecutionError) as exc_info:
            await invoker.call_tool(server, "add", {})

        assert exc_info.value.message == "bad args"
        assert exc_info.value.error_details["code"] == -32602

    @pytest.mark.asyncio
    async def test_not_modified_without_body(
        self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig
    ) -> None:
        backend.call_response = lambda body: httpx.Response(304)

        result = await invoker.call_tool(server, "add", {})

        assert result.cached is True
        assert CACHED_TOOL_RESULT_TEXT in result.to_content()

    @pytest.mark.asyncio
    async def test_not_modified_with_body(
        self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig
    ) -> None:
        backend.call_response = lambda body: httpx.Response(
            304, json={"jsonrpc": "2.0", "id": body["id"], "result": {"fresh": False}}
        )

        result = await invoker.call_tool(server, "add", {})

        assert result.cached is True
        assert result.result == {"fresh": False}

    @pytest.mark.asyncio
    async def test_unreadable_response(self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig) -> None:
        backend.call_response = lambda body: httpx.Response(200, text="<html>oops</html>")

        with pytest.raises(ToolExecutionError, match="Invalid response"):
            await invoker.call_tool(server, "add", {})

    @pytest.mark.asyncio
    async def test_http_error_status(self, invoker: MCPInvoker, backend: FakeBackend, server: MCPServerConfig) -> None:
        backend.call_response = lambda body: httpx.Response(502, text="bad gateway")

        with pytest.raises(TransportError) as exc_info:
            await invoker.call_tool(server, "add", {})
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_network_failure(self, make_http_client: ClientFactory, server: MCPServerConfig) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("refused", request=request)

        http = make_http_client(handler)
        invoker = MCPInvoker(http, TokenProvider(http), clock_ms=lambda: NOW_MS)

        with pytest.raises(InitializationFailed):
            await invoker.call_tool(server, "add", {})
