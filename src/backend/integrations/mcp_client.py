"""
MCP JSON-RPC client for tool backends.

Handles the session handshake (initialize, optional initialized notification,
session validation with alternate ids), tool discovery and tool invocation.
Each operation establishes its own session; sessions are never cached.
"""

from __future__ import annotations

import json
import time
import uuid

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import httpx

from pydantic import ValidationError

from core.constants import (
    CACHED_TOOL_RESULT_TEXT,
    FAILSAFE_SESSION_PREFIX,
    MCP_CLIENT_NAME,
    MCP_ENDPOINT_PATH,
    MCP_REST_TOOLS_PATH,
    MCP_SESSION_HEADER,
    NO_SESSION_REQUIRED,
    SESSION_RESULT_KEYS,
    SESSION_SERVER_INFO_KEYS,
)
from core.exceptions import InitializationFailed, ToolExecutionError, TransportError
from integrations.auth_tokens import TokenProvider
from integrations.mcp_transport import MCPProtocol, get_protocol
from models.config_models import MCPServerConfig
from models.mcp_models import (
    JsonRpcNotification,
    JsonRpcRequest,
    JsonRpcResponse,
    MCPTool,
    ToolResult,
)
from utils.logger import logger


def _now_ms() -> int:
    return int(time.time() * 1000)


def alternate_session_ids(now_ms: int) -> list[str]:
    """Session id formats tried when the handshake id does not validate."""
    return [
        f"mcp_session_{now_ms}",
        f"session-{now_ms}",
        str(now_ms),
        f"client_{now_ms}",
    ]


def parse_rpc_body(response: httpx.Response) -> JsonRpcResponse | None:
    """Parse a JSON-RPC response from a plain JSON or event-stream body.

    Event-stream bodies use the last ``data:`` line that holds a JSON object.
    Returns None when the body is empty or not a JSON-RPC object.
    """
    text = response.text
    if not text.strip():
        return None

    payload: Any = None
    content_type = response.headers.get("content-type", "")
    if "text/event-stream" in content_type:
        for line in text.splitlines():
            if not line.startswith("data:"):
                continue
            try:
                candidate = json.loads(line[5:].strip())
            except json.JSONDecodeError:
                continue
            if isinstance(candidate, dict):
                payload = candidate
    else:
        try:
            payload = json.loads(text)
        except json.JSONDecodeError:
            return None

    if not isinstance(payload, dict):
        return None
    try:
        return JsonRpcResponse.model_validate(payload)
    except ValidationError:
        return None


def extract_session_id(response: httpx.Response, rpc: JsonRpcResponse | None) -> str | None:
    """Find the session id an initialize response hands out.

    Looks at the session header first, then well-known keys of ``result``,
    then well-known keys of ``result.serverInfo``.
    """
    header_value = response.headers.get(MCP_SESSION_HEADER)
    if header_value:
        return header_value

    if rpc is None or not isinstance(rpc.result, dict):
        return None

    result = rpc.result
    for key in SESSION_RESULT_KEYS:
        value = result.get(key)
        if isinstance(value, str) and value:
            return value

    server_info = result.get("serverInfo")
    if isinstance(server_info, dict):
        for key in SESSION_SERVER_INFO_KEYS:
            value = server_info.get(key)
            if isinstance(value, str) and value:
                return value

    return None


@dataclass(frozen=True)
class MCPSession:
    """An established session. ``tools_result`` holds the validating tools/list result, if any."""

    session_id: str
    tools_result: Any | None = None

    @property
    def header_value(self) -> str | None:
        if self.session_id == NO_SESSION_REQUIRED:
            return None
        return self.session_id


class MCPInvoker:
    """Speaks MCP JSON-RPC over HTTP to configured tool backends.

    Args:
        http_client: Shared httpx client
        token_provider: Resolves bearer tokens per backend
        clock_ms: Wall clock in milliseconds, used for alternate session ids
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        token_provider: TokenProvider,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self._http = http_client
        self._tokens = token_provider
        self._clock_ms = clock_ms

    @staticmethod
    def endpoint(server: MCPServerConfig) -> str:
        return f"{server.base_url}/{MCP_ENDPOINT_PATH}"

    @staticmethod
    def _headers(token: str | None, session_id: str | None = None) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "Accept": "application/json, text/event-stream",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if session_id:
            headers[MCP_SESSION_HEADER] = session_id
        return headers

    async def _post(self, url: str, payload: dict[str, Any], headers: dict[str, str]) -> httpx.Response:
        try:
            return await self._http.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise TransportError(f"POST {url} failed: {e}", cause=e) from e

    async def _rpc(
        self,
        server: MCPServerConfig,
        request: JsonRpcRequest,
        token: str | None,
        session_id: str | None = None,
    ) -> tuple[httpx.Response, JsonRpcResponse | None]:
        """Send one JSON-RPC request. Raises TransportError on non-2xx (304 excepted)."""
        url = self.endpoint(server)
        response = await self._post(url, request.model_dump(), self._headers(token, session_id))
        if response.status_code >= 400 or (response.status_code >= 300 and response.status_code != 304):
            raise TransportError(
                f"{request.method} on {server.name} returned HTTP {response.status_code}",
                status_code=response.status_code,
                details={"server": server.name, "method": request.method},
            )
        return response, parse_rpc_body(response)

    # ------------------------------------------------------------------
    # Session handshake
    # ------------------------------------------------------------------

    async def _initialize(self, server: MCPServerConfig, protocol: MCPProtocol, token: str | None) -> str:
        """Run initialize and return the session id to validate (possibly failsafe)."""
        request = JsonRpcRequest(method="initialize", params={"clientName": MCP_CLIENT_NAME})
        response, rpc = await self._rpc(server, request, token)

        session_id = extract_session_id(response, rpc)
        source = "response"
        if not session_id:
            session_id = protocol.synthesize_session_id()
            source = "synthesized"
        if not session_id:
            session_id = f"{FAILSAFE_SESSION_PREFIX}{uuid.uuid4()}"
            source = "failsafe"
            logger.warning(f"No session id from {server.name}; using failsafe {session_id}")

        logger.info(
            f"MCP initialize succeeded for {server.name}",
            session_id=session_id,
            session_source=source,
        )
        return session_id

    async def _send_initialized(
        self, server: MCPServerConfig, protocol: MCPProtocol, token: str | None, session_id: str
    ) -> None:
        notification = JsonRpcNotification(method="notifications/initialized")
        headers = self._headers(token)
        headers.update(protocol.notification_headers(session_id))
        try:
            response = await self._post(self.endpoint(server), notification.to_payload(), headers)
        except TransportError as e:
            logger.warning(f"Initialized notification to {server.name} failed: {e.message}")
            return
        if response.status_code >= 400:
            logger.warning(
                f"Initialized notification to {server.name} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

    async def _validate(self, server: MCPServerConfig, token: str | None, session_id: str | None) -> JsonRpcResponse | None:
        """Probe a session id with tools/list. Returns the response when it carries a result."""
        request = JsonRpcRequest(method="tools/list")
        try:
            _, rpc = await self._rpc(server, request, token, session_id)
        except TransportError as e:
            logger.warning(f"Session validation for {server.name} failed: {e.message}")
            return None

        if rpc is None:
            logger.warning(f"Session validation for {server.name} got an unreadable response")
            return None
        if rpc.has_error:
            logger.warning(f"Session validation for {server.name} rejected: {rpc.error.message}")
            return None
        if rpc.has_result:
            return rpc
        return None

    async def _alternate_session(self, server: MCPServerConfig, token: str | None) -> MCPSession:
        now_ms = self._clock_ms()
        for candidate in alternate_session_ids(now_ms):
            logger.info(f"Trying alternate session id {candidate} for {server.name}")
            rpc = await self._validate(server, token, candidate)
            if rpc is not None:
                logger.info(f"Alternate session id {candidate} accepted by {server.name}")
                return MCPSession(session_id=candidate, tools_result=rpc.result)

        logger.info(f"Trying {server.name} without a session id")
        rpc = await self._validate(server, token, None)
        if rpc is not None:
            logger.info(f"{server.name} does not require a session id")
            return MCPSession(session_id=NO_SESSION_REQUIRED, tools_result=rpc.result)

        logger.error(f"All session setup approaches failed for {server.name}")
        raise InitializationFailed(server.name)

    async def establish_session(self, server: MCPServerConfig, token: str | None) -> MCPSession:
        """Run the full handshake for ``server``.

        Raises:
            InitializationFailed: If no session id, alternate or none, validates
        """
        protocol = get_protocol(server.protocol_variant)

        try:
            session_id = await self._initialize(server, protocol, token)
        except TransportError as e:
            logger.warning(f"MCP initialize failed for {server.name}: {e.message}; trying alternates")
            return await self._alternate_session(server, token)

        if session_id.startswith(FAILSAFE_SESSION_PREFIX):
            logger.info(f"Skipping validation of failsafe session for {server.name}")
            return await self._alternate_session(server, token)

        if protocol.sends_initialized_notification:
            await self._send_initialized(server, protocol, token, session_id)

        rpc = await self._validate(server, token, session_id)
        if rpc is not None:
            return MCPSession(session_id=session_id, tools_result=rpc.result)

        logger.warning(f"Session id {session_id} failed validation for {server.name}; trying alternates")
        return await self._alternate_session(server, token)

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    @staticmethod
    def _tag(server: MCPServerConfig, raw_tools: list[Any]) -> list[MCPTool]:
        tools: list[MCPTool] = []
        for raw in raw_tools:
            if not isinstance(raw, dict):
                logger.warning(f"Ignoring non-object tool entry from {server.name}")
                continue
            entry = dict(raw)
            entry.setdefault("sourceMcpServerName", server.name)
            entry.setdefault("sourceMcpServerUrl", server.url)
            try:
                tools.append(MCPTool.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Ignoring malformed tool from {server.name}: {e.error_count()} errors")
        return tools

    async def _list_tools_rest(self, server: MCPServerConfig, token: str | None) -> list[MCPTool] | None:
        url = f"{server.base_url}/{MCP_REST_TOOLS_PATH}"
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = await self._http.get(url, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(f"GET {url} failed for {server.name}: {e}; proceeding with JSON-RPC")
            return None

        if isinstance(payload, dict) and isinstance(payload.get("tools"), list):
            payload = payload["tools"]
        if not isinstance(payload, list):
            logger.warning(f"GET {url} for {server.name} did not return a list; proceeding with JSON-RPC")
            return None

        tools = self._tag(server, payload)
        logger.info(f"Fetched {len(tools)} tools from {server.name} via REST listing")
        return tools

    async def list_tools(self, server: MCPServerConfig) -> list[MCPTool]:
        """Discover the tools a backend serves, tagged with their source.

        Raises:
            InitializationFailed: If no session could be established
            TransportError: If the tools/list call itself fails
        """
        if not server.base_url:
            logger.warning(f"MCP server {server.name} has an empty URL; skipping")
            return []

        token = await self._tokens.resolve(server.auth, server.name)
        protocol = get_protocol(server.protocol_variant)

        if protocol.supports_rest_listing:
            tools = await self._list_tools_rest(server, token)
            if tools is not None:
                return tools

        session = await self.establish_session(server, token)
        result = session.tools_result
        if result is None:
            _, rpc = await self._rpc(server, JsonRpcRequest(method="tools/list"), token, session.header_value)
            if rpc is None or rpc.has_error or not rpc.has_result:
                logger.warning(f"tools/list on {server.name} returned no result")
                return []
            result = rpc.result

        raw_tools = result.get("tools") if isinstance(result, dict) else None
        if not isinstance(raw_tools, list):
            logger.warning(f"tools/list on {server.name} did not return a tools list")
            return []

        tools = self._tag(server, raw_tools)
        logger.info(f"Fetched {len(tools)} tools from {server.name}", server_name=server.name)
        return tools

    # ------------------------------------------------------------------
    # Invocation
    # ------------------------------------------------------------------

    async def call_tool(self, server: MCPServerConfig, tool_name: str, arguments: dict[str, Any]) -> ToolResult:
        """Invoke ``tool_name`` on ``server``.

        Raises:
            InitializationFailed: If no session could be established
            ToolExecutionError: If the backend answers with a JSON-RPC error or an unreadable body
            TransportError: On network failure or a non-2xx status other than 304
        """
        token = await self._tokens.resolve(server.auth, server.name)
        session = await self.establish_session(server, token)

        request = JsonRpcRequest(method="tools/call", params={"name": tool_name, "arguments": arguments})
        response, rpc = await self._rpc(server, request, token, session.header_value)

        if response.status_code == 304:
            if rpc is not None and rpc.has_result:
                return ToolResult(tool_name=tool_name, server_name=server.name, result=rpc.result, cached=True)
            logger.info(f"Tool {tool_name} on {server.name} returned 304; using cached result marker")
            return ToolResult(
                tool_name=tool_name,
                server_name=server.name,
                result={"content": [{"type": "text", "text": CACHED_TOOL_RESULT_TEXT}]},
                cached=True,
            )

        if rpc is None:
            raise ToolExecutionError(tool_name, "Invalid response from tool backend")
        if rpc.has_error:
            raise ToolExecutionError(
                tool_name,
                rpc.error.message,
                details=rpc.error.model_dump(exclude_none=True),
            )
        if rpc.has_result:
            return ToolResult(tool_name=tool_name, server_name=server.name, result=rpc.result)

        raise ToolExecutionError(tool_name, "Invalid response from tool backend")


__all__ = [
    "MCPInvoker",
    "MCPSession",
    "alternate_session_ids",
    "extract_session_id",
    "parse_rpc_body",
]
