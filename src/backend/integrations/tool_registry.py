"""
Tool Registry - the current set of discovered tools and agent skills.

The registry owns an immutable snapshot of tool descriptors that is replaced
wholesale on refresh. Readers never lock; refreshes are serialized. Dispatch
resolves the owning backend from the last-known snapshot and converts every
failure into a tagged ToolError value.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import time

from collections.abc import Sequence
from typing import Any

import httpx

from core.exceptions import InitializationFailed, ToolExecutionError, TransportError
from core.constants import DROPPED_ARGUMENTS_PREVIEW_CHARS
from integrations.a2a_discovery import AgentCardFetcher
from integrations.mcp_client import MCPInvoker
from models.a2a_models import AgentSkill
from models.config_models import A2APeerConfig, MCPServerConfig
from models.mcp_models import MCPTool, ToolError, ToolErrorKind, ToolResult
from utils.logger import logger
from utils.metrics import (
    mcp_tool_call_duration_seconds,
    mcp_tool_calls_total,
    registry_refresh_total,
    registry_skills_available,
    registry_tools_available,
)


def parse_arguments(raw: str | dict[str, Any] | None) -> dict[str, Any]:
    """Decode tool-call arguments into a JSON object.

    An empty string means no arguments.

    Raises:
        ValueError: If the arguments are not a JSON object
    """
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return raw
    if not raw.strip():
        return {}
    parsed = json.loads(raw)
    if not isinstance(parsed, dict):
        raise ValueError(f"Tool arguments must be a JSON object, got {type(parsed).__name__}")
    return parsed


class ToolRegistry:
    """Discovered tools and skills plus name-based dispatch.

    Args:
        invoker: MCP client used for discovery and calls
        servers: Configured tool backends
        card_fetcher: A2A agent card fetcher (skills discovery is skipped when None)
        peers: Configured A2A peers
    """

    def __init__(
        self,
        invoker: MCPInvoker,
        servers: Sequence[MCPServerConfig] = (),
        card_fetcher: AgentCardFetcher | None = None,
        peers: Sequence[A2APeerConfig] = (),
    ) -> None:
        self._invoker = invoker
        self._servers: tuple[MCPServerConfig, ...] = tuple(servers)
        self._card_fetcher = card_fetcher
        self._peers: tuple[A2APeerConfig, ...] = tuple(peers)

        self._tools: tuple[MCPTool, ...] = ()
        self._skills: tuple[AgentSkill, ...] = ()
        self._refresh_lock = asyncio.Lock()
        self._refresh_task: asyncio.Task[None] | None = None
        self._last_refresh: float | None = None
        self._refresh_count = 0
        self._server_errors: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Discovery
    # ------------------------------------------------------------------

    async def refresh(self) -> None:
        """Contact every backend and peer, then swap in the new snapshot."""
        async with self._refresh_lock:
            logger.info(
                f"Refreshing tool registry from {len(self._servers)} MCP servers and {len(self._peers)} A2A peers"
            )
            tools: list[MCPTool] = []
            errors: dict[str, str] = {}

            for server in self._servers:
                try:
                    tools.extend(await self._invoker.list_tools(server))
                except (TransportError, InitializationFailed) as e:
                    logger.error(f"Tool discovery failed for {server.name}: {e.message}", server_name=server.name)
                    errors[server.name] = e.message
                except (httpx.HTTPError, ValueError) as e:
                    logger.error(f"Tool discovery failed for {server.name}: {e}", server_name=server.name)
                    errors[server.name] = str(e)

            skills: list[AgentSkill] = []
            if self._card_fetcher is not None:
                for peer in self._peers:
                    try:
                        skills.extend(await self._card_fetcher.fetch_skills(peer))
                    except (httpx.HTTPError, ValueError) as e:
                        logger.error(f"Agent card discovery failed for {peer.name}: {e}", peer_name=peer.name)
                        errors[peer.name] = str(e)

            self._tools = tuple(tools)
            self._skills = tuple(skills)
            self._server_errors = errors
            self._last_refresh = time.time()
            self._refresh_count += 1

            registry_refresh_total.inc()
            registry_tools_available.set(len(self._tools))
            registry_skills_available.set(len(self._skills))
            logger.info(f"Tool registry refreshed: {len(self._tools)} tools, {len(self._skills)} skills")

    def list_tools(self) -> list[MCPTool]:
        """Snapshot copy of the current tools."""
        return list(self._tools)

    def list_skills(self) -> list[AgentSkill]:
        """Snapshot copy of the current A2A skills."""
        return list(self._skills)

    def find_tool(self, name: str) -> MCPTool | None:
        for tool in self._tools:
            if tool.name == name:
                return tool
        return None

    def _server_for(self, tool: MCPTool) -> MCPServerConfig | None:
        for server in self._servers:
            if server.name == tool.source_server_name:
                return server
        return None

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, name: str, arguments: str | dict[str, Any] | None) -> ToolResult | ToolError:
        """Execute a tool by name. Never raises for tool-level failures."""
        tool = self.find_tool(name)
        if tool is None:
            logger.warning(f"Tool '{name}' requested but not in the registry")
            return self._record(
                ToolError(
                    kind=ToolErrorKind.NOT_AVAILABLE,
                    tool_name=name,
                    message=f"Tool '{name}' is not available or not enabled for execution.",
                ),
                arguments,
            )

        server = self._server_for(tool)
        if server is None:
            logger.error(f"No configured MCP server provides tool '{name}'", source=tool.source_server_name)
            return self._record(
                ToolError(
                    kind=ToolErrorKind.NOT_AVAILABLE,
                    tool_name=name,
                    message=f"No configured server provides tool '{name}'",
                    server_name=tool.source_server_name,
                ),
                arguments,
            )

        raw_preview = arguments if isinstance(arguments, str) else json.dumps(arguments or {})
        try:
            parsed = parse_arguments(arguments)
        except ValueError as e:
            return self._record(
                ToolError(
                    kind=ToolErrorKind.EXECUTION,
                    tool_name=name,
                    message=f"Invalid tool arguments: {e}",
                    server_name=server.name,
                    details={"arguments_preview": raw_preview[:DROPPED_ARGUMENTS_PREVIEW_CHARS]},
                ),
                arguments,
            )

        start = time.perf_counter()
        outcome: ToolResult | ToolError
        try:
            outcome = await self._invoker.call_tool(server, name, parsed)
        except ToolExecutionError as e:
            outcome = ToolError(
                kind=ToolErrorKind.EXECUTION,
                tool_name=name,
                message=e.message,
                server_name=server.name,
                details=e.error_details,
            )
        except InitializationFailed as e:
            outcome = ToolError(
                kind=ToolErrorKind.INITIALIZATION,
                tool_name=name,
                message=e.message,
                server_name=server.name,
            )
        except TransportError as e:
            outcome = ToolError(
                kind=ToolErrorKind.TRANSPORT,
                tool_name=name,
                message=e.message,
                server_name=server.name,
                details={"status_code": e.status_code} if e.status_code is not None else None,
            )
        except httpx.HTTPError as e:
            outcome = ToolError(
                kind=ToolErrorKind.TRANSPORT,
                tool_name=name,
                message=str(e),
                server_name=server.name,
            )
        except Exception as e:
            logger.error(f"Unexpected error executing tool '{name}': {e}", exc_info=True)
            outcome = ToolError(
                kind=ToolErrorKind.EXECUTION,
                tool_name=name,
                message=f"Unexpected error: {e}",
                server_name=server.name,
            )

        duration = time.perf_counter() - start
        mcp_tool_call_duration_seconds.labels(tool_name=name).observe(duration)
        return self._record(outcome, arguments, duration_ms=duration * 1000)

    @staticmethod
    def _record(
        outcome: ToolResult | ToolError,
        arguments: str | dict[str, Any] | None,
        duration_ms: float | None = None,
    ) -> ToolResult | ToolError:
        if isinstance(outcome, ToolResult):
            status = "success"
            preview = outcome.to_content()
        else:
            status = outcome.kind.value
            preview = outcome.message

        mcp_tool_calls_total.labels(tool_name=outcome.tool_name, status=status).inc()
        logger.log_tool_call(
            tool_name=outcome.tool_name,
            arguments=arguments if isinstance(arguments, str) else json.dumps(arguments or {}),
            outcome=status,
            result_preview=preview,
            duration_ms=duration_ms,
            server_name=outcome.server_name,
        )
        return outcome

    # ------------------------------------------------------------------
    # Background refresh
    # ------------------------------------------------------------------

    async def _refresh_loop(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            try:
                await self.refresh()
            except Exception as e:
                logger.error(f"Periodic tool refresh failed: {e}", exc_info=True)

    def start_periodic_refresh(self, interval: float) -> None:
        """Refresh every ``interval`` seconds in a background task; 0 disables it."""
        if interval <= 0 or self._refresh_task is not None:
            return
        self._refresh_task = asyncio.create_task(self._refresh_loop(interval))
        logger.info(f"Periodic tool refresh every {interval}s started")

    async def stop(self) -> None:
        """Cancel the background refresh task, if any."""
        task = self._refresh_task
        self._refresh_task = None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        logger.info("Periodic tool refresh stopped")

    def get_stats(self) -> dict[str, Any]:
        """Registry state for the status endpoint."""
        return {
            "servers": [server.name for server in self._servers],
            "peers": [peer.name for peer in self._peers],
            "tool_count": len(self._tools),
            "skill_count": len(self._skills),
            "last_refresh": self._last_refresh,
            "refresh_count": self._refresh_count,
            "errors": dict(self._server_errors),
            "periodic_refresh": self._refresh_task is not None,
        }


__all__ = ["ToolRegistry", "parse_arguments"]
