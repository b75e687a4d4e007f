"""
MCP protocol variants.

Tool backends differ in small ways around the session handshake. Each backend
config names its variant explicitly; the invoker asks the variant object what
to do instead of inspecting backend names.
"""

from __future__ import annotations

import uuid

from abc import ABC, abstractmethod

from core.constants import MCP_ALTERNATE_SESSION_HEADERS, MCP_SESSION_HEADER


class MCPProtocol(ABC):
    """Handshake behaviour of one kind of tool backend."""

    name: str = ""

    #: Send ``notifications/initialized`` after a successful initialize
    sends_initialized_notification: bool = False

    #: Try ``GET {backend}/mcp/tools`` before the JSON-RPC handshake when listing tools
    supports_rest_listing: bool = False

    @abstractmethod
    def synthesize_session_id(self) -> str | None:
        """Session id to use when initialize returned none, or None for the failsafe id."""

    def notification_headers(self, session_id: str) -> dict[str, str]:
        """Headers carrying the session id on the initialized notification."""
        return {MCP_SESSION_HEADER: session_id}


class StandardProtocol(MCPProtocol):
    """Plain MCP over HTTP JSON-RPC."""

    name = "standard"

    def synthesize_session_id(self) -> str | None:
        return None


class WebcrawlProtocol(MCPProtocol):
    """Backends that expect the initialized notification under several header spellings."""

    name = "webcrawl"
    sends_initialized_notification = True
    supports_rest_listing = True

    def synthesize_session_id(self) -> str | None:
        return f"webcrawl-{uuid.uuid4()}"

    def notification_headers(self, session_id: str) -> dict[str, str]:
        headers = {MCP_SESSION_HEADER: session_id}
        for header in MCP_ALTERNATE_SESSION_HEADERS:
            headers[header] = session_id
        return headers


_PROTOCOLS: dict[str, MCPProtocol] = {
    StandardProtocol.name: StandardProtocol(),
    WebcrawlProtocol.name: WebcrawlProtocol(),
}


def get_protocol(variant: str) -> MCPProtocol:
    """Return the protocol object for a configured variant.

    Raises:
        ValueError: If the variant is unknown
    """
    protocol = _PROTOCOLS.get(variant)
    if protocol is None:
        raise ValueError(f"Unknown MCP protocol variant: {variant}")
    return protocol


__all__ = ["MCPProtocol", "StandardProtocol", "WebcrawlProtocol", "get_protocol"]
