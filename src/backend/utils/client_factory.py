"""
HTTP client factory utilities.
Centralizes httpx.AsyncClient creation with consistent timeouts.
"""

from __future__ import annotations

import httpx

from utils.http_logger import create_logging_client

# Streaming completions can pause for a long time before the first token,
# and tool calls may run for minutes, so read timeouts are generous.
DEFAULT_CONNECT_TIMEOUT = 30.0  # Time to establish connection
DEFAULT_READ_TIMEOUT = 600.0  # 10 minutes
DEFAULT_WRITE_TIMEOUT = 30.0  # Time to send request
DEFAULT_POOL_TIMEOUT = 30.0  # Time to acquire connection from pool


def build_timeout(
    read_timeout: float | None = None,
    connect_timeout: float | None = None,
) -> httpx.Timeout:
    """Timeout configuration shared by LLM and tool backend clients."""
    return httpx.Timeout(
        connect=connect_timeout if connect_timeout is not None else DEFAULT_CONNECT_TIMEOUT,
        read=read_timeout if read_timeout is not None else DEFAULT_READ_TIMEOUT,
        write=DEFAULT_WRITE_TIMEOUT,
        pool=DEFAULT_POOL_TIMEOUT,
    )


def create_http_client(
    enable_logging: bool = False,
    read_timeout: float | None = None,
    connect_timeout: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create HTTP client with proper timeouts for streaming.

    Args:
        enable_logging: Enable HTTP request/response logging
        read_timeout: Read timeout in seconds (default: 600s)
        connect_timeout: Connect timeout in seconds (default: 30s)
        transport: Optional transport override

    Returns:
        Configured httpx.AsyncClient
    """
    timeout = build_timeout(read_timeout=read_timeout, connect_timeout=connect_timeout)

    if enable_logging:
        return create_logging_client(enabled=True, timeout=timeout, transport=transport)

    return httpx.AsyncClient(timeout=timeout, transport=transport)
