"""
HTTP request/response logging for debugging LLM and tool backend traffic.

Captures request payloads and responses using httpx event hooks.
"""

from __future__ import annotations

import json

from typing import Any

import httpx

from utils.logger import logger


class HTTPLogger:
    """Logs HTTP requests and responses for debugging."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._request_data: dict[int, dict[str, Any]] = {}

    async def log_request(self, request: httpx.Request) -> None:
        """Log outgoing HTTP request.

        Args:
            request: The httpx request object
        """
        if not self.enabled:
            return

        try:
            body_str = request.content.decode("utf-8") if request.content else ""
        except (httpx.RequestNotRead, UnicodeDecodeError):
            body_str = ""

        try:
            body: Any = json.loads(body_str) if body_str else {}
        except json.JSONDecodeError:
            # Form-encoded token exchanges carry secrets; never log them
            body = {"_note": "non-JSON body not captured"}

        self._request_data[id(request)] = {
            "method": request.method,
            "url": str(request.url),
        }

        logger.info(
            f"HTTP Request: {request.method} {request.url}",
            http_request=True,
            url=str(request.url),
            headers=self._sanitize_headers(dict(request.headers)),
            payload=body,
        )

    async def log_response(self, response: httpx.Response) -> None:
        """Log HTTP response.

        Args:
            response: The httpx response object
        """
        if not self.enabled:
            return

        request_data = self._request_data.pop(id(response.request), {})

        body: Any
        try:
            body_str = response.text
            body = json.loads(body_str) if body_str else {}
        except httpx.ResponseNotRead:
            body = {"_note": "streaming response - body not captured"}
        except json.JSONDecodeError as e:
            body = {"_error": f"Invalid JSON: {e!s}"}

        logger.info(
            f"HTTP Response: {response.status_code} "
            f"{request_data.get('method', 'UNKNOWN')} {request_data.get('url', 'UNKNOWN')}",
            http_response=True,
            status_code=response.status_code,
            headers=self._sanitize_headers(dict(response.headers)),
            body=body,
        )

    def _sanitize_headers(self, headers: dict[str, str]) -> dict[str, str]:
        """Remove sensitive data from headers.

        Args:
            headers: Original headers dictionary

        Returns:
            Sanitized headers with sensitive values redacted
        """
        sensitive_keys = {"authorization", "api-key", "x-api-key", "set-cookie", "cookie"}
        sanitized = {}
        for key, value in headers.items():
            if key.lower() in sensitive_keys:
                sanitized[key] = f"***{value[-4:]}" if len(value) > 4 else "***"
            else:
                sanitized[key] = value
        return sanitized


def create_logging_client(
    enabled: bool = True,
    timeout: httpx.Timeout | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> httpx.AsyncClient:
    """Create an httpx client with request/response logging.

    Args:
        enabled: Whether to enable HTTP logging
        timeout: Optional timeout configuration
        transport: Optional transport (tests pass an httpx.MockTransport)

    Returns:
        Configured httpx.AsyncClient with event hooks
    """
    http_logger = HTTPLogger(enabled=enabled)

    event_hooks: dict[str, list[Any]] = {
        "request": [http_logger.log_request],
        "response": [http_logger.log_response],
    }

    return httpx.AsyncClient(event_hooks=event_hooks, timeout=timeout, transport=transport)
