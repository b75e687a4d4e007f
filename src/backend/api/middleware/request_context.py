"""
Request context middleware for Research Broker API.

Keeps request and turn identifiers in a context variable so every log record
written while serving a request (REST call, SSE stream, WebSocket session)
can be correlated, down to the conversation turn and the model it used.
"""

from __future__ import annotations

import secrets
import time

from contextvars import ContextVar
from dataclasses import dataclass, field, replace
from typing import Any

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

_request_context: ContextVar[RequestContext | None] = ContextVar("request_context", default=None)

# Identifier prefixes, one per scope
REQUEST_ID_PREFIX = "req_"
WEBSOCKET_ID_PREFIX = "ws_"
TURN_ID_PREFIX = "turn_"


@dataclass
class RequestContext:
    """Scope data attached to log records.

    One context exists per HTTP request or WebSocket connection. Each conversation
    turn runs on a copy that additionally carries ``turn_id`` and ``model``.
    """

    request_id: str
    start_time: float = field(default_factory=time.monotonic)
    path: str = ""
    method: str = ""
    client_ip: str | None = None
    session_id: str | None = None
    turn_id: str | None = None
    model: str | None = None

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.start_time) * 1000

    def to_log_context(self) -> dict[str, Any]:
        """Fields merged into every log record; unset optional fields are left out."""
        ctx: dict[str, Any] = {
            "request_id": self.request_id,
            "path": self.path,
            "method": self.method,
            "elapsed_ms": round(self.elapsed_ms, 2),
        }
        for key in ("client_ip", "session_id", "turn_id", "model"):
            value = getattr(self, key)
            if value:
                ctx[key] = value
        return ctx


def generate_request_id(prefix: str = REQUEST_ID_PREFIX) -> str:
    """Generate a prefixed identifier with 64 bits of entropy, e.g. ``req_a1b2c3d4e5f6a7b8``."""
    return f"{prefix}{secrets.token_hex(8)}"


def get_request_context() -> RequestContext | None:
    return _request_context.get()


def get_request_id() -> str | None:
    ctx = get_request_context()
    return ctx.request_id if ctx else None


def set_request_context(context: RequestContext) -> None:
    _request_context.set(context)


def clear_request_context() -> None:
    _request_context.set(None)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Opens a context per HTTP request and echoes its id in ``X-Request-ID``."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        # An incoming id is kept so upstream proxies can correlate
        request_id = request.headers.get("X-Request-ID") or generate_request_id()

        client_ip = request.headers.get("X-Forwarded-For")
        if client_ip:
            client_ip = client_ip.split(",")[0].strip()
        elif request.client:
            client_ip = request.client.host

        context = RequestContext(
            request_id=request_id,
            path=request.url.path,
            method=request.method,
            client_ip=client_ip,
        )
        set_request_context(context)

        try:
            response = await call_next(request)
            response.headers["X-Request-ID"] = request_id
            response.headers["X-Response-Time"] = f"{context.elapsed_ms:.2f}ms"
            return response
        finally:
            clear_request_context()


def create_websocket_context(
    session_id: str | None = None,
    client_ip: str | None = None,
) -> RequestContext:
    """Open a context for a WebSocket connection; it spans every turn of the session."""
    context = RequestContext(
        request_id=generate_request_id(WEBSOCKET_ID_PREFIX),
        path=f"/ws/chat/{session_id}" if session_id else "/ws/chat",
        method="WEBSOCKET",
        client_ip=client_ip,
        session_id=session_id,
    )
    set_request_context(context)
    return context


def bind_turn_context(model: str | None = None) -> RequestContext:
    """Tag the current context with a fresh turn id and the turn's model.

    Must run inside the task that executes the turn: the tagged copy is set on
    that task's context only, so the enclosing request or session keeps its own.
    Outside any request a standalone context keyed by the turn id is opened.
    """
    turn_id = generate_request_id(TURN_ID_PREFIX)
    current = get_request_context()
    if current is None:
        context = RequestContext(request_id=turn_id, method="TURN", turn_id=turn_id, model=model)
    else:
        context = replace(current, turn_id=turn_id, model=model)
    set_request_context(context)
    return context


__all__ = [
    "REQUEST_ID_PREFIX",
    "TURN_ID_PREFIX",
    "WEBSOCKET_ID_PREFIX",
    "RequestContext",
    "RequestContextMiddleware",
    "bind_turn_context",
    "clear_request_context",
    "create_websocket_context",
    "generate_request_id",
    "get_request_context",
    "get_request_id",
    "set_request_context",
]
