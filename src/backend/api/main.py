from __future__ import annotations

import time

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import UTC, datetime

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_client import make_asgi_app

from api.middleware.exception_handlers import register_exception_handlers
from api.middleware.request_context import RequestContextMiddleware
from api.routes import chat
from api.routes.v1 import router as v1_router
from api.services.model_service import ModelService
from core.constants import Settings, get_settings
from core.conversation import ConversationEngine
from core.model_capabilities import CapabilityCatalog
from core.multimodal import MultimodalPreprocessor
from integrations.a2a_discovery import AgentCardFetcher
from integrations.auth_tokens import TokenProvider
from integrations.llm_client import LLMClient
from integrations.mcp_client import MCPInvoker
from integrations.tool_registry import ToolRegistry
from utils.client_factory import create_http_client
from utils.logger import configure_uvicorn_logging, logger

# Settings are loaded via Pydantic Settings with environment-specific file support
# (.env, .env.{APP_ENV}, .env.local) - no manual dotenv loading needed
settings = get_settings()

# Log loaded settings in debug mode
if settings.debug:
    from core.constants import _get_env_files

    logger.info(f"Env files: {[f.name for f in _get_env_files()]}")
    logger.info(
        f"Settings: app_env={settings.app_env}, llm_base_url={settings.llm_base_url}, "
        f"mcp_servers={len(settings.mcp_servers)}, a2a_peers={len(settings.a2a_peers)}"
    )

# Configure uvicorn logging at module level to ensure workers use it
configure_uvicorn_logging()


def build_components(app: FastAPI, app_settings: Settings) -> None:
    """Create the integration clients, registry and engine on ``app.state``."""
    llm_http = create_http_client(
        enable_logging=app_settings.http_request_logging,
        read_timeout=app_settings.http_read_timeout,
        connect_timeout=app_settings.llm_connect_timeout,
    )
    tools_http = create_http_client(
        enable_logging=app_settings.http_request_logging,
        read_timeout=app_settings.mcp_request_timeout,
    )
    app.state.http_clients = (llm_http, tools_http)

    token_provider = TokenProvider(tools_http)
    registry = ToolRegistry(
        invoker=MCPInvoker(tools_http, token_provider),
        servers=app_settings.mcp_servers,
        card_fetcher=AgentCardFetcher(tools_http, token_provider),
        peers=app_settings.a2a_peers,
    )
    catalog = CapabilityCatalog(app_settings.llm_configurations)
    llm = LLMClient(llm_http, app_settings.llm_base_url, app_settings.llm_api_key)

    app.state.token_provider = token_provider
    app.state.tool_registry = registry
    app.state.llm_client = llm
    app.state.model_service = ModelService(llm, catalog)
    app.state.engine = ConversationEngine(
        llm=llm,
        registry=registry,
        preprocessor=MultimodalPreprocessor(catalog.get),
        default_model=app_settings.llm_default_model,
        max_tool_results=app_settings.max_tool_result_messages,
        tool_content_max_chars=app_settings.tool_content_max_chars,
        poll_interval=app_settings.tool_poll_interval,
        execution_timeout=app_settings.tool_execution_timeout,
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan: startup and shutdown with graceful handling."""
    app.state.startup_time = datetime.now(UTC)
    app.state.startup_monotonic = time.monotonic()

    build_components(app, settings)
    registry: ToolRegistry = app.state.tool_registry

    # Initial discovery; per-backend failures are logged by the registry
    await registry.refresh()
    registry.start_periodic_refresh(settings.tool_refresh_interval)

    try:
        yield
    finally:
        logger.info("Initiating graceful shutdown sequence")

        # Phase 1: Stop background tool refresh
        await registry.stop()

        # Phase 2: Close outbound HTTP clients
        for client in app.state.http_clients:
            await client.aclose()
        logger.info("HTTP clients closed")


app = FastAPI(
    title="Research Broker API",
    description="""
## Research Broker API

Brokers conversations between clients and an OpenAI-compatible LLM endpoint,
augmenting the model with tools discovered from MCP backends.

### Features
- **Streaming Chat**: SSE and WebSocket streaming with tool execution
- **Tool Discovery**: MCP JSON-RPC backends and A2A agent cards
- **Multimodal Routing**: Image and PDF turns with content-specific directives
- **Model Discovery**: Capability-annotated model listing

### Versioning
API uses URL path versioning: `/api/v1/...`
Breaking changes will increment the version number.
""",
    version=settings.app_version,
    lifespan=lifespan,
    openapi_tags=[
        {
            "name": "Health",
            "description": "Health check endpoints for monitoring and orchestration",
        },
        {
            "name": "Chat",
            "description": "Streaming conversation turns",
        },
        {
            "name": "Tools",
            "description": "Discovered tools, agent skills and registry refresh",
        },
        {
            "name": "Models",
            "description": "Model discovery",
        },
        {
            "name": "WebSocket",
            "description": "Real-time chat streaming",
        },
    ],
    openapi_url="/api/v1/openapi.json",
    docs_url="/api/v1/docs",
    redoc_url="/api/v1/redoc",
)

# Register global exception handlers for consistent error responses
register_exception_handlers(app)

# Request context middleware (adds request ID tracking)
# Note: Middleware is executed in reverse order of registration
app.add_middleware(RequestContextMiddleware)

# CORS configuration (uses Settings for origin control)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Routes - API v1
app.include_router(v1_router, prefix="/api/v1")

# WebSocket routes (not versioned - protocol-level)
app.include_router(chat.router, prefix="/ws", tags=["WebSocket"])

# Prometheus exposition
app.mount("/metrics", make_asgi_app())


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
        reload_dirs=["src"],
        log_config=None,
    )
