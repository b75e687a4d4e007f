"""
Research Broker - Streaming tool-calling conversation broker
=============================================================

FastAPI backend that brokers conversations between clients and an
OpenAI-compatible LLM endpoint, augmenting the model with tools discovered
from MCP JSON-RPC backends and skills advertised by A2A peers.

Key Features:
    - **Streaming Engine**: SSE decoding, tool-call assembly and continuation loop
    - **Tool Discovery**: MCP session handshake with alternate session strategies
    - **Cached Auth**: OAuth2 client-credentials tokens cached per client and realm
    - **Multimodal Routing**: Image/PDF classification, tool suppression and directives
    - **Enterprise Logging**: Structured JSON logs with rotation and request correlation

Modules:
    api: FastAPI routes, services, middleware, and WebSocket handling
    core: Conversation engine, stream decoding, configuration constants
    models: Pydantic models for messages, JSON-RPC and API responses
    utils: Logging, metrics, HTTP client factory, content filtering
    integrations: LLM client, MCP client, A2A discovery, token provider, registry
"""
