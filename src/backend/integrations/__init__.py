"""
Integrations Module - External System Integrations
===================================================

Clients for the systems the broker talks to: the OpenAI-compatible LLM
endpoint, MCP tool backends over JSON-RPC, A2A agent peers and the OAuth2
token endpoint used to authenticate against them.

Modules:
    llm_client: Streaming chat-completions and model listing over httpx
    mcp_transport: Per-backend protocol variants (standard, webcrawl)
    mcp_client: Session handshake, tool discovery and tool invocation
    a2a_discovery: Agent card fetching and skill extraction
    auth_tokens: Static bearer and cached client-credentials tokens
    tool_registry: Tool snapshot, periodic refresh and name-based dispatch

Key Components:

Tool Registry (tool_registry.py):
    Holds an immutable snapshot of discovered tools, swapped atomically on
    refresh. Dispatch resolves the owning backend and converts every failure
    into a tagged ToolError:
    - ToolNotAvailable: unknown tool, no network call
    - ToolExecutionError: JSON-RPC error, invalid response or bad arguments
    - InitializationFailed: no session id validated
    - TransportError: network failure or non-2xx status

MCP Invoker (mcp_client.py):
    Runs the handshake for every top-level call:
    initialize -> optional initialized notification -> tools/list validation
    -> alternate session ids -> no session header.

Example:
    Discovering and calling tools:

        registry = ToolRegistry(MCPInvoker(http, TokenProvider(http)), servers)
        await registry.refresh()
        outcome = await registry.dispatch("search", '{"q": "x"}')

See Also:
    :mod:`core.conversation`: The engine that advertises and dispatches tools
"""
