"""
Prometheus metrics configuration for Research Broker.

Defines custom metrics for turns, LLM streams, tool calls and discovery.
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

# Use standard Prometheus naming conventions: namespace_subsystem_name_unit
NAMESPACE = "researchbroker"


# ============================================================================
# Conversation Metrics
# ============================================================================

turns_total = Counter(
    f"{NAMESPACE}_turns_total",
    "Total number of conversation turns by terminal state",
    ["state"],  # "completed", "failed", "cancelled"
)

llm_stream_requests_total = Counter(
    f"{NAMESPACE}_llm_stream_requests_total",
    "Total number of streaming chat-completions requests",
    ["outcome"],  # "ok", "error"
)

llm_stream_duration_seconds = Histogram(
    f"{NAMESPACE}_llm_stream_duration_seconds",
    "Duration of one streaming chat-completions request in seconds",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)


# ============================================================================
# WebSocket Metrics
# ============================================================================

ws_connections_active = Gauge(
    f"{NAMESPACE}_websocket_connections_active",
    "Number of currently active WebSocket connections",
)

ws_messages_total = Counter(
    f"{NAMESPACE}_websocket_messages_total",
    "Total number of WebSocket messages processed",
    ["direction"],  # "inbound" or "outbound"
)


# ============================================================================
# Tool (MCP) Metrics
# ============================================================================

registry_tools_available = Gauge(
    f"{NAMESPACE}_registry_tools_available",
    "Number of tools in the current registry snapshot",
)

registry_skills_available = Gauge(
    f"{NAMESPACE}_registry_skills_available",
    "Number of agent skills in the current registry snapshot",
)

registry_refresh_total = Counter(
    f"{NAMESPACE}_registry_refresh_total",
    "Total number of registry refreshes",
)

mcp_tool_calls_total = Counter(
    f"{NAMESPACE}_mcp_tool_calls_total",
    "Total number of MCP tool calls executed",
    ["tool_name", "status"],  # status: "success" or a tool error kind
)

mcp_tool_call_duration_seconds = Histogram(
    f"{NAMESPACE}_mcp_tool_call_duration_seconds",
    "MCP tool call execution duration in seconds",
    ["tool_name"],
    buckets=(0.1, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 120.0, 300.0),
)
