"""Tests for Prometheus metrics module.

Tests metric naming and labels.
"""

from __future__ import annotations

from prometheus_client import REGISTRY

from utils.metrics import (
    NAMESPACE,
    mcp_tool_call_duration_seconds,
    mcp_tool_calls_total,
    turns_total,
    ws_messages_total,
)


class TestMetricsNamespace:
    """Test namespace configuration."""

    def test_namespace(self) -> None:
        """Verify namespace is set correctly."""
        assert NAMESPACE == "researchbroker"


class TestMetricLabels:
    """Test label sets."""

    def test_turns_labels(self) -> None:
        """Turns are labeled by terminal state."""
        assert turns_total._labelnames == ("state",)

    def test_tool_call_labels(self) -> None:
        """Tool calls are labeled by tool and status."""
        assert mcp_tool_calls_total._labelnames == ("tool_name", "status")
        assert mcp_tool_call_duration_seconds._labelnames == ("tool_name",)

    def test_ws_messages_labels(self) -> None:
        """WebSocket messages are labeled by direction."""
        assert ws_messages_total._labelnames == ("direction",)


class TestObservation:
    """Test that observations reach the default registry."""

    def test_turn_counter_increments(self) -> None:
        """Incrementing a labeled counter is visible in the registry."""
        name = f"{NAMESPACE}_turns_total"
        before = REGISTRY.get_sample_value(name, {"state": "completed"}) or 0.0

        turns_total.labels(state="completed").inc()

        assert REGISTRY.get_sample_value(name, {"state": "completed"}) == before + 1
