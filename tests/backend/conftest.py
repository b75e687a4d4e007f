"""Shared test fixtures for the Research Broker test suite.

This module provides common fixtures used across all test modules,
including mocks for external dependencies.
"""

from __future__ import annotations

from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import MagicMock, patch

import httpx
import pytest

# ============================================================================
# EARLY INITIALIZATION: Runs before test collection
# ============================================================================


def _build_mock_settings() -> MagicMock:
    mock_settings = MagicMock()
    mock_settings.debug = False
    mock_settings.app_env = "test"
    mock_settings.is_development = False
    mock_settings.is_production = False
    mock_settings.app_version = "1.0.0"
    mock_settings.http_request_logging = False
    mock_settings.enable_content_logging = False
    mock_settings.llm_base_url = "http://llm.test/v1"
    mock_settings.llm_api_key = "test-llm-key"
    mock_settings.llm_default_model = "gpt-4o-mini"
    mock_settings.llm_connect_timeout = 5.0
    mock_settings.http_read_timeout = 30.0
    mock_settings.mcp_servers = []
    mock_settings.a2a_peers = []
    mock_settings.llm_configurations = []
    mock_settings.mcp_request_timeout = 30.0
    mock_settings.tool_refresh_interval = 0.0
    mock_settings.tool_poll_interval = 5.0
    mock_settings.tool_execution_timeout = 300.0
    mock_settings.max_tool_result_messages = 5
    mock_settings.tool_content_max_chars = 5000
    mock_settings.cors_origins_list = ["*"]
    mock_settings.cors_allow_credentials = False
    mock_settings.api_host = "127.0.0.1"
    mock_settings.api_port = 8000
    return mock_settings


def pytest_configure(config: pytest.Config) -> None:
    """Configure settings mock before any test modules are imported.

    This hook runs before test collection, which is when module-level
    imports happen. We patch get_settings here to prevent ValidationError
    on CI where .env is not available.
    """
    mock_settings = _build_mock_settings()

    # Store for later use - cast to Any to avoid mypy attr-defined errors
    cfg: Any = config
    cfg._mock_settings = mock_settings

    # Patch get_settings at the module level BEFORE any imports
    patcher = patch("core.constants.get_settings", return_value=mock_settings)
    patcher.start()
    cfg._settings_patcher = patcher


def pytest_unconfigure(config: pytest.Config) -> None:
    """Clean up settings mock after all tests complete."""
    patcher = getattr(config, "_settings_patcher", None)
    if patcher:
        patcher.stop()


# ============================================================================
# Test Isolation: Settings Management (MUST BE FIRST)
# ============================================================================


@pytest.fixture(autouse=True, scope="function")
def reset_settings_singleton() -> Generator[None, None, None]:
    """Reset settings singleton before each test to prevent state pollution."""
    from core import constants

    constants._settings_manager._instance = None
    yield
    constants._settings_manager._instance = None


@pytest.fixture(autouse=True)
def mock_settings_for_ci(monkeypatch: pytest.MonkeyPatch) -> Generator[MagicMock, None, None]:
    """Provide mock settings that work without .env file (for CI)."""
    mock_settings = _build_mock_settings()

    # Patch at the core.constants level so all imports get the mock
    monkeypatch.setattr("core.constants.get_settings", lambda: mock_settings)

    yield mock_settings


# ============================================================================
# HTTP Fakes
# ============================================================================


@pytest.fixture
def make_http_client() -> Callable[[Callable[[httpx.Request], httpx.Response]], httpx.AsyncClient]:
    """Build an httpx client whose requests are answered by ``handler``."""

    def factory(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(handler))

    return factory
