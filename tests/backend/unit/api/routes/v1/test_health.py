from unittest.mock import MagicMock

import pytest

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.dependencies import get_app_settings, get_tool_registry
from api.routes.v1.health import router


@pytest.fixture
def mock_registry() -> MagicMock:
    registry = MagicMock()
    registry.get_stats.return_value = {
        "servers": ["calc", "crawl"],
        "peers": ["planner"],
        "tool_count": 3,
        "skill_count": 1,
        "last_refresh": 1700000000.0,
        "refresh_count": 1,
        "errors": {},
        "periodic_refresh": False,
    }
    return registry


@pytest.fixture
def app(mock_registry: MagicMock, mock_settings_for_ci: MagicMock) -> FastAPI:
    app = FastAPI()
    app.include_router(router, prefix="")

    app.dependency_overrides[get_tool_registry] = lambda: mock_registry
    app.dependency_overrides[get_app_settings] = lambda: mock_settings_for_ci

    return app


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


def test_liveness_check(client: TestClient) -> None:
    response = client.get("/health/live")
    assert response.status_code == 200
    assert response.json()["alive"] is True


def test_readiness_after_initial_refresh(client: TestClient) -> None:
    response = client.get("/health/ready")

    assert response.status_code == 200
    assert response.json()["ready"] is True


def test_readiness_before_initial_refresh(client: TestClient, mock_registry: MagicMock) -> None:
    mock_registry.get_stats.return_value = {"refresh_count": 0}

    response = client.get("/health/ready")

    assert response.status_code == 503
    assert response.json()["ready"] is False
    assert "pending" in response.json()["error"]


def test_health_check_healthy(client: TestClient) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["version"] == "1.0.0"
    assert data["registry"]["configured_servers"] == 2
    assert data["registry"]["configured_peers"] == 1
    assert data["registry"]["tool_count"] == 3
    assert data["llm"]["default_model"] == "gpt-4o-mini"
    assert data["llm"]["api_key_configured"] is True


def test_health_check_degraded_on_failed_source(client: TestClient, mock_registry: MagicMock) -> None:
    mock_registry.get_stats.return_value = {
        **mock_registry.get_stats.return_value,
        "errors": {"crawl": "HTTP 503"},
    }

    data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["registry"]["failed_sources"] == ["crawl"]


def test_health_check_unhealthy_when_all_sources_fail(client: TestClient, mock_registry: MagicMock) -> None:
    mock_registry.get_stats.return_value = {
        **mock_registry.get_stats.return_value,
        "errors": {"calc": "down", "crawl": "down", "planner": "down"},
    }

    assert client.get("/health").json()["status"] == "unhealthy"


def test_health_check_degraded_without_api_key(client: TestClient, mock_settings_for_ci: MagicMock) -> None:
    mock_settings_for_ci.llm_api_key = None

    data = client.get("/health").json()

    assert data["status"] == "degraded"
    assert data["llm"]["api_key_configured"] is False
