"""
Health check endpoints (v1).

Provides health, readiness, and liveness probes with consistent
response patterns and comprehensive OpenAPI documentation.
"""

from __future__ import annotations

import time

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from api.dependencies import AppSettings, Registry
from models.schemas.health import (
    HealthResponse,
    LivenessResponse,
    LLMHealth,
    ReadinessResponse,
    RegistryHealth,
)

router = APIRouter()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Comprehensive health check with all subsystem statuses.",
    responses={
        200: {
            "description": "System health status",
            "content": {
                "application/json": {
                    "example": {
                        "status": "healthy",
                        "version": "1.0.0",
                        "registry": {
                            "configured_servers": 2,
                            "tool_count": 14,
                            "failed_sources": [],
                        },
                        "llm": {
                            "base_url": "https://api.openai.com/v1",
                            "default_model": "gpt-4o-mini",
                            "api_key_configured": True,
                        },
                    }
                }
            },
        }
    },
    tags=["Health"],
)
async def health_check(request: Request, registry: Registry, settings: AppSettings) -> HealthResponse:
    """Comprehensive health check endpoint."""
    stats = registry.get_stats()
    failed = sorted(stats.get("errors", {}))
    sources = len(stats.get("servers", [])) + len(stats.get("peers", []))

    registry_health = RegistryHealth(
        configured_servers=len(stats.get("servers", [])),
        configured_peers=len(stats.get("peers", [])),
        tool_count=stats.get("tool_count", 0),
        skill_count=stats.get("skill_count", 0),
        last_refresh=stats.get("last_refresh"),
        failed_sources=failed,
    )
    llm_health = LLMHealth(
        base_url=settings.llm_base_url,
        default_model=settings.llm_default_model,
        api_key_configured=bool(settings.llm_api_key),
    )

    # Determine overall status
    if sources and len(failed) >= sources:
        status = "unhealthy"
    elif failed or not llm_health.api_key_configured:
        status = "degraded"
    else:
        status = "healthy"

    startup_time: datetime = getattr(request.app.state, "startup_time", None) or datetime.now(UTC)
    started_monotonic: float = getattr(request.app.state, "startup_monotonic", None) or time.monotonic()

    return HealthResponse(
        status=status,
        version=settings.app_version,
        uptime_seconds=round(time.monotonic() - started_monotonic, 3),
        startup_time=startup_time.isoformat(),
        registry=registry_health,
        llm=llm_health,
    )


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description="Ready once the initial tool discovery has finished.",
    responses={
        200: {
            "description": "Service ready",
            "content": {"application/json": {"example": {"ready": True}}},
        },
        503: {
            "description": "Service not ready",
            "content": {"application/json": {"example": {"ready": False, "error": "Tool discovery pending"}}},
        },
    },
    tags=["Health"],
)
async def readiness_check(registry: Registry) -> ReadinessResponse | JSONResponse:
    """Kubernetes-style readiness probe."""
    if registry.get_stats().get("refresh_count", 0) < 1:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "error": "Tool discovery pending"},
        )
    return ReadinessResponse(ready=True)


@router.get(
    "/health/live",
    response_model=LivenessResponse,
    summary="Liveness probe",
    description="Kubernetes-style liveness probe to confirm process is running.",
    responses={
        200: {
            "description": "Process alive",
            "content": {"application/json": {"example": {"alive": True}}},
        }
    },
    tags=["Health"],
)
async def liveness_check() -> LivenessResponse:
    """Kubernetes-style liveness probe."""
    return LivenessResponse(alive=True)
