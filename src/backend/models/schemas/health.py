"""
Health check API schemas.

Provides response models for health, readiness, and liveness probes
with comprehensive OpenAPI documentation.
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RegistryHealth(BaseModel):
    """Tool registry health."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "configured_servers": 2,
                "configured_peers": 1,
                "tool_count": 14,
                "skill_count": 3,
                "last_refresh": 1735646400.0,
                "failed_sources": [],
            }
        }
    )

    configured_servers: int = Field(default=0, ge=0, description="Configured MCP servers")
    configured_peers: int = Field(default=0, ge=0, description="Configured A2A peers")
    tool_count: int = Field(default=0, ge=0, description="Tools in the current snapshot")
    skill_count: int = Field(default=0, ge=0, description="Agent skills in the current snapshot")
    last_refresh: float | None = Field(default=None, description="Unix time of the last refresh")
    failed_sources: list[str] = Field(default_factory=list, description="Backends that failed the last refresh")


class LLMHealth(BaseModel):
    """LLM endpoint configuration."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "base_url": "https://api.openai.com/v1",
                "default_model": "gpt-4o-mini",
                "api_key_configured": True,
            }
        }
    )

    base_url: str = Field(..., description="Base URL of the chat-completions API")
    default_model: str = Field(..., description="Model used when a request names none")
    api_key_configured: bool = Field(..., description="An API key is set")


class HealthResponse(BaseModel):
    """Comprehensive health check response."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "uptime_seconds": 3600.5,
                "startup_time": "2026-01-01T12:00:00Z",
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
    )

    status: Literal["healthy", "degraded", "unhealthy"] = Field(
        ...,
        description="Overall system health status",
        json_schema_extra={"example": "healthy"},
    )
    version: str = Field(
        ...,
        description="Application version",
        json_schema_extra={"example": "1.0.0"},
    )
    uptime_seconds: float = Field(..., description="Seconds since startup")
    startup_time: str = Field(..., description="Startup timestamp (ISO 8601)")
    registry: RegistryHealth = Field(..., description="Tool registry health")
    llm: LLMHealth = Field(..., description="LLM endpoint configuration")


class ReadinessResponse(BaseModel):
    """Kubernetes-style readiness probe response."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "ready": True,
            }
        }
    )

    ready: bool = Field(
        ...,
        description="Service is ready to accept traffic",
        json_schema_extra={"example": True},
    )
    error: str | None = Field(
        default=None,
        description="Error message if not ready",
    )


class LivenessResponse(BaseModel):
    """Kubernetes-style liveness probe response."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "alive": True,
            }
        }
    )

    alive: bool = Field(
        default=True,
        description="Process is running",
        json_schema_extra={"example": True},
    )
