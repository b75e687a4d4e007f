"""
Model discovery API schemas.

Provides the response model for the model listing endpoint.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field


class ModelInfo(BaseModel):
    """A chat model exposed by the LLM endpoint, with its capabilities."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "id": "gpt-4o",
                "name": "Gpt 4o",
                "provider": "openai",
                "description": "Basic fallback configuration for Gpt 4o",
                "capabilities": "(Fallback)",
                "token_limit": 4096,
                "supports_text": True,
                "supports_image": True,
                "supports_pdf": True,
                "supports_json": True,
                "supports_tools": True,
            }
        }
    )

    id: str = Field(..., description="Model id as used in chat requests")
    name: str = Field(..., description="Display name")
    provider: str = Field(..., description="Provider derived from the model id")
    description: str = Field(default="", description="Configured or fallback description")
    capabilities: str = Field(default="(Fallback)", description="Whether capabilities are configured or guessed")
    token_limit: int = Field(default=0, ge=0, description="Maximum context tokens")
    supports_text: bool = True
    supports_image: bool = False
    supports_pdf: bool = False
    supports_json: bool = True
    supports_tools: bool = True


class ModelListResponse(BaseModel):
    """Response for GET /models."""

    models: list[ModelInfo] = Field(default_factory=list)
    count: int = Field(default=0, ge=0)
