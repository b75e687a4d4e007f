"""
Model discovery endpoint (v1).
"""

from __future__ import annotations

from fastapi import APIRouter

from api.dependencies import Models
from models.schemas.llm import ModelListResponse

router = APIRouter()


@router.get(
    "/models",
    response_model=ModelListResponse,
    summary="List models",
    description=(
        "Chat models offered by the LLM endpoint, merged with configured capability "
        "records. Returns an empty list when the endpoint cannot be reached."
    ),
)
async def list_models(models: Models) -> ModelListResponse:
    discovered = await models.list_models()
    return ModelListResponse(models=discovered, count=len(discovered))
