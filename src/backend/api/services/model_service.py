"""
Model discovery service.

Lists chat models from the LLM endpoint and merges them with configured
capability records. Discovery failures yield an empty list.
"""

from __future__ import annotations

from core.exceptions import TransportError
from core.model_capabilities import CapabilityCatalog, resolve_models
from integrations.llm_client import LLMClient
from models.config_models import LLMCapabilities
from models.schemas.llm import ModelInfo
from utils.logger import logger


class ModelService:
    def __init__(self, llm: LLMClient, catalog: CapabilityCatalog):
        self.llm = llm
        self.catalog = catalog

    def capabilities_for(self, model_id: str) -> LLMCapabilities | None:
        """Configured capability record for ``model_id``, if any."""
        return self.catalog.get(model_id)

    async def list_models(self) -> list[ModelInfo]:
        try:
            entries = await self.llm.fetch_models()
        except TransportError as e:
            logger.error(f"Model discovery failed: {e.message}", status_code=e.status_code)
            return []

        models = resolve_models(entries, self.catalog)
        logger.info(f"Discovered {len(models)} chat models ({len(self.catalog)} configured records)")
        return models


__all__ = ["ModelService"]
