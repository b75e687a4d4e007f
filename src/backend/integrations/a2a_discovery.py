"""Agent card discovery for A2A peers."""

from __future__ import annotations

import httpx

from pydantic import ValidationError

from integrations.auth_tokens import TokenProvider
from models.a2a_models import AgentCard, AgentSkill
from models.config_models import A2APeerConfig
from utils.logger import logger

AGENT_CARD_PATH = ".well-known/agent.json"


class AgentCardFetcher:
    """Fetches ``/.well-known/agent.json`` from peers and extracts their skills."""

    def __init__(self, http_client: httpx.AsyncClient, token_provider: TokenProvider) -> None:
        self._http = http_client
        self._tokens = token_provider

    async def fetch_card(self, peer: A2APeerConfig) -> AgentCard | None:
        """Return the peer's agent card, or None if it could not be read.

        Raises:
            httpx.HTTPError: On network failure or a non-2xx status
        """
        if not peer.base_url:
            logger.warning(f"A2A peer {peer.name} has an empty URL; skipping")
            return None

        url = f"{peer.base_url}/{AGENT_CARD_PATH}"
        headers = {"Accept": "application/json"}
        token = await self._tokens.resolve(peer.auth, peer.name)
        if token:
            headers["Authorization"] = f"Bearer {token}"

        response = await self._http.get(url, headers=headers)
        response.raise_for_status()

        try:
            payload = response.json()
        except ValueError:
            logger.warning(f"Agent card from {peer.name} is not JSON")
            return None
        if not isinstance(payload, dict):
            logger.warning(f"Agent card from {peer.name} is not an object")
            return None
        return AgentCard.model_validate(payload)

    async def fetch_skills(self, peer: A2APeerConfig) -> list[AgentSkill]:
        """Skills advertised by ``peer``, tagged with the peer name and URL."""
        card = await self.fetch_card(peer)
        if card is None:
            return []

        if not isinstance(card.skills, list):
            logger.warning(f"Agent card from {peer.name} has no skills list")
            return []

        skills: list[AgentSkill] = []
        for raw in card.skills:
            if not isinstance(raw, dict):
                continue
            entry = dict(raw)
            entry.setdefault("sourceA2aPeerName", peer.name)
            entry.setdefault("sourceA2aPeerUrl", peer.url)
            try:
                skills.append(AgentSkill.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Ignoring malformed skill from {peer.name}: {e.error_count()} errors")

        logger.info(f"Fetched {len(skills)} skills from A2A peer {peer.name}")
        return skills


__all__ = ["AGENT_CARD_PATH", "AgentCardFetcher"]
