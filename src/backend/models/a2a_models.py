"""Pydantic models for agent-to-agent (A2A) agent cards."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AgentSkill(BaseModel):
    """A skill advertised by a peer agent, tagged with the peer it came from."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: str | None = None
    name: str | None = None
    description: str | None = None
    tags: list[str] = Field(default_factory=list)
    source_peer_name: str | None = Field(default=None, alias="sourceA2aPeerName")
    source_peer_url: str | None = Field(default=None, alias="sourceA2aPeerUrl")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AgentCard(BaseModel):
    """The subset of ``/.well-known/agent.json`` the broker reads."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    description: str | None = None
    url: str | None = None
    version: str | None = None
    skills: Any | None = None
