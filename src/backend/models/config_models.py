"""
Pydantic models for integration configuration.

These are parsed from settings (JSON arrays in the environment) and describe
tool backends, agent peers, their authentication, and known model capabilities.
"""

from __future__ import annotations

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator


def sanitize_url(url: str | None) -> str:
    """Drop any fragment (``#...``) and surrounding whitespace from a configured URL."""
    if not url:
        return ""
    return url.split("#", 1)[0].strip()


class AuthType(str, Enum):
    """Supported authentication schemes for outbound integration calls."""

    NONE = "none"
    BEARER = "bearer"
    CLIENT_CREDENTIALS = "client_credentials"


class AuthConfig(BaseModel):
    """Authentication settings for one tool backend or agent peer."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    type: str = AuthType.NONE.value
    token: str | None = None
    auth_server_url: str | None = Field(default=None, alias="authServerUrl")
    realm: str | None = None
    client_id: str | None = Field(default=None, alias="clientId")
    client_secret: str | None = Field(default=None, alias="clientSecret")
    grant_type: str | None = Field(default=None, alias="grantType")

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, v: str | None) -> str:
        """Lower-case the type and accept the legacy ``keycloak_client_credentials`` name."""
        if not v:
            return AuthType.NONE.value
        normalized = str(v).strip().lower().replace("-", "_")
        if normalized == "keycloak_client_credentials":
            return AuthType.CLIENT_CREDENTIALS.value
        return normalized


#: Protocol quirks a tool backend may need. ``webcrawl`` backends expect the
#: initialized notification, several session header spellings, and expose a
#: REST tool listing at ``/mcp/tools``.
ProtocolVariant = Literal["standard", "webcrawl"]


class MCPServerConfig(BaseModel):
    """MCP tool backend configuration."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    name: str
    url: str
    auth: AuthConfig = Field(default_factory=AuthConfig)
    protocol_variant: ProtocolVariant = Field(default="standard", alias="protocolVariant")

    @property
    def base_url(self) -> str:
        """Sanitized base URL without a trailing slash."""
        return sanitize_url(self.url).rstrip("/")


class A2APeerConfig(BaseModel):
    """Agent-to-agent peer whose agent card lists additional skills."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    name: str
    url: str
    auth: AuthConfig = Field(default_factory=AuthConfig)

    @property
    def base_url(self) -> str:
        """Sanitized base URL without a trailing slash."""
        return sanitize_url(self.url).rstrip("/")


class LLMCapabilities(BaseModel):
    """Capability record for one model id."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, frozen=True)

    id: str
    name: str | None = None
    description: str | None = None
    notes: str | None = None
    supports_text: bool = Field(default=True, alias="supportsText")
    supports_image: bool = Field(default=False, alias="supportsImage")
    supports_pdf: bool = Field(default=False, alias="supportsPdf")
    supports_json: bool = Field(default=True, alias="supportsJson")
    supports_tools: bool = Field(default=True, alias="supportsTools")
    max_tokens: int | None = Field(default=None, alias="maxTokens")
