"""
Constants and configuration for Research Broker.
Centralizes all magic numbers and configuration values.
Includes Pydantic validation for environment variables.
"""

from __future__ import annotations

import os
import threading

from pathlib import Path
from typing import Literal

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import (
    DotEnvSettingsSource,
    PydanticBaseSettingsSource,
)

from models.config_models import A2APeerConfig, LLMCapabilities, MCPServerConfig

# ============================================================================
# Project Paths
# ============================================================================

#: Project root directory (parent of src/)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

#: Directory for rotating JSON log files
LOG_DIR = PROJECT_ROOT / "logs"

# ============================================================================
# Logging Configuration
# ============================================================================

#: Maximum size of a single log file before rotation (10MB).
LOG_MAX_SIZE = 10 * 1024 * 1024

#: Number of broker log backups to retain during rotation.
LOG_BACKUP_COUNT_BROKER = 5

#: Number of error log backups to retain during rotation.
LOG_BACKUP_COUNT_ERRORS = 3

#: Maximum characters to show in log previews for user input/response.
LOG_PREVIEW_LENGTH = 50

#: Length of the per-process component id attached to log records.
COMPONENT_ID_LENGTH = 8

# ============================================================================
# Conversation Engine Limits
# ============================================================================

#: Hard ceiling on tool-result messages produced within one turn.
#: Once reached the turn completes, even if the model keeps asking for tools.
MAX_TOOL_RESULT_MESSAGES = 5

#: Tool output longer than this is cut before being sent back to the model.
TOOL_CONTENT_MAX_CHARS = 5000

#: Marker appended to truncated tool output.
TOOL_CONTENT_TRUNCATED_MARKER = "[content truncated]"

#: Characters of tool output shown in the inline status annotation.
TOOL_RESULT_PREVIEW_CHARS = 100

#: Characters of raw arguments shown when an incomplete tool call is dropped.
DROPPED_ARGUMENTS_PREVIEW_CHARS = 50

#: Seconds between progress checks on a running tool call.
TOOL_POLL_INTERVAL_SECONDS = 5.0

#: Seconds after which a running tool call is no longer awaited.
TOOL_EXECUTION_TIMEOUT_SECONDS = 300.0

#: Hint appended to every tool error reported back to the model.
TOOL_ERROR_HINT = (
    "Check that the tool name is correct and that the arguments are valid JSON "
    "matching the tool's parameter schema."
)

# ============================================================================
# Inline Status Annotations (forwarded in the client stream)
# ============================================================================

#: Emitted when the model finishes a stream with tool calls.
TOOL_CALLS_REQUESTED_NOTICE = "\n[Tool calls requested by LLM. Executing tools...]\n"

#: Emitted after each tool call, formatted with name and result preview.
TOOL_EXECUTED_NOTICE = "\n[Tool {name} executed. Result (preview): {preview}]\n"

#: Emitted on every poll while a tool call is still running.
TOOL_PROGRESS_NOTICE = "\n[Tool execution continues: {name} still running after {elapsed}s]\n"

#: Emitted when the per-turn tool-result ceiling stops the loop.
TOOL_LIMIT_NOTICE = (
    "\n[Tool execution limit reached: {count} tool results in this turn. "
    "No further tool calls will be executed.]\n"
)

# ============================================================================
# MCP Protocol Configuration
# ============================================================================

#: JSON-RPC protocol version string
JSONRPC_VERSION = "2.0"

#: Client name announced in the initialize request
MCP_CLIENT_NAME = "ResearchBrokerBackend"

#: Relative path of the JSON-RPC endpoint on every tool backend
MCP_ENDPOINT_PATH = "mcp"

#: Relative path of the REST tool listing used by sessionless backends
MCP_REST_TOOLS_PATH = "mcp/tools"

#: Primary session header, sent on every session-bound request
MCP_SESSION_HEADER = "Mcp-Session-Id"

#: Extra header spellings some backends expect on the initialized notification
MCP_ALTERNATE_SESSION_HEADERS = ("X-Mcp-Session-Id", "Session-Id")

#: Sentinel adopted when a backend accepts calls without any session header
NO_SESSION_REQUIRED = "no_session_required"

#: Prefix for locally generated session ids used when initialize yields none
FAILSAFE_SESSION_PREFIX = "client-failsafe-"

#: Keys tried, in order, on the initialize ``result`` object
SESSION_RESULT_KEYS = ("sessionId", "session_id", "id")

#: Keys tried, in order, on ``result.serverInfo``
SESSION_SERVER_INFO_KEYS = ("sessionId", "session_id", "id", "sessionUUID", "uuid")

#: Text of the synthesized result returned for HTTP 304 tool responses
CACHED_TOOL_RESULT_TEXT = "Tool executed successfully (cached result - no changes detected)"

#: Default timeout (seconds) for a single JSON-RPC request to a tool backend
MCP_REQUEST_TIMEOUT = 360.0

#: Timeout (seconds) for establishing a connection to a tool backend
MCP_CONNECT_TIMEOUT = 30.0

# ============================================================================
# Auth Token Configuration
# ============================================================================

#: Seconds subtracted from the reported token lifetime
TOKEN_EXPIRY_MARGIN_SECONDS = 30

#: Lifetime assumed when the token endpoint omits ``expires_in``
DEFAULT_TOKEN_LIFETIME_SECONDS = 300

#: OAuth2 grant type used when none is configured
DEFAULT_GRANT_TYPE = "client_credentials"

# ============================================================================
# LLM / Model Discovery
# ============================================================================

#: Path of the streaming chat completions endpoint
LLM_CHAT_COMPLETIONS_PATH = "chat/completions"

#: Path of the model listing endpoint
LLM_MODELS_PATH = "models"

#: Token limit assumed for models without a configured capability record
FALLBACK_TOKEN_LIMIT = 4096

# ============================================================================
# Content Filtering
# ============================================================================

#: Maximum characters kept by the content filter
MAX_FILTERED_CONTENT_LENGTH = 30000

# ============================================================================
# Environment Configuration with Pydantic Validation
# ============================================================================

#: Valid environment names for configuration loading
Environment = Literal["development", "production", "test"]

#: Backend source directory for .env file resolution
_BACKEND_DIR = Path(__file__).parent.parent


def _get_env_files() -> list[Path]:
    """Determine which .env files to load based on APP_ENV.

    Load order (later files override earlier - pydantic-settings last-wins):
    1. .env (base defaults) - lowest priority
    2. .env.{environment} (environment-specific overrides)
    3. .env.local (local developer overrides, gitignored) - highest priority

    Returns:
        List of Path objects for env files that exist.
    """
    env_name = os.getenv("APP_ENV", "development").lower()
    if env_name not in ("development", "production", "test"):
        env_name = "development"

    candidates = [
        _BACKEND_DIR / ".env",
        _BACKEND_DIR / f".env.{env_name}",
        _BACKEND_DIR / ".env.local",
    ]
    return [p for p in candidates if p.exists()]


def _reload_dotenv_into_environ() -> None:
    """Reload our dotenv files into os.environ so environment-specific values win.

    Must be called BEFORE Settings() instantiation.
    """
    from dotenv import load_dotenv

    for env_file in _get_env_files():
        load_dotenv(env_file, override=True)


class Settings(BaseSettings):
    """Environment settings with validation and environment-specific file support.

    Configuration priority (highest to lowest):
    1. Values passed to Settings() constructor
    2. Environment variables
    3. .env.local > .env.{APP_ENV} > .env (dotenv files, last wins)

    List-valued settings (MCP_SERVERS, A2A_PEERS, LLM_CONFIGURATIONS) are
    given as JSON arrays, e.g.::

        MCP_SERVERS='[{"name": "webcrawl-mcp", "url": "http://localhost:5001",
                       "protocol_variant": "webcrawl"}]'
    """

    # Environment identification
    app_env: Environment = Field(default="development", description="Application environment")

    # Debug and logging
    debug: bool = Field(default=False, description="Enable debug logging")
    http_request_logging: bool = Field(default=False, description="Enable HTTP request/response logging")
    enable_content_logging: bool = Field(
        default=False,
        description="Include (redacted) message content in conversation logs",
    )

    # OpenAI-compatible LLM endpoint
    llm_base_url: str = Field(default="https://api.openai.com/v1", description="Base URL of the LLM API")
    llm_api_key: str | None = Field(default=None, description="Bearer key for the LLM API")
    llm_default_model: str = Field(default="gpt-4o-mini", description="Model used when a request names none")
    llm_connect_timeout: float = Field(default=30.0, description="Connect timeout for LLM requests (seconds)")
    http_read_timeout: float = Field(default=600.0, description="HTTP read timeout for streaming (seconds)")

    # Integrations
    mcp_servers: list[MCPServerConfig] = Field(default_factory=list, description="Tool backends to discover")
    a2a_peers: list[A2APeerConfig] = Field(default_factory=list, description="Agent peers to discover")
    llm_configurations: list[LLMCapabilities] = Field(
        default_factory=list,
        description="Known model capability records (vision, pdf, tools, token limits)",
    )
    mcp_request_timeout: float = Field(
        default=MCP_REQUEST_TIMEOUT,
        description="Timeout for a single JSON-RPC request to a tool backend (seconds)",
    )
    tool_refresh_interval: float = Field(
        default=0.0,
        description="Seconds between background tool refreshes (0 disables periodic refresh)",
    )

    # Conversation engine limits
    tool_poll_interval: float = Field(default=TOOL_POLL_INTERVAL_SECONDS, description="Tool progress poll interval")
    tool_execution_timeout: float = Field(
        default=TOOL_EXECUTION_TIMEOUT_SECONDS,
        description="Seconds a single tool call is awaited before giving up",
    )
    max_tool_result_messages: int = Field(
        default=MAX_TOOL_RESULT_MESSAGES,
        description="Tool-result messages allowed per turn",
    )
    tool_content_max_chars: int = Field(
        default=TOOL_CONTENT_MAX_CHARS,
        description="Tool output longer than this is truncated",
    )

    # API server
    api_port: int = Field(default=8000, description="FastAPI port")
    api_host: str = Field(default="0.0.0.0", description="FastAPI host")
    app_version: str = Field(default="1.0.0", description="Application version")

    # CORS
    cors_allow_origins: str = Field(default="*", description="Comma-separated allowed origins")
    cors_allow_credentials: bool = Field(default=False, description="Allow credentialed CORS requests")

    # Hot-reload support (development only)
    config_hot_reload: bool = Field(
        default=False,
        description="Enable configuration hot-reloading (development only, has performance cost)",
    )

    model_config = SettingsConfigDict(
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings source priority for environment-specific config.

        Priority (highest to lowest):
        1. init_settings - Values passed to Settings() constructor
        2. env_settings - Environment variables
        3. dotenv files - .env.local > .env.{APP_ENV} > .env (last-wins in list)
        """
        dotenv_source = DotEnvSettingsSource(
            settings_cls,
            env_file=_get_env_files(),
            env_file_encoding="utf-8",
        )
        return (init_settings, env_settings, dotenv_source)

    @field_validator("app_env", mode="before")
    @classmethod
    def validate_app_env(cls, v: str | None) -> str:
        """Validate and normalize APP_ENV value."""
        if v is None:
            return "development"
        normalized = str(v).lower()
        if normalized not in ("development", "production", "test"):
            raise ValueError(f"app_env must be 'development', 'production', or 'test', got '{v}'")
        return normalized

    @field_validator("llm_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Store the base URL without a trailing slash."""
        return v.strip().rstrip("/")

    @field_validator("max_tool_result_messages", "tool_content_max_chars")
    @classmethod
    def validate_positive_limit(cls, v: int) -> int:
        """Engine limits must be positive."""
        if v < 1:
            raise ValueError("limit must be at least 1")
        return v

    @field_validator("tool_poll_interval", "tool_execution_timeout")
    @classmethod
    def validate_positive_duration(cls, v: float) -> float:
        """Poll interval and tool timeout must be positive."""
        if v <= 0:
            raise ValueError("duration must be greater than 0")
        return v

    @model_validator(mode="after")
    def validate_production_settings(self) -> Settings:
        """Validate settings that are mandatory outside local development."""
        if self.app_env == "production" and not self.llm_api_key:
            raise ValueError(
                "Configuration Error: llm_api_key is required in production.\n"
                "Set LLM_API_KEY in your .env.production file or environment."
            )
        if self.tool_poll_interval > self.tool_execution_timeout:
            raise ValueError("tool_poll_interval must not exceed tool_execution_timeout")
        return self

    @property
    def cors_origins_list(self) -> list[str]:
        """Allowed CORS origins as a list."""
        return [origin.strip() for origin in self.cors_allow_origins.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.app_env == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.app_env == "production"


# ============================================================================
# Settings Management (Thread-safe with Hot-Reload Support)
# ============================================================================


class _SettingsManager:
    """Thread-safe settings manager with optional hot-reload support."""

    __slots__ = ("_instance", "_lock")

    def __init__(self) -> None:
        self._instance: Settings | None = None
        self._lock = threading.Lock()

    def get(self) -> Settings:
        """Get the cached settings instance, reloading when hot-reload is on."""
        if self._instance is not None and not self._instance.config_hot_reload:
            return self._instance

        with self._lock:
            if self._instance is not None and not self._instance.config_hot_reload:
                return self._instance

            _reload_dotenv_into_environ()
            self._instance = Settings()
            return self._instance

    def reload(self) -> Settings:
        """Force reload settings from environment files."""
        with self._lock:
            _reload_dotenv_into_environ()
            self._instance = Settings()
            return self._instance

    def clear(self) -> None:
        """Clear cached settings instance."""
        with self._lock:
            self._instance = None


_settings_manager = _SettingsManager()


def get_settings() -> Settings:
    """Get settings instance with optional hot-reload support.

    This is the primary entry point for accessing application settings.

    Returns:
        Validated Settings instance.

    Raises:
        ValueError: If required configuration is missing or invalid.
    """
    return _settings_manager.get()


def reload_settings() -> Settings:
    """Force reload settings from environment files."""
    return _settings_manager.reload()


def clear_settings_cache() -> None:
    """Clear cached settings instance.

    Primarily useful for testing to ensure fresh settings on each test.
    """
    _settings_manager.clear()
