from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from api.services.chat_service import ChatService
from api.services.model_service import ModelService
from core.constants import Settings, get_settings
from core.conversation import ConversationEngine
from integrations.tool_registry import ToolRegistry


def get_app_settings() -> Settings:
    """Provide application settings via dependency injection.

    This is the recommended way to access settings in route handlers.
    Settings are validated at startup and cached for performance.

    In development with CONFIG_HOT_RELOAD=true, settings are reloaded
    on each request to pick up .env file changes without restart.

    Usage in routes:
        @router.get("/example")
        async def example(settings: AppSettings):
            return {"debug": settings.debug}
    """
    return get_settings()


def get_tool_registry(request: Request) -> ToolRegistry:
    """Get the tool registry from application state."""
    return request.app.state.tool_registry


def get_engine(request: Request) -> ConversationEngine:
    """Get the conversation engine from application state."""
    return request.app.state.engine


def get_chat_service(engine: Annotated[ConversationEngine, Depends(get_engine)]) -> ChatService:
    """Provide a chat service bound to the shared engine."""
    return ChatService(engine)


def get_model_service(request: Request) -> ModelService:
    """Get the model discovery service from application state."""
    return request.app.state.model_service


# Type aliases for cleaner route signatures
Registry = Annotated[ToolRegistry, Depends(get_tool_registry)]
Engine = Annotated[ConversationEngine, Depends(get_engine)]
Chat = Annotated[ChatService, Depends(get_chat_service)]
Models = Annotated[ModelService, Depends(get_model_service)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
