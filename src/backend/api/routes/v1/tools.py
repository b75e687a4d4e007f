"""
Tool discovery endpoints (v1).

Exposes the tool registry snapshot, A2A skills, and on-demand refresh.
"""

from __future__ import annotations

from fastapi import APIRouter

from api.dependencies import Registry
from core.tool_format import to_openai_tool
from models.schemas.tools import (
    RawToolListResponse,
    RegistryStatusResponse,
    SkillListResponse,
    ToolListResponse,
)

router = APIRouter()


@router.get(
    "/tools",
    response_model=ToolListResponse,
    summary="List tools",
    description="Discovered tools in OpenAI function-calling format, with their source backend.",
)
async def list_tools(registry: Registry) -> ToolListResponse:
    tools = []
    for tool in registry.list_tools():
        definition = to_openai_tool(tool)
        definition["source"] = {
            "server_name": tool.source_server_name,
            "server_url": tool.source_server_url,
        }
        tools.append(definition)
    return ToolListResponse(tools=tools, count=len(tools))


@router.get(
    "/tools/raw",
    response_model=RawToolListResponse,
    summary="List raw tools",
    description="Tools exactly as the backends described them.",
)
async def list_raw_tools(registry: Registry) -> RawToolListResponse:
    tools = [tool.to_wire() for tool in registry.list_tools()]
    return RawToolListResponse(tools=tools, count=len(tools))


@router.get(
    "/tools/skills",
    response_model=SkillListResponse,
    summary="List agent skills",
    description="Skills advertised by configured A2A peers.",
)
async def list_skills(registry: Registry) -> SkillListResponse:
    skills = [skill.to_wire() for skill in registry.list_skills()]
    return SkillListResponse(skills=skills, count=len(skills))


@router.post(
    "/tools/refresh",
    response_model=RegistryStatusResponse,
    summary="Refresh tools",
    description="Re-discover tools and skills from every configured backend.",
)
async def refresh_tools(registry: Registry) -> RegistryStatusResponse:
    await registry.refresh()
    return RegistryStatusResponse(**registry.get_stats())


@router.get(
    "/tools/status",
    response_model=RegistryStatusResponse,
    summary="Registry status",
)
async def registry_status(registry: Registry) -> RegistryStatusResponse:
    return RegistryStatusResponse(**registry.get_stats())
