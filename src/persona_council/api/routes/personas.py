"""
Persona endpoints.

  GET /api/v1/personas         -- List personas (optional ?category= & ?source=)
  GET /api/v1/personas/{name}  -- Summon one persona by id or exact name
"""

from fastapi import APIRouter, Request

from ...tools.schemas import ToolResponse
from .tools import unwrap

router = APIRouter()


@router.get("/personas", response_model=ToolResponse)
async def list_personas(
    request: Request,
    category: str | None = None,
    source: str | None = None,
) -> ToolResponse:
    service = request.app.state.service
    return unwrap(await service.list_personas(category=category, source=source))


@router.get("/personas/{name}", response_model=ToolResponse)
async def summon_persona(name: str, request: Request) -> ToolResponse:
    service = request.app.state.service
    return unwrap(await service.summon_persona(name))
