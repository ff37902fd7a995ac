"""
Collaboration endpoints.

  POST /api/v1/collaborations  -- Run a session and return its result
  GET  /api/v1/sessions        -- Active sessions plus recent history
  POST /api/v1/sessions/{session_id}/cancel -- Abort a running session

Sessions run inside the request; there is no polling API. Cancelling a
session makes its own request fail with 409.
"""

import logging

from fastapi import APIRouter, Request

from ...tools.schemas import ToolResponse
from ..models.requests import CollaborationRequest
from .tools import unwrap

logger = logging.getLogger(__name__)
router = APIRouter()


@router.post("/collaborations", response_model=ToolResponse)
async def start_collaboration(body: CollaborationRequest, request: Request) -> ToolResponse:
    service = request.app.state.service
    response = unwrap(
        await service.start_collaboration(body.query, persona_ids=body.persona_ids, mode=body.mode)
    )
    logger.info(f"[CollaborationsAPI] Completed {response.data['session_id']}")
    return response


@router.get("/sessions", response_model=ToolResponse)
async def list_sessions(request: Request) -> ToolResponse:
    return unwrap(await request.app.state.service.list_sessions())


@router.post("/sessions/{session_id}/cancel", response_model=ToolResponse)
async def cancel_session(session_id: str, request: Request) -> ToolResponse:
    return unwrap(await request.app.state.service.cancel_session(session_id))
