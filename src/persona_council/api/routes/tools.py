"""
Generic tool endpoints.

  GET  /api/v1/tools              -- List tool names
  POST /api/v1/tools/{tool_name}  -- Invoke a tool with JSON arguments

Failed calls become HTTP errors whose detail is the structured ErrorInfo.
"""

import logging
from typing import Any

from fastapi import APIRouter, Body, HTTPException, Request

from ...tools.schemas import ToolResponse
from ..models.responses import ToolListResponse

logger = logging.getLogger(__name__)
router = APIRouter()

STATUS_BY_KIND = {
    "validation": 400,
    "config_validation": 400,
    "auth": 401,
    "not_found": 404,
    "sync_in_progress": 409,
    "cancelled": 409,
    "network": 502,
}


def unwrap(response: ToolResponse) -> ToolResponse:
    """Return a successful response; raise HTTPException for a failed one."""
    if response.ok:
        return response
    status_code = STATUS_BY_KIND.get(response.error.kind, 500)
    raise HTTPException(status_code=status_code, detail=response.error.model_dump())


@router.get("/tools", response_model=ToolListResponse)
async def list_tools(request: Request) -> ToolListResponse:
    return ToolListResponse(tools=request.app.state.service.tool_names)


@router.post("/tools/{tool_name}", response_model=ToolResponse)
async def call_tool(
    tool_name: str,
    request: Request,
    arguments: dict[str, Any] | None = Body(default=None),
) -> ToolResponse:
    """Run one tool; the JSON body is its arguments. Unknown tool names are 404."""
    service = request.app.state.service
    return unwrap(await service.call(tool_name, arguments or {}))
