"""
Liveness endpoint.

  GET /health -- always 200 while the process is alive
"""

import time

from fastapi import APIRouter, Request

from ..models.responses import HealthResponse

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def liveness(request: Request) -> HealthResponse:
    """Liveness probe with a few cheap counters."""
    service = request.app.state.service
    start_time = getattr(request.app.state, "start_time", time.time())
    repo_stats = service.repository.stats()
    return HealthResponse(
        status="healthy",
        uptime_seconds=round(time.time() - start_time, 1),
        personas_cached=repo_stats["cached_personas"],
        active_sessions=len(service.orchestrator.get_active_sessions()),
        tool_calls=service.stats.summary()["total_calls"],
    )
