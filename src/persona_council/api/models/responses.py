"""Pydantic response models -- what the gateway returns besides ToolResponse."""

from pydantic import BaseModel, Field


class HealthResponse(BaseModel):
    status: str = "healthy"
    uptime_seconds: float = 0.0
    personas_cached: int = 0
    active_sessions: int = 0
    tool_calls: int = 0


class ToolListResponse(BaseModel):
    tools: list[str] = Field(default_factory=list)
