"""Pydantic models for API request/response contracts."""
from .requests import CollaborationRequest
from .responses import HealthResponse, ToolListResponse
