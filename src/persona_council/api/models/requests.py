"""
Pydantic request models -- the HTTP contract for callers of the gateway.

Length limits are enforced again by the tool schemas; these models only
shape the JSON body.
"""

from pydantic import BaseModel, Field


class CollaborationRequest(BaseModel):
    """Start a collaboration session and wait for its result."""

    query: str = Field(..., description="The question the personas should analyze")
    persona_ids: list[str] = Field(
        default_factory=list, description="Specific personas to include (empty = auto-select)"
    )
    mode: str | None = Field(None, description="parallel | sequential | intelligent")
