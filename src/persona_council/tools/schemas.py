"""
Tool argument schemas and payload sanitization.

Arguments arrive as loose JSON. ``sanitize_args`` bounds them first (trimmed
strings capped at 5000 chars, lists capped at 20 items, recursively), then
each tool validates its own schema here. Schema failures surface as
ValidationError, so callers see one error type for every bad argument.
"""

from typing import Any, Literal

import pydantic
from pydantic import BaseModel, ConfigDict, Field

from ..collaboration.models import CollaborationMode
from ..errors import ValidationError

MAX_STRING_LENGTH = 5000
MAX_LIST_ITEMS = 20
MAX_DEPTH = 10

QUERY_MIN_LENGTH = 5
QUERY_MAX_LENGTH = 2000
MAX_PERSONA_IDS = 10


def sanitize_args(value: Any, depth: int = 0) -> Any:
    """Trim and cap strings, cap lists, recurse into dicts and lists."""
    if depth > MAX_DEPTH:
        return None
    if isinstance(value, str):
        return value.strip()[:MAX_STRING_LENGTH]
    if isinstance(value, (list, tuple)):
        return [sanitize_args(item, depth + 1) for item in list(value)[:MAX_LIST_ITEMS]]
    if isinstance(value, dict):
        return {str(k): sanitize_args(v, depth + 1) for k, v in value.items()}
    return value


class _Args(BaseModel):
    model_config = ConfigDict(extra="ignore")


class SummonPersonaArgs(_Args):
    name: str = Field(..., min_length=1, max_length=50, description="Persona id or name")


class ListPersonasArgs(_Args):
    category: str | None = Field(None, max_length=50)
    source: Literal["local", "remote", "default"] | None = None


class SearchPersonasArgs(_Args):
    query: str = Field(..., min_length=QUERY_MIN_LENGTH, max_length=QUERY_MAX_LENGTH)


class ConfigIdArgs(_Args):
    config_id: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-zA-Z0-9_-]+$")


class StartCollaborationArgs(_Args):
    query: str = Field(..., min_length=QUERY_MIN_LENGTH, max_length=QUERY_MAX_LENGTH)
    persona_ids: list[str] = Field(default_factory=list, max_length=MAX_PERSONA_IDS)
    mode: CollaborationMode | None = None


class SessionIdArgs(_Args):
    session_id: str = Field(..., min_length=1, max_length=100)


class ToolStatsArgs(_Args):
    tool_name: str | None = Field(None, max_length=50)


class NoArgs(_Args):
    pass


def parse_args(schema: type[BaseModel], arguments: dict[str, Any]) -> BaseModel:
    """Validate ``arguments`` against ``schema``, raising ValidationError."""
    try:
        return schema.model_validate(arguments)
    except pydantic.ValidationError as e:
        problems = [
            f"{'.'.join(str(p) for p in err['loc']) or 'arguments'}: {err['msg']}"
            for err in e.errors()
        ]
        raise ValidationError(
            "Invalid arguments: " + "; ".join(problems),
            hints=["Check the argument names, types and length limits"],
        ) from e


# =============================================================================
# RESPONSES
# =============================================================================


class ErrorInfo(BaseModel):
    kind: str
    message: str
    hints: list[str] = Field(default_factory=list)
    details: dict[str, Any] = Field(default_factory=dict)


class ToolResponse(BaseModel):
    """Uniform result of every tool call."""

    ok: bool
    tool: str
    text: str
    data: Any = None
    error: ErrorInfo | None = None
