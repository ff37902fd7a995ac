"""Tool surface: argument schemas, dispatch service and usage statistics."""

from .schemas import ErrorInfo, ToolResponse, parse_args, sanitize_args
from .service import PersonaToolService, format_collaboration_report
from .stats import ToolStats, ToolStatsManager

__all__ = [
    "ErrorInfo",
    "PersonaToolService",
    "ToolResponse",
    "ToolStats",
    "ToolStatsManager",
    "format_collaboration_report",
    "parse_args",
    "sanitize_args",
]
