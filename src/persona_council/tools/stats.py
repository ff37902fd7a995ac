"""Per-tool usage statistics: calls, outcomes, latency, last use."""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any


@dataclass
class ToolStats:
    tool_name: str
    call_count: int = 0
    success_count: int = 0
    error_count: int = 0
    total_execution_time: float = 0.0
    last_used: str | None = None

    @property
    def avg_execution_time(self) -> float:
        return self.total_execution_time / self.call_count if self.call_count else 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "call_count": self.call_count,
            "success_count": self.success_count,
            "error_count": self.error_count,
            "avg_execution_time": round(self.avg_execution_time, 4),
            "last_used": self.last_used,
        }


class ToolStatsManager:
    """
    Usage:
        stats = ToolStatsManager()
        stats.record_call("search_personas", success=True, execution_time=0.012)
        stats.summary()["most_used_tool"]
    """

    def __init__(self):
        self._stats: dict[str, ToolStats] = {}
        self._lock = threading.Lock()

    def record_call(self, tool_name: str, success: bool, execution_time: float) -> None:
        with self._lock:
            entry = self._stats.setdefault(tool_name, ToolStats(tool_name))
            entry.call_count += 1
            if success:
                entry.success_count += 1
            else:
                entry.error_count += 1
            entry.total_execution_time += execution_time
            entry.last_used = datetime.now(timezone.utc).isoformat()

    def get_stats(self, tool_name: str | None = None) -> list[ToolStats]:
        with self._lock:
            if tool_name is not None:
                entry = self._stats.get(tool_name)
                return [entry] if entry else []
            return list(self._stats.values())

    def summary(self) -> dict[str, Any]:
        with self._lock:
            entries = list(self._stats.values())
        total = sum(e.call_count for e in entries)
        success = sum(e.success_count for e in entries)
        most_used = max(entries, key=lambda e: e.call_count, default=None)
        return {
            "total_calls": total,
            "total_success": success,
            "total_errors": total - success,
            "success_rate": success / total if total else 0.0,
            "most_used_tool": most_used.tool_name if most_used else None,
        }

    def reset(self) -> None:
        with self._lock:
            self._stats.clear()
