"""
Data models for collaboration sessions.

A session is tagged state plus append-only logs: the status only moves
forward (pending -> running -> completed | failed) and every transition is
recorded. Analyses are appended, never rewritten.
"""

import time
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..personas.models import Persona

DEFAULT_MAX_ROUNDS = 3
DEFAULT_ANALYSIS_TIMEOUT = 30.0
DEFAULT_MIN_PERSONAS = 2
DEFAULT_MAX_PERSONAS = 4


class CollaborationMode(str, Enum):
    PARALLEL = "parallel"
    SEQUENTIAL = "sequential"
    INTELLIGENT = "intelligent"


class SessionStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_ALLOWED_TRANSITIONS = {
    SessionStatus.PENDING: {SessionStatus.RUNNING, SessionStatus.FAILED},
    SessionStatus.RUNNING: {SessionStatus.COMPLETED, SessionStatus.FAILED},
    SessionStatus.COMPLETED: set(),
    SessionStatus.FAILED: set(),
}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass
class CollaborationConfig:
    """Per-session tuning. Unset fields fall back to these defaults."""

    persona_ids: list[str] = field(default_factory=list)
    mode: CollaborationMode = CollaborationMode.INTELLIGENT
    max_rounds: int = DEFAULT_MAX_ROUNDS
    analysis_timeout: float = DEFAULT_ANALYSIS_TIMEOUT  # seconds per persona dispatch
    enable_cross_validation: bool = True
    min_personas: int = DEFAULT_MIN_PERSONAS
    max_personas: int = DEFAULT_MAX_PERSONAS

    def __post_init__(self):
        self.mode = CollaborationMode(self.mode)


# =============================================================================
# RESULT MODELS
# =============================================================================


@dataclass
class PersonaAnalysis:
    """One persona's output for one round. Failures carry ``error``."""

    persona_id: str
    persona_name: str
    query: str
    analysis: str
    confidence: float
    execution_time: float
    round: int = 1
    timestamp: str = field(default_factory=_now_iso)
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None


@dataclass
class CrossValidationResult:
    common_points: list[str] = field(default_factory=list)
    disagreements: list[str] = field(default_factory=list)
    confidence_score: float = 0.5
    recommendations: list[str] = field(default_factory=list)


@dataclass
class SynthesisResult:
    summary: str = ""
    key_insights: list[str] = field(default_factory=list)
    risks: list[str] = field(default_factory=list)
    opportunities: list[str] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class ActionStep:
    id: str
    description: str
    priority: int
    estimated_time: str
    dependencies: list[str] = field(default_factory=list)


@dataclass
class ActionPlan:
    steps: list[ActionStep] = field(default_factory=list)
    timeline: str = ""
    priority: str = "medium"  # high | medium | low
    resources: list[str] = field(default_factory=list)


@dataclass
class CollaborationResult:
    """Outcome of a completed session. ``analyses`` is a snapshot of the session log."""

    session_id: str
    query: str
    selected_personas: tuple[str, ...]
    mode: str
    analyses: tuple[PersonaAnalysis, ...]
    execution_time: float
    cross_validation: CrossValidationResult | None = None
    synthesis: SynthesisResult | None = None
    action_plan: ActionPlan | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "query": self.query,
            "selected_personas": list(self.selected_personas),
            "mode": self.mode,
            "analyses": [asdict(a) for a in self.analyses],
            "cross_validation": asdict(self.cross_validation) if self.cross_validation else None,
            "synthesis": asdict(self.synthesis) if self.synthesis else None,
            "action_plan": asdict(self.action_plan) if self.action_plan else None,
            "execution_time": self.execution_time,
        }


# =============================================================================
# SESSION
# =============================================================================


class InvalidTransitionError(RuntimeError):
    """A session status was asked to move backwards or out of a terminal state."""


@dataclass
class SessionInfo:
    id: str
    query: str
    status: str
    selected_personas: list[str]
    start_time: str
    duration: float | None


@dataclass
class CollaborationSession:
    """Mutable only by the orchestrator task that drives it."""

    query: str
    config: CollaborationConfig
    id: str = field(default_factory=lambda: f"session_{uuid.uuid4().hex[:12]}")
    status: SessionStatus = SessionStatus.PENDING
    status_history: list[SessionStatus] = field(
        default_factory=lambda: [SessionStatus.PENDING]
    )
    selected_personas: list[Persona] = field(default_factory=list)
    analyses: list[PersonaAnalysis] = field(default_factory=list)
    result: CollaborationResult | None = None
    error: str | None = None
    started_at: float = field(default_factory=time.monotonic)
    start_time: str = field(default_factory=_now_iso)
    finished_at: float | None = None

    def transition(self, status: SessionStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Session {self.id} cannot move from {self.status.value} to {status.value}"
            )
        self.status = status
        self.status_history.append(status)
        if status in (SessionStatus.COMPLETED, SessionStatus.FAILED):
            self.finished_at = time.monotonic()

    def record(self, analysis: PersonaAnalysis) -> None:
        self.analyses.append(analysis)

    @property
    def is_terminal(self) -> bool:
        return self.status in (SessionStatus.COMPLETED, SessionStatus.FAILED)

    @property
    def elapsed(self) -> float:
        end = self.finished_at if self.finished_at is not None else time.monotonic()
        return end - self.started_at

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            query=self.query,
            status=self.status.value,
            selected_personas=[p.name for p in self.selected_personas],
            start_time=self.start_time,
            duration=round(self.elapsed, 3) if self.is_terminal else None,
        )
