"""
CollaborationOrchestrator -- runs a team of personas against one query.

Session lifecycle: pending -> running -> completed | failed. Whatever happens,
the session leaves the active map and enters the bounded history.

Strategies:
  PARALLEL     -- every persona analyzes the query at once
  SEQUENTIAL   -- one at a time, each seeing the transcript so far
  INTELLIGENT  -- picks one of:
      hybrid   : complex query + complementary roster. Parallel round, then a
                 parallel round-table round seeded with the first round.
      dialogue : roster has both critical and creative voices. max_rounds
                 rounds, each persona in turn responding to the dialogue.
      parallel : otherwise

Every strategy ends the same way: cross-validation, synthesis, action plan.

Usage:
    orchestrator = CollaborationOrchestrator(repository, provider=TemplateAnalysisProvider())
    result = await orchestrator.start_collaboration(
        "Evaluate risk of launching this product now",
        CollaborationConfig(mode=CollaborationMode.PARALLEL),
    )
    result.synthesis.summary
"""

import asyncio
import dataclasses
import logging
import time
from collections import deque
from typing import Any

from ..errors import CollaborationCancelledError, NotFoundError
from ..personas.models import Persona
from ..personas.repository import PersonaRepository
from ..providers.base import AnalysisProvider, build_persona_prompt
from ..providers.template import TemplateAnalysisProvider
from .classifier import ArchetypeClassifier, QueryAnalyzer
from .cross_validation import CrossValidator
from .models import (
    ActionPlan,
    CollaborationConfig,
    CollaborationMode,
    CollaborationResult,
    CollaborationSession,
    CrossValidationResult,
    PersonaAnalysis,
    SessionInfo,
    SessionStatus,
    SynthesisResult,
)
from .selector import PersonaSelector

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_SIZE = 100
HYBRID_COMPLEXITY_THRESHOLD = 0.7

MODE_PARALLEL = "parallel"
MODE_SEQUENTIAL = "sequential"
MODE_HYBRID = "intelligent-hybrid"
MODE_DIALOGUE = "intelligent-dialogue"
MODE_INTELLIGENT_PARALLEL = "intelligent-parallel"


# =============================================================================
# CONFIDENCE
# =============================================================================


def analysis_confidence(text: str) -> float:
    """0.5 base; length and risk / recommendation / evidence markers add to it."""
    lower = text.lower()
    score = 0.5
    if len(text) > 100:
        score += 0.2
    if "recommend" in lower:
        score += 0.1
    if "risk" in lower:
        score += 0.1
    if "data" in lower or "evidence" in lower:
        score += 0.1
    return min(score, 1.0)


def _transcript(analyses: list[PersonaAnalysis]) -> str:
    return "\n\n".join(
        f"[{a.persona_name}'s analysis]: {a.analysis}" for a in analyses if not a.failed
    )


# =============================================================================
# ORCHESTRATOR
# =============================================================================


class CollaborationOrchestrator:
    """Owns the active-session map and the bounded session history."""

    def __init__(
        self,
        repository: PersonaRepository,
        provider: AnalysisProvider | None = None,
        selector: PersonaSelector | None = None,
        validator: CrossValidator | None = None,
        defaults: CollaborationConfig | None = None,
        history_size: int = DEFAULT_HISTORY_SIZE,
    ):
        self._repository = repository
        self._provider = provider or TemplateAnalysisProvider()
        self._classifier = ArchetypeClassifier()
        self._analyzer = QueryAnalyzer()
        self._selector = selector or PersonaSelector(self._analyzer, self._classifier)
        self._validator = validator or CrossValidator(self._classifier)
        self._defaults = defaults or CollaborationConfig()
        self._active: dict[str, CollaborationSession] = {}
        self._tasks: dict[str, asyncio.Task] = {}
        self._cancel_requested: set[str] = set()
        self._history: deque[CollaborationSession] = deque(maxlen=history_size)

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    async def start_collaboration(
        self,
        query: str,
        config: CollaborationConfig | dict[str, Any] | None = None,
    ) -> CollaborationResult:
        """
        Run a full session.

        Raises:
            NotFoundError: explicit persona ids matched nothing.
            CollaborationCancelledError: cancel() was called for this session.
        """
        session = CollaborationSession(query=query, config=self._merge_config(config))
        self._active[session.id] = session
        logger.info(
            f"[Orchestrator] Session {session.id} started "
            f"(mode={session.config.mode.value})"
        )

        task = asyncio.ensure_future(self._run(session))
        self._tasks[session.id] = task
        try:
            return await task
        except asyncio.CancelledError:
            self._fail(session, "cancelled")
            if session.id in self._cancel_requested:
                raise CollaborationCancelledError(session.id) from None
            raise
        except Exception as e:
            self._fail(session, str(e))
            raise
        finally:
            self._archive(session)

    def cancel(self, session_id: str) -> bool:
        """Abort a running session. Returns False when it is not active."""
        task = self._tasks.get(session_id)
        if task is None or task.done():
            return False
        self._cancel_requested.add(session_id)
        task.cancel()
        logger.info(f"[Orchestrator] Cancellation requested for {session_id}")
        return True

    async def select_personas(
        self, query: str, config: CollaborationConfig | None = None
    ) -> list[Persona]:
        """Explicit ids win; otherwise score and compose a team."""
        config = config or self._defaults
        available = await self._repository.get_all()

        if config.persona_ids:
            wanted = set(config.persona_ids)
            chosen = [p for p in available if p.id in wanted]
            if not chosen:
                raise NotFoundError(
                    f"None of the requested personas exist: {', '.join(config.persona_ids)}",
                    hints=["Use list_personas to see available persona ids"],
                )
            missing = wanted - {p.id for p in chosen}
            if missing:
                logger.warning(f"[Orchestrator] Ignoring unknown persona ids: {sorted(missing)}")
            return chosen

        selection = self._selector.select(
            query, available, config.min_personas, config.max_personas
        )
        if not selection.personas:
            raise NotFoundError("No personas are available")
        return selection.personas

    def get_active_sessions(self) -> list[SessionInfo]:
        return [s.info() for s in self._active.values()]

    def get_session_history(self, limit: int | None = None) -> list[SessionInfo]:
        """Most recent first."""
        sessions = list(self._history)
        if limit is not None:
            sessions = sessions[:limit]
        return [s.info() for s in sessions]

    def get_session(self, session_id: str) -> CollaborationSession | None:
        if session_id in self._active:
            return self._active[session_id]
        return next((s for s in self._history if s.id == session_id), None)

    # -------------------------------------------------------------------------
    # Session driver
    # -------------------------------------------------------------------------

    def _merge_config(
        self, config: CollaborationConfig | dict[str, Any] | None
    ) -> CollaborationConfig:
        if config is None:
            return dataclasses.replace(self._defaults)
        if isinstance(config, CollaborationConfig):
            return dataclasses.replace(config)
        known = {f.name for f in dataclasses.fields(CollaborationConfig)}
        overrides = {k: v for k, v in config.items() if k in known and v is not None}
        return dataclasses.replace(self._defaults, **overrides)

    async def _run(self, session: CollaborationSession) -> CollaborationResult:
        session.transition(SessionStatus.RUNNING)
        personas = await self.select_personas(session.query, session.config)
        session.selected_personas = personas
        logger.info(
            f"[Orchestrator] {session.id}: selected {[p.name for p in personas]}"
        )

        mode = await self._execute_strategy(session, personas)

        usable = [a for a in session.analyses if not a.failed]
        cross_validation = (
            self._validator.validate(usable, personas)
            if session.config.enable_cross_validation
            else None
        )
        synthesis = await self._synthesize(session, cross_validation)
        action_plan = await self._plan(session, synthesis)

        result = CollaborationResult(
            session_id=session.id,
            query=session.query,
            selected_personas=tuple(p.name for p in personas),
            mode=mode,
            analyses=tuple(session.analyses),
            execution_time=session.elapsed,
            cross_validation=cross_validation,
            synthesis=synthesis,
            action_plan=action_plan,
        )
        session.result = result
        session.transition(SessionStatus.COMPLETED)
        logger.info(
            f"[Orchestrator] {session.id} completed: {mode}, "
            f"{len(session.analyses)} analyses, {session.elapsed:.1f}s"
        )
        return result

    def _fail(self, session: CollaborationSession, reason: str) -> None:
        if session.is_terminal:
            return
        session.error = reason
        session.transition(SessionStatus.FAILED)
        logger.warning(f"[Orchestrator] {session.id} failed: {reason}")

    def _archive(self, session: CollaborationSession) -> None:
        self._active.pop(session.id, None)
        self._tasks.pop(session.id, None)
        self._cancel_requested.discard(session.id)
        self._history.appendleft(session)

    # -------------------------------------------------------------------------
    # Strategies
    # -------------------------------------------------------------------------

    async def _execute_strategy(
        self, session: CollaborationSession, personas: list[Persona]
    ) -> str:
        mode = session.config.mode
        if mode == CollaborationMode.PARALLEL:
            await self._run_parallel(session, personas, session.query)
            return MODE_PARALLEL
        if mode == CollaborationMode.SEQUENTIAL:
            await self._run_sequential(session, personas)
            return MODE_SEQUENTIAL
        return await self._run_intelligent(session, personas)

    async def _run_parallel(
        self,
        session: CollaborationSession,
        personas: list[Persona],
        query: str,
        round_number: int = 1,
    ) -> list[PersonaAnalysis]:
        analyses = await asyncio.gather(
            *[self._analyze(session, p, query, round_number) for p in personas]
        )
        for analysis in analyses:
            session.record(analysis)
        return list(analyses)

    async def _run_sequential(
        self, session: CollaborationSession, personas: list[Persona]
    ) -> None:
        for persona in personas:
            prior = _transcript(session.analyses)
            query = (
                f"{session.query}\n\nPrevious analyses:\n{prior}" if prior else session.query
            )
            session.record(await self._analyze(session, persona, query))

    async def _run_intelligent(
        self, session: CollaborationSession, personas: list[Persona]
    ) -> str:
        complexity = self._analyzer.complexity(session.query)
        coverage = self._classifier.coverage(personas)

        if complexity > HYBRID_COMPLEXITY_THRESHOLD and coverage.is_complementary:
            logger.info(f"[Orchestrator] {session.id}: hybrid (complexity={complexity:.2f})")
            first_round = await self._run_parallel(session, personas, session.query)
            seeded = (
                f"{session.query}\n\nRound-table discussion so far:\n{_transcript(first_round)}\n\n"
                f"Build on, challenge, or refine the points above."
            )
            await self._run_parallel(session, personas, seeded, round_number=2)
            return MODE_HYBRID

        if coverage.has_critical and coverage.has_creative:
            logger.info(f"[Orchestrator] {session.id}: dialogue over {session.config.max_rounds} rounds")
            await self._run_dialogue(session, personas)
            return MODE_DIALOGUE

        await self._run_parallel(session, personas, session.query)
        return MODE_INTELLIGENT_PARALLEL

    async def _run_dialogue(
        self, session: CollaborationSession, personas: list[Persona]
    ) -> None:
        for round_number in range(1, session.config.max_rounds + 1):
            for persona in personas:
                dialogue = _transcript(session.analyses)
                if dialogue:
                    query = (
                        f"{session.query}\n\nDialogue so far:\n{dialogue}\n\n"
                        f"Round {round_number}: respond to the points above as {persona.name}."
                    )
                else:
                    query = session.query
                session.record(await self._analyze(session, persona, query, round_number))

    # -------------------------------------------------------------------------
    # Dispatch and post-processing
    # -------------------------------------------------------------------------

    async def _analyze(
        self,
        session: CollaborationSession,
        persona: Persona,
        query: str,
        round_number: int = 1,
    ) -> PersonaAnalysis:
        """One persona call. Failures become zero-confidence records."""
        prompt = build_persona_prompt(persona, query)
        timeout = session.config.analysis_timeout
        start = time.monotonic()
        try:
            text = await asyncio.wait_for(
                self._provider.analyze(persona, query, prompt), timeout=timeout
            )
        except asyncio.TimeoutError:
            return self._failed_analysis(
                persona, query, round_number, start, f"timed out after {timeout}s"
            )
        except Exception as e:
            return self._failed_analysis(persona, query, round_number, start, str(e) or type(e).__name__)

        return PersonaAnalysis(
            persona_id=persona.id,
            persona_name=persona.name,
            query=query,
            analysis=text,
            confidence=analysis_confidence(text),
            execution_time=time.monotonic() - start,
            round=round_number,
        )

    @staticmethod
    def _failed_analysis(
        persona: Persona, query: str, round_number: int, start: float, error: str
    ) -> PersonaAnalysis:
        logger.warning(f"[Orchestrator] {persona.name} analysis failed: {error}")
        return PersonaAnalysis(
            persona_id=persona.id,
            persona_name=persona.name,
            query=query,
            analysis=f"Analysis failed: {error}",
            confidence=0.0,
            execution_time=time.monotonic() - start,
            round=round_number,
            error=error,
        )

    async def _synthesize(
        self,
        session: CollaborationSession,
        cross_validation: CrossValidationResult | None,
    ) -> SynthesisResult:
        try:
            return await asyncio.wait_for(
                self._provider.synthesize(session.query, list(session.analyses), cross_validation),
                timeout=session.config.analysis_timeout,
            )
        except Exception as e:
            logger.warning(f"[Orchestrator] {session.id} synthesis failed: {e}")
            return SynthesisResult(
                summary="Synthesis failed -- review individual analyses",
                confidence=cross_validation.confidence_score if cross_validation else 0.0,
            )

    async def _plan(
        self, session: CollaborationSession, synthesis: SynthesisResult
    ) -> ActionPlan:
        try:
            return await asyncio.wait_for(
                self._provider.plan_actions(session.query, synthesis, list(session.analyses)),
                timeout=session.config.analysis_timeout,
            )
        except Exception as e:
            logger.warning(f"[Orchestrator] {session.id} action planning failed: {e}")
            return ActionPlan()
