"""
PersonaToolService -- the inbound operations, as named tools.

Every call goes through the same pipeline:
  sanitize arguments -> validate schema -> run handler -> record stats
and always returns a ToolResponse. Expected failures (PersonaCouncilError)
become structured errors with remediation hints; anything else is logged
with a traceback and reported as kind "internal".

Usage:
    service = PersonaToolService(repository, orchestrator, synchronizer)
    response = await service.call("search_personas", {"query": "critical thinking"})
    response = await service.summon_persona("Grumpy Bro")
    if not response.ok:
        print(response.error.kind, response.error.hints)
"""

import logging
import time
from collections import defaultdict
from dataclasses import asdict
from typing import Any, Awaitable, Callable

from pydantic import BaseModel

from ..collaboration.models import CollaborationResult
from ..collaboration.orchestrator import CollaborationOrchestrator
from ..errors import AuthError, NotFoundError, PersonaCouncilError
from ..personas.models import Persona
from ..personas.repository import PersonaRepository
from ..security.prompt_guard import detect_injection_attempt
from ..sync.config_sync import ConfigSynchronizer
from .schemas import (
    ConfigIdArgs,
    ErrorInfo,
    ListPersonasArgs,
    NoArgs,
    SearchPersonasArgs,
    SessionIdArgs,
    StartCollaborationArgs,
    SummonPersonaArgs,
    ToolResponse,
    ToolStatsArgs,
    parse_args,
    sanitize_args,
)
from .stats import ToolStatsManager

logger = logging.getLogger(__name__)

MAX_SUGGESTIONS = 5

# Field weights for search ranking: (field, weight)
SEARCH_FIELDS = (
    ("name", 5.0),
    ("id", 4.0),
    ("tags", 3.0),
    ("category", 2.0),
    ("goal", 2.0),
    ("description", 1.0),
)

Handler = Callable[[Any], Awaitable[tuple[str, Any]]]


def _persona_summary(persona: Persona) -> dict[str, Any]:
    return {
        "id": persona.id,
        "name": persona.name,
        "category": persona.category,
        "description": persona.description,
        "source": persona.source,
    }


def _search_fields(persona: Persona) -> dict[str, list[str]]:
    return {
        "name": [persona.name],
        "id": [persona.id],
        "tags": list(persona.tags),
        "category": [persona.category],
        "goal": [persona.goal],
        "description": [persona.description],
    }


def format_collaboration_report(result: CollaborationResult) -> str:
    """Human-readable report of a finished collaboration."""
    lines = [
        f"Collaboration {result.session_id} ({result.mode}, {result.execution_time:.1f}s)",
        f"Personas: {', '.join(result.selected_personas)}",
        "",
    ]
    for analysis in result.analyses:
        status = "FAILED" if analysis.failed else f"confidence {analysis.confidence:.2f}"
        lines.append(f"## {analysis.persona_name} (round {analysis.round}, {status})")
        lines.append(analysis.analysis)
        lines.append("")

    if result.cross_validation:
        cv = result.cross_validation
        lines.append(f"## Cross-validation (confidence {cv.confidence_score:.2f})")
        lines.extend(f"- Agreement: {p}" for p in cv.common_points)
        lines.extend(f"- Disagreement: {d}" for d in cv.disagreements)
        lines.extend(f"- Recommendation: {r}" for r in cv.recommendations)
        lines.append("")

    if result.synthesis:
        lines.append("## Synthesis")
        lines.append(result.synthesis.summary)
        lines.extend(f"- Risk: {r}" for r in result.synthesis.risks)
        lines.extend(f"- Opportunity: {o}" for o in result.synthesis.opportunities)
        lines.append("")

    if result.action_plan and result.action_plan.steps:
        plan = result.action_plan
        lines.append(f"## Action plan ({plan.priority} priority, {plan.timeline})")
        for step in plan.steps:
            after = f" (after {', '.join(step.dependencies)})" if step.dependencies else ""
            lines.append(f"{step.priority}. {step.description} [{step.estimated_time}]{after}")

    return "\n".join(lines).rstrip()


class PersonaToolService:
    def __init__(
        self,
        repository: PersonaRepository,
        orchestrator: CollaborationOrchestrator,
        synchronizer: ConfigSynchronizer | None = None,
        stats: ToolStatsManager | None = None,
    ):
        self._repository = repository
        self._orchestrator = orchestrator
        self._synchronizer = synchronizer
        self._stats = stats or ToolStatsManager()
        self._tools: dict[str, tuple[type[BaseModel], Handler]] = {
            "summon_persona": (SummonPersonaArgs, self._summon_persona),
            "list_personas": (ListPersonasArgs, self._list_personas),
            "search_personas": (SearchPersonasArgs, self._search_personas),
            "list_persona_configs": (NoArgs, self._list_persona_configs),
            "download_persona_config": (ConfigIdArgs, self._download_persona_config),
            "sync_persona_config": (ConfigIdArgs, self._sync_persona_config),
            "start_collaboration": (StartCollaborationArgs, self._start_collaboration),
            "list_sessions": (NoArgs, self._list_sessions),
            "cancel_session": (SessionIdArgs, self._cancel_session),
            "get_tool_stats": (ToolStatsArgs, self._get_tool_stats),
        }

    @property
    def tool_names(self) -> list[str]:
        return list(self._tools)

    @property
    def stats(self) -> ToolStatsManager:
        return self._stats

    @property
    def repository(self) -> PersonaRepository:
        return self._repository

    @property
    def orchestrator(self) -> CollaborationOrchestrator:
        return self._orchestrator

    @property
    def synchronizer(self) -> ConfigSynchronizer | None:
        return self._synchronizer

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def call(self, tool_name: str, arguments: dict[str, Any] | None = None) -> ToolResponse:
        start = time.monotonic()
        try:
            if tool_name not in self._tools:
                raise NotFoundError(
                    f"Unknown tool '{tool_name}'",
                    hints=[f"Available tools: {', '.join(self._tools)}"],
                )
            schema, handler = self._tools[tool_name]
            args = parse_args(schema, sanitize_args(arguments or {}))
            text, data = await handler(args)
            response = ToolResponse(ok=True, tool=tool_name, text=text, data=data)
        except PersonaCouncilError as e:
            logger.warning(f"[Tools] {tool_name} failed ({e.kind}): {e.message}")
            response = self._error_response(tool_name, e)
        except Exception as e:
            logger.error(f"[Tools] {tool_name} crashed: {e}", exc_info=True)
            response = ToolResponse(
                ok=False,
                tool=tool_name,
                text=f"Error: unexpected failure in {tool_name}",
                error=ErrorInfo(
                    kind="internal",
                    message=str(e) or type(e).__name__,
                    hints=["Retry the call; if it keeps failing, check the server logs"],
                ),
            )

        self._stats.record_call(tool_name, response.ok, time.monotonic() - start)
        return response

    @staticmethod
    def _error_response(tool_name: str, error: PersonaCouncilError) -> ToolResponse:
        payload = error.to_dict()
        details = {k: v for k, v in payload.items() if k not in ("kind", "message", "hints")}
        return ToolResponse(
            ok=False,
            tool=tool_name,
            text=f"Error: {error.message}",
            error=ErrorInfo(
                kind=error.kind,
                message=error.message,
                hints=error.hints,
                details=details,
            ),
        )

    # -------------------------------------------------------------------------
    # Convenience wrappers
    # -------------------------------------------------------------------------

    async def summon_persona(self, name: str) -> ToolResponse:
        return await self.call("summon_persona", {"name": name})

    async def list_personas(self, category: str | None = None, source: str | None = None) -> ToolResponse:
        return await self.call("list_personas", {"category": category, "source": source})

    async def search_personas(self, query: str) -> ToolResponse:
        return await self.call("search_personas", {"query": query})

    async def list_persona_configs(self) -> ToolResponse:
        return await self.call("list_persona_configs")

    async def download_persona_config(self, config_id: str) -> ToolResponse:
        return await self.call("download_persona_config", {"config_id": config_id})

    async def sync_persona_config(self, config_id: str) -> ToolResponse:
        return await self.call("sync_persona_config", {"config_id": config_id})

    async def start_collaboration(
        self,
        query: str,
        persona_ids: list[str] | None = None,
        mode: str | None = None,
    ) -> ToolResponse:
        return await self.call(
            "start_collaboration",
            {"query": query, "persona_ids": persona_ids or [], "mode": mode},
        )

    async def list_sessions(self) -> ToolResponse:
        return await self.call("list_sessions")

    async def cancel_session(self, session_id: str) -> ToolResponse:
        return await self.call("cancel_session", {"session_id": session_id})

    async def get_tool_stats(self, tool_name: str | None = None) -> ToolResponse:
        return await self.call("get_tool_stats", {"tool_name": tool_name})

    # -------------------------------------------------------------------------
    # Handlers
    # -------------------------------------------------------------------------

    async def _summon_persona(self, args: SummonPersonaArgs) -> tuple[str, Any]:
        persona = await self._repository.get_by_id(args.name)
        if persona is None:
            candidates = await self._repository.search(args.name)
            persona = next(
                (p for p in candidates if p.name.lower() == args.name.lower()), None
            )
            if persona is None:
                hints = [
                    "Use list_personas to see every available persona",
                    "Use search_personas to search by keyword",
                ]
                if candidates:
                    names = ", ".join(p.name for p in candidates[:MAX_SUGGESTIONS])
                    hints.insert(0, f"Did you mean: {names}?")
                raise NotFoundError(f"Persona '{args.name}' not found", hints=hints)

        text = (
            f"Summoned {persona.name} ({persona.id}, {persona.source})\n"
            f"Goal: {persona.goal}\n"
            f"Rules: {persona.rule}"
        )
        return text, persona.to_dict()

    async def _list_personas(self, args: ListPersonasArgs) -> tuple[str, Any]:
        personas = await self._repository.get_all()
        if args.source:
            personas = [p for p in personas if p.source == args.source]
        if args.category:
            needle = args.category.lower()
            personas = [
                p
                for p in personas
                if needle in p.category.lower() or any(needle in t.lower() for t in p.tags)
            ]

        grouped: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for persona in personas:
            grouped[persona.source].append(_persona_summary(persona))

        if not personas:
            return "No personas match the filters", {}

        lines = [f"{len(personas)} persona(s) available"]
        for source, items in grouped.items():
            lines.append(f"[{source}]")
            lines.extend(f"- {p['name']} ({p['id']}): {p['description']}" for p in items)
        return "\n".join(lines), dict(grouped)

    async def _search_personas(self, args: SearchPersonasArgs) -> tuple[str, Any]:
        query = args.query.lower()
        terms = [t for t in query.split() if len(t) > 1]
        matches = []

        for persona in await self._repository.get_all():
            score = 0.0
            matched: list[str] = []
            fields = _search_fields(persona)
            for field_name, weight in SEARCH_FIELDS:
                texts = [v.lower() for v in fields[field_name] if v]
                if any(query in t for t in texts):
                    score += 2 * weight
                    matched.append(field_name)
                elif any(term in t for term in terms for t in texts):
                    score += weight
                    matched.append(field_name)
            if score > 0:
                matches.append(
                    {"persona": _persona_summary(persona), "score": score, "matched_fields": matched}
                )

        matches.sort(key=lambda m: (-m["score"], m["persona"]["name"]))
        if not matches:
            return f"No personas match '{args.query}'", []
        lines = [f"{len(matches)} persona(s) match '{args.query}'"]
        lines.extend(
            f"- {m['persona']['name']} (score {m['score']:.1f}; matched {', '.join(m['matched_fields'])})"
            for m in matches
        )
        return "\n".join(lines), matches

    def _require_synchronizer(self) -> ConfigSynchronizer:
        if self._synchronizer is None:
            raise AuthError(
                "Config sync is not configured",
                hints=["Start the server with a config path and user key"],
            )
        return self._synchronizer

    async def _list_persona_configs(self, args: NoArgs) -> tuple[str, Any]:
        configs = await self._require_synchronizer().list_remote_configs()
        if not configs:
            return "No persona configs available for this key", []
        lines = [f"{len(configs)} persona config(s)"]
        lines.extend(
            f"- {c.name} ({c.id}, v{c.version}, {c.persona_count} personas)" for c in configs
        )
        return "\n".join(lines), [c.model_dump() for c in configs]

    async def _download_persona_config(self, args: ConfigIdArgs) -> tuple[str, Any]:
        config = await self._require_synchronizer().download_config(args.config_id)
        text = f"Downloaded {config.name} ({config.id}, v{config.version}) with {len(config.personas)} personas"
        return text, config.model_dump()

    async def _sync_persona_config(self, args: ConfigIdArgs) -> tuple[str, Any]:
        config = await self._require_synchronizer().sync_from_remote(args.config_id)
        applied = self._repository.update_from_config(config)
        text = f"Synced {config.name} ({config.id}, v{config.version}); {applied} personas now active locally"
        return text, {"config_id": config.id, "version": config.version, "personas_applied": applied}

    async def _start_collaboration(self, args: StartCollaborationArgs) -> tuple[str, Any]:
        detect_injection_attempt(args.query)
        overrides: dict[str, Any] = {"persona_ids": args.persona_ids}
        if args.mode is not None:
            overrides["mode"] = args.mode
        result = await self._orchestrator.start_collaboration(args.query, overrides)
        return format_collaboration_report(result), result.to_dict()

    async def _list_sessions(self, args: NoArgs) -> tuple[str, Any]:
        active = self._orchestrator.get_active_sessions()
        history = self._orchestrator.get_session_history()
        text = f"{len(active)} active session(s), {len(history)} in history"
        return text, {
            "active": [asdict(s) for s in active],
            "history": [asdict(s) for s in history],
        }

    async def _cancel_session(self, args: SessionIdArgs) -> tuple[str, Any]:
        if not self._orchestrator.cancel(args.session_id):
            raise NotFoundError(
                f"No running session '{args.session_id}'",
                hints=["Use list_sessions to see active session ids"],
            )
        return f"Cancellation requested for {args.session_id}", {
            "session_id": args.session_id,
            "cancelled": True,
        }

    async def _get_tool_stats(self, args: ToolStatsArgs) -> tuple[str, Any]:
        entries = self._stats.get_stats(args.tool_name)
        summary = self._stats.summary()
        lines = [
            f"{summary['total_calls']} call(s), success rate {summary['success_rate']:.0%}"
        ]
        lines.extend(
            f"- {e.tool_name}: {e.call_count} calls, {e.error_count} errors, "
            f"avg {e.avg_execution_time * 1000:.0f}ms"
            for e in entries
        )
        return "\n".join(lines), {"tools": [e.to_dict() for e in entries], "summary": summary}
