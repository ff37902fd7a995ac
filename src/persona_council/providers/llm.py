"""
LLMAnalysisProvider -- persona analyses, synthesis and plans from a real model.

Each persona call gets its own context window: the persona's instructions go
in the system prompt, the wrapped query in the user message. Synthesis and
planning ask for JSON; unparseable replies fall back to the template
provider's heuristics so a session still completes.

Usage:
    provider = LLMAnalysisProvider(create_client(provider="anthropic"))
    orchestrator = CollaborationOrchestrator(repository, provider=provider)
"""

import json
import logging
import re
from dataclasses import asdict
from typing import Any

from ..collaboration.models import (
    ActionPlan,
    ActionStep,
    CrossValidationResult,
    PersonaAnalysis,
    SynthesisResult,
)
from ..llm import CacheablePrompt, LLMClient
from ..personas.models import Persona
from .base import PersonaPrompt
from .template import TemplateAnalysisProvider

logger = logging.getLogger(__name__)

SYNTHESIS_SYSTEM = (
    "You are the moderator of a panel of personas. Combine their analyses into "
    "one balanced synthesis. Preserve disagreements and concrete evidence. "
    "Return valid JSON only."
)
PLAN_SYSTEM = (
    "You turn a synthesized recommendation into an ordered action plan. "
    "Return valid JSON only."
)
_JSON_BLOCK_RE = re.compile(r"\{.*\}", re.DOTALL)


def extract_json(text: str) -> dict[str, Any] | None:
    """Parse the outermost JSON object in ``text`` (code fences tolerated)."""
    if not text:
        return None
    match = _JSON_BLOCK_RE.search(text)
    if match is None:
        return None
    try:
        data = json.loads(match.group(0))
    except ValueError:
        return None
    return data if isinstance(data, dict) else None


def _str_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value if item]


class LLMAnalysisProvider:
    def __init__(self, client: LLMClient, temperature: float = 0.7):
        self._client = client
        self._temperature = temperature
        self._fallback = TemplateAnalysisProvider()

    async def analyze(self, persona: Persona, query: str, prompt: PersonaPrompt) -> str:
        response = await self._client.call(
            CacheablePrompt(system=prompt.system, user_message=prompt.user_message),
            role=f"persona:{persona.id}",
            temperature=self._temperature,
        )
        return response.content

    async def synthesize(
        self,
        query: str,
        analyses: list[PersonaAnalysis],
        cross_validation: CrossValidationResult | None,
    ) -> SynthesisResult:
        context = json.dumps(
            {
                "analyses": [
                    {"persona": a.persona_name, "round": a.round, "analysis": a.analysis}
                    for a in analyses
                    if not a.failed
                ],
                "cross_validation": asdict(cross_validation) if cross_validation else None,
            },
            indent=2,
        )
        prompt = CacheablePrompt(
            system=SYNTHESIS_SYSTEM,
            context=context,
            user_message=(
                f"Question: {query}\n\n"
                'Return JSON: {"summary": "...", "key_insights": [...], '
                '"risks": [...], "opportunities": [...], "confidence": 0.0-1.0}'
            ),
        )
        response = await self._client.call(prompt, role="synthesis", temperature=0.2)
        data = extract_json(response.content)
        if data is None:
            logger.warning("[LLMProvider] Synthesis returned unparseable JSON, using heuristics")
            return await self._fallback.synthesize(query, analyses, cross_validation)

        try:
            confidence = float(data.get("confidence", 0.5))
        except (TypeError, ValueError):
            confidence = 0.5
        return SynthesisResult(
            summary=str(data.get("summary", "")),
            key_insights=_str_list(data.get("key_insights")),
            risks=_str_list(data.get("risks")),
            opportunities=_str_list(data.get("opportunities")),
            confidence=min(max(confidence, 0.0), 1.0),
        )

    async def plan_actions(
        self,
        query: str,
        synthesis: SynthesisResult,
        analyses: list[PersonaAnalysis],
    ) -> ActionPlan:
        prompt = CacheablePrompt(
            system=PLAN_SYSTEM,
            context=json.dumps(asdict(synthesis), indent=2),
            user_message=(
                f"Question: {query}\n\n"
                'Return JSON: {"steps": [{"id": "step_1", "description": "...", '
                '"priority": 1, "estimated_time": "...", "dependencies": []}], '
                '"timeline": "...", "priority": "high|medium|low", "resources": [...]}'
            ),
        )
        response = await self._client.call(prompt, role="planning", temperature=0.2)
        data = extract_json(response.content)
        if data is None or not isinstance(data.get("steps"), list):
            logger.warning("[LLMProvider] Plan returned unparseable JSON, using heuristics")
            return await self._fallback.plan_actions(query, synthesis, analyses)

        steps = []
        for i, raw in enumerate(s for s in data["steps"] if isinstance(s, dict)):
            try:
                priority = int(raw.get("priority", i + 1))
            except (TypeError, ValueError):
                priority = i + 1
            steps.append(
                ActionStep(
                    id=str(raw.get("id") or f"step_{i + 1}"),
                    description=str(raw.get("description", "")),
                    priority=priority,
                    estimated_time=str(raw.get("estimated_time", "")),
                    dependencies=_str_list(raw.get("dependencies")),
                )
            )
        plan_priority = data.get("priority")
        return ActionPlan(
            steps=steps,
            timeline=str(data.get("timeline", "")),
            priority=plan_priority if plan_priority in ("high", "medium", "low") else "medium",
            resources=_str_list(data.get("resources")),
        )
