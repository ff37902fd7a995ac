"""
TemplateAnalysisProvider -- deterministic, offline content generation.

Each persona answers from an archetype template (critical, supportive,
analytical, creative, or general). The template is picked by a stable hash of
persona id and query, so the same inputs always produce the same text.
Synthesis and planning are heuristic: sentences are sorted into risks and
opportunities, and the plan chains the cross-validated recommendations.

This is the default provider; swap in LLMAnalysisProvider for real model output.
"""

import asyncio
import logging
import re
import zlib

from ..collaboration.classifier import (
    ARCHETYPE_ANALYTICAL,
    ARCHETYPE_CREATIVE,
    ARCHETYPE_CRITICAL,
    ARCHETYPE_SUPPORTIVE,
    ArchetypeClassifier,
)
from ..collaboration.cross_validation import CrossValidator
from ..collaboration.models import (
    ActionPlan,
    ActionStep,
    CrossValidationResult,
    PersonaAnalysis,
    SynthesisResult,
)
from ..personas.models import Persona
from .base import PersonaPrompt

logger = logging.getLogger(__name__)

FOCUS_LENGTH = 80
MAX_LISTED = 5
ARCHETYPE_PRIORITY = (ARCHETYPE_CRITICAL, ARCHETYPE_SUPPORTIVE, ARCHETYPE_ANALYTICAL, ARCHETYPE_CREATIVE)

TEMPLATES: dict[str, tuple[str, ...]] = {
    ARCHETYPE_CRITICAL: (
        "As {name}, I see real problems with {focus}. The main risk is that the plan "
        "has not been tested against hard constraints, and its weak points will "
        "surface late when they are expensive to fix. Recommendation: validate the "
        "core assumptions with data before committing resources. You should also "
        "define a clear exit criterion in case early results disappoint.",
        "As {name}, let me be blunt about {focus}. Too much here rests on optimism, "
        "and the downside is being ignored. The biggest risk is a failure nobody is "
        "watching for. Recommendation: write down the three ways this could fail "
        "and assign an owner to each. You need to stress-test the worst case first.",
    ),
    ARCHETYPE_SUPPORTIVE: (
        "As {name}, I see a great opportunity in {focus}. The strengths behind it "
        "are real, and the upside is promising if the team keeps its momentum. "
        "Recommendation: build on the existing strengths and start with a small "
        "pilot. You should celebrate early wins to keep everyone motivated.",
        "As {name}, there is a lot to like about {focus}. The idea has clear "
        "advantages and a strong foundation for growth. Recommendation: share the "
        "vision early and gather supporters. You should turn early feedback into "
        "visible improvements.",
    ),
    ARCHETYPE_ANALYTICAL: (
        "As {name}, let me break {focus} down. Looking at the data and evidence, "
        "there are three dimensions to weigh: objectives, constraints and risks. "
        "Each needs a measurable criterion. Recommendation: collect baseline data "
        "and compare the options against explicit criteria. You need to document "
        "the assumptions behind each option.",
    ),
    ARCHETYPE_CREATIVE: (
        "As {name}, here is a fresh angle on {focus}. Instead of the obvious path, "
        "consider an unconventional experiment that turns the main constraint into "
        "a feature. Recommendation: prototype two contrasting ideas and test them "
        "with real users. You should keep the experiments cheap and fast.",
    ),
    "general": (
        "As {name}, my take on {focus}: {goal}. The key is to agree on the objective "
        "before choosing the path. Recommendation: define success first, then "
        "sequence the work into small steps.",
    ),
}

RISK_MARKERS = ("risk", "problem", "threat", "weak", "fail", "downside")
OPPORTUNITY_MARKERS = ("opportunit", "strength", "upside", "advantage", "growth", "promising")
_SENTENCE_RE = re.compile(r"(?<=[.!?])\s+")


def _sentences(text: str) -> list[str]:
    return [s.strip() for s in _SENTENCE_RE.split(text) if s.strip()]


def _focus(query: str) -> str:
    first_line = query.strip().splitlines()[0] if query.strip() else "this question"
    if len(first_line) > FOCUS_LENGTH:
        first_line = first_line[:FOCUS_LENGTH].rstrip() + "..."
    return f'"{first_line}"'


class TemplateAnalysisProvider:
    """
    Usage:
        provider = TemplateAnalysisProvider()
        text = await provider.analyze(persona, query, build_persona_prompt(persona, query))
    """

    def __init__(self, latency: float = 0.0, classifier: ArchetypeClassifier | None = None):
        self._latency = latency
        self._classifier = classifier or ArchetypeClassifier()

    def _archetype(self, persona: Persona) -> str:
        found = self._classifier.classify(persona)
        for archetype in ARCHETYPE_PRIORITY:
            if archetype in found:
                return archetype
        return "general"

    async def analyze(self, persona: Persona, query: str, prompt: PersonaPrompt) -> str:
        if self._latency:
            await asyncio.sleep(self._latency)
        templates = TEMPLATES[self._archetype(persona)]
        index = zlib.crc32(f"{persona.id}:{query}".encode("utf-8")) % len(templates)
        return templates[index].format(
            name=persona.name,
            focus=_focus(query),
            goal=persona.goal.rstrip("."),
        )

    async def synthesize(
        self,
        query: str,
        analyses: list[PersonaAnalysis],
        cross_validation: CrossValidationResult | None,
    ) -> SynthesisResult:
        usable = [a for a in analyses if not a.failed]
        risks: list[str] = []
        opportunities: list[str] = []
        insights: list[str] = list(cross_validation.common_points) if cross_validation else []

        for analysis in usable:
            sentences = _sentences(analysis.analysis)
            if len(sentences) > 1:
                insights.append(f"{analysis.persona_name}: {sentences[1]}")
            for sentence in sentences:
                lower = sentence.lower()
                if any(m in lower for m in RISK_MARKERS) and sentence not in risks:
                    risks.append(sentence)
                elif any(m in lower for m in OPPORTUNITY_MARKERS) and sentence not in opportunities:
                    opportunities.append(sentence)

        if cross_validation:
            confidence = cross_validation.confidence_score
        elif usable:
            confidence = sum(a.confidence for a in usable) / len(usable)
        else:
            confidence = 0.0

        names = sorted({a.persona_name for a in usable})
        summary = (
            f"{len(names)} persona(s) ({', '.join(names)}) analyzed {_focus(query)} "
            f"and produced {len(risks)} risk(s) and {len(opportunities)} opportunity(ies)."
            if usable
            else f"No persona produced a usable analysis of {_focus(query)}."
        )
        return SynthesisResult(
            summary=summary,
            key_insights=insights[: MAX_LISTED + 1],
            risks=risks[:MAX_LISTED],
            opportunities=opportunities[:MAX_LISTED],
            confidence=confidence,
        )

    async def plan_actions(
        self,
        query: str,
        synthesis: SynthesisResult,
        analyses: list[PersonaAnalysis],
    ) -> ActionPlan:
        ranked = CrossValidator().rank_recommendations([a for a in analyses if not a.failed])
        descriptions = ranked + ["Review outcomes and adjust the plan"]

        steps = []
        for i, description in enumerate(descriptions):
            steps.append(
                ActionStep(
                    id=f"step_{i + 1}",
                    description=description,
                    priority=i + 1,
                    estimated_time="1 week" if i == 0 else "1-2 weeks",
                    dependencies=[steps[-1].id] if steps else [],
                )
            )

        if len(synthesis.risks) >= 3:
            priority = "high"
        elif synthesis.risks:
            priority = "medium"
        else:
            priority = "low"

        return ActionPlan(
            steps=steps,
            timeline=f"{2 * len(steps) - 1}-{2 * len(steps)} weeks",
            priority=priority,
            resources=[f"{name} perspective" for name in sorted({a.persona_name for a in analyses})],
        )
