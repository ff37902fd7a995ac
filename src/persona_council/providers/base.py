"""
AnalysisProvider -- the pluggable capability that produces persona content.

The orchestrator never generates text itself. It builds a role-conditioned
prompt and hands it, with the persona and the query, to a provider.

Example:
    class MyProvider:
        async def analyze(self, persona, query, prompt): ...
        async def synthesize(self, query, analyses, cross_validation): ...
        async def plan_actions(self, query, synthesis, analyses): ...
"""

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from ..collaboration.models import (
    ActionPlan,
    CrossValidationResult,
    PersonaAnalysis,
    SynthesisResult,
)
from ..personas.models import Persona
from ..security.prompt_guard import wrap_user_content


@dataclass(frozen=True)
class PersonaPrompt:
    """Persona instructions (stable) and the wrapped query (per call)."""

    system: str
    user_message: str

    def to_text(self) -> str:
        return f"{self.system}\n\n{self.user_message}"


def build_persona_prompt(persona: Persona, query: str) -> PersonaPrompt:
    """Condition the prompt on the persona's goal, rule and description."""
    lines = [f"You are {persona.name}."]
    if persona.description:
        lines.append(persona.description)
    lines.append(f"Goal: {persona.goal}")
    lines.append(f"Rules: {persona.rule}")
    lines.append(
        "Stay in character. Point out risks, give concrete recommendations, "
        "and cite data or evidence where you can."
    )
    return PersonaPrompt(
        system="\n".join(lines),
        user_message=wrap_user_content(query),
    )


@runtime_checkable
class AnalysisProvider(Protocol):
    """Interface every content provider implements."""

    async def analyze(self, persona: Persona, query: str, prompt: PersonaPrompt) -> str: ...

    async def synthesize(
        self,
        query: str,
        analyses: list[PersonaAnalysis],
        cross_validation: CrossValidationResult | None,
    ) -> SynthesisResult: ...

    async def plan_actions(
        self,
        query: str,
        synthesis: SynthesisResult,
        analyses: list[PersonaAnalysis],
    ) -> ActionPlan: ...
