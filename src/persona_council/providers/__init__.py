"""Analysis providers -- who actually writes persona analyses, syntheses and plans."""

from ..security.validators import validate_in_choices
from .base import AnalysisProvider, PersonaPrompt, build_persona_prompt
from .template import TemplateAnalysisProvider

PROVIDER_NAMES = ["template", "anthropic", "openai"]


def create_provider(name: str = "template", model: str | None = None) -> AnalysisProvider:
    """Build a provider by name: ``template``, ``anthropic`` or ``openai``."""
    validate_in_choices(name, PROVIDER_NAMES, "provider")
    if name == "template":
        return TemplateAnalysisProvider()

    from ..llm import create_client
    from .llm import LLMAnalysisProvider

    return LLMAnalysisProvider(create_client(provider=name, model=model))
