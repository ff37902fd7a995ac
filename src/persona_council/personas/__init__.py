"""Personas -- immutable role records, built-in defaults, and the merged repository."""

from .defaults import DEFAULT_PERSONAS, PERSONA_SOURCES, PersonaSource
from .models import Persona, parse_persona, parse_personas
from .repository import PersonaRepository, load_local_personas
