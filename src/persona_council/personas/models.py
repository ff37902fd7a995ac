"""
Persona -- immutable role record, parsed and validated at the ingestion boundary.

Raw dicts from remote sources, local files, or downloaded configs never travel
past this module: ``parse_persona`` either returns a clean ``Persona`` or None
(with a logged warning), so the rest of the system only ever sees valid records.
"""

import logging
from dataclasses import dataclass, field, replace
from typing import Any

logger = logging.getLogger(__name__)

SOURCE_LOCAL = "local"
SOURCE_REMOTE = "remote"
SOURCE_DEFAULT = "default"
VALID_SOURCES = (SOURCE_LOCAL, SOURCE_REMOTE, SOURCE_DEFAULT)

REQUIRED_FIELDS = ("id", "name", "rule", "goal", "version")
LIST_FIELDS = ("tags", "capabilities", "limitations", "examples", "related_personas")

# Wire-format aliases accepted on input.
_FIELD_ALIASES = {"relatedPersonas": "related_personas"}


@dataclass(frozen=True)
class Persona:
    """A named role with behavioral rules and a goal."""

    id: str
    name: str
    rule: str
    goal: str
    version: str
    description: str = ""
    category: str = ""
    tags: tuple[str, ...] = field(default_factory=tuple)
    capabilities: tuple[str, ...] = field(default_factory=tuple)
    limitations: tuple[str, ...] = field(default_factory=tuple)
    examples: tuple[str, ...] = field(default_factory=tuple)
    related_personas: tuple[str, ...] = field(default_factory=tuple)
    source: str = SOURCE_REMOTE

    def with_source(self, source: str) -> "Persona":
        return replace(self, source=source)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "rule": self.rule,
            "goal": self.goal,
            "version": self.version,
            "description": self.description,
            "category": self.category,
            "tags": list(self.tags),
            "capabilities": list(self.capabilities),
            "limitations": list(self.limitations),
            "examples": list(self.examples),
            "related_personas": list(self.related_personas),
            "source": self.source,
        }


def is_valid_persona_record(raw: Any) -> bool:
    """True when every required field is a non-empty string."""
    if not isinstance(raw, dict):
        return False
    return all(
        isinstance(raw.get(name), str) and raw[name].strip() for name in REQUIRED_FIELDS
    )


def _string_items(value: Any) -> tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(item.strip() for item in value if isinstance(item, str) and item.strip())


def _optional_text(value: Any) -> str:
    return value.strip() if isinstance(value, str) else ""


def parse_persona(raw: Any, source: str = SOURCE_REMOTE) -> Persona | None:
    """
    Validate and normalize one raw record.

    Returns None (and logs a warning) for records missing a required field.
    Text is trimmed; non-string list entries are dropped.
    """
    if not is_valid_persona_record(raw):
        ident = raw.get("id") if isinstance(raw, dict) else type(raw).__name__
        logger.warning(f"[Persona] Dropping invalid persona record: {ident!r}")
        return None

    data = {_FIELD_ALIASES.get(k, k): v for k, v in raw.items()}
    if source not in VALID_SOURCES:
        source = SOURCE_REMOTE

    return Persona(
        id=data["id"].strip(),
        name=data["name"].strip(),
        rule=data["rule"].strip(),
        goal=data["goal"].strip(),
        version=data["version"].strip(),
        description=_optional_text(data.get("description")),
        category=_optional_text(data.get("category")),
        **{name: _string_items(data.get(name)) for name in LIST_FIELDS},
        source=source,
    )


def parse_personas(records: Any, source: str = SOURCE_REMOTE) -> list[Persona]:
    """Parse a list of raw records, keeping only the valid ones in order."""
    if not isinstance(records, list):
        return []
    personas = []
    for raw in records:
        persona = parse_persona(raw, source)
        if persona is not None:
            personas.append(persona)
    dropped = len(records) - len(personas)
    if dropped:
        logger.warning(
            f"[Persona] {dropped}/{len(records)} {source} records failed validation"
        )
    return personas
