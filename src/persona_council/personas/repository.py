"""
PersonaRepository -- the authoritative, merged view of available personas.

Resolution order for get_all():
  1. Cached base set (remote or default) while younger than cache_duration
  2. Remote sources, scanned sequentially in priority order; first source
     yielding at least one valid persona wins
  3. Built-in defaults (cached like a remote set)

Local personas always override base entries with the same id and are
appended when their id is new. Source failures never reach the caller.

Usage:
    repo = PersonaRepository(network=NetworkClient(), local_personas=records)
    personas = await repo.get_all()
    grumpy = await repo.get_by_id("baozao-laoge")
    print(repo.stats())
"""

import asyncio
import json
import logging
import time
from collections import Counter
from pathlib import Path
from typing import Any, Callable, Iterable

from ..errors import ConfigValidationError, NetworkError
from ..utils.cache import NAMESPACE_PERSONA, TTLCache, cache_key
from ..utils.network import NetworkClient
from .defaults import DEFAULT_PERSONAS, PERSONA_SOURCES, PersonaSource
from .models import (
    SOURCE_DEFAULT,
    SOURCE_LOCAL,
    SOURCE_REMOTE,
    Persona,
    parse_personas,
)

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DURATION = 300.0
WARM_UP_DELAY = 0.1
BASE_SET_KEY = cache_key(NAMESPACE_PERSONA, "base")


def load_local_personas(path: Path | str) -> list[dict]:
    """Read a JSON array of persona records. Missing or malformed files yield []."""
    path = Path(path)
    if not path.exists():
        logger.warning(f"[PersonaRepository] Local persona file not found: {path}")
        return []
    try:
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, ValueError) as e:
        logger.warning(f"[PersonaRepository] Failed to read {path}: {e}")
        return []
    if not isinstance(data, list):
        logger.warning(f"[PersonaRepository] {path} must contain a JSON array")
        return []
    return data


class PersonaRepository:
    """
    Multi-source persona store with caching and graceful degradation.

    Concurrent get_all() calls are serialized so only one resolution runs
    at a time; the base set is replaced with a single cache write.
    """

    def __init__(
        self,
        network: NetworkClient | None = None,
        local_personas: Iterable[dict] | None = None,
        sources: Iterable[PersonaSource] = PERSONA_SOURCES,
        defaults: Iterable[Persona] = DEFAULT_PERSONAS,
        cache: TTLCache | None = None,
        cache_duration: float = DEFAULT_CACHE_DURATION,
        warm_up: bool = True,
        clock: Callable[[], float] = time.time,
    ):
        self._network = network or NetworkClient()
        self._sources = sorted(sources, key=lambda s: s.priority)
        self._defaults = tuple(d.with_source(SOURCE_DEFAULT) for d in defaults)
        self._cache = cache or TTLCache(default_ttl=cache_duration)
        self._cache_duration = cache_duration
        self._clock = clock
        self._last_fetch_time: float | None = None
        self._lock = asyncio.Lock()
        self._warm_up_task: asyncio.Task | None = None

        self._local: list[Persona] = parse_personas(list(local_personas or []), SOURCE_LOCAL)
        if self._local:
            logger.info(f"[PersonaRepository] Loaded {len(self._local)} local personas")

        if warm_up:
            self._schedule_warm_up()

    # -------------------------------------------------------------------------
    # Resolution
    # -------------------------------------------------------------------------

    def _schedule_warm_up(self) -> None:
        """Fire get_all() shortly after construction when a loop is running."""
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.debug("[PersonaRepository] No running loop, warm-up deferred")
            return
        loop.call_later(WARM_UP_DELAY, self._start_warm_up)

    def _start_warm_up(self) -> None:
        self._warm_up_task = asyncio.ensure_future(self.warm_up())

    async def warm_up(self) -> None:
        """Populate the cache ahead of the first request. Failures are logged."""
        try:
            personas = await self.get_all()
            logger.info(f"[PersonaRepository] Warm-up loaded {len(personas)} personas")
        except Exception as e:
            logger.warning(f"[PersonaRepository] Warm-up failed: {e}")

    async def get_all(self) -> list[Persona]:
        """Return the merged persona set. Never raises for source failures."""
        async with self._lock:
            base = self._cache.get(BASE_SET_KEY)
            if base is None:
                base = await self._resolve_base()
                self._cache.set(BASE_SET_KEY, base, ttl=self._cache_duration)
                self._last_fetch_time = self._clock()
        return self._merge(base)

    async def _resolve_base(self) -> tuple[Persona, ...]:
        for source in self._sources:
            personas = await self._fetch_source(source)
            if personas:
                logger.info(
                    f"[PersonaRepository] Loaded {len(personas)} personas from {source.url}"
                )
                return tuple(personas)

        logger.warning(
            f"[PersonaRepository] All {len(self._sources)} remote sources failed, "
            f"using {len(self._defaults)} default personas"
        )
        return self._defaults

    async def _fetch_source(self, source: PersonaSource) -> list[Persona]:
        try:
            result = await self._network.get(
                source.url,
                timeout=source.timeout,
                retry_attempts=source.retry_attempts,
            )
        except NetworkError as e:
            logger.warning(f"[PersonaRepository] Source {source.url} failed: {e.message}")
            return []

        if not isinstance(result.data, list) or not result.data:
            logger.warning(
                f"[PersonaRepository] Source {source.url} returned no persona array"
            )
            return []
        return parse_personas(result.data, SOURCE_REMOTE)

    def _merge(self, base: Iterable[Persona]) -> list[Persona]:
        merged: dict[str, Persona] = {p.id: p for p in base}
        for persona in self._local:
            if persona.id in merged:
                logger.info(
                    f"[PersonaRepository] Local persona overrides {persona.id} "
                    f"({merged[persona.id].source})"
                )
            merged[persona.id] = persona
        return list(merged.values())

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    async def get_by_id(self, persona_id: str) -> Persona | None:
        for persona in await self.get_all():
            if persona.id == persona_id:
                return persona
        return None

    async def search(self, query: str) -> list[Persona]:
        """Case-insensitive substring match on name, description, goal, category, tags."""
        needle = query.lower().strip()
        matches = []
        for persona in await self.get_all():
            haystack = [persona.name, persona.description, persona.goal, persona.category]
            haystack.extend(persona.tags)
            if any(needle in text.lower() for text in haystack):
                matches.append(persona)
        return matches

    async def get_by_category(self, category: str) -> list[Persona]:
        return [p for p in await self.get_all() if p.category == category]

    async def get_categories(self) -> list[str]:
        return sorted({p.category for p in await self.get_all() if p.category})

    # -------------------------------------------------------------------------
    # Mutation
    # -------------------------------------------------------------------------

    def update_from_config(self, config: Any) -> int:
        """
        Replace the local persona set from a config object or mapping.

        Raises:
            ConfigValidationError: no ``personas`` array, or no valid entry in it.
                Local state is left unchanged.
        """
        records = getattr(config, "personas", None)
        if records is None and isinstance(config, dict):
            records = config.get("personas")
        if not isinstance(records, list):
            raise ConfigValidationError("Config must contain a 'personas' array")

        personas = parse_personas(records, SOURCE_LOCAL)
        if not personas:
            raise ConfigValidationError(
                "Config contains no valid personas",
                hints=["Each persona needs non-empty id, name, rule, goal and version"],
            )

        self._local = personas
        self.invalidate()
        logger.info(f"[PersonaRepository] Applied config with {len(personas)} personas")
        return len(personas)

    def invalidate(self) -> None:
        self._cache.delete(BASE_SET_KEY)

    async def refresh_cache(self) -> list[Persona]:
        """Drop the cached base set and resolve again."""
        self.invalidate()
        return await self.get_all()

    def is_cache_valid(self) -> bool:
        return bool(self._cache.get(BASE_SET_KEY))

    def stats(self) -> dict[str, Any]:
        base = self._cache.get(BASE_SET_KEY) or ()
        merged = self._merge(base)
        return {
            "total_personas": len(merged),
            "local_personas": len(self._local),
            "cached_personas": len(base),
            "last_fetch_time": self._last_fetch_time,
            "cache_valid": bool(base),
            "by_source": dict(Counter(p.source for p in merged)),
            "cache_stats": self._cache.stats().to_dict(),
        }
