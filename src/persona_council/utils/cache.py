"""
TTLCache -- bounded key/value store with per-entry expiry and LRU eviction.

Entries carry an absolute expiry. An entry is readable while ``now < expiry``
and treated as absent from ``now >= expiry`` onwards; expired entries are
dropped lazily on ``get`` or eagerly via ``cleanup()``.

When the cache is full, inserting a NEW key evicts the least-recently-touched
entry. Both ``get`` hits and ``set`` move a key to the most-recent end.

Usage:
    cache = TTLCache(max_size=1000, default_ttl=300)
    cache.set(cache_key("persona", "all"), personas)
    personas = cache.get(cache_key("persona", "all"))
    print(cache.stats().hit_rate)
"""

import logging
import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Iterable

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300.0
DEFAULT_MAX_SIZE = 1000

_MISSING = object()

# Key namespaces used across the project.
NAMESPACE_PERSONA = "persona"
NAMESPACE_CONFIG = "config"
NAMESPACE_USER_CONFIGS = "user_configs"


def cache_key(namespace: str, *parts: str) -> str:
    """Build a namespaced key, e.g. cache_key("config", "abc") -> "config:abc"."""
    return ":".join([namespace, *parts])


@dataclass
class CacheStats:
    """Point-in-time snapshot of cache occupancy."""

    total_size: int
    valid_count: int
    expired_count: int
    max_size: int
    hit_rate: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_size": self.total_size,
            "valid_count": self.valid_count,
            "expired_count": self.expired_count,
            "max_size": self.max_size,
            "hit_rate": self.hit_rate,
        }


class TTLCache:
    """
    Thread-safe TTL cache with access-ordered eviction.

    The clock is injectable so expiry boundaries can be tested exactly.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be at least 1 (got {max_size})")
        self._max_size = max_size
        self._default_ttl = default_ttl
        self._clock = clock
        self._entries: OrderedDict[str, tuple[Any, float]] = OrderedDict()
        self._lock = threading.RLock()

    @property
    def max_size(self) -> int:
        return self._max_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value. ``ttl=None`` uses the default TTL."""
        expires_at = self._clock() + (self._default_ttl if ttl is None else ttl)
        with self._lock:
            if key in self._entries:
                self._entries.move_to_end(key)
            elif len(self._entries) >= self._max_size:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"[Cache] Evicted {evicted} (capacity {self._max_size})")
            self._entries[key] = (value, expires_at)

    def get(self, key: str, default: Any = None) -> Any:
        """Return the value, or ``default`` when absent or expired."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                return default
            self._entries.move_to_end(key)
            return value

    def has(self, key: str) -> bool:
        return self.get(key, _MISSING) is not _MISSING

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, _MISSING) is not _MISSING

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def set_if_absent(self, key: str, value: Any, ttl: float | None = None) -> bool:
        """Store only when no valid entry exists. Returns True if stored."""
        with self._lock:
            if self.has(key):
                return False
            self.set(key, value, ttl)
            return True

    def get_many(self, keys: Iterable[str]) -> dict[str, Any]:
        """Return the valid entries among ``keys`` (missing keys are omitted)."""
        found: dict[str, Any] = {}
        with self._lock:
            for key in keys:
                value = self.get(key, _MISSING)
                if value is not _MISSING:
                    found[key] = value
        return found

    def set_many(self, items: dict[str, Any], ttl: float | None = None) -> None:
        with self._lock:
            for key, value in items.items():
                self.set(key, value, ttl)

    def valid_keys(self) -> list[str]:
        """Keys of unexpired entries, least recently touched first."""
        now = self._clock()
        with self._lock:
            return [k for k, (_, exp) in self._entries.items() if now < exp]

    def cleanup(self) -> int:
        """Purge expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, (_, exp) in self._entries.items() if now >= exp]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"[Cache] Cleaned up {len(expired)} expired entries")
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        with self._lock:
            total = len(self._entries)
            valid = sum(1 for _, exp in self._entries.values() if now < exp)
        return CacheStats(
            total_size=total,
            valid_count=valid,
            expired_count=total - valid,
            max_size=self._max_size,
            hit_rate=valid / max(total, 1),
        )
