"""Infrastructure primitives -- TTL cache and resilient HTTP client."""

from .cache import CacheStats, TTLCache, cache_key
from .network import NetworkClient, RequestResult
