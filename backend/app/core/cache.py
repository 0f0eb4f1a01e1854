"""
Response caching helpers.

Two layers: a process-local TTL map that is always on, and a fault-tolerant
Redis layer enabled with REDIS_CACHE_ENABLED. Redis down = cache miss, never
an error.
"""

import json
import logging
import time
from collections import OrderedDict
from typing import Any, Callable, Optional

import redis

from app.core.config import settings

logger = logging.getLogger(__name__)

_redis_client: Optional[redis.Redis] = None


class TTLCache:
    """Process-local cache with per-entry expiry and a size bound."""

    def __init__(
        self,
        ttl: float,
        maxsize: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.maxsize = maxsize
        self._clock = clock
        self._data: "OrderedDict[str, tuple]" = OrderedDict()

    def get(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if key in self._data:
            del self._data[key]
        while len(self._data) >= self.maxsize:
            self._data.popitem(last=False)
        self._data[key] = (self._clock() + (ttl if ttl is not None else self.ttl), value)

    def clear(self) -> None:
        self._data.clear()

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


_memory_cache = TTLCache(ttl=settings.CACHE_TTL, maxsize=settings.CACHE_MAX_ENTRIES)


def get_redis() -> redis.Redis:
    """Return a lazy singleton Redis client."""
    global _redis_client
    if _redis_client is None:
        _redis_client = redis.Redis(
            host=settings.REDIS_HOST,
            port=settings.REDIS_PORT,
            db=settings.REDIS_DB,
            decode_responses=True,
            socket_connect_timeout=2,
            socket_timeout=2,
        )
    return _redis_client


def cache_get(key: str) -> Optional[str]:
    """Get a value from Redis. Returns None on miss or error."""
    try:
        return get_redis().get(key)
    except Exception:
        logger.warning("Redis cache_get failed for key=%s", key, exc_info=True)
        return None


def cache_set(key: str, value: str, ttl: int) -> None:
    """Set a value in Redis with a TTL (seconds). Silently ignores errors."""
    try:
        get_redis().set(key, value, ex=ttl)
    except Exception:
        logger.warning("Redis cache_set failed for key=%s", key, exc_info=True)


def cache_ttl(key: str) -> Optional[int]:
    """Remaining Redis TTL in seconds, or None when unknown."""
    try:
        remaining = get_redis().ttl(key)
    except Exception:
        logger.warning("Redis cache_ttl failed for key=%s", key, exc_info=True)
        return None
    if remaining is None or remaining <= 0:
        return None
    return remaining


def coordinate_key(prefix: str, latitude: float, longitude: float) -> str:
    """Cache key for a coordinate lookup, rounded to ~11 m."""
    return f"{prefix}:{latitude:.4f}:{longitude:.4f}"


def get_cached_json(key: str, ttl: Optional[int] = None) -> Optional[Any]:
    """
    Look a JSON-serialisable value up in memory, then Redis.

    A Redis hit is copied into memory for what is left of its Redis TTL,
    falling back to ttl (or CACHE_TTL) when Redis does not report one.
    """
    value = _memory_cache.get(key)
    if value is not None:
        return value

    if not settings.REDIS_CACHE_ENABLED:
        return None

    raw = cache_get(key)
    if raw is None:
        return None
    try:
        value = json.loads(raw)
    except ValueError:
        logger.warning("Discarding undecodable cache entry for key=%s", key)
        return None
    remaining = cache_ttl(key)
    _memory_cache.set(key, value, ttl=remaining if remaining is not None else ttl)
    return value


def set_cached_json(key: str, value: Any, ttl: int) -> None:
    """Store a JSON-serialisable value in memory and, if enabled, Redis."""
    _memory_cache.set(key, value, ttl=ttl)
    if settings.REDIS_CACHE_ENABLED:
        cache_set(key, json.dumps(value, ensure_ascii=False), ttl)


def clear_memory_cache() -> None:
    _memory_cache.clear()
