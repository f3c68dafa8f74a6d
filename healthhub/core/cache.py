"""
Caching for healthhub-api.

Two layers:
- ``TTLCache``: process-local, size-bounded cache (cachetools) with a TTL.
  Each external API adapter owns one. Expired entries are dropped on the
  next write or miss; there is no background sweep. Not shared across
  processes, so horizontally scaled instances keep independent caches.
- Redis cache-aside (``cache_get``/``cache_set``/``cache_delete``): optional
  shared L2, enabled with ``CACHE_ENABLED``. Redis errors never break the
  application (graceful degradation, an error is a miss).

Usage:
    from healthhub.core.cache import TTLCache, cache_get, cache_set

    trials_cache = TTLCache("clinical_trials", ttl_seconds=900)
    cached = trials_cache.get(key)
    if cached is None:
        cached = await fetch()
        trials_cache.set(key, cached)
"""

import json
import logging
import time
from collections.abc import Callable
from typing import Any, Literal

import cachetools
import redis.asyncio as redis
from opentelemetry import metrics

from healthhub.core.config import settings

logger = logging.getLogger(__name__)

# OpenTelemetry Metrics
meter = metrics.get_meter("healthhub-api.cache")

cache_hits_counter = meter.create_counter(
    name="cache_hits_total",
    description="Total number of cache hits",
    unit="1",
)

cache_misses_counter = meter.create_counter(
    name="cache_misses_total",
    description="Total number of cache misses",
    unit="1",
)

cache_latency_histogram = meter.create_histogram(
    name="cache_latency_seconds",
    description="Cache operation latency in seconds",
    unit="s",
)


# =============================================================================
# Process-local TTL cache
# =============================================================================

DEFAULT_MAXSIZE = 1024


class TTLCache:
    """In-process key/value cache with a time-to-live, bounded in size.

    Backed by ``cachetools.TLRUCache``: expired entries are dropped whenever
    the cache is written to, and the least recently used entry goes first
    once ``maxsize`` is reached.

    Args:
        name: Cache name, used as the metrics label
        ttl_seconds: Default lifetime of an entry
        maxsize: Maximum number of entries
        clock: Monotonic clock returning seconds. Injectable for tests.

    Example:
        ```python
        now = [0.0]
        cache = TTLCache("drugs", ttl_seconds=3600, clock=lambda: now[0])
        cache.set("drug:aspirin", info)
        now[0] = 3601
        assert cache.get("drug:aspirin") is None
        ```
    """

    def __init__(
        self,
        name: str,
        ttl_seconds: float,
        maxsize: int = DEFAULT_MAXSIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.ttl_seconds = ttl_seconds
        # Values are stored as (ttl, value) so each entry can carry its own lifetime
        self._entries: cachetools.TLRUCache = cachetools.TLRUCache(
            maxsize=maxsize,
            ttu=lambda _key, entry, now: now + entry[0],
            timer=clock,
        )

    def get(self, key: str) -> Any | None:
        """Return the cached value, or None if absent or expired."""
        try:
            _, value = self._entries[key]
        except KeyError:
            self._entries.expire()
            cache_misses_counter.add(1, {"key_prefix": self.name})
            return None

        cache_hits_counter.add(1, {"key_prefix": self.name})
        return value

    def set(self, key: str, value: Any, ttl: float | None = None) -> None:
        """Store a value for ``ttl`` seconds (the cache TTL by default)."""
        self._entries[key] = (self.ttl_seconds if ttl is None else ttl, value)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


def make_cache_key(prefix: str, params: dict[str, Any]) -> str:
    """
    Build a cache key from a normalized serialization of request parameters.

    None values are dropped and keys are sorted, so two calls with the same
    effective parameters share an entry.

    Args:
        prefix: Namespace for the key (e.g. "trials")
        params: Request parameters

    Returns:
        Key of the form "{prefix}:{json}"
    """
    normalized = {k: v for k, v in params.items() if v is not None}
    return f"{prefix}:{json.dumps(normalized, sort_keys=True, default=str)}"


# =============================================================================
# Redis cache-aside (optional L2)
# =============================================================================

# Global client (created at startup when CACHE_ENABLED)
redis_client: redis.Redis | None = None


async def init_redis():
    """Create the Redis client and check the connection."""
    global redis_client
    redis_client = redis.from_url(
        settings.REDIS_URL,
        db=settings.REDIS_DB,
        decode_responses=True,
        socket_timeout=5.0,
        socket_connect_timeout=5.0,
    )
    await redis_client.ping()
    logger.info(f"Redis client initialized: {settings.REDIS_URL}")


async def close_redis():
    """Close the Redis client."""
    global redis_client
    if redis_client:
        await redis_client.aclose()
        redis_client = None
        logger.info("Redis client closed")


def _get_redis_client():
    """
    Return the global Redis client.

    Returns:
        Redis client or None if not initialized
    """
    return redis_client


async def redis_status() -> Literal["ok", "error", "disabled"]:
    """Connection state of the shared cache, for the health check."""
    client = _get_redis_client()
    if client is None:
        return "disabled"
    try:
        await client.ping()
    except Exception as e:
        logger.warning(f"Redis ping failed: {e}")
        return "error"
    return "ok"


def _extract_key_prefix(key: str) -> str:
    """Extract the key prefix used as a metrics label."""
    parts = key.split(":")
    if len(parts) >= 2:
        return parts[1]  # healthhub:drug:aspirin -> drug
    return "unknown"


async def cache_get(key: str) -> str | None:
    """
    Read a value from Redis.

    Args:
        key: Cache key (e.g. "healthhub:drug:aspirin")

    Returns:
        JSON value, or None when missing or on error

    Note:
        Redis errors are logged and never propagate (graceful degradation)
    """
    if not settings.CACHE_ENABLED:
        return None

    redis_client = _get_redis_client()
    if not redis_client:
        logger.warning("Redis client not initialized, cache disabled")
        return None

    key_prefix = _extract_key_prefix(key)
    start_time = time.perf_counter()

    try:
        value = await redis_client.get(key)
        latency = time.perf_counter() - start_time

        cache_latency_histogram.record(latency, {"operation": "get", "key_prefix": key_prefix})

        if value:
            cache_hits_counter.add(1, {"key_prefix": key_prefix})
            logger.debug(f"Cache HIT: {key}")
            return value
        else:
            cache_misses_counter.add(1, {"key_prefix": key_prefix})
            logger.debug(f"Cache MISS: {key}")
            return None

    except Exception as e:
        latency = time.perf_counter() - start_time
        cache_latency_histogram.record(latency, {"operation": "get", "key_prefix": "error"})
        cache_misses_counter.add(1, {"key_prefix": "error"})
        logger.warning(f"Cache GET error for {key}: {e}")
        return None


async def cache_set(key: str, value: str, ttl: int | None = None) -> bool:
    """
    Write a value to Redis with a TTL.

    Args:
        key: Cache key
        value: JSON value
        ttl: Time-to-live in seconds (CACHE_TTL_DEFAULT when None)

    Returns:
        True on success, False otherwise
    """
    if not settings.CACHE_ENABLED:
        return False

    redis_client = _get_redis_client()
    if not redis_client:
        logger.warning("Redis client not initialized, cache disabled")
        return False

    ttl = ttl or settings.CACHE_TTL_DEFAULT
    key_prefix = _extract_key_prefix(key)
    start_time = time.perf_counter()

    try:
        await redis_client.set(key, value, ex=ttl)
        latency = time.perf_counter() - start_time

        cache_latency_histogram.record(latency, {"operation": "set", "key_prefix": key_prefix})
        logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
        return True

    except Exception as e:
        latency = time.perf_counter() - start_time
        cache_latency_histogram.record(latency, {"operation": "set", "key_prefix": "error"})
        logger.warning(f"Cache SET error for {key}: {e}")
        return False


async def cache_delete(key: str) -> bool:
    """Delete a key from Redis (manual invalidation)."""
    if not settings.CACHE_ENABLED:
        return False

    redis_client = _get_redis_client()
    if not redis_client:
        return False

    key_prefix = _extract_key_prefix(key)
    start_time = time.perf_counter()

    try:
        await redis_client.delete(key)
        latency = time.perf_counter() - start_time

        cache_latency_histogram.record(latency, {"operation": "delete", "key_prefix": key_prefix})
        logger.debug(f"Cache DELETE: {key}")
        return True

    except Exception as e:
        latency = time.perf_counter() - start_time
        cache_latency_histogram.record(latency, {"operation": "delete", "key_prefix": "error"})
        logger.warning(f"Cache DELETE error for {key}: {e}")
        return False


async def cache_remaining_ttl(key: str) -> float | None:
    """Seconds left before a Redis key expires, or None when unknown."""
    if not settings.CACHE_ENABLED:
        return None

    redis_client = _get_redis_client()
    if not redis_client:
        return None

    try:
        remaining_ms = await redis_client.pttl(key)
    except Exception as e:
        logger.warning(f"Cache PTTL error for {key}: {e}")
        return None

    # -2: no such key, -1: no expiry
    if remaining_ms is None or remaining_ms < 0:
        return None
    return remaining_ms / 1000


def redis_key(local_key: str) -> str:
    """Namespace a local cache key for Redis ("healthhub:{local_key}")."""
    return f"healthhub:{local_key}"


__all__ = [
    "TTLCache",
    "cache_delete",
    "cache_get",
    "cache_remaining_ttl",
    "cache_set",
    "close_redis",
    "init_redis",
    "make_cache_key",
    "redis_key",
]
