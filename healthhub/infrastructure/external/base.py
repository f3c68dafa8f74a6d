"""Shared HTTP and caching plumbing for third-party REST adapters.

Every adapter:
- talks to one upstream through its own ``httpx.AsyncClient`` (10 s timeout)
- caches raw upstream payloads in a process-local ``TTLCache`` keyed by the
  normalized request parameters, with Redis as an optional shared L2
- never raises on upstream failure: it returns ``Degraded`` instead
"""

import json
import logging
from typing import Any

import httpx
from opentelemetry import metrics, trace

from healthhub.core.cache import (
    TTLCache,
    cache_get,
    cache_remaining_ttl,
    cache_set,
    make_cache_key,
    redis_key,
)
from healthhub.core.config import settings
from healthhub.infrastructure.external.result import Degraded, Ok, Result

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)

meter = metrics.get_meter("healthhub-api.external")

upstream_requests_counter = meter.create_counter(
    name="external_api_requests_total",
    description="Requests sent to third-party health data APIs",
    unit="1",
)

degraded_counter = meter.create_counter(
    name="external_api_degraded_total",
    description="Third-party API calls that returned a degraded result",
    unit="1",
)


class ExternalAPIClient:
    """Base class for cached, non-raising third-party API clients.

    Args:
        source: Short upstream name, used in logs, metrics and Degraded.source
        base_url: Upstream base URL
        ttl_seconds: Lifetime of cached payloads
        timeout: Per-request timeout in seconds
        cache: Pre-built cache (tests inject one with a fake clock)
        transport: Optional httpx transport (tests inject ``httpx.MockTransport``)
    """

    def __init__(
        self,
        source: str,
        base_url: str,
        ttl_seconds: float,
        timeout: float | None = None,
        cache: TTLCache | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.source = source
        self.base_url = base_url
        self.ttl_seconds = ttl_seconds
        self.timeout = timeout or settings.EXTERNAL_API_TIMEOUT
        self.cache = cache or TTLCache(source, ttl_seconds=ttl_seconds)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers={"Accept": "application/json"},
                transport=self._transport,
            )
        return self._client

    async def _get_json(
        self,
        path: str,
        params: dict[str, Any],
        cache_prefix: str,
        cache_params: dict[str, Any] | None = None,
        not_found_is_empty: bool = False,
    ) -> Result[Any]:
        """GET a JSON payload through the cache.

        Args:
            path: Path relative to the adapter base URL
            params: Query parameters sent upstream
            cache_prefix: Namespace of the cache key
            cache_params: Parameters identifying the entry (defaults to params)
            not_found_is_empty: Treat a 404 as a successful empty answer (``Ok(None)``)

        Returns:
            ``Ok(payload)`` on success, ``Degraded`` on any transport or HTTP failure
        """
        key = make_cache_key(cache_prefix, cache_params if cache_params is not None else params)

        cached = self.cache.get(key)
        if cached is not None:
            return Ok(cached)

        shared = await cache_get(redis_key(key))
        if shared is not None:
            payload = json.loads(shared)
            # Keep the Redis expiry so an entry never outlives its TTL
            remaining = await cache_remaining_ttl(redis_key(key))
            if remaining is not None:
                self.cache.set(key, payload, ttl=min(remaining, self.ttl_seconds))
            return Ok(payload)

        with tracer.start_as_current_span(f"{self.source}_request") as span:
            span.set_attribute("external.source", self.source)
            span.set_attribute("external.path", path)
            upstream_requests_counter.add(1, {"source": self.source})

            try:
                client = await self._get_client()
                response = await client.get(path, params=params)
                if response.status_code == 404 and not_found_is_empty:
                    span.add_event("No match upstream")
                    payload = None
                else:
                    response.raise_for_status()
                    payload = response.json()
            except (httpx.HTTPError, ValueError) as e:
                span.record_exception(e)
                degraded_counter.add(1, {"source": self.source})
                logger.error(f"[{self.source}] request to {path} failed: {e}")
                return Degraded(reason=f"{self.source} request failed: {e}", source=self.source)

        if payload is not None:
            self.cache.set(key, payload)
            await cache_set(redis_key(key), json.dumps(payload), ttl=int(self.ttl_seconds))
        return Ok(payload)

    async def close(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
