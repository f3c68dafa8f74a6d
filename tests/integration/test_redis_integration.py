"""
Redis integration tests for the shared cache layer.

Uses a real Redis on port 6380.
"""

import json
from unittest.mock import patch

import httpx
import pytest
from redis.asyncio import Redis

from healthhub.core import cache
from healthhub.core.cache import cache_delete, cache_get, cache_set, make_cache_key, redis_key
from healthhub.infrastructure.external import ClinicalTrialsClient, Ok


@pytest.fixture
async def shared_cache(redis_client: Redis):
    """healthhub.core.cache wired to the test Redis with caching enabled."""
    with patch.object(cache.settings, "CACHE_ENABLED", True):
        await cache.init_redis()
        yield redis_client
        await cache.close_redis()


@pytest.mark.integration
@pytest.mark.asyncio
async def test_set_get_delete(shared_cache: Redis):
    assert await cache_set("healthhub:drug:aspirin", '{"brandName": "Aspirin"}', ttl=60)

    assert await cache_get("healthhub:drug:aspirin") == '{"brandName": "Aspirin"}'
    assert 0 < await shared_cache.ttl("healthhub:drug:aspirin") <= 60

    assert await cache_delete("healthhub:drug:aspirin")
    assert await cache_get("healthhub:drug:aspirin") is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_missing_key_is_a_miss(shared_cache: Redis):
    assert await cache_get("healthhub:drug:unknown") is None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_adapters_share_entries_through_redis(shared_cache: Redis):
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request.url.path)
        return httpx.Response(200, json={"studies": [], "totalCount": 0})

    first = ClinicalTrialsClient(base_url="https://ct.test/api/v2", transport=httpx.MockTransport(handler))
    second = ClinicalTrialsClient(base_url="https://ct.test/api/v2", transport=httpx.MockTransport(handler))
    try:
        assert isinstance(await first.search_trials(["asthma"]), Ok)
        assert isinstance(await second.search_trials(["asthma"]), Ok)
    finally:
        await first.close()
        await second.close()

    assert calls == ["/api/v2/studies"]
    keys = await shared_cache.keys("healthhub:trials:*")
    assert len(keys) == 1
    assert json.loads(await shared_cache.get(keys[0]))["totalCount"] == 0


@pytest.mark.integration
@pytest.mark.asyncio
async def test_redis_key_namespace(shared_cache: Redis):
    key = redis_key(make_cache_key("npi", {"number": "1234567893", "version": "2.1"}))

    await cache_set(key, "{}", ttl=30)

    assert await shared_cache.exists('healthhub:npi:{"number": "1234567893", "version": "2.1"}') == 1
