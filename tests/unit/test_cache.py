"""Unit tests for the TTL cache and the optional Redis cache-aside layer."""

from unittest.mock import AsyncMock, patch

import pytest

from healthhub.core.cache import (
    TTLCache,
    cache_delete,
    cache_get,
    cache_remaining_ttl,
    cache_set,
    make_cache_key,
    redis_key,
)


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestTTLCache:
    """Tests for the process-local TTLCache."""

    def test_get_returns_value_before_expiry(self):
        clock = FakeClock()
        cache = TTLCache("drugs", ttl_seconds=3600, clock=clock)
        cache.set("drug:aspirin", {"brand_name": "Aspirin"})

        clock.now = 3599.9

        assert cache.get("drug:aspirin") == {"brand_name": "Aspirin"}

    def test_entry_expires_at_ttl(self):
        """An entry read exactly at its expiry is a miss and is evicted."""
        clock = FakeClock()
        cache = TTLCache("drugs", ttl_seconds=3600, clock=clock)
        cache.set("drug:aspirin", {"brand_name": "Aspirin"})

        clock.now = 3600

        assert cache.get("drug:aspirin") is None
        assert len(cache) == 0

    def test_set_refreshes_expiry(self):
        clock = FakeClock()
        cache = TTLCache("npi", ttl_seconds=10, clock=clock)
        cache.set("k", 1)
        clock.now = 8
        cache.set("k", 2)
        clock.now = 15

        assert cache.get("k") == 2

    def test_missing_key(self):
        cache = TTLCache("trials", ttl_seconds=900)
        assert cache.get("absent") is None

    def test_delete_and_clear(self):
        cache = TTLCache("trials", ttl_seconds=900)
        cache.set("a", 1)
        cache.set("b", 2)

        cache.delete("a")
        cache.delete("never-set")
        assert cache.get("a") is None
        assert len(cache) == 1

        cache.clear()
        assert len(cache) == 0

    def test_expired_entries_do_not_accumulate(self):
        """Distinct keys that are never read again are dropped once expired."""
        clock = FakeClock()
        cache = TTLCache("drugs", ttl_seconds=1, clock=clock)

        for i in range(1000):
            cache.set(f"drug:{i}", {"i": i})
            clock.now += 2

        assert len(cache) <= 1

    def test_size_is_bounded(self):
        cache = TTLCache("npi", ttl_seconds=3600, maxsize=3, clock=FakeClock())
        for key in ("a", "b", "c", "d"):
            cache.set(key, key)

        assert len(cache) == 3
        assert cache.get("a") is None
        assert cache.get("d") == "d"

    def test_entry_ttl_overrides_default(self):
        clock = FakeClock()
        cache = TTLCache("trials", ttl_seconds=900, clock=clock)
        cache.set("short", 1, ttl=30)
        cache.set("long", 2)

        clock.now = 30

        assert cache.get("short") is None
        assert cache.get("long") == 2


class TestMakeCacheKey:
    """Tests for cache key normalization."""

    def test_key_order_does_not_matter(self):
        a = make_cache_key("trials", {"conditions": ["asthma"], "page_size": 20})
        b = make_cache_key("trials", {"page_size": 20, "conditions": ["asthma"]})
        assert a == b

    def test_none_values_are_dropped(self):
        a = make_cache_key("trials", {"conditions": ["asthma"], "phase": None})
        b = make_cache_key("trials", {"conditions": ["asthma"]})
        assert a == b

    def test_different_values_differ(self):
        a = make_cache_key("trials", {"phase": ["PHASE2"]})
        b = make_cache_key("trials", {"phase": ["PHASE3"]})
        assert a != b
        assert a.startswith("trials:")

    def test_redis_key_namespace(self):
        assert redis_key("drug:aspirin") == "healthhub:drug:aspirin"


class TestCacheGet:
    """Tests for cache_get()."""

    @pytest.mark.asyncio
    async def test_cache_get_hit(self):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value='{"brand_name": "Aspirin"}')

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True

                result = await cache_get("healthhub:drug:aspirin")

                assert result == '{"brand_name": "Aspirin"}'
                mock_redis.get.assert_called_once_with("healthhub:drug:aspirin")

    @pytest.mark.asyncio
    async def test_cache_get_miss(self):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(return_value=None)

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True

                assert await cache_get("healthhub:drug:unknown") is None

    @pytest.mark.asyncio
    async def test_cache_get_disabled(self):
        """With the cache disabled Redis is never called."""
        mock_redis = AsyncMock()

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = False

                assert await cache_get("healthhub:drug:aspirin") is None
                mock_redis.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_cache_get_error_is_a_miss(self):
        mock_redis = AsyncMock()
        mock_redis.get = AsyncMock(side_effect=ConnectionError("Redis down"))

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True

                assert await cache_get("healthhub:drug:aspirin") is None

    @pytest.mark.asyncio
    async def test_cache_get_no_client(self):
        with patch("healthhub.core.cache._get_redis_client", return_value=None):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True

                assert await cache_get("healthhub:drug:aspirin") is None


class TestCacheSet:
    """Tests for cache_set() and cache_delete()."""

    @pytest.mark.asyncio
    async def test_cache_set_default_ttl(self):
        mock_redis = AsyncMock()

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True
                mock_settings.CACHE_TTL_DEFAULT = 600

                assert await cache_set("healthhub:npi:1234567890", "{}") is True
                mock_redis.set.assert_called_once_with("healthhub:npi:1234567890", "{}", ex=600)

    @pytest.mark.asyncio
    async def test_cache_set_custom_ttl(self):
        mock_redis = AsyncMock()

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True
                mock_settings.CACHE_TTL_DEFAULT = 600

                await cache_set("healthhub:trials:x", "{}", ttl=900)
                mock_redis.set.assert_called_once_with("healthhub:trials:x", "{}", ex=900)

    @pytest.mark.asyncio
    async def test_cache_set_error_returns_false(self):
        mock_redis = AsyncMock()
        mock_redis.set = AsyncMock(side_effect=ConnectionError("Redis down"))

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True
                mock_settings.CACHE_TTL_DEFAULT = 600

                assert await cache_set("healthhub:trials:x", "{}") is False

    @pytest.mark.asyncio
    async def test_cache_delete(self):
        mock_redis = AsyncMock()

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True

                assert await cache_delete("healthhub:drug:aspirin") is True
                mock_redis.delete.assert_called_once_with("healthhub:drug:aspirin")


class TestCacheRemainingTtl:
    """Tests for cache_remaining_ttl()."""

    @pytest.mark.asyncio
    async def test_returns_seconds(self):
        mock_redis = AsyncMock()
        mock_redis.pttl = AsyncMock(return_value=42500)

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True

                assert await cache_remaining_ttl("healthhub:drug:aspirin") == 42.5

    @pytest.mark.asyncio
    async def test_missing_or_persistent_key_is_unknown(self):
        mock_redis = AsyncMock()
        mock_redis.pttl = AsyncMock(side_effect=[-2, -1])

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True

                assert await cache_remaining_ttl("healthhub:drug:gone") is None
                assert await cache_remaining_ttl("healthhub:drug:forever") is None

    @pytest.mark.asyncio
    async def test_error_is_unknown(self):
        mock_redis = AsyncMock()
        mock_redis.pttl = AsyncMock(side_effect=ConnectionError("Redis down"))

        with patch("healthhub.core.cache._get_redis_client", return_value=mock_redis):
            with patch("healthhub.core.cache.settings") as mock_settings:
                mock_settings.CACHE_ENABLED = True

                assert await cache_remaining_ttl("healthhub:drug:aspirin") is None
