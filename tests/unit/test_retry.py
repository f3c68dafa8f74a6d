"""Unit tests for the startup retry decorator."""

import pytest

from healthhub.core.retry import async_retry_with_backoff


class TestAsyncRetryWithBackoff:
    """Tests for async_retry_with_backoff."""

    @pytest.mark.asyncio
    async def test_success_first_attempt(self):
        calls = 0

        @async_retry_with_backoff(max_attempts=3, min_wait_seconds=0, max_wait_seconds=0)
        async def connect():
            nonlocal calls
            calls += 1
            return "connected"

        assert await connect() == "connected"
        assert calls == 1

    @pytest.mark.asyncio
    async def test_retries_until_success(self):
        """The database accepts connections on the third attempt."""
        calls = 0

        @async_retry_with_backoff(max_attempts=5, min_wait_seconds=0, max_wait_seconds=0)
        async def connect():
            nonlocal calls
            calls += 1
            if calls < 3:
                raise ConnectionError("database starting up")
            return "connected"

        assert await connect() == "connected"
        assert calls == 3

    @pytest.mark.asyncio
    async def test_reraises_after_max_attempts(self):
        calls = 0

        @async_retry_with_backoff(max_attempts=3, min_wait_seconds=0, max_wait_seconds=0)
        async def connect():
            nonlocal calls
            calls += 1
            raise ConnectionError("database down")

        with pytest.raises(ConnectionError, match="database down"):
            await connect()
        assert calls == 3

    @pytest.mark.asyncio
    async def test_other_exceptions_are_not_retried(self):
        calls = 0

        @async_retry_with_backoff(
            max_attempts=3,
            min_wait_seconds=0,
            max_wait_seconds=0,
            exceptions=(ConnectionError,),
        )
        async def connect():
            nonlocal calls
            calls += 1
            raise ValueError("bad configuration")

        with pytest.raises(ValueError):
            await connect()
        assert calls == 1
