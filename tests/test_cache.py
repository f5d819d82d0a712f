"""
Tests for the best-effort Redis helpers (STORY-012).

CHANGELOG:
- 2026-10-15: Initial creation (STORY-012)

TODO:
- None
"""

from __future__ import annotations

from unittest.mock import AsyncMock, patch

import pytest

from solar_rollup.cache.redis_client import (
    CURRENT_CACHE_KEY,
    invalidate_current_cache,
    read_cached,
    write_cached,
)

REDIS_URL = "redis://localhost:6379/0"


def _mock_redis_client(**side_effects: Exception) -> AsyncMock:
    mock = AsyncMock()
    mock.get = AsyncMock(return_value=b'{"power": 1}', side_effect=side_effects.get("get"))
    mock.set = AsyncMock(side_effect=side_effects.get("set"))
    mock.delete = AsyncMock(side_effect=side_effects.get("delete"))
    mock.aclose = AsyncMock()
    return mock


class TestDisabled:
    @pytest.mark.asyncio
    @patch("solar_rollup.cache.redis_client.get_redis")
    async def test_no_url_never_connects(self, mock_get_redis) -> None:
        assert await read_cached(None, CURRENT_CACHE_KEY) is None
        await write_cached(None, CURRENT_CACHE_KEY, "{}", 60)
        await invalidate_current_cache(None)
        mock_get_redis.assert_not_called()


class TestRoundTrip:
    @pytest.mark.asyncio
    @patch("solar_rollup.cache.redis_client.get_redis")
    async def test_read_decodes_bytes(self, mock_get_redis) -> None:
        client = _mock_redis_client()
        mock_get_redis.return_value = client

        assert await read_cached(REDIS_URL, CURRENT_CACHE_KEY) == '{"power": 1}'
        client.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    @patch("solar_rollup.cache.redis_client.get_redis")
    async def test_write_sets_ttl(self, mock_get_redis) -> None:
        client = _mock_redis_client()
        mock_get_redis.return_value = client

        await write_cached(REDIS_URL, CURRENT_CACHE_KEY, "{}", 60)

        client.set.assert_awaited_once_with(CURRENT_CACHE_KEY, "{}", ex=60)

    @pytest.mark.asyncio
    @patch("solar_rollup.cache.redis_client.get_redis")
    async def test_invalidate_deletes_current_key(self, mock_get_redis) -> None:
        client = _mock_redis_client()
        mock_get_redis.return_value = client

        await invalidate_current_cache(REDIS_URL)

        client.delete.assert_awaited_once_with(CURRENT_CACHE_KEY)


class TestFailuresSwallowed:
    """Redis outages degrade to cache misses and never raise."""

    @pytest.mark.asyncio
    @patch("solar_rollup.cache.redis_client.get_redis")
    async def test_read_failure_is_miss(self, mock_get_redis) -> None:
        mock_get_redis.return_value = _mock_redis_client(get=ConnectionError("refused"))
        assert await read_cached(REDIS_URL, CURRENT_CACHE_KEY) is None

    @pytest.mark.asyncio
    @patch("solar_rollup.cache.redis_client.get_redis")
    async def test_write_and_invalidate_failures_logged(self, mock_get_redis, caplog) -> None:
        mock_get_redis.return_value = _mock_redis_client(
            set=ConnectionError("refused"), delete=ConnectionError("refused")
        )

        await write_cached(REDIS_URL, CURRENT_CACHE_KEY, "{}", 60)
        await invalidate_current_cache(REDIS_URL)

        assert "Redis write failed" in caplog.text
        assert "Failed to invalidate" in caplog.text
