"""Tests for the cached trader profiler."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from polymarket_signal_tracker.profiler.models import TraderProfile
from polymarket_signal_tracker.profiler.trader_profiler import TraderProfiler

WALLET = "0x742d35Cc6634C0532925a3b844Bc9e7595f5eaE2"


@pytest.fixture
def mock_redis() -> AsyncMock:
    redis = AsyncMock()
    redis.get = AsyncMock(return_value=None)
    redis.setex = AsyncMock()
    return redis


@pytest.fixture
def mock_data_api() -> AsyncMock:
    data_api = AsyncMock()
    data_api.get_positions = AsyncMock(
        return_value=[{"cashPnl": 40000, "percentPnl": 20, "currentValue": 25000}]
    )
    data_api.get_closed_positions = AsyncMock(
        return_value=[{"realizedPnl": 20000}, {"realizedPnl": -500}]
    )
    return data_api


@pytest.fixture
def mock_polygon() -> AsyncMock:
    polygon = AsyncMock()
    polygon.get_transaction_count = AsyncMock(return_value=4)
    return polygon


@pytest.fixture
def profiler(mock_redis: AsyncMock, mock_data_api: AsyncMock, mock_polygon: AsyncMock) -> TraderProfiler:
    return TraderProfiler(redis=mock_redis, data_api=mock_data_api, polygon=mock_polygon, ttl_seconds=60)


class TestGetProfile:
    @pytest.mark.asyncio
    async def test_builds_and_caches_profile(
        self, profiler: TraderProfiler, mock_redis: AsyncMock, mock_polygon: AsyncMock
    ) -> None:
        profile = await profiler.get_profile(WALLET)

        assert profile.address == WALLET.lower()
        assert profile.total_pnl == pytest.approx(59500.0)
        assert profile.win_rate == pytest.approx(2 / 3)
        assert profile.label == "Smart Whale"
        assert profile.is_fresh
        assert profile.is_whale
        mock_polygon.get_transaction_count.assert_awaited_once_with(WALLET.lower())

        key, ttl, payload = mock_redis.setex.await_args.args
        assert key == f"wallet:{WALLET.lower()}"
        assert ttl == 60
        assert json.loads(payload)["label"] == "Smart Whale"
        assert profiler.stats.cache_misses == 1

    @pytest.mark.asyncio
    async def test_cache_hit_skips_lookups(
        self, profiler: TraderProfiler, mock_redis: AsyncMock, mock_data_api: AsyncMock
    ) -> None:
        cached = TraderProfile(address=WALLET.lower(), label="Whale", total_pnl=90000.0)
        mock_redis.get.return_value = json.dumps(cached.to_dict()).encode()

        profile = await profiler.get_profile(WALLET)

        assert profile == cached
        mock_data_api.get_positions.assert_not_awaited()
        assert profiler.stats.cache_hits == 1

    @pytest.mark.asyncio
    async def test_unreadable_cache_entry_is_refetched(
        self, profiler: TraderProfiler, mock_redis: AsyncMock, mock_data_api: AsyncMock
    ) -> None:
        mock_redis.get.return_value = b"{not json"

        await profiler.get_profile(WALLET)

        mock_data_api.get_positions.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_tx_count_failure_is_not_fresh_and_not_cached(
        self, profiler: TraderProfiler, mock_redis: AsyncMock, mock_polygon: AsyncMock
    ) -> None:
        mock_polygon.get_transaction_count.side_effect = RuntimeError("rpc down")

        profile = await profiler.get_profile(WALLET)

        assert not profile.is_fresh
        assert profile.total_pnl == pytest.approx(59500.0)
        mock_redis.setex.assert_not_awaited()
        assert profiler.stats.tx_count_failures == 1

    @pytest.mark.asyncio
    async def test_position_failure_degrades_to_zero(
        self, profiler: TraderProfiler, mock_redis: AsyncMock, mock_data_api: AsyncMock
    ) -> None:
        mock_data_api.get_closed_positions.side_effect = RuntimeError("api down")
        limiter = MagicMock()
        limiter.wait = AsyncMock()
        profiler._rate_limiter = limiter

        profile = await profiler.get_profile(WALLET)

        assert profile.total_pnl == 0.0
        assert profile.win_rate == 0.0
        assert profile.is_fresh
        limiter.record_error.assert_called_once()
        mock_redis.setex.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_redis_errors_do_not_fail_lookup(
        self, profiler: TraderProfiler, mock_redis: AsyncMock
    ) -> None:
        mock_redis.get.side_effect = ConnectionError("redis gone")
        mock_redis.setex.side_effect = ConnectionError("redis gone")

        profile = await profiler.get_profile(WALLET)

        assert profile.label == "Smart Whale"
        assert profiler.stats.cache_errors == 2
