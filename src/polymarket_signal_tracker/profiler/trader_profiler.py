"""Trader profiles with a Redis cache in front of the Data API and Polygon RPC."""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from redis.asyncio import Redis

from polymarket_signal_tracker.profiler.models import PositionSummary, TraderProfile

if TYPE_CHECKING:
    from polymarket_signal_tracker.ingestor.data_api import DataApiClient
    from polymarket_signal_tracker.ingestor.rate_limiter import AdaptiveRateLimiter
    from polymarket_signal_tracker.profiler.chain import PolygonClient

logger = logging.getLogger(__name__)

DEFAULT_PROFILE_TTL_SECONDS = 24 * 60 * 60
CACHE_KEY_PREFIX = "wallet:"


@dataclass
class ProfilerStats:
    cache_hits: int = 0
    cache_misses: int = 0
    position_failures: int = 0
    tx_count_failures: int = 0
    cache_errors: int = 0


class TraderProfiler:
    """Builds TraderProfile records, cache first.

    Lookups never raise. A failed position lookup yields zero PnL and win
    rate; a failed transaction-count lookup leaves the wallet neither fresh
    nor active. Degraded profiles are returned but not cached.

    Example:
        ```python
        profiler = TraderProfiler(redis=redis, data_api=data_api, polygon=polygon)
        profile = await profiler.get_profile("0xabc...")
        ```
    """

    def __init__(
        self,
        *,
        redis: Redis,
        data_api: DataApiClient,
        polygon: PolygonClient,
        rate_limiter: AdaptiveRateLimiter | None = None,
        ttl_seconds: int = DEFAULT_PROFILE_TTL_SECONDS,
    ) -> None:
        self._redis = redis
        self._data_api = data_api
        self._polygon = polygon
        self._rate_limiter = rate_limiter
        self._ttl = ttl_seconds
        self._stats = ProfilerStats()

    @property
    def stats(self) -> ProfilerStats:
        return self._stats

    @staticmethod
    def cache_key(address: str) -> str:
        return f"{CACHE_KEY_PREFIX}{address.lower()}"

    async def get_profile(self, address: str) -> TraderProfile:
        """Return the profile for a wallet.

        Args:
            address: Wallet address in any case.

        Returns:
            TraderProfile keyed by the lowercased address.
        """
        address = address.lower()
        cached = await self._get_cached(address)
        if cached is not None:
            self._stats.cache_hits += 1
            return cached
        self._stats.cache_misses += 1

        summary, tx_count = await asyncio.gather(
            self._fetch_position_summary(address),
            self._fetch_tx_count(address),
        )

        profile = TraderProfile.build(address, summary or PositionSummary(), tx_count)
        if summary is None or tx_count is None:
            return profile
        await self._set_cached(profile)
        return profile

    async def _get_cached(self, address: str) -> TraderProfile | None:
        try:
            raw = await self._redis.get(self.cache_key(address))
        except Exception as e:
            self._stats.cache_errors += 1
            logger.debug("Profile cache read failed: %s", e)
            return None
        if not raw:
            return None
        try:
            if isinstance(raw, bytes):
                raw = raw.decode()
            return TraderProfile.from_dict(json.loads(raw))
        except (ValueError, TypeError) as e:
            logger.warning("Discarding unreadable cached profile for %s: %s", address[:10] + "...", e)
            return None

    async def _set_cached(self, profile: TraderProfile) -> None:
        try:
            await self._redis.setex(
                self.cache_key(profile.address),
                self._ttl,
                json.dumps(profile.to_dict()),
            )
        except Exception as e:
            self._stats.cache_errors += 1
            logger.debug("Profile cache write failed: %s", e)

    async def _fetch_position_summary(self, address: str) -> PositionSummary | None:
        try:
            if self._rate_limiter:
                await self._rate_limiter.wait()
            open_positions, closed_positions = await asyncio.gather(
                self._data_api.get_positions(address),
                self._data_api.get_closed_positions(address),
            )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._stats.position_failures += 1
            if self._rate_limiter:
                self._rate_limiter.record_error()
            logger.warning("Position lookup failed for %s: %s", address[:10] + "...", e)
            return None

        if self._rate_limiter:
            self._rate_limiter.record_success()
        return PositionSummary.from_positions(open_positions, closed_positions)

    async def _fetch_tx_count(self, address: str) -> int | None:
        try:
            return await self._polygon.get_transaction_count(address)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._stats.tx_count_failures += 1
            logger.warning("Transaction count lookup failed for %s: %s", address[:10] + "...", e)
            return None
