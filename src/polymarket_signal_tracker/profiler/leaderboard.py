"""Periodically refreshed leaderboard ranks for top-trader detection."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING

from polymarket_signal_tracker.ingestor.data_api import LeaderboardEntry, LeaderboardPeriod

if TYPE_CHECKING:
    from polymarket_signal_tracker.ingestor.data_api import DataApiClient
    from polymarket_signal_tracker.ingestor.rate_limiter import AdaptiveRateLimiter

logger = logging.getLogger(__name__)

DEFAULT_REFRESH_INTERVAL_SECONDS = 3600
DEFAULT_LIMIT = 200  # deepest ranked tier

# A wallet's effective rank comes from the first period it appears in.
PREFERRED_PERIODS: tuple[LeaderboardPeriod, ...] = (
    LeaderboardPeriod.DAILY,
    LeaderboardPeriod.WEEKLY,
    LeaderboardPeriod.MONTHLY,
    LeaderboardPeriod.ALL_TIME,
)

SnapshotCallback = Callable[[list[LeaderboardEntry]], Awaitable[None]]


@dataclass
class LeaderboardStats:
    refreshes: int = 0
    failed_periods: int = 0
    ranked_wallets: int = 0
    last_refresh_time: datetime | None = None
    last_error: str | None = None


def effective_ranks(
    entries_by_period: Mapping[LeaderboardPeriod, list[LeaderboardEntry]],
) -> dict[str, int]:
    """Collapse per-period entries into wallet -> rank.

    Daily wins over Weekly, Weekly over Monthly, Monthly over All Time.
    """
    ranks: dict[str, int] = {}
    for period in PREFERRED_PERIODS:
        for entry in entries_by_period.get(period, []):
            if entry.rank > 0:
                ranks.setdefault(entry.wallet, entry.rank)
    return ranks


class LeaderboardTracker:
    """Keeps an in-memory wallet -> rank map fresh.

    A period that fails to refresh keeps its previous entries.

    Example:
        ```python
        tracker = LeaderboardTracker(data_api, on_snapshot=repo_writer)
        await tracker.start()
        rank = tracker.rank_of("0xabc...")
        ```
    """

    def __init__(
        self,
        data_api: DataApiClient,
        *,
        limit: int = DEFAULT_LIMIT,
        refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS,
        rate_limiter: AdaptiveRateLimiter | None = None,
        on_snapshot: SnapshotCallback | None = None,
    ) -> None:
        self._data_api = data_api
        self._limit = limit
        self._refresh_interval = refresh_interval_seconds
        self._rate_limiter = rate_limiter
        self._on_snapshot = on_snapshot

        self._entries: dict[LeaderboardPeriod, list[LeaderboardEntry]] = {}
        self._ranks: Mapping[str, int] = MappingProxyType({})
        self._stats = LeaderboardStats()
        self._task: asyncio.Task[None] | None = None
        self._stop_event = asyncio.Event()

    @property
    def stats(self) -> LeaderboardStats:
        return self._stats

    @property
    def ranks(self) -> Mapping[str, int]:
        """Read-only view of the current wallet -> rank map."""
        return self._ranks

    def rank_of(self, wallet: str) -> int:
        """Rank of a wallet, 0 when unranked."""
        return self._ranks.get(wallet.lower(), 0)

    async def refresh(self) -> None:
        fresh: list[LeaderboardEntry] = []
        for period in PREFERRED_PERIODS:
            try:
                if self._rate_limiter:
                    await self._rate_limiter.wait()
                entries = await self._data_api.get_leaderboard(period, limit=self._limit)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                if self._rate_limiter:
                    self._rate_limiter.record_error()
                self._stats.failed_periods += 1
                self._stats.last_error = str(e)
                logger.warning("Leaderboard refresh failed for %s: %s", period.value, e)
                continue
            if self._rate_limiter:
                self._rate_limiter.record_success()
            self._entries[period] = entries
            fresh.extend(entries)

        self._ranks = MappingProxyType(effective_ranks(self._entries))
        self._stats.refreshes += 1
        self._stats.ranked_wallets = len(self._ranks)
        self._stats.last_refresh_time = datetime.now(UTC)
        logger.info("Leaderboard refreshed: %d ranked wallets", len(self._ranks))

        if fresh and self._on_snapshot:
            try:
                await self._on_snapshot(fresh)
            except Exception as e:
                logger.error("Failed to persist leaderboard snapshot: %s", e)

    async def start(self) -> None:
        if self._task is not None:
            return
        self._stop_event.clear()
        await self.refresh()
        self._task = asyncio.create_task(self._refresh_loop())

    async def stop(self) -> None:
        self._stop_event.set()
        if self._task:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def _refresh_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=self._refresh_interval)
                    break
                except TimeoutError:
                    pass
                await self.refresh()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Leaderboard loop error: %s", e)
                self._stats.last_error = str(e)
