"""In-memory market metadata cache rebuilt on a fixed interval.

Each refresh builds a complete new snapshot and swaps it in with a single
reference assignment, so a lookup never mixes entries from two refreshes.
"""

import asyncio
import contextlib
import logging
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Generic, TypeVar

from polymarket_signal_tracker.ingestor.gamma_client import GammaClient, parse_market_data
from polymarket_signal_tracker.ingestor.models import AssetOutcome, MarketMeta

logger = logging.getLogger(__name__)

K = TypeVar("K")
V = TypeVar("V")

# Default configuration
DEFAULT_REFRESH_INTERVAL_SECONDS = 300  # 5 minutes
DEFAULT_MAX_MARKETS = 5000
DEFAULT_MAX_ASSETS = 10000
EVICTION_FRACTION = 0.1


class BoundedFifoDict(OrderedDict[K, V], Generic[K, V]):
    """Dict capped at maxsize that evicts in insertion order.

    When a new key arrives at capacity, the oldest 10% of keys (at least
    one) are dropped first. Reads do not refresh an entry's position.
    """

    def __init__(self, maxsize: int) -> None:
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        super().__init__()
        self.maxsize = maxsize
        self.evictions = 0

    def __setitem__(self, key: K, value: V) -> None:
        if key not in self and len(self) >= self.maxsize:
            evict = max(1, int(self.maxsize * EVICTION_FRACTION))
            for _ in range(evict):
                self.popitem(last=False)
            self.evictions += evict
        super().__setitem__(key, value)


@dataclass(frozen=True)
class MetadataSnapshot:
    """One immutable generation of the metadata indexes."""

    markets: BoundedFifoDict[str, MarketMeta]
    assets: BoundedFifoDict[str, AssetOutcome]
    refreshed_at: datetime | None = None

    @classmethod
    def empty(cls, max_markets: int, max_assets: int) -> "MetadataSnapshot":
        return cls(markets=BoundedFifoDict(max_markets), assets=BoundedFifoDict(max_assets))


class SyncState(str, Enum):
    """State of the metadata cache refresher."""

    STOPPED = "stopped"
    STARTING = "starting"
    SYNCING = "syncing"
    IDLE = "idle"
    STOPPING = "stopping"
    ERROR = "error"


@dataclass
class SyncStats:
    """Statistics for the metadata refresh process."""

    total_syncs: int = 0
    successful_syncs: int = 0
    failed_syncs: int = 0
    markets_cached: int = 0
    assets_cached: int = 0
    markets_skipped: int = 0
    last_sync_time: datetime | None = None
    last_sync_duration_seconds: float = 0.0
    last_error: str | None = None


StateCallback = Callable[[SyncState], None]


@dataclass(frozen=True)
class ResolvedAsset:
    """Outcome and market an asset resolved to, taken from one snapshot."""

    outcome: AssetOutcome
    market: MarketMeta | None = field(default=None)


class MarketMetadataCache:
    """Bounded condition -> market and asset -> outcome indexes.

    Refresh failures keep the previous snapshot in place.

    Example:
        ```python
        cache = MarketMetadataCache(GammaClient())
        await cache.start()
        resolved = cache.resolve_asset("7132...")
        await cache.stop()
        ```
    """

    def __init__(
        self,
        gamma_client: GammaClient,
        *,
        refresh_interval_seconds: int = DEFAULT_REFRESH_INTERVAL_SECONDS,
        max_markets: int = DEFAULT_MAX_MARKETS,
        max_assets: int = DEFAULT_MAX_ASSETS,
        on_state_change: StateCallback | None = None,
    ) -> None:
        self._gamma = gamma_client
        self._refresh_interval = refresh_interval_seconds
        self._max_markets = max_markets
        self._max_assets = max_assets
        self._on_state_change = on_state_change

        self._snapshot = MetadataSnapshot.empty(max_markets, max_assets)
        self._state = SyncState.STOPPED
        self._stats = SyncStats()
        self._refresh_task: asyncio.Task[None] | None = None
        self._refresh_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def stats(self) -> SyncStats:
        return self._stats

    @property
    def snapshot(self) -> MetadataSnapshot:
        return self._snapshot

    @property
    def market_count(self) -> int:
        return len(self._snapshot.markets)

    @property
    def asset_count(self) -> int:
        return len(self._snapshot.assets)

    def _set_state(self, new_state: SyncState) -> None:
        old_state = self._state
        self._state = new_state
        if self._on_state_change and old_state != new_state:
            try:
                self._on_state_change(new_state)
            except Exception as e:
                logger.warning("State change callback failed: %s", e)

    def get_market(self, condition_id: str) -> MarketMeta | None:
        return self._snapshot.markets.get(condition_id)

    def get_outcome(self, asset_id: str) -> AssetOutcome | None:
        return self._snapshot.assets.get(asset_id)

    def resolve_asset(self, asset_id: str) -> ResolvedAsset | None:
        """Resolve an asset to its outcome and market.

        Both lookups read the same snapshot even if a refresh swaps in a new
        one concurrently.
        """
        snapshot = self._snapshot
        outcome = snapshot.assets.get(asset_id)
        if outcome is None:
            return None
        return ResolvedAsset(outcome=outcome, market=snapshot.markets.get(outcome.condition_id))

    def replace_snapshot(self, snapshot: MetadataSnapshot) -> None:
        self._snapshot = snapshot

    async def start(self) -> None:
        """Run an initial refresh and start the periodic refresh task."""
        if self._state != SyncState.STOPPED:
            logger.warning("Cannot start metadata cache: already in state %s", self._state)
            return

        self._set_state(SyncState.STARTING)
        self._stop_event.clear()

        # An empty cache only filters trades out; keep going and retry next interval.
        await self.refresh()

        self._refresh_task = asyncio.create_task(self._refresh_loop())
        if self._state != SyncState.ERROR:
            self._set_state(SyncState.IDLE)
        logger.info("Market metadata cache started")

    async def stop(self) -> None:
        if self._state == SyncState.STOPPED:
            return

        self._set_state(SyncState.STOPPING)
        self._stop_event.set()

        if self._refresh_task:
            self._refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refresh_task
            self._refresh_task = None

        self._set_state(SyncState.STOPPED)
        logger.info("Market metadata cache stopped")

    async def refresh(self) -> bool:
        """Fetch markets and swap in a freshly built snapshot.

        Returns:
            True if the snapshot was replaced.
        """
        async with self._refresh_lock:
            self._set_state(SyncState.SYNCING)
            started = time.monotonic()
            self._stats.total_syncs += 1

            try:
                markets = await self._gamma.fetch_active_markets()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._stats.failed_syncs += 1
                self._stats.last_error = str(e)
                self._set_state(SyncState.ERROR)
                logger.error("Metadata refresh failed, keeping previous snapshot: %s", e)
                return False

            parsed = parse_market_data(markets)
            snapshot = MetadataSnapshot(
                markets=BoundedFifoDict(self._max_markets),
                assets=BoundedFifoDict(self._max_assets),
                refreshed_at=datetime.now(UTC),
            )
            for condition_id, meta in parsed.markets_by_condition.items():
                snapshot.markets[condition_id] = meta
            for asset_id, outcome in parsed.asset_to_outcome.items():
                snapshot.assets[asset_id] = outcome

            self._snapshot = snapshot

            self._stats.successful_syncs += 1
            self._stats.markets_cached = len(snapshot.markets)
            self._stats.assets_cached = len(snapshot.assets)
            self._stats.markets_skipped = parsed.skipped
            self._stats.last_sync_time = snapshot.refreshed_at
            self._stats.last_sync_duration_seconds = time.monotonic() - started
            self._stats.last_error = None
            self._set_state(SyncState.IDLE)

            logger.info(
                "Mapped %d markets and %d assets (%d skipped)",
                len(snapshot.markets),
                len(snapshot.assets),
                parsed.skipped,
            )
            return True

    async def _refresh_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                try:
                    await asyncio.wait_for(
                        self._stop_event.wait(),
                        timeout=self._refresh_interval,
                    )
                    break
                except TimeoutError:
                    pass

                if self._stop_event.is_set():
                    break

                await self.refresh()

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("Metadata refresh loop error: %s", e)
                self._stats.last_error = str(e)
                self._set_state(SyncState.ERROR)
