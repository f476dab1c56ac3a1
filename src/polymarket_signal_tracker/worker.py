"""Enrichment worker: the stream processor behind every emitted trade event.

Per trade:
    filter -> classify -> preview event -> persist
    -> (trader profile || market impact) -> profile upsert + trade update
    -> enriched event
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from enum import Enum
from typing import TYPE_CHECKING, Any

from redis.asyncio import Redis

from polymarket_signal_tracker.config import Settings, get_settings
from polymarket_signal_tracker.events import EventBus, RedisEventPublisher, TradeAlertEvent
from polymarket_signal_tracker.ingestor.clob_client import ClobClient
from polymarket_signal_tracker.ingestor.data_api import DataApiClient
from polymarket_signal_tracker.ingestor.gamma_client import GammaClient
from polymarket_signal_tracker.ingestor.metadata_cache import MarketMetadataCache
from polymarket_signal_tracker.ingestor.rate_limiter import AdaptiveRateLimiter
from polymarket_signal_tracker.ingestor.trade_stream import TradeStreamHandler
from polymarket_signal_tracker.profiler.chain import PolygonClient
from polymarket_signal_tracker.profiler.leaderboard import PREFERRED_PERIODS, LeaderboardTracker
from polymarket_signal_tracker.profiler.models import TraderProfile
from polymarket_signal_tracker.profiler.trader_profiler import TraderProfiler
from polymarket_signal_tracker.signals.aggregation import MarketSignalService, ScoredOutcome
from polymarket_signal_tracker.signals.classifier import TradeClassification, TradeClassifier, is_insider
from polymarket_signal_tracker.signals.market_impact import NO_IMPACT, MarketImpact, MarketImpactAnalyzer
from polymarket_signal_tracker.storage.database import DatabaseManager
from polymarket_signal_tracker.storage.repos import (
    LeaderboardRepository,
    TradeRecord,
    TradeRepository,
    WalletProfileRepository,
)

if TYPE_CHECKING:
    from collections.abc import Mapping

    from sqlalchemy.ext.asyncio import AsyncSession

    from polymarket_signal_tracker.ingestor.data_api import LeaderboardEntry
    from polymarket_signal_tracker.ingestor.models import TradeEvent

logger = logging.getLogger(__name__)

# Upper bound on waiting for the trade stream to drain in-flight trades.
STREAM_SHUTDOWN_TIMEOUT = 15  # seconds


async def load_stored_ranks(session: AsyncSession) -> dict[str, int]:
    """Effective wallet ranks from the latest stored snapshot of each period."""
    ranks: dict[str, int] = {}
    repo = LeaderboardRepository(session)
    for period in PREFERRED_PERIODS:
        for wallet, rank in (await repo.latest_ranks(period.value)).items():
            if rank > 0:
                ranks.setdefault(wallet, rank)
    return ranks


async def rank_stored_markets(
    db: DatabaseManager,
    service: MarketSignalService,
    *,
    ranks: Mapping[str, int] | None = None,
    max_trades: int = 4000,
    now: datetime | None = None,
) -> list[ScoredOutcome]:
    """Rank the outcomes of persisted trades inside the service's window.

    Args:
        db: Database holding the trades and leaderboard snapshots.
        service: Signal service that defines the window and scoring.
        ranks: Wallet ranks to use; loaded from stored snapshots when None.
        max_trades: Most recent trades to consider.
        now: Reference time for the window and recency decay.

    Returns:
        Scored outcomes, strongest first.
    """
    now = now or datetime.now(UTC)
    async with db.get_async_session() as session:
        records = await TradeRepository(session).list_since(
            service.window_start(now), limit=max_trades
        )
        if ranks is None:
            ranks = await load_stored_ranks(session)
    return service.rank_markets((r.to_signal_trade() for r in records), ranks, now=now)


class WorkerState(str, Enum):
    """Worker lifecycle states."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    ERROR = "error"


class TradeDisposition(str, Enum):
    """Where a trade ended up in the worker's state machine."""

    BELOW_MINIMUM = "below_minimum"
    RESOLVED_PRICE = "resolved_price"
    UNKNOWN_ASSET = "unknown_asset"
    PERSIST_FAILED = "persist_failed"
    ENRICHMENT_FAILED = "enrichment_failed"
    ENRICHED = "enriched"

    @property
    def is_filtered(self) -> bool:
        return self in (
            TradeDisposition.BELOW_MINIMUM,
            TradeDisposition.RESOLVED_PRICE,
            TradeDisposition.UNKNOWN_ASSET,
        )


@dataclass
class WorkerStats:
    """Statistics for the worker."""

    started_at: datetime | None = None
    trades_received: int = 0
    trades_filtered: int = 0
    trades_persisted: int = 0
    trades_enriched: int = 0
    enrichment_failures: int = 0
    previews_emitted: int = 0
    enriched_emitted: int = 0
    errors: int = 0
    last_trade_time: datetime | None = None
    last_error: str | None = None


class EnrichmentWorker:
    """Consumes the trade feed and emits preview and enriched events.

    Components are created in start(). Enrichment lookups degrade to
    defaults; only a failed initial write aborts a trade.

    Example:
        ```python
        from polymarket_signal_tracker.config import get_settings
        from polymarket_signal_tracker.worker import EnrichmentWorker

        worker = EnrichmentWorker(get_settings())
        worker.events.subscribe(print_event)
        await worker.run()
        ```
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        dry_run: bool | None = None,
    ) -> None:
        """Initialize the worker.

        Args:
            settings: Application settings. If not provided, uses get_settings().
            dry_run: If True, events only reach in-process subscribers.
                Overrides settings.dry_run.
        """
        self._settings = settings or get_settings()
        self._dry_run = dry_run if dry_run is not None else self._settings.dry_run

        self._state = WorkerState.STOPPED
        self._stats = WorkerStats()

        tiers = self._settings.whale_tiers
        self._classifier = TradeClassifier(
            whale=tiers.whale,
            mega_whale=tiers.mega,
            super_whale=tiers.super_,
            god_whale=tiers.god,
        )
        self._events = EventBus()
        self._signal_service = MarketSignalService(
            window_hours=self._settings.signal.window_hours,
            top_trader_max_rank=self._settings.signal.top_trader_max_rank,
        )

        # Components (initialized in start())
        self._redis: Redis | None = None
        self._db_manager: DatabaseManager | None = None
        self._gamma_client: GammaClient | None = None
        self._data_api: DataApiClient | None = None
        self._polygon_client: PolygonClient | None = None
        self._metadata_cache: MarketMetadataCache | None = None
        self._leaderboard: LeaderboardTracker | None = None
        self._profiler: TraderProfiler | None = None
        self._impact_analyzer: MarketImpactAnalyzer | None = None
        self._redis_publisher: RedisEventPublisher | None = None
        self._trade_stream: TradeStreamHandler | None = None

        self._stop_event: asyncio.Event | None = None
        self._stream_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> WorkerState:
        return self._state

    @property
    def stats(self) -> WorkerStats:
        return self._stats

    @property
    def events(self) -> EventBus:
        """In-process event bus; receives every event, dry run or not."""
        return self._events

    @property
    def is_running(self) -> bool:
        return self._state == WorkerState.RUNNING

    async def start(self) -> None:
        """Create components, load metadata and ranks, and start consuming.

        Raises:
            RuntimeError: If the worker is not stopped.
        """
        if self._state != WorkerState.STOPPED:
            raise RuntimeError(f"Cannot start worker in state {self._state}")

        self._state = WorkerState.STARTING
        self._stop_event = asyncio.Event()
        logger.info("Starting enrichment worker...")

        try:
            self._initialize_components()
            await self._start_background_services()
            self._stats.started_at = datetime.now(UTC)
            self._state = WorkerState.RUNNING
            logger.info("Enrichment worker started (dry_run=%s)", self._dry_run)
        except Exception as e:
            self._state = WorkerState.ERROR
            self._stats.last_error = str(e)
            logger.error("Failed to start worker: %s", e)
            await self._cleanup()
            raise

    async def stop(self) -> None:
        if self._state == WorkerState.STOPPED:
            return

        self._state = WorkerState.STOPPING
        logger.info("Stopping enrichment worker...")
        if self._stop_event:
            self._stop_event.set()

        await self._stop_background_services()
        await self._cleanup()

        self._state = WorkerState.STOPPED
        logger.info("Enrichment worker stopped")

    def _initialize_components(self) -> None:
        settings = self._settings
        polymarket = settings.polymarket
        limits = settings.rate_limit

        logger.debug("Initializing Redis connection...")
        self._redis = Redis.from_url(settings.redis.url)

        logger.debug("Initializing database manager...")
        self._db_manager = DatabaseManager(settings.database.url)

        logger.debug("Initializing API clients...")
        self._gamma_client = GammaClient(
            base_url=polymarket.gamma_api_url,
            timeout=polymarket.http_timeout_seconds,
        )
        self._data_api = DataApiClient(
            base_url=polymarket.data_api_url,
            timeout=polymarket.http_timeout_seconds,
        )
        self._polygon_client = PolygonClient(
            settings.polygon.rpc_url,
            fallback_rpc_url=settings.polygon.fallback_rpc_url,
        )
        clob_client = ClobClient(host=polymarket.clob_host)

        # Profile and order-book lookups back off independently.
        def new_rate_limiter() -> AdaptiveRateLimiter:
            return AdaptiveRateLimiter(
                base_delay=limits.base_delay_seconds,
                error_step=limits.error_step_seconds,
                max_error_count=limits.max_error_count,
            )

        self._metadata_cache = MarketMetadataCache(
            self._gamma_client,
            refresh_interval_seconds=settings.cache.metadata_refresh_seconds,
            max_markets=settings.cache.max_markets,
            max_assets=settings.cache.max_assets,
        )
        self._leaderboard = LeaderboardTracker(
            self._data_api,
            limit=max(settings.leaderboard.limit, settings.signal.top_trader_max_rank),
            refresh_interval_seconds=settings.leaderboard.refresh_seconds,
            rate_limiter=new_rate_limiter(),
            on_snapshot=self._persist_leaderboard,
        )
        self._profiler = TraderProfiler(
            redis=self._redis,
            data_api=self._data_api,
            polygon=self._polygon_client,
            rate_limiter=new_rate_limiter(),
            ttl_seconds=settings.cache.profile_ttl_seconds,
        )
        self._impact_analyzer = MarketImpactAnalyzer(clob_client, new_rate_limiter())

        if not self._dry_run:
            self._redis_publisher = RedisEventPublisher(self._redis, settings.worker.event_channel)

        self._trade_stream = TradeStreamHandler(
            on_trade=self._on_trade,
            host=polymarket.trade_ws_url,
        )

    async def _start_background_services(self) -> None:
        if self._db_manager and self._db_manager.is_sqlite:
            # Local runs without migrations.
            await self._db_manager.init_schema_async()

        if self._metadata_cache:
            logger.debug("Starting metadata cache...")
            await self._metadata_cache.start()

        if self._leaderboard:
            logger.debug("Starting leaderboard tracker...")
            await self._leaderboard.start()

        if self._trade_stream:
            logger.debug("Starting trade stream...")
            self._stream_task = asyncio.create_task(self._run_trade_stream())

    async def _run_trade_stream(self) -> None:
        if not self._trade_stream:
            return
        try:
            await self._trade_stream.start()
        except asyncio.CancelledError:
            logger.debug("Trade stream task cancelled")
        except Exception as e:
            logger.error("Trade stream error: %s", e)
            self._stats.last_error = str(e)
            self._stats.errors += 1

    async def _stop_background_services(self) -> None:
        if self._trade_stream:
            logger.debug("Stopping trade stream...")
            await self._trade_stream.stop()

        if self._stream_task:
            # start() returns once in-flight trades drain.
            _, pending = await asyncio.wait({self._stream_task}, timeout=STREAM_SHUTDOWN_TIMEOUT)
            if pending:
                self._stream_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._stream_task
            self._stream_task = None

        if self._leaderboard:
            await self._leaderboard.stop()

        if self._metadata_cache:
            logger.debug("Stopping metadata cache...")
            await self._metadata_cache.stop()

    async def _cleanup(self) -> None:
        if self._gamma_client:
            await self._gamma_client.aclose()
            self._gamma_client = None

        if self._data_api:
            await self._data_api.aclose()
            self._data_api = None

        if self._polygon_client:
            await self._polygon_client.aclose()
            self._polygon_client = None

        if self._db_manager:
            await self._db_manager.dispose_async()
            self._db_manager = None

        if self._redis:
            await self._redis.aclose()
            self._redis = None

        logger.debug("Resources cleaned up")

    async def _on_trade(self, trade: TradeEvent) -> None:
        try:
            await self.process_trade(trade)
        except Exception as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.error("Error processing trade %s: %s", trade.trade_id, e)

    async def process_trade(self, trade: TradeEvent) -> TradeDisposition:
        """Run one trade through the worker's state machine.

        Args:
            trade: A validated trade from the feed.

        Returns:
            The terminal disposition of the trade.
        """
        self._stats.trades_received += 1
        self._stats.last_trade_time = datetime.now(UTC)

        value = float(trade.notional_value)
        worker_settings = self._settings.worker

        if value < worker_settings.min_trade_value:
            return self._filtered(TradeDisposition.BELOW_MINIMUM, trade)
        if float(trade.price) > worker_settings.resolved_price_threshold:
            return self._filtered(TradeDisposition.RESOLVED_PRICE, trade)
        resolved = self._metadata_cache.resolve_asset(trade.asset_id) if self._metadata_cache else None
        if resolved is None or resolved.market is None:
            return self._filtered(TradeDisposition.UNKNOWN_ASSET, trade)

        classification = self._classifier.classify(value)
        preview = TradeAlertEvent.preview(trade, resolved, tags=classification.whale_tags)
        record = self._build_record(trade, preview, classification)

        await self._emit(preview)
        self._stats.previews_emitted += 1

        # The preview stands even if the write fails; only enrichment is skipped.
        if not await self._persist_trade(record):
            return TradeDisposition.PERSIST_FAILED

        if not trade.wallet_address:
            logger.warning("Trade %s has no wallet; marking enrichment failed", record.trade_id)
            await self._mark_failed(record.trade_id)
            self._stats.enrichment_failures += 1
            return TradeDisposition.ENRICHMENT_FAILED

        profile, impact = await asyncio.gather(
            self._lookup_profile(trade.wallet_address),
            self._lookup_impact(trade),
        )

        insider = is_insider(profile.activity_level, profile.win_rate, profile.total_pnl)
        tags = self._classifier.build_analysis_tags(
            value,
            is_smart_money=profile.is_smart_money,
            is_fresh=profile.is_fresh,
            is_sweeper=impact.is_sweeper,
            is_insider=insider,
        )

        await self._apply_enrichment(record, profile, impact, tags, classification)

        enriched = preview.enrich(profile, impact, tags=tags)
        await self._emit(enriched)
        self._stats.enriched_emitted += 1
        self._stats.trades_enriched += 1

        logger.info(
            "Trade enriched: wallet=%s, value=%.2f, tags=%s",
            trade.wallet_address[:10] + "...",
            value,
            ",".join(tags) or "-",
        )
        return TradeDisposition.ENRICHED

    def _filtered(self, disposition: TradeDisposition, trade: TradeEvent) -> TradeDisposition:
        self._stats.trades_filtered += 1
        logger.debug("Trade on %s filtered: %s", trade.asset_id[:10] + "...", disposition.value)
        return disposition

    @staticmethod
    def _build_record(
        trade: TradeEvent,
        preview: TradeAlertEvent,
        classification: TradeClassification,
    ) -> TradeRecord:
        return TradeRecord(
            trade_id=trade.trade_id,
            asset_id=trade.asset_id,
            condition_id=preview.market["conditionId"],
            outcome=preview.market["outcome"],
            question=preview.market["question"],
            image=preview.market["image"],
            side=trade.side,
            price=trade.price,
            size=trade.size,
            trade_value=trade.notional_value,
            ts=trade.timestamp,
            wallet_address=trade.wallet_address,
            transaction_hash=trade.transaction_hash,
            is_whale=classification.is_whale,
            tags=list(classification.whale_tags),
        )

    async def _persist_trade(self, record: TradeRecord) -> bool:
        if not self._db_manager:
            logger.error("Cannot persist trade %s: database not initialized", record.trade_id)
            return False
        try:
            async with self._db_manager.get_async_session() as session:
                inserted = await TradeRepository(session).insert(record)
        except Exception as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.error("Failed to persist trade %s: %s", record.trade_id, e)
            return False

        if inserted:
            self._stats.trades_persisted += 1
        else:
            logger.debug("Trade %s already persisted; replaying enrichment", record.trade_id)
        return True

    async def _mark_failed(self, trade_id: str) -> None:
        if not self._db_manager:
            return
        try:
            async with self._db_manager.get_async_session() as session:
                await TradeRepository(session).mark_failed(trade_id)
        except Exception as e:
            self._stats.errors += 1
            logger.error("Failed to mark trade %s as failed: %s", trade_id, e)

    async def _lookup_profile(self, wallet_address: str) -> TraderProfile:
        if not self._profiler:
            return TraderProfile.default(wallet_address)
        try:
            return await self._profiler.get_profile(wallet_address)
        except Exception as e:
            logger.warning("Profile lookup failed for %s: %s", wallet_address[:10] + "...", e)
            return TraderProfile.default(wallet_address)

    async def _lookup_impact(self, trade: TradeEvent) -> MarketImpact:
        if not self._impact_analyzer:
            return NO_IMPACT
        try:
            return await self._impact_analyzer.analyze(trade.asset_id, trade.size, trade.side)
        except Exception as e:
            logger.warning("Market impact failed for %s: %s", trade.asset_id[:10] + "...", e)
            return NO_IMPACT

    async def _apply_enrichment(
        self,
        record: TradeRecord,
        profile: TraderProfile,
        impact: MarketImpact,
        tags: list[str],
        classification: TradeClassification,
    ) -> None:
        """Upsert the wallet profile and finish the trade row in one transaction."""
        if not self._db_manager:
            return
        try:
            async with self._db_manager.get_async_session() as session:
                await WalletProfileRepository(session).apply_trade(
                    profile, record.trade_id, record.trade_value
                )
                await TradeRepository(session).mark_enriched(
                    record.trade_id,
                    is_whale=classification.is_whale,
                    is_smart_money=profile.is_smart_money,
                    is_fresh_wallet=profile.is_fresh,
                    is_sweeper=impact.is_sweeper,
                    tags=tags,
                )
        except Exception as e:
            self._stats.errors += 1
            self._stats.last_error = str(e)
            logger.error("Failed to store enrichment for trade %s: %s", record.trade_id, e)

    async def _emit(self, event: TradeAlertEvent) -> None:
        await self._events.publish(event)
        if self._dry_run:
            logger.debug("[DRY RUN] Skipping publish of %s event", event.phase)
            return
        if self._redis_publisher:
            await self._redis_publisher.publish(event)

    async def _persist_leaderboard(self, entries: list[LeaderboardEntry]) -> None:
        if not self._db_manager:
            return
        async with self._db_manager.get_async_session() as session:
            count = await LeaderboardRepository(session).insert_snapshot(entries)
        logger.debug("Persisted %d leaderboard rows", count)

    async def rank_markets(self, *, now: datetime | None = None) -> list[ScoredOutcome]:
        """Score every market outcome traded in the signal window.

        Uses the live leaderboard when it has ranks, else the stored snapshots.
        """
        if not self._db_manager:
            raise RuntimeError("Worker is not started")
        ranks = dict(self._leaderboard.ranks) if self._leaderboard else {}
        return await rank_stored_markets(
            self._db_manager,
            self._signal_service,
            ranks=ranks or None,
            max_trades=self._settings.signal.max_trades,
            now=now,
        )

    def health(self) -> dict[str, Any]:
        """Snapshot of the worker's state for health checks."""
        started = self._stats.started_at
        stats = asdict(self._stats)
        for key in ("started_at", "last_trade_time"):
            if stats[key] is not None:
                stats[key] = stats[key].isoformat()
        cache = self._metadata_cache
        last_refresh = cache.stats.last_sync_time if cache else None
        return {
            "state": self._state.value,
            "dry_run": self._dry_run,
            "uptime_seconds": (datetime.now(UTC) - started).total_seconds() if started else 0.0,
            "stats": stats,
            "markets_cached": cache.market_count if cache else 0,
            "assets_cached": cache.asset_count if cache else 0,
            "last_metadata_refresh": last_refresh.isoformat() if last_refresh else None,
            "ranked_wallets": len(self._leaderboard.ranks) if self._leaderboard else 0,
            "feed_connected": self._trade_stream.is_connected if self._trade_stream else False,
        }

    async def run(self) -> None:
        """Start the worker and block until stop() or cancellation."""
        await self.start()
        try:
            if self._stop_event:
                await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.stop()

    async def __aenter__(self) -> EnrichmentWorker:
        await self.start()
        return self

    async def __aexit__(self, *args: Any) -> None:
        await self.stop()
