"""Data ingestion layer - Polymarket trade feed and HTTP APIs."""

from polymarket_signal_tracker.ingestor.clob_client import ClobClient, ClobClientError
from polymarket_signal_tracker.ingestor.data_api import (
    DataApiClient,
    DataApiError,
    LeaderboardEntry,
    LeaderboardPeriod,
)
from polymarket_signal_tracker.ingestor.gamma_client import GammaClient, GammaClientError
from polymarket_signal_tracker.ingestor.metadata_cache import MarketMetadataCache, ResolvedAsset
from polymarket_signal_tracker.ingestor.models import (
    AssetOutcome,
    MarketMeta,
    Orderbook,
    OrderbookLevel,
    TradeEvent,
)
from polymarket_signal_tracker.ingestor.rate_limiter import AdaptiveRateLimiter
from polymarket_signal_tracker.ingestor.retry import RetryError
from polymarket_signal_tracker.ingestor.trade_stream import TradeStreamError, TradeStreamHandler

__all__ = [
    "AdaptiveRateLimiter",
    "AssetOutcome",
    "ClobClient",
    "ClobClientError",
    "DataApiClient",
    "DataApiError",
    "GammaClient",
    "GammaClientError",
    "LeaderboardEntry",
    "LeaderboardPeriod",
    "MarketMeta",
    "MarketMetadataCache",
    "Orderbook",
    "OrderbookLevel",
    "ResolvedAsset",
    "RetryError",
    "TradeEvent",
    "TradeStreamError",
    "TradeStreamHandler",
]
