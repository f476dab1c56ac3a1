"""Storage layer - Database schemas and repositories."""

from polymarket_signal_tracker.storage.database import DatabaseManager, async_database_url
from polymarket_signal_tracker.storage.models import (
    Base,
    LeaderboardSnapshotModel,
    TradeModel,
    WalletProfileModel,
)
from polymarket_signal_tracker.storage.repos import (
    LeaderboardRepository,
    LeaderboardSnapshotRecord,
    TradeRecord,
    TradeRepository,
    WalletProfileRecord,
    WalletProfileRepository,
)

__all__ = [
    "Base",
    "DatabaseManager",
    "LeaderboardRepository",
    "LeaderboardSnapshotModel",
    "LeaderboardSnapshotRecord",
    "TradeModel",
    "TradeRecord",
    "TradeRepository",
    "WalletProfileModel",
    "WalletProfileRecord",
    "WalletProfileRepository",
    "async_database_url",
]
