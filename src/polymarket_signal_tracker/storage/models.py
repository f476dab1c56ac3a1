"""SQLAlchemy models for persistent storage.

Trades are written on the fast path and updated once enrichment finishes.
Wallet profiles are upserted per trade. Leaderboard snapshots are
append-only.
"""

from __future__ import annotations

from datetime import UTC, datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Index, Integer, Numeric, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class TradeModel(Base):
    """A trade that passed the worker's filters."""

    __tablename__ = "trades"

    trade_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    asset_id: Mapped[str] = mapped_column(String(100), nullable=False)
    condition_id: Mapped[str] = mapped_column(String(80), nullable=False)
    outcome: Mapped[str] = mapped_column(String(128), nullable=False)
    question: Mapped[str] = mapped_column(Text, nullable=False, default="")
    image: Mapped[str | None] = mapped_column(Text, nullable=True)

    side: Mapped[str] = mapped_column(String(4), nullable=False)  # BUY/SELL
    price: Mapped[Decimal] = mapped_column(Numeric(20, 10), nullable=False)
    size: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    trade_value: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False, default="")
    transaction_hash: Mapped[str] = mapped_column(String(66), nullable=False, default="")

    is_whale: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_smart_money: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_fresh_wallet: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_sweeper: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tags: Mapped[str] = mapped_column(Text, nullable=False, default="[]")  # JSON list

    enrichment_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="pending"
    )  # pending|enriched|failed
    profile_applied: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )

    __table_args__ = (
        Index("idx_trades_condition_ts", "condition_id", "ts"),
        Index("idx_trades_wallet_ts", "wallet_address", "ts"),
        Index("idx_trades_ts", "ts"),
    )


class WalletProfileModel(Base):
    """Latest known profile of a wallet plus counters observed by the worker."""

    __tablename__ = "wallet_profiles"

    address: Mapped[str] = mapped_column(String(42), primary_key=True)
    label: Mapped[str | None] = mapped_column(String(32), nullable=True)
    total_pnl: Mapped[Decimal] = mapped_column(Numeric(30, 6), nullable=False, default=0)
    win_rate: Mapped[Decimal] = mapped_column(Numeric(6, 4), nullable=False, default=0)
    is_fresh: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_smart_money: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    tx_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    activity_level: Mapped[str | None] = mapped_column(String(8), nullable=True)
    max_trade_value: Mapped[Decimal] = mapped_column(Numeric(30, 10), nullable=False, default=0)
    trades_observed: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(UTC)
    )


class LeaderboardSnapshotModel(Base):
    """One leaderboard row as seen at snapshot time."""

    __tablename__ = "leaderboard_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    snapshot_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    period: Mapped[str] = mapped_column(String(16), nullable=False)
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    wallet_address: Mapped[str] = mapped_column(String(42), nullable=False)
    display_name: Mapped[str | None] = mapped_column(String(128), nullable=True)
    profit: Mapped[Decimal | None] = mapped_column(Numeric(30, 6), nullable=True)
    volume: Mapped[Decimal | None] = mapped_column(Numeric(30, 6), nullable=True)

    __table_args__ = (
        Index("idx_leaderboard_snapshots_period_at", "period", "snapshot_at"),
        Index("idx_leaderboard_snapshots_wallet", "wallet_address"),
    )
