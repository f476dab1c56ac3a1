"""Repository pattern implementations for data access.

Upserts are issued with the dialect-specific INSERT ... ON CONFLICT of the
bound engine: PostgreSQL in production, SQLite in tests.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any

from sqlalchemy import case, func, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from polymarket_signal_tracker.signals.aggregation import SignalTrade
from polymarket_signal_tracker.storage.models import (
    LeaderboardSnapshotModel,
    TradeModel,
    WalletProfileModel,
)

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from polymarket_signal_tracker.ingestor.data_api import LeaderboardEntry
    from polymarket_signal_tracker.profiler.models import TraderProfile

logger = logging.getLogger(__name__)

STATUS_PENDING = "pending"
STATUS_ENRICHED = "enriched"
STATUS_FAILED = "failed"


def _insert_for(session: AsyncSession) -> Any:
    if session.get_bind().dialect.name == "postgresql":
        return pg_insert
    return sqlite_insert


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored in UTC.
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def _decimal(value: float | Decimal) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass
class TradeRecord:
    """Data transfer object for persisted trades."""

    trade_id: str
    asset_id: str
    condition_id: str
    outcome: str
    side: str
    price: Decimal
    size: Decimal
    trade_value: Decimal
    ts: datetime
    question: str = ""
    image: str | None = None
    wallet_address: str = ""
    transaction_hash: str = ""
    is_whale: bool = False
    is_smart_money: bool = False
    is_fresh_wallet: bool = False
    is_sweeper: bool = False
    tags: list[str] = field(default_factory=list)
    enrichment_status: str = STATUS_PENDING
    profile_applied: bool = False
    created_at: datetime | None = None

    @classmethod
    def from_model(cls, model: TradeModel) -> TradeRecord:
        try:
            tags = json.loads(model.tags or "[]")
        except ValueError:
            tags = []
        return cls(
            trade_id=model.trade_id,
            asset_id=model.asset_id,
            condition_id=model.condition_id,
            outcome=model.outcome,
            side=model.side,
            price=model.price,
            size=model.size,
            trade_value=model.trade_value,
            ts=_aware(model.ts),
            question=model.question,
            image=model.image,
            wallet_address=model.wallet_address,
            transaction_hash=model.transaction_hash,
            is_whale=model.is_whale,
            is_smart_money=model.is_smart_money,
            is_fresh_wallet=model.is_fresh_wallet,
            is_sweeper=model.is_sweeper,
            tags=list(tags),
            enrichment_status=model.enrichment_status,
            profile_applied=model.profile_applied,
            created_at=model.created_at,
        )

    def to_signal_trade(self) -> SignalTrade:
        return SignalTrade(
            condition_id=self.condition_id,
            outcome=self.outcome,
            wallet_address=self.wallet_address,
            side="BUY" if self.side.upper() == "BUY" else "SELL",
            trade_value=float(self.trade_value),
            price=float(self.price),
            timestamp=_aware(self.ts),
            question=self.question,
        )


class TradeRepository:
    """Repository for persisted trades."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, trade_id: str) -> TradeRecord | None:
        result = await self.session.execute(
            select(TradeModel).where(TradeModel.trade_id == trade_id)
        )
        model = result.scalar_one_or_none()
        return TradeRecord.from_model(model) if model else None

    async def insert(self, record: TradeRecord) -> bool:
        """Insert a pending trade. Returns False if the trade_id already exists."""
        now = datetime.now(UTC)
        insert = _insert_for(self.session)
        stmt = insert(TradeModel).values(
            trade_id=record.trade_id,
            asset_id=record.asset_id,
            condition_id=record.condition_id,
            outcome=record.outcome,
            question=record.question,
            image=record.image,
            side=record.side,
            price=record.price,
            size=record.size,
            trade_value=record.trade_value,
            ts=record.ts,
            wallet_address=record.wallet_address.lower(),
            transaction_hash=record.transaction_hash,
            is_whale=record.is_whale,
            is_smart_money=record.is_smart_money,
            is_fresh_wallet=record.is_fresh_wallet,
            is_sweeper=record.is_sweeper,
            tags=json.dumps(record.tags),
            enrichment_status=STATUS_PENDING,
            profile_applied=False,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["trade_id"])
        result = await self.session.execute(stmt)
        await self.session.flush()
        return bool(result.rowcount)

    async def mark_enriched(
        self,
        trade_id: str,
        *,
        is_whale: bool,
        is_smart_money: bool,
        is_fresh_wallet: bool,
        is_sweeper: bool,
        tags: Iterable[str],
    ) -> bool:
        result = await self.session.execute(
            update(TradeModel)
            .where(TradeModel.trade_id == trade_id)
            .values(
                is_whale=is_whale,
                is_smart_money=is_smart_money,
                is_fresh_wallet=is_fresh_wallet,
                is_sweeper=is_sweeper,
                tags=json.dumps(list(tags)),
                enrichment_status=STATUS_ENRICHED,
                updated_at=datetime.now(UTC),
            )
        )
        await self.session.flush()
        return bool(result.rowcount)

    async def mark_failed(self, trade_id: str) -> bool:
        result = await self.session.execute(
            update(TradeModel)
            .where(TradeModel.trade_id == trade_id)
            .values(enrichment_status=STATUS_FAILED, updated_at=datetime.now(UTC))
        )
        await self.session.flush()
        return bool(result.rowcount)

    async def list_since(self, since: datetime, *, limit: int = 4000) -> list[TradeRecord]:
        """Most recent trades at or after ``since``, newest first."""
        result = await self.session.execute(
            select(TradeModel)
            .where(TradeModel.ts >= since)
            .order_by(TradeModel.ts.desc())
            .limit(limit)
        )
        return [TradeRecord.from_model(m) for m in result.scalars().all()]


@dataclass
class WalletProfileRecord:
    """Data transfer object for stored wallet profiles."""

    address: str
    label: str | None
    total_pnl: Decimal
    win_rate: Decimal
    is_fresh: bool
    is_smart_money: bool
    tx_count: int
    activity_level: str | None
    max_trade_value: Decimal
    trades_observed: int
    last_updated: datetime | None = None

    @classmethod
    def from_model(cls, model: WalletProfileModel) -> WalletProfileRecord:
        return cls(
            address=model.address,
            label=model.label,
            total_pnl=model.total_pnl,
            win_rate=model.win_rate,
            is_fresh=model.is_fresh,
            is_smart_money=model.is_smart_money,
            tx_count=model.tx_count,
            activity_level=model.activity_level,
            max_trade_value=model.max_trade_value,
            trades_observed=model.trades_observed,
            last_updated=model.last_updated,
        )


class WalletProfileRepository:
    """Repository for wallet profiles."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def get(self, address: str) -> WalletProfileRecord | None:
        result = await self.session.execute(
            select(WalletProfileModel).where(WalletProfileModel.address == address.lower())
        )
        model = result.scalar_one_or_none()
        return WalletProfileRecord.from_model(model) if model else None

    async def apply_trade(
        self,
        profile: TraderProfile,
        trade_id: str,
        trade_value: float | Decimal,
    ) -> bool:
        """Fold one trade into the wallet's stored profile.

        The trade row is claimed first (profile_applied false -> true), then a
        single upsert writes the profile. trades_observed is incremented only
        when the claim succeeded, so replaying a trade never double counts.

        Returns:
            True if this call counted the trade.
        """
        now = datetime.now(UTC)
        claim = await self.session.execute(
            update(TradeModel)
            .where(TradeModel.trade_id == trade_id, TradeModel.profile_applied.is_(False))
            .values(profile_applied=True, updated_at=now)
        )
        claimed = claim.rowcount == 1
        increment = 1 if claimed else 0
        value = _decimal(trade_value)

        insert = _insert_for(self.session)
        stmt = insert(WalletProfileModel).values(
            address=profile.address.lower(),
            label=profile.label,
            total_pnl=_decimal(profile.total_pnl),
            win_rate=_decimal(round(profile.win_rate, 4)),
            is_fresh=profile.is_fresh,
            is_smart_money=profile.is_smart_money,
            tx_count=profile.tx_count,
            activity_level=profile.activity_level.value if profile.activity_level else None,
            max_trade_value=value,
            trades_observed=increment,
            last_updated=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["address"],
            set_={
                "label": stmt.excluded.label,
                "total_pnl": stmt.excluded.total_pnl,
                "win_rate": stmt.excluded.win_rate,
                "is_fresh": stmt.excluded.is_fresh,
                "is_smart_money": stmt.excluded.is_smart_money,
                "tx_count": stmt.excluded.tx_count,
                # An unknown level keeps the last known one.
                "activity_level": func.coalesce(stmt.excluded.activity_level, WalletProfileModel.activity_level),
                "max_trade_value": case(
                    (
                        stmt.excluded.max_trade_value > WalletProfileModel.max_trade_value,
                        stmt.excluded.max_trade_value,
                    ),
                    else_=WalletProfileModel.max_trade_value,
                ),
                "trades_observed": WalletProfileModel.trades_observed + increment,
                "last_updated": stmt.excluded.last_updated,
            },
        )
        await self.session.execute(stmt)
        await self.session.flush()
        if not claimed:
            logger.debug("Trade %s already applied to wallet profile", trade_id)
        return claimed


@dataclass
class LeaderboardSnapshotRecord:
    """Data transfer object for leaderboard snapshot rows."""

    snapshot_at: datetime
    period: str
    rank: int
    wallet_address: str
    display_name: str | None = None
    profit: Decimal | None = None
    volume: Decimal | None = None

    @classmethod
    def from_model(cls, model: LeaderboardSnapshotModel) -> LeaderboardSnapshotRecord:
        return cls(
            snapshot_at=_aware(model.snapshot_at),
            period=model.period,
            rank=model.rank,
            wallet_address=model.wallet_address,
            display_name=model.display_name,
            profit=model.profit,
            volume=model.volume,
        )


class LeaderboardRepository:
    """Repository for leaderboard snapshots."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def insert_snapshot(
        self,
        entries: Iterable[LeaderboardEntry],
        *,
        snapshot_at: datetime | None = None,
    ) -> int:
        snapshot_at = snapshot_at or datetime.now(UTC)
        models = [
            LeaderboardSnapshotModel(
                snapshot_at=snapshot_at,
                period=entry.period.value,
                rank=entry.rank,
                wallet_address=entry.wallet.lower(),
                display_name=entry.display_name,
                profit=_decimal(entry.profit) if entry.profit is not None else None,
                volume=_decimal(entry.volume) if entry.volume is not None else None,
            )
            for entry in entries
        ]
        self.session.add_all(models)
        await self.session.flush()
        return len(models)

    async def latest_snapshot(self, period: str) -> list[LeaderboardSnapshotRecord]:
        """Rows of the most recent snapshot for a period, best rank first."""
        latest = (
            select(func.max(LeaderboardSnapshotModel.snapshot_at))
            .where(LeaderboardSnapshotModel.period == period)
            .scalar_subquery()
        )
        result = await self.session.execute(
            select(LeaderboardSnapshotModel)
            .where(
                LeaderboardSnapshotModel.period == period,
                LeaderboardSnapshotModel.snapshot_at == latest,
            )
            .order_by(LeaderboardSnapshotModel.rank)
        )
        return [LeaderboardSnapshotRecord.from_model(m) for m in result.scalars().all()]

    async def latest_ranks(self, period: str) -> dict[str, int]:
        return {r.wallet_address: r.rank for r in await self.latest_snapshot(period)}
