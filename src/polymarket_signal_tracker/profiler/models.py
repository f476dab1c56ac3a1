"""Data models for trader profiling."""

from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any

# Transaction count thresholds
FRESH_WALLET_MAX_TX_COUNT = 10  # exclusive
MEDIUM_ACTIVITY_MIN_TX_COUNT = 50  # exclusive
HIGH_ACTIVITY_MIN_TX_COUNT = 500  # exclusive

# Position-derived labels
WHALE_PNL = 50000.0
SMART_WIN_RATE = 0.60
DEGEN_PNL = -10000.0
WHALE_POSITION_VALUE = 10000.0


class ActivityLevel(str, Enum):
    """On-chain activity of a wallet, derived from its transaction count."""

    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @classmethod
    def from_tx_count(cls, tx_count: int) -> ActivityLevel:
        if tx_count > HIGH_ACTIVITY_MIN_TX_COUNT:
            return cls.HIGH
        if tx_count > MEDIUM_ACTIVITY_MIN_TX_COUNT:
            return cls.MEDIUM
        return cls.LOW


def is_fresh_wallet(tx_count: int) -> bool:
    """Freshness depends on transaction count only."""
    return tx_count < FRESH_WALLET_MAX_TX_COUNT


def derive_label(total_pnl: float, win_rate: float) -> str | None:
    if total_pnl > WHALE_PNL and win_rate > SMART_WIN_RATE:
        return "Smart Whale"
    if total_pnl > WHALE_PNL:
        return "Whale"
    if win_rate > SMART_WIN_RATE and total_pnl > 0:
        return "Smart Money"
    if total_pnl < DEGEN_PNL:
        return "Degen"
    return None


def is_smart_money(total_pnl: float, win_rate: float) -> bool:
    return total_pnl > WHALE_PNL and win_rate > SMART_WIN_RATE


@dataclass(frozen=True)
class PositionSummary:
    """Aggregate of a wallet's open and closed positions."""

    total_pnl: float = 0.0
    win_rate: float = 0.0
    is_whale: bool = False
    position_count: int = 0

    @classmethod
    def from_positions(
        cls,
        open_positions: list[dict[str, Any]],
        closed_positions: list[dict[str, Any]],
    ) -> PositionSummary:
        """Summarize raw position payloads.

        Open positions contribute cashPnl and count as wins when percentPnl
        is positive. Closed positions contribute realizedPnl and count as
        wins when it is positive.
        """
        open_pnl = sum(_num(p.get("cashPnl")) for p in open_positions)
        closed_pnl = sum(_num(p.get("realizedPnl")) for p in closed_positions)
        wins = sum(1 for p in open_positions if _num(p.get("percentPnl")) > 0)
        wins += sum(1 for p in closed_positions if _num(p.get("realizedPnl")) > 0)
        count = len(open_positions) + len(closed_positions)

        return cls(
            total_pnl=open_pnl + closed_pnl,
            win_rate=wins / count if count else 0.0,
            is_whale=any(
                _num(p.get("currentValue")) > WHALE_POSITION_VALUE for p in open_positions
            ),
            position_count=count,
        )


@dataclass(frozen=True)
class TraderProfile:
    """Trader profile keyed by lowercased wallet address."""

    address: str
    label: str | None = None
    total_pnl: float = 0.0
    win_rate: float = 0.0
    is_fresh: bool = False
    is_smart_money: bool = False
    is_whale: bool = False
    tx_count: int = 0
    max_trade_value: float = 0.0
    # None when the on-chain lookup failed
    activity_level: ActivityLevel | None = None

    @classmethod
    def default(cls, address: str) -> TraderProfile:
        """Conservative profile used when lookups fail."""
        return cls(address=address.lower())

    @classmethod
    def build(
        cls,
        address: str,
        summary: PositionSummary,
        tx_count: int | None,
    ) -> TraderProfile:
        """Derive a profile.

        An unknown tx_count leaves freshness false and the activity level
        unknown, so neither FRESH_WALLET nor INSIDER can follow from a failed
        on-chain lookup.
        """
        if tx_count is None:
            return cls(
                address=address.lower(),
                label=derive_label(summary.total_pnl, summary.win_rate),
                total_pnl=summary.total_pnl,
                win_rate=summary.win_rate,
                is_smart_money=is_smart_money(summary.total_pnl, summary.win_rate),
                is_whale=summary.is_whale,
            )
        return cls(
            address=address.lower(),
            label=derive_label(summary.total_pnl, summary.win_rate),
            total_pnl=summary.total_pnl,
            win_rate=summary.win_rate,
            is_fresh=is_fresh_wallet(tx_count),
            is_smart_money=is_smart_money(summary.total_pnl, summary.win_rate),
            is_whale=summary.is_whale,
            tx_count=tx_count,
            activity_level=ActivityLevel.from_tx_count(tx_count),
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["activity_level"] = self.activity_level.value if self.activity_level else None
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TraderProfile:
        tx_count = int(data.get("tx_count", 0) or 0)
        activity: ActivityLevel | None = None
        if "activity_level" not in data:
            activity = ActivityLevel.from_tx_count(tx_count)
        elif data["activity_level"] is not None:
            try:
                activity = ActivityLevel(data["activity_level"])
            except ValueError:
                activity = ActivityLevel.from_tx_count(tx_count)
        return cls(
            address=str(data.get("address", "")).lower(),
            label=data.get("label"),
            total_pnl=float(data.get("total_pnl", 0.0) or 0.0),
            win_rate=float(data.get("win_rate", 0.0) or 0.0),
            is_fresh=bool(data.get("is_fresh", False)),
            is_smart_money=bool(data.get("is_smart_money", False)),
            is_whale=bool(data.get("is_whale", False)),
            tx_count=tx_count,
            max_trade_value=float(data.get("max_trade_value", 0.0) or 0.0),
            activity_level=activity,
        )


def _num(value: Any) -> float:
    if value is None:
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0
