"""Data models for composite signal scoring."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from polymarket_signal_tracker.signals.stats import MarketBaseline


class SignalQuality(str, Enum):
    """Label derived from raw confidence."""

    EXCEPTIONAL = "exceptional"
    STRONG = "strong"
    MODERATE = "moderate"
    WEAK = "weak"


@dataclass(frozen=True)
class CompositeSignalInput:
    """Everything the composite calculator needs for one market outcome.

    Attributes:
        total_volume: Total notional traded in the window.
        top_trader_volume: Notional traded by ranked wallets.
        time_decayed_top_trader_volume: top_trader_volume weighted by recency.
        baseline: Historical reference distribution for the market.
        wallet_ranks: Wallet address -> leaderboard rank (0 = unranked).
        wallet_volumes: Wallet address -> notional traded in the window.
        buy_volume: Total BUY notional.
        sell_volume: Total SELL notional.
        top_trader_buy_volume: BUY notional from ranked wallets.
        top_trader_sell_volume: SELL notional from ranked wallets.
        top_trader_buy_count: Unique ranked wallets that bought.
        top_trader_sell_count: Unique ranked wallets that sold.
        weighted_buy_count: Tier-weighted count of ranked buyers.
        weighted_sell_count: Tier-weighted count of ranked sellers.
        weighted_total_count: Tier-weighted count of all ranked wallets.
    """

    total_volume: float
    top_trader_volume: float
    time_decayed_top_trader_volume: float
    baseline: MarketBaseline
    wallet_ranks: Mapping[str, int] = field(default_factory=dict)
    wallet_volumes: Mapping[str, float] = field(default_factory=dict)
    buy_volume: float = 0.0
    sell_volume: float = 0.0
    top_trader_buy_volume: float = 0.0
    top_trader_sell_volume: float = 0.0
    top_trader_buy_count: int = 0
    top_trader_sell_count: int = 0
    weighted_buy_count: float | None = None
    weighted_sell_count: float | None = None
    weighted_total_count: float | None = None

    @property
    def total_top_traders(self) -> int:
        return self.top_trader_buy_count + self.top_trader_sell_count

    def side_counts(self) -> tuple[float, float]:
        """Buy/sell trader counts, tier-weighted when available."""
        if self.weighted_buy_count is not None and self.weighted_sell_count is not None:
            return self.weighted_buy_count, self.weighted_sell_count
        return float(self.top_trader_buy_count), float(self.top_trader_sell_count)

    def total_count(self) -> float:
        if self.weighted_total_count is not None:
            return self.weighted_total_count
        buy, sell = self.side_counts()
        return buy + sell


@dataclass(frozen=True)
class SignalFactors:
    """Intermediate values behind a composite score, kept for explainability."""

    z_score: float
    hhi: float
    aggregate_rank_score: float
    direction_conviction: float
    time_decayed_volume: float
    volume_component: float
    rank_component: float
    base_score: float
    recency_modifier: float
    direction_modifier: float
    concentration_modifier: float
    alignment_modifier: float

    @property
    def modifier_product(self) -> float:
        return (
            self.recency_modifier
            * self.direction_modifier
            * self.concentration_modifier
            * self.alignment_modifier
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "z_score": self.z_score,
            "hhi": self.hhi,
            "aggregate_rank_score": self.aggregate_rank_score,
            "direction_conviction": self.direction_conviction,
            "time_decayed_volume": self.time_decayed_volume,
            "volume_component": self.volume_component,
            "rank_component": self.rank_component,
            "base_score": self.base_score,
            "recency_modifier": self.recency_modifier,
            "direction_modifier": self.direction_modifier,
            "concentration_modifier": self.concentration_modifier,
            "alignment_modifier": self.alignment_modifier,
            "modifier_product": self.modifier_product,
        }


@dataclass(frozen=True)
class EnhancedSignalMetrics:
    """Scored signal for one market outcome.

    percentile is None until the signal has been ranked against the
    active market set.
    """

    raw_confidence: float
    signal_quality: SignalQuality
    factors: SignalFactors
    is_unusual_activity: bool
    is_concentrated: bool
    percentile: int | None = None

    @property
    def legacy_confidence(self) -> int | None:
        """Integer confidence used by older consumers (the rounded percentile)."""
        if self.percentile is None:
            return None
        return round(self.percentile)

    def to_dict(self) -> dict[str, Any]:
        return {
            "raw_confidence": self.raw_confidence,
            "signal_quality": self.signal_quality.value,
            "percentile": self.percentile,
            "confidence": self.legacy_confidence,
            "is_unusual_activity": self.is_unusual_activity,
            "is_concentrated": self.is_concentrated,
            "factors": self.factors.to_dict(),
        }
