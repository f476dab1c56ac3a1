"""Trade classification by notional value, analysis tags and context buckets."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from enum import Enum

from polymarket_signal_tracker.profiler.models import ActivityLevel

# Default notional thresholds (USDC)
DEFAULT_WHALE_THRESHOLD = 8000.0
DEFAULT_MEGA_WHALE_THRESHOLD = 15000.0
DEFAULT_SUPER_WHALE_THRESHOLD = 50000.0
DEFAULT_GOD_WHALE_THRESHOLD = 100000.0

# Insider heuristic
INSIDER_MIN_WIN_RATE = 0.7
INSIDER_MIN_PNL = 10000.0

# Grace applied before a market counts as closed
TIME_TO_CLOSE_GRACE = timedelta(minutes=5)


class AnomalyType(str, Enum):
    """Whale tier of a single trade."""

    STANDARD = "STANDARD"
    WHALE = "WHALE"
    MEGA_WHALE = "MEGA_WHALE"
    SUPER_WHALE = "SUPER_WHALE"
    GOD_WHALE = "GOD_WHALE"


class AnalysisTag(str, Enum):
    """Feature tags attached to an emitted trade."""

    SMART_MONEY = "SMART_MONEY"
    FRESH_WALLET = "FRESH_WALLET"
    SWEEPER = "SWEEPER"
    INSIDER = "INSIDER"


@dataclass(frozen=True)
class TradeClassification:
    """Result of classifying a trade's notional value."""

    value: float
    anomaly_type: AnomalyType
    whale_tags: tuple[str, ...]

    @property
    def is_whale(self) -> bool:
        return AnomalyType.WHALE.value in self.whale_tags

    @property
    def is_god_whale(self) -> bool:
        return AnomalyType.GOD_WHALE.value in self.whale_tags


class TradeClassifier:
    """Maps notional value to a whale tier and builds analysis tags.

    Thresholds are inclusive lower bounds and must be strictly ascending.

    Example:
        ```python
        classifier = TradeClassifier()
        result = classifier.classify(120_000)
        assert result.anomaly_type is AnomalyType.GOD_WHALE
        ```
    """

    def __init__(
        self,
        *,
        whale: float = DEFAULT_WHALE_THRESHOLD,
        mega_whale: float = DEFAULT_MEGA_WHALE_THRESHOLD,
        super_whale: float = DEFAULT_SUPER_WHALE_THRESHOLD,
        god_whale: float = DEFAULT_GOD_WHALE_THRESHOLD,
    ) -> None:
        if not (whale < mega_whale < super_whale < god_whale):
            raise ValueError("Whale thresholds must be strictly ascending")
        # Highest tier first
        self._thresholds: tuple[tuple[float, AnomalyType], ...] = (
            (god_whale, AnomalyType.GOD_WHALE),
            (super_whale, AnomalyType.SUPER_WHALE),
            (mega_whale, AnomalyType.MEGA_WHALE),
            (whale, AnomalyType.WHALE),
        )

    def anomaly_type(self, value: float) -> AnomalyType:
        for threshold, tier in self._thresholds:
            if value >= threshold:
                return tier
        return AnomalyType.STANDARD

    def whale_tags(self, value: float) -> list[str]:
        """Every tier the value reaches, highest first."""
        return [tier.value for threshold, tier in self._thresholds if value >= threshold]

    def classify(self, value: float) -> TradeClassification:
        return TradeClassification(
            value=value,
            anomaly_type=self.anomaly_type(value),
            whale_tags=tuple(self.whale_tags(value)),
        )

    def build_analysis_tags(
        self,
        value: float,
        *,
        is_smart_money: bool = False,
        is_fresh: bool = False,
        is_sweeper: bool = False,
        is_insider: bool = False,
        additional_tags: Iterable[str] = (),
    ) -> list[str]:
        """Union of whale tags, feature flags and caller tags.

        Duplicates are dropped; first occurrence wins the position.
        """
        tags: list[str] = self.whale_tags(value)
        if is_smart_money:
            tags.append(AnalysisTag.SMART_MONEY.value)
        if is_fresh:
            tags.append(AnalysisTag.FRESH_WALLET.value)
        if is_sweeper:
            tags.append(AnalysisTag.SWEEPER.value)
        if is_insider:
            tags.append(AnalysisTag.INSIDER.value)
        tags.extend(additional_tags)
        return list(dict.fromkeys(t for t in tags if t))


def is_insider(activity_level: ActivityLevel | None, win_rate: float, total_pnl: float) -> bool:
    """Low on-chain activity combined with an unusually good track record.

    An unknown activity level is never treated as low.
    """
    return (
        activity_level == ActivityLevel.LOW
        and win_rate > INSIDER_MIN_WIN_RATE
        and total_pnl > INSIDER_MIN_PNL
    )


def liquidity_bucket(liquidity: float | None) -> str | None:
    if liquidity is None or liquidity != liquidity:  # NaN
        return None
    if liquidity >= 50000:
        return "50k+"
    if liquidity >= 25000:
        return "25k-50k"
    if liquidity >= 10000:
        return "10k-25k"
    if liquidity >= 5000:
        return "5k-10k"
    return "<5k"


def time_to_close_bucket(
    close_time: datetime | None,
    now: datetime | None = None,
) -> str | None:
    """Bucket the time remaining until a market closes."""
    if close_time is None:
        return None
    if close_time.tzinfo is None:
        close_time = close_time.replace(tzinfo=UTC)
    now = now or datetime.now(UTC)
    diff_days = (close_time - now + TIME_TO_CLOSE_GRACE).total_seconds() / 86400
    if diff_days < 0:
        return "closed"
    if diff_days <= 1:
        return "<24h"
    if diff_days <= 7:
        return "1-7d"
    if diff_days <= 30:
        return "7-30d"
    return ">30d"
