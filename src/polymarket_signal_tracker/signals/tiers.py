"""Leaderboard rank tiers and tier-weighted trader counts."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum


class TraderTier(str, Enum):
    """Discrete quality tier for a ranked trader."""

    ELITE = "elite"
    GOLD = "gold"
    SILVER = "silver"
    BRONZE = "bronze"


# (inclusive upper rank bound, tier, weight), best tier first.
TIER_TABLE: tuple[tuple[int, TraderTier, float], ...] = (
    (10, TraderTier.ELITE, 1.0),
    (30, TraderTier.GOLD, 0.6),
    (100, TraderTier.SILVER, 0.3),
    (200, TraderTier.BRONZE, 0.1),
)


def tier_of(rank: int) -> TraderTier | None:
    """Return the tier for a 1-based rank, or None when unranked."""
    if rank <= 0:
        return None
    for upper, tier, _weight in TIER_TABLE:
        if rank <= upper:
            return tier
    return None


def weight_of(rank: int) -> float:
    if rank <= 0:
        return 0.0
    for upper, _tier, weight in TIER_TABLE:
        if rank <= upper:
            return weight
    return 0.0


def weighted_count(ranks: Iterable[int]) -> float:
    """Sum of tier weights, so one elite trader counts as much as ten bronze."""
    return sum(weight_of(r) for r in ranks)


@dataclass(frozen=True)
class TierBreakdown:
    """Count of traders per tier plus the weighted total."""

    elite: int = 0
    gold: int = 0
    silver: int = 0
    bronze: int = 0
    weighted_total: float = 0.0

    @property
    def total(self) -> int:
        return self.elite + self.gold + self.silver + self.bronze

    @classmethod
    def from_ranks(cls, ranks: Iterable[int]) -> TierBreakdown:
        counts = {tier: 0 for tier in TraderTier}
        weighted = 0.0
        for rank in ranks:
            tier = tier_of(rank)
            if tier is None:
                continue
            counts[tier] += 1
            weighted += weight_of(rank)
        return cls(
            elite=counts[TraderTier.ELITE],
            gold=counts[TraderTier.GOLD],
            silver=counts[TraderTier.SILVER],
            bronze=counts[TraderTier.BRONZE],
            weighted_total=weighted,
        )

    def to_dict(self) -> dict[str, float]:
        return {
            "elite": self.elite,
            "gold": self.gold,
            "silver": self.silver,
            "bronze": self.bronze,
            "weighted_total": self.weighted_total,
        }


@dataclass(frozen=True)
class WeightedSideCounts:
    """Tier-weighted trader counts per trade side."""

    buy: float
    sell: float

    @property
    def total(self) -> float:
        return self.buy + self.sell

    @classmethod
    def from_wallet_sides(
        cls,
        wallet_sides: Mapping[str, str],
        wallet_ranks: Mapping[str, int],
    ) -> WeightedSideCounts:
        """Build counts from wallet -> side ("BUY"/"SELL") and wallet -> rank."""
        buy = 0.0
        sell = 0.0
        for wallet, side in wallet_sides.items():
            weight = weight_of(wallet_ranks.get(wallet, 0))
            if side.upper() == "BUY":
                buy += weight
            else:
                sell += weight
        return cls(buy=buy, sell=sell)
