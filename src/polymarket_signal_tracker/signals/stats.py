"""Statistical primitives used by the composite signal calculator.

All functions are pure and stateless. Inputs are plain floats or
sequences of floats; nothing here touches I/O.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime

# Time decay constant per hour. 0.1 gives a half-life of roughly 7 hours.
DEFAULT_DECAY_LAMBDA = 0.1

# Z-score returned when the baseline has no spread but the observation is above it.
ZERO_STDDEV_ZSCORE = 3.0

# Ranks outside [1, MAX_SCORED_RANK] carry no score.
MAX_SCORED_RANK = 200
RANK_DECAY = 0.15


@dataclass(frozen=True)
class MarketBaseline:
    """Reference distribution for Z-scoring a market's volume."""

    mean_volume: float
    std_dev_volume: float
    mean_top_trader_volume: float
    std_dev_top_trader_volume: float
    sample_count: int = 0

    @property
    def is_degenerate(self) -> bool:
        """True when the baseline has too few samples for a real spread."""
        return self.sample_count < 2


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    """Clamp value into [low, high]."""
    return max(low, min(high, value))


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0.0
    return sum(values) / len(values)


def std_dev(values: Sequence[float]) -> float:
    """Population standard deviation; 0 for fewer than two values."""
    if len(values) < 2:
        return 0.0
    avg = mean(values)
    variance = sum((v - avg) ** 2 for v in values) / len(values)
    return math.sqrt(variance)


def z_score(observed: float, mean_value: float, std_dev_value: float) -> float:
    """Standard score of observed against a baseline.

    When the baseline has no spread the result is capped: 3.0 when the
    observation is above the mean, otherwise 0.0.
    """
    if std_dev_value == 0:
        return ZERO_STDDEV_ZSCORE if observed > mean_value else 0.0
    return (observed - mean_value) / std_dev_value


def sigmoid(x: float) -> float:
    # Split on sign to avoid overflow in math.exp for large |x|.
    if x >= 0:
        return 1.0 / (1.0 + math.exp(-x))
    e = math.exp(x)
    return e / (1.0 + e)


def time_decay_weight(
    timestamp: datetime,
    now: datetime,
    decay_lambda: float = DEFAULT_DECAY_LAMBDA,
) -> float:
    """Exponential recency weight. Future timestamps get weight 1."""
    hours_ago = max(0.0, (now - timestamp).total_seconds() / 3600.0)
    return math.exp(-decay_lambda * hours_ago)


def time_decayed_sum(
    entries: Iterable[tuple[float, datetime]],
    now: datetime,
    decay_lambda: float = DEFAULT_DECAY_LAMBDA,
) -> float:
    """Sum of (volume, timestamp) pairs weighted by recency."""
    return sum(
        volume * time_decay_weight(ts, now, decay_lambda) for volume, ts in entries
    )


def calculate_hhi(shares: Sequence[float]) -> float:
    """Herfindahl-Hirschman index of the given shares.

    Shares are normalized to sum to 1 first, so raw volumes may be passed.
    Empty or all-zero input returns 0.
    """
    total = sum(s for s in shares if s > 0)
    if total <= 0:
        return 0.0
    return sum((s / total) ** 2 for s in shares if s > 0)


def calculate_hhi_from_volumes(wallet_volumes: Mapping[str, float]) -> float:
    return calculate_hhi(list(wallet_volumes.values()))


def rank_score(rank: int) -> float:
    """Score a leaderboard rank: ~100 for rank 1, ~5 for rank 20."""
    if rank < 1 or rank > MAX_SCORED_RANK:
        return 0.0
    return 100.0 * math.exp(-RANK_DECAY * (rank - 1))


def aggregate_rank_score(
    wallet_ranks: Mapping[str, int],
    wallet_volumes: Mapping[str, float],
) -> float:
    """Volume-share-weighted rank score across wallets trading a market.

    The weighted sum is scaled by the share of total volume that comes from
    ranked wallets, so markets dominated by unranked volume score near 0.
    """
    total_volume = sum(v for v in wallet_volumes.values() if v > 0)
    if total_volume <= 0:
        return 0.0

    weighted = 0.0
    ranked_volume = 0.0
    for wallet, volume in wallet_volumes.items():
        rank = wallet_ranks.get(wallet, 0)
        if rank <= 0 or volume <= 0:
            continue
        weighted += rank_score(rank) * (volume / total_volume)
        ranked_volume += volume

    return weighted * (ranked_volume / total_volume)


def direction_conviction(buy_volume: float, sell_volume: float) -> float:
    """0.5 when balanced, toward 1 for heavy buying, toward 0 for heavy selling."""
    ratio = (max(buy_volume, 0.0) + 1.0) / (max(sell_volume, 0.0) + 1.0)
    return sigmoid(0.5 * math.log(ratio))


def direction_strength(buy_volume: float, sell_volume: float) -> float:
    return abs(direction_conviction(buy_volume, sell_volume) - 0.5) * 2.0


def calculate_percentiles(scores: Sequence[float]) -> list[int]:
    """Map raw scores to percentiles in [0, 100] across the given set.

    Ties keep their input order (stable sort). A single score maps to 50.

    Args:
        scores: Raw confidence values for the active market set.

    Returns:
        Percentiles aligned with the input order.
    """
    n = len(scores)
    if n == 0:
        return []
    if n == 1:
        return [50]

    order = sorted(range(n), key=lambda i: scores[i])
    percentiles = [0] * n
    for position, index in enumerate(order):
        percentiles[index] = round(((position + 0.5) / n) * 100)
    return percentiles


def calculate_market_baseline(
    volumes: Sequence[float],
    top_trader_volumes: Sequence[float],
) -> MarketBaseline:
    """Build a baseline from historical per-window volume samples."""
    return MarketBaseline(
        mean_volume=mean(volumes),
        std_dev_volume=std_dev(volumes),
        mean_top_trader_volume=mean(top_trader_volumes),
        std_dev_top_trader_volume=std_dev(top_trader_volumes),
        sample_count=min(len(volumes), len(top_trader_volumes)),
    )
