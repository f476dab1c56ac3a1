"""Composite confidence signal: base score times bounded modifiers.

The base score rewards two things only: top-tier volume that is unusual
for the market, and participation by highly ranked wallets. Everything
else (recency, direction, concentration, alignment) is a multiplier
around 1.0, so weak factors cannot add up to a high score on their own.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import replace

from polymarket_signal_tracker.signals import stats
from polymarket_signal_tracker.signals.models import (
    CompositeSignalInput,
    EnhancedSignalMetrics,
    SignalFactors,
    SignalQuality,
)

logger = logging.getLogger(__name__)

# Base score weights
VOLUME_WEIGHT = 0.35
RANK_WEIGHT = 0.65

# Volume component: sigmoid(z - offset) * scale, so z must exceed ~2 to reach 0.5
VOLUME_Z_OFFSET = 2.0
VOLUME_SCALE = 1.8

# Aggregate rank score that saturates the rank component
RANK_SATURATION = 75.0

# Modifier ranges (low, high); a sub-score of 0.5 always maps to 1.0
RECENCY_RANGE = (0.6, 1.15)
DIRECTION_RANGE = (0.5, 1.2)
CONCENTRATION_RANGE = (0.7, 1.1)
ALIGNMENT_RANGE = (0.5, 1.2)

# Conflicting whales: minority side above this share of the majority side
CONFLICT_RATIO = 0.4
CONFLICT_PENALTY = 0.3

# HHI sweet spot
HHI_DISPERSED = 0.1
HHI_SWEET_LOW = 0.25
HHI_SWEET_HIGH = 0.5
HHI_DISPERSED_SCORE = 0.3
HHI_DECAY_SLOPE = 1.4

# Alignment log scales
ENGAGEMENT_LOG_BASE = 15
CLUSTER_LOG_BASE = 8

# Quality thresholds (raw confidence)
EXCEPTIONAL_THRESHOLD = 0.70
STRONG_THRESHOLD = 0.50
MODERATE_THRESHOLD = 0.30

# Flags
UNUSUAL_Z_THRESHOLD = 2.0
CONCENTRATED_HHI_THRESHOLD = 0.25


def to_modifier(sub_score: float, low: float, high: float) -> float:
    """Map a 0-1 sub-score onto [low, high] with 0.5 mapping to 1.0.

    The two halves are linear but may have different slopes, which lets a
    modifier punish harder than it rewards.
    """
    s = stats.clamp(sub_score)
    if s <= 0.5:
        return low + (1.0 - low) * (s / 0.5)
    return 1.0 + (high - 1.0) * ((s - 0.5) / 0.5)


def concentration_score(hhi: float) -> float:
    """Sweet-spot curve: 2-4 wallets sharing the volume scores best."""
    if hhi < HHI_DISPERSED:
        return HHI_DISPERSED_SCORE
    if hhi < HHI_SWEET_LOW:
        ramp = (hhi - HHI_DISPERSED) / (HHI_SWEET_LOW - HHI_DISPERSED)
        return HHI_DISPERSED_SCORE + ramp * (1.0 - HHI_DISPERSED_SCORE)
    if hhi <= HHI_SWEET_HIGH:
        return 1.0
    return stats.clamp(1.0 - (hhi - HHI_SWEET_HIGH) * HHI_DECAY_SLOPE)


def direction_score(signal: CompositeSignalInput) -> float:
    """Directional strength, cut hard when ranked wallets disagree."""
    strength = stats.direction_strength(signal.buy_volume, signal.sell_volume)
    buy_count, sell_count = signal.side_counts()
    minority = min(buy_count, sell_count)
    majority = max(buy_count, sell_count)
    if (
        signal.total_top_traders >= 2
        and minority > 0
        and majority > 0
        and minority / majority > CONFLICT_RATIO
    ):
        strength *= CONFLICT_PENALTY
    return strength


def alignment_score(signal: CompositeSignalInput) -> float:
    """Blend of engagement, side agreement, cluster size and volume dominance."""
    buy_count, sell_count = signal.side_counts()
    total = signal.total_count()
    dominant = max(buy_count, sell_count)

    engagement = stats.clamp(math.log2(total + 1) / math.log2(ENGAGEMENT_LOG_BASE))
    ratio = dominant / total if total > 0 else 0.0
    cluster = stats.clamp(math.log2(dominant + 1) / math.log2(CLUSTER_LOG_BASE))

    top_total = signal.top_trader_buy_volume + signal.top_trader_sell_volume
    volume_dominance = (
        max(signal.top_trader_buy_volume, signal.top_trader_sell_volume) / top_total
        if top_total > 0
        else 0.0
    )

    return 0.25 * (engagement + ratio + cluster + volume_dominance)


def recency_score(signal: CompositeSignalInput) -> float:
    if signal.top_trader_volume <= 0:
        return 0.0
    return stats.clamp(signal.time_decayed_top_trader_volume / signal.top_trader_volume)


def quality_of(raw_confidence: float) -> SignalQuality:
    if raw_confidence >= EXCEPTIONAL_THRESHOLD:
        return SignalQuality.EXCEPTIONAL
    if raw_confidence >= STRONG_THRESHOLD:
        return SignalQuality.STRONG
    if raw_confidence >= MODERATE_THRESHOLD:
        return SignalQuality.MODERATE
    return SignalQuality.WEAK


class CompositeSignalCalculator:
    """Scores market outcomes and ranks them against each other.

    Example:
        ```python
        calculator = CompositeSignalCalculator()
        scored = [calculator.calculate(inp) for inp in inputs]
        ranked = calculator.rank(scored)
        ```
    """

    def calculate(self, signal: CompositeSignalInput) -> EnhancedSignalMetrics:
        """Compute the raw confidence for one market outcome.

        Args:
            signal: Aggregated volumes, ranks and counts for the outcome.

        Returns:
            EnhancedSignalMetrics without a percentile.
        """
        baseline = signal.baseline
        z = stats.z_score(
            signal.top_trader_volume,
            baseline.mean_top_trader_volume,
            baseline.std_dev_top_trader_volume,
        )
        hhi = stats.calculate_hhi_from_volumes(signal.wallet_volumes)
        agg_rank = stats.aggregate_rank_score(signal.wallet_ranks, signal.wallet_volumes)

        volume_component = stats.clamp(
            stats.sigmoid(z - VOLUME_Z_OFFSET) * VOLUME_SCALE
        )
        rank_component = stats.clamp(agg_rank / RANK_SATURATION)
        base_score = VOLUME_WEIGHT * volume_component + RANK_WEIGHT * rank_component

        factors = SignalFactors(
            z_score=z,
            hhi=hhi,
            aggregate_rank_score=agg_rank,
            direction_conviction=stats.direction_conviction(
                signal.buy_volume, signal.sell_volume
            ),
            time_decayed_volume=signal.time_decayed_top_trader_volume,
            volume_component=volume_component,
            rank_component=rank_component,
            base_score=base_score,
            recency_modifier=to_modifier(recency_score(signal), *RECENCY_RANGE),
            direction_modifier=to_modifier(direction_score(signal), *DIRECTION_RANGE),
            concentration_modifier=to_modifier(
                concentration_score(hhi), *CONCENTRATION_RANGE
            ),
            alignment_modifier=to_modifier(alignment_score(signal), *ALIGNMENT_RANGE),
        )

        raw = stats.clamp(base_score * factors.modifier_product)
        return EnhancedSignalMetrics(
            raw_confidence=raw,
            signal_quality=quality_of(raw),
            factors=factors,
            is_unusual_activity=z >= UNUSUAL_Z_THRESHOLD,
            is_concentrated=hhi >= CONCENTRATED_HHI_THRESHOLD,
        )

    def rank(
        self, signals: Sequence[EnhancedSignalMetrics]
    ) -> list[EnhancedSignalMetrics]:
        """Attach percentiles across the given active set, preserving order."""
        percentiles = stats.calculate_percentiles([s.raw_confidence for s in signals])
        ranked = [replace(s, percentile=p) for s, p in zip(signals, percentiles, strict=True)]
        logger.debug("Ranked %d signals", len(ranked))
        return ranked
