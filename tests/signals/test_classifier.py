"""Tests for trade classification, analysis tags and context buckets."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from polymarket_signal_tracker.profiler.models import ActivityLevel
from polymarket_signal_tracker.signals.classifier import (
    AnomalyType,
    TradeClassifier,
    is_insider,
    liquidity_bucket,
    time_to_close_bucket,
)


@pytest.fixture
def classifier() -> TradeClassifier:
    return TradeClassifier()


class TestClassify:
    @pytest.mark.parametrize(
        ("value", "expected"),
        [
            (500.0, AnomalyType.STANDARD),
            (7999.99, AnomalyType.STANDARD),
            (8000.0, AnomalyType.WHALE),
            (15000.0, AnomalyType.MEGA_WHALE),
            (49999.0, AnomalyType.MEGA_WHALE),
            (50000.0, AnomalyType.SUPER_WHALE),
            (100000.0, AnomalyType.GOD_WHALE),
            (120000.0, AnomalyType.GOD_WHALE),
        ],
    )
    def test_anomaly_type(
        self, classifier: TradeClassifier, value: float, expected: AnomalyType
    ) -> None:
        assert classifier.classify(value).anomaly_type == expected

    def test_whale_tags_include_every_reached_tier(self, classifier: TradeClassifier) -> None:
        result = classifier.classify(120000.0)
        assert result.whale_tags == ("GOD_WHALE", "SUPER_WHALE", "MEGA_WHALE", "WHALE")
        assert result.is_whale
        assert result.is_god_whale

    def test_standard_trade_has_no_tags(self, classifier: TradeClassifier) -> None:
        result = classifier.classify(1000.0)
        assert result.whale_tags == ()
        assert not result.is_whale

    def test_custom_thresholds(self) -> None:
        classifier = TradeClassifier(whale=10, mega_whale=20, super_whale=30, god_whale=40)
        assert classifier.classify(25).anomaly_type == AnomalyType.MEGA_WHALE

    def test_thresholds_must_ascend(self) -> None:
        with pytest.raises(ValueError):
            TradeClassifier(whale=20000, mega_whale=15000)


class TestAnalysisTags:
    def test_flags_appended_after_whale_tags(self, classifier: TradeClassifier) -> None:
        tags = classifier.build_analysis_tags(
            9000.0,
            is_smart_money=True,
            is_fresh=True,
            is_sweeper=True,
            is_insider=True,
        )
        assert tags == ["WHALE", "SMART_MONEY", "FRESH_WALLET", "SWEEPER", "INSIDER"]

    def test_duplicates_and_empty_tags_dropped(self, classifier: TradeClassifier) -> None:
        tags = classifier.build_analysis_tags(
            9000.0,
            is_sweeper=True,
            additional_tags=["WHALE", "", "CUSTOM", "SWEEPER"],
        )
        assert tags == ["WHALE", "SWEEPER", "CUSTOM"]

    def test_small_trade_without_flags(self, classifier: TradeClassifier) -> None:
        assert classifier.build_analysis_tags(100.0) == []


class TestIsInsider:
    def test_low_activity_high_performance(self) -> None:
        assert is_insider(ActivityLevel.LOW, 0.8, 20000.0)

    def test_active_wallet_is_not_insider(self) -> None:
        assert not is_insider(ActivityLevel.MEDIUM, 0.8, 20000.0)

    def test_thresholds_are_exclusive(self) -> None:
        assert not is_insider(ActivityLevel.LOW, 0.7, 20000.0)
        assert not is_insider(ActivityLevel.LOW, 0.8, 10000.0)

    def test_unknown_activity_is_not_insider(self) -> None:
        assert not is_insider(None, 0.95, 500000.0)


class TestLiquidityBucket:
    @pytest.mark.parametrize(
        ("liquidity", "bucket"),
        [
            (None, None),
            (float("nan"), None),
            (1000.0, "<5k"),
            (5000.0, "5k-10k"),
            (10000.0, "10k-25k"),
            (25000.0, "25k-50k"),
            (75000.0, "50k+"),
        ],
    )
    def test_buckets(self, liquidity: float | None, bucket: str | None) -> None:
        assert liquidity_bucket(liquidity) == bucket


class TestTimeToCloseBucket:
    NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def test_unknown_close_time(self) -> None:
        assert time_to_close_bucket(None, self.NOW) is None

    @pytest.mark.parametrize(
        ("delta", "bucket"),
        [
            (timedelta(hours=-1), "closed"),
            (timedelta(minutes=-3), "<24h"),
            (timedelta(hours=10), "<24h"),
            (timedelta(days=3), "1-7d"),
            (timedelta(days=20), "7-30d"),
            (timedelta(days=90), ">30d"),
        ],
    )
    def test_buckets(self, delta: timedelta, bucket: str) -> None:
        assert time_to_close_bucket(self.NOW + delta, self.NOW) == bucket

    def test_naive_close_time_treated_as_utc(self) -> None:
        naive = (self.NOW + timedelta(days=3)).replace(tzinfo=None)
        assert time_to_close_bucket(naive, self.NOW) == "1-7d"
