"""Tests for the statistical primitives behind composite signals."""

from __future__ import annotations

import math
from datetime import UTC, datetime, timedelta

import pytest

from polymarket_signal_tracker.signals import stats


class TestZScore:
    def test_regular_z_score(self) -> None:
        assert stats.z_score(15.0, 10.0, 2.5) == pytest.approx(2.0)

    def test_zero_std_dev_above_mean_is_capped(self) -> None:
        assert stats.z_score(11.0, 10.0, 0.0) == 3.0

    def test_zero_std_dev_at_or_below_mean_is_zero(self) -> None:
        assert stats.z_score(10.0, 10.0, 0.0) == 0.0
        assert stats.z_score(5.0, 10.0, 0.0) == 0.0


class TestStdDev:
    def test_single_sample_has_no_spread(self) -> None:
        assert stats.std_dev([42.0]) == 0.0

    def test_population_std_dev(self) -> None:
        assert stats.std_dev([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)

    def test_mean_of_empty_is_zero(self) -> None:
        assert stats.mean([]) == 0.0


class TestSigmoid:
    def test_midpoint(self) -> None:
        assert stats.sigmoid(0.0) == 0.5

    def test_extreme_inputs_do_not_overflow(self) -> None:
        assert stats.sigmoid(1000.0) == pytest.approx(1.0)
        assert stats.sigmoid(-1000.0) == pytest.approx(0.0)


class TestTimeDecay:
    def test_weight_now_is_one(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=UTC)
        assert stats.time_decay_weight(now, now) == 1.0

    def test_weight_after_ten_hours(self) -> None:
        now = datetime(2026, 1, 1, 12, tzinfo=UTC)
        weight = stats.time_decay_weight(now - timedelta(hours=10), now)
        assert weight == pytest.approx(math.exp(-1.0))

    def test_future_timestamps_are_not_amplified(self) -> None:
        now = datetime(2026, 1, 1, tzinfo=UTC)
        assert stats.time_decay_weight(now + timedelta(hours=3), now) == 1.0

    def test_decayed_sum(self) -> None:
        now = datetime(2026, 1, 1, 12, tzinfo=UTC)
        total = stats.time_decayed_sum(
            [(100.0, now), (100.0, now - timedelta(hours=10))], now
        )
        assert total == pytest.approx(100.0 + 100.0 * math.exp(-1.0))


class TestHHI:
    def test_single_wallet_is_fully_concentrated(self) -> None:
        assert stats.calculate_hhi([500.0]) == pytest.approx(1.0)

    def test_equal_shares(self) -> None:
        assert stats.calculate_hhi([1.0, 1.0, 1.0, 1.0]) == pytest.approx(0.25)

    def test_raw_volumes_are_normalized(self) -> None:
        assert stats.calculate_hhi([300.0, 100.0]) == pytest.approx(0.625)

    def test_empty_and_zero_inputs(self) -> None:
        assert stats.calculate_hhi([]) == 0.0
        assert stats.calculate_hhi([0.0, 0.0]) == 0.0

    def test_from_wallet_volumes(self) -> None:
        assert stats.calculate_hhi_from_volumes({"a": 50.0, "b": 50.0}) == pytest.approx(0.5)


class TestRankScore:
    def test_rank_one_scores_100(self) -> None:
        assert stats.rank_score(1) == pytest.approx(100.0)

    def test_rank_twenty(self) -> None:
        assert stats.rank_score(20) == pytest.approx(100.0 * math.exp(-0.15 * 19))
        assert 5.0 < stats.rank_score(20) < 6.0

    def test_out_of_range_ranks_score_zero(self) -> None:
        assert stats.rank_score(0) == 0.0
        assert stats.rank_score(-3) == 0.0
        assert stats.rank_score(201) == 0.0

    def test_aggregate_scaled_by_ranked_share(self) -> None:
        score = stats.aggregate_rank_score({"top": 1}, {"top": 500.0, "anon": 500.0})
        # 100 * 0.5 weight share, then scaled by 0.5 ranked share
        assert score == pytest.approx(25.0)

    def test_aggregate_without_ranked_volume(self) -> None:
        assert stats.aggregate_rank_score({}, {"anon": 1000.0}) == 0.0
        assert stats.aggregate_rank_score({"top": 1}, {}) == 0.0


class TestDirection:
    def test_balanced_flow(self) -> None:
        assert stats.direction_conviction(100.0, 100.0) == pytest.approx(0.5)
        assert stats.direction_strength(100.0, 100.0) == pytest.approx(0.0)

    def test_heavy_buying(self) -> None:
        conviction = stats.direction_conviction(10000.0, 0.0)
        assert conviction > 0.9
        assert stats.direction_strength(10000.0, 0.0) == pytest.approx((conviction - 0.5) * 2)

    def test_heavy_selling(self) -> None:
        assert stats.direction_conviction(0.0, 10000.0) < 0.1


class TestPercentiles:
    def test_empty_and_single(self) -> None:
        assert stats.calculate_percentiles([]) == []
        assert stats.calculate_percentiles([0.7]) == [50]

    def test_percentiles_follow_input_order(self) -> None:
        assert stats.calculate_percentiles([0.9, 0.1, 0.5, 0.3]) == [88, 12, 62, 38]

    def test_ties_keep_input_order(self) -> None:
        assert stats.calculate_percentiles([0.5, 0.5]) == [25, 75]


class TestMarketBaseline:
    def test_baseline_from_samples(self) -> None:
        baseline = stats.calculate_market_baseline([10.0, 20.0, 30.0], [1.0, 2.0, 3.0])
        assert baseline.mean_volume == pytest.approx(20.0)
        assert baseline.mean_top_trader_volume == pytest.approx(2.0)
        assert baseline.sample_count == 3
        assert not baseline.is_degenerate

    def test_single_sample_is_degenerate(self) -> None:
        baseline = stats.calculate_market_baseline([10.0], [1.0])
        assert baseline.std_dev_volume == 0.0
        assert baseline.is_degenerate
