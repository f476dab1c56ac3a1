"""Tests for grouping trades by outcome and ranking the groups."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from polymarket_signal_tracker.ingestor.models import TradeEvent
from polymarket_signal_tracker.signals.aggregation import (
    MarketSignalService,
    SignalTrade,
    aggregate_trades,
    cross_market_baseline,
    outcome_key,
    score_outcomes,
)
from polymarket_signal_tracker.signals.models import SignalQuality
from polymarket_signal_tracker.signals.stats import MarketBaseline

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def make_trade(
    wallet: str,
    value: float,
    *,
    side: str = "BUY",
    condition_id: str = "0xcond",
    outcome: str = "Yes",
    price: float = 0.5,
    age: timedelta = timedelta(minutes=5),
    question: str = "Will it happen?",
) -> SignalTrade:
    return SignalTrade(
        condition_id=condition_id,
        outcome=outcome,
        wallet_address=wallet,
        side=side,  # type: ignore[arg-type]
        trade_value=value,
        price=price,
        timestamp=NOW - age,
        question=question,
    )


class TestAggregateTrades:
    def test_groups_by_condition_and_outcome(self) -> None:
        groups = aggregate_trades(
            [
                make_trade("0xa", 100.0),
                make_trade("0xb", 50.0, outcome="No"),
                make_trade("0xc", 25.0, condition_id="0xother"),
                make_trade("0xd", 10.0),
            ],
            {},
        )

        assert set(groups) == {
            outcome_key("0xcond", "Yes"),
            outcome_key("0xcond", "No"),
            outcome_key("0xother", "Yes"),
        }
        yes = groups["0xcond::Yes"]
        assert yes.total_volume == pytest.approx(110.0)
        assert yes.trade_count == 2
        assert yes.question == "Will it happen?"

    def test_skips_trades_without_condition_or_before_window(self) -> None:
        groups = aggregate_trades(
            [
                make_trade("0xa", 100.0, condition_id=""),
                make_trade("0xa", 100.0, age=timedelta(hours=30)),
                make_trade("0xa", 40.0),
            ],
            {},
            since=NOW - timedelta(hours=24),
        )

        assert groups["0xcond::Yes"].total_volume == pytest.approx(40.0)

    def test_top_trader_volume_only_from_ranked_wallets(self) -> None:
        groups = aggregate_trades(
            [
                make_trade("0xtop", 1000.0),
                make_trade("0xtop", 200.0, side="SELL"),
                make_trade("0xanon", 500.0),
                make_trade("0xoutside", 300.0),
            ],
            {"0xtop": 3, "0xoutside": 250},
        )

        group = groups["0xcond::Yes"]
        assert group.top_trader_volume == pytest.approx(1200.0)
        assert group.top_trader_buy_volume == pytest.approx(1000.0)
        assert group.top_trader_sell_volume == pytest.approx(200.0)
        assert group.wallet_ranks == {"0xtop": 3}
        assert group.wallet_volumes["0xanon"] == pytest.approx(500.0)
        assert group.buy_volume == pytest.approx(1800.0)
        assert group.sell_volume == pytest.approx(200.0)

    def test_latest_price_follows_latest_trade(self) -> None:
        groups = aggregate_trades(
            [
                make_trade("0xa", 10.0, price=0.7, age=timedelta(minutes=1)),
                make_trade("0xa", 10.0, price=0.4, age=timedelta(minutes=30)),
            ],
            {},
        )
        assert groups["0xcond::Yes"].latest_price == pytest.approx(0.7)

    def test_stance(self) -> None:
        groups = aggregate_trades(
            [make_trade("0xa", 10.0), make_trade("0xb", 30.0, side="SELL")], {}
        )
        assert groups["0xcond::Yes"].stance == "bearish"


class TestTopTraderSides:
    def test_wallet_counted_once_on_its_net_side(self) -> None:
        groups = aggregate_trades(
            [
                make_trade("0xflip", 100.0),
                make_trade("0xflip", 400.0, side="SELL"),
                make_trade("0xbuyer", 50.0),
            ],
            {"0xflip": 5, "0xbuyer": 40},
        )
        group = groups["0xcond::Yes"]

        assert group.top_trader_sides() == {"0xflip": "SELL", "0xbuyer": "BUY"}

        signal = group.to_signal_input(cross_market_baseline([group]), NOW)
        assert signal.top_trader_buy_count == 1
        assert signal.top_trader_sell_count == 1
        assert signal.weighted_buy_count == pytest.approx(0.3)
        assert signal.weighted_sell_count == pytest.approx(1.0)
        assert signal.weighted_total_count == pytest.approx(1.3)

    def test_time_decayed_volume(self) -> None:
        groups = aggregate_trades(
            [make_trade("0xtop", 1000.0, age=timedelta(hours=10))], {"0xtop": 1}
        )
        group = groups["0xcond::Yes"]
        signal = group.to_signal_input(cross_market_baseline([group]), NOW)
        assert signal.time_decayed_top_trader_volume == pytest.approx(1000.0 * 0.36788, rel=1e-4)

    def test_tier_breakdown(self) -> None:
        groups = aggregate_trades(
            [make_trade("0xa", 10.0), make_trade("0xb", 10.0), make_trade("0xc", 10.0)],
            {"0xa": 1, "0xb": 25, "0xc": 180},
        )
        breakdown = groups["0xcond::Yes"].tier_breakdown()
        assert (breakdown.elite, breakdown.gold, breakdown.silver, breakdown.bronze) == (1, 1, 0, 1)


class TestScoreOutcomes:
    def test_empty(self) -> None:
        assert score_outcomes({}) == []

    def test_god_whale_outcome_ranks_first(self) -> None:
        """$120k buy from rank #2 against a $10k/$5k baseline."""
        trades = [
            make_trade("0xwhale", 120000.0, condition_id="0xhot", price=0.62),
            make_trade("0xretail", 300.0, condition_id="0xquiet"),
            make_trade("0xretail2", 150.0, condition_id="0xquiet", side="SELL"),
        ]
        groups = aggregate_trades(trades, {"0xwhale": 2})
        baselines = {
            "0xhot": MarketBaseline(
                mean_volume=50000.0,
                std_dev_volume=20000.0,
                mean_top_trader_volume=10000.0,
                std_dev_top_trader_volume=5000.0,
                sample_count=30,
            )
        }

        scored = score_outcomes(groups, baselines=baselines, now=NOW)

        assert [s.key for s in scored] == ["0xhot::Yes", "0xquiet::Yes"]
        top = scored[0]
        assert top.metrics.is_unusual_activity
        assert top.metrics.factors.z_score == pytest.approx(22.0)
        assert top.metrics.signal_quality in (SignalQuality.STRONG, SignalQuality.EXCEPTIONAL)
        assert top.metrics.percentile == 75
        assert scored[1].metrics.percentile == 25

    def test_missing_baseline_uses_cross_market_baseline(self) -> None:
        groups = aggregate_trades(
            [make_trade("0xa", 100.0, condition_id="0x1"), make_trade("0xb", 300.0, condition_id="0x2")],
            {},
        )
        fallback = cross_market_baseline(groups.values())
        assert fallback.mean_volume == pytest.approx(200.0)
        assert fallback.std_dev_volume == pytest.approx(100.0)

        scored = score_outcomes(groups, now=NOW)
        assert len(scored) == 2
        assert all(s.metrics.signal_quality == SignalQuality.WEAK for s in scored)

    def test_to_dict(self) -> None:
        groups = aggregate_trades([make_trade("0xtop", 5000.0)], {"0xtop": 4})
        payload = score_outcomes(groups, now=NOW)[0].to_dict()

        assert payload["key"] == "0xcond::Yes"
        assert payload["conditionId"] == "0xcond"
        assert payload["stance"] == "bullish"
        assert payload["tradeCount"] == 1
        assert payload["tiers"]["elite"] == 1
        assert payload["signal"]["percentile"] == 50
        assert "raw_confidence" in payload["signal"]


class TestMarketSignalService:
    def test_window_start(self) -> None:
        service = MarketSignalService(window_hours=6)
        assert service.window_start(NOW) == NOW - timedelta(hours=6)

    def test_rank_markets_applies_window_and_rank_cutoff(self) -> None:
        service = MarketSignalService(window_hours=24, top_trader_max_rank=50)
        trades = [
            make_trade("0xtop", 2000.0),
            make_trade("0xbronze", 1000.0),
            make_trade("0xtop", 9999.0, age=timedelta(hours=48)),
        ]

        scored = service.rank_markets(trades, {"0xtop": 1, "0xbronze": 150}, now=NOW)

        assert len(scored) == 1
        group = scored[0].aggregate
        assert group.total_volume == pytest.approx(3000.0)
        assert group.top_trader_volume == pytest.approx(2000.0)
        assert group.wallet_ranks == {"0xtop": 1}


class TestSignalTradeFromEvent:
    def test_from_trade_event(self) -> None:
        event = TradeEvent(
            asset_id="token_yes",
            price=Decimal("0.25"),
            size=Decimal("400"),
            side="SELL",
            wallet_address="0xabc",
            timestamp=NOW,
            condition_id="0xcond",
            outcome="Yes",
            title="Market title",
        )

        trade = SignalTrade.from_trade_event(event)

        assert trade.trade_value == pytest.approx(100.0)
        assert trade.price == pytest.approx(0.25)
        assert trade.side == "SELL"
        assert trade.question == "Market title"
