"""Group trades by market outcome and score each group.

Trades inside the window are bucketed by ``condition_id::outcome``. Each
bucket is reduced to a CompositeSignalInput, scored, and ranked against
every other bucket in the same pass.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any, Literal

from polymarket_signal_tracker.signals import stats
from polymarket_signal_tracker.signals.composite import CompositeSignalCalculator
from polymarket_signal_tracker.signals.models import CompositeSignalInput, EnhancedSignalMetrics
from polymarket_signal_tracker.signals.tiers import TierBreakdown, WeightedSideCounts

if TYPE_CHECKING:
    from polymarket_signal_tracker.ingestor.models import TradeEvent

logger = logging.getLogger(__name__)

DEFAULT_WINDOW_HOURS = 24
DEFAULT_TOP_TRADER_MAX_RANK = stats.MAX_SCORED_RANK

Stance = Literal["bullish", "bearish"]


def outcome_key(condition_id: str, outcome: str) -> str:
    return f"{condition_id}::{outcome}"


@dataclass(frozen=True)
class SignalTrade:
    """The subset of a trade that signal aggregation reads."""

    condition_id: str
    outcome: str
    wallet_address: str
    side: Literal["BUY", "SELL"]
    trade_value: float
    price: float
    timestamp: datetime
    question: str = ""

    @classmethod
    def from_trade_event(cls, trade: TradeEvent, question: str = "") -> SignalTrade:
        return cls(
            condition_id=trade.condition_id,
            outcome=trade.outcome,
            wallet_address=trade.wallet_address,
            side=trade.side,
            trade_value=float(trade.notional_value),
            price=float(trade.price),
            timestamp=trade.timestamp,
            question=question or trade.title,
        )


@dataclass
class OutcomeAggregate:
    """Running totals for one market outcome."""

    condition_id: str
    outcome: str
    question: str = ""
    total_volume: float = 0.0
    buy_volume: float = 0.0
    sell_volume: float = 0.0
    top_trader_volume: float = 0.0
    top_trader_buy_volume: float = 0.0
    top_trader_sell_volume: float = 0.0
    trade_count: int = 0
    latest_price: float | None = None
    latest_timestamp: datetime | None = None
    wallet_volumes: dict[str, float] = field(default_factory=dict)
    wallet_ranks: dict[str, int] = field(default_factory=dict)
    wallet_buy_volumes: dict[str, float] = field(default_factory=dict)
    wallet_sell_volumes: dict[str, float] = field(default_factory=dict)
    top_trader_entries: list[tuple[float, datetime]] = field(default_factory=list)

    @property
    def key(self) -> str:
        return outcome_key(self.condition_id, self.outcome)

    @property
    def stance(self) -> Stance:
        return "bullish" if self.buy_volume >= self.sell_volume else "bearish"

    def add(self, trade: SignalTrade, rank: int, is_top_trader: bool) -> None:
        value = trade.trade_value
        wallet = trade.wallet_address
        is_buy = trade.side == "BUY"

        self.trade_count += 1
        self.total_volume += value
        if is_buy:
            self.buy_volume += value
        else:
            self.sell_volume += value

        if not self.question and trade.question:
            self.question = trade.question
        if self.latest_timestamp is None or trade.timestamp >= self.latest_timestamp:
            self.latest_timestamp = trade.timestamp
            self.latest_price = trade.price

        if not wallet:
            return
        self.wallet_volumes[wallet] = self.wallet_volumes.get(wallet, 0.0) + value
        sides = self.wallet_buy_volumes if is_buy else self.wallet_sell_volumes
        sides[wallet] = sides.get(wallet, 0.0) + value

        if not is_top_trader:
            return
        self.wallet_ranks[wallet] = rank
        self.top_trader_volume += value
        if is_buy:
            self.top_trader_buy_volume += value
        else:
            self.top_trader_sell_volume += value
        self.top_trader_entries.append((value, trade.timestamp))

    def top_trader_sides(self) -> dict[str, str]:
        """Net side of each ranked wallet; a wallet that traded both ways counts once."""
        sides: dict[str, str] = {}
        for wallet in self.wallet_ranks:
            buy = self.wallet_buy_volumes.get(wallet, 0.0)
            sell = self.wallet_sell_volumes.get(wallet, 0.0)
            sides[wallet] = "BUY" if buy >= sell else "SELL"
        return sides

    def tier_breakdown(self) -> TierBreakdown:
        return TierBreakdown.from_ranks(self.wallet_ranks.values())

    def to_signal_input(
        self,
        baseline: stats.MarketBaseline,
        now: datetime,
        decay_lambda: float = stats.DEFAULT_DECAY_LAMBDA,
    ) -> CompositeSignalInput:
        sides = self.top_trader_sides()
        weighted = WeightedSideCounts.from_wallet_sides(sides, self.wallet_ranks)
        return CompositeSignalInput(
            total_volume=self.total_volume,
            top_trader_volume=self.top_trader_volume,
            time_decayed_top_trader_volume=stats.time_decayed_sum(
                self.top_trader_entries, now, decay_lambda
            ),
            baseline=baseline,
            wallet_ranks=dict(self.wallet_ranks),
            wallet_volumes=dict(self.wallet_volumes),
            buy_volume=self.buy_volume,
            sell_volume=self.sell_volume,
            top_trader_buy_volume=self.top_trader_buy_volume,
            top_trader_sell_volume=self.top_trader_sell_volume,
            top_trader_buy_count=sum(1 for s in sides.values() if s == "BUY"),
            top_trader_sell_count=sum(1 for s in sides.values() if s == "SELL"),
            weighted_buy_count=weighted.buy,
            weighted_sell_count=weighted.sell,
            weighted_total_count=weighted.total,
        )


@dataclass(frozen=True)
class ScoredOutcome:
    aggregate: OutcomeAggregate
    metrics: EnhancedSignalMetrics

    @property
    def key(self) -> str:
        return self.aggregate.key

    def to_dict(self) -> dict[str, Any]:
        agg = self.aggregate
        return {
            "key": agg.key,
            "conditionId": agg.condition_id,
            "outcome": agg.outcome,
            "question": agg.question,
            "stance": agg.stance,
            "latestPrice": agg.latest_price,
            "totalVolume": agg.total_volume,
            "topTraderVolume": agg.top_trader_volume,
            "tradeCount": agg.trade_count,
            "tiers": agg.tier_breakdown().to_dict(),
            "signal": self.metrics.to_dict(),
        }


def aggregate_trades(
    trades: Iterable[SignalTrade],
    wallet_ranks: Mapping[str, int],
    *,
    since: datetime | None = None,
    top_trader_max_rank: int = DEFAULT_TOP_TRADER_MAX_RANK,
) -> dict[str, OutcomeAggregate]:
    """Bucket trades by market outcome.

    Args:
        trades: Trades in any order.
        wallet_ranks: Lowercased wallet -> leaderboard rank.
        since: Trades strictly before this time are skipped.
        top_trader_max_rank: Worst rank that still counts as a top trader.

    Returns:
        Aggregates keyed by ``condition_id::outcome``.
    """
    groups: dict[str, OutcomeAggregate] = {}
    for trade in trades:
        if not trade.condition_id:
            continue
        if since is not None and trade.timestamp < since:
            continue
        key = outcome_key(trade.condition_id, trade.outcome)
        group = groups.get(key)
        if group is None:
            group = OutcomeAggregate(condition_id=trade.condition_id, outcome=trade.outcome)
            groups[key] = group
        rank = wallet_ranks.get(trade.wallet_address, 0) if trade.wallet_address else 0
        group.add(trade, rank, 0 < rank <= top_trader_max_rank)
    return groups


def cross_market_baseline(aggregates: Iterable[OutcomeAggregate]) -> stats.MarketBaseline:
    """Baseline built from every outcome in the current window."""
    groups = list(aggregates)
    return stats.calculate_market_baseline(
        [g.total_volume for g in groups],
        [g.top_trader_volume for g in groups],
    )


def score_outcomes(
    aggregates: Mapping[str, OutcomeAggregate],
    *,
    calculator: CompositeSignalCalculator | None = None,
    baselines: Mapping[str, stats.MarketBaseline] | None = None,
    now: datetime | None = None,
) -> list[ScoredOutcome]:
    """Score and rank every outcome, best first.

    An outcome without a stored baseline (looked up by condition id) is
    scored against the cross-market baseline of the same pass.
    """
    if not aggregates:
        return []
    calculator = calculator or CompositeSignalCalculator()
    baselines = baselines or {}
    now = now or datetime.now(UTC)
    fallback = cross_market_baseline(aggregates.values())

    groups = list(aggregates.values())
    metrics = [
        calculator.calculate(
            group.to_signal_input(baselines.get(group.condition_id, fallback), now)
        )
        for group in groups
    ]
    ranked = calculator.rank(metrics)

    scored = [ScoredOutcome(aggregate=g, metrics=m) for g, m in zip(groups, ranked, strict=True)]
    scored.sort(key=lambda s: s.metrics.raw_confidence, reverse=True)
    logger.debug("Scored %d market outcomes", len(scored))
    return scored


class MarketSignalService:
    """Scores the trades of a rolling window against current leaderboard ranks.

    Example:
        ```python
        service = MarketSignalService(window_hours=24)
        top = service.rank_markets(trades, leaderboard.ranks)[:10]
        ```
    """

    def __init__(
        self,
        *,
        window_hours: int = DEFAULT_WINDOW_HOURS,
        top_trader_max_rank: int = DEFAULT_TOP_TRADER_MAX_RANK,
        calculator: CompositeSignalCalculator | None = None,
    ) -> None:
        self._window = timedelta(hours=window_hours)
        self._max_rank = top_trader_max_rank
        self._calculator = calculator or CompositeSignalCalculator()

    def window_start(self, now: datetime | None = None) -> datetime:
        return (now or datetime.now(UTC)) - self._window

    def rank_markets(
        self,
        trades: Iterable[SignalTrade],
        wallet_ranks: Mapping[str, int],
        *,
        baselines: Mapping[str, stats.MarketBaseline] | None = None,
        now: datetime | None = None,
    ) -> list[ScoredOutcome]:
        now = now or datetime.now(UTC)
        aggregates = aggregate_trades(
            trades,
            wallet_ranks,
            since=self.window_start(now),
            top_trader_max_rank=self._max_rank,
        )
        logger.info(
            "Ranking %d outcomes across %d markets", len(aggregates),
            len({g.condition_id for g in aggregates.values()}),
        )
        return score_outcomes(
            aggregates, calculator=self._calculator, baselines=baselines, now=now
        )
