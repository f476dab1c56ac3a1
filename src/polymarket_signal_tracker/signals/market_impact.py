"""Order-book sweep detection for a single trade."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import TYPE_CHECKING, Any, Literal

from polymarket_signal_tracker.ingestor.models import Orderbook

if TYPE_CHECKING:
    from polymarket_signal_tracker.ingestor.clob_client import ClobClient
    from polymarket_signal_tracker.ingestor.rate_limiter import AdaptiveRateLimiter

logger = logging.getLogger(__name__)

# More consumed levels than this marks a sweep even if the book absorbed the trade
MAX_UNSWEPT_LEVELS = 3


@dataclass(frozen=True)
class MarketImpact:
    """How a trade of a given size interacts with the visible book."""

    is_sweeper: bool = False
    liquidity_available: float = 0.0
    price_impact: float = 0.0  # percent
    levels_swept: int = 0

    def to_context(self) -> dict[str, Any]:
        return {
            "swept_levels": self.levels_swept if self.is_sweeper else 0,
            "slippage_induced": f"{self.price_impact:.2f}%",
        }


NO_IMPACT = MarketImpact()


def analyze_orderbook(
    orderbook: Orderbook,
    trade_size: Decimal | float,
    side: Literal["BUY", "SELL"],
) -> MarketImpact:
    """Walk the book side a trade consumes and measure the sweep.

    Args:
        orderbook: Book with best levels first.
        trade_size: Shares traded.
        side: BUY consumes asks, SELL consumes bids.

    Returns:
        MarketImpact. The trade is a sweeper when the visible book could not
        absorb it, or when absorbing it took more than three levels.
    """
    levels = orderbook.levels_for(side)
    if not levels:
        return NO_IMPACT

    size = Decimal(str(trade_size))
    initial_price = levels[0].price
    accumulated = Decimal("0")
    levels_swept = 0
    price_impact = 0.0

    for level in levels:
        accumulated += level.size
        levels_swept += 1
        if accumulated >= size:
            if initial_price > 0:
                price_impact = float(abs((level.price - initial_price) / initial_price) * 100)
            break

    return MarketImpact(
        is_sweeper=accumulated < size or levels_swept > MAX_UNSWEPT_LEVELS,
        liquidity_available=float(accumulated),
        price_impact=price_impact,
        levels_swept=levels_swept,
    )


class MarketImpactAnalyzer:
    """Fetches the current book and scores a trade's impact.

    Failures degrade to NO_IMPACT; they are never raised to the caller.
    """

    def __init__(
        self,
        clob_client: ClobClient,
        rate_limiter: AdaptiveRateLimiter | None = None,
    ) -> None:
        self._clob = clob_client
        self._rate_limiter = rate_limiter

    async def analyze(
        self,
        asset_id: str,
        trade_size: Decimal | float,
        side: Literal["BUY", "SELL"],
    ) -> MarketImpact:
        try:
            if self._rate_limiter:
                await self._rate_limiter.wait()
            orderbook = await asyncio.to_thread(self._clob.get_orderbook, asset_id)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            if self._rate_limiter:
                self._rate_limiter.record_error()
            logger.warning("Order book fetch failed for %s: %s", asset_id[:10] + "...", e)
            return NO_IMPACT

        if self._rate_limiter:
            self._rate_limiter.record_success()
        return analyze_orderbook(orderbook, trade_size, side)
