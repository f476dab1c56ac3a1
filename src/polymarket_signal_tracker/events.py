"""Events emitted for every trade that passes the worker's filters.

Each trade produces up to two events with the same shape: a ``preview``
right after it is persisted, and an ``enriched`` one once the trader profile
and market impact are known.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any, Literal, Protocol

from polymarket_signal_tracker.signals.classifier import liquidity_bucket, time_to_close_bucket
from polymarket_signal_tracker.signals.market_impact import NO_IMPACT, MarketImpact

if TYPE_CHECKING:
    from redis.asyncio import Redis

    from polymarket_signal_tracker.ingestor.metadata_cache import ResolvedAsset
    from polymarket_signal_tracker.ingestor.models import TradeEvent
    from polymarket_signal_tracker.profiler.models import TraderProfile

logger = logging.getLogger(__name__)

EVENT_TYPE = "UNUSUAL_ACTIVITY"
PENDING_VALUE = "..."
UNKNOWN_LABEL = "Unknown"

Phase = Literal["preview", "enriched"]


def short_address(address: str) -> str:
    """0x1234...abcd form used as a display label."""
    if len(address) <= 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


def format_pnl(total_pnl: float) -> str:
    return f"${total_pnl:,.2f}"


def format_win_rate(win_rate: float) -> str:
    return f"{win_rate * 100:.0f}%"


@dataclass(frozen=True)
class WalletContext:
    address: str
    label: str
    pnl_all_time: str = PENDING_VALUE
    win_rate: str = PENDING_VALUE
    is_fresh_wallet: bool = False

    @classmethod
    def placeholder(cls, address: str, pseudonym: str = "") -> WalletContext:
        if not address:
            return cls(address="", label=pseudonym or UNKNOWN_LABEL)
        return cls(address=address, label=pseudonym or short_address(address))

    @classmethod
    def from_profile(cls, profile: TraderProfile, pseudonym: str = "") -> WalletContext:
        return cls(
            address=profile.address,
            label=profile.label or pseudonym or short_address(profile.address),
            pnl_all_time=format_pnl(profile.total_pnl),
            win_rate=format_win_rate(profile.win_rate),
            is_fresh_wallet=profile.is_fresh,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "address": self.address,
            "label": self.label,
            "pnl_all_time": self.pnl_all_time,
            "win_rate": self.win_rate,
            "is_fresh_wallet": self.is_fresh_wallet,
        }


@dataclass(frozen=True)
class TraderContext:
    tx_count: int = 0
    max_trade_value: float = 0.0
    activity_level: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tx_count": self.tx_count,
            "max_trade_value": self.max_trade_value,
            "activity_level": self.activity_level,
        }


@dataclass(frozen=True)
class TradeAlertEvent:
    """One emitted trade event.

    Example:
        ```python
        preview = TradeAlertEvent.preview(trade, resolved, tags=["WHALE"])
        enriched = preview.enrich(profile, impact, tags=all_tags)
        payload = enriched.to_json()
        ```
    """

    phase: Phase
    market: dict[str, Any]
    trade: dict[str, Any]
    tags: tuple[str, ...]
    wallet_context: WalletContext
    market_impact: MarketImpact = NO_IMPACT
    trader_context: TraderContext = field(default_factory=TraderContext)
    market_context: dict[str, Any] = field(default_factory=dict)
    trader_pseudonym: str = ""

    @property
    def trade_value(self) -> float:
        return float(self.trade["tradeValue"])

    @classmethod
    def preview(
        cls,
        trade: TradeEvent,
        resolved: ResolvedAsset,
        *,
        tags: Sequence[str],
        now: datetime | None = None,
    ) -> TradeAlertEvent:
        """Build the preview event from the trade and its resolved market."""
        meta = resolved.market
        price = float(trade.price)
        market = {
            "question": trade.title or (meta.question if meta else ""),
            "outcome": trade.outcome or resolved.outcome.outcome_label,
            "conditionId": trade.condition_id or resolved.outcome.condition_id,
            "odds": round(price * 100),
            "image": trade.icon or (meta.image if meta else None) or None,
        }
        trade_info = {
            "assetId": trade.asset_id,
            "size": float(trade.size),
            "side": trade.side,
            "price": price,
            "tradeValue": float(trade.notional_value),
            "timestamp": trade.timestamp.isoformat(),
        }
        market_context: dict[str, Any] = {}
        if meta is not None:
            market_context = {
                **meta.to_context(),
                "liquidity_bucket": liquidity_bucket(meta.liquidity),
                "time_to_close_bucket": time_to_close_bucket(meta.close_time, now),
            }
        pseudonym = trade.trader_pseudonym or trade.trader_name
        return cls(
            phase="preview",
            market=market,
            trade=trade_info,
            tags=tuple(tags),
            wallet_context=WalletContext.placeholder(trade.wallet_address, pseudonym),
            market_context=market_context,
            trader_pseudonym=pseudonym,
        )

    def enrich(
        self,
        profile: TraderProfile,
        impact: MarketImpact,
        *,
        tags: Sequence[str],
        max_trade_value: float | None = None,
    ) -> TradeAlertEvent:
        """Return the enriched counterpart of a preview event."""
        if max_trade_value is None:
            max_trade_value = max(profile.max_trade_value, self.trade_value)
        return replace(
            self,
            phase="enriched",
            tags=tuple(tags),
            wallet_context=WalletContext.from_profile(profile, self.trader_pseudonym),
            market_impact=impact,
            trader_context=TraderContext(
                tx_count=profile.tx_count,
                max_trade_value=max_trade_value,
                activity_level=profile.activity_level.value if profile.activity_level else None,
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": EVENT_TYPE,
            "phase": self.phase,
            "market": dict(self.market),
            "trade": dict(self.trade),
            "analysis": {
                "tags": list(self.tags),
                "wallet_context": self.wallet_context.to_dict(),
                "market_impact": self.market_impact.to_context(),
                "trader_context": self.trader_context.to_dict(),
                "market_context": dict(self.market_context),
            },
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class EventPublisher(Protocol):
    async def publish(self, event: TradeAlertEvent) -> None: ...


Subscriber = Callable[[TradeAlertEvent], Awaitable[None]]


class EventBus:
    """In-process fan-out to async subscribers.

    A failing subscriber is logged and does not affect the others.
    """

    def __init__(self) -> None:
        self._subscribers: list[Subscriber] = []
        self.published = 0

    def subscribe(self, subscriber: Subscriber) -> Callable[[], None]:
        """Register a subscriber; returns a callable that unsubscribes it."""
        self._subscribers.append(subscriber)

        def unsubscribe() -> None:
            if subscriber in self._subscribers:
                self._subscribers.remove(subscriber)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def publish(self, event: TradeAlertEvent) -> None:
        self.published += 1
        if not self._subscribers:
            return
        results = await asyncio.gather(
            *(subscriber(event) for subscriber in list(self._subscribers)),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception):
                logger.error("Event subscriber failed: %s", result)


class RedisEventPublisher:
    """Publishes events as JSON on a Redis pub/sub channel."""

    def __init__(self, redis: Redis, channel: str) -> None:
        self._redis = redis
        self._channel = channel
        self.published = 0
        self.failures = 0

    @property
    def channel(self) -> str:
        return self._channel

    async def publish(self, event: TradeAlertEvent) -> None:
        try:
            await self._redis.publish(self._channel, event.to_json())
        except Exception as e:
            self.failures += 1
            logger.warning("Failed to publish %s event to %s: %s", event.phase, self._channel, e)
            return
        self.published += 1
