"""Tests for trade events and their delivery."""

import json
from unittest.mock import AsyncMock

import pytest

from polymarket_signal_tracker.events import (
    EVENT_TYPE,
    PENDING_VALUE,
    EventBus,
    RedisEventPublisher,
    TradeAlertEvent,
    WalletContext,
    format_pnl,
    short_address,
)
from polymarket_signal_tracker.ingestor.metadata_cache import ResolvedAsset
from polymarket_signal_tracker.ingestor.models import TradeEvent
from polymarket_signal_tracker.profiler.models import ActivityLevel, TraderProfile
from polymarket_signal_tracker.signals.market_impact import MarketImpact


@pytest.fixture
def preview(sample_trade_event: TradeEvent, sample_resolved_asset: ResolvedAsset) -> TradeAlertEvent:
    return TradeAlertEvent.preview(sample_trade_event, sample_resolved_asset, tags=["WHALE"])


@pytest.fixture
def profile() -> TraderProfile:
    return TraderProfile(
        address="0x" + "b" * 40,
        label="Smart Money",
        total_pnl=12345.678,
        win_rate=0.655,
        is_fresh=True,
        tx_count=4,
        max_trade_value=50000.0,
        activity_level=ActivityLevel.LOW,
    )


class TestFormatting:
    def test_short_address(self) -> None:
        assert short_address("0x1234567890abcdef") == "0x1234...cdef"
        assert short_address("0x12") == "0x12"

    def test_format_pnl(self) -> None:
        assert format_pnl(1234567.891) == "$1,234,567.89"
        assert format_pnl(-50.0) == "$-50.00"

    def test_placeholder_without_wallet(self) -> None:
        assert WalletContext.placeholder("").label == "Unknown"


class TestPreview:
    def test_market_and_trade_sections(self, preview: TradeAlertEvent, sample_market_id: str) -> None:
        data = preview.to_dict()

        assert data["type"] == EVENT_TYPE
        assert data["phase"] == "preview"
        assert data["market"] == {
            "question": "Will the Fed cut rates in March?",
            "outcome": "Yes",
            "conditionId": sample_market_id,
            "odds": 62,
            "image": "https://img/fed.png",
        }
        assert data["trade"]["tradeValue"] == pytest.approx(12400.0)
        assert data["trade"]["side"] == "BUY"

    def test_analysis_is_pending(self, preview: TradeAlertEvent) -> None:
        analysis = preview.to_dict()["analysis"]

        assert analysis["tags"] == ["WHALE"]
        assert analysis["wallet_context"]["label"] == "Quiet-Falcon"
        assert analysis["wallet_context"]["pnl_all_time"] == PENDING_VALUE
        assert analysis["market_impact"] == {"swept_levels": 0, "slippage_induced": "0.00%"}
        assert analysis["market_context"]["category"] == "Economics"
        assert analysis["market_context"]["liquidity_bucket"] == "25k-50k"

    def test_feed_fields_take_precedence(
        self, sample_trade_event: TradeEvent, sample_resolved_asset: ResolvedAsset
    ) -> None:
        trade = TradeEvent(
            asset_id=sample_trade_event.asset_id,
            price=sample_trade_event.price,
            size=sample_trade_event.size,
            side="SELL",
            wallet_address="",
            timestamp=sample_trade_event.timestamp,
            title="Feed title",
            icon="https://img/feed.png",
        )
        event = TradeAlertEvent.preview(trade, sample_resolved_asset, tags=[])

        assert event.market["question"] == "Feed title"
        assert event.market["image"] == "https://img/feed.png"
        assert event.market["outcome"] == "Yes"
        assert event.wallet_context.label == "Unknown"

    def test_without_market_metadata(self, sample_trade_event: TradeEvent, sample_resolved_asset: ResolvedAsset) -> None:
        resolved = ResolvedAsset(outcome=sample_resolved_asset.outcome)
        event = TradeAlertEvent.preview(sample_trade_event, resolved, tags=[])
        assert event.market_context == {}
        assert event.market["image"] is None


class TestEnrich:
    def test_enriched_event(self, preview: TradeAlertEvent, profile: TraderProfile) -> None:
        impact = MarketImpact(is_sweeper=True, liquidity_available=900.0, price_impact=4.0, levels_swept=3)

        enriched = preview.enrich(profile, impact, tags=["WHALE", "FRESH_WALLET", "SWEEPER"])
        analysis = enriched.to_dict()["analysis"]

        assert enriched.phase == "enriched"
        assert enriched.market == preview.market
        assert analysis["tags"] == ["WHALE", "FRESH_WALLET", "SWEEPER"]
        assert analysis["wallet_context"] == {
            "address": "0x" + "b" * 40,
            "label": "Smart Money",
            "pnl_all_time": "$12,345.68",
            "win_rate": "66%",
            "is_fresh_wallet": True,
        }
        assert analysis["market_impact"] == {"swept_levels": 3, "slippage_induced": "4.00%"}
        assert analysis["trader_context"] == {
            "tx_count": 4,
            "max_trade_value": 50000.0,
            "activity_level": "LOW",
        }
        assert preview.phase == "preview"

    def test_max_trade_value_includes_current_trade(self, preview: TradeAlertEvent) -> None:
        enriched = preview.enrich(TraderProfile.default("0xabc"), MarketImpact(), tags=[])
        assert enriched.trader_context.max_trade_value == pytest.approx(12400.0)
        assert enriched.wallet_context.label == "Quiet-Falcon"

    def test_to_json(self, preview: TradeAlertEvent) -> None:
        assert json.loads(preview.to_json())["phase"] == "preview"


class TestEventBus:
    @pytest.mark.asyncio
    async def test_fans_out_and_isolates_failures(self, preview: TradeAlertEvent) -> None:
        bus = EventBus()
        received: list[TradeAlertEvent] = []

        async def good(event: TradeAlertEvent) -> None:
            received.append(event)

        bus.subscribe(AsyncMock(side_effect=RuntimeError("subscriber broke")))
        bus.subscribe(good)

        await bus.publish(preview)

        assert received == [preview]
        assert bus.published == 1

    @pytest.mark.asyncio
    async def test_unsubscribe(self, preview: TradeAlertEvent) -> None:
        bus = EventBus()
        subscriber = AsyncMock()
        unsubscribe = bus.subscribe(subscriber)
        unsubscribe()
        unsubscribe()

        await bus.publish(preview)

        subscriber.assert_not_awaited()
        assert bus.subscriber_count == 0


class TestRedisEventPublisher:
    @pytest.mark.asyncio
    async def test_publishes_json(self, preview: TradeAlertEvent) -> None:
        redis = AsyncMock()
        publisher = RedisEventPublisher(redis, "trades")

        await publisher.publish(preview)

        channel, payload = redis.publish.await_args.args
        assert channel == "trades"
        assert json.loads(payload)["market"]["odds"] == 62
        assert publisher.published == 1

    @pytest.mark.asyncio
    async def test_failure_is_counted_not_raised(self, preview: TradeAlertEvent) -> None:
        redis = AsyncMock()
        redis.publish.side_effect = ConnectionError("redis gone")
        publisher = RedisEventPublisher(redis, "trades")

        await publisher.publish(preview)

        assert publisher.failures == 1
        assert publisher.published == 0
