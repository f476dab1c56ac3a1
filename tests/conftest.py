"""Pytest configuration and fixtures."""

from datetime import UTC, datetime
from decimal import Decimal

import pytest

from polymarket_signal_tracker.ingestor.metadata_cache import ResolvedAsset
from polymarket_signal_tracker.ingestor.models import AssetOutcome, MarketMeta, TradeEvent


@pytest.fixture
def sample_market_id() -> str:
    """Sample condition ID for testing."""
    return "0x1234567890abcdef1234567890abcdef12345678"


@pytest.fixture
def sample_trade_event(sample_market_id: str) -> TradeEvent:
    """A $12,400 buy of the Yes outcome."""
    return TradeEvent(
        asset_id="asset_yes",
        price=Decimal("0.62"),
        size=Decimal("20000"),
        side="BUY",
        wallet_address="0x" + "b" * 40,
        timestamp=datetime.now(UTC),
        condition_id=sample_market_id,
        transaction_hash="0x" + "a" * 64,
        outcome="Yes",
        trader_pseudonym="Quiet-Falcon",
    )


@pytest.fixture
def sample_resolved_asset(sample_market_id: str) -> ResolvedAsset:
    """Cached metadata for the sample trade's asset."""
    market = MarketMeta(
        condition_id=sample_market_id,
        question="Will the Fed cut rates in March?",
        outcomes=("Yes", "No"),
        asset_ids=("asset_yes", "asset_no"),
        image="https://img/fed.png",
        category="Economics",
        liquidity=30000.0,
    )
    return ResolvedAsset(
        outcome=AssetOutcome(outcome_label="Yes", condition_id=sample_market_id),
        market=market,
    )
