"""Signal layer - trade classification and composite market confidence."""

from polymarket_signal_tracker.signals.aggregation import (
    MarketSignalService,
    OutcomeAggregate,
    ScoredOutcome,
    SignalTrade,
)
from polymarket_signal_tracker.signals.classifier import AnalysisTag, TradeClassifier
from polymarket_signal_tracker.signals.composite import CompositeSignalCalculator
from polymarket_signal_tracker.signals.market_impact import MarketImpact, MarketImpactAnalyzer
from polymarket_signal_tracker.signals.models import (
    CompositeSignalInput,
    EnhancedSignalMetrics,
    SignalQuality,
)
from polymarket_signal_tracker.signals.tiers import TraderTier

__all__ = [
    "AnalysisTag",
    "CompositeSignalCalculator",
    "CompositeSignalInput",
    "EnhancedSignalMetrics",
    "MarketImpact",
    "MarketImpactAnalyzer",
    "MarketSignalService",
    "OutcomeAggregate",
    "ScoredOutcome",
    "SignalQuality",
    "SignalTrade",
    "TradeClassifier",
    "TraderTier",
]
