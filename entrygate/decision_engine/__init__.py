"""
Decision Engine

Turns independently-computed indicator readings into a single gated,
time-boxed trading decision.

Flow:
    Readings -> Noise/Volatility -> Weighted Aggregator -> Entry Gate -> Expiration

Philosophy:
    - Adaptive weights, adaptive thresholds
    - Indicator trust learned from outcomes
    - When in doubt, WAIT
"""

from entrygate.decision_engine.config import (
    DecisionEngineConfig,
    ExpirationConfig,
    GateConfig,
    VolatilityConfig,
    WeightConfig,
)
from entrygate.decision_engine.schemas import (
    AggregatedScores,
    Decision,
    DecisionEngineHealth,
    EntryPoint,
    IndicatorKind,
    IndicatorReading,
    MalformedReadingError,
    MarketContext,
    MarketType,
    Precision,
    Signal,
    Timeframe,
    VolatilityData,
    VolatilityType,
)
from entrygate.decision_engine.history import IndicatorHistoryStore, IndicatorHistoryEntry
from entrygate.decision_engine.market_quality import market_noise, candle_volatility
from entrygate.decision_engine.aggregator import WeightedDecisionAggregator
from entrygate.decision_engine.entry_gate import EntryGate
from entrygate.decision_engine.expiration import ExpirationCalculator, ExpirationResult
from entrygate.decision_engine.sources import (
    IndicatorSource,
    StaticIndicatorSource,
    CompositeIndicatorSource,
)
from entrygate.decision_engine.engine import DecisionEngine

__all__ = [
    'DecisionEngineConfig',
    'ExpirationConfig',
    'GateConfig',
    'VolatilityConfig',
    'WeightConfig',
    'AggregatedScores',
    'Decision',
    'DecisionEngineHealth',
    'EntryPoint',
    'IndicatorKind',
    'IndicatorReading',
    'MalformedReadingError',
    'MarketContext',
    'MarketType',
    'Precision',
    'Signal',
    'Timeframe',
    'VolatilityData',
    'VolatilityType',
    'IndicatorHistoryStore',
    'IndicatorHistoryEntry',
    'market_noise',
    'candle_volatility',
    'WeightedDecisionAggregator',
    'EntryGate',
    'ExpirationCalculator',
    'ExpirationResult',
    'IndicatorSource',
    'StaticIndicatorSource',
    'CompositeIndicatorSource',
    'DecisionEngine',
]
