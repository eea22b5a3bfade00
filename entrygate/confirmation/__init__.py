"""
Candle Confirmation

Holds actionable decisions until the market confirms them.

Flow:
    Decision -> Pending signal -> next candle -> CONFIRMED / REJECTED / EXPIRED
    Decision -> Sequential signal -> N consecutive candles -> VALIDATED / EXPIRED
"""

from entrygate.confirmation.config import ConfirmationConfig, SequentialConfig
from entrygate.confirmation.schemas import (
    Candle,
    CandleDirection,
    CandleSnapshot,
    ConfirmationHealth,
    ConfirmationOutcome,
    OutcomeType,
    PendingSignal,
    PendingState,
    SequentialProgress,
    SequentialSignal,
    SignalDirection,
)
from entrygate.confirmation.candle_log import CandleLog
from entrygate.confirmation.candle_sources import (
    OHLC,
    CandleSource,
    ReplayCandleSource,
    SimulatedCandleSource,
)
from entrygate.confirmation.sequential_validator import SequentialCandleValidator
from entrygate.confirmation.confirmation_engine import CandleConfirmationEngine

__all__ = [
    'ConfirmationConfig',
    'SequentialConfig',
    'Candle',
    'CandleDirection',
    'CandleSnapshot',
    'ConfirmationHealth',
    'ConfirmationOutcome',
    'OutcomeType',
    'PendingSignal',
    'PendingState',
    'SequentialProgress',
    'SequentialSignal',
    'SignalDirection',
    'CandleLog',
    'OHLC',
    'CandleSource',
    'ReplayCandleSource',
    'SimulatedCandleSource',
    'SequentialCandleValidator',
    'CandleConfirmationEngine',
]
