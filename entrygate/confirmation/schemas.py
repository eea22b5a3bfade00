"""
Confirmation Schemas

Candles, pending signals, sequential signals and confirmation outcomes.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional, Tuple

from entrygate.decision_engine.schemas import EntryPoint, Timeframe


class SignalDirection(str, Enum):
    """Direction of a pending signal"""
    BUY = "buy"
    SELL = "sell"

    @property
    def expected_candle(self) -> "CandleDirection":
        return CandleDirection.UP if self == SignalDirection.BUY else CandleDirection.DOWN

    @classmethod
    def from_entry_point(cls, entry_point: EntryPoint) -> "SignalDirection":
        if entry_point == EntryPoint.BUY:
            return cls.BUY
        if entry_point == EntryPoint.SELL:
            return cls.SELL
        raise ValueError(f"No signal direction for {entry_point}")


class CandleDirection(str, Enum):
    UP = "up"
    DOWN = "down"
    NEUTRAL = "neutral"


class PendingState(str, Enum):
    """Pending signal state machine states"""
    PENDING = "PENDING"             # Waiting for the next candle
    ACCUMULATING = "ACCUMULATING"   # Sequential: counting consecutive candles
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    VALIDATED = "VALIDATED"


class OutcomeType(str, Enum):
    """Terminal outcomes emitted to collaborators"""
    CONFIRMED = "CONFIRMED"
    REJECTED = "REJECTED"
    EXPIRED = "EXPIRED"
    VALIDATED = "VALIDATED"

    @property
    def is_success(self) -> Optional[bool]:
        """True/False for evidence-bearing outcomes, None for time-outs"""
        if self in (OutcomeType.CONFIRMED, OutcomeType.VALIDATED):
            return True
        if self == OutcomeType.REJECTED:
            return False
        return None


@dataclass(frozen=True)
class Candle:
    """One closed candle, referenced by its absolute index"""

    open: float
    high: float
    low: float
    close: float
    timestamp: datetime
    index: int

    @property
    def direction(self) -> CandleDirection:
        if self.close > self.open:
            return CandleDirection.UP
        if self.close < self.open:
            return CandleDirection.DOWN
        return CandleDirection.NEUTRAL

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def range(self) -> float:
        return self.high - self.low

    @property
    def body_pct(self) -> float:
        """Body size relative to the open price, in percent"""
        if self.open <= 0:
            return 0.0
        return self.body / self.open * 100.0

    def to_dict(self) -> dict:
        return {
            'open': float(self.open),
            'high': float(self.high),
            'low': float(self.low),
            'close': float(self.close),
            'timestamp': self.timestamp.isoformat(),
            'index': self.index,
        }


@dataclass(frozen=True)
class CandleSnapshot:
    """Consistent view of the candle log for one tick"""

    candles: Tuple[Candle, ...]

    @property
    def latest_index(self) -> int:
        return self.candles[-1].index if self.candles else -1

    @property
    def latest(self) -> Optional[Candle]:
        return self.candles[-1] if self.candles else None

    def get(self, index: int) -> Optional[Candle]:
        """Candle by absolute index, None when outside the window"""
        if not self.candles:
            return None
        position = index - self.candles[0].index
        if 0 <= position < len(self.candles):
            return self.candles[position]
        return None

    def after(self, index: int) -> List[Candle]:
        """Candles with an index strictly greater than `index`"""
        return [c for c in self.candles if c.index > index]

    def __len__(self) -> int:
        return len(self.candles)


@dataclass
class PendingSignal:
    """
    Buy/Sell decision waiting for candle confirmation.

    Owned exclusively by the confirmation engine.
    """

    signal_id: str
    direction: SignalDirection
    original_confidence: float
    created_at_candle_index: int
    confirmation_deadline: datetime
    requires_sequential: bool = False
    timeframe: Timeframe = Timeframe.M1
    created_at: Optional[datetime] = None
    indicator_names: List[str] = field(default_factory=list)
    stream: str = "default"
    state: PendingState = PendingState.PENDING

    def to_dict(self) -> dict:
        return {
            'signal_id': self.signal_id,
            'direction': self.direction.value,
            'original_confidence': float(self.original_confidence),
            'created_at_candle_index': self.created_at_candle_index,
            'confirmation_deadline': self.confirmation_deadline.isoformat(),
            'requires_sequential': self.requires_sequential,
            'timeframe': self.timeframe.value,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'indicator_names': list(self.indicator_names),
            'stream': self.stream,
            'state': self.state.value,
        }


@dataclass
class SequentialSignal(PendingSignal):
    """Pending signal that needs N consecutive candles in its direction"""

    required_candles: int = 2
    validated_candles: int = 0
    last_candle_index_seen: int = -1
    original_expiration_seconds: int = 60
    adjusted_expiration_seconds: int = 60
    reversal_count: int = 0
    deadline_extensions: int = 0
    matching_candles: int = 0
    directional_candles: int = 0
    run_strengths: List[float] = field(default_factory=list)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data.update({
            'required_candles': self.required_candles,
            'validated_candles': self.validated_candles,
            'last_candle_index_seen': self.last_candle_index_seen,
            'original_expiration_seconds': self.original_expiration_seconds,
            'adjusted_expiration_seconds': self.adjusted_expiration_seconds,
            'reversal_count': self.reversal_count,
            'deadline_extensions': self.deadline_extensions,
        })
        return data


@dataclass
class SequentialProgress:
    """Progress report for a sequential signal"""

    signal_id: str
    candles_in_direction: int
    required_candles: int
    remaining_candles: int
    reversal_count: int
    deadline: datetime
    adjusted_expiration_seconds: int

    def to_dict(self) -> dict:
        return {
            'signal_id': self.signal_id,
            'candles_in_direction': self.candles_in_direction,
            'required_candles': self.required_candles,
            'remaining_candles': self.remaining_candles,
            'reversal_count': self.reversal_count,
            'deadline': self.deadline.isoformat(),
            'adjusted_expiration_seconds': self.adjusted_expiration_seconds,
        }


@dataclass
class ConfirmationOutcome:
    """Terminal transition of a pending signal"""

    signal_id: str
    outcome: OutcomeType
    direction: SignalDirection
    original_confidence: float
    final_confidence: float
    timestamp: datetime
    candle_index: Optional[int] = None
    reason: str = ""
    sequential: bool = False
    adjusted_expiration_seconds: Optional[int] = None
    sequence_strength: Optional[float] = None
    indicator_names: List[str] = field(default_factory=list)
    stream: str = "default"

    def to_dict(self) -> dict:
        return {
            'signal_id': self.signal_id,
            'outcome': self.outcome.value,
            'direction': self.direction.value,
            'original_confidence': float(self.original_confidence),
            'final_confidence': float(self.final_confidence),
            'timestamp': self.timestamp.isoformat(),
            'candle_index': self.candle_index,
            'reason': self.reason,
            'sequential': self.sequential,
            'adjusted_expiration_seconds': self.adjusted_expiration_seconds,
            'sequence_strength': float(self.sequence_strength) if self.sequence_strength is not None else None,
            'indicator_names': list(self.indicator_names),
            'stream': self.stream,
        }


@dataclass
class ConfirmationHealth:
    """Health metrics for the confirmation subsystem"""

    signals_registered: int = 0
    routed_sequential: int = 0
    confirmed: int = 0
    rejected: int = 0
    expired: int = 0
    validated: int = 0
    evicted: int = 0
    sequential_resets: int = 0
    ticks_processed: int = 0
    pending: int = 0

    def record(self, outcome: ConfirmationOutcome):
        if outcome.outcome == OutcomeType.CONFIRMED:
            self.confirmed += 1
        elif outcome.outcome == OutcomeType.REJECTED:
            self.rejected += 1
        elif outcome.outcome == OutcomeType.VALIDATED:
            self.validated += 1
        else:
            self.expired += 1

    def to_dict(self) -> Dict[str, int]:
        return {
            'signals_registered': self.signals_registered,
            'routed_sequential': self.routed_sequential,
            'confirmed': self.confirmed,
            'rejected': self.rejected,
            'expired': self.expired,
            'validated': self.validated,
            'evicted': self.evicted,
            'sequential_resets': self.sequential_resets,
            'ticks_processed': self.ticks_processed,
            'pending': self.pending,
        }
