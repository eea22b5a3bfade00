"""
Decision Engine Schemas

Defines indicator readings, market context, volatility data, aggregated
scores and the final trading decision.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional


class Signal(str, Enum):
    """Direction reported by a single indicator"""
    BUY = "buy"
    SELL = "sell"
    NEUTRAL = "neutral"


class EntryPoint(str, Enum):
    """Final trading decision"""
    BUY = "buy"
    SELL = "sell"
    WAIT = "wait"


class MarketType(str, Enum):
    REGULAR = "regular"
    OTC = "otc"


class Precision(str, Enum):
    """User-selected analysis precision"""
    LOW = "low"
    NORMAL = "normal"
    HIGH = "high"


class Timeframe(str, Enum):
    """Supported candle timeframes"""
    S30 = "30s"
    M1 = "1m"
    M5 = "5m"
    M15 = "15m"

    @property
    def seconds(self) -> int:
        return _TIMEFRAME_SECONDS[self]


_TIMEFRAME_SECONDS = {
    Timeframe.S30: 30,
    Timeframe.M1: 60,
    Timeframe.M5: 300,
    Timeframe.M15: 900,
}


class IndicatorKind(str, Enum):
    """Indicator families, used to look up base weights"""
    TRENDLINES = "trendlines"
    FIBONACCI = "fibonacci"
    CANDLE_PATTERNS = "candle_patterns"
    ELLIOTT_WAVES = "elliott_waves"
    DOW_THEORY = "dow_theory"
    SUPPORT_RESISTANCE = "support_resistance"
    MOMENTUM = "momentum"
    VOLUME = "volume"
    MARKET_CONDITION = "market_condition"
    OTC_MANIPULATION = "otc_manipulation"
    OTHER = "other"

    @classmethod
    def from_name(cls, name: str) -> "IndicatorKind":
        """Resolve a kind from an indicator name ("Fibonacci retracement" -> FIBONACCI)"""
        key = name.strip().lower().replace("-", "_").replace(" ", "_").replace("/", "_")
        for kind in cls:
            if key == kind.value:
                return kind
        for alias, kind in _KIND_ALIASES.items():
            if alias in key:
                return kind
        return cls.OTHER


_KIND_ALIASES = {
    "trend": IndicatorKind.TRENDLINES,
    "fib": IndicatorKind.FIBONACCI,
    "candle": IndicatorKind.CANDLE_PATTERNS,
    "elliott": IndicatorKind.ELLIOTT_WAVES,
    "dow": IndicatorKind.DOW_THEORY,
    "support": IndicatorKind.SUPPORT_RESISTANCE,
    "resistance": IndicatorKind.SUPPORT_RESISTANCE,
    "momentum": IndicatorKind.MOMENTUM,
    "volume": IndicatorKind.VOLUME,
    "manipulation": IndicatorKind.OTC_MANIPULATION,
    "market": IndicatorKind.MARKET_CONDITION,
}


class VolatilityType(str, Enum):
    CALM = "calm"
    TREND = "trend"
    WHIPSAW = "whipsaw"


class MalformedReadingError(ValueError):
    """Raised when an indicator reading is missing required fields"""


@dataclass(frozen=True)
class IndicatorReading:
    """
    Single indicator output produced by an external detector.

    Immutable once created and consumed once by the aggregator.
    """

    name: str
    signal: Signal
    strength: float            # 0-100
    found: bool = True
    kind: Optional[IndicatorKind] = None
    details: Mapping[str, float] = field(default_factory=dict)

    @property
    def resolved_kind(self) -> IndicatorKind:
        return self.kind or IndicatorKind.from_name(self.name)

    @classmethod
    def from_detector(
        cls,
        name: str,
        buy_score: float,
        sell_score: float,
        confidence: float,
        found: bool = True,
        kind: Optional[IndicatorKind] = None,
        details: Optional[Mapping[str, float]] = None
    ) -> "IndicatorReading":
        """
        Build a reading from a detector's buy/sell scores.

        The side with the larger score wins; equal scores give NEUTRAL.
        """
        if buy_score > sell_score:
            signal = Signal.BUY
        elif sell_score > buy_score:
            signal = Signal.SELL
        else:
            signal = Signal.NEUTRAL
        return cls(
            name=name,
            signal=signal,
            strength=float(confidence),
            found=found,
            kind=kind,
            details=dict(details or {})
        )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "IndicatorReading":
        """
        Build a reading from loosely-typed input (API payloads, detector dicts).

        Raises:
            MalformedReadingError: if name, signal or strength is missing or unusable
        """
        if not isinstance(data, Mapping):
            raise MalformedReadingError(f"Reading must be a mapping, got {type(data).__name__}")

        missing = [key for key in ("name", "signal", "strength") if data.get(key) is None]
        if missing:
            raise MalformedReadingError(f"Reading missing fields: {', '.join(missing)}")

        try:
            signal = Signal(str(data["signal"]).lower())
        except ValueError:
            raise MalformedReadingError(f"Unknown signal {data['signal']!r}")

        try:
            strength = float(data["strength"])
        except (TypeError, ValueError):
            raise MalformedReadingError(f"Strength {data['strength']!r} is not numeric")

        kind = data.get("kind")
        if kind is not None:
            try:
                kind = IndicatorKind(kind)
            except ValueError:
                raise MalformedReadingError(f"Unknown indicator kind {kind!r}")

        return cls(
            name=str(data["name"]),
            signal=signal,
            strength=strength,
            found=_parse_found(data.get("found", True)),
            kind=kind,
            details=_parse_details(data.get("details"))
        )

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'signal': self.signal.value,
            'strength': float(self.strength),
            'found': self.found,
            'kind': self.resolved_kind.value,
            'details': dict(self.details),
        }


_TRUE_STRINGS = {"true", "1", "yes"}
_FALSE_STRINGS = {"false", "0", "no"}


def _parse_found(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    if isinstance(value, str):
        key = value.strip().lower()
        if key in _TRUE_STRINGS:
            return True
        if key in _FALSE_STRINGS:
            return False
    raise MalformedReadingError(f"Found flag {value!r} is not a boolean")


def _parse_details(value: Any) -> Dict[str, float]:
    """Details must be a mapping of numeric values"""
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise MalformedReadingError(f"Details must be a mapping, got {type(value).__name__}")
    details = {}
    for key, item in value.items():
        if not isinstance(item, (int, float)):
            raise MalformedReadingError(f"Detail {key!r} is not numeric: {item!r}")
        details[str(key)] = float(item)
    return details


@dataclass(frozen=True)
class MarketContext:
    """Per-evaluation market settings supplied by user configuration"""

    timeframe: Timeframe = Timeframe.M1
    market_type: MarketType = MarketType.REGULAR
    precision: Precision = Precision.NORMAL

    @property
    def is_otc(self) -> bool:
        return self.market_type == MarketType.OTC

    def to_dict(self) -> dict:
        return {
            'timeframe': self.timeframe.value,
            'market_type': self.market_type.value,
            'precision': self.precision.value,
        }


@dataclass
class VolatilityData:
    """Candle volatility estimate"""

    level: float = 30.0                                   # 0-100
    volatility_type: VolatilityType = VolatilityType.CALM
    wick_ratio: float = 0.0                               # average wick share of range
    body_ratio: float = 0.0                               # average body share of range
    large_bodies: bool = False

    def to_dict(self) -> dict:
        return {
            'level': float(self.level),
            'volatility_type': self.volatility_type.value,
            'wick_ratio': float(self.wick_ratio),
            'body_ratio': float(self.body_ratio),
            'large_bodies': bool(self.large_bodies),
        }


@dataclass
class IndicatorContribution:
    """Weight and score applied to one reading during aggregation"""

    name: str
    kind: IndicatorKind
    signal: Signal
    strength: float
    weight: float
    score: float
    synthetic: bool = False

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'kind': self.kind.value,
            'signal': self.signal.value,
            'strength': float(self.strength),
            'weight': float(self.weight),
            'score': float(self.score),
            'synthetic': self.synthetic,
        }


@dataclass
class AggregatedScores:
    """Weighted buy/sell scores for one evaluation"""

    buy_score: float = 0.0
    sell_score: float = 0.0
    total_weight: float = 0.0
    normalized_buy: float = 0.0
    normalized_sell: float = 0.0
    contributions: List[IndicatorContribution] = field(default_factory=list)
    skipped_readings: int = 0
    manipulation_detected: bool = False
    volatility_reduction: float = 0.0

    def to_dict(self) -> dict:
        return {
            'buy_score': float(self.buy_score),
            'sell_score': float(self.sell_score),
            'total_weight': float(self.total_weight),
            'normalized_buy': float(self.normalized_buy),
            'normalized_sell': float(self.normalized_sell),
            'contributions': [c.to_dict() for c in self.contributions],
            'skipped_readings': self.skipped_readings,
            'manipulation_detected': self.manipulation_detected,
            'volatility_reduction': float(self.volatility_reduction),
        }


@dataclass
class GateResult:
    """Output of the entry gate before expiration is attached"""

    entry_point: EntryPoint
    confidence: float
    threshold: float
    differential_factor: float
    narrative: str = ""
    volatility_override: bool = False


@dataclass
class Decision:
    """
    Trading decision for one evaluation cycle.

    Handed to the confirmation subsystem; superseded by the next
    evaluation of the same stream.
    """

    entry_point: EntryPoint
    confidence: float
    expiration_time: datetime
    expiration_seconds: int
    indicators: List[IndicatorReading]
    narrative: str
    context: MarketContext
    created_at: datetime

    # Audit trail
    scores: AggregatedScores = field(default_factory=AggregatedScores)
    threshold: float = 0.0
    differential_factor: float = 0.0
    noise_level: float = 0.0
    volatility: VolatilityData = field(default_factory=VolatilityData)
    config_hash: str = ""

    @property
    def is_actionable(self) -> bool:
        return self.entry_point != EntryPoint.WAIT

    def to_dict(self) -> dict:
        return {
            'entry_point': self.entry_point.value,
            'confidence': float(self.confidence),
            'expiration_time': self.expiration_time.isoformat(),
            'expiration_seconds': self.expiration_seconds,
            'indicators': [r.to_dict() for r in self.indicators],
            'narrative': self.narrative,
            'context': self.context.to_dict(),
            'created_at': self.created_at.isoformat(),
            'scores': self.scores.to_dict(),
            'threshold': float(self.threshold),
            'differential_factor': float(self.differential_factor),
            'noise_level': float(self.noise_level),
            'volatility': self.volatility.to_dict(),
            'config_hash': self.config_hash,
        }


@dataclass
class DecisionEngineHealth:
    """Health metrics for Decision Engine monitoring"""

    evaluations: int = 0
    buy_decisions: int = 0
    sell_decisions: int = 0
    wait_decisions: int = 0
    volatility_overrides: int = 0
    starved_evaluations: int = 0
    skipped_readings: int = 0
    avg_confidence: float = 0.0
    avg_processing_time_ms: float = 0.0
    last_decision_time: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            'evaluations': self.evaluations,
            'buy_decisions': self.buy_decisions,
            'sell_decisions': self.sell_decisions,
            'wait_decisions': self.wait_decisions,
            'volatility_overrides': self.volatility_overrides,
            'starved_evaluations': self.starved_evaluations,
            'skipped_readings': self.skipped_readings,
            'avg_confidence': float(self.avg_confidence),
            'avg_processing_time_ms': float(self.avg_processing_time_ms),
            'last_decision_time': self.last_decision_time.isoformat() if self.last_decision_time else None,
        }
