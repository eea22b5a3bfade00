"""
Confirmation Configuration

Routing, deadline and confidence parameters for the candle confirmation
engine and the sequential validator.
"""

from dataclasses import asdict, dataclass, field
from typing import Dict, Optional
import hashlib
import json

from entrygate.decision_engine.config import build_dataclass


@dataclass
class SequentialConfig:
    """Sequential candle validator configuration"""

    # Required candles by confidence
    high_confidence: float = 80.0
    medium_confidence: float = 65.0
    high_confidence_candles: int = 2
    medium_confidence_candles: int = 3
    low_confidence_candles: int = 4
    fast_timeframe_extra: int = 1      # 30s
    slow_timeframe_relief: int = 1     # 5m and above
    min_candles: int = 2
    max_candles: int = 5

    # Candle classification
    neutral_body_ratio: float = 0.1

    # Deadlines
    reversal_extension_timeframes: int = 2
    max_deadline_extensions: int = 1

    # Validation rewards
    max_confidence_boost: float = 15.0
    max_confidence: float = 95.0
    strength_expiration_scale: float = 0.3
    extra_candle_expiration_scale: float = 0.1
    fast_timeframe_expiration_multiplier: float = 1.2

    def __post_init__(self):
        if self.min_candles > self.max_candles:
            raise ValueError("min_candles must not exceed max_candles")
        if self.min_candles < 1:
            raise ValueError("min_candles must be at least 1")


@dataclass
class ConfirmationConfig:
    """
    Candle confirmation engine configuration.
    """

    sequential: SequentialConfig = field(default_factory=SequentialConfig)

    # Routing to sequential validation
    sequential_below_confidence: float = 75.0
    sequential_timeframes: list = field(default_factory=lambda: ["30s"])

    # Deadline = now + deadline_timeframes x timeframe
    deadline_timeframes: int = 2
    min_deadline_seconds: int = 1

    # Confirmation boost tiers: body/open % -> multiplier
    body_boost_tiers: Dict[str, float] = field(default_factory=lambda: {
        "0.5": 1.25,
        "0.2": 1.15,
        "0.0": 1.05,
    })
    max_confirmed_confidence: float = 95.0
    rejection_multiplier: float = 0.65

    # Memory bound
    max_pending_signals: int = 50

    def __post_init__(self):
        if self.max_pending_signals < 1:
            raise ValueError("max_pending_signals must be at least 1")
        if any(m > 1.25 or m < 1.0 for m in self.body_boost_tiers.values()):
            raise ValueError("Body boost multipliers must be within [1.0, 1.25]")

    def body_multiplier(self, body_pct: float) -> float:
        """Confirmation boost for a candle body (percent of open)"""
        for floor, multiplier in sorted(
            ((float(k), v) for k, v in self.body_boost_tiers.items()), reverse=True
        ):
            if body_pct >= floor:
                return multiplier
        return 1.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data['config_hash'] = self.compute_hash()
        return data

    def compute_hash(self) -> str:
        config_json = json.dumps(asdict(self), sort_keys=True)
        return hashlib.sha256(config_json.encode()).hexdigest()[:12]

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "ConfirmationConfig":
        return build_dataclass(cls, data or {})
