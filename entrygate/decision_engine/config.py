"""
Decision Engine Configuration

Defines indicator weights, gate thresholds, volatility estimation and
expiration parameters.
"""

from dataclasses import asdict, dataclass, field, fields, is_dataclass
from typing import Dict, Optional
import hashlib
import json


def _default_base_weights() -> Dict[str, float]:
    return {
        "trendlines": 1.5,
        "fibonacci": 1.5,
        "candle_patterns": 1.3,
        "elliott_waves": 1.2,
        "dow_theory": 1.0,
        "support_resistance": 1.3,
        "momentum": 1.3,
        "volume": 1.1,
        "market_condition": 1.2,
        "otc_manipulation": 1.5,
        "other": 1.0,
    }


@dataclass
class WeightConfig:
    """Aggregator weighting configuration"""

    base_weights: Dict[str, float] = field(default_factory=_default_base_weights)

    # Short timeframes lean on fast-reacting families
    fast_timeframe_multipliers: Dict[str, float] = field(default_factory=lambda: {
        "candle_patterns": 1.8 / 1.3,
        "momentum": 1.6 / 1.3,
        "volume": 1.4 / 1.1,
    })

    # Confidence factor
    high_strength_threshold: float = 80.0
    high_strength_boost: float = 1.2

    # Market type factor (OTC only, regular market is neutral)
    otc_factors: Dict[str, float] = field(default_factory=lambda: {
        "trendlines": 0.9,
        "elliott_waves": 0.8,
        "dow_theory": 0.9,
        "candle_patterns": 0.9,
        "volume": 0.85,
        "support_resistance": 1.15,
    })

    # Volatility factor
    fast_decay_pivot: float = 50.0
    fast_decay_scale: float = 100.0
    slow_decay_pivot: float = 65.0
    slow_decay_scale: float = 200.0
    slow_decay_kinds: list = field(default_factory=lambda: ["fibonacci", "support_resistance"])
    min_volatility_factor: float = 0.1

    # OTC manipulation heuristic
    manipulation_dominance_ratio: float = 2.8
    manipulation_strength: float = 72.0

    # High volatility suppression of both scores
    suppression_volatility: float = 65.0
    suppression_scale: float = 1.5
    max_suppression: float = 0.8

    def __post_init__(self):
        negative = [k for k, v in self.base_weights.items() if v < 0]
        if negative:
            raise ValueError(f"Base weights must be non-negative: {negative}")
        if self.max_suppression < 0 or self.max_suppression >= 1:
            raise ValueError(f"max_suppression must be in [0, 1), got {self.max_suppression}")


@dataclass
class GateConfig:
    """Entry gate thresholds"""

    base_thresholds: Dict[str, float] = field(default_factory=lambda: {
        "low": 0.52,
        "normal": 0.55,
        "high": 0.58,
    })
    noise_threshold_scale: float = 0.15
    volatility_threshold_scale: float = 0.2
    otc_threshold_adjustment: float = 0.05

    base_differential: float = 1.15
    otc_base_differential: float = 1.2
    noise_differential_scale: float = 0.25
    volatility_differential_scale: float = 0.4

    # Hard override
    extreme_volatility: float = 80.0
    override_confidence_cap: float = 75.0

    # Confidence shaping
    confidence_penalty_pivot: float = 50.0
    max_confidence: float = 98.0
    wait_confidence_min: float = 30.0
    wait_confidence_max: float = 60.0

    def __post_init__(self):
        if self.wait_confidence_min > self.wait_confidence_max:
            raise ValueError("wait_confidence_min must not exceed wait_confidence_max")
        if self.base_differential < 1.0 or self.otc_base_differential < 1.0:
            raise ValueError("Differential factors must be >= 1.0")


@dataclass
class VolatilityConfig:
    """Noise and volatility estimation parameters"""

    default_level: float = 30.0
    calm_below: float = 35.0
    whipsaw_from: float = 65.0
    window: int = 20
    neutral_body_ratio: float = 0.1
    large_body_ratio: float = 0.6
    large_body_movement: float = 40.0

    # Noise components
    disagreement_weight: float = 50.0
    neutral_weight: float = 15.0
    candle_pattern_noise: float = 10.0
    elliott_noise: float = 5.0
    otc_noise: float = 20.0
    trendline_divisor: float = 15.0
    fibonacci_divisor: float = 20.0


@dataclass
class ExpirationConfig:
    """Expiration calculator multipliers (each <= 1.0)"""

    short_base_seconds: int = 30
    default_base_seconds: int = 60
    otc_multiplier: float = 0.85
    high_confidence: float = 85.0
    high_confidence_multiplier: float = 0.90
    high_volatility: float = 65.0
    high_volatility_multiplier: float = 0.90
    large_body_multiplier: float = 0.90
    min_seconds: int = 1

    def __post_init__(self):
        for name in ("otc_multiplier", "high_confidence_multiplier",
                     "high_volatility_multiplier", "large_body_multiplier"):
            value = getattr(self, name)
            if not 0 < value <= 1.0:
                raise ValueError(f"{name} must be in (0, 1], got {value}")


@dataclass
class DecisionEngineConfig:
    """
    Complete Decision Engine configuration.

    All weights, thresholds and multipliers.
    """

    weights: WeightConfig = field(default_factory=WeightConfig)
    gate: GateConfig = field(default_factory=GateConfig)
    volatility: VolatilityConfig = field(default_factory=VolatilityConfig)
    expiration: ExpirationConfig = field(default_factory=ExpirationConfig)

    config_version: str = "1.0.0"

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        data = asdict(self)
        data['config_hash'] = self.compute_hash()
        return data

    def compute_hash(self) -> str:
        """
        Compute deterministic hash of configuration.

        Used for versioning and reproducibility.
        """
        config_json = json.dumps(asdict(self), sort_keys=True)
        return hashlib.sha256(config_json.encode()).hexdigest()[:12]

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "DecisionEngineConfig":
        return build_dataclass(cls, data or {})


def build_dataclass(cls, data: dict):
    """Recursively build a (nested) config dataclass from a plain dict"""
    kwargs = {}
    for f in fields(cls):
        if f.name not in data:
            continue
        value = data[f.name]
        default = f.default_factory() if callable(f.default_factory) else None
        if is_dataclass(default) and isinstance(value, dict):
            value = build_dataclass(type(default), value)
        kwargs[f.name] = value
    return cls(**kwargs)
