"""
Pipeline Configuration

Composes the decision engine and confirmation configurations with the
runtime parameters of the two pipeline loops.
"""

from dataclasses import asdict, dataclass, field
from typing import Optional
import hashlib
import json

from entrygate.confirmation.config import ConfirmationConfig
from entrygate.decision_engine.config import DecisionEngineConfig, build_dataclass
from entrygate.decision_engine.schemas import Timeframe


@dataclass
class PipelineConfig:
    """
    Complete pipeline configuration.
    """

    engine: DecisionEngineConfig = field(default_factory=DecisionEngineConfig)
    confirmation: ConfirmationConfig = field(default_factory=ConfirmationConfig)

    # Candle stream
    timeframe: str = "1m"
    candle_log_size: int = 25
    tick_period_seconds: Optional[float] = None    # None = timeframe length

    # Evaluation loop
    evaluation_queue_size: int = 1000

    # Learning
    record_confirmation_outcomes: bool = True

    config_version: str = "1.0.0"

    def __post_init__(self):
        Timeframe(self.timeframe)
        if self.candle_log_size < 2:
            raise ValueError(f"candle_log_size must be at least 2, got {self.candle_log_size}")
        if self.tick_period_seconds is not None and self.tick_period_seconds <= 0:
            raise ValueError("tick_period_seconds must be positive")
        if self.evaluation_queue_size < 1:
            raise ValueError("evaluation_queue_size must be at least 1")

    @property
    def tick_period(self) -> float:
        if self.tick_period_seconds is not None:
            return self.tick_period_seconds
        return float(Timeframe(self.timeframe).seconds)

    def to_dict(self) -> dict:
        """Convert to dictionary"""
        data = asdict(self)
        data['config_hash'] = self.compute_hash()
        return data

    def compute_hash(self) -> str:
        """Deterministic hash of the full pipeline configuration"""
        config_json = json.dumps(asdict(self), sort_keys=True)
        return hashlib.sha256(config_json.encode()).hexdigest()[:12]

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "PipelineConfig":
        return build_dataclass(cls, data or {})
