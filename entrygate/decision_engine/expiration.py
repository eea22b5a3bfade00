"""
Expiration Calculator

Exact expiry from timeframe, market type, confidence and volatility.
Every adjustment is a multiplier <= 1.0, so risk factors only shorten
the window.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
import math

from entrygate.decision_engine.config import ExpirationConfig
from entrygate.decision_engine.schemas import MarketContext, Timeframe, VolatilityData


@dataclass(frozen=True)
class ExpirationResult:
    expires_at: datetime
    duration_seconds: int


class ExpirationCalculator:
    """Pure expiration computation"""

    def __init__(self, config: Optional[ExpirationConfig] = None):
        self.config = config or ExpirationConfig()

    def duration_seconds(
        self,
        context: MarketContext,
        confidence: float,
        volatility: VolatilityData
    ) -> int:
        cfg = self.config
        seconds = float(cfg.short_base_seconds if context.timeframe == Timeframe.S30
                        else cfg.default_base_seconds)

        if context.is_otc:
            seconds *= cfg.otc_multiplier
        if confidence > cfg.high_confidence:
            seconds *= cfg.high_confidence_multiplier
        if volatility.level > cfg.high_volatility:
            seconds *= cfg.high_volatility_multiplier
        if volatility.large_bodies:
            seconds *= cfg.large_body_multiplier

        return max(cfg.min_seconds, int(math.floor(seconds)))

    def calculate(
        self,
        context: MarketContext,
        confidence: float,
        volatility: VolatilityData,
        now: datetime
    ) -> ExpirationResult:
        duration = self.duration_seconds(context, confidence, volatility)
        return ExpirationResult(
            expires_at=now + timedelta(seconds=duration),
            duration_seconds=duration
        )
