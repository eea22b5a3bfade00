"""
Decision Engine

Core engine that orchestrates one evaluation cycle:
1. Market noise estimation
2. Candle volatility estimation
3. Weighted aggregation (with indicator history trust)
4. Entry gate
5. Expiration calculation

Design Principles:
    - Conservative: when in doubt, WAIT
    - Deterministic: same inputs and clock -> same decision
    - Never raises on bad indicator data; degrades to WAIT
"""

import logging
import time
from datetime import datetime, timezone
from typing import Any, Iterable, List, Optional

import numpy as np
import pandas as pd

from entrygate.decision_engine.aggregator import WeightedDecisionAggregator
from entrygate.decision_engine.config import DecisionEngineConfig
from entrygate.decision_engine.entry_gate import EntryGate
from entrygate.decision_engine.expiration import ExpirationCalculator
from entrygate.decision_engine.history import IndicatorHistoryStore
from entrygate.decision_engine.market_quality import candle_volatility, market_noise
from entrygate.decision_engine.schemas import (
    Decision,
    DecisionEngineHealth,
    EntryPoint,
    MarketContext,
    VolatilityData,
)

LOG = logging.getLogger(__name__)


class DecisionEngine:
    """
    Decision Engine

    Converts raw indicator readings into a gated, time-boxed decision.
    """

    def __init__(
        self,
        config: Optional[DecisionEngineConfig] = None,
        history: Optional[IndicatorHistoryStore] = None
    ):
        """
        Initialize Decision Engine.

        Args:
            config: Engine configuration (uses defaults if None)
            history: Shared indicator history store (new store if None)
        """
        self.config = config or DecisionEngineConfig()
        self.config_hash = self.config.compute_hash()
        self.history = history or IndicatorHistoryStore()

        self.aggregator = WeightedDecisionAggregator(self.config.weights, self.history)
        self.gate = EntryGate(self.config.gate)
        self.expiration = ExpirationCalculator(self.config.expiration)

        self.health = DecisionEngineHealth()
        self._processing_times: List[float] = []
        self._confidences: List[float] = []

        LOG.info(f"Decision engine initialized (config hash {self.config_hash})")

    def evaluate(
        self,
        readings: Iterable[Any],
        context: Optional[MarketContext] = None,
        now: Optional[datetime] = None,
        candles: Optional[pd.DataFrame] = None,
        volatility: Optional[VolatilityData] = None
    ) -> Decision:
        """
        Run one evaluation cycle.

        Args:
            readings: Indicator readings (malformed entries are skipped)
            context: Market context (defaults: 1m, regular, normal precision)
            now: Evaluation time (defaults to current UTC time)
            candles: Recent candle window for volatility estimation
            volatility: Precomputed volatility estimate, overrides estimation

        Returns:
            Decision
        """
        start_time = time.perf_counter()
        context = context or MarketContext()
        now = now or datetime.now(timezone.utc)
        valid, skipped = self.aggregator.coerce_all(readings)

        noise = market_noise(valid, context.market_type, self.config.volatility)
        if volatility is None:
            volatility = candle_volatility(valid, candles, self.config.volatility)

        scores = self.aggregator.aggregate(valid, context, volatility)
        scores.skipped_readings = skipped
        gate_result = self.gate.decide(scores, context, noise, volatility)
        expiry = self.expiration.calculate(context, gate_result.confidence, volatility, now)

        decision = Decision(
            entry_point=gate_result.entry_point,
            confidence=gate_result.confidence,
            expiration_time=expiry.expires_at,
            expiration_seconds=expiry.duration_seconds,
            indicators=valid,
            narrative=gate_result.narrative,
            context=context,
            created_at=now,
            scores=scores,
            threshold=gate_result.threshold,
            differential_factor=gate_result.differential_factor,
            noise_level=noise,
            volatility=volatility,
            config_hash=self.config_hash
        )

        if gate_result.volatility_override:
            LOG.warning(f"Volatility override: level {volatility.level:.1f} forced WAIT")
        if skipped:
            LOG.debug(f"Skipped {skipped} malformed readings")

        self._update_health(decision, gate_result.volatility_override, start_time)
        return decision

    def _update_health(self, decision: Decision, override: bool, start_time: float):
        """Update health metrics"""
        self.health.evaluations += 1
        self.health.last_decision_time = decision.created_at
        self.health.skipped_readings += decision.scores.skipped_readings

        if decision.entry_point == EntryPoint.BUY:
            self.health.buy_decisions += 1
        elif decision.entry_point == EntryPoint.SELL:
            self.health.sell_decisions += 1
        else:
            self.health.wait_decisions += 1

        if override:
            self.health.volatility_overrides += 1
        if decision.scores.total_weight <= 0:
            self.health.starved_evaluations += 1

        self._confidences.append(decision.confidence)
        if len(self._confidences) > 1000:
            self._confidences.pop(0)
        self.health.avg_confidence = float(np.mean(self._confidences))

        processing_time = (time.perf_counter() - start_time) * 1000
        self._processing_times.append(processing_time)
        if len(self._processing_times) > 1000:
            self._processing_times.pop(0)
        self.health.avg_processing_time_ms = float(np.mean(self._processing_times))

    def get_health(self) -> DecisionEngineHealth:
        """Get current health metrics"""
        return self.health

    def reset(self):
        """Reset health tracking (history is owned by the caller)"""
        self.health = DecisionEngineHealth()
        self._processing_times = []
        self._confidences = []
