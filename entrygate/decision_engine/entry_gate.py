"""
Entry Gate

Stateless conversion of normalized scores into BUY / SELL / WAIT.

Rules (first match wins):
    1. Extreme volatility  -> WAIT (hard override)
    2. Buy above threshold and dominating sell by the differential factor -> BUY
    3. Symmetric rule -> SELL
    4. Otherwise WAIT with a bounded "near miss" confidence
"""

from typing import Optional
import logging

from entrygate.decision_engine.aggregator import strongest_contribution
from entrygate.decision_engine.config import GateConfig
from entrygate.decision_engine.schemas import (
    AggregatedScores,
    EntryPoint,
    GateResult,
    MarketContext,
    Signal,
    VolatilityData,
    VolatilityType,
)

LOG = logging.getLogger(__name__)


class EntryGate:
    """Adaptive threshold + differential dominance gate"""

    def __init__(self, config: Optional[GateConfig] = None):
        self.config = config or GateConfig()

    def confidence_threshold(self, context: MarketContext, noise: float, volatility: float) -> float:
        """Minimum normalized score; rises with noise, volatility and OTC"""
        base = self.config.base_thresholds.get(
            context.precision.value, self.config.base_thresholds["normal"]
        )
        threshold = (
            base +
            noise / 100.0 * self.config.noise_threshold_scale +
            volatility / 100.0 * self.config.volatility_threshold_scale
        )
        if context.is_otc:
            threshold += self.config.otc_threshold_adjustment
        return threshold

    def differential_factor(self, context: MarketContext, noise: float, volatility: float) -> float:
        """Minimum ratio by which the dominant side must exceed the other"""
        base = self.config.otc_base_differential if context.is_otc else self.config.base_differential
        return (
            base +
            noise / 100.0 * self.config.noise_differential_scale +
            volatility / 100.0 * self.config.volatility_differential_scale
        )

    def decide(
        self,
        scores: AggregatedScores,
        context: MarketContext,
        noise: float,
        volatility: VolatilityData
    ) -> GateResult:
        """
        Apply the decision rules.

        Args:
            scores: Aggregated scores
            context: Market context
            noise: Market noise 0-100
            volatility: Volatility estimate

        Returns:
            GateResult with entry point, confidence and narrative
        """
        level = volatility.level
        threshold = self.confidence_threshold(context, noise, level)
        differential = self.differential_factor(context, noise, level)
        nb = scores.normalized_buy
        ns = scores.normalized_sell

        LOG.debug(
            f"Threshold: {threshold * 100:.1f}%, Differential: {differential:.2f}x, "
            f"Volatility: {level:.1f}%, buy={nb:.3f}, sell={ns:.3f}"
        )

        override = False
        if level > self.config.extreme_volatility:
            entry_point = EntryPoint.WAIT
            confidence = min(self.config.override_confidence_cap, 40.0 + level / 2.0)
            override = True
            LOG.warning(f"Extreme volatility {level:.1f}%: forcing WAIT")
        elif nb > threshold and nb > ns * differential:
            entry_point = EntryPoint.BUY
            confidence = self._directional_confidence(nb, level)
        elif ns > threshold and ns > nb * differential:
            entry_point = EntryPoint.SELL
            confidence = self._directional_confidence(ns, level)
        else:
            entry_point = EntryPoint.WAIT
            confidence = self._wait_confidence(scores, threshold)

        narrative = build_narrative(scores, entry_point, noise, volatility, override)
        return GateResult(
            entry_point=entry_point,
            confidence=confidence,
            threshold=threshold,
            differential_factor=differential,
            narrative=narrative,
            volatility_override=override
        )

    def _directional_confidence(self, normalized: float, volatility: float) -> float:
        penalty = max(0.0, (volatility - self.config.confidence_penalty_pivot) / 100.0)
        confidence = normalized * 100.0 * (1.0 - penalty)
        return max(0.0, min(self.config.max_confidence, confidence))

    def _wait_confidence(self, scores: AggregatedScores, threshold: float) -> float:
        if scores.total_weight <= 0:
            return 0.0
        best = max(scores.normalized_buy, scores.normalized_sell)
        closeness = best / threshold * 60.0 if threshold > 0 else 0.0
        return max(self.config.wait_confidence_min, min(self.config.wait_confidence_max, closeness))


def build_narrative(
    scores: AggregatedScores,
    entry_point: EntryPoint,
    noise: float,
    volatility: VolatilityData,
    override: bool = False
) -> str:
    """
    Human-readable explanation.

    Order: market condition, strongest indicator, confluence, warning.
    """
    parts = []

    if volatility.volatility_type == VolatilityType.WHIPSAW:
        parts.append(f"Whipsaw market, volatility {volatility.level:.0f}%")
    elif volatility.level > 65:
        parts.append(f"High volatility {volatility.level:.0f}%")
    elif noise > 35:
        parts.append(f"Uncertain market, noise {noise:.0f}%")
    elif scores.total_weight > 0:
        parts.append("Stable market")

    strongest = strongest_contribution(scores.contributions)
    if strongest is not None:
        parts.append(f"Strongest signal: {strongest.name} ({strongest.signal.value}, {strongest.strength:.0f}%)")

    if entry_point != EntryPoint.WAIT:
        side = Signal.BUY if entry_point == EntryPoint.BUY else Signal.SELL
        agreeing = [c for c in scores.contributions if c.signal == side and not c.synthetic]
        if len(agreeing) >= 2:
            parts.append(f"{len(agreeing)} indicators confirm {entry_point.value.upper()}")

    if override:
        parts.append("Warning: extreme volatility, waiting")
    elif scores.manipulation_detected:
        parts.append("Warning: possible OTC manipulation")
    elif scores.total_weight <= 0:
        parts.append("Warning: no indicators found")
    elif scores.skipped_readings:
        parts.append(f"Warning: {scores.skipped_readings} malformed readings ignored")

    return ". ".join(parts)
