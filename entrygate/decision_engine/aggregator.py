"""
Weighted Decision Aggregator

Combines all indicator readings into normalized buy/sell scores using
context-sensitive weights:

    weight = base(kind) x confidence x market type x volatility x history trust

Neutral readings add weight without adding score, diluting confidence.
"""

from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union
import logging

from entrygate.decision_engine.config import WeightConfig
from entrygate.decision_engine.history import IndicatorHistoryStore
from entrygate.decision_engine.schemas import (
    AggregatedScores,
    IndicatorContribution,
    IndicatorKind,
    IndicatorReading,
    MalformedReadingError,
    MarketContext,
    Signal,
    Timeframe,
    VolatilityData,
)

LOG = logging.getLogger(__name__)

MANIPULATION_INDICATOR = "otc_manipulation"


class WeightedDecisionAggregator:
    """
    Aggregates indicator readings into weighted buy/sell scores.

    Malformed readings are skipped and logged; aggregation never aborts.
    """

    def __init__(
        self,
        config: Optional[WeightConfig] = None,
        history: Optional[IndicatorHistoryStore] = None
    ):
        self.config = config or WeightConfig()
        self.history = history or IndicatorHistoryStore()

    def aggregate(
        self,
        readings: Iterable[Union[IndicatorReading, Any]],
        context: MarketContext,
        volatility: VolatilityData
    ) -> AggregatedScores:
        """
        Aggregate readings for one evaluation.

        Args:
            readings: Indicator readings (mappings are coerced, bad entries skipped)
            context: Market context
            volatility: Volatility estimate for this evaluation

        Returns:
            AggregatedScores
        """
        result = AggregatedScores()
        valid, result.skipped_readings = self.coerce_all(readings)

        for reading in valid:
            if not reading.found:
                continue

            weight = self.compute_weight(reading, context, volatility.level)
            self._accumulate(result, reading, weight)

        if context.is_otc:
            self._apply_manipulation_heuristic(result, context, volatility)

        self._apply_volatility_suppression(result, volatility.level)

        if result.total_weight > 0:
            result.normalized_buy = result.buy_score / result.total_weight
            result.normalized_sell = result.sell_score / result.total_weight

        return result

    def compute_weight(
        self,
        reading: IndicatorReading,
        context: MarketContext,
        volatility_level: float
    ) -> float:
        """Dynamic weight for one reading"""
        kind = reading.resolved_kind
        weight = (
            self._base_weight(kind, context) *
            self._confidence_factor(reading.strength) *
            self._market_type_factor(kind, context) *
            self._volatility_factor(kind, volatility_level) *
            self.history.trust_factor(reading.name)
        )
        LOG.debug(f"Weight for {reading.name} ({kind.value}): {weight:.3f}")
        return weight

    def _base_weight(self, kind: IndicatorKind, context: MarketContext) -> float:
        base = self.config.base_weights.get(kind.value, self.config.base_weights.get("other", 1.0))
        if context.timeframe == Timeframe.S30:
            base *= self.config.fast_timeframe_multipliers.get(kind.value, 1.0)
        return base

    def _confidence_factor(self, strength: float) -> float:
        if strength > self.config.high_strength_threshold:
            return self.config.high_strength_boost
        return 1.0

    def _market_type_factor(self, kind: IndicatorKind, context: MarketContext) -> float:
        if not context.is_otc:
            return 1.0
        return self.config.otc_factors.get(kind.value, 1.0)

    def _volatility_factor(self, kind: IndicatorKind, volatility_level: float) -> float:
        if kind.value in self.config.slow_decay_kinds:
            excess = max(0.0, volatility_level - self.config.slow_decay_pivot)
            factor = 1.0 - excess / self.config.slow_decay_scale
        else:
            excess = max(0.0, volatility_level - self.config.fast_decay_pivot)
            factor = 1.0 - excess / self.config.fast_decay_scale
        return max(self.config.min_volatility_factor, factor)

    def _accumulate(
        self,
        result: AggregatedScores,
        reading: IndicatorReading,
        weight: float,
        synthetic: bool = False
    ):
        score = reading.strength / 100.0 * weight
        if reading.signal == Signal.BUY:
            result.buy_score += score
        elif reading.signal == Signal.SELL:
            result.sell_score += score
        else:
            score = 0.0
        result.total_weight += weight
        result.contributions.append(IndicatorContribution(
            name=reading.name,
            kind=reading.resolved_kind,
            signal=reading.signal,
            strength=reading.strength,
            weight=weight,
            score=score,
            synthetic=synthetic
        ))

    def _apply_manipulation_heuristic(
        self,
        result: AggregatedScores,
        context: MarketContext,
        volatility: VolatilityData
    ):
        """
        Counter-weight extreme one-sided OTC reads.

        The injected reading goes through the regular weighting so its
        influence follows its own history trust factor.
        """
        dominant = max(result.buy_score, result.sell_score)
        weaker = min(result.buy_score, result.sell_score)
        if dominant <= 0:
            return

        bias = (dominant - weaker) / max(0.01, weaker)
        if bias <= self.config.manipulation_dominance_ratio:
            return

        counter = Signal.SELL if result.buy_score > result.sell_score else Signal.BUY
        synthetic = IndicatorReading(
            name=MANIPULATION_INDICATOR,
            signal=counter,
            strength=self.config.manipulation_strength,
            kind=IndicatorKind.OTC_MANIPULATION
        )
        weight = self.compute_weight(synthetic, context, volatility.level)
        self._accumulate(result, synthetic, weight, synthetic=True)
        result.manipulation_detected = True
        LOG.info(f"OTC manipulation pattern: bias {bias:.2f}, injected {counter.value} counter-weight {weight:.2f}")

    def _apply_volatility_suppression(self, result: AggregatedScores, volatility_level: float):
        if volatility_level <= self.config.suppression_volatility:
            return
        reduction = min(
            self.config.max_suppression,
            (volatility_level - self.config.suppression_volatility) / 100.0 * self.config.suppression_scale
        )
        result.buy_score *= (1.0 - reduction)
        result.sell_score *= (1.0 - reduction)
        result.volatility_reduction = reduction
        LOG.info(f"Scores reduced by {reduction * 100:.0f}% due to volatility {volatility_level:.1f}%")

    def coerce_all(self, readings: Iterable[Any]) -> Tuple[List[IndicatorReading], int]:
        """Coerce raw readings, returning (valid readings, skipped count)"""
        valid = []
        skipped = 0
        for raw in readings:
            reading = self.coerce(raw)
            if reading is None:
                skipped += 1
            else:
                valid.append(reading)
        return valid, skipped

    @staticmethod
    def coerce(raw: Any) -> Optional[IndicatorReading]:
        """Validate one reading; None when it must be skipped"""
        if isinstance(raw, IndicatorReading):
            reading = raw
            problem = _reading_problem(reading)
            if problem:
                LOG.warning(f"Skipping malformed indicator reading: {problem}")
                return None
        else:
            try:
                reading = IndicatorReading.from_mapping(raw)
            except MalformedReadingError as e:
                LOG.warning(f"Skipping malformed indicator reading: {e}")
                return None

        if not isinstance(reading.strength, (int, float)) or reading.strength != reading.strength:
            LOG.warning(f"Skipping indicator {reading.name}: invalid strength {reading.strength!r}")
            return None
        if not 0 <= reading.strength <= 100:
            LOG.warning(f"Indicator {reading.name} strength {reading.strength} outside 0-100, clamping")
            reading = IndicatorReading(
                name=reading.name,
                signal=reading.signal,
                strength=min(100.0, max(0.0, float(reading.strength))),
                found=reading.found,
                kind=reading.kind,
                details=reading.details
            )
        return reading


def _reading_problem(reading: IndicatorReading) -> Optional[str]:
    """Why a directly constructed reading is unusable, None if it is fine"""
    if not isinstance(reading.name, str) or not reading.name.strip():
        return f"invalid name {reading.name!r}"
    if not isinstance(reading.signal, Signal):
        return f"indicator {reading.name}: invalid signal {reading.signal!r}"
    if reading.kind is not None and not isinstance(reading.kind, IndicatorKind):
        return f"indicator {reading.name}: invalid kind {reading.kind!r}"
    if not isinstance(reading.details, Mapping):
        return f"indicator {reading.name}: details must be a mapping"
    return None


def strongest_contribution(contributions: List[IndicatorContribution]) -> Optional[IndicatorContribution]:
    """Contribution with the largest directional score"""
    directional = [c for c in contributions if c.signal != Signal.NEUTRAL and not c.synthetic]
    if not directional:
        return None
    return max(directional, key=lambda c: c.score)
