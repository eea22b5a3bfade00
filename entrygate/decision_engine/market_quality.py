"""
Noise & Volatility Estimators

Two pure, deterministic market-quality metrics derived from the raw
indicator set (and, when available, the recent candle window):

    - market_noise: disagreement among indicators, biased upward for OTC
    - candle_volatility: level, type and body/wick structure of recent candles
"""

from typing import Iterable, List, Optional
import logging

import numpy as np
import pandas as pd

from entrygate.decision_engine.config import VolatilityConfig
from entrygate.decision_engine.schemas import (
    IndicatorKind,
    IndicatorReading,
    MarketType,
    Signal,
    VolatilityData,
    VolatilityType,
)

LOG = logging.getLogger(__name__)

_DEFAULT_CONFIG = VolatilityConfig()


def _found(readings: Iterable[IndicatorReading]) -> List[IndicatorReading]:
    return [r for r in readings if isinstance(r, IndicatorReading) and r.found]


def market_noise(
    readings: Iterable[IndicatorReading],
    market_type: MarketType,
    config: Optional[VolatilityConfig] = None
) -> float:
    """
    Estimate market noise on a 0-100 scale.

    Components:
        - directional disagreement (0 when all agree, 1 on an exact tie)
        - share of neutral readings
        - noise-prone families present (candle patterns, Elliott waves)
        - OTC bias
        - strong trend lines / Fibonacci levels reduce noise
    """
    config = config or _DEFAULT_CONFIG
    found = _found(readings)

    noise = config.otc_noise if market_type == MarketType.OTC else 0.0
    if not found:
        return float(np.clip(noise, 0.0, 100.0))

    buys = sum(1 for r in found if r.signal == Signal.BUY)
    sells = sum(1 for r in found if r.signal == Signal.SELL)
    neutrals = len(found) - buys - sells
    directional = buys + sells

    if directional > 0:
        disagreement = 1.0 - abs(buys - sells) / directional
        noise += config.disagreement_weight * disagreement
    noise += config.neutral_weight * (neutrals / len(found))

    for reading in found:
        kind = reading.resolved_kind
        if kind == IndicatorKind.CANDLE_PATTERNS:
            noise += config.candle_pattern_noise
        elif kind == IndicatorKind.ELLIOTT_WAVES:
            noise += config.elliott_noise
        elif kind == IndicatorKind.TRENDLINES:
            noise -= reading.strength / config.trendline_divisor
        elif kind == IndicatorKind.FIBONACCI:
            noise -= reading.strength / config.fibonacci_divisor

    return float(np.clip(noise, 0.0, 100.0))


def candle_volatility(
    readings: Iterable[IndicatorReading],
    candles: Optional[pd.DataFrame] = None,
    config: Optional[VolatilityConfig] = None
) -> VolatilityData:
    """
    Estimate candle volatility.

    Uses the recent candle window when it holds at least three candles,
    otherwise the candle-pattern detector's details, otherwise the default
    (calm) estimate.

    Args:
        readings: Indicator readings for this evaluation
        candles: Optional DataFrame with open/high/low/close columns
        config: Estimator configuration

    Returns:
        VolatilityData
    """
    config = config or _DEFAULT_CONFIG

    if candles is not None and len(candles) >= 3:
        return _volatility_from_candles(candles.tail(config.window), config)

    for reading in _found(readings):
        if reading.resolved_kind == IndicatorKind.CANDLE_PATTERNS and reading.details:
            try:
                return _volatility_from_details(reading.details, config)
            except (TypeError, ValueError, AttributeError) as e:
                LOG.warning(f"Ignoring unusable volatility details from {reading.name}: {e}")
            break

    return VolatilityData(
        level=config.default_level,
        volatility_type=_classify(config.default_level, False, 0.0, 0.0, config)
    )


def _volatility_from_candles(candles: pd.DataFrame, config: VolatilityConfig) -> VolatilityData:
    opens = candles['open'].to_numpy(dtype=float)
    closes = candles['close'].to_numpy(dtype=float)
    ranges = (candles['high'] - candles['low']).to_numpy(dtype=float)
    bodies = np.abs(closes - opens)

    valid = (ranges > 0) & (opens > 0)
    if not valid.any():
        return VolatilityData(level=0.0, volatility_type=VolatilityType.CALM)

    body_ratio = float(np.mean(bodies[valid] / ranges[valid]))
    wick_ratio = 1.0 - body_ratio
    range_pct = float(np.mean(ranges[valid] / opens[valid]) * 100.0)
    body_pct = (closes - opens) / np.where(opens > 0, opens, 1.0) * 100.0

    # Direction flips between consecutive directional candles
    directions = np.sign(closes - opens)
    directional = directions[(directions != 0) & valid]
    if len(directional) >= 2:
        flips = float(np.mean(directional[1:] != directional[:-1]))
    else:
        flips = 0.0

    range_score = min(100.0, range_pct * 100.0)
    wicks_score = min(100.0, wick_ratio * 100.0 * 1.5)
    body_score = min(100.0, float(np.std(body_pct)) * 200.0)
    reversal_score = flips * 100.0
    whipsaw = flips > 0.5

    level = _combine(range_score, wicks_score, body_score, reversal_score, whipsaw)
    return VolatilityData(
        level=level,
        volatility_type=_classify(level, whipsaw, reversal_score, wicks_score, config),
        wick_ratio=wick_ratio,
        body_ratio=body_ratio,
        large_bodies=body_ratio >= config.large_body_ratio
    )


def _volatility_from_details(details, config: VolatilityConfig) -> VolatilityData:
    high_low_range = float(details.get('high_low_range', 0.0) or 0.0)
    wicks_ratio = float(details.get('wicks_ratio', 0.0) or 0.0)
    body_movement = float(details.get('body_movement', 0.0) or 0.0)
    reversal_strength = float(details.get('reversal_strength', 0.0) or 0.0)
    reversal_patterns = float(details.get('reversal_patterns', 0.0) or 0.0)

    range_score = min(100.0, high_low_range * 1.2)
    wicks_score = min(100.0, wicks_ratio * 100.0 * 1.5)
    body_score = min(100.0, body_movement * 2.0)
    whipsaw = reversal_patterns > 1

    level = _combine(range_score, wicks_score, body_score, reversal_strength, whipsaw)
    return VolatilityData(
        level=level,
        volatility_type=_classify(level, whipsaw, reversal_strength, wicks_score, config),
        wick_ratio=wicks_ratio,
        body_ratio=max(0.0, 1.0 - wicks_ratio) if wicks_ratio else 0.0,
        large_bodies=body_movement >= config.large_body_movement
    )


def _combine(range_score, wicks_score, body_score, reversal_score, whipsaw) -> float:
    level = (
        range_score * 0.25 +
        wicks_score * 0.25 +
        body_score * 0.2 +
        reversal_score * 0.2
    )
    if whipsaw:
        level *= 1.3
    return float(np.clip(level, 0.0, 100.0))


def _classify(level, whipsaw, reversal_score, wicks_score, config: VolatilityConfig) -> VolatilityType:
    if level < config.calm_below:
        return VolatilityType.CALM
    if level >= config.whipsaw_from and (whipsaw or reversal_score > 60 or wicks_score > 70):
        return VolatilityType.WHIPSAW
    return VolatilityType.TREND
