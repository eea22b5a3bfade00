"""
Tests for the Decision Engine

Covers indicator history, noise/volatility estimation, weighted
aggregation, the entry gate, expiration and the engine orchestrator.
"""

import pytest
import pandas as pd
from datetime import datetime, timedelta, timezone

from entrygate.decision_engine import (
    DecisionEngine,
    DecisionEngineConfig,
    EntryGate,
    EntryPoint,
    ExpirationCalculator,
    ExpirationConfig,
    IndicatorHistoryStore,
    IndicatorKind,
    IndicatorReading,
    MalformedReadingError,
    MarketContext,
    MarketType,
    Precision,
    Signal,
    Timeframe,
    VolatilityData,
    VolatilityType,
    WeightedDecisionAggregator,
    candle_volatility,
    market_noise,
)
from entrygate.decision_engine.config import GateConfig, WeightConfig
from entrygate.decision_engine.history import trust_factor
from entrygate.decision_engine.sources import CompositeIndicatorSource, StaticIndicatorSource


NOW = datetime(2024, 1, 15, 12, 0, tzinfo=timezone.utc)


def create_reading(name, signal, strength, **kwargs):
    """Create an indicator reading"""
    return IndicatorReading(name=name, signal=Signal(signal), strength=strength, **kwargs)


def create_clean_buy_readings():
    """Trend lines and Fibonacci agreeing on BUY"""
    return [
        IndicatorReading.from_detector("trendlines", buy_score=1.2, sell_score=0.0, confidence=85),
        IndicatorReading.from_detector("fibonacci", buy_score=0.9, sell_score=0.0, confidence=80),
    ]


def create_candles(rows):
    """Create a candle DataFrame from (open, high, low, close) rows"""
    return pd.DataFrame(rows, columns=['open', 'high', 'low', 'close'])


class TestIndicatorReading:
    """Test reading construction and validation."""

    def test_from_detector_picks_larger_side(self):
        reading = IndicatorReading.from_detector("momentum", 0.2, 0.7, confidence=66)
        assert reading.signal == Signal.SELL
        assert reading.strength == 66.0

    def test_from_detector_tie_is_neutral(self):
        reading = IndicatorReading.from_detector("volume", 0.5, 0.5, confidence=40)
        assert reading.signal == Signal.NEUTRAL

    def test_kind_resolved_from_name(self):
        assert create_reading("Fibonacci retracement", "buy", 50).resolved_kind == IndicatorKind.FIBONACCI
        assert create_reading("support_resistance", "buy", 50).resolved_kind == IndicatorKind.SUPPORT_RESISTANCE
        assert create_reading("mystery", "buy", 50).resolved_kind == IndicatorKind.OTHER

    def test_from_mapping_missing_fields(self):
        with pytest.raises(MalformedReadingError):
            IndicatorReading.from_mapping({"name": "trendlines", "signal": "buy"})

    def test_from_mapping_unknown_signal(self):
        with pytest.raises(MalformedReadingError):
            IndicatorReading.from_mapping({"name": "trendlines", "signal": "up", "strength": 50})

    def test_from_mapping_valid(self):
        reading = IndicatorReading.from_mapping(
            {"name": "trendlines", "signal": "BUY", "strength": "72.5"}
        )
        assert reading.signal == Signal.BUY
        assert reading.strength == 72.5
        assert reading.found

    @pytest.mark.parametrize("details", [[1, 2, 3], "high", 5])
    def test_from_mapping_details_must_be_mapping(self, details):
        with pytest.raises(MalformedReadingError):
            IndicatorReading.from_mapping(
                {"name": "candle_patterns", "signal": "buy", "strength": 70, "details": details}
            )

    def test_from_mapping_details_must_be_numeric(self):
        with pytest.raises(MalformedReadingError):
            IndicatorReading.from_mapping({
                "name": "candle_patterns", "signal": "buy", "strength": 70,
                "details": {"wicks_ratio": "high"},
            })

    def test_from_mapping_numeric_details(self):
        reading = IndicatorReading.from_mapping({
            "name": "candle_patterns", "signal": "buy", "strength": 70,
            "details": {"wicks_ratio": 0.4, "reversal_patterns": 2},
        })
        assert reading.details == {"wicks_ratio": 0.4, "reversal_patterns": 2.0}

    @pytest.mark.parametrize("raw,expected", [
        (False, False),
        ("false", False),
        ("False", False),
        ("0", False),
        (0, False),
        (True, True),
        ("true", True),
        ("yes", True),
        (1, True),
    ])
    def test_from_mapping_found_flag(self, raw, expected):
        reading = IndicatorReading.from_mapping(
            {"name": "trendlines", "signal": "buy", "strength": 50, "found": raw}
        )
        assert reading.found is expected

    def test_from_mapping_invalid_found_flag(self):
        with pytest.raises(MalformedReadingError):
            IndicatorReading.from_mapping(
                {"name": "trendlines", "signal": "buy", "strength": 50, "found": "maybe"}
            )


class TestIndicatorHistory:
    """Test indicator history store."""

    def test_unseen_indicator_is_neutral(self):
        store = IndicatorHistoryStore()
        assert store.trust_factor("trendlines") == 1.0
        assert store.get_entry("trendlines") is None

    def test_trust_factor_formula(self):
        assert trust_factor(0, 0) == pytest.approx(1.0)
        assert trust_factor(10, 0) == pytest.approx(0.7 + 0.6 * 11 / 12)
        assert trust_factor(0, 10) == pytest.approx(0.7 + 0.6 * 1 / 12)

    def test_trust_factor_bounded(self):
        for success, failure in [(0, 1000), (1000, 0), (3, 7), (500, 500)]:
            assert 0.7 <= trust_factor(success, failure) <= 1.3

    def test_trust_factor_increases_with_success_rate(self):
        for total in (1, 10, 50):
            factors = [trust_factor(success, total - success) for success in range(total + 1)]
            assert all(a < b for a, b in zip(factors, factors[1:]))

    def test_record_outcome(self):
        store = IndicatorHistoryStore()
        store.record_outcome("trendlines", True)
        store.record_outcome("trendlines", True)
        entry = store.record_outcome("trendlines", False)

        assert entry.success_count == 2
        assert entry.failure_count == 1
        assert entry.last_outcome is False
        assert store.trust_factor("trendlines") == pytest.approx(0.7 + 0.6 * 3 / 5)
        assert len(store) == 1

    def test_snapshot_is_a_copy(self):
        store = IndicatorHistoryStore()
        store.record_outcome("volume", True)
        snapshot = store.snapshot()
        store.record_outcome("volume", True)

        assert snapshot["volume"]["success_count"] == 1
        assert store.snapshot()["volume"]["success_count"] == 2


class TestMarketNoise:
    """Test market noise estimator."""

    def test_unanimous_trend_is_quiet(self):
        assert market_noise(create_clean_buy_readings(), MarketType.REGULAR) == 0.0

    def test_otc_bias_without_readings(self):
        assert market_noise([], MarketType.OTC) == 20.0
        assert market_noise([], MarketType.REGULAR) == 0.0

    def test_exact_tie_is_maximal_disagreement(self):
        readings = [create_reading("momentum", "buy", 60), create_reading("volume", "sell", 60)]
        assert market_noise(readings, MarketType.REGULAR) == pytest.approx(50.0)

    def test_noise_prone_families(self):
        readings = [
            create_reading("candle_patterns", "buy", 60),
            create_reading("elliott_waves", "buy", 60),
            create_reading("momentum", "neutral", 60),
        ]
        # 10 (candles) + 5 (elliott) + 15 x 1/3 neutral share
        assert market_noise(readings, MarketType.REGULAR) == pytest.approx(20.0)

    def test_clamped_to_100(self):
        readings = [create_reading("candle_patterns", s, 60) for s in ["buy", "sell"] * 10]
        assert market_noise(readings, MarketType.OTC) == 100.0

    def test_not_found_readings_ignored(self):
        readings = [create_reading("candle_patterns", "buy", 60, found=False)]
        assert market_noise(readings, MarketType.REGULAR) == 0.0


class TestCandleVolatility:
    """Test candle volatility estimator."""

    def test_default_without_data(self):
        volatility = candle_volatility([])
        assert volatility.level == 30.0
        assert volatility.volatility_type == VolatilityType.CALM

    def test_short_window_falls_back_to_default(self):
        candles = create_candles([(100, 101, 99, 100.5), (100.5, 101, 100, 100.2)])
        assert candle_volatility([], candles).level == 30.0

    def test_calm_candles(self):
        candles = create_candles([(100, 100.02, 99.99, 100.01)] * 5)
        volatility = candle_volatility([], candles)

        assert volatility.level < 35
        assert volatility.volatility_type == VolatilityType.CALM

    def test_alternating_candles_are_whipsaw(self):
        rows = [
            (100, 102, 99, 101) if i % 2 == 0 else (101, 102, 99, 100)
            for i in range(8)
        ]
        volatility = candle_volatility([], create_candles(rows))

        assert volatility.level == 100.0
        assert volatility.volatility_type == VolatilityType.WHIPSAW

    def test_candle_pattern_details(self):
        reading = create_reading(
            "candle_patterns", "buy", 60,
            details={
                'high_low_range': 50,
                'wicks_ratio': 0.5,
                'body_movement': 20,
                'reversal_strength': 40,
                'reversal_patterns': 0,
            }
        )
        volatility = candle_volatility([reading])

        # 60 x 0.25 + 75 x 0.25 + 40 x 0.2 + 40 x 0.2
        assert volatility.level == pytest.approx(49.75)
        assert volatility.volatility_type == VolatilityType.TREND

    def test_unusable_details_fall_back_to_default(self):
        reading = create_reading("candle_patterns", "buy", 60, details={'wicks_ratio': "high"})
        volatility = candle_volatility([reading])

        assert volatility.level == 30.0
        assert volatility.volatility_type == VolatilityType.CALM


class TestWeightedAggregator:
    """Test weighted aggregator."""

    def test_clean_buy_weights(self):
        aggregator = WeightedDecisionAggregator()
        scores = aggregator.aggregate(create_clean_buy_readings(), MarketContext(), VolatilityData())

        weights = {c.name: c.weight for c in scores.contributions}
        assert weights["trendlines"] == pytest.approx(1.8)
        assert weights["fibonacci"] == pytest.approx(1.5)
        assert scores.total_weight == pytest.approx(3.3)
        assert scores.normalized_buy == pytest.approx(2.73 / 3.3)
        assert scores.normalized_sell == 0.0

    def test_neutral_dilutes(self):
        aggregator = WeightedDecisionAggregator()
        readings = [create_reading("dow_theory", "buy", 50), create_reading("other", "neutral", 50)]
        scores = aggregator.aggregate(readings, MarketContext(), VolatilityData())

        assert scores.total_weight == pytest.approx(2.0)
        assert scores.normalized_buy == pytest.approx(0.25)

    def test_not_found_and_malformed_skipped(self):
        aggregator = WeightedDecisionAggregator()
        readings = [
            create_reading("trendlines", "buy", 70, found=False),
            {"name": "momentum"},
            "garbage",
            {"name": "volume", "signal": "sell", "strength": 50},
        ]
        scores = aggregator.aggregate(readings, MarketContext(), VolatilityData())

        assert scores.skipped_readings == 2
        assert [c.name for c in scores.contributions] == ["volume"]

    def test_out_of_range_strength_clamped(self):
        reading = WeightedDecisionAggregator.coerce(
            {"name": "momentum", "signal": "buy", "strength": 150}
        )
        assert reading.strength == 100.0

    def test_nan_strength_skipped(self):
        assert WeightedDecisionAggregator.coerce(create_reading("momentum", "buy", float('nan'))) is None

    @pytest.mark.parametrize("reading", [
        IndicatorReading(name=None, signal=Signal.BUY, strength=80),
        IndicatorReading(name="  ", signal=Signal.BUY, strength=80),
        IndicatorReading(name="momentum", signal="buy", strength=80),
        IndicatorReading(name="momentum", signal=Signal.BUY, strength=80, kind="momentum"),
        IndicatorReading(name="momentum", signal=Signal.BUY, strength=80, details=[1, 2]),
    ])
    def test_invalid_reading_instance_skipped(self, reading):
        assert WeightedDecisionAggregator.coerce(reading) is None

    @pytest.mark.parametrize("readings,market_type", [
        ([("trendlines", "buy", 100), ("fibonacci", "buy", 100)], MarketType.REGULAR),
        ([("momentum", "sell", 95), ("volume", "neutral", 40)], MarketType.REGULAR),
        ([("trendlines", "buy", 90), ("momentum", "buy", 90), ("support_resistance", "buy", 90)], MarketType.OTC),
        ([("elliott_waves", "sell", 100), ("dow_theory", "sell", 100), ("candle_patterns", "sell", 100)], MarketType.OTC),
        ([("trendlines", "buy", 60), ("fibonacci", "sell", 70), ("mystery", "buy", 30)], MarketType.OTC),
    ])
    @pytest.mark.parametrize("volatility_level", [10.0, 30.0, 70.0, 95.0])
    def test_normalized_scores_bounded(self, readings, market_type, volatility_level):
        aggregator = WeightedDecisionAggregator()
        scores = aggregator.aggregate(
            [create_reading(*r) for r in readings],
            MarketContext(market_type=market_type),
            VolatilityData(level=volatility_level)
        )

        assert 0.0 <= scores.normalized_buy <= 1.3
        assert 0.0 <= scores.normalized_sell <= 1.3

    def test_fast_timeframe_multipliers(self):
        aggregator = WeightedDecisionAggregator()
        context = MarketContext(timeframe=Timeframe.S30)
        volatility = VolatilityData()

        assert aggregator.compute_weight(create_reading("candle_patterns", "buy", 50), context, 30) == pytest.approx(1.8)
        assert aggregator.compute_weight(create_reading("momentum", "buy", 50), context, 30) == pytest.approx(1.6)
        assert aggregator.compute_weight(create_reading("volume", "buy", 50), context, 30) == pytest.approx(1.4)
        assert aggregator.compute_weight(create_reading("trendlines", "buy", 50), context, volatility.level) == pytest.approx(1.5)

    def test_otc_factors(self):
        aggregator = WeightedDecisionAggregator()
        context = MarketContext(market_type=MarketType.OTC)

        assert aggregator.compute_weight(create_reading("elliott_waves", "buy", 50), context, 30) == pytest.approx(0.96)
        assert aggregator.compute_weight(create_reading("support_resistance", "buy", 50), context, 30) == pytest.approx(1.3 * 1.15)

    def test_volatility_decay(self):
        aggregator = WeightedDecisionAggregator()
        context = MarketContext()

        # Fast decay from 50, slow decay (Fibonacci, S/R) from 65
        assert aggregator.compute_weight(create_reading("momentum", "buy", 50), context, 70) == pytest.approx(1.3 * 0.8)
        assert aggregator.compute_weight(create_reading("fibonacci", "buy", 50), context, 70) == pytest.approx(1.5 * 0.975)
        assert aggregator.compute_weight(create_reading("momentum", "buy", 50), context, 200) == pytest.approx(1.3 * 0.1)

    def test_history_trust_applied(self):
        history = IndicatorHistoryStore()
        for _ in range(10):
            history.record_outcome("trendlines", True)
        aggregator = WeightedDecisionAggregator(history=history)

        weight = aggregator.compute_weight(create_reading("trendlines", "buy", 85), MarketContext(), 30)
        assert weight == pytest.approx(1.8 * 1.25)

    def test_otc_manipulation_injected(self):
        aggregator = WeightedDecisionAggregator()
        readings = [
            create_reading("trendlines", "buy", 90),
            create_reading("momentum", "buy", 90),
            create_reading("support_resistance", "buy", 90),
        ]
        scores = aggregator.aggregate(readings, MarketContext(market_type=MarketType.OTC), VolatilityData())

        assert scores.manipulation_detected
        synthetic = [c for c in scores.contributions if c.synthetic]
        assert len(synthetic) == 1
        assert synthetic[0].signal == Signal.SELL
        assert scores.sell_score == pytest.approx(0.72 * 1.5)

    def test_no_manipulation_on_regular_market(self):
        aggregator = WeightedDecisionAggregator()
        readings = [create_reading("trendlines", "buy", 90)]
        scores = aggregator.aggregate(readings, MarketContext(), VolatilityData())
        assert not scores.manipulation_detected

    def test_high_volatility_suppression(self):
        aggregator = WeightedDecisionAggregator()
        readings = [create_reading("dow_theory", "buy", 100)]
        scores = aggregator.aggregate(readings, MarketContext(), VolatilityData(level=75))

        # Both scores reduced by (75 - 65) x 1.5 %
        assert scores.volatility_reduction == pytest.approx(0.15)
        assert scores.normalized_buy == pytest.approx(0.85)


class TestEntryGate:
    """Test entry gate."""

    def test_threshold_components(self):
        gate = EntryGate()
        assert gate.confidence_threshold(MarketContext(), 0, 30) == pytest.approx(0.61)
        assert gate.confidence_threshold(
            MarketContext(market_type=MarketType.OTC, precision=Precision.HIGH), 40, 50
        ) == pytest.approx(0.58 + 0.06 + 0.1 + 0.05)

    def test_threshold_monotonic_in_noise_and_volatility(self):
        gate = EntryGate()
        context = MarketContext()
        thresholds = [gate.confidence_threshold(context, n, 30) for n in range(0, 101, 10)]
        assert thresholds == sorted(thresholds)
        thresholds = [gate.confidence_threshold(context, 0, v) for v in range(0, 101, 10)]
        assert thresholds == sorted(thresholds)

    def test_differential_factor(self):
        gate = EntryGate()
        assert gate.differential_factor(MarketContext(), 0, 30) == pytest.approx(1.27)
        assert gate.differential_factor(MarketContext(market_type=MarketType.OTC), 0, 0) == pytest.approx(1.2)

    @pytest.mark.parametrize("level", [80.5, 85, 90, 100])
    def test_extreme_volatility_always_waits(self, level):
        aggregator = WeightedDecisionAggregator()
        gate = EntryGate()
        volatility = VolatilityData(level=level, volatility_type=VolatilityType.WHIPSAW)
        scores = aggregator.aggregate(create_clean_buy_readings(), MarketContext(), volatility)

        result = gate.decide(scores, MarketContext(), 0, volatility)
        assert result.entry_point == EntryPoint.WAIT
        assert result.volatility_override
        assert result.confidence <= 75.0

    def test_starvation(self):
        gate = EntryGate()
        aggregator = WeightedDecisionAggregator()
        scores = aggregator.aggregate([], MarketContext(), VolatilityData())

        result = gate.decide(scores, MarketContext(), 0, VolatilityData())
        assert result.entry_point == EntryPoint.WAIT
        assert result.confidence == 0.0
        assert "no indicators found" in result.narrative

    def test_tie_waits(self):
        aggregator = WeightedDecisionAggregator()
        readings = [create_reading("momentum", "buy", 100), create_reading("momentum", "sell", 100)]
        scores = aggregator.aggregate(readings, MarketContext(), VolatilityData(level=0))

        result = EntryGate().decide(scores, MarketContext(), 0, VolatilityData(level=0))
        assert result.entry_point == EntryPoint.WAIT

    def test_sell_decision(self):
        aggregator = WeightedDecisionAggregator()
        readings = [create_reading("trendlines", "sell", 90), create_reading("momentum", "sell", 85)]
        scores = aggregator.aggregate(readings, MarketContext(), VolatilityData())

        result = EntryGate().decide(scores, MarketContext(), 0, VolatilityData())
        assert result.entry_point == EntryPoint.SELL
        assert result.confidence == pytest.approx(scores.normalized_sell * 100)
        assert "2 indicators confirm SELL" in result.narrative

    def test_directional_confidence_penalized_by_volatility(self):
        gate = EntryGate()
        assert gate._directional_confidence(0.9, 30) == pytest.approx(90.0)
        assert gate._directional_confidence(0.9, 70) == pytest.approx(72.0)
        assert gate._directional_confidence(1.0, 0) == 98.0


class TestExpirationCalculator:
    """Test expiration calculator."""

    def test_base_durations(self):
        calc = ExpirationCalculator()
        assert calc.duration_seconds(MarketContext(), 70, VolatilityData()) == 60
        assert calc.duration_seconds(MarketContext(timeframe=Timeframe.S30), 70, VolatilityData()) == 30

    def test_all_reductions(self):
        calc = ExpirationCalculator()
        context = MarketContext(market_type=MarketType.OTC)
        volatility = VolatilityData(level=70, large_bodies=True)
        # 60 x 0.85 x 0.9 x 0.9 x 0.9 = 37.18
        assert calc.duration_seconds(context, 90, volatility) == 37

    def test_risk_factors_never_lengthen(self):
        calc = ExpirationCalculator()
        base = calc.duration_seconds(MarketContext(), 50, VolatilityData())
        assert calc.duration_seconds(MarketContext(market_type=MarketType.OTC), 50, VolatilityData()) <= base
        assert calc.duration_seconds(MarketContext(), 95, VolatilityData()) <= base
        assert calc.duration_seconds(MarketContext(), 50, VolatilityData(level=90)) <= base
        assert calc.duration_seconds(MarketContext(), 50, VolatilityData(large_bodies=True)) <= base

    def test_minimum_one_second(self):
        calc = ExpirationCalculator(ExpirationConfig(short_base_seconds=1))
        context = MarketContext(timeframe=Timeframe.S30, market_type=MarketType.OTC)
        assert calc.duration_seconds(context, 50, VolatilityData()) == 1

    def test_calculate_uses_now(self):
        result = ExpirationCalculator().calculate(MarketContext(), 50, VolatilityData(), NOW)
        assert result.expires_at == NOW + timedelta(seconds=60)

    def test_invalid_multiplier_rejected(self):
        with pytest.raises(ValueError):
            ExpirationConfig(otc_multiplier=1.2)


class TestDecisionEngine:
    """Test decision engine orchestrator."""

    def test_clean_buy(self):
        engine = DecisionEngine()
        decision = engine.evaluate(create_clean_buy_readings(), MarketContext(), now=NOW)

        assert decision.entry_point == EntryPoint.BUY
        assert decision.confidence == pytest.approx(82.727, abs=0.01)
        assert decision.threshold == pytest.approx(0.61)
        assert decision.noise_level == 0.0
        assert decision.volatility.level == 30.0
        assert decision.expiration_seconds == 60
        assert decision.expiration_time == NOW + timedelta(seconds=60)
        assert decision.narrative.startswith("Stable market. Strongest signal: trendlines")
        assert decision.is_actionable

    def test_split_market_waits(self):
        engine = DecisionEngine()
        readings = [create_reading("trendlines", "buy", 70), create_reading("fibonacci", "sell", 70)]
        decision = engine.evaluate(readings, now=NOW)

        assert decision.entry_point == EntryPoint.WAIT
        assert 30.0 <= decision.confidence <= 60.0

    def test_extreme_volatility_override(self):
        engine = DecisionEngine()
        decision = engine.evaluate(
            create_clean_buy_readings(),
            now=NOW,
            volatility=VolatilityData(level=85, volatility_type=VolatilityType.WHIPSAW)
        )

        assert decision.entry_point == EntryPoint.WAIT
        assert decision.confidence == 75.0
        assert engine.get_health().volatility_overrides == 1

    def test_starvation(self):
        engine = DecisionEngine()
        decision = engine.evaluate([], now=NOW)

        assert decision.entry_point == EntryPoint.WAIT
        assert decision.confidence == 0.0
        assert engine.get_health().starved_evaluations == 1

    def test_malformed_readings_never_raise(self):
        engine = DecisionEngine()
        readings = create_clean_buy_readings() + [{"signal": "buy"}, None, 42]
        decision = engine.evaluate(readings, now=NOW)

        assert decision.entry_point == EntryPoint.BUY
        assert decision.scores.skipped_readings == 3
        assert len(decision.indicators) == 2
        assert engine.get_health().skipped_readings == 3

    def test_malformed_details_skipped(self):
        engine = DecisionEngine()
        readings = create_clean_buy_readings() + [
            {"name": "candle_patterns", "signal": "buy", "strength": 70, "details": {"wicks_ratio": "high"}},
            {"name": "candle_patterns", "signal": "buy", "strength": 70, "details": [1, 2, 3]},
        ]
        decision = engine.evaluate(readings, now=NOW)

        assert decision.entry_point == EntryPoint.BUY
        assert decision.confidence == pytest.approx(82.727, abs=0.01)
        assert decision.scores.skipped_readings == 2

    def test_invalid_reading_instances_skipped(self):
        engine = DecisionEngine()
        readings = create_clean_buy_readings() + [
            IndicatorReading(name=None, signal=Signal.BUY, strength=80),
            IndicatorReading(name="momentum", signal="sell", strength=80),
        ]
        decision = engine.evaluate(readings, now=NOW)

        assert decision.entry_point == EntryPoint.BUY
        assert decision.scores.skipped_readings == 2
        assert [r.name for r in decision.indicators] == ["trendlines", "fibonacci"]

    def test_candle_window_drives_volatility(self):
        engine = DecisionEngine()
        rows = [
            (100, 102, 99, 101) if i % 2 == 0 else (101, 102, 99, 100)
            for i in range(6)
        ]
        decision = engine.evaluate(create_clean_buy_readings(), now=NOW, candles=create_candles(rows))

        assert decision.volatility.volatility_type == VolatilityType.WHIPSAW
        assert decision.entry_point == EntryPoint.WAIT

    def test_decision_stamped_with_config_hash(self):
        engine = DecisionEngine()
        decision = engine.evaluate(create_clean_buy_readings(), now=NOW)
        assert decision.config_hash == engine.config.compute_hash()
        assert decision.to_dict()['entry_point'] == "buy"

    def test_health_counts(self):
        engine = DecisionEngine()
        engine.evaluate(create_clean_buy_readings(), now=NOW)
        engine.evaluate([], now=NOW)

        health = engine.get_health()
        assert health.evaluations == 2
        assert health.buy_decisions == 1
        assert health.wait_decisions == 1
        assert health.avg_confidence == pytest.approx(82.727 / 2, abs=0.01)

        engine.reset()
        assert engine.get_health().evaluations == 0


class TestDecisionEngineConfig:
    """Test configuration hashing and validation."""

    def test_hash_deterministic(self):
        assert DecisionEngineConfig().compute_hash() == DecisionEngineConfig().compute_hash()
        assert len(DecisionEngineConfig().compute_hash()) == 12

    def test_hash_changes_with_config(self):
        changed = DecisionEngineConfig(gate=GateConfig(base_differential=1.3))
        assert changed.compute_hash() != DecisionEngineConfig().compute_hash()

    def test_from_dict_nested(self):
        config = DecisionEngineConfig.from_dict({'gate': {'extreme_volatility': 90.0}})
        assert config.gate.extreme_volatility == 90.0
        assert config.weights.base_weights["trendlines"] == 1.5

    def test_validation(self):
        with pytest.raises(ValueError):
            WeightConfig(max_suppression=1.0)
        with pytest.raises(ValueError):
            GateConfig(wait_confidence_min=70.0)


class TestIndicatorSources:
    """Test indicator sources."""

    def test_composite_skips_failing_source(self):
        class BrokenSource:
            name = "broken"

            def read(self, context):
                raise RuntimeError("detector offline")

        composite = CompositeIndicatorSource([
            BrokenSource(),
            StaticIndicatorSource(create_clean_buy_readings()),
        ])
        readings = composite.read(MarketContext())

        assert len(readings) == 2
        assert composite.failures == 1
