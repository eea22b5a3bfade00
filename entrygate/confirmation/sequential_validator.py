"""
Sequential Candle Validator

Stricter confirmation path: a signal is validated only after N
consecutive candles close in its direction.

State machine per signal:
    ACCUMULATING -> VALIDATED
         |   ^
         |   | opposite candle: counter reset, signal kept
         v
      EXPIRED (hard deadline, extended at most once by a reversal)

Neutral candles (negligible body) neither extend nor break a run.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Tuple
import logging

import numpy as np

from entrygate.confirmation.config import SequentialConfig
from entrygate.confirmation.schemas import (
    Candle,
    CandleDirection,
    CandleSnapshot,
    ConfirmationOutcome,
    OutcomeType,
    PendingState,
    SequentialProgress,
    SequentialSignal,
    SignalDirection,
)
from entrygate.decision_engine.schemas import Timeframe

LOG = logging.getLogger(__name__)


class SequentialCandleValidator:
    """Tracks sequential signals and validates them candle by candle"""

    def __init__(self, config: Optional[SequentialConfig] = None):
        self.config = config or SequentialConfig()
        self._signals: "OrderedDict[str, SequentialSignal]" = OrderedDict()
        self.resets = 0

    def required_candles(self, confidence: float, timeframe: Timeframe) -> int:
        """
        Consecutive candles needed for validation.

        Lower confidence and faster timeframes need more candles.
        """
        cfg = self.config
        if confidence >= cfg.high_confidence:
            required = cfg.high_confidence_candles
        elif confidence >= cfg.medium_confidence:
            required = cfg.medium_confidence_candles
        else:
            required = cfg.low_confidence_candles

        if timeframe == Timeframe.S30:
            required += cfg.fast_timeframe_extra
        elif timeframe.seconds >= Timeframe.M5.seconds:
            required -= cfg.slow_timeframe_relief

        return max(cfg.min_candles, min(cfg.max_candles, required))

    def register(
        self,
        signal_id: str,
        direction: SignalDirection,
        confidence: float,
        timeframe: Timeframe,
        candle_index: int,
        now: datetime,
        original_expiration_seconds: int,
        indicator_names: Iterable[str] = (),
        stream: str = "default"
    ) -> SequentialSignal:
        """Start accumulating candles for a new signal"""
        required = self.required_candles(confidence, timeframe)
        signal = SequentialSignal(
            signal_id=signal_id,
            direction=direction,
            original_confidence=confidence,
            created_at_candle_index=candle_index,
            confirmation_deadline=now + timedelta(seconds=(required + 1) * timeframe.seconds),
            requires_sequential=True,
            timeframe=timeframe,
            created_at=now,
            indicator_names=list(indicator_names),
            stream=stream,
            state=PendingState.ACCUMULATING,
            required_candles=required,
            last_candle_index_seen=candle_index,
            original_expiration_seconds=original_expiration_seconds,
            adjusted_expiration_seconds=original_expiration_seconds
        )
        self._signals[signal_id] = signal

        LOG.info(
            f"Sequential signal registered: {direction.value.upper()} requires {required} candles "
            f"(id={signal_id}, expiration={original_expiration_seconds}s)"
        )
        return signal

    def classify(self, candle: Candle) -> Tuple[CandleDirection, float]:
        """Direction and body strength (body share of range, 0-1)"""
        if candle.range <= 0:
            return CandleDirection.NEUTRAL, 0.0
        strength = min(1.0, candle.body / candle.range)
        if strength < self.config.neutral_body_ratio:
            return CandleDirection.NEUTRAL, strength
        return candle.direction, strength

    def on_candle(self, snapshot: CandleSnapshot, now: datetime) -> List[ConfirmationOutcome]:
        """
        Advance every signal against the same snapshot.

        Terminal signals are removed only after all signals were evaluated.
        """
        outcomes = []
        for signal in list(self._signals.values()):
            outcome = self._evaluate(signal, snapshot, now)
            if outcome is not None:
                outcomes.append(outcome)

        for outcome in outcomes:
            self._signals.pop(outcome.signal_id, None)
        return outcomes

    def _evaluate(
        self,
        signal: SequentialSignal,
        snapshot: CandleSnapshot,
        now: datetime
    ) -> Optional[ConfirmationOutcome]:
        expected = signal.direction.expected_candle

        for candle in snapshot.after(signal.last_candle_index_seen):
            signal.last_candle_index_seen = candle.index
            direction, strength = self.classify(candle)
            if direction == CandleDirection.NEUTRAL:
                continue

            signal.directional_candles += 1
            if direction == expected:
                signal.validated_candles += 1
                signal.matching_candles += 1
                signal.run_strengths.append(strength)
                if signal.validated_candles >= signal.required_candles:
                    return self._validate(signal, candle, now)
            else:
                self._reset(signal, candle, now)

        if now > signal.confirmation_deadline:
            signal.state = PendingState.EXPIRED
            LOG.info(
                f"Sequential signal {signal.signal_id} expired at "
                f"{signal.validated_candles}/{signal.required_candles} candles"
            )
            return ConfirmationOutcome(
                signal_id=signal.signal_id,
                outcome=OutcomeType.EXPIRED,
                direction=signal.direction,
                original_confidence=signal.original_confidence,
                final_confidence=signal.original_confidence,
                timestamp=now,
                candle_index=snapshot.latest_index if len(snapshot) else None,
                reason="deadline reached before sequence completed",
                sequential=True,
                indicator_names=list(signal.indicator_names),
                stream=signal.stream
            )
        return None

    def _reset(self, signal: SequentialSignal, candle: Candle, now: datetime):
        """Opposite candle: restart the run, keep the signal"""
        signal.validated_candles = 0
        signal.run_strengths.clear()
        signal.reversal_count += 1
        self.resets += 1

        if signal.deadline_extensions < self.config.max_deadline_extensions:
            extended = now + timedelta(
                seconds=self.config.reversal_extension_timeframes * signal.timeframe.seconds
            )
            if extended > signal.confirmation_deadline:
                signal.confirmation_deadline = extended
            signal.deadline_extensions += 1

        LOG.info(
            f"Reversal candle {candle.index} on {signal.signal_id}: counter reset, "
            f"waiting for {signal.required_candles} {signal.direction.expected_candle.value} candles"
        )

    def _validate(self, signal: SequentialSignal, candle: Candle, now: datetime) -> ConfirmationOutcome:
        strength = self.sequence_strength(signal)
        signal.adjusted_expiration_seconds = self.adjust_expiration(
            signal.original_expiration_seconds,
            strength,
            signal.validated_candles,
            signal.timeframe
        )
        confidence = min(
            self.config.max_confidence,
            signal.original_confidence + strength * self.config.max_confidence_boost
        )
        signal.state = PendingState.VALIDATED

        LOG.info(
            f"Sequential validation complete: {signal.validated_candles}/{signal.required_candles} "
            f"{signal.direction.expected_candle.value} candles, strength {strength:.2f}, "
            f"expiration {signal.original_expiration_seconds}s -> {signal.adjusted_expiration_seconds}s"
        )
        return ConfirmationOutcome(
            signal_id=signal.signal_id,
            outcome=OutcomeType.VALIDATED,
            direction=signal.direction,
            original_confidence=signal.original_confidence,
            final_confidence=confidence,
            timestamp=now,
            candle_index=candle.index,
            reason=f"{signal.validated_candles} consecutive candles confirmed",
            sequential=True,
            adjusted_expiration_seconds=signal.adjusted_expiration_seconds,
            sequence_strength=strength,
            indicator_names=list(signal.indicator_names),
            stream=signal.stream
        )

    @staticmethod
    def sequence_strength(signal: SequentialSignal) -> float:
        """Average body strength of the confirming run x direction consistency"""
        if not signal.run_strengths or signal.directional_candles == 0:
            return 0.0
        consistency = signal.matching_candles / signal.directional_candles
        return float(np.mean(signal.run_strengths)) * consistency

    def adjust_expiration(
        self,
        original_seconds: int,
        strength: float,
        validated_candles: int,
        timeframe: Timeframe
    ) -> int:
        """Stronger, longer sequences earn a longer expiration window"""
        multiplier = (
            1.0 +
            strength * self.config.strength_expiration_scale +
            (validated_candles - 2) * self.config.extra_candle_expiration_scale
        )
        if timeframe == Timeframe.S30:
            multiplier *= self.config.fast_timeframe_expiration_multiplier
        return max(1, int(round(original_seconds * multiplier)))

    def progress(self, signal_id: str) -> Optional[SequentialProgress]:
        signal = self._signals.get(signal_id)
        if signal is None:
            return None
        return SequentialProgress(
            signal_id=signal.signal_id,
            candles_in_direction=signal.validated_candles,
            required_candles=signal.required_candles,
            remaining_candles=max(0, signal.required_candles - signal.validated_candles),
            reversal_count=signal.reversal_count,
            deadline=signal.confirmation_deadline,
            adjusted_expiration_seconds=signal.adjusted_expiration_seconds
        )

    def get(self, signal_id: str) -> Optional[SequentialSignal]:
        return self._signals.get(signal_id)

    def remove(self, signal_id: str) -> Optional[SequentialSignal]:
        return self._signals.pop(signal_id, None)

    def oldest_id(self) -> Optional[str]:
        return next(iter(self._signals), None)

    def signals(self) -> Dict[str, SequentialSignal]:
        return dict(self._signals)

    def clear(self):
        self._signals.clear()

    def __len__(self) -> int:
        return len(self._signals)
