"""
Candle Confirmation Engine

Holds Buy/Sell decisions as pending signals and resolves them against the
candle that follows the signal:

    PENDING -> CONFIRMED   next candle closes in the signal direction
            -> REJECTED    next candle closes against it
            -> EXPIRED     no next candle before the deadline

Low-confidence and 30s signals are routed to the sequential validator,
which needs several consecutive candles instead of one.
"""

from collections import OrderedDict
from datetime import datetime, timedelta
from typing import Iterable, List, Optional
import logging
import threading
import uuid

from entrygate.confirmation.config import ConfirmationConfig
from entrygate.confirmation.schemas import (
    Candle,
    CandleDirection,
    CandleSnapshot,
    ConfirmationHealth,
    ConfirmationOutcome,
    OutcomeType,
    PendingSignal,
    PendingState,
    SequentialProgress,
    SignalDirection,
)
from entrygate.confirmation.sequential_validator import SequentialCandleValidator
from entrygate.decision_engine.schemas import Decision, EntryPoint, MarketContext

LOG = logging.getLogger(__name__)


class CandleConfirmationEngine:
    """
    Owns every pending and sequential signal.

    All registration and tick processing is serialized by one lock; a tick
    evaluates every signal against the same snapshot before removing any.
    """

    def __init__(
        self,
        config: Optional[ConfirmationConfig] = None,
        validator: Optional[SequentialCandleValidator] = None
    ):
        self.config = config or ConfirmationConfig()
        self.validator = validator or SequentialCandleValidator(self.config.sequential)
        self._pending: "OrderedDict[str, PendingSignal]" = OrderedDict()
        self._lock = threading.RLock()
        self._evicted: List[ConfirmationOutcome] = []
        self.health = ConfirmationHealth()

        LOG.info(f"Candle Confirmation Engine initialized (config hash {self.config.compute_hash()})")

    def requires_sequential(self, confidence: float, context: MarketContext) -> bool:
        return (
            confidence < self.config.sequential_below_confidence or
            context.timeframe.value in self.config.sequential_timeframes
        )

    def register(
        self,
        decision: Decision,
        context: Optional[MarketContext] = None,
        candle_index: int = -1,
        now: Optional[datetime] = None,
        stream: str = "default",
        indicator_names: Optional[Iterable[str]] = None
    ) -> Optional[PendingSignal]:
        """
        Register an actionable decision for confirmation.

        Args:
            decision: Decision from the decision engine
            context: Market context (defaults to the decision's)
            candle_index: Index of the latest closed candle at decision time
            now: Registration time (defaults to decision.created_at)
            stream: Stream the decision belongs to
            indicator_names: Indicators credited with the outcome; defaults
                to the readings that voted in the decision's direction

        Returns:
            The registered signal, or None for WAIT decisions
        """
        if decision.entry_point == EntryPoint.WAIT:
            return None

        context = context or decision.context
        now = now or decision.created_at
        direction = SignalDirection.from_entry_point(decision.entry_point)
        if indicator_names is None:
            indicator_names = [
                r.name for r in decision.indicators
                if r.signal.value == direction.value
            ]
        signal_id = uuid.uuid4().hex[:12]

        with self._lock:
            self.health.signals_registered += 1

            if self.requires_sequential(decision.confidence, context):
                self.health.routed_sequential += 1
                signal = self.validator.register(
                    signal_id=signal_id,
                    direction=direction,
                    confidence=decision.confidence,
                    timeframe=context.timeframe,
                    candle_index=candle_index,
                    now=now,
                    original_expiration_seconds=decision.expiration_seconds,
                    indicator_names=indicator_names,
                    stream=stream
                )
            else:
                deadline_seconds = max(
                    self.config.min_deadline_seconds,
                    self.config.deadline_timeframes * context.timeframe.seconds
                )
                signal = PendingSignal(
                    signal_id=signal_id,
                    direction=direction,
                    original_confidence=decision.confidence,
                    created_at_candle_index=candle_index,
                    confirmation_deadline=now + timedelta(seconds=deadline_seconds),
                    timeframe=context.timeframe,
                    created_at=now,
                    indicator_names=list(indicator_names),
                    stream=stream
                )
                self._pending[signal_id] = signal
                LOG.info(
                    f"Pending {direction.value.upper()} signal {signal_id} at candle {candle_index} "
                    f"(confidence {decision.confidence:.1f}%, deadline {deadline_seconds}s)"
                )

            self._evicted.extend(self.enforce_limit(now))

        return signal

    def enforce_limit(self, now: datetime) -> List[ConfirmationOutcome]:
        """
        Evict the oldest signals above max_pending_signals.

        Evictions are reported as EXPIRED outcomes.
        """
        evicted = []
        with self._lock:
            while len(self._pending) + len(self.validator) > self.config.max_pending_signals:
                signal = self._pop_oldest()
                if signal is None:
                    break
                signal.state = PendingState.EXPIRED
                self.health.evicted += 1
                LOG.warning(f"Pending signal limit reached, evicting {signal.signal_id}")
                outcome = self._outcome(
                    signal, OutcomeType.EXPIRED, signal.original_confidence, now, None, "evicted"
                )
                self.health.record(outcome)
                evicted.append(outcome)
            self._update_pending_count()
        return evicted

    def take_evicted(self) -> List[ConfirmationOutcome]:
        """Eviction outcomes not yet handed to a caller"""
        with self._lock:
            evicted, self._evicted = self._evicted, []
        return evicted

    def _pop_oldest(self) -> Optional[PendingSignal]:
        oldest_simple = next(iter(self._pending.values()), None)
        oldest_sequential_id = self.validator.oldest_id()
        oldest_sequential = (
            self.validator.get(oldest_sequential_id) if oldest_sequential_id else None
        )

        if oldest_simple is None and oldest_sequential is None:
            return None
        if oldest_sequential is None or (
            oldest_simple is not None and oldest_simple.created_at <= oldest_sequential.created_at
        ):
            return self._pending.pop(oldest_simple.signal_id)
        return self.validator.remove(oldest_sequential.signal_id)

    def on_candle(self, snapshot: CandleSnapshot, now: datetime) -> List[ConfirmationOutcome]:
        """
        Process one candle tick.

        Args:
            snapshot: Candle log snapshot shared by every signal this tick
            now: Tick time

        Returns:
            Terminal outcomes produced by this tick
        """
        with self._lock:
            outcomes = self.take_evicted()
            evicted_count = len(outcomes)
            for signal in list(self._pending.values()):
                outcome = self._evaluate(signal, snapshot, now)
                if outcome is not None:
                    outcomes.append(outcome)

            for outcome in outcomes:
                self._pending.pop(outcome.signal_id, None)

            resets_before = self.validator.resets
            outcomes.extend(self.validator.on_candle(snapshot, now))
            self.health.sequential_resets += self.validator.resets - resets_before

            for outcome in outcomes[evicted_count:]:
                self.health.record(outcome)
            self.health.ticks_processed += 1
            self._update_pending_count()

        return outcomes

    def _evaluate(
        self,
        signal: PendingSignal,
        snapshot: CandleSnapshot,
        now: datetime
    ) -> Optional[ConfirmationOutcome]:
        candle = snapshot.get(signal.created_at_candle_index + 1)

        if candle is not None:
            if self._candle_direction(candle) == signal.direction.expected_candle:
                multiplier = self.config.body_multiplier(candle.body_pct)
                confidence = min(
                    self.config.max_confirmed_confidence,
                    signal.original_confidence * multiplier
                )
                signal.state = PendingState.CONFIRMED
                LOG.info(
                    f"Signal {signal.signal_id} CONFIRMED by candle {candle.index}: "
                    f"{signal.original_confidence:.1f}% -> {confidence:.1f}% (x{multiplier})"
                )
                return self._outcome(
                    signal, OutcomeType.CONFIRMED, confidence, now, candle.index,
                    f"candle closed {candle.direction.value} ({candle.body_pct:.2f}% body)"
                )

            confidence = signal.original_confidence * self.config.rejection_multiplier
            signal.state = PendingState.REJECTED
            LOG.info(
                f"Signal {signal.signal_id} REJECTED by candle {candle.index}: "
                f"{signal.original_confidence:.1f}% -> {confidence:.1f}%"
            )
            return self._outcome(
                signal, OutcomeType.REJECTED, confidence, now, candle.index,
                "candle closed against the signal"
            )

        if now > signal.confirmation_deadline:
            signal.state = PendingState.EXPIRED
            LOG.info(f"Signal {signal.signal_id} EXPIRED without a confirming candle")
            return self._outcome(
                signal, OutcomeType.EXPIRED, signal.original_confidence, now, None,
                "no confirming candle before deadline"
            )

        return None

    @staticmethod
    def _candle_direction(candle: Candle) -> CandleDirection:
        """Single-candle confirmation treats an unchanged close as down"""
        return CandleDirection.UP if candle.close > candle.open else CandleDirection.DOWN

    @staticmethod
    def _outcome(
        signal: PendingSignal,
        outcome: OutcomeType,
        confidence: float,
        now: datetime,
        candle_index: Optional[int],
        reason: str
    ) -> ConfirmationOutcome:
        return ConfirmationOutcome(
            signal_id=signal.signal_id,
            outcome=outcome,
            direction=signal.direction,
            original_confidence=signal.original_confidence,
            final_confidence=confidence,
            timestamp=now,
            candle_index=candle_index,
            reason=reason,
            sequential=signal.requires_sequential,
            indicator_names=list(signal.indicator_names),
            stream=signal.stream
        )

    def pending_signals(self) -> List[PendingSignal]:
        """Pending and sequential signals, oldest first"""
        with self._lock:
            signals = list(self._pending.values()) + list(self.validator.signals().values())
        return sorted(signals, key=lambda s: s.created_at)

    def progress(self, signal_id: str) -> Optional[SequentialProgress]:
        with self._lock:
            return self.validator.progress(signal_id)

    def clear(self):
        """Discard all signals without emitting outcomes"""
        with self._lock:
            discarded = len(self._pending) + len(self.validator)
            self._pending.clear()
            self.validator.clear()
            self._evicted.clear()
            self._update_pending_count()
        if discarded:
            LOG.info(f"Discarded {discarded} pending signals")

    def _update_pending_count(self):
        self.health.pending = len(self._pending) + len(self.validator)

    def __len__(self) -> int:
        with self._lock:
            return len(self._pending) + len(self.validator)
