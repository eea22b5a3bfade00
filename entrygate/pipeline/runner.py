"""
Signal Pipeline

Wires the decision engine, the candle log and the confirmation engine
into two independent loops:

    Evaluation loop:  readings -> DecisionEngine -> live decision -> register
    Candle tick:      CandleSource -> CandleLog -> snapshot -> confirmation outcomes

Outcomes are published on the event bus; the outcome recorder feeds them
back into the indicator history store.
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional
import logging
import queue
import threading

from entrygate.confirmation.candle_log import CandleLog
from entrygate.confirmation.candle_sources import CandleSource
from entrygate.confirmation.confirmation_engine import CandleConfirmationEngine
from entrygate.confirmation.schemas import ConfirmationOutcome, OutcomeType, PendingSignal
from entrygate.decision_engine.engine import DecisionEngine
from entrygate.decision_engine.history import IndicatorHistoryStore
from entrygate.decision_engine.schemas import Decision, MarketContext, Timeframe
from entrygate.decision_engine.sources import IndicatorSource
from entrygate.event_bus import Event, EventBus, EventType, OutcomeRecorder
from entrygate.pipeline.config import PipelineConfig

LOG = logging.getLogger(__name__)


_OUTCOME_EVENTS = {
    OutcomeType.CONFIRMED: EventType.SIGNAL_CONFIRMED,
    OutcomeType.REJECTED: EventType.SIGNAL_REJECTED,
    OutcomeType.EXPIRED: EventType.SIGNAL_EXPIRED,
    OutcomeType.VALIDATED: EventType.SIGNAL_VALIDATED,
}


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class SignalPipeline:
    """
    Explicit owner of all shared pipeline state.

    Every method can be driven synchronously with an injected clock; start()
    runs the same methods from background threads.
    """

    def __init__(
        self,
        config: Optional[PipelineConfig] = None,
        candle_source: Optional[CandleSource] = None,
        indicator_source: Optional[IndicatorSource] = None,
        history: Optional[IndicatorHistoryStore] = None,
        bus: Optional[EventBus] = None,
        clock: Callable[[], datetime] = utc_now
    ):
        self.config = config or PipelineConfig()
        self.config_hash = self.config.compute_hash()
        self.timeframe = Timeframe(self.config.timeframe)
        self.clock = clock

        self.candle_source = candle_source
        self.indicator_source = indicator_source

        self.history = history or IndicatorHistoryStore()
        self.candle_log = CandleLog(self.config.candle_log_size)
        self.engine = DecisionEngine(self.config.engine, self.history)
        self.confirmation = CandleConfirmationEngine(self.config.confirmation)
        self.bus = bus or EventBus()

        self.recorder = OutcomeRecorder(self.history)
        if self.config.record_confirmation_outcomes:
            self.recorder.attach(self.bus)

        self._live: Dict[str, Decision] = {}
        self._lock = threading.RLock()
        self._queue: queue.Queue = queue.Queue(maxsize=self.config.evaluation_queue_size)
        self._stop_event = threading.Event()
        self._candle_thread: Optional[threading.Thread] = None
        self._evaluation_thread: Optional[threading.Thread] = None
        self._running = False

        self.submissions_dropped = 0
        self.evaluation_errors = 0

        LOG.info(f"Signal pipeline initialized (timeframe {self.timeframe.value}, config hash {self.config_hash})")

    @property
    def running(self) -> bool:
        return self._running

    def default_context(self) -> MarketContext:
        return MarketContext(timeframe=self.timeframe)

    # ------------------------------------------------------------------
    # Evaluation
    # ------------------------------------------------------------------

    def evaluate(
        self,
        readings: Iterable[Any],
        context: Optional[MarketContext] = None,
        stream: str = "default"
    ) -> Decision:
        """
        Evaluate readings, publish the decision and register it for confirmation.

        The decision replaces the stream's previous live decision. Pending
        signals created by earlier decisions keep their own lifecycle.
        """
        context = context or self.default_context()
        now = self.clock()

        with self._lock:
            decision = self.engine.evaluate(
                readings,
                context=context,
                now=now,
                candles=self.candle_log.to_frame()
            )
            self._live[stream] = decision

            self.bus.publish(Event(
                event_type=EventType.DECISION_EMITTED,
                stream=stream,
                data=decision.to_dict()
            ))

            signal = self.confirmation.register(
                decision,
                context=context,
                candle_index=self.candle_log.latest_index,
                now=now,
                stream=stream
            )
            if signal is not None:
                self.bus.publish(Event(
                    event_type=EventType.SIGNAL_REGISTERED,
                    stream=stream,
                    data=signal.to_dict()
                ))
            self._publish_outcomes(self.confirmation.take_evicted())

        LOG.info(
            f"[{stream}] {decision.entry_point.value.upper()} "
            f"({decision.confidence:.1f}%, expires in {decision.expiration_seconds}s)"
        )
        self._flush()
        return decision

    def submit(
        self,
        readings: Iterable[Any],
        context: Optional[MarketContext] = None,
        stream: str = "default"
    ) -> bool:
        """
        Queue readings for the evaluation loop.

        Returns False if the queue is full (submission dropped).
        """
        try:
            self._queue.put_nowait((list(readings), context, stream))
            return True
        except queue.Full:
            self.submissions_dropped += 1
            LOG.error(f"Evaluation queue full, dropped submission for stream {stream}")
            return False

    def live_decision(self, stream: str = "default") -> Optional[Decision]:
        with self._lock:
            return self._live.get(stream)

    def live_decisions(self) -> Dict[str, Decision]:
        with self._lock:
            return dict(self._live)

    # ------------------------------------------------------------------
    # Candles
    # ------------------------------------------------------------------

    def process_candle(
        self,
        open: float,
        high: float,
        low: float,
        close: float,
        timestamp: Optional[datetime] = None
    ) -> List[ConfirmationOutcome]:
        """Append a closed candle and run one confirmation tick"""
        now = self.clock()
        candle = self.candle_log.append(open, high, low, close, timestamp or now)
        LOG.debug(f"Candle {candle.index}: {candle.open:.5f} -> {candle.close:.5f}")
        return self.tick(now)

    def tick(self, now: Optional[datetime] = None) -> List[ConfirmationOutcome]:
        """Run one confirmation tick against the current candle window"""
        now = now or self.clock()
        outcomes = self.confirmation.on_candle(self.candle_log.snapshot(), now)
        self._publish_outcomes(outcomes)
        self._flush()
        return outcomes

    def _publish_outcomes(self, outcomes: List[ConfirmationOutcome]):
        for outcome in outcomes:
            self.bus.publish(Event(
                event_type=_OUTCOME_EVENTS[outcome.outcome],
                stream=outcome.stream,
                data=outcome.to_dict()
            ))

    def _flush(self):
        """Without a dispatcher thread, dispatch events on the caller"""
        if not self.bus.running:
            self.bus.drain()

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def record_outcome(self, indicator_name: str, success: bool):
        """Record an externally observed trade outcome for one indicator"""
        entry = self.history.record_outcome(indicator_name, success)
        self.bus.publish(Event(
            event_type=EventType.OUTCOME_RECORDED,
            data={
                'indicator_names': [indicator_name],
                'success': success,
                'trust_factor': entry.trust_factor,
            }
        ))
        self._flush()
        return entry

    def pending_signals(self) -> List[PendingSignal]:
        return self.confirmation.pending_signals()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self):
        """Start the event dispatcher, the candle tick and the evaluation loop"""
        if self._running:
            return
        self._running = True
        self._stop_event.clear()
        self.bus.start()

        if self.candle_source is not None:
            self._candle_thread = threading.Thread(
                target=self._candle_loop,
                name="CandleTick",
                daemon=True
            )
            self._candle_thread.start()

        self._evaluation_thread = threading.Thread(
            target=self._evaluation_loop,
            name="EvaluationLoop",
            daemon=True
        )
        self._evaluation_thread.start()
        LOG.info(f"Signal pipeline started (tick period {self.config.tick_period:.1f}s)")

    def stop(self):
        """Stop both loops, discard every pending signal and queued submission"""
        if not self._running:
            self.confirmation.clear()
            self._discard_submissions()
            return
        self._running = False
        self._stop_event.set()

        for thread in (self._candle_thread, self._evaluation_thread):
            if thread is not None:
                thread.join(timeout=5.0)
        self._candle_thread = None
        self._evaluation_thread = None

        self.confirmation.clear()
        self._discard_submissions()
        self.bus.stop()
        LOG.info("Signal pipeline stopped")

    def _discard_submissions(self) -> int:
        discarded = 0
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                break
            discarded += 1
        if discarded:
            LOG.info(f"Discarded {discarded} queued submissions")
        return discarded

    def _candle_loop(self):
        """Pull one candle per tick period from the candle source"""
        while not self._stop_event.wait(self.config.tick_period):
            try:
                snapshot = self.candle_log.snapshot()
                bar = self.candle_source.next_candle(self.clock(), snapshot.latest)
                if bar is None:
                    self.tick()
                else:
                    self.process_candle(*bar)
            except Exception as e:
                LOG.error(f"Candle tick failed: {e}", exc_info=True)

    def _evaluation_loop(self):
        """Evaluate queued submissions, polling the indicator source when idle"""
        while not self._stop_event.is_set():
            polled = False
            try:
                readings, context, stream = self._queue.get(timeout=0.1)
            except queue.Empty:
                if self.indicator_source is None:
                    continue
                if self._stop_event.wait(self.config.tick_period):
                    break
                polled = True
                readings, context, stream = None, self.default_context(), "default"

            try:
                if polled:
                    readings = self.indicator_source.read(context)
                self.evaluate(readings, context=context, stream=stream)
            except Exception as e:
                self.evaluation_errors += 1
                LOG.error(f"Evaluation failed for stream {stream}: {e}", exc_info=True)

    # ------------------------------------------------------------------
    # Monitoring
    # ------------------------------------------------------------------

    def get_health(self) -> Dict[str, Any]:
        return {
            'running': self._running,
            'timeframe': self.timeframe.value,
            'candles': len(self.candle_log),
            'latest_candle_index': self.candle_log.latest_index,
            'dropped_candles': self.candle_log.dropped,
            'queue_depth': self._queue.qsize(),
            'submissions_dropped': self.submissions_dropped,
            'evaluation_errors': self.evaluation_errors,
            'live_streams': sorted(self._live.keys()),
            'engine': self.engine.get_health().to_dict(),
            'confirmation': self.confirmation.health.to_dict(),
            'event_bus': self.bus.get_metrics(),
            'config_hash': self.config_hash,
        }
