"""
Event subscribers
"""

from typing import Callable, List, Optional
import logging

from entrygate.confirmation.schemas import OutcomeType
from entrygate.decision_engine.history import IndicatorHistoryStore
from .core import Event, EventBus, EventType

LOG = logging.getLogger(__name__)


class EventSubscriber:
    """Event subscriber with stream filtering"""

    def __init__(self, callback: Callable[[Event], None], streams: Optional[List[str]] = None):
        self.callback = callback
        self.streams = set(streams) if streams else None
        self.events_received = 0

    def matches(self, event: Event) -> bool:
        """Check if event matches filters"""
        if self.streams and event.stream and event.stream not in self.streams:
            return False
        return True

    def notify(self, event: Event):
        """Notify subscriber"""
        if self.matches(event):
            self.callback(event)
            self.events_received += 1


class OutcomeRecorder(EventSubscriber):
    """
    Feeds confirmation outcomes back into the indicator history store.

    CONFIRMED/VALIDATED count as a success and REJECTED as a failure for
    every indicator credited on the signal. EXPIRED carries no evidence.
    """

    OUTCOME_EVENTS = (
        EventType.SIGNAL_CONFIRMED,
        EventType.SIGNAL_VALIDATED,
        EventType.SIGNAL_REJECTED,
        EventType.SIGNAL_EXPIRED,
    )

    def __init__(
        self,
        history: IndicatorHistoryStore,
        bus: Optional[EventBus] = None,
        streams: Optional[List[str]] = None
    ):
        super().__init__(self._record, streams)
        self.history = history
        self.bus = bus
        self.recorded = 0

    def attach(self, bus: EventBus):
        self.bus = bus
        for event_type in self.OUTCOME_EVENTS:
            bus.subscribe(event_type, self.notify, list(self.streams) if self.streams else None)

    def _record(self, event: Event):
        outcome = OutcomeType(event.data['outcome'])
        success = outcome.is_success
        if success is None:
            return

        names = event.data.get('indicator_names', [])
        for name in names:
            self.history.record_outcome(name, success)
            self.recorded += 1

        if names and self.bus is not None:
            self.bus.publish(Event(
                event_type=EventType.OUTCOME_RECORDED,
                stream=event.stream,
                data={
                    'signal_id': event.data.get('signal_id'),
                    'success': success,
                    'indicator_names': list(names),
                }
            ))
        LOG.debug(f"Recorded {outcome.value} for {len(names)} indicators")
