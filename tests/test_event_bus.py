"""
Tests for the Event Bus and outcome recording
"""

import pytest

from entrygate.decision_engine import IndicatorHistoryStore
from entrygate.event_bus import Event, EventBus, EventType, OutcomeRecorder


def create_outcome_event(outcome, names, stream="default"):
    """Create a confirmation outcome event"""
    event_type = {
        "CONFIRMED": EventType.SIGNAL_CONFIRMED,
        "REJECTED": EventType.SIGNAL_REJECTED,
        "EXPIRED": EventType.SIGNAL_EXPIRED,
        "VALIDATED": EventType.SIGNAL_VALIDATED,
    }[outcome]
    return Event(
        event_type=event_type,
        stream=stream,
        data={'signal_id': 'abc', 'outcome': outcome, 'indicator_names': names}
    )


class TestEventBus:
    """Test event bus dispatch."""

    def test_drain_dispatches_synchronously(self):
        bus = EventBus()
        received = []
        bus.subscribe(EventType.DECISION_EMITTED, received.append)

        bus.publish(Event(event_type=EventType.DECISION_EMITTED, stream="EURUSD"))
        bus.publish(Event(event_type=EventType.DECISION_EMITTED))
        assert received == []

        assert bus.drain() == 2
        assert len(received) == 2

    def test_stream_filter(self):
        bus = EventBus()
        received = []
        bus.subscribe(EventType.SIGNAL_REGISTERED, received.append, streams=["EURUSD"])

        bus.publish(Event(event_type=EventType.SIGNAL_REGISTERED, stream="EURUSD"))
        bus.publish(Event(event_type=EventType.SIGNAL_REGISTERED, stream="GBPUSD"))
        bus.drain()

        assert [e.stream for e in received] == ["EURUSD"]

    def test_failing_subscriber_isolated(self):
        bus = EventBus()
        received = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        bus.subscribe(EventType.DECISION_EMITTED, broken)
        bus.subscribe(EventType.DECISION_EMITTED, received.append)
        bus.publish(Event(event_type=EventType.DECISION_EMITTED))
        bus.drain()

        assert len(received) == 1
        assert bus.get_metrics()['callback_errors'] == 1

    def test_full_buffer_drops(self):
        bus = EventBus(buffer_size=1)
        assert bus.publish(Event(event_type=EventType.DECISION_EMITTED))
        assert not bus.publish(Event(event_type=EventType.DECISION_EMITTED))
        assert bus.get_metrics()['events_dropped'] == 1

    def test_stop_delivers_buffered_events(self):
        bus = EventBus()
        received = []
        bus.subscribe(EventType.OUTCOME_RECORDED, received.append)

        bus.start()
        bus.publish(Event(event_type=EventType.OUTCOME_RECORDED))
        bus.stop()

        assert len(received) == 1
        assert not bus.running


class TestOutcomeRecorder:
    """Test outcome feedback into the history store."""

    @pytest.fixture
    def setup(self):
        history = IndicatorHistoryStore()
        bus = EventBus()
        recorder = OutcomeRecorder(history)
        recorder.attach(bus)
        return history, bus, recorder

    def test_confirmed_is_success(self, setup):
        history, bus, recorder = setup
        bus.publish(create_outcome_event("CONFIRMED", ["trendlines", "fibonacci"]))
        bus.drain()

        assert history.get_entry("trendlines").success_count == 1
        assert history.get_entry("fibonacci").success_count == 1
        assert recorder.recorded == 2

    def test_validated_is_success(self, setup):
        history, bus, _ = setup
        bus.publish(create_outcome_event("VALIDATED", ["momentum"]))
        bus.drain()
        assert history.get_entry("momentum").success_count == 1

    def test_rejected_is_failure(self, setup):
        history, bus, _ = setup
        bus.publish(create_outcome_event("REJECTED", ["volume"]))
        bus.drain()
        assert history.get_entry("volume").failure_count == 1

    def test_expired_records_nothing(self, setup):
        history, bus, recorder = setup
        bus.publish(create_outcome_event("EXPIRED", ["volume"]))
        bus.drain()

        assert len(history) == 0
        assert recorder.recorded == 0

    def test_publishes_outcome_recorded(self, setup):
        _, bus, _ = setup
        recorded = []
        bus.subscribe(EventType.OUTCOME_RECORDED, recorded.append)

        bus.publish(create_outcome_event("CONFIRMED", ["trendlines"], stream="EURUSD"))
        bus.drain()

        assert len(recorded) == 1
        assert recorded[0].stream == "EURUSD"
        assert recorded[0].data['success'] is True
