"""
Core event bus implementation with per-stream isolation
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any, Callable
from collections import defaultdict, deque
import threading
import logging
import uuid

LOG = logging.getLogger(__name__)


class EventType(Enum):
    """Event types in system"""
    # Decision events
    DECISION_EMITTED = "decision_emitted"

    # Confirmation events
    SIGNAL_REGISTERED = "signal_registered"
    SIGNAL_CONFIRMED = "signal_confirmed"
    SIGNAL_REJECTED = "signal_rejected"
    SIGNAL_EXPIRED = "signal_expired"
    SIGNAL_VALIDATED = "signal_validated"

    # Learning events
    OUTCOME_RECORDED = "outcome_recorded"


@dataclass
class Event:
    """Base event"""
    event_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    event_type: EventType = EventType.DECISION_EMITTED
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    stream: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)


class EventBus:
    """
    Thread-safe event bus with per-stream buffers.

    Events are dispatched by a background thread after start(), or
    synchronously with drain().
    """

    def __init__(self, buffer_size: int = 10000):
        self.buffer_size = buffer_size
        self._stream_buffers: Dict[str, deque] = {}
        self._global_buffer = deque(maxlen=buffer_size)
        self._subscribers: Dict[EventType, List] = defaultdict(list)
        self._running = False
        self._dispatcher_thread: Optional[threading.Thread] = None
        self._lock = threading.RLock()
        self._dispatch_lock = threading.Lock()
        self._events_published = 0
        self._events_dispatched = 0
        self._events_dropped = 0
        self._callback_errors = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start dispatcher"""
        if self._running:
            return
        self._running = True
        self._dispatcher_thread = threading.Thread(
            target=self._dispatch_loop,
            name="EventBusDispatcher",
            daemon=True
        )
        self._dispatcher_thread.start()
        LOG.info("EventBus started")

    def stop(self):
        """Stop dispatcher, dispatching whatever is still buffered"""
        if not self._running:
            return
        self._running = False
        if self._dispatcher_thread:
            self._dispatcher_thread.join(timeout=5.0)
            self._dispatcher_thread = None
        self.drain()
        LOG.info("EventBus stopped")

    def publish(self, event: Event) -> bool:
        """Publish event (non-blocking). Returns False when the buffer is full."""
        with self._lock:
            self._events_published += 1
            if event.stream:
                if event.stream not in self._stream_buffers:
                    self._stream_buffers[event.stream] = deque(maxlen=self.buffer_size)
                buffer = self._stream_buffers[event.stream]
            else:
                buffer = self._global_buffer

            if len(buffer) >= self.buffer_size:
                self._events_dropped += 1
                LOG.warning(f"Event buffer full, dropping {event.event_type.value}")
                return False

            buffer.append(event)
            return True

    def subscribe(
        self,
        event_type: EventType,
        callback: Callable[[Event], None],
        streams: Optional[List[str]] = None
    ) -> int:
        """Subscribe to events, optionally only for some streams"""
        subscriber = {'callback': callback, 'streams': set(streams) if streams else None}
        with self._lock:
            self._subscribers[event_type].append(subscriber)
            return len(self._subscribers[event_type]) - 1

    def drain(self) -> int:
        """Dispatch every buffered event on the calling thread"""
        dispatched = 0
        while True:
            batch = self._take_batch()
            if not batch:
                return dispatched
            for event in batch:
                self._dispatch_event(event)
            dispatched += len(batch)

    def _take_batch(self) -> List[Event]:
        with self._lock:
            batch = list(self._global_buffer)
            self._global_buffer.clear()

            for stream in list(self._stream_buffers.keys()):
                buffer = self._stream_buffers[stream]
                batch_size = min(100, len(buffer))
                for _ in range(batch_size):
                    batch.append(buffer.popleft())
            return batch

    def _dispatch_loop(self):
        """Background dispatcher"""
        while self._running:
            if self.drain() == 0:
                threading.Event().wait(0.001)  # 1ms

    def _dispatch_event(self, event: Event):
        """Dispatch to subscribers; callbacks run outside the buffer lock"""
        with self._lock:
            subscribers = list(self._subscribers.get(event.event_type, []))
        with self._dispatch_lock:
            for sub in subscribers:
                if sub['streams'] is None or (event.stream and event.stream in sub['streams']):
                    try:
                        sub['callback'](event)
                        self._events_dispatched += 1
                    except Exception as e:
                        self._callback_errors += 1
                        LOG.error(f"Subscriber callback failed for {event.event_type.value}: {e}")

    def get_metrics(self) -> Dict[str, Any]:
        """Get metrics"""
        with self._lock:
            total_buffer = len(self._global_buffer)
            for buf in self._stream_buffers.values():
                total_buffer += len(buf)

            return {
                'events_published': self._events_published,
                'events_dispatched': self._events_dispatched,
                'events_dropped': self._events_dropped,
                'callback_errors': self._callback_errors,
                'buffer_depth': total_buffer,
                'stream_buffers': len(self._stream_buffers),
                'running': self._running
            }
