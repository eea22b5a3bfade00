"""
Event Bus for decision and confirmation events
"""

from .core import EventBus, Event, EventType
from .subscribers import EventSubscriber, OutcomeRecorder

__all__ = ['EventBus', 'Event', 'EventType', 'EventSubscriber', 'OutcomeRecorder']
