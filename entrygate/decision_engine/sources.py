"""
Indicator Sources

Pluggable producers of IndicatorReadings. The decision engine does not
care whether a source is a live detector, a replay or a simulation.
"""

from typing import Iterable, List, Protocol, runtime_checkable
import logging

from entrygate.decision_engine.schemas import IndicatorReading, MarketContext

LOG = logging.getLogger(__name__)


@runtime_checkable
class IndicatorSource(Protocol):
    """Anything that yields indicator readings for a market context"""

    def read(self, context: MarketContext) -> List[IndicatorReading]:
        ...


class StaticIndicatorSource:
    """Returns a fixed set of readings (detector output captured elsewhere)"""

    def __init__(self, readings: Iterable[IndicatorReading], name: str = "static"):
        self.name = name
        self._readings = list(readings)

    def update(self, readings: Iterable[IndicatorReading]):
        self._readings = list(readings)

    def read(self, context: MarketContext) -> List[IndicatorReading]:
        return list(self._readings)


class CompositeIndicatorSource:
    """
    Concatenates readings from several sources.

    A failing source is logged and skipped so one broken detector does not
    starve the whole evaluation.
    """

    def __init__(self, sources: Iterable[IndicatorSource]):
        self.sources = list(sources)
        self.failures = 0

    def read(self, context: MarketContext) -> List[IndicatorReading]:
        readings: List[IndicatorReading] = []
        for source in self.sources:
            try:
                readings.extend(source.read(context))
            except Exception as e:
                self.failures += 1
                LOG.warning(f"Indicator source {getattr(source, 'name', source)!r} failed: {e}")
        return readings
