"""
Candle Sources

Producers feeding the candle tick: live capture adapters, replays of
recorded bars, or a seeded simulation for demos and tests.
"""

from datetime import datetime
from typing import Iterable, NamedTuple, Optional, Protocol, runtime_checkable
import logging

import numpy as np

from entrygate.confirmation.schemas import Candle

LOG = logging.getLogger(__name__)


class OHLC(NamedTuple):
    open: float
    high: float
    low: float
    close: float


@runtime_checkable
class CandleSource(Protocol):
    """Yields the next closed candle, or None when nothing new is available"""

    def next_candle(self, now: datetime, previous: Optional[Candle]) -> Optional[OHLC]:
        ...


class ReplayCandleSource:
    """Replays a fixed sequence of bars"""

    def __init__(self, bars: Iterable[OHLC]):
        self._bars = [OHLC(*bar) for bar in bars]
        self._position = 0

    @property
    def exhausted(self) -> bool:
        return self._position >= len(self._bars)

    def next_candle(self, now: datetime, previous: Optional[Candle]) -> Optional[OHLC]:
        if self.exhausted:
            return None
        bar = self._bars[self._position]
        self._position += 1
        return bar


class SimulatedCandleSource:
    """
    Seeded random-walk candles.

    Each candle opens at the previous close and follows the previous
    candle's direction with probability `follow_probability`.
    """

    def __init__(
        self,
        base_price: float = 100.0,
        follow_probability: float = 0.62,
        seed: Optional[int] = None
    ):
        if not 0.0 <= follow_probability <= 1.0:
            raise ValueError(f"follow_probability must be in [0, 1], got {follow_probability}")
        self.base_price = base_price
        self.follow_probability = follow_probability
        self._rng = np.random.default_rng(seed)

    def next_candle(self, now: datetime, previous: Optional[Candle]) -> Optional[OHLC]:
        rng = self._rng
        if previous is None:
            open_ = self.base_price * (1 + (rng.random() - 0.5) * 0.02)
            trend = 1 if rng.random() > 0.5 else -1
        else:
            open_ = previous.close
            trend = 1 if previous.close >= previous.open else -1

        if rng.random() < self.follow_probability:
            variation = (rng.random() * 0.008 + 0.002) * trend
        else:
            variation = (rng.random() * 0.006 + 0.001) * -trend

        close = open_ * (1 + variation)
        high = max(open_, close) + rng.random() * 0.003 * open_
        low = min(open_, close) - rng.random() * 0.003 * open_

        LOG.debug(f"Simulated candle: {open_:.4f} -> {close:.4f} ({variation * 100:+.2f}%)")
        return OHLC(float(open_), float(high), float(low), float(close))
