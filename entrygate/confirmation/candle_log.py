"""
Candle Log

Bounded, append-only candle history shared by the candle tick (writer)
and the confirmation engines (readers).

Candles are addressed by absolute index. Pruning drops the oldest
candles and moves the window offset under the same lock, so an index held
by a pending signal keeps resolving to the same candle for as long as
that candle is inside the window.
"""

from collections import deque
from datetime import datetime
from typing import Deque, Optional
import logging
import threading

import pandas as pd

from entrygate.confirmation.schemas import Candle, CandleSnapshot

LOG = logging.getLogger(__name__)


class CandleLog:
    """Bounded candle window owning the candle index counter"""

    def __init__(self, max_candles: int = 25):
        if max_candles < 2:
            raise ValueError(f"max_candles must be at least 2, got {max_candles}")
        self.max_candles = max_candles
        self._candles: Deque[Candle] = deque()
        self._base_index = 0     # absolute index of self._candles[0]
        self._next_index = 0
        self._lock = threading.RLock()
        self._dropped = 0

    @property
    def next_index(self) -> int:
        with self._lock:
            return self._next_index

    @property
    def latest_index(self) -> int:
        """Index of the newest candle, -1 when empty"""
        with self._lock:
            return self._next_index - 1

    @property
    def dropped(self) -> int:
        """Out-of-order candles rejected so far"""
        return self._dropped

    def append(
        self,
        open: float,
        high: float,
        low: float,
        close: float,
        timestamp: datetime
    ) -> Candle:
        """Append a closed candle, assigning the next index"""
        with self._lock:
            candle = Candle(
                open=float(open),
                high=float(high),
                low=float(low),
                close=float(close),
                timestamp=timestamp,
                index=self._next_index
            )
            self._push(candle)
            return candle

    def append_candle(self, candle: Candle) -> bool:
        """
        Append an externally indexed candle.

        Returns False (and logs) when the index does not advance the log.
        A gap in indices is accepted; the window restarts at the new index.
        """
        with self._lock:
            if candle.index < self._next_index:
                self._dropped += 1
                LOG.warning(
                    f"Dropping out-of-order candle {candle.index} (next expected {self._next_index})"
                )
                return False
            if candle.index > self._next_index and self._candles:
                LOG.warning(f"Candle index gap: expected {self._next_index}, got {candle.index}")
                self._candles.clear()
            self._push(candle)
            return True

    def _push(self, candle: Candle):
        if not self._candles:
            self._base_index = candle.index
        self._candles.append(candle)
        self._next_index = candle.index + 1
        self._prune()

    def _prune(self):
        while len(self._candles) > self.max_candles:
            self._candles.popleft()
            self._base_index += 1

    def get(self, index: int) -> Optional[Candle]:
        """Candle by absolute index, None when pruned or not yet seen"""
        with self._lock:
            position = index - self._base_index
            if 0 <= position < len(self._candles):
                return self._candles[position]
            return None

    def snapshot(self) -> CandleSnapshot:
        """Immutable view for one tick"""
        with self._lock:
            return CandleSnapshot(candles=tuple(self._candles))

    def to_frame(self) -> pd.DataFrame:
        """Recent candles as a DataFrame indexed by candle index"""
        with self._lock:
            rows = [c.to_dict() for c in self._candles]
        if not rows:
            return pd.DataFrame(columns=['open', 'high', 'low', 'close', 'timestamp'])
        return pd.DataFrame(rows).set_index('index')

    def clear(self):
        """Drop all candles; the index counter keeps advancing"""
        with self._lock:
            self._candles.clear()
            self._base_index = self._next_index

    def __len__(self) -> int:
        with self._lock:
            return len(self._candles)
