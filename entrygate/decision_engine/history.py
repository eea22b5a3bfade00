"""
Indicator History Store

Tracks long-run success/failure per indicator name and exposes a
Laplace-smoothed trust multiplier in [0.7, 1.3].
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Dict, Optional
import logging
import threading

LOG = logging.getLogger(__name__)

MIN_TRUST = 0.7
MAX_TRUST = 1.3


@dataclass
class IndicatorHistoryEntry:
    """Outcome counts for one indicator name"""

    name: str
    success_count: int = 0
    failure_count: int = 0
    last_outcome: Optional[bool] = None
    last_updated: Optional[datetime] = None

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def trust_factor(self) -> float:
        return trust_factor(self.success_count, self.failure_count)

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'success_count': self.success_count,
            'failure_count': self.failure_count,
            'last_outcome': self.last_outcome,
            'last_updated': self.last_updated.isoformat() if self.last_updated else None,
            'trust_factor': self.trust_factor,
        }


def trust_factor(success: int, failure: int) -> float:
    """
    Map a smoothed success rate into [0.7, 1.3].

    No history gives exactly 1.0.
    """
    rate = (success + 1) / (success + failure + 2)
    return MIN_TRUST + (MAX_TRUST - MIN_TRUST) * rate


class IndicatorHistoryStore:
    """
    In-memory accumulator of indicator outcomes.

    Entries are created lazily on first observation and never deleted.
    Shared between the evaluation loop (reads) and outcome feedback (writes).
    """

    def __init__(self):
        self._entries: Dict[str, IndicatorHistoryEntry] = {}
        self._lock = threading.RLock()

    def record_outcome(self, name: str, success: bool) -> IndicatorHistoryEntry:
        """Record one known outcome for an indicator"""
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                entry = IndicatorHistoryEntry(name=name)
                self._entries[name] = entry

            if success:
                entry.success_count += 1
            else:
                entry.failure_count += 1
            entry.last_outcome = bool(success)
            entry.last_updated = datetime.now(timezone.utc)

            LOG.debug(
                f"Outcome recorded for {name}: success={success} "
                f"({entry.success_count}/{entry.total}, trust={entry.trust_factor:.3f})"
            )
            return entry

    def trust_factor(self, name: str) -> float:
        """Trust multiplier for an indicator (1.0 when never observed)"""
        with self._lock:
            entry = self._entries.get(name)
            if entry is None:
                return 1.0
            return entry.trust_factor

    def get_entry(self, name: str) -> Optional[IndicatorHistoryEntry]:
        with self._lock:
            return self._entries.get(name)

    def snapshot(self) -> Dict[str, dict]:
        """Copy of all entries as dictionaries"""
        with self._lock:
            return {name: entry.to_dict() for name, entry in self._entries.items()}

    def reset(self):
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
