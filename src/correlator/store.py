# src/correlator/store.py
"""
Bounded in-memory store for normalized logs and alerts.

The store keeps two append-only sequences, oldest first. When a sequence
grows past its cap the oldest chunk is dropped in a single operation.
Everything lives in process memory and is lost on restart.
"""

import logging
import threading
from contextlib import contextmanager
from typing import Iterable, Iterator, List, Optional

from .event import Alert, NormalizedLog

logger = logging.getLogger(__name__)


class ReadWriteLock:
    """
    Reader/writer lock built on a condition variable.

    Any number of readers may hold the lock together; a writer holds it
    alone. A waiting writer blocks new readers so writers cannot starve.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read_locked(self) -> Iterator[None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write_locked(self) -> Iterator[None]:
        with self._cond:
            self._writers_waiting += 1
            try:
                while self._writer or self._readers:
                    self._cond.wait()
            finally:
                self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


def _tail(items: list, limit: Optional[int]) -> list:
    if limit is None:
        return list(items)
    if limit <= 0:
        return []
    return items[-limit:]


class EventStore:
    """
    Concurrency-safe holder of recent normalized logs and alerts.

    Attributes:
        max_logs: Cap on retained logs
        log_eviction_chunk: Number of oldest logs dropped when the cap is exceeded
        max_alerts: Cap on retained alerts
        alert_eviction_chunk: Number of oldest alerts dropped when the cap is exceeded

    Example:
        >>> store = EventStore()
        >>> store.append_log(log)
        >>> store.append_alerts(engine.check(log))
        >>> recent = store.snapshot_logs(100)
    """

    MAX_LOGS = 10_000
    LOG_EVICTION_CHUNK = 1_000
    MAX_ALERTS = 1_000
    ALERT_EVICTION_CHUNK = 100

    def __init__(self,
                 max_logs: int = MAX_LOGS,
                 log_eviction_chunk: int = LOG_EVICTION_CHUNK,
                 max_alerts: int = MAX_ALERTS,
                 alert_eviction_chunk: int = ALERT_EVICTION_CHUNK) -> None:
        if log_eviction_chunk < 1 or alert_eviction_chunk < 1:
            raise ValueError("eviction chunks must be at least 1")

        self.max_logs = max_logs
        self.log_eviction_chunk = log_eviction_chunk
        self.max_alerts = max_alerts
        self.alert_eviction_chunk = alert_eviction_chunk

        self._lock = ReadWriteLock()
        self._logs: List[NormalizedLog] = []
        self._alerts: List[Alert] = []

    @staticmethod
    def _evict(items: list, cap: int, chunk: int, kind: str) -> None:
        # Each append adds one entry, so dropping a chunk always brings the
        # sequence back under the cap.
        if len(items) > cap:
            del items[:chunk]
            logger.debug("Evicted %d oldest %s, %d retained", chunk, kind, len(items))

    def append_log(self, log: NormalizedLog) -> None:
        with self._lock.write_locked():
            self._logs.append(log)
            self._evict(self._logs, self.max_logs, self.log_eviction_chunk, "logs")

    def append_alerts(self, alerts: Iterable[Alert]) -> None:
        with self._lock.write_locked():
            for alert in alerts:
                self._alerts.append(alert)
                self._evict(self._alerts, self.max_alerts, self.alert_eviction_chunk, "alerts")

    def snapshot_logs(self, limit: Optional[int] = None) -> List[NormalizedLog]:
        """Most recent `limit` logs, oldest first (all when limit is None)."""
        with self._lock.read_locked():
            return _tail(self._logs, limit)

    def snapshot_alerts(self, limit: Optional[int] = None) -> List[Alert]:
        """Most recent `limit` alerts, oldest first (all when limit is None)."""
        with self._lock.read_locked():
            return _tail(self._alerts, limit)

    def log_count(self) -> int:
        with self._lock.read_locked():
            return len(self._logs)

    def alert_count(self) -> int:
        with self._lock.read_locked():
            return len(self._alerts)

    def clear(self) -> None:
        with self._lock.write_locked():
            self._logs.clear()
            self._alerts.clear()
