# src/correlator/coordinator.py
"""
Ingestion coordinator with per-connection processing queues.

The coordinator drives every entry of a batch through the pipeline:
normalize -> store log -> run rules -> store alerts. Batches submitted for
a connection are processed by that connection's worker thread in arrival
order; different connections are processed in parallel.
"""

import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass, field
from queue import Queue
from typing import Dict, Iterable, List, Optional, Tuple, Union

from .batch import LogBatch, decode_batch
from .errors import BatchDecodeError, CoordinatorClosedError
from .event import Alert
from .log_writer import AlertLogWriter
from .normalizer import LogNormalizer
from .rules import RuleEngine
from .store import EventStore

logger = logging.getLogger(__name__)

Payload = Union[str, bytes, LogBatch]

_STOP = object()


def _decode(payload: Payload) -> LogBatch:
    return payload if isinstance(payload, LogBatch) else decode_batch(payload)


@dataclass
class BatchOutcome:
    """Result of processing one batch."""
    host: str
    processed: int = 0
    alerts: List[Alert] = field(default_factory=list)


class IngestionCoordinator:
    """
    Drives log batches through normalizer, store and rule engine.

    Every collaborator is an explicit object, so several coordinators (for
    example one per test) can run side by side without sharing state.

    Concurrency model:
    - One worker thread and FIFO queue per connection, created on first use
    - Batches of one connection never overtake each other
    - The rule engine and the store synchronize internally, so workers of
      different connections can run concurrently
    - shutdown() stops new submissions and lets queued batches drain

    Example:
        >>> coordinator = IngestionCoordinator()
        >>> outcome = coordinator.handle_batch("web-1", [("auth", line)])
        >>> future = coordinator.submit("agent-1", payload)
        >>> future.result().processed
    """

    def __init__(self,
                 store: Optional[EventStore] = None,
                 rules: Optional[RuleEngine] = None,
                 normalizer: Optional[LogNormalizer] = None,
                 alert_writer: Optional[AlertLogWriter] = None) -> None:
        self.store = store or EventStore()
        self.rules = rules or RuleEngine()
        self.normalizer = normalizer or LogNormalizer()
        self.alert_writer = alert_writer or AlertLogWriter()

        self._queues: Dict[str, Queue] = {}
        self._workers: Dict[str, threading.Thread] = {}
        self._workers_lock = threading.Lock()
        self._closed = threading.Event()

    # ------------------------------------------------------------------
    # Synchronous processing
    # ------------------------------------------------------------------

    def _ingest_entry(self, host: str, source: str, message: str) -> List[Alert]:
        log = self.normalizer.normalize(source, host, message)
        self.store.append_log(log)

        alerts = self.rules.check(log)
        if alerts:
            self.store.append_alerts(alerts)
            self.alert_writer.write(alerts)
        return alerts

    def _check_open(self) -> None:
        if self._closed.is_set():
            raise CoordinatorClosedError("coordinator is shut down")

    def handle_batch(self, host: str, entries: Iterable[Tuple[str, str]]) -> BatchOutcome:
        """
        Process (source, message) entries of one host, in order.

        Returns:
            BatchOutcome with the number of entries processed and the alerts raised

        Raises:
            CoordinatorClosedError: shutdown() has been called
        """
        self._check_open()
        outcome = BatchOutcome(host=host)
        for source, message in entries:
            outcome.alerts.extend(self._ingest_entry(host, source, message))
            outcome.processed += 1

        logger.info("Saved %d normalized logs from %s", outcome.processed, host)
        return outcome

    def _process_batch(self, batch: LogBatch) -> BatchOutcome:
        outcome = BatchOutcome(host=batch.host)
        for entry in batch.batch:
            host = batch.host or entry.host
            outcome.alerts.extend(self._ingest_entry(host, entry.source, entry.message))
            outcome.processed += 1

        logger.info("Saved %d normalized logs from %s", outcome.processed, batch.host or "unknown host")
        return outcome

    def process_batch(self, batch: LogBatch) -> BatchOutcome:
        """
        Process a decoded batch. The batch host wins over per-entry hosts.

        Raises:
            CoordinatorClosedError: shutdown() has been called
        """
        self._check_open()
        return self._process_batch(batch)

    def process_payload(self, payload: Payload) -> BatchOutcome:
        """
        Decode (when needed) and process a transport payload.

        Raises:
            BatchDecodeError: the payload does not decode; nothing is processed
            CoordinatorClosedError: shutdown() has been called
        """
        self._check_open()
        return self._process_batch(_decode(payload))

    # ------------------------------------------------------------------
    # Per-connection queues
    # ------------------------------------------------------------------

    def _connection_worker(self, connection_id: str, queue: Queue) -> None:
        """
        Worker loop for one connection.

        Processes queued batches until the stop marker arrives. A failing
        batch resolves its future with the exception; the worker keeps
        running.
        """
        while True:
            item = queue.get()
            try:
                if item is _STOP:
                    return

                payload, future = item
                if not future.set_running_or_notify_cancel():
                    continue
                try:
                    # Queued batches drain even after shutdown() closed the coordinator.
                    future.set_result(self._process_batch(_decode(payload)))
                except BatchDecodeError as e:
                    logger.warning("Rejected batch on %s: %s", connection_id, e)
                    future.set_exception(e)
                except Exception as e:
                    logger.exception("Error processing batch on %s", connection_id)
                    future.set_exception(e)
            finally:
                queue.task_done()

    def _ensure_connection_worker(self, connection_id: str) -> Queue:
        """Return the connection's queue, starting its worker on first use. Caller holds _workers_lock."""
        queue = self._queues.get(connection_id)
        if queue is None:
            queue = Queue()
            worker = threading.Thread(
                target=self._connection_worker,
                args=(connection_id, queue),
                name=f"ConnectionWorker-{connection_id}",
                daemon=True,
            )
            self._queues[connection_id] = queue
            self._workers[connection_id] = worker
            worker.start()
        return queue

    def submit(self, connection_id: str, payload: Payload) -> "Future[BatchOutcome]":
        """
        Queue a payload for processing on its connection's worker.

        Non-blocking: returns a future resolved with the BatchOutcome, or
        with BatchDecodeError when the payload is rejected.

        Raises:
            CoordinatorClosedError: shutdown() has been called
        """
        future: Future = Future()
        with self._workers_lock:
            self._check_open()
            self._ensure_connection_worker(connection_id).put((payload, future))
        return future

    def close_connection(self, connection_id: str) -> None:
        """Let the connection's worker finish its queue and exit."""
        with self._workers_lock:
            queue = self._queues.pop(connection_id, None)
            self._workers.pop(connection_id, None)
        if queue is not None:
            queue.put(_STOP)

    def get_queue_size(self, connection_id: Optional[str] = None) -> int:
        """Unprocessed batches for one connection, or across all connections."""
        with self._workers_lock:
            if connection_id:
                queue = self._queues.get(connection_id)
                return queue.qsize() if queue else 0
            return sum(queue.qsize() for queue in self._queues.values())

    def active_connections(self) -> int:
        with self._workers_lock:
            return len(self._queues)

    # ------------------------------------------------------------------
    # Status and lifecycle
    # ------------------------------------------------------------------

    def health(self) -> Dict[str, int]:
        return {
            "normalized_logs": self.store.log_count(),
            "alerts_v2": self.store.alert_count(),
            "active_bruteforces": self.rules.tracked_sources(),
        }

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def shutdown(self, timeout: float = 5.0) -> bool:
        """
        Stop accepting batches and drain the ones already queued.

        Args:
            timeout: Maximum time to wait for workers, shared across all of them

        Returns:
            True if every worker finished, False if the timeout expired first
        """
        with self._workers_lock:
            self._closed.set()
            queues = list(self._queues.values())
            workers = list(self._workers.values())
            self._queues.clear()
            self._workers.clear()

        for queue in queues:
            queue.put(_STOP)

        per_worker = timeout / len(workers) if workers else 0
        for worker in workers:
            worker.join(timeout=per_worker)

        return all(not worker.is_alive() for worker in workers)
