"""Asynchronous event queue with batching workers and a retry scheduler."""

from __future__ import annotations

import logging
import queue
import threading
import time
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any, Protocol, runtime_checkable

from sentryrelay.config import QueueConfig
from sentryrelay.metrics import MetricsCollector
from sentryrelay.types import QueuedEvent, SendResult, SentryEvent

_POLL_INTERVAL = 0.05
_MIN_WAIT = 0.001


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PluginError(Exception):
    """An error reported by the plugin, with an operation and a short code."""

    def __init__(self, op: str, code: str, message: str) -> None:
        super().__init__(message)
        self.op = op
        self.code = code
        self.message = message

    def __str__(self) -> str:
        return self.message


class QueueClosedError(PluginError):
    """Raised when an event is offered to a stopped queue."""

    def __init__(self) -> None:
        super().__init__("queue_enqueue", "queue_closed", "queue is closed")


class QueueFullError(PluginError):
    """Raised when the queue has no room left for an event."""

    def __init__(self) -> None:
        super().__init__("queue_enqueue", "queue_full", "queue is full")


@runtime_checkable
class EventProcessor(Protocol):
    """Anything that can deliver a queued event and report the outcome."""

    def process_event(self, event: QueuedEvent) -> SendResult:
        """Deliver one event and return the result."""
        ...


class EventQueue:
    """Bounded event queue drained by worker threads in batches."""

    def __init__(
        self,
        config: QueueConfig,
        metrics: MetricsCollector,
        logger: logging.Logger | None = None,
        *,
        clock: Callable[[], datetime] = _utcnow,
        retry_interval: float = 1.0,
    ) -> None:
        self._config = config
        self._metrics = metrics
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._retry_interval = retry_interval
        self._events: queue.Queue[QueuedEvent] = queue.Queue(maxsize=max(1, config.buffer_size))
        self._retry_events: queue.Queue[QueuedEvent] = queue.Queue(
            maxsize=max(1, config.buffer_size // 2)
        )
        self._lock = threading.Lock()
        self._stopping = threading.Event()
        self._threads: list[threading.Thread] = []
        self._closed = False

    def start(self, processor: EventProcessor) -> None:
        """Start the workers and the retry scheduler; does nothing once stopped."""
        with self._lock:
            if self._closed:
                return
            for worker_id in range(self._config.workers):
                self._spawn(f"event-queue-worker-{worker_id}", self._worker, worker_id, processor)
            self._spawn("event-queue-retry", self._retry_scheduler)

    def _spawn(self, name: str, target: Callable[..., None], *args: Any) -> None:
        thread = threading.Thread(target=target, args=args, name=name, daemon=True)
        self._threads.append(thread)
        thread.start()

    def stop(self, timeout: float | None = None) -> None:
        """Close the queue and wait up to ``timeout`` seconds for the threads."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            threads = list(self._threads)
        self._stopping.set()

        deadline = None if timeout is None else time.monotonic() + timeout
        for thread in threads:
            remaining = None if deadline is None else max(0.0, deadline - time.monotonic())
            thread.join(remaining)

        if any(thread.is_alive() for thread in threads):
            self._logger.warning("Event queue stopped with timeout")
        else:
            self._logger.debug("Event queue stopped gracefully")

    def enqueue(self, event: SentryEvent) -> None:
        """Add a new event for processing."""
        with self._lock:
            if self._closed:
                raise QueueClosedError()
            try:
                self._events.put_nowait(QueuedEvent(event=event, next_retry=self._clock()))
            except queue.Full:
                self._logger.warning(
                    "Event queue is full, dropping event: event_id=%s", event.event_id
                )
                self._metrics.inc_dropped_events()
                raise QueueFullError() from None

    def enqueue_retry(self, event: QueuedEvent) -> None:
        """Hand an event to the retry scheduler."""
        with self._lock:
            if self._closed:
                raise QueueClosedError()
            try:
                self._retry_events.put_nowait(event)
            except queue.Full:
                self._logger.warning(
                    "Retry queue is full, dropping event: event_id=%s", event.event.event_id
                )
                self._metrics.inc_dropped_events()
                raise QueueFullError() from None

    def _worker(self, worker_id: int, processor: EventProcessor) -> None:
        batch_size = max(1, self._config.batch_size)
        batch_timeout = self._config.batch_timeout
        batch: list[QueuedEvent] = []
        deadline = time.monotonic() + batch_timeout

        while not self._stopping.is_set():
            wait = max(_MIN_WAIT, min(_POLL_INTERVAL, deadline - time.monotonic()))
            try:
                batch.append(self._events.get(timeout=wait))
            except queue.Empty:
                pass
            else:
                if len(batch) >= batch_size:
                    self._process_batch(worker_id, processor, batch)
                    batch = []
                    deadline = time.monotonic() + batch_timeout
                    continue

            if time.monotonic() >= deadline:
                if batch:
                    self._process_batch(worker_id, processor, batch)
                    batch = []
                deadline = time.monotonic() + batch_timeout

        if batch:
            self._process_batch(worker_id, processor, batch)

    def _retry_scheduler(self) -> None:
        pending: list[QueuedEvent] = []
        next_tick = time.monotonic() + self._retry_interval

        while not self._stopping.is_set():
            wait = max(_MIN_WAIT, min(_POLL_INTERVAL, next_tick - time.monotonic()))
            try:
                pending.append(self._retry_events.get(timeout=wait))
            except queue.Empty:
                pass
            if time.monotonic() >= next_tick:
                next_tick = time.monotonic() + self._retry_interval
                pending = self._promote_ready(pending)

    def _promote_ready(self, pending: list[QueuedEvent]) -> list[QueuedEvent]:
        now = self._clock()
        kept: list[QueuedEvent] = []
        moved = 0
        for event in pending:
            if now > event.next_retry:
                try:
                    self._events.put_nowait(event)
                except queue.Full:
                    self._logger.warning(
                        "Main queue full, keeping event in retry queue: event_id=%s",
                        event.event.event_id,
                    )
                    kept.append(event)
                else:
                    moved += 1
            else:
                kept.append(event)
        if moved:
            self._logger.debug("Moved %d events from retry queue to main queue", moved)
        return kept

    def _process_batch(
        self, worker_id: int, processor: EventProcessor, batch: list[QueuedEvent]
    ) -> None:
        self._logger.debug("Processing event batch: worker_id=%d size=%d", worker_id, len(batch))
        for event in batch:
            event_id = event.event.event_id
            try:
                result = processor.process_event(event)
            except Exception as exc:  # a faulty processor must not kill the worker
                result = SendResult(success=False, event_id=event_id, error=str(exc))

            if result.success:
                self._metrics.inc_successful_events()
            elif result.rate_limit:
                self._logger.debug(
                    "Event rate limited: event_id=%s error=%s", event_id, result.error
                )
            else:
                self._metrics.inc_failed_events()
                self._logger.error(
                    "Failed to process event: event_id=%s error=%s", event_id, result.error
                )

    def status(self) -> dict[str, Any]:
        """Return queue lengths, the number of threads and whether the queue is closed."""
        with self._lock:
            return {
                "queue_length": self._events.qsize(),
                "retry_queue_length": self._retry_events.qsize(),
                "workers": len(self._threads),
                "closed": self._closed,
            }