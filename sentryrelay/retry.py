"""Retry policy: attempt limits, exponential backoff and a dead-letter queue."""

from __future__ import annotations

import logging
import math
import queue
import random
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Any

from sentryrelay.config import RetryConfig
from sentryrelay.metrics import MetricsCollector
from sentryrelay.types import QueuedEvent

DEAD_LETTER_CAPACITY = 100


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _with_fraction(whole: int, fraction: int, digits: int) -> str:
    if not fraction:
        return str(whole)
    return f"{whole}." + f"{fraction:0{digits}d}".rstrip("0")


def format_duration(seconds: float) -> str:
    """Format a duration the way ``1h2m3.5s``, ``300ms`` or ``0s`` read."""
    nanos = round(seconds * 1_000_000_000)
    if nanos == 0:
        return "0s"
    sign = "-" if nanos < 0 else ""
    nanos = abs(nanos)

    if nanos < 1_000:
        text = f"{nanos}ns"
    elif nanos < 1_000_000:
        text = _with_fraction(*divmod(nanos, 1_000), 3) + "µs"
    elif nanos < 1_000_000_000:
        text = _with_fraction(*divmod(nanos, 1_000_000), 6) + "ms"
    else:
        total, fraction = divmod(nanos, 1_000_000_000)
        hours, rest = divmod(total, 3600)
        minutes, secs = divmod(rest, 60)
        secs_text = _with_fraction(secs, fraction, 9) + "s"
        if hours:
            text = f"{hours}h{minutes}m{secs_text}"
        elif minutes:
            text = f"{minutes}m{secs_text}"
        else:
            text = secs_text
    return sign + text


class RetryManager:
    """Decides whether failed events are retried and when."""

    def __init__(
        self,
        config: RetryConfig,
        metrics: MetricsCollector,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = _utcnow,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config
        self._metrics = metrics
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._rng = rng or random.Random()
        self._closed = False
        self._dead_letter: queue.Queue[QueuedEvent] | None = (
            queue.Queue(maxsize=DEAD_LETTER_CAPACITY) if config.dead_letter_queue else None
        )

    def should_retry(self, event: QueuedEvent, error: BaseException | str | None) -> bool:
        """Return False once the event has used up its attempts, dead-lettering it."""
        if event.attempts < self._config.max_attempts:
            return True

        event_id = event.event.event_id
        self._logger.error(
            "Event exceeded max retry attempts: event_id=%s attempts=%d max_attempts=%d error=%s",
            event_id,
            event.attempts,
            self._config.max_attempts,
            error,
        )

        if self._dead_letter is not None and not self._closed:
            try:
                self._dead_letter.put_nowait(event)
            except queue.Full:
                self._logger.warning(
                    "Dead letter queue is full, dropping event: event_id=%s", event_id
                )
                self._metrics.inc_dropped_events()
            else:
                self._logger.debug("Event moved to dead letter queue: event_id=%s", event_id)
                self._metrics.inc_dead_letter_events()
        else:
            self._metrics.inc_dropped_events()
        return False

    def calculate_backoff(self, attempts: int) -> float:
        """Return the delay in seconds before the given attempt, with ±25% jitter."""
        config = self._config
        if attempts <= 0:
            return config.initial_backoff

        try:
            backoff = config.initial_backoff * math.pow(config.backoff_multiplier, attempts - 1)
        except OverflowError:
            return config.max_backoff
        backoff += backoff * 0.25 * (2 * self._rng.random() - 1)

        if math.isinf(backoff) or backoff > config.max_backoff:
            return config.max_backoff
        return backoff

    def schedule_retry(self, event: QueuedEvent, error: BaseException | str | None) -> None:
        """Count an attempt and set the time of the next one."""
        event.attempts += 1
        event.last_attempt = self._clock()
        backoff = self.calculate_backoff(event.attempts)
        event.next_retry = event.last_attempt + timedelta(seconds=backoff)
        self._logger.debug(
            "Scheduling event retry: event_id=%s attempt=%d backoff=%s next_retry=%s error=%s",
            event.event.event_id,
            event.attempts,
            format_duration(backoff),
            event.next_retry.isoformat(),
            error,
        )

    def is_retry_time(self, event: QueuedEvent) -> bool:
        """Return whether the event's retry time has passed."""
        return self._clock() > event.next_retry

    def dead_letter_queue(self) -> queue.Queue[QueuedEvent] | None:
        """Return the dead-letter queue, or None when it is disabled."""
        return self._dead_letter

    def retry_stats(self) -> dict[str, Any]:
        """Return the retry settings and the dead-letter queue length."""
        config = self._config
        stats: dict[str, Any] = {
            "max_attempts": config.max_attempts,
            "initial_backoff": format_duration(config.initial_backoff),
            "backoff_multiplier": config.backoff_multiplier,
            "max_backoff": format_duration(config.max_backoff),
            "dead_letter_enabled": config.dead_letter_queue,
        }
        if self._dead_letter is not None:
            stats["dead_letter_queue_length"] = self._dead_letter.qsize()
        return stats

    def close(self) -> None:
        """Stop accepting events into the dead-letter queue."""
        self._closed = True