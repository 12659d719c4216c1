"""Thread-safe counters describing event delivery."""

from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass

NAMESPACE = "rr_sentry_transport"


def _fq_name(name: str) -> str:
    return f"{NAMESPACE}_{name}"


@dataclass(frozen=True)
class MetricDescription:
    """Name, help text and label names of one metric."""

    name: str
    help: str
    label_names: tuple[str, ...] = ()


@dataclass(frozen=True)
class MetricSample:
    """A counter value at collection time."""

    name: str
    value: float
    labels: tuple[tuple[str, str], ...] = ()


DEAD_LETTER_EVENTS = MetricDescription(
    _fq_name("dead_letter_events_total"),
    "Total number of events moved to dead letter queue",
)
DROPPED_EVENTS = MetricDescription(
    _fq_name("dropped_events_total"),
    "Total number of dropped Sentry events",
)
FAILED_EVENTS = MetricDescription(
    _fq_name("failed_events_total"),
    "Total number of failed Sentry events",
)
SUCCESSFUL_EVENTS = MetricDescription(
    _fq_name("successful_events_total"),
    "Total number of successfully sent events",
)
EVENTS_BY_TYPE = MetricDescription(
    _fq_name("events_by_type_total"),
    "Total number of events by event type",
    ("event_type",),
)


class MetricsCollector:
    """Counts dead-lettered, dropped, failed and successful events, and events by type."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._dead_letter = 0
        self._dropped = 0
        self._failed = 0
        self._successful = 0
        self._by_type: Counter[str] = Counter()

    def inc_dead_letter_events(self) -> None:
        with self._lock:
            self._dead_letter += 1

    def inc_dropped_events(self) -> None:
        with self._lock:
            self._dropped += 1

    def inc_failed_events(self) -> None:
        with self._lock:
            self._failed += 1

    def inc_successful_events(self) -> None:
        with self._lock:
            self._successful += 1

    def inc_events_by_type(self, event_type: str) -> None:
        with self._lock:
            self._by_type[event_type] += 1

    def describe(self) -> list[MetricDescription]:
        """Return the descriptions of every metric this collector reports."""
        return [DEAD_LETTER_EVENTS, DROPPED_EVENTS, FAILED_EVENTS, SUCCESSFUL_EVENTS, EVENTS_BY_TYPE]

    def collect(self) -> list[MetricSample]:
        """Return current values: the four totals, then one sample per event type."""
        with self._lock:
            samples = [
                MetricSample(DEAD_LETTER_EVENTS.name, float(self._dead_letter)),
                MetricSample(DROPPED_EVENTS.name, float(self._dropped)),
                MetricSample(FAILED_EVENTS.name, float(self._failed)),
                MetricSample(SUCCESSFUL_EVENTS.name, float(self._successful)),
            ]
            samples.extend(
                MetricSample(EVENTS_BY_TYPE.name, float(count), (("event_type", event_type),))
                for event_type, count in sorted(self._by_type.items())
            )
        return samples