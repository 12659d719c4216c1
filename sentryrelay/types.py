"""Event and result records shared by the queue, transport and RPC layers."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _string_field(data: Mapping[str, Any], key: str) -> str:
    value = data.get(key, "")
    if value is None:
        return ""
    if not isinstance(value, str):
        raise TypeError(f"{key} must be a string, got {type(value).__name__}")
    return value


@dataclass
class SentryEvent:
    """A single event to deliver; the payload is a ready-made envelope."""

    event_id: str = ""
    type: str = ""
    payload: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> SentryEvent:
        """Build an event from its wire form (``event_id``, ``type``, ``payload``)."""
        if not isinstance(data, Mapping):
            raise TypeError(f"event must be a mapping, got {type(data).__name__}")
        return cls(
            event_id=_string_field(data, "event_id"),
            type=_string_field(data, "type"),
            payload=_string_field(data, "payload"),
        )


@dataclass
class SendResult:
    """Outcome of sending or enqueueing one event."""

    success: bool
    event_id: str
    error: str = ""
    rate_limit: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Return the wire form, leaving out an empty error and a false rate limit."""
        result: dict[str, Any] = {"success": self.success, "event_id": self.event_id}
        if self.error:
            result["error"] = self.error
        if self.rate_limit:
            result["rate_limit"] = self.rate_limit
        return result


@dataclass
class QueuedEvent:
    """An event waiting in the processing queue, with its retry state."""

    event: SentryEvent
    attempts: int = 0
    last_attempt: datetime | None = None
    next_retry: datetime = field(default_factory=_now)


@dataclass
class RateLimitInfo:
    """Rate limiting state for one data category."""

    category: str
    disabled_until: datetime


@dataclass
class TransportMetrics:
    """Aggregate transport counters."""

    events_sent: int = 0
    events_failed: int = 0
    events_rate_limit: int = 0
    queue_length: int = 0
    total_retries: int = 0