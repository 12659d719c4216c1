"""Tracking of server-imposed rate limits per data category."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

_INTEGER = re.compile(r"[+-]?\d+")
_DEFAULT_RETRY_AFTER = 60
_GLOBAL = "all"

_CATEGORIES = {
    "event": "error",
    "log": "log_item",
    "transaction": "transaction",
    "session": "session",
    "attachment": "attachment",
    "profile": "profile",
    "replay": "replay",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_int(text: str) -> int | None:
    return int(text) if _INTEGER.fullmatch(text) else None


def _parse_http_date(text: str) -> datetime | None:
    """Parse a date such as ``Mon, 02 Jan 2006 15:04:05 GMT``."""
    stamp, _, zone = text.rpartition(" ")
    if not stamp or not zone.isalpha():
        return None
    try:
        parsed = datetime.strptime(stamp, "%a, %d %b %Y %H:%M:%S")
    except ValueError:
        return None
    return parsed.replace(tzinfo=timezone.utc)


def _first_header(headers: Mapping[str, Any], name: str) -> str | None:
    wanted = name.lower()
    for key, value in headers.items():
        if str(key).lower() != wanted:
            continue
        if isinstance(value, (str, bytes)):
            return value.decode("latin-1") if isinstance(value, bytes) else value
        values = list(value)
        if values:
            return str(values[0])
    return None


def normalize_category(category: str) -> str:
    """Map an event type to its Sentry data category."""
    return _CATEGORIES.get(category, category)


class RateLimiter:
    """Remembers until when each category (or ``all``) is disabled."""

    def __init__(
        self,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._lock = threading.RLock()
        self._limits: dict[str, datetime] = {}
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock

    def _active(self, category: str, now: datetime) -> datetime | None:
        until = self._limits.get(category)
        return until if until is not None and until > now else None

    def is_rate_limited(self, event_type: str) -> bool:
        """Return whether the event type or every category is currently disabled."""
        with self._lock:
            now = self._clock()
            return (
                self._active(event_type, now) is not None
                or self._active(_GLOBAL, now) is not None
            )

    def disabled_until(self, event_type: str) -> datetime | None:
        """Return the latest active limit for the event type, or None."""
        with self._lock:
            now = self._clock()
            candidates = [
                until
                for until in (self._active(event_type, now), self._active(_GLOBAL, now))
                if until is not None
            ]
            return max(candidates) if candidates else None

    def handle_rate_limit_headers(self, headers: Mapping[str, Any]) -> None:
        """Apply limits from ``X-Sentry-Rate-Limits`` or else ``Retry-After``."""
        with self._lock:
            now = self._clock()
            sentry_limits = _first_header(headers, "X-Sentry-Rate-Limits")
            if sentry_limits is not None:
                self._apply_sentry_limits(sentry_limits, now)
                return
            retry_after = _first_header(headers, "Retry-After")
            if retry_after is not None:
                self._apply_retry_after(retry_after, now)

    def _apply_sentry_limits(self, header: str, now: datetime) -> None:
        # Each limit reads "retry_after:categories:scope:reason_code:namespaces".
        for limit in header.split(","):
            parts = limit.strip().split(":")
            if len(parts) < 2:
                continue

            seconds = _parse_int(parts[0].strip())
            if seconds is None:
                self._logger.warning(
                    "Failed to parse retry_after from rate limit header: %r", parts[0]
                )
                seconds = _DEFAULT_RETRY_AFTER
            until = now + timedelta(seconds=seconds)

            categories = parts[1].strip() or _GLOBAL
            for category in categories.split(";"):
                category = normalize_category(category.strip() or _GLOBAL)
                self._limits[category] = until
                self._logger.warning(
                    "Rate limit applied: category=%s disabled_until=%s retry_after_seconds=%d",
                    category,
                    until.isoformat(),
                    seconds,
                )

    def _apply_retry_after(self, header: str, now: datetime) -> None:
        header = header.strip()

        seconds = _parse_int(header)
        if seconds is not None:
            until = now + timedelta(seconds=seconds)
            self._limits[_GLOBAL] = until
            self._logger.warning(
                "Global rate limit applied via Retry-After header: disabled_until=%s "
                "retry_after_seconds=%d",
                until.isoformat(),
                seconds,
            )
            return

        retry_time = _parse_http_date(header)
        if retry_time is not None and retry_time > now:
            self._limits[_GLOBAL] = retry_time
            self._logger.warning(
                "Global rate limit applied via Retry-After header: disabled_until=%s",
                retry_time.isoformat(),
            )
            return

        until = now + timedelta(seconds=_DEFAULT_RETRY_AFTER)
        self._limits[_GLOBAL] = until
        self._logger.warning(
            "Failed to parse Retry-After header %r, using default: disabled_until=%s",
            header,
            until.isoformat(),
        )

    def cleanup_expired(self) -> None:
        """Forget limits that are no longer in force."""
        with self._lock:
            now = self._clock()
            self._limits = {
                category: until for category, until in self._limits.items() if until > now
            }

    def status(self) -> dict[str, datetime]:
        """Return a copy of every recorded limit, expired ones included."""
        with self._lock:
            return dict(self._limits)