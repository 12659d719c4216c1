"""Remote-call surface through which clients hand events to the plugin."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any

from sentryrelay.queue import PluginError
from sentryrelay.types import SendResult, SentryEvent

if TYPE_CHECKING:
    from sentryrelay.plugin import Plugin


def _as_event(event: SentryEvent | Mapping[str, Any]) -> SentryEvent:
    if isinstance(event, SentryEvent):
        return event
    return SentryEvent.from_dict(event)


class RPC:
    """Enqueues events for a plugin and reports its status."""

    def __init__(self, plugin: Plugin, logger: logging.Logger | None = None) -> None:
        self._plugin = plugin
        self._logger = logger or logging.getLogger(__name__)

    def _require_initialized(self, op: str) -> None:
        if self._plugin.queue is None or self._plugin.metrics is None:
            raise PluginError(op, "not_initialized", "plugin not initialized")

    def _enqueue(self, event: SentryEvent) -> SendResult:
        plugin = self._plugin
        plugin.metrics.inc_events_by_type(event.type)
        try:
            plugin.queue.enqueue(event)
        except PluginError as exc:
            self._logger.error(
                "Failed to enqueue event: event_id=%s error=%s", event.event_id, exc
            )
            return SendResult(success=False, event_id=event.event_id, error=str(exc))
        return SendResult(success=True, event_id=event.event_id)

    def send_batch(
        self, events: Iterable[SentryEvent | Mapping[str, Any]]
    ) -> list[SendResult]:
        """Enqueue every event and return one result per event, in order."""
        batch = [_as_event(event) for event in events]
        if not batch:
            return []
        self._require_initialized("sentry_transport_rpc_send_batch")

        self._logger.debug("Received batch of events via RPC: count=%d", len(batch))
        results = []
        for event in batch:
            result = self._enqueue(event)
            if result.success:
                self._logger.debug(
                    "Event queued for processing: event_id=%s type=%s",
                    event.event_id,
                    event.type,
                )
            results.append(result)
        return results

    def send_event(self, event: SentryEvent | Mapping[str, Any]) -> SendResult:
        """Enqueue a single event and return its result."""
        sentry_event = _as_event(event)
        self._require_initialized("sentry_transport_rpc_send_event")
        self._logger.debug(
            "Received single event via RPC: event_id=%s type=%s",
            sentry_event.event_id,
            sentry_event.type,
        )
        return self._enqueue(sentry_event)

    def get_status(self) -> dict[str, Any]:
        """Return queue, retry and rate-limit status for the parts that exist."""
        plugin = self._plugin
        status: dict[str, Any] = {}
        if plugin.queue is not None:
            status["queue"] = plugin.queue.status()
        if plugin.retry_manager is not None:
            status["retry"] = plugin.retry_manager.retry_stats()
        if plugin.http_transport is not None:
            status["rate_limits"] = plugin.http_transport.rate_limiter.status()
        return status