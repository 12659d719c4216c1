"""Plugin lifecycle: configuration, queue, transport and shutdown."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Iterable, Mapping
from typing import Any, Protocol, runtime_checkable

import httpx

from sentryrelay.config import Config
from sentryrelay.metrics import MetricsCollector
from sentryrelay.queue import EventProcessor, EventQueue, PluginError
from sentryrelay.retry import RetryManager
from sentryrelay.rpc import RPC
from sentryrelay.transport import HTTPTransport
from sentryrelay.types import QueuedEvent, SendResult, SentryEvent

PLUGIN_NAME = "sentry_transport"
CLEANUP_INTERVAL = 300.0


class PluginDisabledError(PluginError):
    """Raised when the settings hold no section for the plugin."""

    def __init__(self) -> None:
        super().__init__(
            "sentry_transport_init", "disabled", f"plugin disabled: no {PLUGIN_NAME} section"
        )


class PluginNotInitializedError(PluginError):
    """Raised when the plugin is used before ``init``."""

    def __init__(self, op: str = "sentry_transport") -> None:
        super().__init__(op, "not_initialized", "plugin not initialized")


@runtime_checkable
class SentryTransporter(Protocol):
    """What other components use to hand events over."""

    def send_event(self, event: SentryEvent) -> None:
        """Queue one event."""
        ...

    def send_batch(self, events: Iterable[SentryEvent]) -> None:
        """Queue several events."""
        ...


class NoOpProcessor:
    """Processor used without a DSN: records events as sent without sending them."""

    def __init__(self, metrics: MetricsCollector, logger: logging.Logger | None = None) -> None:
        self._metrics = metrics
        self._logger = logger or logging.getLogger(__name__)

    def process_event(self, event: QueuedEvent) -> SendResult:
        sentry_event = event.event
        self._logger.debug(
            "Dry-run: would send event: event_id=%s type=%s payload_size=%d",
            sentry_event.event_id,
            sentry_event.type,
            len(sentry_event.payload),
        )
        self._metrics.inc_successful_events()
        return SendResult(success=True, event_id=sentry_event.event_id)


class Plugin:
    """Owns the event queue and, when a DSN is configured, the HTTP transport."""

    def __init__(
        self,
        *,
        logger: logging.Logger | None = None,
        http_transport: httpx.BaseTransport | None = None,
        cleanup_interval: float = CLEANUP_INTERVAL,
    ) -> None:
        self.config: Config | None = None
        self.metrics: MetricsCollector | None = None
        self.queue: EventQueue | None = None
        self.http_transport: HTTPTransport | None = None
        self.retry_manager: RetryManager | None = None
        self._logger = logger or logging.getLogger(f"sentryrelay.{PLUGIN_NAME}")
        self._http_backend = http_transport
        self._cleanup_interval = cleanup_interval
        self._stop_requested = threading.Event()
        self._done = threading.Event()
        self._serving = False

    def init(self, settings: Mapping[str, Any]) -> None:
        """Configure the plugin from the ``sentry_transport`` section of the settings."""
        if not isinstance(settings, Mapping) or PLUGIN_NAME not in settings:
            raise PluginDisabledError()

        config = Config.from_mapping(settings[PLUGIN_NAME])
        config.init_defaults()
        config.validate()
        self.config = config

        self.metrics = MetricsCollector()
        self.queue = EventQueue(config.queue, self.metrics, self._logger)

        if config.dsn:
            transport = HTTPTransport(
                config.transport,
                config.dsn,
                self.metrics,
                self._logger,
                http_transport=self._http_backend,
            )
            self.http_transport = transport
            self.retry_manager = RetryManager(config.retry, self.metrics, self._logger)
            transport.retry_manager = self.retry_manager
        else:
            self._logger.warning(
                "No DSN configured, events will be queued but not transmitted"
            )

        self._stop_requested = threading.Event()
        self._done = threading.Event()
        self._serving = False
        self._logger.debug("Sentry transport plugin initialized")

    def serve(self) -> queue.Queue[Exception]:
        """Start processing in the background; errors are reported on the returned queue."""
        errors: queue.Queue[Exception] = queue.Queue(maxsize=1)
        if self.config is None or self.queue is None:
            errors.put_nowait(PluginNotInitializedError("sentry_transport_serve"))
            return errors

        processor: EventProcessor
        if self.http_transport is not None:
            processor = self.http_transport
        else:
            processor = NoOpProcessor(self.metrics, self._logger)

        self._serving = True
        threading.Thread(
            target=self._run, args=(processor, errors), name=f"{PLUGIN_NAME}-serve", daemon=True
        ).start()
        return errors

    def _run(self, processor: EventProcessor, errors: queue.Queue[Exception]) -> None:
        try:
            try:
                self.queue.start(processor)
            except Exception as exc:
                errors.put_nowait(
                    PluginError("sentry_transport_serve", "serve_failed", str(exc))
                )
                return

            threading.Thread(
                target=self._cleanup_routine, name=f"{PLUGIN_NAME}-cleanup", daemon=True
            ).start()
            self._logger.debug("Sentry transport plugin started")

            self._stop_requested.wait()
            self._logger.debug("Sentry transport plugin stopping")

            try:
                self.queue.stop()
            except Exception:
                self._logger.exception("Error stopping event queue")
            if self.http_transport is not None:
                try:
                    self.http_transport.close()
                except Exception:
                    self._logger.exception("Error closing transport")
            if self.retry_manager is not None:
                self.retry_manager.close()
            self._logger.debug("Sentry transport plugin stopped")
        finally:
            self._done.set()

    def _cleanup_routine(self) -> None:
        while not self._stop_requested.wait(self._cleanup_interval):
            if self.http_transport is not None:
                self.http_transport.rate_limiter.cleanup_expired()

    def stop(self, timeout: float | None = None) -> None:
        """Request shutdown and wait up to ``timeout`` seconds for it to finish."""
        self._stop_requested.set()
        if not self._serving:
            return
        if not self._done.wait(timeout):
            self._logger.warning("Plugin stop timed out")
            raise TimeoutError("plugin stop timed out")

    def name(self) -> str:
        return PLUGIN_NAME

    def rpc(self) -> RPC:
        """Return the remote-call interface bound to this plugin."""
        return RPC(self, self._logger)

    def transport(self) -> SentryTransporter:
        """Return the interface other components use to send events."""
        return self

    def send_event(self, event: SentryEvent) -> None:
        """Queue one event for delivery."""
        if self.queue is None or self.metrics is None:
            raise PluginNotInitializedError("sentry_transport_send")
        self.metrics.inc_events_by_type(event.type)
        self.queue.enqueue(event)

    def send_batch(self, events: Iterable[SentryEvent]) -> None:
        """Queue events in order, stopping at the first that cannot be queued."""
        if self.queue is None or self.metrics is None:
            raise PluginNotInitializedError("sentry_transport_send_batch")
        for event in events:
            self.metrics.inc_events_by_type(event.type)
            self.queue.enqueue(event)

    def metrics_collectors(self) -> list[MetricsCollector]:
        """Return the collectors to register with a metrics exporter."""
        return [self.metrics] if self.metrics is not None else []