import gzip
import threading
import time

import httpx
import pytest

from sentryrelay.config import Config
from sentryrelay.metrics import MetricsCollector
from sentryrelay.plugin import (
    NoOpProcessor,
    Plugin,
    PluginDisabledError,
    PluginNotInitializedError,
    SentryTransporter,
)
from sentryrelay.queue import QueueClosedError, QueueFullError
from sentryrelay.transport import TransportError
from sentryrelay.types import QueuedEvent, SentryEvent

DSN = "https://public@example.com/42"


def make_plugin(section=None, **kwargs):
    plugin = Plugin(**kwargs)
    plugin.init({"sentry_transport": section if section is not None else {}})
    return plugin


def totals(metrics):
    return {s.name: s.value for s in metrics.collect() if not s.labels}


def wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if condition():
            return True
        time.sleep(0.01)
    return condition()


def test_init_without_section_is_disabled():
    with pytest.raises(PluginDisabledError) as info:
        Plugin().init({"other": {}})
    assert info.value.code == "disabled"


def test_init_applies_defaults():
    plugin = make_plugin()
    assert isinstance(plugin.config, Config)
    assert plugin.config.queue.buffer_size == 1000
    assert plugin.http_transport is None
    assert plugin.retry_manager is None


def test_init_with_invalid_dsn_raises():
    with pytest.raises(TransportError):
        make_plugin({"dsn": "ftp://public@example.com/42"})


def test_init_with_dsn_builds_transport_and_retry():
    plugin = make_plugin(
        {"dsn": DSN}, http_transport=httpx.MockTransport(lambda r: httpx.Response(200))
    )
    try:
        assert plugin.http_transport.dsn.envelope_url == "https://example.com/api/42/envelope/"
        assert plugin.http_transport.retry_manager is plugin.retry_manager
    finally:
        plugin.http_transport.close()


def test_send_before_init_raises():
    plugin = Plugin()
    with pytest.raises(PluginNotInitializedError):
        plugin.send_event(SentryEvent(event_id="a"))
    with pytest.raises(PluginNotInitializedError):
        plugin.send_batch([SentryEvent(event_id="a")])


def test_serve_before_init_reports_error():
    errors = Plugin().serve()
    error = errors.get(timeout=1)
    assert isinstance(error, PluginNotInitializedError)
    assert error.op == "sentry_transport_serve"


def test_name_transport_and_collectors():
    plugin = make_plugin()
    assert plugin.name() == "sentry_transport"
    assert plugin.transport() is plugin
    assert isinstance(plugin.transport(), SentryTransporter)
    assert plugin.metrics_collectors() == [plugin.metrics]


def test_send_batch_stops_at_first_failure():
    plugin = make_plugin({"queue": {"buffer_size": 1}})
    events = [SentryEvent(event_id=str(i), type="event") for i in range(3)]
    with pytest.raises(QueueFullError):
        plugin.send_batch(events)
    by_type = [s.value for s in plugin.metrics.collect() if s.labels]
    assert by_type == [2.0]
    assert plugin.queue.status()["queue_length"] == 1


def test_noop_processor_marks_success():
    metrics = MetricsCollector()
    result = NoOpProcessor(metrics).process_event(
        QueuedEvent(event=SentryEvent(event_id="n1", payload="abc"))
    )
    assert result.success is True
    assert result.event_id == "n1"
    assert totals(metrics)["rr_sentry_transport_successful_events_total"] == 1.0


def test_stop_without_serve_returns():
    plugin = make_plugin()
    plugin.stop(0.1)
    assert plugin.queue.status()["closed"] is False


def test_dry_run_serve_processes_and_stops():
    plugin = make_plugin({"queue": {"batch_timeout": "10ms"}})
    errors = plugin.serve()
    plugin.send_event(SentryEvent(event_id="d1", type="event", payload="{}"))
    name = "rr_sentry_transport_successful_events_total"
    assert wait_for(lambda: totals(plugin.metrics)[name] >= 2)
    plugin.stop(5.0)
    assert errors.empty()
    # the dry-run processor and the queue each record the success
    assert totals(plugin.metrics)[name] == 2.0
    assert plugin.queue.status()["closed"] is True
    with pytest.raises(QueueClosedError):
        plugin.send_event(SentryEvent(event_id="late"))


def test_serve_with_dsn_sends_envelope():
    received = []
    lock = threading.Lock()

    def handler(request):
        with lock:
            received.append(request)
        return httpx.Response(200)

    plugin = make_plugin(
        {"dsn": DSN, "queue": {"batch_timeout": "10ms"}},
        http_transport=httpx.MockTransport(handler),
    )
    errors = plugin.serve()
    payload = '{"event_id":"s1"}'
    plugin.send_event(SentryEvent(event_id="s1", type="event", payload=payload))
    assert wait_for(lambda: len(received) == 1)
    name = "rr_sentry_transport_successful_events_total"
    wait_for(lambda: totals(plugin.metrics)[name] == 1.0)
    plugin.stop(5.0)

    assert errors.empty()
    assert totals(plugin.metrics)[name] == 1.0
    assert plugin.queue.status()["closed"] is True

    request = received[0]
    assert str(request.url) == "https://example.com/api/42/envelope/"
    assert request.headers["Content-Encoding"] == "gzip"
    assert "sentry_key=public" in request.headers["X-Sentry-Auth"]
    assert gzip.decompress(request.content).decode("utf-8") == payload