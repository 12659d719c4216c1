# sentryrelay

`sentryrelay` takes ready-made Sentry envelopes from your application and
delivers them to a Sentry server in the background. Events go onto a bounded
in-memory queue. One or more worker threads take them off in batches and post
them to the envelope endpoint of the project named by your DSN.

What it covers:

- **DSN handling** (`sentryrelay.dsn`): `parse_dsn` checks a DSN. From it, it
  works out the envelope and CSP report endpoints, the port, and the
  organisation ID of hosts such as `o123.ingest.example.com`.
- **Queueing and batching** (`sentryrelay.queue`): `EventQueue` is bounded.
  When it is full it refuses an event with `QueueFullError` and counts it as
  dropped, so callers never block on delivery.
- **Rate limits** (`sentryrelay.rate_limiter`): `RateLimiter` reads
  `X-Sentry-Rate-Limits` and, failing that, `Retry-After` response headers.
  It keeps limits per data category (`error`, `transaction`, `log_item`, ...)
  and globally (`all`). While its category is limited, an event is skipped
  rather than sent.
- **Retry policy** (`sentryrelay.retry`): `RetryManager` provides:
  - exponential backoff with ±25% jitter, capped at a maximum delay;
  - a limit on the number of attempts;
  - an optional dead-letter queue of up to 100 events.
- **Metrics** (`sentryrelay.metrics`): `MetricsCollector` counts successful,
  failed, dropped and dead-lettered events, and events by type.
- **Dry-run mode**: with an empty DSN, events are accepted, logged and counted
  as successful, but never sent.

## Installation

```
pip install sentryrelay
```

## Configuration

`Plugin.init` reads the `sentry_transport` section of a settings mapping:

```python
settings = {
    "sentry_transport": {
        "dsn": "https://placeholder@o123.ingest.example.com/42",
        "transport": {"timeout": "30s", "compression": True, "ssl_verify": True},
        "retry": {"max_attempts": 3, "backoff_multiplier": 2.0, "dead_letter_queue": False},
        "queue": {"buffer_size": 1000, "workers": 1, "batch_size": 10, "batch_timeout": 5},
    }
}
```

Durations can be written in two ways:

- as a number of seconds;
- as a string such as `"500ms"`, `"1m30s"` or `"2h"`.

A missing key, or one set to zero or false, takes the default below:

| Section     | Key                  | Default |
|-------------|----------------------|---------|
| `transport` | `timeout`            | 30 s    |
|             | `connect_timeout`    | 10 s    |
|             | `compression`        | on      |
|             | `ssl_verify`         | on      |
|             | `proxy`              | none    |
| `retry`     | `max_attempts`       | 3       |
|             | `initial_backoff`    | 1 s     |
|             | `backoff_multiplier` | 2.0     |
|             | `max_backoff`        | 300 s   |
|             | `dead_letter_queue`  | off     |
| `queue`     | `buffer_size`        | 1000    |
|             | `workers`            | 1       |
|             | `batch_size`         | 10      |
|             | `batch_timeout`      | 5 s     |

Because zero and false mean "use the default", compression and SSL
verification end up switched on even when they are set to false.

An empty `dsn` switches the relay into dry-run mode. If the settings have no
`sentry_transport` section at all, `Plugin.init` raises `PluginDisabledError`.
A value of the wrong kind raises `ValueError`.

A configuration can also be built and checked on its own. Use
`Config.from_mapping(...)`, then `Config.init_defaults()` and
`Config.validate()`.

## Sending events

```python
from sentryrelay.plugin import Plugin
from sentryrelay.types import SentryEvent

plugin = Plugin()
plugin.init(settings)
errors = plugin.serve()          # a queue.Queue that receives startup errors

event = SentryEvent.from_dict({
    "event_id": "fc6d8c0c43fc4630ad850ee518f1b9d0",
    "type": "event",
    "payload": '{"event_id":"fc6d8c0c43fc4630ad850ee518f1b9d0","dsn":""}\n...',
})
plugin.send_event(event)
plugin.send_batch([event])

plugin.stop(5.0)                 # raises TimeoutError if shutdown takes longer
```

`send_event` and `send_batch` only put events on the queue; delivery happens
in the background. They raise these errors:

- `PluginNotInitializedError` before `init`;
- `QueueFullError` when the queue is full;
- `QueueClosedError` after the queue has been stopped.

`send_batch` stops at the first event that cannot be queued.

Before each envelope is sent, every `"dsn": "..."` field in it is replaced
with the configured DSN. Unless compression is off, the body is
gzip-compressed. The request carries an `X-Sentry-Auth` header with the DSN's
public key.

Requests go out as follows:

- A 2xx response counts as a success.
- A 429 response, or an event whose category is already limited, is reported
  as rate limited. It counts neither as a success nor as a failure.
- Any other status counts as a failure, and its error reads
  `HTTP <status>: <body>`.

For tests, both `Plugin` and `HTTPTransport` take an
`http_transport=` argument. It accepts any `httpx.BaseTransport`, for
example `httpx.MockTransport`.

### The RPC facade

`Plugin.rpc()` returns an `RPC` object. It reports the outcome per event
instead of raising:

```python
rpc = plugin.rpc()
results = rpc.send_batch([event])   # list of SendResult, one per event
result = rpc.send_event(event)      # a single SendResult
print(result.to_dict())             # {"success": True, "event_id": "..."}
print(rpc.get_status())             # "queue", "retry" and "rate_limits" entries
```

Events may be passed either as `SentryEvent` objects or as mappings with
`event_id`, `type` and `payload`.

## Retries

The workers do not resend a failed event by themselves. `RetryManager` and
`EventQueue.enqueue_retry` are there to build retries on top of the queue:

- `RetryManager.should_retry(event, error)` returns `False` once an event has
  used up `max_attempts`. At that point it moves the event to the
  dead-letter queue if that queue is enabled; otherwise it counts the event
  as dropped.
- `RetryManager.schedule_retry(event, error)` counts an attempt and sets
  `event.next_retry`.
- `EventQueue.enqueue_retry(event)` hands the event to the retry scheduler.
  About once a second, the scheduler moves events whose `next_retry` has
  passed back onto the main queue.

`RetryManager.retry_stats()` reports the settings and the length of the
dead-letter queue. Durations in it read like `1s` or `5m0s`.

## Working with DSNs directly

```python
from sentryrelay.dsn import parse_dsn

dsn = parse_dsn("https://placeholder@o123.ingest.example.com/42")
dsn.envelope_endpoint_url()    # "https://o123.ingest.example.com/api/42/envelope/"
dsn.csp_report_endpoint_url()  # "https://o123.ingest.example.com/api/42/security/?sentry_key=placeholder"
dsn.org_id                     # 123
```

`parse_dsn` raises `InvalidDSNError` in these cases:

- the DSN has no scheme, host, user or path;
- the scheme is neither `http` nor `https`;
- the path has no project ID.

## Metrics

`Plugin.metrics_collectors()` returns the `MetricsCollector` in use.
`describe()` lists `MetricDescription`s, and `collect()` returns
`MetricSample`s. All names carry the `rr_sentry_transport_` prefix:

- `dead_letter_events_total`
- `dropped_events_total`
- `failed_events_total`
- `successful_events_total`
- `events_by_type_total` (labelled by `event_type`)

## What it does not do

- It has no command-line program. It is a library used from Python code.
- `RPC` is a plain Python object. No network server exposes it to other
  processes.
- Metrics are returned as Python objects. Nothing exports them to a
  monitoring system.
- The queue lives in memory only. Events still waiting in it when the relay
  stops are not delivered, and nothing is stored across restarts.
- The `proxy_auth` setting is read but not used.

## Tests

The test suite uses pytest, which comes with the `test` extra:

```
pip install "sentryrelay[test]"
```