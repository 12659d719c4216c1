"""HTTP delivery of envelopes to the Sentry envelope endpoint."""

from __future__ import annotations

import gzip
import logging
import re
from collections.abc import Callable
from datetime import datetime, timezone

import httpx

from sentryrelay.config import TransportConfig
from sentryrelay.dsn import DSN, InvalidDSNError, parse_dsn
from sentryrelay.metrics import MetricsCollector
from sentryrelay.rate_limiter import RateLimiter
from sentryrelay.retry import RetryManager
from sentryrelay.types import QueuedEvent, SendResult, SentryEvent

CLIENT_NAME = "roadrunner/1.0.0"
_DSN_FIELD = re.compile(r'"dsn"\s*:\s*"[^"]*"')


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _rfc3339(moment: datetime) -> str:
    return moment.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class TransportError(Exception):
    """Raised when the transport cannot be set up or a request cannot be built."""


class HTTPTransport:
    """Sends events to Sentry, honouring server-imposed rate limits."""

    def __init__(
        self,
        config: TransportConfig,
        dsn: str,
        metrics: MetricsCollector | None = None,
        logger: logging.Logger | None = None,
        *,
        http_transport: httpx.BaseTransport | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        try:
            parsed = parse_dsn(dsn)
        except InvalidDSNError as exc:
            raise TransportError(f"failed to parse DSN: {exc}") from exc
        try:
            parsed.validate()
        except InvalidDSNError as exc:
            raise TransportError(f"invalid DSN: {exc}") from exc

        proxy = None
        if config.proxy:
            try:
                proxy = httpx.Proxy(config.proxy)
            except (httpx.InvalidURL, ValueError) as exc:
                raise TransportError(f"invalid proxy URL: {exc}") from exc

        self.config = config
        self.dsn: DSN = parsed
        self.metrics = metrics
        self._logger = logger or logging.getLogger(__name__)
        self.rate_limiter = RateLimiter(self._logger, clock)
        self.retry_manager: RetryManager | None = None
        self._client = httpx.Client(
            timeout=httpx.Timeout(
                config.timeout or None, connect=config.connect_timeout or None
            ),
            verify=config.ssl_verify,
            proxy=proxy,
            limits=httpx.Limits(
                max_connections=None, max_keepalive_connections=100, keepalive_expiry=90.0
            ),
            transport=http_transport,
        )

    def __enter__(self) -> HTTPTransport:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def process_event(self, event: QueuedEvent) -> SendResult:
        """Send a queued event unless its category is rate limited."""
        sentry_event = event.event
        if self.rate_limiter.is_rate_limited(sentry_event.type):
            until = self.rate_limiter.disabled_until(sentry_event.type) or datetime.now(
                timezone.utc
            )
            self._logger.warning(
                "Event rate limited: event_id=%s type=%s disabled_until=%s",
                sentry_event.event_id,
                sentry_event.type,
                until.isoformat(),
            )
            return SendResult(
                success=False,
                event_id=sentry_event.event_id,
                rate_limit=True,
                error=f"rate limited until {_rfc3339(until)}",
            )
        return self._send_event(sentry_event)

    def _send_event(self, event: SentryEvent) -> SendResult:
        try:
            request = self.create_request(event)
        except TransportError as exc:
            self._logger.error(
                "Failed to create request: event_id=%s error=%s", event.event_id, exc
            )
            return SendResult(success=False, event_id=event.event_id, error=str(exc))

        try:
            response = self._client.send(request)
        except httpx.HTTPError as exc:
            self._logger.error("HTTP request failed: event_id=%s error=%s", event.event_id, exc)
            return SendResult(success=False, event_id=event.event_id, error=str(exc))

        try:
            body = response.text
        finally:
            response.close()

        headers = {key: response.headers.get_list(key) for key in response.headers.keys()}
        self.rate_limiter.handle_rate_limit_headers(headers)

        status = response.status_code
        if status == 429:
            return SendResult(
                success=False,
                event_id=event.event_id,
                rate_limit=True,
                error="rate limited by server",
            )

        if 200 <= status < 300:
            self._logger.debug(
                "Event sent successfully: event_id=%s status_code=%d", event.event_id, status
            )
            return SendResult(success=True, event_id=event.event_id)

        self._logger.error(
            "Event send failed: event_id=%s status_code=%d response=%s",
            event.event_id,
            status,
            body,
        )
        return SendResult(success=False, event_id=event.event_id, error=f"HTTP {status}: {body}")

    def create_request(self, event: SentryEvent) -> httpx.Request:
        """Build the POST request carrying the event's envelope."""
        envelope = self.process_payload(event.payload).encode("utf-8")
        headers = {
            "Content-Type": "application/x-sentry-envelope",
            "User-Agent": CLIENT_NAME,
            "X-Sentry-Auth": (
                f"Sentry sentry_version=7,sentry_client={CLIENT_NAME},"
                f"sentry_key={self.dsn.public_key}"
            ),
        }
        if self.config.compression:
            try:
                envelope = gzip.compress(envelope)
            except OSError as exc:
                raise TransportError(f"failed to compress payload: {exc}") from exc
            headers["Content-Encoding"] = "gzip"

        try:
            return self._client.build_request(
                "POST", self.dsn.envelope_url, content=envelope, headers=headers
            )
        except httpx.InvalidURL as exc:
            raise TransportError(f"failed to create request: {exc}") from exc

    def process_payload(self, payload: str) -> str:
        """Replace every ``"dsn": "..."`` value in the payload with the configured DSN."""
        replacement = f'"dsn":"{self.dsn.raw}"'
        return _DSN_FIELD.sub(lambda _match: replacement, payload)

    def close(self) -> None:
        """Release pooled connections."""
        self._client.close()