"""Plugin configuration: transport, retry and queue settings."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "μs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")


def _parse_duration(value: Any, key: str) -> float:
    """Return a duration in seconds from a number or a string such as ``1m30s``."""
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a duration, got a boolean")
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        raise ValueError(f"{key}: expected a duration, got {type(value).__name__}")

    text = value.strip()
    sign = 1.0
    if text and text[0] in "+-":
        sign = -1.0 if text[0] == "-" else 1.0
        text = text[1:]
    if text == "0":
        return 0.0
    if not text:
        raise ValueError(f"{key}: invalid duration {value!r}")

    total = 0.0
    pos = 0
    while pos < len(text):
        match = _DURATION_PART.match(text, pos)
        if match is None:
            raise ValueError(f"{key}: invalid duration {value!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return sign * total


def _parse_int(value: Any, key: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected an integer, got a boolean")
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            pass
    raise ValueError(f"{key}: expected an integer, got {value!r}")


def _parse_float(value: Any, key: str) -> float:
    if isinstance(value, bool):
        raise ValueError(f"{key}: expected a number, got a boolean")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            pass
    raise ValueError(f"{key}: expected a number, got {value!r}")


def _parse_bool(value: Any, key: str) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in ("true", "1", "yes", "on"):
            return True
        if lowered in ("false", "0", "no", "off", ""):
            return False
    raise ValueError(f"{key}: expected a boolean, got {value!r}")


def _parse_str(value: Any, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ValueError(f"{key}: expected a string, got {value!r}")


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    section = data.get(key)
    if section is None:
        return {}
    if not isinstance(section, Mapping):
        raise ValueError(f"{key}: expected a mapping, got {section!r}")
    return section


@dataclass
class TransportConfig:
    """HTTP transport settings; durations are in seconds."""

    timeout: float = 0.0
    connect_timeout: float = 0.0
    compression: bool = False
    ssl_verify: bool = False
    proxy: str = ""
    proxy_auth: str = ""


@dataclass
class RetryConfig:
    """Retry mechanism settings; durations are in seconds."""

    max_attempts: int = 0
    initial_backoff: float = 0.0
    backoff_multiplier: float = 0.0
    max_backoff: float = 0.0
    dead_letter_queue: bool = False


@dataclass
class QueueConfig:
    """Event queue settings; durations are in seconds."""

    buffer_size: int = 0
    workers: int = 0
    batch_size: int = 0
    batch_timeout: float = 0.0


@dataclass
class Config:
    """Complete plugin configuration."""

    dsn: str = ""
    transport: TransportConfig = field(default_factory=TransportConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)
    queue: QueueConfig = field(default_factory=QueueConfig)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any] | None) -> Config:
        """Build a configuration from a nested mapping; missing keys stay zero."""
        if data is None:
            data = {}
        if not isinstance(data, Mapping):
            raise ValueError(f"configuration must be a mapping, got {data!r}")

        transport = _section(data, "transport")
        retry = _section(data, "retry")
        queue = _section(data, "queue")

        return cls(
            dsn=_parse_str(data.get("dsn", ""), "dsn"),
            transport=TransportConfig(
                timeout=_parse_duration(transport.get("timeout", 0), "transport.timeout"),
                connect_timeout=_parse_duration(
                    transport.get("connect_timeout", 0), "transport.connect_timeout"
                ),
                compression=_parse_bool(
                    transport.get("compression", False), "transport.compression"
                ),
                ssl_verify=_parse_bool(
                    transport.get("ssl_verify", False), "transport.ssl_verify"
                ),
                proxy=_parse_str(transport.get("proxy", ""), "transport.proxy"),
                proxy_auth=_parse_str(
                    transport.get("proxy_auth", ""), "transport.proxy_auth"
                ),
            ),
            retry=RetryConfig(
                max_attempts=_parse_int(retry.get("max_attempts", 0), "retry.max_attempts"),
                initial_backoff=_parse_duration(
                    retry.get("initial_backoff", 0), "retry.initial_backoff"
                ),
                backoff_multiplier=_parse_float(
                    retry.get("backoff_multiplier", 0), "retry.backoff_multiplier"
                ),
                max_backoff=_parse_duration(retry.get("max_backoff", 0), "retry.max_backoff"),
                dead_letter_queue=_parse_bool(
                    retry.get("dead_letter_queue", False), "retry.dead_letter_queue"
                ),
            ),
            queue=QueueConfig(
                buffer_size=_parse_int(queue.get("buffer_size", 0), "queue.buffer_size"),
                workers=_parse_int(queue.get("workers", 0), "queue.workers"),
                batch_size=_parse_int(queue.get("batch_size", 0), "queue.batch_size"),
                batch_timeout=_parse_duration(
                    queue.get("batch_timeout", 0), "queue.batch_timeout"
                ),
            ),
        )

    def init_defaults(self) -> None:
        """Fill zero-valued settings with their defaults."""
        transport = self.transport
        if transport.timeout == 0:
            transport.timeout = 30.0
        if transport.connect_timeout == 0:
            transport.connect_timeout = 10.0
        if not transport.compression:
            transport.compression = True
        if not transport.ssl_verify:
            transport.ssl_verify = True

        retry = self.retry
        if retry.max_attempts == 0:
            retry.max_attempts = 3
        if retry.initial_backoff == 0:
            retry.initial_backoff = 1.0
        if retry.backoff_multiplier == 0:
            retry.backoff_multiplier = 2.0
        if retry.max_backoff == 0:
            retry.max_backoff = 300.0

        queue = self.queue
        if queue.buffer_size == 0:
            queue.buffer_size = 1000
        if queue.workers == 0:
            queue.workers = 1
        if queue.batch_size == 0:
            queue.batch_size = 10
        if queue.batch_timeout == 0:
            queue.batch_timeout = 5.0

    def validate(self) -> None:
        """Correct out-of-range settings when a DSN is configured."""
        if not self.dsn:
            return
        if self.queue.buffer_size <= 0:
            self.queue.buffer_size = 1000
        if self.queue.workers <= 0:
            self.queue.workers = 1
        if self.retry.max_attempts < 0:
            self.retry.max_attempts = 0