"""Parsing of Sentry DSNs and the endpoint URLs derived from them."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from urllib.parse import unquote, urlsplit

_ORG_ID = re.compile(r"^o(\d+)\.")


class InvalidDSNError(ValueError):
    """Raised when a DSN cannot be parsed or is incomplete."""


def _hostname(host_port: str) -> str:
    if host_port.startswith("["):
        end = host_port.find("]")
        return host_port[1:end] if end != -1 else host_port[1:]
    head, sep, _ = host_port.rpartition(":")
    return head if sep else host_port


@dataclass
class DSN:
    """A parsed DSN with its computed envelope and CSP report URLs."""

    raw: str
    scheme: str
    public_key: str
    host: str
    port: int
    path: str
    project_id: str
    org_id: int | None = None
    envelope_url: str = field(init=False)
    csp_url: str = field(init=False)

    def __post_init__(self) -> None:
        self.envelope_url = self.envelope_endpoint_url()
        self.csp_url = self.csp_report_endpoint_url()

    def base_endpoint_url(self) -> str:
        """Return the base API URL, including the project ID."""
        url = f"{self.scheme}://{self.host}"
        if (self.scheme == "http" and self.port != 80) or (
            self.scheme == "https" and self.port != 443
        ):
            url += f":{self.port}"
        if self.path and self.path != "/":
            url += self.path.removesuffix("/")
        return url + f"/api/{self.project_id}"

    def envelope_endpoint_url(self) -> str:
        """Return the envelope API URL."""
        return self.base_endpoint_url() + "/envelope/"

    def csp_report_endpoint_url(self) -> str:
        """Return the CSP report URL."""
        return self.base_endpoint_url() + "/security/?sentry_key=" + self.public_key

    def validate(self) -> None:
        """Raise InvalidDSNError if a required component is missing."""
        if not self.public_key:
            raise InvalidDSNError("DSN missing public key")
        if not self.project_id:
            raise InvalidDSNError("DSN missing project ID")
        if not self.host:
            raise InvalidDSNError("DSN missing host")
        if self.scheme not in ("http", "https"):
            raise InvalidDSNError("DSN scheme must be http or https")


def parse_dsn(dsn_str: str) -> DSN:
    """Parse a DSN string such as ``https://key@host/project``."""
    if not dsn_str:
        raise InvalidDSNError("DSN is empty")

    try:
        parts = urlsplit(dsn_str)
        explicit_port = parts.port
    except ValueError as exc:
        raise InvalidDSNError(f'the "{dsn_str}" DSN is invalid: {exc}') from exc

    incomplete = f'the "{dsn_str}" DSN must contain a scheme, a host, a user and a path component'
    host_port = parts.netloc.rpartition("@")[2]
    path = unquote(parts.path)
    username = unquote(parts.username) if parts.username else ""

    if not parts.scheme or not host_port or not path or not username:
        raise InvalidDSNError(incomplete)

    if parts.scheme not in ("http", "https"):
        raise InvalidDSNError(
            f'the scheme of the "{dsn_str}" DSN must be either "http" or "https"'
        )

    port = 443 if parts.scheme == "https" else 80
    if explicit_port is not None:
        port = explicit_port

    segments = path.strip("/").split("/")
    project_id = segments[-1]
    if not project_id:
        raise InvalidDSNError(f'the "{dsn_str}" DSN path must contain a project ID')

    endpoint_path = "/" + "/".join(segments[:-1]) if len(segments) > 1 else "/"
    if path.endswith("/") and not endpoint_path.endswith("/"):
        endpoint_path += "/"

    hostname = _hostname(host_port)
    org_id = None
    match = _ORG_ID.match(hostname)
    if match:
        org_id = int(match.group(1))

    return DSN(
        raw=dsn_str,
        scheme=parts.scheme,
        public_key=username,
        host=hostname,
        port=port,
        path=endpoint_path,
        project_id=project_id,
        org_id=org_id,
    )