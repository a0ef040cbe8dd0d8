"""URL validation and host extraction.

We keep canonicalization conservative: lowercase + punycode the host, strip
default ports, drop the fragment. Anything without a parseable host is rejected
with `InvalidURLError`, since no provider can do anything useful with it.
"""

from __future__ import annotations

import ipaddress
import re
from dataclasses import dataclass
from urllib.parse import urlparse, urlunparse

from .errors import InvalidURLError

_ALLOWED_SCHEMES = ("http", "https")
_HOST_RE = re.compile(r"^[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?(?:\.[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)*$")


@dataclass(frozen=True)
class NormalizedURL:
    input: str
    canonical: str
    host: str


def _to_punycode(host: str) -> str:
    """Convert unicode hostname to punycode (idna)."""
    try:
        return host.encode("idna").decode("ascii")
    except UnicodeError as e:
        raise ValueError(f"bad hostname: {e}") from e


def _strip_default_port(scheme: str, port: int | None) -> str:
    if port is None:
        return ""
    if (scheme == "http" and port == 80) or (scheme == "https" and port == 443):
        return ""
    return f":{port}"


def _is_ip(host: str) -> bool:
    try:
        ipaddress.ip_address(host)
        return True
    except ValueError:
        return False


def normalize_url(value: str) -> NormalizedURL:
    if not isinstance(value, str) or not value.strip():
        raise InvalidURLError(str(value), "empty URL")

    raw = value.strip()
    url = raw if "://" in raw else "http://" + raw

    parsed = urlparse(url)
    scheme = parsed.scheme.lower()
    if scheme not in _ALLOWED_SCHEMES:
        raise InvalidURLError(value, f"unsupported scheme {scheme!r}")

    try:
        port = parsed.port
    except ValueError as e:
        raise InvalidURLError(value, str(e)) from e

    host = (parsed.hostname or "").rstrip(".")
    if not host:
        raise InvalidURLError(value)

    try:
        host = _to_punycode(host.lower())
    except ValueError as e:
        raise InvalidURLError(value, str(e)) from e

    if not _is_ip(host) and not _HOST_RE.match(host):
        raise InvalidURLError(value, f"invalid host {host!r}")

    netloc = f"[{host}]" if ":" in host else host
    netloc += _strip_default_port(scheme, port)
    canonical = urlunparse((scheme, netloc, parsed.path or "/", "", parsed.query or "", ""))
    return NormalizedURL(input=value, canonical=canonical, host=host)


def extract_host(url: str) -> str:
    return normalize_url(url).host
