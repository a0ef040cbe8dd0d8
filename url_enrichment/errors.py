"""Exception types for url-enrichment.

Only configuration errors and malformed input ever reach callers of the engine.
Rate-limit denials are raised by the limiter but absorbed by the engine.
"""

from __future__ import annotations


class EnrichmentError(Exception):
    """Base class for all url-enrichment errors."""


class ConfigError(EnrichmentError):
    """Invalid configuration or an unusable cache store at startup."""


class InvalidURLError(EnrichmentError, ValueError):
    """The URL has no parseable host."""

    def __init__(self, url: str, reason: str = "no parseable host"):
        self.url = url
        self.reason = reason
        super().__init__(f"Invalid URL {url!r}: {reason}")


class RateLimitExceeded(EnrichmentError):
    def __init__(self, source: str, limit_per_hour: int):
        self.source = source
        self.limit_per_hour = limit_per_hour
        super().__init__(f"Rate limit exceeded for {source} ({limit_per_hour}/hour)")
