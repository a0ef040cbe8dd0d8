"""Per-source sliding-window rate limiter.

Each source keeps the timestamps of its admitted requests from the trailing hour.
Windows are trimmed lazily on access; nothing runs in the background.

The prune/count/append sequence runs under one lock and contains no await, so
two concurrent callers can never both observe "under limit" and both be admitted.
"""

from __future__ import annotations

import logging
import threading
from datetime import datetime, timedelta, timezone
from typing import Optional

from .errors import RateLimitExceeded

logger = logging.getLogger(__name__)

WINDOW = timedelta(hours=1)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return _utc_now()
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


class RateLimiter:
    def __init__(self) -> None:
        self._requests: dict[str, list[datetime]] = {}
        self._lock = threading.Lock()

    def _prune(self, source: str, now: datetime) -> list[datetime]:
        cutoff = now - WINDOW
        window = [t for t in self._requests.get(source, []) if t > cutoff]
        self._requests[source] = window
        return window

    def admit(self, source: str, limit_per_hour: int, *, now: Optional[datetime] = None) -> None:
        """Record one request for `source`, or raise RateLimitExceeded."""
        now = _as_utc(now)
        with self._lock:
            window = self._prune(source, now)
            if len(window) >= limit_per_hour:
                raise RateLimitExceeded(source, limit_per_hour)
            window.append(now)

    def try_admit(self, source: str, limit_per_hour: int, *, now: Optional[datetime] = None) -> bool:
        try:
            self.admit(source, limit_per_hour, now=now)
        except RateLimitExceeded as e:
            logger.debug(str(e))
            return False
        return True

    def remaining(self, source: str, limit_per_hour: int, *, now: Optional[datetime] = None) -> int:
        now = _as_utc(now)
        with self._lock:
            window = self._prune(source, now)
            return max(0, limit_per_hour - len(window))

    def reset(self, source: Optional[str] = None) -> None:
        with self._lock:
            if source is None:
                self._requests.clear()
            else:
                self._requests.pop(source, None)
