"""SQLite cache for enrichment results.

Goal: avoid re-running providers (and spending their quota) for URLs enriched recently.

This cache is intentionally simple:
- sha256(url) -> JSON payload + created_at
- TTL handled at read time; stale rows stay until overwritten or pruned
- every read/write opens its own connection, so calls from worker threads are independent

Read and write failures never propagate: a failed read is a miss and a failed
write is logged and dropped. Only opening the store at startup is fatal.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import sqlite3
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

from .errors import ConfigError
from .models import EnrichedResult

logger = logging.getLogger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS enrichment_cache (
        url_hash TEXT PRIMARY KEY,
        url TEXT NOT NULL,
        payload TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    "CREATE INDEX IF NOT EXISTS idx_enrichment_cache_created_at ON enrichment_cache(created_at)",
)


def default_cache_path() -> str:
    base = os.getenv("XDG_CACHE_HOME") or os.path.expanduser("~/.cache")
    return os.path.join(base, "url-enrichment", "cache.sqlite")


def _ensure_parent_dir(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def hash_url(url: str) -> str:
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def parse_ttl(ttl: str) -> int:
    """Parse TTL strings like: 3600, 10m, 24h, 7d."""
    s = ttl.strip().lower()
    if s.isdigit():
        return int(s)

    units = {"s": 1, "m": 60, "h": 3600, "d": 86400}
    unit = s[-1:] if s else ""
    if unit not in units:
        raise ValueError(f"Invalid TTL unit: {ttl}")
    try:
        num = int(s[:-1])
    except ValueError as e:
        raise ValueError(f"Invalid TTL: {ttl}") from e
    return num * units[unit]


def _utc(now: Optional[datetime]) -> datetime:
    if now is None:
        return datetime.now(timezone.utc)
    if now.tzinfo is None:
        return now.replace(tzinfo=timezone.utc)
    return now.astimezone(timezone.utc)


def _stamp(dt: datetime) -> str:
    # Fixed-width so created_at sorts and compares as text.
    return dt.isoformat(timespec="microseconds")


@dataclass(frozen=True)
class CacheStats:
    path: str
    rows: int
    oldest: Optional[datetime] = None
    newest: Optional[datetime] = None

    def to_dict(self) -> dict:
        return {
            "path": self.path,
            "rows": self.rows,
            "oldest": self.oldest.isoformat() if self.oldest else None,
            "newest": self.newest.isoformat() if self.newest else None,
        }


@dataclass
class ResultCache:
    path: str
    ttl_hours: int = 168

    def __post_init__(self) -> None:
        try:
            _ensure_parent_dir(self.path)
            with self._connect() as con:
                self._create_schema(con)
        except (OSError, sqlite3.Error) as e:
            raise ConfigError(f"Cache store unavailable at {self.path}: {e}") from e

    @property
    def ttl(self) -> timedelta:
        return timedelta(hours=self.ttl_hours)

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.path)

    @staticmethod
    def _create_schema(con: sqlite3.Connection) -> None:
        for stmt in _SCHEMA:
            con.execute(stmt)

    def get(self, url: str, *, now: Optional[datetime] = None) -> Optional[EnrichedResult]:
        now = _utc(now)
        try:
            with self._connect() as con:
                row = con.execute(
                    "SELECT payload, created_at FROM enrichment_cache WHERE url_hash = ?",
                    (hash_url(url),),
                ).fetchone()
        except sqlite3.Error as e:
            logger.warning(f"Cache read failed for {url}: {e}")
            return None

        if not row:
            logger.debug(f"Cache miss: {url}")
            return None

        payload, created_at = row
        try:
            created = _utc(datetime.fromisoformat(created_at))
            if now - created >= self.ttl:
                logger.debug(f"Cache entry expired: {url}")
                return None
            return EnrichedResult.from_dict(json.loads(payload))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning(f"Corrupt cache record for {url}: {e}")
            return None

    def set(self, url: str, result: EnrichedResult, *, now: Optional[datetime] = None) -> None:
        now = _utc(now)
        try:
            payload = json.dumps(result.to_dict(), ensure_ascii=False)
            with self._connect() as con:
                con.execute(
                    """
                    INSERT INTO enrichment_cache (url_hash, url, payload, created_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(url_hash) DO UPDATE SET
                        url=excluded.url,
                        payload=excluded.payload,
                        created_at=excluded.created_at
                    """,
                    (hash_url(url), url, payload, _stamp(now)),
                )
                con.commit()
        except (TypeError, ValueError, sqlite3.Error) as e:
            logger.warning(f"Cache write failed for {url}: {e}")

    # Administrative operations: these propagate errors to the operator.

    def stats(self) -> CacheStats:
        with self._connect() as con:
            rows, oldest, newest = con.execute(
                "SELECT COUNT(*), MIN(created_at), MAX(created_at) FROM enrichment_cache"
            ).fetchone()
        return CacheStats(
            path=self.path,
            rows=int(rows),
            oldest=datetime.fromisoformat(oldest) if oldest else None,
            newest=datetime.fromisoformat(newest) if newest else None,
        )

    def reset(self) -> None:
        with self._connect() as con:
            con.execute("DROP TABLE IF EXISTS enrichment_cache")
            self._create_schema(con)
            con.commit()
        logger.info(f"Cache reset: {self.path}")

    def prune_expired(self, *, now: Optional[datetime] = None, older_than: Optional[timedelta] = None) -> int:
        """Delete rows older than `older_than` (default: the TTL). Returns the count."""
        cutoff = _utc(now) - (older_than if older_than is not None else self.ttl)
        with self._connect() as con:
            cur = con.execute(
                "DELETE FROM enrichment_cache WHERE created_at <= ?",
                (_stamp(cutoff),),
            )
            con.commit()
            deleted = cur.rowcount
        logger.info(f"Pruned {deleted} expired cache entries")
        return deleted
