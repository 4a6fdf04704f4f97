from __future__ import annotations

import hashlib
import json
import logging
import sqlite3
import threading
import time
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable

from footprint.core.config import AnalysisOptions
from footprint.core.errors import CacheError
from footprint.core.models import AnalysisResult

logger = logging.getLogger("footprint.cache")


def fingerprint(url: str, options: AnalysisOptions) -> str:
    payload = {"url": url, "options": options.fingerprint_fields()}
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=True)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def _iso(ts: float | None) -> str | None:
    if ts is None:
        return None
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat()


class AnalysisCache:
    """Store/retrieve boundary consulted before and after every analysis run."""

    enabled: bool = False

    def lookup(self, url: str, key: str) -> AnalysisResult | None:
        raise NotImplementedError

    def store(self, result: AnalysisResult) -> None:
        raise NotImplementedError


class NullAnalysisCache(AnalysisCache):
    def lookup(self, url: str, key: str) -> AnalysisResult | None:
        return None

    def store(self, result: AnalysisResult) -> None:
        return None


class SqliteAnalysisCache(AnalysisCache):
    """SQLite-backed analysis results, one row per ``(url, fingerprint)``.

    Rows older than ``ttl_hours`` are never returned by :meth:`lookup` but stay
    on disk until :meth:`cleanup` removes them.
    """

    def __init__(
        self,
        db_path: str = "/tmp/footprint-cache/analyses.db",
        ttl_hours: int = 240,
        enabled: bool = True,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._db_path = db_path
        self._ttl_hours = ttl_hours
        self.enabled = enabled
        self._clock = clock
        self._lock = threading.RLock()
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._initialize()
        logger.info(f"[Cache] Initialized at {db_path} (enabled={enabled}, ttl={ttl_hours}h)")

    @property
    def ttl_hours(self) -> int:
        return self._ttl_hours

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        return conn

    def _initialize(self) -> None:
        try:
            with self._lock, self._connect() as conn:
                conn.executescript(
                    """
                    CREATE TABLE IF NOT EXISTS analyses (
                        url TEXT NOT NULL,
                        fingerprint TEXT NOT NULL,
                        payload_json TEXT NOT NULL,
                        created_at REAL NOT NULL,
                        PRIMARY KEY (url, fingerprint)
                    );
                    CREATE INDEX IF NOT EXISTS idx_analyses_url_created ON analyses(url, created_at);
                    CREATE INDEX IF NOT EXISTS idx_analyses_created ON analyses(created_at);
                    """
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise CacheError(f"Failed to initialize analysis cache at {self._db_path}: {exc}") from exc

    def _decode(self, payload_json: str, url: str) -> AnalysisResult:
        try:
            return AnalysisResult.from_dict(json.loads(payload_json))
        except (ValueError, KeyError, TypeError) as exc:
            raise CacheError(f"Unreadable cached analysis for {url}: {exc!r}") from exc

    def lookup(self, url: str, key: str) -> AnalysisResult | None:
        if not self.enabled:
            logger.debug(f"[Cache] Disabled, skipping lookup for {url}")
            return None
        min_ts = self._clock() - self._ttl_hours * 3600
        try:
            with self._lock, self._connect() as conn:
                row = conn.execute(
                    "SELECT payload_json, created_at FROM analyses WHERE url = ? AND fingerprint = ? AND created_at >= ?",
                    (url, key, min_ts),
                ).fetchone()
        except sqlite3.Error as exc:
            raise CacheError(f"Cache lookup failed for {url}: {exc}") from exc

        if not row:
            logger.debug(f"[Cache] Miss for {url} ({key})")
            return None

        cached = self._decode(row[0], url)
        age_s = int(self._clock() - float(row[1]))
        logger.info(f"[Cache] Hit for {url} ({key}), age {age_s}s")
        return replace(cached, timestamp=_iso(self._clock()) or cached.timestamp, cached=True)

    def store(self, result: AnalysisResult) -> None:
        if not self.enabled:
            return
        if not result.fingerprint:
            raise CacheError(f"Refusing to cache result for {result.url} without a fingerprint")
        payload = result.to_dict()
        payload["cached"] = False
        try:
            with self._lock, self._connect() as conn:
                conn.execute(
                    """
                    INSERT INTO analyses(url, fingerprint, payload_json, created_at)
                    VALUES (?, ?, ?, ?)
                    ON CONFLICT(url, fingerprint)
                    DO UPDATE SET payload_json=excluded.payload_json, created_at=excluded.created_at
                    """,
                    (result.url, result.fingerprint, json.dumps(payload, sort_keys=True), self._clock()),
                )
                conn.commit()
        except sqlite3.Error as exc:
            raise CacheError(f"Cache store failed for {result.url}: {exc}") from exc
        logger.info(f"[Cache] Stored {result.url} ({result.fingerprint}), {result.tally.resource_count} resources")

    def stats(self) -> dict[str, Any]:
        try:
            with self._lock, self._connect() as conn:
                row = conn.execute(
                    "SELECT COUNT(*), COUNT(DISTINCT url), MIN(created_at), MAX(created_at) FROM analyses"
                ).fetchone()
        except sqlite3.Error as exc:
            raise CacheError(f"Cache stats failed: {exc}") from exc
        total, unique_urls, oldest, newest = row
        return {
            "enabled": self.enabled,
            "ttl_hours": self._ttl_hours,
            "total_analyses": int(total or 0),
            "unique_urls": int(unique_urls or 0),
            "oldest_analysis": _iso(oldest),
            "newest_analysis": _iso(newest),
        }

    def cleanup(self, older_than_days: int = 30) -> int:
        if not self.enabled:
            logger.debug("[Cache] Disabled, skipping cleanup")
            return 0
        cutoff = self._clock() - older_than_days * 86400
        try:
            with self._lock, self._connect() as conn:
                cursor = conn.execute("DELETE FROM analyses WHERE created_at < ?", (cutoff,))
                conn.commit()
                deleted = cursor.rowcount
        except sqlite3.Error as exc:
            raise CacheError(f"Cache cleanup failed: {exc}") from exc
        if deleted:
            logger.info(f"[Cache] Cleanup removed {deleted} analyses older than {older_than_days} days")
        return deleted

    def recent(self, url: str, limit: int = 10) -> list[AnalysisResult]:
        if not self.enabled:
            return []
        try:
            with self._lock, self._connect() as conn:
                rows = conn.execute(
                    "SELECT payload_json FROM analyses WHERE url = ? ORDER BY created_at DESC LIMIT ?",
                    (url, int(limit)),
                ).fetchall()
        except sqlite3.Error as exc:
            raise CacheError(f"Recent analyses lookup failed for {url}: {exc}") from exc
        return [self._decode(row[0], url) for row in rows]
