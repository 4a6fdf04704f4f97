import sqlite3
import time
from pathlib import Path

import pytest

from footprint.core.analysis_cache import NullAnalysisCache, SqliteAnalysisCache, fingerprint
from footprint.core.config import AnalysisOptions, DeviceType, InteractionLevel, create_analysis_options
from footprint.core.errors import CacheError
from footprint.core.models import AnalysisResult, GreenHostingResult, ResourceTally, ResourceType, TypeTally


class Clock:
    def __init__(self, now: float = 1_700_000_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _result(url: str = "https://example.com/", options: AnalysisOptions | None = None) -> AnalysisResult:
    options = options or create_analysis_options()
    return AnalysisResult(
        url=url,
        timestamp="2024-01-01T00:00:00+00:00",
        options=options.to_dict(),
        duration_ms=1200,
        tally=ResourceTally(
            by_type={ResourceType.DOCUMENT: TypeTally(bytes=500, count=1), ResourceType.MEDIA: TypeTally(2000, 1)},
            total_bytes=2500,
            resource_count=2,
        ),
        green_hosting=GreenHostingResult(url=url, green=True, hosted_by="Green Host"),
        g_co2e=0.31,
        fingerprint=fingerprint(url, options),
    )


class TestFingerprint:
    def test_stable_and_short(self):
        options = create_analysis_options("default", "desktop")
        first = fingerprint("https://example.com/", options)
        assert first == fingerprint("https://example.com/", create_analysis_options("default", "desktop"))
        assert len(first) == 16

    def test_ignores_timeout_and_logging(self):
        base = create_analysis_options("default", "desktop")
        other = create_analysis_options("default", "desktop", timeout_ms=60_000, verbose_logging=False)
        assert fingerprint("https://example.com/", base) == fingerprint("https://example.com/", other)

    def test_relevant_options_change_key(self):
        url = "https://example.com/"
        keys = {
            fingerprint(url, create_analysis_options("default", "desktop")),
            fingerprint(url, create_analysis_options("thorough", "desktop")),
            fingerprint(url, create_analysis_options("default", "mobile")),
            fingerprint(url, AnalysisOptions(InteractionLevel.DEFAULT, DeviceType.DESKTOP, max_interactions=7)),
            fingerprint("https://example.org/", create_analysis_options("default", "desktop")),
        }
        assert len(keys) == 5


class TestSqliteAnalysisCache:
    def test_store_then_lookup(self, tmp_path: Path) -> None:
        clock = Clock()
        cache = SqliteAnalysisCache(db_path=str(tmp_path / "cache.db"), clock=clock)
        result = _result()

        cache.store(result)
        clock.now += 60
        hit = cache.lookup(result.url, result.fingerprint)

        assert hit is not None
        assert hit.cached is True
        assert hit.tally.total_bytes == 2500
        assert hit.tally[ResourceType.MEDIA].bytes == 2000
        assert hit.green_hosting.green is True
        assert hit.timestamp != result.timestamp

    def test_miss_for_other_fingerprint(self, tmp_path: Path) -> None:
        cache = SqliteAnalysisCache(db_path=str(tmp_path / "cache.db"))
        cache.store(_result())
        assert cache.lookup("https://example.com/", "0000000000000000") is None

    def test_ttl_expiry(self, tmp_path: Path) -> None:
        clock = Clock()
        cache = SqliteAnalysisCache(db_path=str(tmp_path / "cache.db"), ttl_hours=1, clock=clock)
        result = _result()
        cache.store(result)

        clock.now += 3601
        assert cache.lookup(result.url, result.fingerprint) is None

    def test_store_replaces_same_key(self, tmp_path: Path) -> None:
        cache = SqliteAnalysisCache(db_path=str(tmp_path / "cache.db"))
        cache.store(_result())
        cache.store(_result())
        assert cache.stats()["total_analyses"] == 1

    def test_stats_cleanup_and_recent(self, tmp_path: Path) -> None:
        clock = Clock()
        cache = SqliteAnalysisCache(db_path=str(tmp_path / "cache.db"), clock=clock)
        cache.store(_result("https://example.com/"))
        clock.now += 40 * 86400
        cache.store(_result("https://example.com/", create_analysis_options("thorough", "mobile")))
        cache.store(_result("https://example.org/"))

        stats = cache.stats()
        assert stats["total_analyses"] == 3
        assert stats["unique_urls"] == 2
        assert stats["oldest_analysis"] < stats["newest_analysis"]

        recent = cache.recent("https://example.com/", limit=5)
        assert [item.options["interaction_level"] for item in recent] == ["thorough", "default"]

        assert cache.cleanup(older_than_days=30) == 1
        assert cache.stats()["total_analyses"] == 2

    def test_disabled_cache_is_noop(self, tmp_path: Path) -> None:
        cache = SqliteAnalysisCache(db_path=str(tmp_path / "cache.db"), enabled=False)
        result = _result()
        cache.store(result)
        assert cache.lookup(result.url, result.fingerprint) is None
        assert cache.cleanup() == 0
        assert cache.recent(result.url) == []

    def test_refuses_result_without_fingerprint(self, tmp_path: Path) -> None:
        cache = SqliteAnalysisCache(db_path=str(tmp_path / "cache.db"))
        result = _result()
        result.fingerprint = ""
        with pytest.raises(CacheError):
            cache.store(result)

    def test_unreadable_row_raises_cache_error(self, tmp_path: Path) -> None:
        db_path = tmp_path / "cache.db"
        cache = SqliteAnalysisCache(db_path=str(db_path))
        key = fingerprint("https://example.com/", create_analysis_options())
        with sqlite3.connect(db_path) as conn:
            conn.execute(
                "INSERT INTO analyses(url, fingerprint, payload_json, created_at) VALUES (?, ?, ?, ?)",
                ("https://example.com/", key, '{"tally": {}}', time.time()),
            )
            conn.execute(
                "INSERT INTO analyses(url, fingerprint, payload_json, created_at) VALUES (?, ?, ?, ?)",
                ("https://example.com/", "truncated", '{"url": "https://exa', time.time()),
            )

        with pytest.raises(CacheError):
            cache.lookup("https://example.com/", key)
        with pytest.raises(CacheError):
            cache.lookup("https://example.com/", "truncated")
        with pytest.raises(CacheError):
            cache.recent("https://example.com/")


def test_null_cache() -> None:
    cache = NullAnalysisCache()
    cache.store(_result())
    assert cache.lookup("https://example.com/", "abc") is None
