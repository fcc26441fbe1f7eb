from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

import pytest

from backend.venue_search.core import analytics as analytics_module
from backend.venue_search.core.analytics import (
    AnalyticsRecord,
    BaseAnalyticsStore,
    InMemoryAnalyticsStore,
    SearchAnalyticsService,
)
from backend.venue_search.schemas.search import SearchQuery, SortBy

NOW = datetime(2024, 6, 10, 12, 0, tzinfo=timezone.utc)


def _record(query: str | None, city: str | None, *, age: timedelta, **overrides) -> AnalyticsRecord:
    values = {
        "query": query,
        "filters": {},
        "result_count": 0,
        "query_time_ms": 0,
        "cached": False,
        "city": city,
        "created_at": NOW - age,
    }
    values.update(overrides)
    return AnalyticsRecord(**values)


async def _seeded_service() -> SearchAnalyticsService:
    store = InMemoryAnalyticsStore()
    for record in (
        _record("garden hall", "Mumbai", age=timedelta(0), result_count=4, query_time_ms=100),
        _record("garden hall", "Mumbai", age=timedelta(0), result_count=6, query_time_ms=20, cached=True),
        _record("garden hall", "Pune", age=timedelta(days=3), result_count=5, query_time_ms=60),
        _record("old query", "Delhi", age=timedelta(days=8), result_count=1, query_time_ms=40),
        _record(None, "Pune", age=timedelta(days=2), result_count=9, query_time_ms=30),
    ):
        await store.insert(record)
    return SearchAnalyticsService(store, clock=lambda: NOW)


@pytest.mark.asyncio
async def test_popular_queries_cover_last_seven_days() -> None:
    service = await _seeded_service()

    popular = await service.popular_queries(10)

    assert [item.model_dump(by_alias=True) for item in popular] == [
        {"query": "garden hall", "searchCount": 3, "avgResults": 5}
    ]


@pytest.mark.asyncio
async def test_trending_locations_cover_last_day() -> None:
    service = await _seeded_service()

    trending = await service.trending_locations(10)

    assert [(item.city, item.search_count) for item in trending] == [("Mumbai", 2)]


@pytest.mark.asyncio
async def test_stats_aggregate_every_record() -> None:
    service = await _seeded_service()

    stats = await service.stats()

    assert stats.total_searches == 5
    assert stats.today_searches == 2
    assert stats.avg_query_time_ms == pytest.approx(50.0)
    assert stats.cache_hit_rate == pytest.approx(20.0)


@pytest.mark.asyncio
async def test_stats_on_empty_store_are_zero() -> None:
    stats = await SearchAnalyticsService(InMemoryAnalyticsStore(), clock=lambda: NOW).stats()

    assert stats.model_dump(by_alias=True) == {
        "totalSearches": 0,
        "todaySearches": 0,
        "avgQueryTimeMs": 0,
        "cacheHitRate": 0,
    }


@pytest.mark.asyncio
async def test_popular_queries_respect_limit() -> None:
    store = InMemoryAnalyticsStore()
    for text, repeats in (("lawn", 3), ("hall", 2), ("rooftop", 1)):
        for _ in range(repeats):
            await store.insert(_record(text, None, age=timedelta(hours=1)))
    service = SearchAnalyticsService(store, clock=lambda: NOW)

    assert [item.query for item in await service.popular_queries(2)] == ["lawn", "hall"]


@pytest.mark.asyncio
async def test_record_failure_is_absorbed(monkeypatch: pytest.MonkeyPatch) -> None:
    class _BrokenStore(BaseAnalyticsStore):
        async def insert(self, record: AnalyticsRecord) -> None:
            raise RuntimeError("disk full")

    failures: list[int] = []
    monkeypatch.setattr(analytics_module, "record_analytics_failure", lambda: failures.append(1))
    service = SearchAnalyticsService(_BrokenStore())

    assert await service.record(_record("hall", None, age=timedelta(0))) is False
    assert failures == [1]


@pytest.mark.asyncio
async def test_record_failure_log_omits_caller_identity(caplog: pytest.LogCaptureFixture) -> None:
    class _BrokenStore(BaseAnalyticsStore):
        async def insert(self, record: AnalyticsRecord) -> None:
            raise RuntimeError("disk full")

    service = SearchAnalyticsService(_BrokenStore())
    record = _record("hall", None, age=timedelta(0), user_id="user-9", ip_address="10.1.2.3", result_count=4)

    with caplog.at_level(logging.WARNING, logger=analytics_module.__name__):
        await service.record(record)

    [entry] = [item for item in caplog.records if item.name == analytics_module.__name__]
    assert entry.json_fields == {
        "query": "hall",
        "resultCount": 4,
        "queryTimeMs": 0,
        "cached": False,
        "error": "disk full",
    }
    assert "10.1.2.3" not in entry.getMessage()


@pytest.mark.asyncio
async def test_disabled_service_skips_store() -> None:
    store = InMemoryAnalyticsStore()
    service = SearchAnalyticsService(store, enabled=False)

    assert await service.record(_record("hall", None, age=timedelta(0))) is False
    assert store.records == []


def test_record_from_search_captures_query_context() -> None:
    query = SearchQuery(
        text="rooftop",
        city="Goa",
        latitude=15.29,
        longitude=74.12,
        amenities=["pool"],
        sort_by=SortBy.RATING,
    )

    record = AnalyticsRecord.from_search(
        query,
        result_count=3,
        query_time_ms=42,
        cached=True,
        user_id="user-1",
        ip_address="10.0.0.1",
        created_at=NOW,
    )

    assert record.query == "rooftop"
    assert record.city == "Goa"
    assert (record.latitude, record.longitude) == (15.29, 74.12)
    assert record.sort_by == "RATING"
    assert record.filters["amenities"] == ["pool"]
    assert record.cached is True
    assert record.user_id == "user-1"
    assert record.created_at == NOW
