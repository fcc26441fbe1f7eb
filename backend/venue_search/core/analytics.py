"""Append-only search analytics and the aggregates read from them."""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from backend.venue_search.db.postgres import PostgresClient
from backend.venue_search.db.schema import ANALYTICS_TABLE
from backend.venue_search.schemas.analytics import PopularQuery, SearchStats, TrendingLocation
from backend.venue_search.schemas.search import SearchQuery
from backend.venue_search.utils.cache_utils import normalize_search_query
from backend.venue_search.utils.observability import record_analytics_failure

logger = logging.getLogger(__name__)

POPULAR_WINDOW = timedelta(days=7)
TRENDING_WINDOW = timedelta(hours=24)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class AnalyticsRecord:
    query: Optional[str]
    filters: Dict[str, Any]
    result_count: int
    query_time_ms: int
    cached: bool
    sort_by: Optional[str] = None
    city: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    user_id: Optional[str] = None
    ip_address: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)

    @classmethod
    def from_search(
        cls,
        query: SearchQuery,
        *,
        result_count: int,
        query_time_ms: int,
        cached: bool,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> "AnalyticsRecord":
        return cls(
            query=query.text,
            filters=normalize_search_query(query),
            result_count=result_count,
            query_time_ms=query_time_ms,
            cached=cached,
            sort_by=query.sort_by.value,
            city=query.city,
            latitude=query.latitude,
            longitude=query.longitude,
            user_id=user_id,
            ip_address=ip_address,
            created_at=created_at or _utcnow(),
        )


class BaseAnalyticsStore:
    async def insert(self, record: AnalyticsRecord) -> None:
        raise NotImplementedError

    async def popular_queries(self, since: datetime, limit: int) -> List[PopularQuery]:
        raise NotImplementedError

    async def trending_locations(self, since: datetime, limit: int) -> List[TrendingLocation]:
        raise NotImplementedError

    async def stats(self, today_start: datetime) -> SearchStats:
        raise NotImplementedError


class PostgresAnalyticsStore(BaseAnalyticsStore):
    def __init__(self, client: PostgresClient, *, table: str = ANALYTICS_TABLE) -> None:
        self.client = client
        self.table = table

    async def insert(self, record: AnalyticsRecord) -> None:
        await self.client.execute(
            f"""
            INSERT INTO {self.table} (
                query, filters, user_id, ip_address, result_count, city,
                latitude, longitude, sort_by, query_time_ms, cached, created_at
            ) VALUES ($1, $2::jsonb, $3, $4, $5, $6, $7, $8, $9, $10, $11, $12)
            """,
            (
                record.query,
                json.dumps(record.filters, separators=(",", ":")),
                record.user_id,
                record.ip_address,
                record.result_count,
                record.city,
                record.latitude,
                record.longitude,
                record.sort_by,
                record.query_time_ms,
                record.cached,
                record.created_at,
            ),
            operation="analytics.insert",
        )

    async def popular_queries(self, since: datetime, limit: int) -> List[PopularQuery]:
        rows = await self.client.fetch(
            f"""
            SELECT query, count(*) AS search_count, avg(result_count) AS avg_results
            FROM {self.table}
            WHERE created_at >= $1 AND query IS NOT NULL
            GROUP BY query
            ORDER BY search_count DESC, query ASC
            LIMIT $2
            """,
            (since, limit),
            operation="analytics.popular",
        )
        return [
            PopularQuery(
                query=row["query"],
                search_count=int(row["search_count"]),
                avg_results=round(float(row["avg_results"] or 0)),
            )
            for row in rows
        ]

    async def trending_locations(self, since: datetime, limit: int) -> List[TrendingLocation]:
        rows = await self.client.fetch(
            f"""
            SELECT city, count(*) AS search_count
            FROM {self.table}
            WHERE created_at >= $1 AND city IS NOT NULL
            GROUP BY city
            ORDER BY search_count DESC, city ASC
            LIMIT $2
            """,
            (since, limit),
            operation="analytics.trending",
        )
        return [TrendingLocation(city=row["city"], search_count=int(row["search_count"])) for row in rows]

    async def stats(self, today_start: datetime) -> SearchStats:
        row = await self.client.fetchrow(
            f"""
            SELECT
                count(*) AS total,
                count(*) FILTER (WHERE created_at >= $1) AS today,
                coalesce(avg(query_time_ms), 0) AS avg_query_time_ms,
                coalesce(avg(CASE WHEN cached THEN 1.0 ELSE 0.0 END), 0) AS cached_ratio
            FROM {self.table}
            """,
            (today_start,),
            operation="analytics.stats",
        )
        if row is None:
            return SearchStats(total_searches=0, today_searches=0, avg_query_time_ms=0, cache_hit_rate=0)
        return SearchStats(
            total_searches=int(row["total"]),
            today_searches=int(row["today"]),
            avg_query_time_ms=float(row["avg_query_time_ms"]),
            cache_hit_rate=float(row["cached_ratio"]) * 100,
        )


class InMemoryAnalyticsStore(BaseAnalyticsStore):
    def __init__(self) -> None:
        self.records: List[AnalyticsRecord] = []
        self._lock = asyncio.Lock()

    async def insert(self, record: AnalyticsRecord) -> None:
        async with self._lock:
            self.records.append(record)

    async def _since(self, since: datetime) -> List[AnalyticsRecord]:
        async with self._lock:
            return [record for record in self.records if record.created_at >= since]

    async def popular_queries(self, since: datetime, limit: int) -> List[PopularQuery]:
        groups: Dict[str, List[int]] = {}
        for record in await self._since(since):
            if record.query is None:
                continue
            groups.setdefault(record.query, []).append(record.result_count)
        ranked = sorted(groups.items(), key=lambda item: (-len(item[1]), item[0]))[:limit]
        return [
            PopularQuery(query=text, search_count=len(counts), avg_results=round(sum(counts) / len(counts)))
            for text, counts in ranked
        ]

    async def trending_locations(self, since: datetime, limit: int) -> List[TrendingLocation]:
        counts: Dict[str, int] = {}
        for record in await self._since(since):
            if record.city is None:
                continue
            counts[record.city] = counts.get(record.city, 0) + 1
        ranked = sorted(counts.items(), key=lambda item: (-item[1], item[0]))[:limit]
        return [TrendingLocation(city=city, search_count=count) for city, count in ranked]

    async def stats(self, today_start: datetime) -> SearchStats:
        async with self._lock:
            records = list(self.records)
        if not records:
            return SearchStats(total_searches=0, today_searches=0, avg_query_time_ms=0, cache_hit_rate=0)
        cached = sum(1 for record in records if record.cached)
        return SearchStats(
            total_searches=len(records),
            today_searches=sum(1 for record in records if record.created_at >= today_start),
            avg_query_time_ms=sum(record.query_time_ms for record in records) / len(records),
            cache_hit_rate=cached / len(records) * 100,
        )


class SearchAnalyticsService:
    """Records searches without ever failing the caller and serves the windows.

    Popular queries look back seven days, trending locations one day, and
    "today" starts at local midnight of the server clock.
    """

    def __init__(
        self,
        store: BaseAnalyticsStore,
        *,
        clock: Optional[Callable[[], datetime]] = None,
        enabled: bool = True,
    ) -> None:
        self.store = store
        self.clock = clock or _utcnow
        self.enabled = enabled

    async def record(self, record: AnalyticsRecord) -> bool:
        if not self.enabled:
            return False
        try:
            await self.store.insert(record)
        except Exception as exc:
            record_analytics_failure()
            logger.warning(
                "Analytics tracking failed: %s",
                exc,
                extra={
                    "json_fields": {
                        "query": record.query,
                        "resultCount": record.result_count,
                        "queryTimeMs": record.query_time_ms,
                        "cached": record.cached,
                        "error": str(exc),
                    }
                },
            )
            return False
        return True

    async def popular_queries(self, limit: int = 10) -> List[PopularQuery]:
        return await self.store.popular_queries(self.clock() - POPULAR_WINDOW, limit)

    async def trending_locations(self, limit: int = 10) -> List[TrendingLocation]:
        return await self.store.trending_locations(self.clock() - TRENDING_WINDOW, limit)

    async def stats(self) -> SearchStats:
        local_now = self.clock().astimezone()
        today_start = local_now.replace(hour=0, minute=0, second=0, microsecond=0)
        return await self.store.stats(today_start)


__all__ = [
    "AnalyticsRecord",
    "BaseAnalyticsStore",
    "InMemoryAnalyticsStore",
    "PostgresAnalyticsStore",
    "SearchAnalyticsService",
]
