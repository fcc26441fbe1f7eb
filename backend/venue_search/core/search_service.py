# venue_search/core/search_service.py
from typing import Any, Dict, List, Mapping, Optional

import logging
import math
import time

from backend.venue_search import config
from backend.venue_search.core.analytics import AnalyticsRecord, SearchAnalyticsService
from backend.venue_search.core.exceptions import QueryError
from backend.venue_search.core.geo import round_distance
from backend.venue_search.core.search_cache import SearchCache
from backend.venue_search.core.search_engine import BaseSearchEngine
from backend.venue_search.schemas.analytics import PopularQuery, SearchStats, TrendingLocation
from backend.venue_search.schemas.search import (
    FacetSummary,
    PaginationMeta,
    SearchMetadata,
    SearchQuery,
    SearchResponse,
    VenueSearchResult,
)
from backend.venue_search.utils.background import BackgroundTaskRunner

logger = logging.getLogger(__name__)

# Caller-settable filters echoed back in metadata.appliedFilters, in output order.
_APPLIED_FILTER_FIELDS = (
    ("text", "text"),
    ("city", "city"),
    ("min_capacity", "minCapacity"),
    ("max_capacity", "maxCapacity"),
    ("min_price", "minPrice"),
    ("max_price", "maxPrice"),
    ("amenities", "amenities"),
    ("min_rating", "minRating"),
    ("available_date", "availableDate"),
    ("sort_by", "sortBy"),
)


class SearchService:
    def __init__(
        self,
        search_engine: BaseSearchEngine,
        *,
        cache: Optional[SearchCache] = None,
        analytics: Optional[SearchAnalyticsService] = None,
        background: Optional[BackgroundTaskRunner] = None,
    ) -> None:
        self.search_engine = search_engine
        self.cache = cache if cache is not None and config.ENABLE_CACHE else None
        self.analytics = analytics
        self.background = background or BackgroundTaskRunner()
        self.cache_enabled = self.cache is not None and self.cache.enabled

    async def search(
        self,
        query: SearchQuery,
        *,
        user_id: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> SearchResponse:
        started = time.perf_counter()
        cache_key: Optional[str] = None

        if self.cache_enabled:
            cache_key = self.cache.build_key(query)
            cached = await self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Cache hit for key %s", cache_key)
                response = cached.model_copy(
                    update={"metadata": cached.metadata.model_copy(update={"cached": True})}
                )
                self._track(
                    query,
                    result_count=response.pagination.total,
                    query_time_ms=self._elapsed_ms(started),
                    cached=True,
                    user_id=user_id,
                    ip_address=ip_address,
                )
                return response

        try:
            records, total = await self.search_engine.search(query)
        except QueryError:
            raise
        except Exception as exc:
            logger.error("Search engine lookup failed: %s", exc)
            raise QueryError(f"Search failed: {exc}", operation="search") from exc

        query_time_ms = self._elapsed_ms(started)
        response = self._build_response(query, records, total, query_time_ms)

        if cache_key is not None:
            self.background.submit(self.cache.set(cache_key, response), name="search.cache.store")
        self._track(
            query,
            result_count=total,
            query_time_ms=query_time_ms,
            cached=False,
            user_id=user_id,
            ip_address=ip_address,
        )
        logger.info("Search completed with %d of %d venues in %dms", len(records), total, query_time_ms)
        return response

    def _track(
        self,
        query: SearchQuery,
        *,
        result_count: int,
        query_time_ms: int,
        cached: bool,
        user_id: Optional[str],
        ip_address: Optional[str],
    ) -> None:
        if self.analytics is None:
            return
        record = AnalyticsRecord.from_search(
            query,
            result_count=result_count,
            query_time_ms=query_time_ms,
            cached=cached,
            user_id=user_id,
            ip_address=ip_address,
        )
        self.background.submit(self.analytics.record(record), name="search.analytics.record")

    @staticmethod
    def _elapsed_ms(started: float) -> int:
        return int(round((time.perf_counter() - started) * 1000))

    def _build_response(
        self,
        query: SearchQuery,
        records: List[Dict[str, Any]],
        total: int,
        query_time_ms: int,
    ) -> SearchResponse:
        data = [self._transform_record(record) for record in records]
        pagination = PaginationMeta(
            total=total,
            page=query.page,
            limit=query.limit,
            total_pages=math.ceil(total / query.limit) if total else 0,
            has_next=query.page * query.limit < total,
            has_prev=query.page > 1,
        )
        metadata = SearchMetadata(
            query_time_ms=query_time_ms,
            cached=False,
            applied_filters=self.applied_filters(query),
        )
        return SearchResponse(data=data, pagination=pagination, metadata=metadata)

    @staticmethod
    def _transform_record(record: Mapping[str, Any]) -> VenueSearchResult:
        pricing = dict(record.get("pricing") or {})
        if "perPlate" not in pricing and record.get("price_per_plate") is not None:
            pricing["perPlate"] = record["price_per_plate"]
        return VenueSearchResult(
            id=str(record["id"]),
            name=record["name"],
            description=record.get("description"),
            city=record["city"],
            address=record.get("address"),
            capacity=record.get("capacity") or 0,
            pricing=pricing,
            amenities=dict(record.get("amenities") or {}),
            images=list(record.get("images") or []),
            rating=record.get("rating"),
            distance=round_distance(record.get("distance")),
            created_at=record["created_at"],
        )

    @staticmethod
    def applied_filters(query: SearchQuery) -> Dict[str, Any]:
        supplied = query.model_fields_set
        filters: Dict[str, Any] = {}
        for field, alias in _APPLIED_FILTER_FIELDS:
            value = getattr(query, field)
            if field not in supplied or value is None:
                continue
            if field == "sort_by":
                value = value.value
            elif field == "available_date":
                value = value.isoformat()
            filters[alias] = value
        if query.has_location:
            filters["location"] = {"lat": query.latitude, "lng": query.longitude}
            if query.radius_km is not None:
                filters["radiusKm"] = query.radius_km
        return filters

    async def facets(self) -> FacetSummary:
        try:
            summary = await self.search_engine.facets()
        except QueryError:
            raise
        except Exception as exc:
            logger.error("Facet aggregation failed: %s", exc)
            raise QueryError(f"Facet aggregation failed: {exc}", operation="facets") from exc
        return FacetSummary.model_validate(summary)

    async def suggestions(self, text: str, limit: int = 5) -> List[str]:
        needle = (text or "").strip().lower()
        if len(needle) < config.SUGGESTION_MIN_LENGTH or self.analytics is None:
            return []
        popular = await self.analytics.popular_queries(config.SUGGESTION_POOL_SIZE)
        return [item.query for item in popular if needle in item.query.lower()][: max(limit, 0)]

    async def popular_queries(self, limit: int = 10) -> List[PopularQuery]:
        if self.analytics is None:
            return []
        return await self.analytics.popular_queries(limit)

    async def trending_locations(self, limit: int = 10) -> List[TrendingLocation]:
        if self.analytics is None:
            return []
        return await self.analytics.trending_locations(limit)

    async def stats(self) -> SearchStats:
        if self.analytics is None:
            return SearchStats(total_searches=0, today_searches=0, avg_query_time_ms=0, cache_hit_rate=0)
        return await self.analytics.stats()

    async def invalidate_cache(self) -> int:
        """Drop every cached search response; called after any venue mutation."""

        if not self.cache_enabled:
            return 0
        return await self.cache.invalidate_namespace()

    def cache_available(self) -> bool:
        return self.cache_enabled and self.cache.is_available()


__all__ = ["SearchService"]
