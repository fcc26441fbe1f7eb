"""Response models for search analytics endpoints."""
from __future__ import annotations

from backend.venue_search.schemas.search import CamelModel


class PopularQuery(CamelModel):
    query: str
    search_count: int
    avg_results: int


class TrendingLocation(CamelModel):
    city: str
    search_count: int


class SearchStats(CamelModel):
    total_searches: int
    today_searches: int
    avg_query_time_ms: float
    cache_hit_rate: float


__all__ = ["PopularQuery", "TrendingLocation", "SearchStats"]
