"""Smoke test for the search response cache layer.

This script runs in-process against the in-memory engine and cache adapter so
no external services are needed. It validates that:
- First search executes against the engine
- Second identical search is served from the cache (no extra engine call)
- A namespace sweep empties the cache again

Run with:
  python backend/scripts/smoke_cache.py
"""
from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Tuple

# Ensure repository root is on sys.path so `import backend.*` works when running this file directly
REPO_ROOT = Path(__file__).resolve().parents[2]
if str(REPO_ROOT) not in sys.path:
    sys.path.append(str(REPO_ROOT))

# Ensure cache is enabled before importing config
os.environ.setdefault("ENABLE_CACHE", "true")

from backend.venue_search.cache import InMemoryCacheAdapter
from backend.venue_search.core.analytics import InMemoryAnalyticsStore, SearchAnalyticsService
from backend.venue_search.core.search_cache import SearchCache
from backend.venue_search.core.search_engine import InMemorySearchEngine
from backend.venue_search.core.search_service import SearchService
from backend.venue_search.schemas.search import SearchQuery
from backend.venue_search.utils.background import BackgroundTaskRunner


class _CountingEngine(InMemorySearchEngine):
    def __init__(self, venues: List[Dict[str, Any]]) -> None:
        super().__init__(venues)
        self.calls: int = 0

    async def search(self, query: SearchQuery) -> Tuple[List[Dict[str, Any]], int]:
        self.calls += 1
        return await super().search(query)


def _sample_venues() -> List[Dict[str, Any]]:
    created = datetime(2024, 1, 1, tzinfo=timezone.utc)
    return [
        {
            "id": "venue-1",
            "name": "Grand Palace Hall",
            "description": "Banquet hall with garden lawn",
            "city": "Mumbai",
            "capacity": 500,
            "price_per_plate": 1200.0,
            "amenities": {"parking": True, "ac": True},
            "rating": 4.6,
            "latitude": 19.076,
            "longitude": 72.8777,
            "status": "PUBLISHED",
            "created_at": created,
        }
    ]


async def _run() -> int:
    engine = _CountingEngine(_sample_venues())
    runner = BackgroundTaskRunner()
    service = SearchService(
        search_engine=engine,
        cache=SearchCache(InMemoryCacheAdapter()),
        analytics=SearchAnalyticsService(InMemoryAnalyticsStore()),
        background=runner,
    )
    query = SearchQuery(city="Mumbai", min_capacity=100)

    first = await service.search(query)
    await runner.drain(timeout=5)
    print("First search cached:", first.metadata.cached, "total:", first.pagination.total)

    second = await service.search(query)
    await runner.drain(timeout=5)
    print("Second search cached:", second.metadata.cached)
    print("Engine calls:", engine.calls)

    removed = await service.invalidate_cache()
    print("Invalidated entries:", removed)

    if engine.calls == 1 and second.metadata.cached and removed == 1:
        print("OK: Second call came from cache and the sweep cleared it")
        return 0
    print("WARN: Cache may not be enabled; expected 1 engine call and 1 removed entry")
    return 1


def main() -> int:
    return asyncio.run(_run())


if __name__ == "__main__":
    raise SystemExit(main())
