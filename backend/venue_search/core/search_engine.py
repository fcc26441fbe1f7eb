from __future__ import annotations

import json
import logging
import time
from datetime import datetime
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from backend.venue_search import config
from backend.venue_search.core.exceptions import QueryError
from backend.venue_search.core.geo import haversine_km
from backend.venue_search.core.query_builder import VenueSearchQueryBuilder, build_facets_query
from backend.venue_search.db.postgres import PostgresClient
from backend.venue_search.db.schema import VENUES_TABLE
from backend.venue_search.schemas.search import SearchQuery, SortBy, VenueStatus
from backend.venue_search.utils.observability import observe_query_duration

logger = logging.getLogger(__name__)

DEFAULT_PRICE_RANGE = (0.0, 5000.0)
DEFAULT_CAPACITY_RANGE = (0.0, 2000.0)


def _numeric_range(low: Any, high: Any, default: Tuple[float, float]) -> Dict[str, float]:
    if low is None or high is None:
        return {"min": default[0], "max": default[1]}
    return {"min": float(low), "max": float(high)}


def _histogram(entries: Any) -> Dict[str, int]:
    if isinstance(entries, str):
        entries = json.loads(entries)
    return {str(entry["name"]): int(entry["count"]) for entry in entries or []}


def _json_field(value: Any, default: Any) -> Any:
    if value is None:
        return default
    if isinstance(value, str):
        return json.loads(value)
    return value


class BaseSearchEngine:
    """Filtered, sorted, paginated access to the visible venue catalogue.

    `search` returns the page of venue records plus the total number of
    matches; `facets` summarises the whole visible catalogue and ignores any
    caller filters.
    """

    async def search(self, query: SearchQuery) -> Tuple[List[Dict[str, Any]], int]:
        raise NotImplementedError

    async def facets(self) -> Dict[str, Any]:
        raise NotImplementedError


class PostgresSearchEngine(BaseSearchEngine):
    def __init__(
        self,
        client: PostgresClient,
        *,
        table: str = VENUES_TABLE,
        amenity_limit: Optional[int] = None,
    ) -> None:
        self.client = client
        self.table = table
        self.amenity_limit = amenity_limit if amenity_limit is not None else config.FACET_AMENITY_LIMIT

    async def search(self, query: SearchQuery) -> Tuple[List[Dict[str, Any]], int]:
        builder = VenueSearchQueryBuilder(query, table=self.table)
        sql, params = builder.build()
        started = time.perf_counter()
        rows = await self.client.fetch(sql, params, operation="search")

        if rows:
            total = int(rows[0]["total_count"])
        elif query.offset > 0:
            # Past the last page: the window count is unavailable without rows.
            count_sql, count_params = builder.build_count()
            row = await self.client.fetchrow(count_sql, count_params, operation="count")
            total = int(row["total"]) if row else 0
        else:
            total = 0
        observe_query_duration("search", time.perf_counter() - started)

        records = [self._row_to_record(row) for row in rows]
        logger.debug("Search matched %d venues (page %d returned %d)", total, query.page, len(records))
        return records, total

    async def facets(self) -> Dict[str, Any]:
        sql, params = build_facets_query(amenity_limit=self.amenity_limit, table=self.table)
        started = time.perf_counter()
        row = await self.client.fetchrow(sql, params, operation="facets")
        observe_query_duration("facets", time.perf_counter() - started)
        if row is None:
            row = {}
        return {
            "cities": _histogram(row.get("cities")),
            "price_range": _numeric_range(row.get("min_price"), row.get("max_price"), DEFAULT_PRICE_RANGE),
            "capacity_range": _numeric_range(row.get("min_capacity"), row.get("max_capacity"), DEFAULT_CAPACITY_RANGE),
            "amenities": _histogram(row.get("amenities")),
        }

    @staticmethod
    def _row_to_record(row: Mapping[str, Any]) -> Dict[str, Any]:
        record = {
            "id": str(row["id"]),
            "name": row["name"],
            "description": row["description"],
            "city": row["city"],
            "address": row["address"],
            "capacity": row["capacity"],
            "price_per_plate": row["price_per_plate"],
            "pricing": _json_field(row["pricing"], {}),
            "amenities": _json_field(row["amenities"], {}),
            "images": list(row["images"] or []),
            "rating": row["rating"],
            "created_at": row["created_at"],
            "distance": row["distance"],
        }
        return record


class InMemorySearchEngine(BaseSearchEngine):
    """Dictionary-backed engine with the same filter and ordering rules as SQL.

    Used for local development without Postgres and throughout the tests.
    """

    def __init__(self, venues: Iterable[Mapping[str, Any]] = (), *, amenity_limit: Optional[int] = None) -> None:
        self._venues: List[Dict[str, Any]] = [dict(venue) for venue in venues]
        self.amenity_limit = amenity_limit if amenity_limit is not None else config.FACET_AMENITY_LIMIT
        self.fail_with: Optional[BaseException] = None

    @classmethod
    def from_json_file(cls, path: str, *, amenity_limit: Optional[int] = None) -> "InMemorySearchEngine":
        """Load a JSON list of venue rows, parsing `created_at`/`deleted_at` timestamps."""

        with open(path, "r", encoding="utf-8") as handle:
            rows = json.load(handle)
        if not isinstance(rows, list):
            raise ValueError(f"Venue fixture {path} must contain a JSON list")

        venues = []
        for row in rows:
            venue = dict(row)
            for field in ("created_at", "deleted_at"):
                if isinstance(venue.get(field), str):
                    venue[field] = datetime.fromisoformat(venue[field].replace("Z", "+00:00"))
            venues.append(venue)
        logger.info("Loaded %d venues from %s", len(venues), path)
        return cls(venues, amenity_limit=amenity_limit)

    def _check_failure(self, operation: str) -> None:
        if self.fail_with is not None:
            raise QueryError(f"In-memory {operation} failed: {self.fail_with}", operation=operation) from self.fail_with

    @staticmethod
    def _is_visible(venue: Mapping[str, Any]) -> bool:
        status = venue.get("status", VenueStatus.PUBLISHED.value)
        if isinstance(status, VenueStatus):
            status = status.value
        return status == VenueStatus.PUBLISHED.value and venue.get("deleted_at") is None

    def _visible(self) -> List[Dict[str, Any]]:
        return [venue for venue in self._venues if self._is_visible(venue)]

    @staticmethod
    def _text_rank(venue: Mapping[str, Any], tokens: List[str]) -> Optional[int]:
        haystack = f"{venue.get('name') or ''} {venue.get('description') or ''}".lower()
        if not all(token in haystack for token in tokens):
            return None
        return sum(haystack.count(token) for token in tokens)

    @staticmethod
    def _bounded(value: Any, low: Optional[float], high: Optional[float]) -> bool:
        if low is None and high is None:
            return True
        if value is None:
            return False
        if low is not None and value < low:
            return False
        if high is not None and value > high:
            return False
        return True

    def _matches(self, venue: Mapping[str, Any], query: SearchQuery) -> bool:
        if query.city and query.city.lower() not in str(venue.get("city") or "").lower():
            return False
        if not self._bounded(venue.get("capacity"), query.min_capacity, query.max_capacity):
            return False
        if not self._bounded(venue.get("price_per_plate"), query.min_price, query.max_price):
            return False
        if query.amenities:
            offered = venue.get("amenities") or {}
            if not all(offered.get(name) is True for name in query.amenities):
                return False
        if query.min_rating is not None and not self._bounded(venue.get("rating"), query.min_rating, None):
            return False
        return True

    @staticmethod
    def _sort_nulls_last(
        items: List[Dict[str, Any]],
        getter: Callable[[Dict[str, Any]], Any],
        descending: bool,
    ) -> List[Dict[str, Any]]:
        present = [item for item in items if getter(item) is not None]
        missing = [item for item in items if getter(item) is None]
        present.sort(key=getter, reverse=descending)
        return present + missing

    def _order(self, items: List[Dict[str, Any]], query: SearchQuery, ranked: bool) -> List[Dict[str, Any]]:
        sort_by = query.sort_by
        if sort_by is SortBy.PRICE_LOW:
            keys = [("price_per_plate", False)]
        elif sort_by is SortBy.PRICE_HIGH:
            keys = [("price_per_plate", True)]
        elif sort_by is SortBy.RATING:
            keys = [("rating", True), ("created_at", True)]
        elif sort_by is SortBy.DISTANCE and query.has_location:
            keys = [("distance", False)]
        elif sort_by is SortBy.POPULARITY:
            keys = [("rating", True), ("capacity", True)]
        else:
            keys = [("created_at", True)]
        if ranked:
            keys.append(("_rank", True))
        keys.append(("id", False))

        # Stable sorts applied from the least significant key upwards.
        for field, descending in reversed(keys):
            items = self._sort_nulls_last(items, lambda item, f=field: item.get(f), descending)
        return items

    async def search(self, query: SearchQuery) -> Tuple[List[Dict[str, Any]], int]:
        self._check_failure("search")
        started = time.perf_counter()
        tokens = query.text.lower().split() if query.text else []

        candidates = self._visible()

        matched: List[Dict[str, Any]] = []
        for venue in candidates:
            if not self._matches(venue, query):
                continue
            record = dict(venue)
            record["id"] = str(record.get("id"))
            if tokens:
                rank = self._text_rank(venue, tokens)
                if rank is None:
                    continue
                record["_rank"] = rank
            distance = None
            if query.has_location:
                lat, lon = venue.get("latitude"), venue.get("longitude")
                if lat is not None and lon is not None:
                    distance = haversine_km(query.latitude, query.longitude, lat, lon)
                if query.radius_km is not None and (distance is None or distance > query.radius_km):
                    continue
            record["distance"] = distance
            matched.append(record)

        ordered = self._order(matched, query, ranked=bool(tokens))
        page = ordered[query.offset : query.offset + query.limit]
        for record in page:
            record.pop("_rank", None)
        observe_query_duration("search", time.perf_counter() - started)
        return page, len(ordered)

    async def facets(self) -> Dict[str, Any]:
        self._check_failure("facets")
        visible = self._visible()

        cities: Dict[str, int] = {}
        amenities: Dict[str, int] = {}
        prices: List[float] = []
        capacities: List[float] = []
        for venue in visible:
            city = venue.get("city")
            if city is not None:
                cities[city] = cities.get(city, 0) + 1
            if venue.get("price_per_plate") is not None:
                prices.append(float(venue["price_per_plate"]))
            if venue.get("capacity") is not None:
                capacities.append(float(venue["capacity"]))
            for name, offered in (venue.get("amenities") or {}).items():
                if offered is True:
                    amenities[name] = amenities.get(name, 0) + 1

        top_cities = sorted(cities.items(), key=lambda item: (-item[1], item[0]))
        top_amenities = sorted(amenities.items(), key=lambda item: (-item[1], item[0]))[: self.amenity_limit]
        return {
            "cities": dict(top_cities),
            "price_range": _numeric_range(min(prices, default=None), max(prices, default=None), DEFAULT_PRICE_RANGE),
            "capacity_range": _numeric_range(
                min(capacities, default=None), max(capacities, default=None), DEFAULT_CAPACITY_RANGE
            ),
            "amenities": dict(top_amenities),
        }


__all__ = [
    "BaseSearchEngine",
    "DEFAULT_CAPACITY_RANGE",
    "DEFAULT_PRICE_RANGE",
    "InMemorySearchEngine",
    "PostgresSearchEngine",
]
