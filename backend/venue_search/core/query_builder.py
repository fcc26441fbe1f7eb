"""Parameterised SQL for venue search and facet queries.

All user-supplied values travel as `$n` parameters; only column names and
fixed fragments are interpolated into the statement text.
"""
from __future__ import annotations

import json
from typing import Any, List, Optional, Tuple

from backend.venue_search.core.geo import haversine_sql
from backend.venue_search.db.schema import VENUES_TABLE
from backend.venue_search.schemas.search import SearchQuery, SortBy, VenueStatus

RESULT_COLUMNS = (
    "id",
    "name",
    "description",
    "city",
    "address",
    "capacity",
    "price_per_plate",
    "pricing",
    "amenities",
    "images",
    "rating",
    "created_at",
)

TEXT_SEARCH_CONFIG = "english"


def escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class _Params:
    def __init__(self) -> None:
        self.values: List[Any] = []

    def add(self, value: Any) -> str:
        self.values.append(value)
        return f"${len(self.values)}"


class VenueSearchQueryBuilder:
    def __init__(
        self,
        query: SearchQuery,
        *,
        table: str = VENUES_TABLE,
        status: VenueStatus = VenueStatus.PUBLISHED,
    ) -> None:
        self.query = query
        self.table = table
        self.status = status

    def _distance_expr(self, params: _Params) -> Optional[str]:
        if not self.query.has_location:
            return None
        lat = params.add(self.query.latitude)
        lon = params.add(self.query.longitude)
        return haversine_sql("latitude", "longitude", f"{lat}::double precision", f"{lon}::double precision")

    def _where(self, params: _Params, distance: Optional[str]) -> Tuple[List[str], Optional[str]]:
        query = self.query
        conditions = [f"status = {params.add(self.status.value)}", "deleted_at IS NULL"]
        tsquery: Optional[str] = None

        if query.text:
            tsquery = f"websearch_to_tsquery('{TEXT_SEARCH_CONFIG}', {params.add(query.text)})"
            conditions.append(f"search_vector @@ {tsquery}")
        if query.city:
            conditions.append(f"city ILIKE {params.add('%' + escape_like(query.city) + '%')}")
        if query.min_capacity is not None:
            conditions.append(f"capacity >= {params.add(query.min_capacity)}")
        if query.max_capacity is not None:
            conditions.append(f"capacity <= {params.add(query.max_capacity)}")
        if query.min_price is not None:
            conditions.append(f"price_per_plate >= {params.add(float(query.min_price))}")
        if query.max_price is not None:
            conditions.append(f"price_per_plate <= {params.add(float(query.max_price))}")
        if query.amenities:
            required = json.dumps({name: True for name in sorted(set(query.amenities))})
            conditions.append(f"amenities @> {params.add(required)}::jsonb")
        if query.min_rating is not None:
            conditions.append(f"rating >= {params.add(float(query.min_rating))}")
        if distance is not None and query.radius_km is not None:
            conditions.append(f"{distance} <= {params.add(float(query.radius_km))}")
        return conditions, tsquery

    def _order_by(self, has_distance: bool, rank: Optional[str]) -> str:
        sort_by = self.query.sort_by
        if sort_by is SortBy.PRICE_LOW:
            fields = ["price_per_plate ASC NULLS LAST"]
        elif sort_by is SortBy.PRICE_HIGH:
            fields = ["price_per_plate DESC NULLS LAST"]
        elif sort_by is SortBy.RATING:
            fields = ["rating DESC NULLS LAST", "created_at DESC"]
        elif sort_by is SortBy.DISTANCE and has_distance:
            fields = ["distance ASC NULLS LAST"]
        elif sort_by is SortBy.POPULARITY:
            fields = ["rating DESC NULLS LAST", "capacity DESC"]
        else:
            fields = ["created_at DESC"]
        if rank is not None:
            fields.append(f"{rank} DESC")
        fields.append("id ASC")
        return ", ".join(fields)

    def build(self) -> Tuple[str, List[Any]]:
        """Page of matching venues, each row carrying the unpaginated total."""

        params = _Params()
        distance = self._distance_expr(params)
        conditions, tsquery = self._where(params, distance)
        rank = f"ts_rank_cd(search_vector, {tsquery})" if tsquery else None

        columns = list(RESULT_COLUMNS)
        columns.append(f"{distance} AS distance" if distance else "NULL::double precision AS distance")
        columns.append("count(*) OVER () AS total_count")

        sql = (
            f"SELECT {', '.join(columns)} FROM {self.table}"
            f" WHERE {' AND '.join(conditions)}"
            f" ORDER BY {self._order_by(distance is not None, rank)}"
            f" LIMIT {params.add(self.query.limit)} OFFSET {params.add(self.query.offset)}"
        )
        return sql, params.values

    def build_count(self) -> Tuple[str, List[Any]]:
        params = _Params()
        distance = self._distance_expr(params) if self.query.has_radius else None
        conditions, _ = self._where(params, distance)
        sql = f"SELECT count(*) AS total FROM {self.table} WHERE {' AND '.join(conditions)}"
        return sql, params.values


def build_facets_query(
    *,
    amenity_limit: int,
    table: str = VENUES_TABLE,
    status: VenueStatus = VenueStatus.PUBLISHED,
) -> Tuple[str, List[Any]]:
    params = _Params()
    status_param = params.add(status.value)
    limit_param = params.add(max(amenity_limit, 0))
    sql = f"""
    WITH visible AS (
        SELECT city, capacity, price_per_plate, amenities
        FROM {table}
        WHERE status = {status_param} AND deleted_at IS NULL
    )
    SELECT
        (
            SELECT coalesce(json_agg(json_build_object('name', c.city, 'count', c.n) ORDER BY c.n DESC, c.city ASC), '[]'::json)
            FROM (SELECT city, count(*) AS n FROM visible GROUP BY city) AS c
        ) AS cities,
        (SELECT min(price_per_plate) FROM visible) AS min_price,
        (SELECT max(price_per_plate) FROM visible) AS max_price,
        (SELECT min(capacity) FROM visible) AS min_capacity,
        (SELECT max(capacity) FROM visible) AS max_capacity,
        (
            SELECT coalesce(json_agg(json_build_object('name', a.name, 'count', a.n) ORDER BY a.n DESC, a.name ASC), '[]'::json)
            FROM (
                SELECT e.key AS name, count(*) AS n
                FROM visible, jsonb_each(visible.amenities) AS e
                WHERE e.value = 'true'::jsonb
                GROUP BY e.key
                ORDER BY n DESC, e.key ASC
                LIMIT {limit_param}
            ) AS a
        ) AS amenities
    """
    return sql, params.values


__all__ = ["RESULT_COLUMNS", "VenueSearchQueryBuilder", "build_facets_query", "escape_like"]
