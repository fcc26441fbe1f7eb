from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List

import pytest

from backend.venue_search.core.exceptions import QueryError
from backend.venue_search.core.geo import haversine_km, round_distance
from backend.venue_search.core.search_engine import InMemorySearchEngine
from backend.venue_search.schemas.search import SearchQuery, SortBy

MUMBAI = (19.0760, 72.8777)


async def _ids(engine: InMemorySearchEngine, **filters: Any) -> List[str]:
    records, _ = await engine.search(SearchQuery(**filters))
    return [record["id"] for record in records]


def test_haversine_same_point_is_zero() -> None:
    assert round_distance(haversine_km(*MUMBAI, *MUMBAI)) == 0.0


def test_haversine_matches_known_distance() -> None:
    # Mumbai to Pune is roughly 120 km as the crow flies.
    assert 115 < haversine_km(19.0760, 72.8777, 18.5204, 73.8567) < 125


@pytest.mark.asyncio
async def test_only_published_undeleted_venues_are_searchable(catalogue: List[Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(catalogue)

    records, total = await engine.search(SearchQuery())

    assert total == 3
    assert {record["id"] for record in records} == {"a", "b", "c"}


@pytest.mark.asyncio
async def test_city_is_case_insensitive_substring(catalogue: List[Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(catalogue)
    assert await _ids(engine, city="mumbai") == ["a", "c"]


@pytest.mark.asyncio
async def test_text_requires_every_token(catalogue: List[Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(catalogue)

    assert await _ids(engine, text="garden") == ["a"]
    assert await _ids(engine, text="convention hall") == ["c"]
    assert await _ids(engine, text="garden river") == []


@pytest.mark.asyncio
async def test_numeric_bounds_are_inclusive(catalogue: List[Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(catalogue)

    assert await _ids(engine, min_capacity=200, max_capacity=500) == ["a", "b"]
    assert await _ids(engine, min_price=800, max_price=1200) == ["a", "b"]
    assert await _ids(engine, min_rating=4.6) == ["b"]


@pytest.mark.asyncio
async def test_amenities_are_conjunctive(catalogue: List[Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(catalogue)

    assert await _ids(engine, amenities=["parking"]) == ["a", "b"]
    assert await _ids(engine, amenities=["parking", "ac"]) == ["a"]
    assert await _ids(engine, amenities=["valet"]) == []


@pytest.mark.asyncio
async def test_radius_filter_around_a_point(venue_factory: Callable[..., Dict[str, Any]]) -> None:
    origin = venue_factory(id="origin", latitude=MUMBAI[0], longitude=MUMBAI[1])
    # 0.0899 degrees of latitude is just under 10 km.
    ten_km = venue_factory(id="ten-km", latitude=MUMBAI[0] + 0.0899, longitude=MUMBAI[1])
    no_coords = venue_factory(id="no-coords")
    engine = InMemorySearchEngine([origin, ten_km, no_coords])

    records, _ = await engine.search(SearchQuery(latitude=MUMBAI[0], longitude=MUMBAI[1], radius_km=5))
    assert [record["id"] for record in records] == ["origin"]
    assert records[0]["distance"] == pytest.approx(0.0)

    wide = await _ids(engine, latitude=MUMBAI[0], longitude=MUMBAI[1], radius_km=15, sort_by=SortBy.DISTANCE)
    assert wide == ["origin", "ten-km"]


@pytest.mark.asyncio
async def test_distance_present_only_with_coordinates(catalogue: List[Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(catalogue)

    records, _ = await engine.search(SearchQuery())
    assert all(record["distance"] is None for record in records)

    records, total = await engine.search(SearchQuery(latitude=MUMBAI[0], longitude=MUMBAI[1]))
    assert total == 3
    assert all(record["distance"] is not None for record in records)


@pytest.mark.asyncio
async def test_sort_modes(catalogue: List[Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(catalogue)

    assert await _ids(engine) == ["a", "b", "c"]
    assert await _ids(engine, sort_by=SortBy.PRICE_LOW) == ["b", "a", "c"]
    assert await _ids(engine, sort_by=SortBy.PRICE_HIGH) == ["c", "a", "b"]
    assert await _ids(engine, sort_by=SortBy.RATING) == ["b", "a", "c"]
    assert await _ids(engine, sort_by=SortBy.POPULARITY) == ["b", "a", "c"]
    assert await _ids(engine, sort_by=SortBy.DISTANCE) == ["a", "b", "c"]
    assert await _ids(engine, sort_by=SortBy.DISTANCE, latitude=MUMBAI[0], longitude=MUMBAI[1]) == ["a", "c", "b"]


@pytest.mark.asyncio
async def test_ties_break_on_id(venue_factory: Callable[..., Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(
        [
            venue_factory(id="v3", price_per_plate=500.0),
            venue_factory(id="v1", price_per_plate=500.0),
            venue_factory(id="v2", price_per_plate=500.0),
        ]
    )

    assert await _ids(engine, sort_by=SortBy.PRICE_LOW) == ["v1", "v2", "v3"]
    assert await _ids(engine, sort_by=SortBy.PRICE_HIGH) == ["v1", "v2", "v3"]


@pytest.mark.asyncio
async def test_pagination_windows(catalogue: List[Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(catalogue)

    first, total = await engine.search(SearchQuery(limit=2, page=1))
    second, _ = await engine.search(SearchQuery(limit=2, page=2))
    beyond, beyond_total = await engine.search(SearchQuery(limit=2, page=5))

    assert total == 3
    assert [record["id"] for record in first] == ["a", "b"]
    assert [record["id"] for record in second] == ["c"]
    assert beyond == []
    assert beyond_total == 3


@pytest.mark.asyncio
async def test_facets_cover_visible_catalogue(catalogue: List[Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(catalogue)

    facets = await engine.facets()

    assert facets["cities"] == {"Mumbai": 1, "Navi Mumbai": 1, "Pune": 1}
    assert facets["price_range"] == {"min": 800.0, "max": 2000.0}
    assert facets["capacity_range"] == {"min": 200.0, "max": 1000.0}
    assert facets["amenities"] == {"ac": 2, "parking": 2}


@pytest.mark.asyncio
async def test_facets_limit_amenities(venue_factory: Callable[..., Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(
        [
            venue_factory(id="1", amenities={"wifi": True, "stage": True, "bar": True}),
            venue_factory(id="2", amenities={"wifi": True, "stage": True}),
            venue_factory(id="3", amenities={"wifi": True}),
        ],
        amenity_limit=2,
    )

    assert (await engine.facets())["amenities"] == {"wifi": 3, "stage": 2}


@pytest.mark.asyncio
async def test_facets_on_empty_store_use_defaults() -> None:
    facets = await InMemorySearchEngine().facets()

    assert facets == {
        "cities": {},
        "price_range": {"min": 0.0, "max": 5000.0},
        "capacity_range": {"min": 0.0, "max": 2000.0},
        "amenities": {},
    }


@pytest.mark.asyncio
async def test_store_failure_raises_query_error(catalogue: List[Dict[str, Any]]) -> None:
    engine = InMemorySearchEngine(catalogue)
    engine.fail_with = OSError("connection refused")

    with pytest.raises(QueryError):
        await engine.search(SearchQuery())
    with pytest.raises(QueryError):
        await engine.facets()


@pytest.mark.asyncio
async def test_engine_loads_venues_from_json_fixture(tmp_path) -> None:
    fixture = tmp_path / "venues.json"
    fixture.write_text(
        json.dumps(
            [
                {"id": "old", "name": "Old Hall", "city": "Pune", "capacity": 80, "created_at": "2023-05-01T10:00:00Z"},
                {"id": "new", "name": "New Hall", "city": "Pune", "capacity": 120, "created_at": "2024-05-01T10:00:00Z"},
                {
                    "id": "gone",
                    "name": "Gone Hall",
                    "city": "Pune",
                    "capacity": 90,
                    "created_at": "2024-06-01T10:00:00Z",
                    "deleted_at": "2024-07-01T10:00:00Z",
                },
            ]
        ),
        encoding="utf-8",
    )

    engine = InMemorySearchEngine.from_json_file(str(fixture))
    records, total = await engine.search(SearchQuery(city="pune"))

    assert total == 2
    assert [record["id"] for record in records] == ["new", "old"]
    assert records[0]["created_at"] == datetime(2024, 5, 1, 10, tzinfo=timezone.utc)


def test_json_fixture_must_be_a_list(tmp_path) -> None:
    fixture = tmp_path / "venues.json"
    fixture.write_text(json.dumps({"id": "a"}), encoding="utf-8")

    with pytest.raises(ValueError):
        InMemorySearchEngine.from_json_file(str(fixture))
