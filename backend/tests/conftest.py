from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List

import pytest

from backend.venue_search import config
from backend.venue_search.schemas.search import (
    PaginationMeta,
    SearchMetadata,
    SearchResponse,
    VenueSearchResult,
)

BASE_CREATED_AT = datetime(2024, 1, 1, tzinfo=timezone.utc)
MUMBAI = (19.0760, 72.8777)


def _venue(**overrides: Any) -> Dict[str, Any]:
    venue: Dict[str, Any] = {
        "id": "venue",
        "name": "Venue",
        "description": None,
        "city": "Mumbai",
        "address": None,
        "capacity": 100,
        "price_per_plate": 1000.0,
        "pricing": {},
        "amenities": {},
        "images": [],
        "rating": None,
        "latitude": None,
        "longitude": None,
        "status": "PUBLISHED",
        "deleted_at": None,
        "created_at": BASE_CREATED_AT,
    }
    venue.update(overrides)
    return venue


@pytest.fixture()
def venue_factory() -> Callable[..., Dict[str, Any]]:
    return _venue


@pytest.fixture()
def catalogue() -> List[Dict[str, Any]]:
    """Three visible venues plus a draft and a soft-deleted one."""

    return [
        _venue(
            id="a",
            name="Grand Palace Hall",
            description="Banquet hall with a garden lawn",
            city="Mumbai",
            capacity=500,
            price_per_plate=1200.0,
            amenities={"parking": True, "ac": True, "valet": False},
            rating=4.5,
            latitude=MUMBAI[0],
            longitude=MUMBAI[1],
            created_at=BASE_CREATED_AT + timedelta(days=2),
        ),
        _venue(
            id="b",
            name="Riverside Lawns",
            description="Open air lawns by the river",
            city="Pune",
            capacity=200,
            price_per_plate=800.0,
            amenities={"parking": True},
            rating=4.8,
            latitude=18.5204,
            longitude=73.8567,
            created_at=BASE_CREATED_AT + timedelta(days=1),
        ),
        _venue(
            id="c",
            name="Harbour Convention Centre",
            description="Large convention hall",
            city="Navi Mumbai",
            capacity=1000,
            price_per_plate=2000.0,
            amenities={"ac": True},
            rating=None,
            latitude=19.0330,
            longitude=73.0297,
            created_at=BASE_CREATED_AT,
        ),
        _venue(id="draft", status="DRAFT", price_per_plate=99999.0, city="Goa"),
        _venue(
            id="deleted",
            deleted_at=BASE_CREATED_AT,
            price_per_plate=1.0,
            city="Goa",
        ),
    ]


@pytest.fixture()
def sample_response() -> SearchResponse:
    return SearchResponse(
        data=[
            VenueSearchResult(
                id="a",
                name="Grand Palace Hall",
                city="Mumbai",
                capacity=500,
                pricing={"perPlate": 1200.0},
                amenities={"parking": True},
                images=["https://cdn.example.com/a.jpg"],
                rating=4.5,
                distance=1.25,
                created_at=BASE_CREATED_AT,
            )
        ],
        pagination=PaginationMeta(total=1, page=1, limit=10, total_pages=1, has_next=False, has_prev=False),
        metadata=SearchMetadata(query_time_ms=12, cached=False, applied_filters={"city": "Mumbai"}),
    )


@pytest.fixture(autouse=True)
def _search_config(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, "ENABLE_CACHE", True)
    monkeypatch.setattr(config, "SEARCH_CACHE_TTL", 300)
    monkeypatch.setattr(config, "SEARCH_CACHE_PREFIX", "search:venues:")
    monkeypatch.setattr(config, "CACHE_MAX_PAYLOAD_BYTES", 1024 * 1024)
    monkeypatch.setattr(config, "CACHE_REDIS_URL", None)
    monkeypatch.setattr(config, "DATABASE_URL", None)
    monkeypatch.setattr(config, "FACET_AMENITY_LIMIT", 20)
    monkeypatch.setattr(config, "SUGGESTION_MIN_LENGTH", 2)
    monkeypatch.setattr(config, "SUGGESTION_POOL_SIZE", 50)
