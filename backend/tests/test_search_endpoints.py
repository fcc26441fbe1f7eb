from __future__ import annotations

from collections.abc import Iterator
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List

import jwt  # type: ignore[import]
import pytest  # type: ignore[import]
from fastapi.testclient import TestClient

from backend.venue_search import config
from backend.venue_search.auth.dependencies import require_admin_user
from backend.venue_search.auth.rate_limiting import limiter
from backend.venue_search.auth.schemas import AuthContext
from backend.venue_search.cache import InMemoryCacheAdapter
from backend.venue_search.core.analytics import InMemoryAnalyticsStore, SearchAnalyticsService
from backend.venue_search.core.search_cache import SearchCache
from backend.venue_search.core.search_engine import InMemorySearchEngine
from backend.venue_search.core.search_service import SearchService
from backend.venue_search.dependencies import get_search_service_dep
from backend.venue_search.main import app

SECRET = "test-secret"


def _token(subject: str = "user-1", role: str = "user") -> str:
    now = datetime.now(timezone.utc)
    return jwt.encode(
        {
            "sub": subject,
            "role": role,
            "iat": now,
            "exp": now + timedelta(minutes=5),
            "iss": config.APP_JWT_ISSUER,
            "aud": config.APP_JWT_AUDIENCE,
        },
        SECRET,
        algorithm=config.APP_JWT_ALGORITHM,
    )


@pytest.fixture()
def engine(catalogue: List[Dict[str, Any]]) -> InMemorySearchEngine:
    return InMemorySearchEngine(catalogue)


@pytest.fixture()
def client(engine: InMemorySearchEngine, monkeypatch: pytest.MonkeyPatch) -> Iterator[TestClient]:
    monkeypatch.setattr(config, "APP_JWT_SECRET", SECRET)
    monkeypatch.setattr(limiter, "enabled", False)
    service = SearchService(
        search_engine=engine,
        cache=SearchCache(InMemoryCacheAdapter()),
        analytics=SearchAnalyticsService(InMemoryAnalyticsStore()),
    )

    app.dependency_overrides[get_search_service_dep] = lambda: service

    with TestClient(app) as test_client:
        yield test_client

    app.dependency_overrides.pop(get_search_service_dep, None)


def test_search_venues_accepts_camel_case_body(client: TestClient) -> None:
    response = client.post(
        "/search/venues",
        json={"city": "mumbai", "minCapacity": 100, "sortBy": "PRICE_LOW", "limit": 1},
    )

    assert response.status_code == 200
    body = response.json()
    assert [venue["id"] for venue in body["data"]] == ["a"]
    assert body["pagination"] == {
        "total": 2,
        "page": 1,
        "limit": 1,
        "totalPages": 2,
        "hasNext": True,
        "hasPrev": False,
    }
    assert body["metadata"]["cached"] is False
    assert body["metadata"]["appliedFilters"] == {"city": "mumbai", "minCapacity": 100, "sortBy": "PRICE_LOW"}
    assert "createdAt" in body["data"][0]


def test_search_venues_rejects_out_of_range_values(client: TestClient) -> None:
    assert client.post("/search/venues", json={"latitude": 123}).status_code == 422
    assert client.post("/search/venues", json={"limit": 500}).status_code == 422
    assert client.post("/search/venues", json={"sortBy": "CHEAPEST"}).status_code == 422


def test_search_venues_rejects_pages_and_capacities_beyond_column_range(client: TestClient) -> None:
    assert client.post("/search/venues", json={"page": 10**18, "limit": 100}).status_code == 422
    assert client.post("/search/venues", json={"minCapacity": 2**31}).status_code == 422
    assert client.post("/search/venues", json={"maxCapacity": 10**12}).status_code == 422


def test_query_error_maps_to_503(client: TestClient, engine: InMemorySearchEngine) -> None:
    engine.fail_with = OSError("connection refused")

    response = client.post("/search/venues", json={})

    assert response.status_code == 503
    assert response.json() == {"detail": "Search backend unavailable"}


def test_facets_endpoint(client: TestClient) -> None:
    response = client.get("/search/facets")

    assert response.status_code == 200
    body = response.json()
    assert body["cities"] == {"Mumbai": 1, "Navi Mumbai": 1, "Pune": 1}
    assert body["priceRange"] == {"min": 800.0, "max": 2000.0}
    assert body["capacityRange"] == {"min": 200.0, "max": 1000.0}


def test_suggestions_require_two_characters(client: TestClient) -> None:
    response = client.get("/search/suggestions", params={"q": "g"})

    assert response.status_code == 200
    assert response.json() == []


def test_popular_and_trending_endpoints(client: TestClient) -> None:
    popular = client.get("/search/popular", params={"limit": 5})
    trending = client.get("/search/trending/locations")

    assert popular.status_code == 200
    assert isinstance(popular.json(), list)
    assert trending.status_code == 200
    assert isinstance(trending.json(), list)


def test_stats_requires_bearer_token(client: TestClient) -> None:
    assert client.get("/search/stats").status_code == 401

    response = client.get("/search/stats", headers={"Authorization": f"Bearer {_token()}"})

    assert response.status_code == 200
    assert set(response.json()) == {"totalSearches", "todaySearches", "avgQueryTimeMs", "cacheHitRate"}


def test_invalid_token_is_ignored_for_search(client: TestClient) -> None:
    response = client.post("/search/venues", json={}, headers={"Authorization": "Bearer not-a-jwt"})
    assert response.status_code == 200


def test_admin_cache_routes_require_admin(client: TestClient) -> None:
    user_headers = {"Authorization": f"Bearer {_token(role='user')}"}

    assert client.post("/admin/cache/search/invalidate").status_code == 401
    assert client.post("/admin/cache/search/invalidate", headers=user_headers).status_code == 403


def test_admin_can_invalidate_and_inspect_cache(client: TestClient) -> None:
    admin_headers = {"Authorization": f"Bearer {_token(subject='admin-1', role='admin')}"}

    status_response = client.get("/admin/cache/search/status", headers=admin_headers)
    assert status_response.status_code == 200
    assert status_response.json() == {
        "enabled": True,
        "available": True,
        "prefix": "search:venues:",
        "ttl_seconds": 300,
    }

    response = client.post(
        "/admin/cache/search/invalidate",
        json={"reason": "venue updated", "venue_id": "a"},
        headers=admin_headers,
    )
    assert response.status_code == 200
    body = response.json()
    assert body["available"] is True
    assert body["removed"] >= 0


def test_admin_invalidate_returns_503_when_cache_disabled(
    engine: InMemorySearchEngine, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(config, "ENABLE_CACHE", False)
    service = SearchService(search_engine=engine)
    admin_context = AuthContext(subject="admin-2", role="admin", claims={"role": "admin"})

    app.dependency_overrides[get_search_service_dep] = lambda: service
    app.dependency_overrides[require_admin_user] = lambda: admin_context

    try:
        with TestClient(app) as client:
            response = client.post("/admin/cache/search/invalidate")
            assert response.status_code == 503
    finally:
        app.dependency_overrides.pop(get_search_service_dep, None)
        app.dependency_overrides.pop(require_admin_user, None)
