# venue_search/api/search_endpoints.py
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, Response

from backend.venue_search.auth.dependencies import (
    AuthContext,
    require_authenticated_user,
    search_caller_id,
)
from backend.venue_search.auth.rate_limiting import (
    client_ip,
    facets_rate_limit,
    limiter,
    search_rate_limit,
    suggestions_rate_limit,
)
from backend.venue_search.core.search_service import SearchService
from backend.venue_search.dependencies import get_search_service_dep
from backend.venue_search.schemas.analytics import PopularQuery, SearchStats, TrendingLocation
from backend.venue_search.schemas.search import FacetSummary, SearchQuery, SearchResponse

router = APIRouter(prefix="/search", tags=["search"])
logger = logging.getLogger(__name__)


@router.post("/venues", response_model=SearchResponse)
@limiter.limit(search_rate_limit)
async def search_venues(
    request: Request,
    response: Response,
    payload: SearchQuery,
    search_service: SearchService = Depends(get_search_service_dep),
    user_id: Optional[str] = Depends(search_caller_id),
) -> SearchResponse:
    return await search_service.search(
        payload,
        user_id=user_id,
        ip_address=client_ip(request),
    )


@router.get("/facets", response_model=FacetSummary)
@limiter.limit(facets_rate_limit)
async def get_facets(
    request: Request,
    response: Response,
    search_service: SearchService = Depends(get_search_service_dep),
) -> FacetSummary:
    _ = request, response  # required for rate limiting decorator
    return await search_service.facets()


@router.get("/suggestions", response_model=List[str])
@limiter.limit(suggestions_rate_limit)
async def get_suggestions(
    request: Request,
    response: Response,
    q: str = Query(default="", max_length=200),
    limit: int = Query(default=5, ge=1, le=20),
    search_service: SearchService = Depends(get_search_service_dep),
) -> List[str]:
    _ = request, response  # required for rate limiting decorator
    return await search_service.suggestions(q, limit)


@router.get("/popular", response_model=List[PopularQuery])
async def get_popular_queries(
    limit: int = Query(default=10, ge=1, le=50),
    search_service: SearchService = Depends(get_search_service_dep),
) -> List[PopularQuery]:
    return await search_service.popular_queries(limit)


@router.get("/trending/locations", response_model=List[TrendingLocation])
async def get_trending_locations(
    limit: int = Query(default=10, ge=1, le=50),
    search_service: SearchService = Depends(get_search_service_dep),
) -> List[TrendingLocation]:
    return await search_service.trending_locations(limit)


@router.get("/stats", response_model=SearchStats)
async def get_search_stats(
    search_service: SearchService = Depends(get_search_service_dep),
    auth_context: AuthContext = Depends(require_authenticated_user),
) -> SearchStats:
    _ = auth_context  # auth enforced via dependency
    return await search_service.stats()
