from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from backend.venue_search.auth.dependencies import AuthContext, require_admin_user
from backend.venue_search.core.search_service import SearchService
from backend.venue_search.dependencies import get_search_service_dep
from backend.venue_search.schemas.cache import (
    CacheInvalidationRequest,
    CacheInvalidationResponse,
    CacheStatusResponse,
)

router = APIRouter(prefix="/admin", tags=["admin"])
logger = logging.getLogger(__name__)


@router.get("/status")
async def admin_status(auth: AuthContext = Depends(require_admin_user)) -> dict[str, str]:
    """Simple admin health endpoint protected by role-based access control."""

    return {"status": "ok", "subject": auth.subject, "role": auth.role}


def _ensure_cache_enabled(service: SearchService) -> None:
    if not service.cache_enabled:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Response cache is disabled",
        )


@router.get(
    "/cache/search/status",
    response_model=CacheStatusResponse,
    dependencies=[Depends(require_admin_user)],
)
async def search_cache_status(
    service: SearchService = Depends(get_search_service_dep),
) -> CacheStatusResponse:
    if not service.cache_enabled:
        return CacheStatusResponse(enabled=False, available=False, prefix="", ttl_seconds=0)
    return CacheStatusResponse(
        enabled=True,
        available=service.cache_available(),
        prefix=service.cache.prefix,
        ttl_seconds=service.cache.ttl_seconds,
    )


@router.post("/cache/search/invalidate", response_model=CacheInvalidationResponse)
async def invalidate_search_cache(
    payload: CacheInvalidationRequest | None = None,
    service: SearchService = Depends(get_search_service_dep),
    auth: AuthContext = Depends(require_admin_user),
) -> CacheInvalidationResponse:
    """Drop every cached search page; venue write paths call this after a mutation."""

    _ensure_cache_enabled(service)
    removed = await service.invalidate_cache()
    logger.info(
        "Search cache invalidated",
        extra={
            "json_fields": {
                "removed": removed,
                "subject": auth.subject,
                "reason": payload.reason if payload else None,
                "venueId": payload.venue_id if payload else None,
            }
        },
    )
    return CacheInvalidationResponse(removed=removed, available=service.cache_available())
