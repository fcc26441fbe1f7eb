from __future__ import annotations

from typing import Optional

from pydantic import BaseModel


class CacheInvalidationRequest(BaseModel):
    reason: Optional[str] = None
    venue_id: Optional[str] = None


class CacheInvalidationResponse(BaseModel):
    removed: int
    available: bool


class CacheStatusResponse(BaseModel):
    enabled: bool
    available: bool
    prefix: str
    ttl_seconds: int
