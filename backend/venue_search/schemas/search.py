"""Request and response models for venue search endpoints."""
from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

# Keep page offsets and capacity bounds inside Postgres integer columns.
MAX_PAGE = 100_000
MAX_CAPACITY = 2_147_483_647


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class VenueStatus(str, Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    UNPUBLISHED = "UNPUBLISHED"
    REMOVED = "REMOVED"


class SortBy(str, Enum):
    NEWEST = "NEWEST"
    PRICE_LOW = "PRICE_LOW"
    PRICE_HIGH = "PRICE_HIGH"
    RATING = "RATING"
    DISTANCE = "DISTANCE"
    POPULARITY = "POPULARITY"


class SearchQuery(CamelModel):
    """Filters, sort mode and page requested by a search caller."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    text: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)
    radius_km: Optional[float] = Field(default=None, gt=0, le=500)
    min_capacity: Optional[int] = Field(default=None, ge=0, le=MAX_CAPACITY)
    max_capacity: Optional[int] = Field(default=None, ge=0, le=MAX_CAPACITY)
    min_price: Optional[float] = Field(default=None, ge=0)
    max_price: Optional[float] = Field(default=None, ge=0)
    amenities: Optional[List[str]] = None
    min_rating: Optional[float] = Field(default=None, ge=0, le=5)
    available_date: Optional[date] = None
    sort_by: SortBy = SortBy.NEWEST
    page: int = Field(default=1, ge=1, le=MAX_PAGE)
    limit: int = Field(default=10, ge=1, le=100)

    @field_validator("text", "city", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = " ".join(value.split())
            return value or None
        return value

    @field_validator("amenities", mode="before")
    @classmethod
    def _clean_amenities(cls, value: Any) -> Any:
        if value is None:
            return None
        if isinstance(value, str):
            value = value.split(",")
        cleaned = [str(item).strip() for item in value if str(item).strip()]
        return cleaned or None

    @property
    def has_location(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @property
    def has_radius(self) -> bool:
        return self.has_location and self.radius_km is not None

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit


class VenueSearchResult(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    city: str
    address: Optional[str] = None
    capacity: int
    pricing: Dict[str, Any] = Field(default_factory=dict)
    amenities: Dict[str, bool] = Field(default_factory=dict)
    images: List[str] = Field(default_factory=list)
    rating: Optional[float] = None
    distance: Optional[float] = None
    created_at: datetime


class PaginationMeta(CamelModel):
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


class SearchMetadata(CamelModel):
    query_time_ms: int
    cached: bool = False
    applied_filters: Dict[str, Any] = Field(default_factory=dict)


class NumericRange(CamelModel):
    min: float
    max: float


class FacetSummary(CamelModel):
    cities: Dict[str, int] = Field(default_factory=dict)
    price_range: NumericRange
    capacity_range: NumericRange
    amenities: Dict[str, int] = Field(default_factory=dict)


class SearchResponse(CamelModel):
    data: List[VenueSearchResult]
    pagination: PaginationMeta
    metadata: SearchMetadata
    facets: Optional[FacetSummary] = None


__all__ = [
    "CamelModel",
    "VenueStatus",
    "SortBy",
    "SearchQuery",
    "VenueSearchResult",
    "PaginationMeta",
    "SearchMetadata",
    "NumericRange",
    "FacetSummary",
    "SearchResponse",
]
