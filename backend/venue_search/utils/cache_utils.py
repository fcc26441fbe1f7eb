from __future__ import annotations

import gzip
import json
from datetime import date
from enum import Enum
from hashlib import md5
from typing import Any, Dict

from backend.venue_search import config
from backend.venue_search.schemas.search import SearchQuery

# Fields that define the identity of a search; anything else never reaches the key.
_KEY_FIELDS = (
    "text",
    "city",
    "latitude",
    "longitude",
    "radius_km",
    "min_capacity",
    "max_capacity",
    "min_price",
    "max_price",
    "amenities",
    "min_rating",
    "available_date",
    "sort_by",
    "page",
    "limit",
)


def normalize_search_query(query: SearchQuery) -> Dict[str, Any]:
    normalized: Dict[str, Any] = {}
    for field in _KEY_FIELDS:
        value = getattr(query, field, None)
        if value is None:
            continue
        if field == "amenities":
            value = sorted(set(value))
            if not value:
                continue
        elif isinstance(value, Enum):
            value = value.value
        elif isinstance(value, date):
            value = value.isoformat()
        normalized[field] = value
    return normalized


def build_query_fingerprint(query: SearchQuery) -> str:
    return json.dumps(
        normalize_search_query(query),
        separators=(",", ":"),
        sort_keys=True,
        ensure_ascii=False,
    )


def build_search_cache_key(query: SearchQuery, *, prefix: str | None = None) -> str:
    digest = md5(build_query_fingerprint(query).encode("utf-8"), usedforsecurity=False).hexdigest()
    return f"{prefix if prefix is not None else config.SEARCH_CACHE_PREFIX}{digest}"


def serialize_payload(payload: Dict[str, Any]) -> bytes:
    data = json.dumps(payload, separators=(",", ":"), ensure_ascii=False).encode("utf-8")
    return gzip.compress(data)


def deserialize_payload(blob: bytes) -> Dict[str, Any]:
    data = gzip.decompress(blob)
    return json.loads(data.decode("utf-8"))
