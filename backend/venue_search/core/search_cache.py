from __future__ import annotations

import logging
from typing import Optional

from backend.venue_search import config
from backend.venue_search.cache import BaseCacheAdapter, CacheUnavailableError
from backend.venue_search.schemas.search import SearchQuery, SearchResponse
from backend.venue_search.utils import cache_utils
from backend.venue_search.utils.observability import (
    record_cache_error,
    record_cache_hit,
    record_cache_invalidation,
    record_cache_miss,
)

logger = logging.getLogger(__name__)


class SearchCache:
    """Best-effort response cache in front of a transport adapter.

    No method raises: a down or failing backend reads as a miss, a skipped
    write, or zero removed keys.
    """

    def __init__(
        self,
        adapter: Optional[BaseCacheAdapter],
        *,
        prefix: Optional[str] = None,
        ttl_seconds: Optional[int] = None,
        max_payload_bytes: Optional[int] = None,
    ) -> None:
        self.adapter = adapter
        self.prefix = prefix if prefix is not None else config.SEARCH_CACHE_PREFIX
        self.ttl_seconds = max(ttl_seconds if ttl_seconds is not None else config.SEARCH_CACHE_TTL, 1)
        self.max_payload_bytes = max(
            max_payload_bytes if max_payload_bytes is not None else config.CACHE_MAX_PAYLOAD_BYTES, 1
        )

    @property
    def enabled(self) -> bool:
        return self.adapter is not None

    def is_available(self) -> bool:
        return self.adapter is not None and self.adapter.is_available()

    def build_key(self, query: SearchQuery) -> str:
        return cache_utils.build_search_cache_key(query, prefix=self.prefix)

    async def get(self, key: str) -> Optional[SearchResponse]:
        if self.adapter is None:
            record_cache_miss("disabled")
            return None
        if not self.adapter.is_available():
            logger.debug("Cache unavailable; skipping lookup for %s", key)
            record_cache_miss("unavailable")
            return None

        try:
            blob = await self.adapter.get(key)
        except CacheUnavailableError:
            logger.debug("Cache went away during lookup for %s", key)
            record_cache_miss("unavailable")
            return None
        except Exception as exc:
            record_cache_error("get")
            logger.warning("Cache get failed for key %s: %s", key, exc)
            return None

        if blob is None:
            record_cache_miss("not_found")
            return None

        try:
            response = SearchResponse.model_validate(cache_utils.deserialize_payload(blob))
        except Exception as exc:
            record_cache_error("decode")
            logger.warning("Failed to decode cached payload for %s: %s", key, exc)
            return None

        record_cache_hit()
        return response

    async def set(self, key: str, response: SearchResponse, ttl_seconds: Optional[int] = None) -> bool:
        if self.adapter is None:
            return False
        if not self.adapter.is_available():
            logger.debug("Cache unavailable; skipping store for %s", key)
            return False

        try:
            blob = cache_utils.serialize_payload(response.model_dump(mode="json", by_alias=True))
        except Exception as exc:
            record_cache_error("encode")
            logger.warning("Failed to encode search response for %s: %s", key, exc)
            return False
        if len(blob) > self.max_payload_bytes:
            logger.debug(
                "Skipping cache store for %s; payload size %d exceeds limit %d",
                key,
                len(blob),
                self.max_payload_bytes,
            )
            return False

        ttl = ttl_seconds if ttl_seconds and ttl_seconds > 0 else self.ttl_seconds
        try:
            await self.adapter.set(key, blob, ttl)
        except CacheUnavailableError:
            logger.debug("Cache went away before storing %s", key)
            return False
        except Exception as exc:
            record_cache_error("set")
            logger.warning("Cache set failed for %s: %s", key, exc)
            return False
        return True

    async def invalidate_namespace(self, prefix: Optional[str] = None) -> int:
        """Remove every cached search response under the namespace prefix."""

        target = prefix if prefix is not None else self.prefix
        if self.adapter is None or not self.adapter.is_available():
            logger.debug("Cache unavailable; nothing to invalidate under %s", target)
            return 0
        try:
            removed = await self.adapter.delete_prefix(target)
        except Exception as exc:
            record_cache_error("invalidate")
            logger.warning("Cache invalidation failed for prefix %s: %s", target, exc)
            return 0
        record_cache_invalidation(removed)
        logger.info("Invalidated %d cached search responses under %s", removed, target)
        return removed


__all__ = ["SearchCache"]
