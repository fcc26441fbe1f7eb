"""Cache adapter implementations for search response caching."""

from .adapters import (
    BaseCacheAdapter,
    CacheError,
    CacheUnavailableError,
    InMemoryCacheAdapter,
    RedisCacheAdapter,
)

__all__ = [
    "BaseCacheAdapter",
    "CacheError",
    "CacheUnavailableError",
    "InMemoryCacheAdapter",
    "RedisCacheAdapter",
]
