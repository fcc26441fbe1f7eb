"""Dependency factories for FastAPI.

Clients are created lazily to avoid import-time failures when credentials
or environment variables are missing. Factories cache created instances;
startup connects them and shutdown releases them.
"""
import logging
from typing import Optional

from redis.backoff import ExponentialBackoff

from backend.venue_search import config
from backend.venue_search.cache import (
    BaseCacheAdapter,
    CacheError,
    InMemoryCacheAdapter,
    RedisCacheAdapter,
)
from backend.venue_search.core.analytics import (
    BaseAnalyticsStore,
    InMemoryAnalyticsStore,
    PostgresAnalyticsStore,
    SearchAnalyticsService,
)
from backend.venue_search.core.search_cache import SearchCache
from backend.venue_search.core.search_engine import (
    BaseSearchEngine,
    InMemorySearchEngine,
    PostgresSearchEngine,
)
from backend.venue_search.core.search_service import SearchService
from backend.venue_search.db import PostgresClient, ensure_schema
from backend.venue_search.utils.background import BackgroundTaskRunner


_postgres_client: Optional[PostgresClient] = None
_search_engine: Optional[BaseSearchEngine] = None
_analytics_service: Optional[SearchAnalyticsService] = None
_background_runner: Optional[BackgroundTaskRunner] = None
_search_service: Optional[SearchService] = None
_cache: Optional[BaseCacheAdapter] = None

logger = logging.getLogger("dependencies")


def get_postgres_client() -> Optional[PostgresClient]:
    global _postgres_client
    if _postgres_client is None and config.DATABASE_URL:
        _postgres_client = PostgresClient(
            config.DATABASE_URL,
            min_size=config.DATABASE_POOL_MIN_SIZE,
            max_size=config.DATABASE_POOL_MAX_SIZE,
            query_timeout=config.DATABASE_QUERY_TIMEOUT_SECONDS,
        )
    return _postgres_client


def get_search_engine() -> BaseSearchEngine:
    global _search_engine
    if _search_engine is None:
        client = get_postgres_client()
        if client is not None:
            _search_engine = PostgresSearchEngine(client)
        elif config.VENUE_FIXTURE_PATH:
            logger.warning("DATABASE_URL is not set; serving venues from %s", config.VENUE_FIXTURE_PATH)
            _search_engine = InMemorySearchEngine.from_json_file(config.VENUE_FIXTURE_PATH)
        else:
            logger.warning("DATABASE_URL is not set; using an empty in-memory search engine")
            _search_engine = InMemorySearchEngine()
    return _search_engine


def get_analytics_service() -> SearchAnalyticsService:
    global _analytics_service
    if _analytics_service is None:
        client = get_postgres_client()
        store: BaseAnalyticsStore = PostgresAnalyticsStore(client) if client else InMemoryAnalyticsStore()
        _analytics_service = SearchAnalyticsService(store, enabled=config.ENABLE_SEARCH_ANALYTICS)
    return _analytics_service


def get_background_runner() -> BackgroundTaskRunner:
    global _background_runner
    if _background_runner is None:
        _background_runner = BackgroundTaskRunner()
    return _background_runner


def _build_cache_adapter() -> BaseCacheAdapter:
    redis_url = config.CACHE_REDIS_URL
    if redis_url:
        try:
            logger.info("Initializing Redis cache adapter")
            return RedisCacheAdapter(
                url=redis_url,
                connect_timeout=config.CACHE_CONNECT_TIMEOUT_SECONDS,
                command_timeout=config.CACHE_COMMAND_TIMEOUT_SECONDS,
                reconnect_attempts=config.CACHE_RECONNECT_ATTEMPTS,
                backoff=ExponentialBackoff(
                    cap=config.CACHE_RECONNECT_BACKOFF_CAP_SECONDS,
                    base=config.CACHE_RECONNECT_BACKOFF_BASE_SECONDS,
                ),
            )
        except CacheError as exc:
            logger.warning("Redis cache initialization failed: %s", exc)

    logger.info("Falling back to in-memory cache adapter")
    return InMemoryCacheAdapter()


def get_cache_dep() -> Optional[BaseCacheAdapter]:
    global _cache
    if not config.ENABLE_CACHE:
        return None
    if _cache is None:
        try:
            _cache = _build_cache_adapter()
        except CacheError as exc:
            logger.error("Failed to configure cache adapter, disabling cache: %s", exc)
            _cache = None
    return _cache


def get_search_service_dep() -> SearchService:
    global _search_service
    if _search_service is None:
        _search_service = SearchService(
            search_engine=get_search_engine(),
            cache=SearchCache(get_cache_dep()),
            analytics=get_analytics_service(),
            background=get_background_runner(),
        )
    return _search_service


async def initialize_on_startup() -> None:
    # Called from the FastAPI startup event. A cache that cannot connect leaves
    # the service running uncached; a database that cannot connect is fatal.
    client = get_postgres_client()
    if client is not None:
        await client.connect()
        if config.DATABASE_AUTO_MIGRATE:
            await ensure_schema(client)

    cache = get_cache_dep()
    if cache is not None and not await cache.connect():
        logger.warning("Cache backend unreachable at startup; serving searches uncached")

    get_search_service_dep()


async def shutdown_on_exit() -> None:
    global _cache, _postgres_client, _search_service, _search_engine, _analytics_service
    if _background_runner is not None:
        await _background_runner.shutdown(config.BACKGROUND_SHUTDOWN_TIMEOUT_SECONDS)
    if _cache is not None:
        await _cache.close()
    if _postgres_client is not None:
        await _postgres_client.close()
    _cache = None
    _postgres_client = None
    _search_service = None
    _search_engine = None
    _analytics_service = None
