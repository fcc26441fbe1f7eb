from __future__ import annotations

import asyncio
import fnmatch
import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

import redis.asyncio as redis
from redis.backoff import AbstractBackoff, ExponentialBackoff
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

logger = logging.getLogger("cache.adapters")

_SCAN_BATCH_SIZE = 500


class CacheError(RuntimeError):
    """Raised when the cache backend encounters an unrecoverable error."""


class CacheUnavailableError(CacheError):
    """Raised without attempting I/O while the backend is known to be down."""


@dataclass(frozen=True)
class CacheValue:
    payload: bytes
    expires_at: float


class BaseCacheAdapter:
    def is_available(self) -> bool:
        return True

    async def connect(self) -> bool:
        return True

    async def close(self) -> None:
        return None

    async def get(self, key: str) -> Optional[bytes]:
        raise NotImplementedError

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        raise NotImplementedError

    async def delete(self, key: str) -> None:
        raise NotImplementedError

    async def delete_prefix(self, prefix: str) -> int:
        raise NotImplementedError


class RedisCacheAdapter(BaseCacheAdapter):
    """Redis transport with a live connectivity flag.

    The flag is an `asyncio.Event` flipped only by the connect/error/close
    signals below. Every command checks it first and raises
    `CacheUnavailableError` without touching the socket while it is down.
    A transport failure starts one reconnect loop that PINGs with capped
    exponential backoff; once the attempts are spent the adapter stays down
    until `connect()` is called again.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        *,
        client: Optional[Any] = None,
        connect_timeout: float = 2.0,
        command_timeout: float = 1.0,
        reconnect_attempts: int = 3,
        backoff: Optional[AbstractBackoff] = None,
    ) -> None:
        if client is None and not url:
            raise CacheError("RedisCacheAdapter requires a url or a client")
        self._client = client or redis.from_url(
            url,
            decode_responses=False,
            socket_connect_timeout=connect_timeout,
            socket_timeout=command_timeout,
        )
        self._available = asyncio.Event()
        self._reconnect_attempts = max(reconnect_attempts, 0)
        self._backoff = backoff or ExponentialBackoff(cap=3.0, base=0.5)
        self._reconnect_task: Optional[asyncio.Task] = None

    def is_available(self) -> bool:
        return self._available.is_set()

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    def _signal_connected(self) -> None:
        if not self._available.is_set():
            logger.info("Redis connected successfully")
        self._available.set()

    def _signal_error(self, exc: BaseException) -> None:
        self._available.clear()
        logger.warning("Redis connection error: %s. Continuing without cache.", exc)
        self._schedule_reconnect()

    def _signal_closed(self) -> None:
        if self._available.is_set():
            logger.warning("Redis connection closed. Cache disabled.")
        self._available.clear()

    def _schedule_reconnect(self) -> None:
        if self.reconnecting or self._reconnect_attempts == 0:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        self._reconnect_task = loop.create_task(self._reconnect(), name="redis.reconnect")

    async def _reconnect(self) -> None:
        for attempt in range(1, self._reconnect_attempts + 1):
            await asyncio.sleep(self._backoff.compute(attempt))
            try:
                await self._client.ping()
            except (RedisError, OSError, asyncio.TimeoutError) as exc:
                logger.debug("Redis reconnect attempt %d failed: %s", attempt, exc)
                continue
            self._signal_connected()
            return
        logger.warning(
            "Redis connection failed after %d retries. Running without cache.",
            self._reconnect_attempts,
        )

    async def connect(self) -> bool:
        try:
            await self._client.ping()
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            self._signal_error(exc)
            return False
        self._signal_connected()
        return True

    async def close(self) -> None:
        if self._reconnect_task is not None:
            self._reconnect_task.cancel()
            await asyncio.gather(self._reconnect_task, return_exceptions=True)
            self._reconnect_task = None
        self._signal_closed()
        await self._client.aclose()

    def _ensure_available(self) -> None:
        if not self._available.is_set():
            raise CacheUnavailableError("Redis is not connected")

    def _transport_failure(self, operation: str, exc: BaseException) -> CacheError:
        if isinstance(exc, (RedisConnectionError, RedisTimeoutError, OSError, asyncio.TimeoutError)):
            self._signal_error(exc)
        return CacheError(f"Redis {operation} failed: {exc}")

    async def get(self, key: str) -> Optional[bytes]:
        self._ensure_available()
        try:
            result = await self._client.get(key)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise self._transport_failure("GET", exc) from exc
        if result is None:
            return None
        if isinstance(result, bytes):
            return result
        if isinstance(result, str):
            return result.encode("utf-8")
        logger.warning("Unexpected Redis payload type for key %s: %s", key, type(result))
        return None

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        self._ensure_available()
        try:
            await self._client.set(key, value, ex=max(ttl_seconds, 1))
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise self._transport_failure("SET", exc) from exc

    async def delete(self, key: str) -> None:
        self._ensure_available()
        try:
            await self._client.delete(key)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise self._transport_failure("DEL", exc) from exc

    async def delete_prefix(self, prefix: str) -> int:
        self._ensure_available()
        removed = 0
        batch: list[Any] = []
        try:
            async for key in self._client.scan_iter(match=f"{prefix}*", count=_SCAN_BATCH_SIZE):
                batch.append(key)
                if len(batch) >= _SCAN_BATCH_SIZE:
                    removed += await self._client.delete(*batch)
                    batch = []
            if batch:
                removed += await self._client.delete(*batch)
        except (RedisError, OSError, asyncio.TimeoutError) as exc:
            raise self._transport_failure("SCAN/DEL", exc) from exc
        return removed


class InMemoryCacheAdapter(BaseCacheAdapter):
    def __init__(self) -> None:
        self._data: dict[str, CacheValue] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[bytes]:
        async with self._lock:
            entry = self._data.get(key)
            if not entry:
                return None
            if time.time() >= entry.expires_at:
                self._data.pop(key, None)
                return None
            return entry.payload

    async def set(self, key: str, value: bytes, ttl_seconds: int) -> None:
        expires_at = time.time() + max(ttl_seconds, 1)
        async with self._lock:
            self._data[key] = CacheValue(payload=value, expires_at=expires_at)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._data.pop(key, None)

    async def delete_prefix(self, prefix: str) -> int:
        pattern = f"{prefix}*"
        async with self._lock:
            doomed = [key for key in self._data if fnmatch.fnmatchcase(key, pattern)]
            for key in doomed:
                self._data.pop(key, None)
        return len(doomed)
