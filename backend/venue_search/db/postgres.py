from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, List, Optional, Sequence

import asyncpg

from backend.venue_search.core.exceptions import QueryError

logger = logging.getLogger(__name__)


class PostgresClient:
    """Process-wide asyncpg pool with a per-statement ceiling.

    Every failure surfaced by the driver (including timeouts and dropped
    sockets) is re-raised as `QueryError`.
    """

    def __init__(
        self,
        dsn: str,
        *,
        min_size: int = 1,
        max_size: int = 10,
        query_timeout: float = 5.0,
    ) -> None:
        self.dsn = dsn
        self.min_size = max(min_size, 0)
        self.max_size = max(max_size, 1)
        self.query_timeout = query_timeout
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        if self._pool is not None:
            return
        statement_timeout_ms = int(self.query_timeout * 1000)
        try:
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=self.min_size,
                max_size=self.max_size,
                command_timeout=self.query_timeout,
                server_settings={"statement_timeout": str(statement_timeout_ms)},
            )
        except (asyncpg.PostgresError, OSError, asyncio.TimeoutError) as exc:
            raise QueryError(f"Could not connect to Postgres: {exc}", operation="connect") from exc
        logger.info(
            "Postgres pool ready (min=%d, max=%d, timeout=%.1fs)",
            self.min_size,
            self.max_size,
            self.query_timeout,
        )

    async def close(self) -> None:
        if self._pool is None:
            return
        pool, self._pool = self._pool, None
        await pool.close()

    @asynccontextmanager
    async def connection(self) -> AsyncIterator[asyncpg.Connection]:
        if self._pool is None:
            raise QueryError("Postgres pool is not initialized", operation="acquire")
        async with self._pool.acquire() as conn:
            yield conn

    async def fetch(self, query: str, params: Sequence[Any] = (), *, operation: str = "fetch") -> List[Any]:
        try:
            async with self.connection() as conn:
                return await conn.fetch(query, *params)
        except QueryError:
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
            logger.error("Postgres %s failed: %s", operation, exc)
            raise QueryError(f"Postgres {operation} failed: {exc}", operation=operation) from exc

    async def fetchrow(self, query: str, params: Sequence[Any] = (), *, operation: str = "fetchrow") -> Optional[Any]:
        try:
            async with self.connection() as conn:
                return await conn.fetchrow(query, *params)
        except QueryError:
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
            logger.error("Postgres %s failed: %s", operation, exc)
            raise QueryError(f"Postgres {operation} failed: {exc}", operation=operation) from exc

    async def execute(self, query: str, params: Sequence[Any] = (), *, operation: str = "execute") -> str:
        try:
            async with self.connection() as conn:
                return await conn.execute(query, *params)
        except QueryError:
            raise
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as exc:
            logger.error("Postgres %s failed: %s", operation, exc)
            raise QueryError(f"Postgres {operation} failed: {exc}", operation=operation) from exc


__all__ = ["PostgresClient"]
