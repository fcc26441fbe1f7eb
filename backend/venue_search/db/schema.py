from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from backend.venue_search.db.postgres import PostgresClient

logger = logging.getLogger(__name__)

VENUES_TABLE = "venues"
ANALYTICS_TABLE = "search_analytics"

SCHEMA_STATEMENTS = (
    f"""
    CREATE TABLE IF NOT EXISTS {VENUES_TABLE} (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        city TEXT NOT NULL,
        address TEXT,
        capacity INTEGER NOT NULL DEFAULT 0,
        price_per_plate DOUBLE PRECISION,
        pricing JSONB NOT NULL DEFAULT '{{}}'::jsonb,
        amenities JSONB NOT NULL DEFAULT '{{}}'::jsonb,
        images TEXT[] NOT NULL DEFAULT '{{}}',
        rating DOUBLE PRECISION,
        latitude DOUBLE PRECISION,
        longitude DOUBLE PRECISION,
        status TEXT NOT NULL DEFAULT 'DRAFT',
        deleted_at TIMESTAMPTZ,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now(),
        search_vector TSVECTOR GENERATED ALWAYS AS (
            setweight(to_tsvector('english', coalesce(name, '')), 'A') ||
            setweight(to_tsvector('english', coalesce(description, '')), 'B')
        ) STORED
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{VENUES_TABLE}_search_vector ON {VENUES_TABLE} USING GIN (search_vector)",
    f"CREATE INDEX IF NOT EXISTS idx_{VENUES_TABLE}_amenities ON {VENUES_TABLE} USING GIN (amenities jsonb_path_ops)",
    f"CREATE INDEX IF NOT EXISTS idx_{VENUES_TABLE}_visible ON {VENUES_TABLE} (status, created_at DESC) WHERE deleted_at IS NULL",
    f"""
    CREATE TABLE IF NOT EXISTS {ANALYTICS_TABLE} (
        id BIGSERIAL PRIMARY KEY,
        query TEXT,
        filters JSONB NOT NULL DEFAULT '{{}}'::jsonb,
        user_id TEXT,
        ip_address TEXT,
        result_count INTEGER NOT NULL DEFAULT 0,
        city TEXT,
        latitude DOUBLE PRECISION,
        longitude DOUBLE PRECISION,
        sort_by TEXT,
        query_time_ms INTEGER NOT NULL DEFAULT 0,
        cached BOOLEAN NOT NULL DEFAULT FALSE,
        created_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
    """,
    f"CREATE INDEX IF NOT EXISTS idx_{ANALYTICS_TABLE}_created_at ON {ANALYTICS_TABLE} (created_at DESC)",
    f"CREATE INDEX IF NOT EXISTS idx_{ANALYTICS_TABLE}_city ON {ANALYTICS_TABLE} (city, created_at DESC)",
)


async def ensure_schema(client: "PostgresClient") -> None:
    """Create the venue and analytics tables if they are missing."""

    for statement in SCHEMA_STATEMENTS:
        await client.execute(statement, operation="migrate")
    logger.info("Search schema ensured (%d statements)", len(SCHEMA_STATEMENTS))


__all__ = ["ANALYTICS_TABLE", "SCHEMA_STATEMENTS", "VENUES_TABLE", "ensure_schema"]
