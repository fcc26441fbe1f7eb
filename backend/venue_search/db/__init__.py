"""Primary store access for venue search."""

from .postgres import PostgresClient
from .schema import ensure_schema

__all__ = ["PostgresClient", "ensure_schema"]
