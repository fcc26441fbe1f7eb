from __future__ import annotations

from typing import Optional


class QueryError(RuntimeError):
    """Raised when the primary store cannot answer a search or facet query.

    This is the only failure the search pipeline lets reach its callers.
    """

    def __init__(self, message: str, *, operation: Optional[str] = None) -> None:
        super().__init__(message)
        self.operation = operation


__all__ = ["QueryError"]
