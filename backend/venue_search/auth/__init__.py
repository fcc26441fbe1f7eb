"""Authentication helpers and dependencies for the FastAPI backend."""

from .schemas import AuthContext

__all__ = ["AuthContext"]
