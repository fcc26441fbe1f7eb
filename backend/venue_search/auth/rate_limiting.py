from __future__ import annotations

from typing import Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter  # type: ignore[import]
from slowapi.errors import RateLimitExceeded  # type: ignore[import]
from slowapi.util import get_remote_address  # type: ignore[import]

from backend.venue_search import config


def client_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # A comma-separated chain of IPs may be present; use the originating address.
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def _rate_limit_key(request: Request) -> str:
    auth = getattr(request.state, "auth", None)
    if auth and getattr(auth, "subject", None):
        return f"user:{auth.subject}"
    address = client_ip(request)
    if address:
        return f"ip:{address}"
    return get_remote_address(request)


limiter = Limiter(key_func=_rate_limit_key, headers_enabled=True)


def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    retry_after = exc.reset_in if hasattr(exc, "reset_in") else None
    headers = {"Retry-After": str(int(retry_after))} if retry_after else {}
    return JSONResponse(status_code=429, content={"detail": "Rate limit exceeded"}, headers=headers)


def search_rate_limit() -> str:
    return config.SEARCH_RATE_LIMIT


def facets_rate_limit() -> str:
    return config.FACETS_RATE_LIMIT


def suggestions_rate_limit() -> str:
    return config.SUGGESTIONS_RATE_LIMIT
