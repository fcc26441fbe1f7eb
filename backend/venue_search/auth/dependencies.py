"""Bearer-token dependencies.

Venue search is public: a token only attributes searches in analytics. The
stats and admin routes require one.
"""
from __future__ import annotations

from typing import Optional

import jwt  # type: ignore[import]
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jwt import InvalidAudienceError, InvalidIssuerError, InvalidTokenError  # type: ignore[import]

from backend.venue_search import config
from backend.venue_search.auth.schemas import AuthContext

_bearer_scheme = HTTPBearer(auto_error=False)

_TOKEN_ERRORS = (
    (InvalidAudienceError, "Invalid token audience"),
    (InvalidIssuerError, "Invalid token issuer"),
    (InvalidTokenError, "Invalid authentication credentials"),
)


class TokenRejected(Exception):
    pass


def decode_bearer(token: str) -> AuthContext:
    """Verify a platform token and return its identity, or raise `TokenRejected`."""

    if not config.APP_JWT_SECRET:
        raise TokenRejected("APP_JWT_SECRET is not configured")
    try:
        claims = jwt.decode(
            token,
            config.APP_JWT_SECRET,
            algorithms=[config.APP_JWT_ALGORITHM],
            audience=config.APP_JWT_AUDIENCE,
            issuer=config.APP_JWT_ISSUER,
            options={"require": ["exp", "iat", "sub"]},
        )
    except InvalidTokenError as exc:
        reason = next(message for error, message in _TOKEN_ERRORS if isinstance(exc, error))
        raise TokenRejected(reason) from exc

    try:
        return AuthContext.from_claims(claims)
    except ValueError as exc:
        raise TokenRejected(str(exc)) from exc


async def require_authenticated_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> AuthContext:
    if credentials is None:
        reason = "Missing bearer token"
    else:
        try:
            context = decode_bearer(credentials.credentials)
        except TokenRejected as exc:
            reason = str(exc)
        else:
            request.state.auth = context
            return context

    raise HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=reason,
        headers={"WWW-Authenticate": "Bearer"},
    )


async def require_admin_user(context: AuthContext = Depends(require_authenticated_user)) -> AuthContext:
    if not context.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin privileges required")
    return context


async def search_caller_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer_scheme),
) -> Optional[str]:
    """Subject of a valid bearer token, recorded with the search; None for anonymous or bad tokens."""

    if credentials is None:
        return None
    try:
        return decode_bearer(credentials.credentials).subject
    except TokenRejected:
        return None
