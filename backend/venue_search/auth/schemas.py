from __future__ import annotations

from typing import Any, Dict, Mapping, Optional
from pydantic import BaseModel


class AuthContext(BaseModel):
    """Identity read from a bearer token issued by the platform's auth service."""

    subject: str
    role: str
    email: Optional[str] = None
    expires_at: Optional[int] = None
    claims: Dict[str, Any]

    @classmethod
    def from_claims(cls, claims: Mapping[str, Any]) -> "AuthContext":
        subject = claims.get("sub")
        if not isinstance(subject, str) or not subject:
            raise ValueError("Invalid token subject")

        email = claims.get("email")
        expires_at = claims.get("exp")
        return cls(
            subject=subject,
            role=str(claims.get("role", "user")),
            email=email if isinstance(email, str) else None,
            expires_at=expires_at if isinstance(expires_at, int) else None,
            claims=dict(claims),
        )

    @property
    def is_admin(self) -> bool:
        return self.role.lower() == "admin"
