"""Bearer JWT handling for staff and employee accounts.

Tokens are issued by the identity service; this module only verifies them
and reads the subject. Role and organization are taken from the database so
a deactivated or moved user loses access immediately.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from uuid import UUID

from jose import JWTError, jwt

from onboarding_engine.config import Settings

ACCESS_TOKEN_TYPE = "access"


def create_access_token(
    user_id: UUID,
    settings: Settings,
    expires_delta: timedelta | None = None,
) -> str:
    """Create a signed access token for ``user_id``."""
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))
    payload = {
        "sub": str(user_id),
        "exp": expire,
        "type": ACCESS_TOKEN_TYPE,
    }
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str, settings: Settings) -> UUID | None:
    """Return the subject user id, or None for any invalid or expired token."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        if payload.get("type", ACCESS_TOKEN_TYPE) != ACCESS_TOKEN_TYPE:
            return None
        return UUID(payload["sub"])
    except (JWTError, KeyError, TypeError, ValueError):
        return None
