"""
JWT bearer token helpers.

Tokens are issued by an external identity service in production; this module
only signs (for scripts and tests) and verifies them. Claim `sub` holds the
user id.
"""
from datetime import timedelta
from typing import Optional

import jwt
from fastapi import HTTPException

from backend.app.core.clock import utcnow
from backend.app.core.settings import get_settings

JWT_ALGORITHM = "HS256"


def create_access_token(user_id: int, expires_in: Optional[timedelta] = None) -> str:
    """
    Create a signed access token for a user.

    Args:
        user_id: Marketplace user id
        expires_in: Token lifetime (defaults to JWT_EXPIRY_HOURS)

    Returns:
        JWT token string
    """
    settings = get_settings()
    now = utcnow()
    lifetime = expires_in if expires_in is not None else timedelta(hours=settings.JWT_EXPIRY_HOURS)
    payload = {
        "sub": str(user_id),
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> Optional[int]:
    """Decode token and return the user id, or None if invalid or expired."""
    try:
        payload = jwt.decode(token, get_settings().jwt_secret, algorithms=[JWT_ALGORITHM])
        return int(payload["sub"])
    except (jwt.InvalidTokenError, ValueError, KeyError):
        return None


def extract_bearer_token(authorization: Optional[str]) -> str:
    """
    Extract token from "Bearer <token>".

    Raises:
        HTTPException 401: If the header is missing or malformed
    """
    if not authorization:
        raise HTTPException(
            status_code=401,
            detail="Missing Authorization header"
        )

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise HTTPException(
            status_code=401,
            detail="Invalid Authorization header format. Expected: Bearer <token>"
        )
    return parts[1]
