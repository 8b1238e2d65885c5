from dataclasses import dataclass
from typing import AsyncGenerator, Optional, Tuple

from fastapi import Depends, Header, HTTPException
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.auth import decode_access_token, extract_bearer_token
from backend.app.core.database import async_session
from backend.app.core.logging import bind_request_context
from backend.app.models.user import User, UserRole


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """One database session per request."""
    async with async_session() as session:
        yield session


@dataclass(frozen=True)
class AuthenticatedUser:
    id: int
    name: str
    email: str
    roles: Tuple[str, ...]

    def has_role(self, *roles: str) -> bool:
        return any(role in self.roles for role in roles)


async def get_current_user(
    authorization: Optional[str] = Header(None),
    session: AsyncSession = Depends(get_session),
) -> AuthenticatedUser:
    """
    FastAPI dependency: resolve the bearer token to a user and their roles.

    Raises:
        HTTPException 401: Missing, malformed, invalid or expired token,
                           or the user no longer exists
    """
    token = extract_bearer_token(authorization)
    user_id = decode_access_token(token)
    if not user_id:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    user = await session.get(User, user_id)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    result = await session.execute(
        select(UserRole.role).where(UserRole.user_id == user_id).order_by(UserRole.id)
    )
    roles = tuple(result.scalars().all())
    bind_request_context(user_id=user_id)
    return AuthenticatedUser(id=user.id, name=user.name, email=user.email, roles=roles)


def require_roles(*roles: str):
    """Dependency factory: the caller must hold at least one of `roles`."""
    async def checker(current_user: AuthenticatedUser = Depends(get_current_user)) -> AuthenticatedUser:
        if not current_user.has_role(*roles):
            raise HTTPException(status_code=403, detail="Access denied. Insufficient permissions")
        return current_user
    return checker
