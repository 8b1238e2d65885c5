# backend/app/services/users.py
"""
User service - accounts, roles and the side effects of granting a role.
"""
from typing import Optional, List, Iterable

from sqlalchemy import select, delete
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import USER_ROLES, WALLET_TYPES
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.models.user import User, UserRole
from backend.app.services.subscription import SubscriptionService
from backend.app.services.wallets import WalletService

logger = get_logger(__name__)


class UserServiceError(ServiceError):
    """Base exception for user service errors."""


class UserNotFoundError(UserServiceError):
    def __init__(self, user_id: int):
        super().__init__(f"User {user_id} not found", 404)


class InvalidRoleError(UserServiceError):
    def __init__(self, role: str):
        super().__init__(f"Invalid role '{role}'. Must be one of: {', '.join(USER_ROLES)}")


class UserExistsError(UserServiceError):
    def __init__(self, email: str):
        super().__init__(f"User with email {email} already exists", 409)


class UserService:
    """Service class for user and role operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: int) -> User:
        user = await self.session.get(User, user_id)
        if not user:
            raise UserNotFoundError(user_id)
        return user

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.session.execute(select(User).where(User.email == email))
        return result.scalar_one_or_none()

    async def list_users(self, role: Optional[str] = None) -> List[User]:
        """All users by id, optionally only those holding `role`."""
        query = select(User).order_by(User.id)
        if role is not None:
            if role not in USER_ROLES:
                raise InvalidRoleError(role)
            query = query.where(User.id.in_(select(UserRole.user_id).where(UserRole.role == role)))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def get_roles(self, user_id: int) -> List[str]:
        result = await self.session.execute(
            select(UserRole.role).where(UserRole.user_id == user_id).order_by(UserRole.id)
        )
        return list(result.scalars().all())

    async def create_user(
        self,
        name: str,
        email: str,
        phone: Optional[str] = None,
        roles: Iterable[str] = ("buyer",),
    ) -> User:
        """Create a user and run the grant side effects for every initial role. Caller must commit."""
        roles = list(roles)
        for role in roles:
            if role not in USER_ROLES:
                raise InvalidRoleError(role)
        if await self.get_by_email(email):
            raise UserExistsError(email)

        user = User(name=name, email=email, phone=phone)
        self.session.add(user)
        await self.session.flush()
        for role in dict.fromkeys(roles):
            await self._attach_role(user, role)
        logger.info("User created", user_id=user.id, roles=roles)
        return user

    async def grant_role(self, user_id: int, role: str) -> User:
        """
        Add a role to a user.

        Wallet roles get their wallet; the first seller grant starts the free
        trial. Caller must commit.
        """
        if role not in USER_ROLES:
            raise InvalidRoleError(role)
        user = await self.get_user(user_id)
        if role in await self.get_roles(user_id):
            raise UserServiceError(f"User already has {role} role")
        await self._attach_role(user, role)
        logger.info("Role granted", user_id=user_id, role=role)
        return user

    async def _attach_role(self, user: User, role: str) -> None:
        self.session.add(UserRole(user_id=user.id, role=role))
        await self.session.flush()
        if role in WALLET_TYPES:
            await WalletService(self.session).create_wallet(user.id, role)
        if role == "seller":
            subscriptions = SubscriptionService(self.session)
            if not await subscriptions.get_subscription(user.id):
                await subscriptions.create_free_trial(user.id)

    async def revoke_role(self, user_id: int, role: str) -> User:
        """Remove a role. Wallets are kept. Caller must commit."""
        if role not in USER_ROLES:
            raise InvalidRoleError(role)
        user = await self.get_user(user_id)
        roles = await self.get_roles(user_id)
        if role not in roles:
            raise UserServiceError(f"User does not have {role} role")
        if len(roles) == 1:
            raise UserServiceError("Cannot remove the last role")
        await self.session.execute(
            delete(UserRole).where(UserRole.user_id == user_id, UserRole.role == role)
        )
        logger.info("Role revoked", user_id=user_id, role=role)
        return user

    async def set_availability(self, user_id: int, is_available: bool) -> User:
        user = await self.get_user(user_id)
        user.is_available = is_available
        await self.session.flush()
        logger.info("Delivery availability updated", user_id=user_id, is_available=is_available)
        return user
