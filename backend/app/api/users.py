from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_current_user, AuthenticatedUser
from backend.app.core.exceptions import ServiceError, http_error
from backend.app.schemas import UserResponse
from backend.app.services.subscription import SubscriptionService
from backend.app.services.users import UserService

router = APIRouter()


async def build_user_response(session: AsyncSession, user_id: int) -> UserResponse:
    """Profile with roles and, for sellers, the subscription projection."""
    users = UserService(session)
    user = await users.get_user(user_id)
    roles = await users.get_roles(user_id)
    seller_info = None
    if "seller" in roles:
        seller_info = await SubscriptionService(session).seller_info(user_id)
    return UserResponse(
        id=user.id,
        name=user.name,
        email=user.email,
        phone=user.phone,
        roles=roles,
        is_available=user.is_available,
        created_at=user.created_at,
        seller_info=seller_info,
    )


@router.get("/me", response_model=UserResponse)
async def get_me(
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await build_user_response(session, current_user.id)
    except ServiceError as e:
        raise http_error(e)
