from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session
from backend.app.api.users import build_user_response
from backend.app.core.exceptions import ServiceError, http_error
from backend.app.core.logging import get_logger
from backend.app.schemas import RoleUpdate, UserResponse, ReconcileResponse, DashboardResponse
from backend.app.services.admin import AdminService
from backend.app.services.users import UserService
from backend.app.services.wallets import WalletService

# Admin role is enforced for the whole router in main.py
router = APIRouter()
logger = get_logger(__name__)


@router.get("/dashboard", response_model=DashboardResponse)
async def get_dashboard(session: AsyncSession = Depends(get_session)):
    """User, product, order and subscription counters."""
    return await AdminService(session).get_dashboard()


@router.get("/users", response_model=List[UserResponse])
async def list_users(
    role: Optional[str] = Query(None),
    session: AsyncSession = Depends(get_session),
):
    try:
        users = await UserService(session).list_users(role)
        return [await build_user_response(session, user.id) for user in users]
    except ServiceError as e:
        raise http_error(e)


@router.get("/users/{user_id}", response_model=UserResponse)
async def get_user(user_id: int, session: AsyncSession = Depends(get_session)):
    try:
        return await build_user_response(session, user_id)
    except ServiceError as e:
        raise http_error(e)


@router.put("/users/{user_id}/add-role", response_model=UserResponse)
async def add_role(
    user_id: int,
    data: RoleUpdate,
    session: AsyncSession = Depends(get_session),
):
    """Grant a role; wallet roles get their wallet, sellers get the free trial."""
    try:
        await UserService(session).grant_role(user_id, data.role)
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.warning("Role grant failed", user_id=user_id, role=data.role, error=e.message)
        raise http_error(e)
    return await build_user_response(session, user_id)


@router.put("/users/{user_id}/remove-role", response_model=UserResponse)
async def remove_role(
    user_id: int,
    data: RoleUpdate,
    session: AsyncSession = Depends(get_session),
):
    try:
        await UserService(session).revoke_role(user_id, data.role)
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.warning("Role revoke failed", user_id=user_id, role=data.role, error=e.message)
        raise http_error(e)
    return await build_user_response(session, user_id)


@router.get("/wallets/{wallet_id}/reconcile", response_model=ReconcileResponse)
async def reconcile_wallet(
    wallet_id: int,
    session: AsyncSession = Depends(get_session),
):
    """Stored balance against the replayed transaction log."""
    try:
        return await WalletService(session).reconcile(wallet_id)
    except ServiceError as e:
        raise http_error(e)
