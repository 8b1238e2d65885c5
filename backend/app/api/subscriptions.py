"""
Subscription API endpoints for seller subscription management.
Wallet payments activate immediately; other methods leave the subscription pending.
"""
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, require_roles, AuthenticatedUser
from backend.app.core.constants import CURRENCY
from backend.app.core.exceptions import ServiceError, http_error
from backend.app.core.logging import get_logger
from backend.app.schemas import (
    SubscriptionCreate,
    SubscriptionRenew,
    SubscriptionChangePlan,
    SubscriptionResponse,
    SubscriptionCreateResponse,
    SubscriptionWithSeller,
    SellerSummary,
)
from backend.app.services.subscription import SubscriptionService

logger = get_logger(__name__)

router = APIRouter()

require_seller = require_roles("seller")
require_admin = require_roles("admin")


# ---------- Public ----------

@router.get("/prices")
async def get_subscription_prices():
    """Plan price table in XOF."""
    return {
        "currency": CURRENCY,
        "prices": SubscriptionService.get_prices(),
    }


# ---------- Seller ----------

@router.get("", response_model=SubscriptionResponse)
async def get_my_subscription(
    current_user: AuthenticatedUser = Depends(require_seller),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await SubscriptionService(session).require_subscription(current_user.id)
    except ServiceError as e:
        raise http_error(e)


@router.post("", response_model=SubscriptionCreateResponse)
async def create_subscription(
    data: SubscriptionCreate,
    current_user: AuthenticatedUser = Depends(require_seller),
    session: AsyncSession = Depends(get_session),
):
    """Create or replace the seller's subscription."""
    service = SubscriptionService(session)
    try:
        sub, is_new = await service.subscribe(
            current_user.id, data.plan, data.payment_method, auto_renew=data.auto_renew
        )
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.warning("Subscription failed", seller_id=current_user.id, plan=data.plan, error=e.message)
        raise http_error(e)
    return SubscriptionCreateResponse(subscription=SubscriptionResponse.model_validate(sub), is_new=is_new)


@router.put("/renew", response_model=SubscriptionResponse)
async def renew_subscription(
    data: SubscriptionRenew,
    current_user: AuthenticatedUser = Depends(require_seller),
    session: AsyncSession = Depends(get_session),
):
    service = SubscriptionService(session)
    try:
        sub = await service.renew(current_user.id, data.payment_method)
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.warning("Subscription renewal failed", seller_id=current_user.id, error=e.message)
        raise http_error(e)
    return sub


@router.put("/change-plan", response_model=SubscriptionResponse)
async def change_plan(
    data: SubscriptionChangePlan,
    current_user: AuthenticatedUser = Depends(require_seller),
    session: AsyncSession = Depends(get_session),
):
    service = SubscriptionService(session)
    try:
        sub = await service.change_plan(current_user.id, data.plan, data.payment_method)
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.warning("Plan change failed", seller_id=current_user.id, plan=data.plan, error=e.message)
        raise http_error(e)
    return sub


@router.put("/cancel", response_model=SubscriptionResponse)
async def cancel_subscription(
    current_user: AuthenticatedUser = Depends(require_seller),
    session: AsyncSession = Depends(get_session),
):
    service = SubscriptionService(session)
    try:
        sub = await service.cancel(current_user.id)
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        raise http_error(e)
    return sub


# ---------- Admin ----------

def _with_seller(rows) -> List[SubscriptionWithSeller]:
    return [
        SubscriptionWithSeller(
            **SubscriptionResponse.model_validate(sub).model_dump(),
            seller=SellerSummary.model_validate(user),
        )
        for sub, user in rows
    ]


@router.get("/admin/expiring", response_model=List[SubscriptionWithSeller])
async def expiring_subscriptions(
    days: int = Query(7, ge=0, le=366),
    current_user: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Active subscriptions ending within `days`."""
    return _with_seller(await SubscriptionService(session).find_expiring(days))


@router.get("/admin/expired", response_model=List[SubscriptionWithSeller])
async def expired_subscriptions(
    current_user: AuthenticatedUser = Depends(require_admin),
    session: AsyncSession = Depends(get_session),
):
    """Subscriptions still marked active past their end date."""
    return _with_seller(await SubscriptionService(session).find_expired())
