from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, require_roles, AuthenticatedUser
from backend.app.api.orders import order_response
from backend.app.core.exceptions import ServiceError, http_error
from backend.app.core.logging import get_logger
from backend.app.schemas import AvailabilityUpdate, DeliveryStatsResponse, OrderResponse
from backend.app.services.delivery import DeliveryService
from backend.app.services.orders import OrderService
from backend.app.services.users import UserService

router = APIRouter()
logger = get_logger(__name__)

require_delivery = require_roles("delivery")


@router.put("/availability")
async def update_availability(
    data: AvailabilityUpdate,
    current_user: AuthenticatedUser = Depends(require_delivery),
    session: AsyncSession = Depends(get_session),
):
    try:
        user = await UserService(session).set_availability(current_user.id, data.is_available)
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        raise http_error(e)
    return {"success": True, "is_available": user.is_available}


@router.get("/pending", response_model=List[OrderResponse])
async def pending_deliveries(
    current_user: AuthenticatedUser = Depends(require_delivery),
    session: AsyncSession = Depends(get_session),
):
    """Paid orders that still need an agent."""
    orders = await DeliveryService(session).list_pending()
    items = await OrderService(session).get_items_for_orders(o.id for o in orders)
    return [order_response(o, items.get(o.id, [])) for o in orders]


@router.get("/assigned", response_model=List[OrderResponse])
async def assigned_deliveries(
    current_user: AuthenticatedUser = Depends(require_delivery),
    session: AsyncSession = Depends(get_session),
):
    orders = await DeliveryService(session).list_assigned(current_user.id)
    items = await OrderService(session).get_items_for_orders(o.id for o in orders)
    return [order_response(o, items.get(o.id, [])) for o in orders]


@router.put("/accept/{order_id}", response_model=OrderResponse)
async def accept_delivery(
    order_id: int,
    current_user: AuthenticatedUser = Depends(require_delivery),
    session: AsyncSession = Depends(get_session),
):
    """Self-assign an open delivery."""
    service = OrderService(session)
    try:
        order = await service.accept_delivery(order_id, current_user.id)
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.warning("Delivery accept failed", order_id=order_id, delivery_agent_id=current_user.id, error=e.message)
        raise http_error(e)
    return order_response(order, await service.get_items(order.id))


@router.get("/stats", response_model=DeliveryStatsResponse)
async def delivery_stats(
    current_user: AuthenticatedUser = Depends(require_delivery),
    session: AsyncSession = Depends(get_session),
):
    try:
        return await DeliveryService(session).get_stats(current_user.id)
    except ServiceError as e:
        raise http_error(e)
