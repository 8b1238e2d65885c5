from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_current_user, require_roles, AuthenticatedUser
from backend.app.core.exceptions import ServiceError, http_error
from backend.app.core.logging import get_logger
from backend.app.models.order import Order, OrderItem
from backend.app.schemas import (
    OrderCreate,
    OrderResponse,
    OrderItemResponse,
    OrderStatusUpdate,
    AssignDelivery,
    DeliveryStatusUpdate,
    DeliveryProofUpdate,
)
from backend.app.services.orders import OrderService

router = APIRouter()
logger = get_logger(__name__)


def order_response(order: Order, items: List[OrderItem]) -> OrderResponse:
    data = OrderResponse.model_validate(order, from_attributes=True).model_dump(exclude={"items"})
    return OrderResponse(**data, items=[OrderItemResponse.model_validate(i) for i in items])


async def _respond(service: OrderService, order: Order) -> OrderResponse:
    return order_response(order, await service.get_items(order.id))


# --- Checkout ---
@router.post("", response_model=OrderResponse, status_code=201)
async def create_order(
    data: OrderCreate,
    current_user: AuthenticatedUser = Depends(require_roles("buyer")),
    session: AsyncSession = Depends(get_session),
):
    """Place an order. Wallet payment charges the buyer wallet immediately."""
    logger.info(
        "Creating order",
        buyer_id=current_user.id,
        items=len(data.items),
        payment_method=data.payment_method,
    )
    service = OrderService(session)
    try:
        order = await service.create_order(
            buyer_id=current_user.id,
            items=[item.model_dump() for item in data.items],
            shipping_address=data.shipping_address.model_dump(),
            payment_method=data.payment_method,
            payment_details=data.payment_details.model_dump() if data.payment_details else None,
        )
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.warning(
            "Order creation failed",
            buyer_id=current_user.id,
            error=e.message,
            error_code=e.status_code,
        )
        raise http_error(e)
    logger.info("Order created successfully", order_id=order.id, buyer_id=current_user.id)
    return await _respond(service, order)


# --- Reads ---
@router.get("", response_model=List[OrderResponse])
async def list_orders(
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = OrderService(session)
    try:
        orders = await service.list_orders(current_user.id, current_user.roles)
    except ServiceError as e:
        raise http_error(e)
    items = await service.get_items_for_orders(o.id for o in orders)
    return [order_response(o, items.get(o.id, [])) for o in orders]


@router.get("/{order_id}", response_model=OrderResponse)
async def get_order(
    order_id: int,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = OrderService(session)
    try:
        order = await service.get_order(order_id)
        await service.ensure_participant(order, current_user.id, current_user.roles)
    except ServiceError as e:
        raise http_error(e)
    return await _respond(service, order)


# --- Admin ---
@router.put("/{order_id}/status", response_model=OrderResponse)
async def update_order_status(
    order_id: int,
    data: OrderStatusUpdate,
    current_user: AuthenticatedUser = Depends(require_roles("admin")),
    session: AsyncSession = Depends(get_session),
):
    """
    Change order status. Delivered settles a paid order, cancelled/refunded
    refunds it. A failed settlement rolls back the status change too.
    """
    service = OrderService(session)
    try:
        order = await service.update_status(order_id, data.status)
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.warning(
            "Order status update failed",
            order_id=order_id,
            new_status=data.status,
            error=e.message,
            error_code=e.status_code,
        )
        raise http_error(e)
    return await _respond(service, order)


@router.put("/{order_id}/assign-delivery", response_model=OrderResponse)
async def assign_delivery(
    order_id: int,
    data: AssignDelivery,
    current_user: AuthenticatedUser = Depends(require_roles("admin")),
    session: AsyncSession = Depends(get_session),
):
    service = OrderService(session)
    try:
        order = await service.assign_delivery_agent(order_id, data.delivery_agent_id)
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        raise http_error(e)
    return await _respond(service, order)


# --- Delivery agent ---
@router.put("/{order_id}/delivery-status", response_model=OrderResponse)
async def update_delivery_status(
    order_id: int,
    data: DeliveryStatusUpdate,
    current_user: AuthenticatedUser = Depends(require_roles("delivery")),
    session: AsyncSession = Depends(get_session),
):
    service = OrderService(session)
    try:
        order = await service.update_delivery_status(
            order_id,
            agent_id=current_user.id,
            status=data.status,
            proof=data.proof.model_dump(exclude_none=True) if data.proof else None,
        )
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        logger.warning(
            "Delivery status update failed",
            order_id=order_id,
            delivery_agent_id=current_user.id,
            error=e.message,
            error_code=e.status_code,
        )
        raise http_error(e)
    return await _respond(service, order)


@router.put("/{order_id}/delivery-proof", response_model=OrderResponse)
async def attach_delivery_proof(
    order_id: int,
    data: DeliveryProofUpdate,
    current_user: AuthenticatedUser = Depends(require_roles("delivery")),
    session: AsyncSession = Depends(get_session),
):
    service = OrderService(session)
    try:
        order = await service.attach_delivery_proof(
            order_id, current_user.id, data.proof.model_dump(exclude_none=True)
        )
        await session.commit()
    except ServiceError as e:
        await session.rollback()
        raise http_error(e)
    return await _respond(service, order)
