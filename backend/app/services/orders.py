# backend/app/services/orders.py
"""
Order service - checkout, status transitions and delivery assignment.

Checkout with wallet payment debits the buyer, marks the order paid and
decrements stock in one unit of work. Moving an order to `delivered`
settles it; moving it to `cancelled`/`refunded` refunds the buyer. All
methods leave committing to the caller, which rolls back on any
OrderServiceError or SettlementFailure.
"""
from collections import defaultdict
from datetime import timedelta
from decimal import Decimal
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy import select, update, or_
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.constants import (
    CURRENCY,
    ORDER_STATUSES,
    ORDER_STATUS_RANK,
    TERMINAL_ORDER_STATUSES,
    ORDER_PAYMENT_METHODS,
    AGENT_DELIVERY_STATUSES,
    DELIVERY_STATUS_RANK,
)
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import orders_created_total
from backend.app.core.settings import get_settings
from backend.app.models.order import Order, OrderItem
from backend.app.models.product import Product
from backend.app.models.user import User, UserRole
from backend.app.services.fees import FeeSchedule
from backend.app.services.settlement import SettlementService
from backend.app.services.wallets import WalletService, InsufficientBalanceError

logger = get_logger(__name__)


class OrderServiceError(ServiceError):
    """Base exception for order service errors."""


class OrderNotFoundError(OrderServiceError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} not found", 404)


class ProductNotFoundError(OrderServiceError):
    def __init__(self, product_id: int):
        super().__init__(f"Product {product_id} not found", 404)


class ProductUnavailableError(OrderServiceError):
    def __init__(self, product_name: str):
        super().__init__(f"Product {product_name} is not available")


class InsufficientStockError(OrderServiceError):
    def __init__(self, product_name: str, available: int):
        super().__init__(
            f"Not enough stock for {product_name}. Available: {available}",
            400,
            details={"available": available},
        )


class InvalidOrderStatusError(OrderServiceError):
    def __init__(self, order_id: int, current_status: str, new_status: str):
        super().__init__(
            f"Order {order_id} cannot move from '{current_status}' to '{new_status}'",
            400
        )


class OrderAccessDeniedError(OrderServiceError):
    def __init__(self, order_id: int):
        super().__init__(f"Not authorized to access order {order_id}", 403)


class DeliveryAgentNotFoundError(OrderServiceError):
    def __init__(self, agent_id: int):
        super().__init__(f"Valid delivery agent {agent_id} not found", 404)


class DeliveryAlreadyAssignedError(OrderServiceError):
    def __init__(self, order_id: int):
        super().__init__(f"Order {order_id} already has a delivery agent", 409)


class OrderService:
    """Service class for order operations."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.wallets = WalletService(session)
        self.settlement = SettlementService(session)

    # -- Lookup ----------------------------------------------------------------

    async def get_order(self, order_id: int) -> Order:
        order = await self.session.get(Order, order_id)
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    async def _get_order_for_update(self, order_id: int) -> Order:
        """Get order with row-level lock for state transitions."""
        result = await self.session.execute(
            select(Order).where(Order.id == order_id).with_for_update()
        )
        order = result.scalar_one_or_none()
        if not order:
            raise OrderNotFoundError(order_id)
        return order

    async def get_items(self, order_id: int) -> List[OrderItem]:
        result = await self.session.execute(
            select(OrderItem).where(OrderItem.order_id == order_id).order_by(OrderItem.id)
        )
        return list(result.scalars().all())

    async def get_items_for_orders(self, order_ids: Iterable[int]) -> Dict[int, List[OrderItem]]:
        ids = list(order_ids)
        grouped: Dict[int, List[OrderItem]] = defaultdict(list)
        if not ids:
            return grouped
        result = await self.session.execute(
            select(OrderItem).where(OrderItem.order_id.in_(ids)).order_by(OrderItem.id)
        )
        for item in result.scalars().all():
            grouped[item.order_id].append(item)
        return grouped

    async def ensure_participant(self, order: Order, user_id: int, roles: Iterable[str]) -> None:
        """Buyer, assigned agent, a seller of any line, or admin/customer service."""
        roles = set(roles)
        if roles & {"admin", "customer_service"}:
            return
        if order.buyer_id == user_id or order.delivery_agent_id == user_id:
            return
        if "seller" in roles:
            result = await self.session.execute(
                select(OrderItem.id)
                .where(OrderItem.order_id == order.id, OrderItem.seller_id == user_id)
                .limit(1)
            )
            if result.scalar_one_or_none() is not None:
                return
        raise OrderAccessDeniedError(order.id)

    async def list_orders(self, user_id: int, roles: Iterable[str]) -> List[Order]:
        """Orders visible to the user, newest first."""
        roles = set(roles)
        query = select(Order).order_by(Order.created_at.desc(), Order.id.desc())
        if not roles & {"admin", "customer_service"}:
            conditions = []
            if "buyer" in roles:
                conditions.append(Order.buyer_id == user_id)
            if "seller" in roles:
                conditions.append(
                    Order.id.in_(select(OrderItem.order_id).where(OrderItem.seller_id == user_id))
                )
            if "delivery" in roles:
                conditions.append(Order.delivery_agent_id == user_id)
            if not conditions:
                raise OrderServiceError("Not authorized to view orders", 403)
            query = query.where(or_(*conditions))
        result = await self.session.execute(query)
        return list(result.scalars().all())

    # -- Checkout --------------------------------------------------------------

    async def create_order(
        self,
        buyer_id: int,
        items: List[Dict[str, Any]],
        shipping_address: Dict[str, Any],
        payment_method: str,
        payment_details: Optional[Dict[str, Any]] = None,
        now=None,
    ) -> Order:
        """
        Create an order and, for wallet payment, charge the buyer.

        Args:
            buyer_id: User id of the buyer
            items: [{"product_id": int, "quantity": int}, ...]
            shipping_address: street/city/state/country/zip_code/coordinates
            payment_method: wallet, mobile_money, credit_card or bank_transfer
            payment_details: Optional provider data for non-wallet methods

        Returns:
            Created Order object

        Raises:
            ProductNotFoundError, ProductUnavailableError, InsufficientStockError,
            InsufficientBalanceError, WalletNotFoundError
        """
        if not items:
            raise OrderServiceError("Order must contain at least one item")
        if payment_method not in ORDER_PAYMENT_METHODS:
            raise OrderServiceError(
                f"Invalid payment method '{payment_method}'. Must be one of: {', '.join(ORDER_PAYMENT_METHODS)}"
            )
        now = now or utcnow()

        lines = []
        requested: Dict[int, int] = defaultdict(int)
        for item in items:
            product_id = int(item["product_id"])
            quantity = int(item["quantity"])
            if quantity < 1:
                raise OrderServiceError("Quantity must be at least 1")
            product = await self.session.get(Product, product_id)
            if not product:
                raise ProductNotFoundError(product_id)
            if not product.is_available:
                raise ProductUnavailableError(product.name)
            requested[product_id] += quantity
            if requested[product_id] > product.stock:
                raise InsufficientStockError(product.name, product.stock)
            unit_price = Decimal(str(product.price))
            lines.append((product, quantity, unit_price, unit_price * quantity))

        fees = FeeSchedule.from_settings()
        total = fees.order_total(subtotal for _, _, _, subtotal in lines)

        buyer_wallet = None
        if payment_method == "wallet":
            buyer_wallet = await self.wallets.get_wallet(buyer_id, "buyer")
            if not self.wallets.has_sufficient_balance(buyer_wallet, total):
                raise InsufficientBalanceError(total, Decimal(str(buyer_wallet.balance)))

        details = payment_details or {}
        order = Order(
            buyer_id=buyer_id,
            total_amount=total,
            platform_fee=fees.platform_fee,
            delivery_fee=fees.delivery_fee,
            admin_fee=fees.admin_fee,
            currency=CURRENCY,
            status="pending",
            payment_status="pending",
            payment_method=payment_method,
            payment_reference=details.get("transaction_id"),
            payment_provider=details.get("provider"),
            shipping_address=shipping_address,
            delivery_status="pending",
            estimated_delivery_date=now + timedelta(days=get_settings().ESTIMATED_DELIVERY_DAYS),
            created_at=now,
        )
        self.session.add(order)
        await self.session.flush()

        for product, quantity, unit_price, subtotal in lines:
            self.session.add(OrderItem(
                order_id=order.id,
                product_id=product.id,
                seller_id=product.seller_id,
                quantity=quantity,
                unit_price=unit_price,
                subtotal=subtotal,
            ))
        await self.session.flush()

        if buyer_wallet is not None:
            tx = await self.wallets.add_transaction(
                buyer_wallet,
                "payment",
                total,
                description=f"Payment for order #{order.id}",
                related_order_id=order.id,
                payment_method="wallet",
                provider="internal",
            )
            order.payment_status = "paid"
            order.status = "processing"
            order.payment_reference = tx.reference
            order.payment_provider = "wallet"
            order.paid_at = now
            for product_id, quantity in requested.items():
                await self._decrement_stock(product_id, quantity)
            await self.session.flush()

        orders_created_total.labels(payment_method=payment_method).inc()
        logger.info(
            "Order created",
            order_id=order.id,
            buyer_id=buyer_id,
            total_amount=str(total),
            items=len(lines),
            payment_method=payment_method,
            payment_status=order.payment_status,
        )
        return order

    async def _decrement_stock(self, product_id: int, quantity: int) -> None:
        """Conditional decrement; availability is cleared when stock reaches zero."""
        result = await self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock >= quantity)
            .values(stock=Product.stock - quantity)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            product = await self.session.get(Product, product_id)
            await self.session.refresh(product)
            raise InsufficientStockError(product.name, product.stock)
        await self.session.execute(
            update(Product)
            .where(Product.id == product_id, Product.stock == 0)
            .values(is_available=False)
            .execution_options(synchronize_session=False)
        )
        product = await self.session.get(Product, product_id)
        if product is not None:
            await self.session.refresh(product)

    # -- Status ----------------------------------------------------------------

    async def update_status(self, order_id: int, new_status: str, now=None) -> Order:
        """
        Admin status change.

        Forward-only through pending/processing/shipped/delivered; cancelled
        and refunded are reachable from any non-terminal status. Delivering a
        paid order settles it, cancelling or refunding a paid order refunds
        the buyer.
        """
        if new_status not in ORDER_STATUSES:
            raise OrderServiceError(f"Invalid status '{new_status}'. Must be one of: {', '.join(ORDER_STATUSES)}")
        order = await self._get_order_for_update(order_id)
        current = order.status

        if current in TERMINAL_ORDER_STATUSES or new_status == current:
            raise InvalidOrderStatusError(order_id, current, new_status)
        if new_status in ORDER_STATUS_RANK and ORDER_STATUS_RANK[new_status] < ORDER_STATUS_RANK[current]:
            raise InvalidOrderStatusError(order_id, current, new_status)

        now = now or utcnow()
        order.status = new_status
        if new_status == "delivered":
            order.actual_delivery_date = now
            if order.payment_status == "paid":
                await self.settlement.settle_delivered_order(order)
        elif new_status in ("cancelled", "refunded") and order.payment_status == "paid":
            await self.settlement.refund_order(order)

        await self.session.flush()
        logger.info(
            "Order status updated",
            order_id=order_id,
            old_status=current,
            new_status=new_status,
            payment_status=order.payment_status,
        )
        return order

    # -- Delivery --------------------------------------------------------------

    async def _claim_delivery(self, order: Order, agent_id: int) -> None:
        """Single assignment: only an order without an agent can be claimed."""
        result = await self.session.execute(
            update(Order)
            .where(Order.id == order.id, Order.delivery_agent_id.is_(None))
            .values(delivery_agent_id=agent_id, delivery_status="assigned")
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise DeliveryAlreadyAssignedError(order.id)
        order.delivery_agent_id = agent_id
        order.delivery_status = "assigned"

    async def _is_delivery_agent(self, user_id: int) -> bool:
        result = await self.session.execute(
            select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role == "delivery")
        )
        return result.scalar_one_or_none() is not None

    async def assign_delivery_agent(self, order_id: int, agent_id: int) -> Order:
        """Admin assignment. Caller must commit."""
        if not await self._is_delivery_agent(agent_id):
            raise DeliveryAgentNotFoundError(agent_id)
        order = await self._get_order_for_update(order_id)
        if order.status in TERMINAL_ORDER_STATUSES:
            raise OrderServiceError(f"Order {order_id} is {order.status}; delivery cannot be assigned")
        if order.delivery_agent_id is not None:
            raise DeliveryAlreadyAssignedError(order_id)
        await self._claim_delivery(order, agent_id)
        logger.info("Delivery agent assigned", order_id=order_id, delivery_agent_id=agent_id)
        return order

    async def accept_delivery(self, order_id: int, agent_id: int) -> Order:
        """Self-assignment by an available agent. Caller must commit."""
        order = await self._get_order_for_update(order_id)
        if (
            order.status != "processing"
            or order.delivery_status != "pending"
            or order.delivery_agent_id is not None
        ):
            raise OrderServiceError("Order is not available for delivery")
        agent = await self.session.get(User, agent_id)
        if not agent or not agent.is_available:
            raise OrderServiceError("Delivery agent is not available")
        await self._claim_delivery(order, agent_id)
        logger.info("Delivery accepted", order_id=order_id, delivery_agent_id=agent_id)
        return order

    async def update_delivery_status(
        self,
        order_id: int,
        agent_id: int,
        status: str,
        proof: Optional[Dict[str, Any]] = None,
        now=None,
    ) -> Order:
        """
        Delivery progress reported by the assigned agent.

        `delivered` merges the proof, marks the order delivered and settles
        it when paid. Caller must commit.
        """
        if status not in AGENT_DELIVERY_STATUSES:
            raise OrderServiceError(
                f"Invalid delivery status '{status}'. Must be one of: {', '.join(AGENT_DELIVERY_STATUSES)}"
            )
        order = await self._get_order_for_update(order_id)
        if order.delivery_agent_id is None or order.delivery_agent_id != agent_id:
            raise OrderServiceError("Not authorized to update this order", 403)
        if order.status in ("cancelled", "refunded", "delivered"):
            raise OrderServiceError(f"Order {order_id} is {order.status}")

        current = order.delivery_status
        if current in ("delivered", "failed"):
            raise OrderServiceError(f"Delivery of order {order_id} is already {current}")
        if status != "failed" and DELIVERY_STATUS_RANK[status] <= DELIVERY_STATUS_RANK[current]:
            raise OrderServiceError(f"Delivery status cannot move from '{current}' to '{status}'")

        now = now or utcnow()
        order.delivery_status = status
        if status == "delivered":
            merged = dict(order.delivery_proof or {})
            merged.update(proof or {})
            merged["delivery_date"] = now.isoformat()
            order.delivery_proof = merged
            order.actual_delivery_date = now
            order.status = "delivered"
            if order.payment_status == "paid":
                await self.settlement.settle_delivered_order(order)

        await self.session.flush()
        logger.info(
            "Delivery status updated",
            order_id=order_id,
            delivery_agent_id=agent_id,
            old_status=current,
            new_status=status,
            payment_status=order.payment_status,
        )
        return order

    async def attach_delivery_proof(self, order_id: int, agent_id: int, proof: Dict[str, Any]) -> Order:
        """Attach or extend the proof of a delivered order. Caller must commit."""
        order = await self._get_order_for_update(order_id)
        if order.delivery_agent_id != agent_id:
            raise OrderServiceError("Not authorized to update this order", 403)
        if order.delivery_status != "delivered":
            raise OrderServiceError(f"Order {order_id} has not been delivered")
        merged = dict(order.delivery_proof or {})
        merged.update(proof)
        order.delivery_proof = merged
        await self.session.flush()
        logger.info("Delivery proof attached", order_id=order_id, fields=sorted(proof))
        return order
