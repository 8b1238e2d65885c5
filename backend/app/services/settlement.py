# backend/app/services/settlement.py
"""
Settlement engine - pays out a delivered order and refunds a cancelled one.

Every payout runs inside the caller's database transaction. The order is
first claimed with a conditional payment-status update (paid -> released or
paid -> refunded), so two concurrent triggers cannot both pay out. Any failing
step raises SettlementFailure and the caller rolls back the whole unit of
work: no wallet is credited and the order keeps its previous state.
"""
from collections import OrderedDict
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import ALLOWED_PAYMENT_TRANSITIONS
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import settlements_total
from backend.app.core.settings import get_settings
from backend.app.models.order import Order, OrderItem
from backend.app.models.user import UserRole
from backend.app.services.wallets import WalletService

logger = get_logger(__name__)


class SettlementFailure(ServiceError):
    """A settlement step failed; nothing from this settlement may be kept."""

    def __init__(self, order_id: int, completed_steps: List[str], failed_step: str, reason: str):
        super().__init__(
            f"Settlement of order {order_id} failed at '{failed_step}': {reason}",
            409,
            details={"completed_steps": list(completed_steps), "failed_step": failed_step},
        )
        self.order_id = order_id
        self.completed_steps = list(completed_steps)
        self.failed_step = failed_step


class SettlementService:
    """Splits paid orders between sellers, delivery agent and the platform."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.wallets = WalletService(session)

    async def resolve_platform_admin_id(self) -> Optional[int]:
        """Configured PLATFORM_ADMIN_ID, else the first admin by user id."""
        configured = get_settings().PLATFORM_ADMIN_ID
        if configured is not None:
            return configured
        result = await self.session.execute(
            select(UserRole.user_id)
            .where(UserRole.role == "admin")
            .order_by(UserRole.user_id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def _claim(self, order: Order, to_status: str) -> bool:
        """Move payment_status paid -> to_status if nobody else did. Returns False if already claimed."""
        if to_status not in ALLOWED_PAYMENT_TRANSITIONS["paid"]:
            raise ValueError(f"paid -> {to_status} is not a payment transition")
        result = await self.session.execute(
            update(Order)
            .where(Order.id == order.id, Order.payment_status == "paid")
            .values(payment_status=to_status)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            order.payment_status = to_status
            return True
        current = (
            await self.session.execute(select(Order.payment_status).where(Order.id == order.id))
        ).scalar_one()
        if current == to_status:
            return False
        raise SettlementFailure(
            order.id, [], "claim", f"payment status is '{current}', expected 'paid'"
        )

    async def _credit(
        self,
        order: Order,
        steps: List[str],
        step: str,
        owner_id: int,
        wallet_type: str,
        tx_type: str,
        amount: Decimal,
        description: str,
    ) -> None:
        wallet = await self.wallets.find_by_owner_and_type(owner_id, wallet_type)
        if not wallet:
            raise SettlementFailure(order.id, steps, step, f"{wallet_type} wallet of user {owner_id} not found")
        try:
            await self.wallets.add_transaction(
                wallet,
                tx_type,
                amount,
                description=description,
                related_order_id=order.id,
                related_user_id=order.buyer_id,
                payment_method="internal",
                provider="internal",
            )
        except ServiceError as e:
            raise SettlementFailure(order.id, steps, step, e.message) from e
        steps.append(step)

    async def settle_delivered_order(self, order: Order) -> Optional[Dict[str, Any]]:
        """
        Pay out a delivered, paid order.

        Returns a payout summary, or None when the order was already
        released. Caller must commit; on SettlementFailure caller must roll back.
        """
        if not await self._claim(order, "released"):
            logger.info("Settlement skipped, already released", order_id=order.id)
            return None

        steps: List[str] = ["claim"]
        try:
            items = (
                await self.session.execute(
                    select(OrderItem).where(OrderItem.order_id == order.id).order_by(OrderItem.id)
                )
            ).scalars().all()

            per_seller: "OrderedDict[int, Decimal]" = OrderedDict()
            for item in items:
                per_seller[item.seller_id] = per_seller.get(item.seller_id, Decimal("0")) + Decimal(str(item.subtotal))

            for seller_id, amount in per_seller.items():
                await self._credit(
                    order, steps, f"seller:{seller_id}", seller_id, "seller", "deposit", amount,
                    f"Payment for order #{order.id}",
                )

            delivery_fee = Decimal(str(order.delivery_fee))
            if order.delivery_agent_id and delivery_fee > 0:
                await self._credit(
                    order, steps, f"delivery:{order.delivery_agent_id}", order.delivery_agent_id,
                    "delivery", "commission", delivery_fee,
                    f"Delivery commission for order #{order.id}",
                )

            admin_fee = Decimal(str(order.admin_fee))
            if admin_fee > 0:
                admin_id = await self.resolve_platform_admin_id()
                if admin_id is None:
                    raise SettlementFailure(order.id, steps, "admin", "no platform admin configured")
                await self._credit(
                    order, steps, f"admin:{admin_id}", admin_id, "admin", "commission", admin_fee,
                    f"Platform fee for order #{order.id}",
                )
        except SettlementFailure as e:
            settlements_total.labels(kind="payout", outcome="failed").inc()
            logger.error(
                "Settlement failed",
                order_id=order.id,
                failed_step=e.failed_step,
                completed_steps=e.completed_steps,
                error=e.message,
            )
            raise

        settlements_total.labels(kind="payout", outcome="ok").inc()
        summary = {
            "order_id": order.id,
            "sellers": {seller_id: amount for seller_id, amount in per_seller.items()},
            "delivery_fee": delivery_fee if order.delivery_agent_id else Decimal("0"),
            "admin_fee": admin_fee,
            "steps": steps,
        }
        logger.info(
            "Order settled",
            order_id=order.id,
            sellers=len(per_seller),
            delivery_agent_id=order.delivery_agent_id,
            steps=steps,
        )
        return summary

    async def refund_order(self, order: Order) -> Optional[Decimal]:
        """
        Refund the full order total to the buyer wallet.

        Returns the refunded amount, or None when already refunded.
        Caller must commit; on SettlementFailure caller must roll back.
        """
        if not await self._claim(order, "refunded"):
            logger.info("Refund skipped, already refunded", order_id=order.id)
            return None

        steps: List[str] = ["claim"]
        amount = Decimal(str(order.total_amount))
        try:
            await self._credit(
                order, steps, f"buyer:{order.buyer_id}", order.buyer_id, "buyer", "refund", amount,
                f"Refund for order #{order.id}",
            )
        except SettlementFailure as e:
            settlements_total.labels(kind="refund", outcome="failed").inc()
            logger.error("Refund failed", order_id=order.id, failed_step=e.failed_step, error=e.message)
            raise

        settlements_total.labels(kind="refund", outcome="ok").inc()
        logger.info("Order refunded", order_id=order.id, buyer_id=order.buyer_id, amount=str(amount))
        return amount
