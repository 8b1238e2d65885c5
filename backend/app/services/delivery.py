# backend/app/services/delivery.py
"""
Delivery desk - what delivery agents see: open deliveries, their own
assignments and their counters.
"""
from typing import List, Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.order import Order
from backend.app.services.users import UserService

IN_PROGRESS_DELIVERY_STATUSES = ("assigned", "picked_up", "in_transit")


class DeliveryService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def list_pending(self) -> List[Order]:
        """Paid orders waiting for an agent, oldest first."""
        result = await self.session.execute(
            select(Order)
            .where(
                Order.status == "processing",
                Order.delivery_status == "pending",
                Order.delivery_agent_id.is_(None),
            )
            .order_by(Order.created_at, Order.id)
        )
        return list(result.scalars().all())

    async def list_assigned(self, agent_id: int) -> List[Order]:
        result = await self.session.execute(
            select(Order)
            .where(Order.delivery_agent_id == agent_id)
            .order_by(Order.created_at.desc(), Order.id.desc())
        )
        return list(result.scalars().all())

    async def get_stats(self, agent_id: int) -> Dict[str, Any]:
        agent = await UserService(self.session).get_user(agent_id)
        result = await self.session.execute(
            select(Order.delivery_status, func.count(Order.id))
            .where(Order.delivery_agent_id == agent_id)
            .group_by(Order.delivery_status)
        )
        counts = {status: count for status, count in result.all()}
        completed = counts.get("delivered", 0)
        failed = counts.get("failed", 0)
        in_progress = sum(counts.get(s, 0) for s in IN_PROGRESS_DELIVERY_STATUSES)
        return {
            "total_deliveries": completed + failed + in_progress,
            "completed_deliveries": completed,
            "in_progress_deliveries": in_progress,
            "failed_deliveries": failed,
            "is_available": agent.is_available,
        }
