# backend/app/services/admin.py
"""
Admin dashboard - platform-wide counters for users, products, orders and
subscriptions.
"""
from typing import Dict, Any

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.constants import USER_ROLES, ORDER_STATUSES
from backend.app.models.order import Order
from backend.app.models.product import Product
from backend.app.models.subscription import Subscription
from backend.app.models.user import User, UserRole


class AdminService:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def _count(self, column) -> int:
        return (await self.session.execute(select(func.count(column)))).scalar_one()

    async def get_dashboard(self, now=None) -> Dict[str, Any]:
        """
        Counters for the admin home page.

        Users are counted once in `total` and once per role they hold.
        Active subscriptions are those passing `Subscription.is_active(now)`,
        so a lapsed subscription still stored as `active` is not counted.
        """
        now = now or utcnow()

        role_rows = await self.session.execute(
            select(UserRole.role, func.count(UserRole.id)).group_by(UserRole.role)
        )
        by_role = {role: 0 for role in USER_ROLES}
        by_role.update({role: count for role, count in role_rows.all()})

        status_rows = await self.session.execute(
            select(Order.status, func.count(Order.id)).group_by(Order.status)
        )
        by_status = {status: 0 for status in ORDER_STATUSES}
        by_status.update({status: count for status, count in status_rows.all()})

        subscriptions = (await self.session.execute(select(Subscription))).scalars().all()

        return {
            "users": {"total": await self._count(User.id), "by_role": by_role},
            "products": await self._count(Product.id),
            "orders": {"total": sum(by_status.values()), "by_status": by_status},
            "subscriptions": {
                "total": len(subscriptions),
                "active": sum(1 for sub in subscriptions if sub.is_active(now)),
            },
        }
