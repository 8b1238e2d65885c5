from sqlalchemy import Integer, String, ForeignKey, DateTime, DECIMAL, Boolean, Index
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional
from dateutil.relativedelta import relativedelta
from backend.app.core.base import Base
from backend.app.core.clock import utcnow
from backend.app.core.constants import CURRENCY
from backend.app.core.settings import get_settings


def plan_price(plan: str) -> Decimal:
    """Price of one cycle of a plan, in XOF."""
    settings = get_settings()
    prices = {
        "free_trial": Decimal("0"),
        "weekly": settings.SUBSCRIPTION_PRICE_WEEKLY,
        "monthly": settings.SUBSCRIPTION_PRICE_MONTHLY,
        "yearly": settings.SUBSCRIPTION_PRICE_YEARLY,
    }
    return prices[plan]


def plan_end_date(plan: str, start: datetime) -> datetime:
    """End of a cycle starting at `start`. Months and years are calendar arithmetic."""
    if plan == "free_trial":
        return start + relativedelta(months=get_settings().FREE_TRIAL_MONTHS)
    if plan == "weekly":
        return start + timedelta(days=7)
    if plan == "monthly":
        return start + relativedelta(months=1)
    if plan == "yearly":
        return start + relativedelta(years=1)
    raise ValueError(f"Unknown plan: {plan}")


class Subscription(Base):
    __tablename__ = 'subscriptions'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seller_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id'), unique=True)
    plan: Mapped[str] = mapped_column(String(20))  # free_trial/weekly/monthly/yearly
    status: Mapped[str] = mapped_column(String(20), default='active')  # active/expired/cancelled/pending
    start_date: Mapped[datetime] = mapped_column(DateTime)
    end_date: Mapped[datetime] = mapped_column(DateTime)
    auto_renew: Mapped[bool] = mapped_column(Boolean, default=True)
    price: Mapped[Decimal] = mapped_column(DECIMAL(14, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default=CURRENCY)
    # Payment
    payment_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    provider: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_subscriptions_status', 'status'),
        Index('ix_subscriptions_end_date', 'end_date'),
    )

    def is_active(self, now: Optional[datetime] = None) -> bool:
        now = now or utcnow()
        return self.status == "active" and now <= self.end_date

    def archive(self) -> "SubscriptionRenewal":
        """Snapshot the current cycle for the renewal history."""
        return SubscriptionRenewal(
            subscription_id=self.id,
            plan=self.plan,
            start_date=self.start_date,
            end_date=self.end_date,
            price=self.price,
            payment_method=self.payment_method,
            transaction_id=self.transaction_id,
            status=self.status,
        )

    def start_cycle(
        self,
        plan: str,
        now: datetime,
        payment_method: Optional[str] = None,
        transaction_id: Optional[str] = None,
        provider: Optional[str] = None,
        activate: bool = True,
    ) -> None:
        """
        Start a fresh cycle of `plan` anchored at `now`.

        Renewal never extends from the previous end date: a lapsed seller
        gets a full cycle from the moment of payment.
        """
        self.plan = plan
        self.price = plan_price(plan)
        self.start_date = now
        self.end_date = plan_end_date(plan, now)
        self.status = "active" if activate else "pending"
        self.payment_method = payment_method
        self.transaction_id = transaction_id
        self.provider = provider
        self.payment_date = now if activate else None

    def renew(self, now: datetime, **payment) -> "SubscriptionRenewal":
        """Archive the current cycle and start a new one of the same plan. Returns the archive row."""
        history = self.archive()
        self.start_cycle(self.plan, now, **payment)
        return history

    def change_plan(self, new_plan: str, now: datetime, **payment) -> "SubscriptionRenewal":
        """Archive the current cycle (old plan) and switch to `new_plan` from now."""
        history = self.archive()
        self.start_cycle(new_plan, now, **payment)
        return history


class SubscriptionRenewal(Base):
    """Archived cycle of a subscription."""
    __tablename__ = 'subscription_renewals'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    subscription_id: Mapped[int] = mapped_column(Integer, ForeignKey('subscriptions.id', ondelete='CASCADE'))
    plan: Mapped[str] = mapped_column(String(20))
    start_date: Mapped[datetime] = mapped_column(DateTime)
    end_date: Mapped[datetime] = mapped_column(DateTime)
    price: Mapped[Decimal] = mapped_column(DECIMAL(14, 2))
    payment_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20))
    archived_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        Index('ix_subscription_renewals_subscription_id', 'subscription_id'),
    )
