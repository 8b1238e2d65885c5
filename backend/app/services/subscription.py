"""
Subscription service - seller plans that gate product creation.

The Subscription row is the only stored subscription state; the seller-info
block shown on the user profile is projected from it on read.
Wallet payments debit the seller wallet in the same transaction as the
plan change. Other payment methods leave the subscription `pending` until an
external provider confirms it.
"""
from datetime import timedelta
from decimal import Decimal
from typing import Optional, Dict, Any, List, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.clock import utcnow
from backend.app.core.constants import (
    SUBSCRIPTION_PLANS,
    PAID_SUBSCRIPTION_PLANS,
    SUBSCRIPTION_PAYMENT_METHODS,
)
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import subscriptions_activated_total
from backend.app.models.subscription import Subscription, SubscriptionRenewal, plan_price
from backend.app.models.user import User
from backend.app.services.wallets import WalletService, InsufficientBalanceError

logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------

class SubscriptionServiceError(ServiceError):
    """Base exception for subscription service errors."""


class SubscriptionNotFoundError(SubscriptionServiceError):
    def __init__(self, seller_id: int):
        super().__init__(f"Subscription not found for seller {seller_id}", 404)


class InvalidPlanError(SubscriptionServiceError):
    def __init__(self, plan: str, allowed=SUBSCRIPTION_PLANS):
        super().__init__(f"Invalid plan '{plan}'. Must be one of: {', '.join(allowed)}")


class FreeTrialUnavailableError(SubscriptionServiceError):
    def __init__(self, seller_id: int):
        super().__init__(f"Free trial is only available to sellers without a subscription (seller {seller_id})")


class FreeTrialRenewalError(SubscriptionServiceError):
    def __init__(self):
        super().__init__("Free trial cannot be renewed; choose a paid plan")


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class SubscriptionService:
    """Handles seller subscription lifecycle and wallet payments."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.wallets = WalletService(session)

    # -- Pricing ----------------------------------------------------------------

    @staticmethod
    def get_prices() -> Dict[str, Decimal]:
        """Return price table: {plan: price_in_xof}."""
        return {plan: plan_price(plan) for plan in SUBSCRIPTION_PLANS}

    # -- Lookup -----------------------------------------------------------------

    async def get_subscription(self, seller_id: int) -> Optional[Subscription]:
        result = await self.session.execute(
            select(Subscription).where(Subscription.seller_id == seller_id)
        )
        return result.scalar_one_or_none()

    async def require_subscription(self, seller_id: int) -> Subscription:
        sub = await self.get_subscription(seller_id)
        if not sub:
            raise SubscriptionNotFoundError(seller_id)
        return sub

    async def get_history(self, subscription_id: int) -> List[SubscriptionRenewal]:
        result = await self.session.execute(
            select(SubscriptionRenewal)
            .where(SubscriptionRenewal.subscription_id == subscription_id)
            .order_by(SubscriptionRenewal.id)
        )
        return list(result.scalars().all())

    async def can_create_products(self, seller_id: int, now=None) -> bool:
        """Product creation gate: subscription active and not past its end date."""
        sub = await self.get_subscription(seller_id)
        return bool(sub and sub.is_active(now))

    async def seller_info(self, seller_id: int, now=None) -> Optional[Dict[str, Any]]:
        """Read-time seller-info projection for the user profile."""
        sub = await self.get_subscription(seller_id)
        if not sub:
            return None
        now = now or utcnow()
        if sub.status == "active" and now > sub.end_date:
            status = "expired"
        elif sub.status == "active" and sub.plan == "free_trial":
            status = "trial"
        else:
            status = sub.status
        return {
            "subscription_status": status,
            "subscription_type": sub.plan,
            "subscription_start_date": sub.start_date,
            "subscription_end_date": sub.end_date,
        }

    # -- Payments ---------------------------------------------------------------

    @staticmethod
    def _validate_payment_method(payment_method: str) -> None:
        if payment_method not in SUBSCRIPTION_PAYMENT_METHODS:
            raise SubscriptionServiceError(
                f"Invalid payment method '{payment_method}'. "
                f"Must be one of: {', '.join(SUBSCRIPTION_PAYMENT_METHODS)}"
            )

    async def _charge_wallet(self, seller_id: int, amount: Decimal, description: str) -> str:
        """Debit the seller wallet. Returns the ledger reference."""
        wallet = await self.wallets.get_wallet(seller_id, "seller")
        if not self.wallets.has_sufficient_balance(wallet, amount):
            raise InsufficientBalanceError(amount, Decimal(str(wallet.balance)))
        tx = await self.wallets.add_transaction(
            wallet,
            "payment",
            amount,
            description=description,
            payment_method="wallet",
            provider="internal",
        )
        return tx.reference

    # -- Lifecycle --------------------------------------------------------------

    async def create_free_trial(self, seller_id: int, now=None) -> Subscription:
        """Start the free trial for a seller with no subscription. Caller must commit."""
        if await self.get_subscription(seller_id):
            raise FreeTrialUnavailableError(seller_id)
        now = now or utcnow()
        sub = Subscription(seller_id=seller_id, auto_renew=False)
        sub.start_cycle("free_trial", now)
        self.session.add(sub)
        await self.session.flush()
        subscriptions_activated_total.labels(plan="free_trial", action="trial").inc()
        logger.info("Free trial started", seller_id=seller_id, end_date=sub.end_date.isoformat())
        return sub

    async def subscribe(
        self,
        seller_id: int,
        plan: str,
        payment_method: str,
        auto_renew: bool = False,
        now=None,
    ) -> Tuple[Subscription, bool]:
        """
        Create or replace the seller's subscription.

        Returns (subscription, is_new). Caller must commit.
        """
        if plan not in SUBSCRIPTION_PLANS:
            raise InvalidPlanError(plan)
        self._validate_payment_method(payment_method)
        now = now or utcnow()

        if plan == "free_trial":
            sub = await self.create_free_trial(seller_id, now)
            return sub, True

        sub = await self.get_subscription(seller_id)
        is_new = sub is None

        if payment_method == "wallet":
            reference = await self._charge_wallet(seller_id, plan_price(plan), f"Payment for {plan} subscription")
            payment = dict(payment_method="wallet", transaction_id=reference, provider="wallet")
            activate = True
        else:
            payment = dict(payment_method=payment_method)
            activate = False

        if is_new:
            sub = Subscription(seller_id=seller_id)
            sub.start_cycle(plan, now, activate=activate, **payment)
            self.session.add(sub)
        else:
            self.session.add(sub.archive())
            sub.start_cycle(plan, now, activate=activate, **payment)
        sub.auto_renew = auto_renew
        await self.session.flush()

        if activate:
            subscriptions_activated_total.labels(plan=plan, action="subscribe").inc()
        logger.info(
            "Subscription saved",
            seller_id=seller_id,
            plan=plan,
            status=sub.status,
            is_new=is_new,
            payment_method=payment_method,
        )
        return sub, is_new

    async def renew(self, seller_id: int, payment_method: str, now=None) -> Subscription:
        """
        Renew the current plan for a full cycle starting now.

        Wallet payment activates immediately; other methods mark the
        subscription pending. Caller must commit.
        """
        self._validate_payment_method(payment_method)
        sub = await self.require_subscription(seller_id)
        if sub.plan == "free_trial":
            raise FreeTrialRenewalError()
        now = now or utcnow()

        if payment_method != "wallet":
            sub.status = "pending"
            sub.payment_method = payment_method
            await self.session.flush()
            logger.info("Subscription renewal pending", seller_id=seller_id, payment_method=payment_method)
            return sub

        reference = await self._charge_wallet(
            seller_id, plan_price(sub.plan), f"Renewal payment for {sub.plan} subscription"
        )
        self.session.add(sub.renew(now, payment_method="wallet", transaction_id=reference, provider="wallet"))
        await self.session.flush()
        subscriptions_activated_total.labels(plan=sub.plan, action="renew").inc()
        logger.info("Subscription renewed", seller_id=seller_id, plan=sub.plan, end_date=sub.end_date.isoformat())
        return sub

    async def change_plan(self, seller_id: int, plan: str, payment_method: str, now=None) -> Subscription:
        """Switch to another paid plan starting now. Caller must commit."""
        if plan not in PAID_SUBSCRIPTION_PLANS:
            raise InvalidPlanError(plan, PAID_SUBSCRIPTION_PLANS)
        self._validate_payment_method(payment_method)
        sub = await self.require_subscription(seller_id)
        now = now or utcnow()

        if payment_method != "wallet":
            sub.status = "pending"
            sub.payment_method = payment_method
            await self.session.flush()
            logger.info("Plan change pending", seller_id=seller_id, plan=plan, payment_method=payment_method)
            return sub

        reference = await self._charge_wallet(
            seller_id, plan_price(plan), f"Payment for changing to {plan} subscription"
        )
        old_plan = sub.plan
        self.session.add(
            sub.change_plan(plan, now, payment_method="wallet", transaction_id=reference, provider="wallet")
        )
        await self.session.flush()
        subscriptions_activated_total.labels(plan=plan, action="change_plan").inc()
        logger.info("Subscription plan changed", seller_id=seller_id, old_plan=old_plan, new_plan=plan)
        return sub

    async def cancel(self, seller_id: int) -> Subscription:
        sub = await self.require_subscription(seller_id)
        sub.status = "cancelled"
        sub.auto_renew = False
        await self.session.flush()
        logger.info("Subscription cancelled", seller_id=seller_id)
        return sub

    # -- Admin queries ----------------------------------------------------------

    async def find_expiring(self, days: int = 7, now=None) -> List[Tuple[Subscription, User]]:
        """Active subscriptions ending within `days` from now (not yet ended)."""
        now = now or utcnow()
        threshold = now + timedelta(days=days)
        result = await self.session.execute(
            select(Subscription, User)
            .join(User, User.id == Subscription.seller_id)
            .where(
                Subscription.status == "active",
                Subscription.end_date <= threshold,
                Subscription.end_date > now,
            )
            .order_by(Subscription.end_date)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def find_expired(self, now=None) -> List[Tuple[Subscription, User]]:
        """Subscriptions still marked active whose end date has passed."""
        now = now or utcnow()
        result = await self.session.execute(
            select(Subscription, User)
            .join(User, User.id == Subscription.seller_id)
            .where(Subscription.status == "active", Subscription.end_date < now)
            .order_by(Subscription.end_date)
        )
        return [(row[0], row[1]) for row in result.all()]
