"""
Order fee schedule.

Two modes:
  carved_out  buyer pays items + platform fee; delivery and admin fees are
              paid out of the platform fee (default, 1200 = 1000 + 200).
  additive    buyer pays items + platform fee + delivery fee + admin fee.
"""
from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, Optional

from backend.app.core.settings import Settings, get_settings


@dataclass(frozen=True)
class FeeSchedule:
    platform_fee: Decimal
    delivery_fee: Decimal
    admin_fee: Decimal
    mode: str = "carved_out"

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "FeeSchedule":
        settings = settings or get_settings()
        return cls(
            platform_fee=settings.PLATFORM_FEE,
            delivery_fee=settings.DELIVERY_FEE,
            admin_fee=settings.ADMIN_FEE,
            mode=settings.FEE_MODE,
        )

    def order_total(self, subtotals: Iterable[Decimal]) -> Decimal:
        """Amount charged to the buyer for the given line subtotals."""
        total = sum((Decimal(str(s)) for s in subtotals), Decimal("0")) + self.platform_fee
        if self.mode == "additive":
            total += self.delivery_fee + self.admin_fee
        return total

    @property
    def platform_retained(self) -> Decimal:
        """Part of the fees that stays with the platform after payouts (carved_out only)."""
        if self.mode == "additive":
            return self.platform_fee
        return self.platform_fee - self.delivery_fee - self.admin_fee
