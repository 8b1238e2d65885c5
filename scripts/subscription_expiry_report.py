#!/usr/bin/env python3
"""
Report seller subscriptions that are about to end or have already lapsed.

Run daily via cron, e.g.:
    0 8 * * * cd /src && python -m scripts.subscription_expiry_report --days 7

Lists:
  - Expiring: active subscriptions ending within --days
  - Expired: subscriptions still marked active whose end date has passed
"""
import argparse
import asyncio

from backend.app.core.database import async_session
from backend.app.core.clock import utcnow
from backend.app.services.subscription import SubscriptionService


def _print_rows(title, rows):
    print(f"{title}: {len(rows)}")
    for sub, seller in rows:
        print(
            f"  seller #{seller.id} {seller.name} <{seller.email}> "
            f"plan={sub.plan} ends={sub.end_date.isoformat()} auto_renew={sub.auto_renew}"
        )


async def report(days: int):
    now = utcnow()
    print(f"Subscription report at {now.isoformat()} (window {days} days)")

    async with async_session() as session:
        service = SubscriptionService(session)
        expiring = await service.find_expiring(days=days, now=now)
        expired = await service.find_expired(now=now)

    _print_rows("Expiring", expiring)
    _print_rows("Expired", expired)


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--days", type=int, default=7)
    args = parser.parse_args()
    asyncio.run(report(args.days))
