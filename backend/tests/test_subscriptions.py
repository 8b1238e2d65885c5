"""
Tests for seller subscriptions and the product-creation gate.

Tests cover:
- Free trial on becoming a seller
- Subscribing, renewing and changing plans with wallet payment
- Pending subscriptions for external payment methods
- Calendar-accurate cycle dates
- Expiry projection and the admin expiring/expired reports
"""
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.user import User
from backend.app.services.subscription import (
    SubscriptionService,
    SubscriptionServiceError,
    FreeTrialRenewalError,
    FreeTrialUnavailableError,
    InvalidPlanError,
)
from backend.app.services.wallets import InsufficientBalanceError
from backend.tests.conftest import fund_wallet, get_auth_header_for_user


@pytest.fixture
async def funded_seller(test_session: AsyncSession, seller: User) -> User:
    """Seller (on free trial) with 100 000 XOF in the seller wallet."""
    await fund_wallet(test_session, seller.id, "seller", 100000)
    return seller


# ============================================
# FREE TRIAL
# ============================================

@pytest.mark.asyncio
async def test_new_seller_gets_free_trial(client: AsyncClient, seller: User):
    response = await client.get("/subscription", headers=get_auth_header_for_user(seller.id))

    assert response.status_code == 200
    data = response.json()
    assert data["plan"] == "free_trial"
    assert data["status"] == "active"
    assert data["auto_renew"] is False
    assert Decimal(data["price"]) == 0


@pytest.mark.asyncio
async def test_profile_shows_trial(client: AsyncClient, seller: User):
    response = await client.get("/users/me", headers=get_auth_header_for_user(seller.id))

    assert response.status_code == 200
    info = response.json()["seller_info"]
    assert info["subscription_status"] == "trial"
    assert info["subscription_type"] == "free_trial"


@pytest.mark.asyncio
async def test_second_free_trial_refused(test_session: AsyncSession, seller: User):
    with pytest.raises(FreeTrialUnavailableError):
        await SubscriptionService(test_session).subscribe(seller.id, "free_trial", "wallet")


@pytest.mark.asyncio
async def test_free_trial_cannot_be_renewed(test_session: AsyncSession, seller: User):
    with pytest.raises(FreeTrialRenewalError):
        await SubscriptionService(test_session).renew(seller.id, "wallet")


# ============================================
# PRICES
# ============================================

@pytest.mark.asyncio
async def test_prices_are_public(client: AsyncClient):
    response = await client.get("/subscription/prices")

    assert response.status_code == 200
    data = response.json()
    assert data["currency"] == "XOF"
    assert {plan: Decimal(str(price)) for plan, price in data["prices"].items()} == {
        "free_trial": Decimal("0"),
        "weekly": Decimal("2000"),
        "monthly": Decimal("7500"),
        "yearly": Decimal("75000"),
    }


# ============================================
# SUBSCRIBE / RENEW / CHANGE PLAN
# ============================================

@pytest.mark.asyncio
async def test_subscribe_with_wallet(client: AsyncClient, test_session: AsyncSession, funded_seller: User):
    headers = get_auth_header_for_user(funded_seller.id)
    response = await client.post(
        "/subscription",
        json={"plan": "monthly", "paymentMethod": "wallet", "autoRenew": True},
        headers=headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["is_new"] is False
    sub = data["subscription"]
    assert sub["plan"] == "monthly"
    assert sub["status"] == "active"
    assert sub["auto_renew"] is True
    assert Decimal(sub["price"]) == Decimal("7500")
    assert sub["payment_method"] == "wallet"
    assert sub["transaction_id"]

    wallet = (await client.get("/wallet/seller", headers=headers)).json()
    assert Decimal(wallet["balance"]) == Decimal("92500")
    assert wallet["transactions"][-1]["reference"] == sub["transaction_id"]

    service = SubscriptionService(test_session)
    current = await service.require_subscription(funded_seller.id)
    history = await service.get_history(current.id)
    assert [h.plan for h in history] == ["free_trial"]


@pytest.mark.asyncio
async def test_subscribe_insufficient_balance(client: AsyncClient, seller: User):
    headers = get_auth_header_for_user(seller.id)
    response = await client.post(
        "/subscription", json={"plan": "yearly", "paymentMethod": "wallet"}, headers=headers
    )

    assert response.status_code == 400
    assert response.json()["detail"]["message"] == "Insufficient balance"
    current = (await client.get("/subscription", headers=headers)).json()
    assert current["plan"] == "free_trial"


@pytest.mark.asyncio
async def test_subscribe_external_method_is_pending(client: AsyncClient, seller: User):
    headers = get_auth_header_for_user(seller.id)
    response = await client.post(
        "/subscription", json={"plan": "weekly", "paymentMethod": "mobile_money"}, headers=headers
    )

    assert response.status_code == 200
    sub = response.json()["subscription"]
    assert sub["status"] == "pending"
    assert sub["payment_date"] is None

    product = await client.post("/products", json={"name": "Attiéké", "price": 1500}, headers=headers)
    assert product.status_code == 403


@pytest.mark.asyncio
async def test_subscribe_invalid_plan(test_session: AsyncSession, funded_seller: User):
    with pytest.raises(InvalidPlanError):
        await SubscriptionService(test_session).subscribe(funded_seller.id, "daily", "wallet")


@pytest.mark.asyncio
async def test_subscribe_invalid_payment_method(test_session: AsyncSession, funded_seller: User):
    with pytest.raises(SubscriptionServiceError):
        await SubscriptionService(test_session).subscribe(funded_seller.id, "monthly", "cash")


@pytest.mark.asyncio
async def test_monthly_cycle_is_calendar_month(test_session: AsyncSession, funded_seller: User):
    service = SubscriptionService(test_session)
    sub, _ = await service.subscribe(funded_seller.id, "monthly", "wallet", now=datetime(2024, 1, 1))
    assert sub.start_date == datetime(2024, 1, 1)
    assert sub.end_date == datetime(2024, 2, 1)

    sub, _ = await service.subscribe(funded_seller.id, "monthly", "wallet", now=datetime(2024, 1, 31))
    assert sub.end_date == datetime(2024, 2, 29)


@pytest.mark.asyncio
async def test_renew_after_expiry_starts_from_now(test_session: AsyncSession, funded_seller: User):
    service = SubscriptionService(test_session)
    await service.subscribe(funded_seller.id, "monthly", "wallet", now=datetime(2024, 1, 1))

    renewed = await service.renew(funded_seller.id, "wallet", now=datetime(2024, 3, 10))

    assert renewed.status == "active"
    assert renewed.start_date == datetime(2024, 3, 10)
    assert renewed.end_date == datetime(2024, 4, 10)
    history = await service.get_history(renewed.id)
    assert [(h.plan, h.end_date) for h in history][-1] == ("monthly", datetime(2024, 2, 1))


@pytest.mark.asyncio
async def test_renew_external_method_only_marks_pending(test_session: AsyncSession, funded_seller: User):
    service = SubscriptionService(test_session)
    sub, _ = await service.subscribe(funded_seller.id, "weekly", "wallet", now=datetime(2024, 5, 1))
    end_before = sub.end_date

    sub = await service.renew(funded_seller.id, "credit_card", now=datetime(2024, 5, 7))

    assert sub.status == "pending"
    assert sub.payment_method == "credit_card"
    assert sub.end_date == end_before


@pytest.mark.asyncio
async def test_renew_insufficient_balance(test_session: AsyncSession, seller: User):
    service = SubscriptionService(test_session)
    await fund_wallet(test_session, seller.id, "seller", 2000)
    await service.subscribe(seller.id, "weekly", "wallet")

    with pytest.raises(InsufficientBalanceError):
        await service.renew(seller.id, "wallet")


@pytest.mark.asyncio
async def test_change_plan(client: AsyncClient, funded_seller: User):
    headers = get_auth_header_for_user(funded_seller.id)
    await client.post("/subscription", json={"plan": "weekly", "paymentMethod": "wallet"}, headers=headers)

    response = await client.put(
        "/subscription/change-plan", json={"plan": "yearly", "paymentMethod": "wallet"}, headers=headers
    )

    assert response.status_code == 200
    data = response.json()
    assert data["plan"] == "yearly"
    assert data["status"] == "active"
    wallet = (await client.get("/wallet/seller", headers=headers)).json()
    # 100 000 - 2 000 (weekly) - 75 000 (yearly)
    assert Decimal(wallet["balance"]) == Decimal("23000")


@pytest.mark.asyncio
async def test_change_plan_to_free_trial_refused(client: AsyncClient, funded_seller: User):
    response = await client.put(
        "/subscription/change-plan",
        json={"plan": "free_trial", "paymentMethod": "wallet"},
        headers=get_auth_header_for_user(funded_seller.id),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_cancel_blocks_product_creation(client: AsyncClient, seller: User):
    headers = get_auth_header_for_user(seller.id)

    response = await client.put("/subscription/cancel", headers=headers)
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["auto_renew"] is False

    product = await client.post("/products", json={"name": "Ndambé", "price": 800}, headers=headers)
    assert product.status_code == 403
    assert product.json()["detail"] == "An active subscription is required to create products"


@pytest.mark.asyncio
async def test_subscription_endpoints_require_seller(client: AsyncClient, buyer: User):
    response = await client.get("/subscription", headers=get_auth_header_for_user(buyer.id))
    assert response.status_code == 403


# ============================================
# EXPIRY
# ============================================

@pytest.mark.asyncio
async def test_gate_honours_end_date(test_session: AsyncSession, funded_seller: User):
    service = SubscriptionService(test_session)
    sub, _ = await service.subscribe(funded_seller.id, "weekly", "wallet", now=datetime(2024, 6, 1))

    assert await service.can_create_products(funded_seller.id, now=sub.end_date) is True
    after = sub.end_date + timedelta(seconds=1)
    assert await service.can_create_products(funded_seller.id, now=after) is False

    info = await service.seller_info(funded_seller.id, now=after)
    assert info["subscription_status"] == "expired"
    # Stored status is untouched
    assert sub.status == "active"


@pytest.mark.asyncio
async def test_admin_expiring_and_expired_reports(
    client: AsyncClient,
    test_session: AsyncSession,
    funded_seller: User,
    second_seller: User,
    admin: User,
):
    # funded_seller lapsed long ago; second_seller is still on the trial
    await SubscriptionService(test_session).subscribe(
        funded_seller.id, "weekly", "wallet", now=datetime(2020, 1, 1)
    )
    await test_session.commit()
    headers = get_auth_header_for_user(admin.id)

    expired = (await client.get("/subscription/admin/expired", headers=headers)).json()
    assert [s["seller"]["id"] for s in expired] == [funded_seller.id]
    assert expired[0]["seller"]["email"] == "moussa@example.com"

    soon = (await client.get("/subscription/admin/expiring?days=7", headers=headers)).json()
    assert soon == []
    # The two-month trial ends well inside a 90 day window
    later = (await client.get("/subscription/admin/expiring?days=90", headers=headers)).json()
    assert [s["seller_id"] for s in later] == [second_seller.id]

    forbidden = await client.get("/subscription/admin/expired", headers=get_auth_header_for_user(funded_seller.id))
    assert forbidden.status_code == 403


# ============================================
# PRODUCTS
# ============================================

@pytest.mark.asyncio
async def test_trial_seller_can_create_product(client: AsyncClient, seller: User):
    headers = get_auth_header_for_user(seller.id)
    response = await client.post(
        "/products",
        json={"name": "  Café Touba  ", "price": "1200.00", "stock": 25, "category": "drinks"},
        headers=headers,
    )

    assert response.status_code == 201
    data = response.json()
    assert data["name"] == "Café Touba"
    assert data["seller_id"] == seller.id
    assert data["currency"] == "XOF"
    assert data["is_available"] is True

    fetched = await client.get(f"/products/{data['id']}")
    assert fetched.status_code == 200
    assert Decimal(fetched.json()["price"]) == Decimal("1200")


@pytest.mark.asyncio
async def test_product_without_stock_is_unavailable(client: AsyncClient, seller: User):
    response = await client.post(
        "/products", json={"name": "Pre-order basket", "price": 900}, headers=get_auth_header_for_user(seller.id)
    )
    assert response.status_code == 201
    assert response.json()["is_available"] is False


@pytest.mark.asyncio
async def test_product_not_found(client: AsyncClient):
    response = await client.get("/products/777")
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_product_price_limited_to_cents(client: AsyncClient, seller: User):
    response = await client.post(
        "/products", json={"name": "Thiakry", "price": "750.005"}, headers=get_auth_header_for_user(seller.id)
    )
    assert response.status_code == 400
    assert response.json()["errors"][0]["field"] == "price"
