"""
Tests for order settlement.

Tests cover:
- Payout split between sellers, delivery agent and platform admin
- Triggering settlement from the agent flow and from the admin status change
- Idempotency of a second settlement
- All-or-nothing rollback when a payout step fails
"""
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.order import Order
from backend.app.models.user import User, UserRole
from backend.app.services.orders import OrderService
from backend.app.services.settlement import SettlementService, SettlementFailure
from backend.app.services.wallets import WalletService
from backend.tests.conftest import create_test_product, create_test_user, get_auth_header_for_user


async def balance(session: AsyncSession, owner_id: int, wallet_type: str) -> Decimal:
    wallet = await WalletService(session).get_wallet(owner_id, wallet_type)
    await session.refresh(wallet)
    return Decimal(str(wallet.balance))


@pytest.fixture
async def two_seller_order(
    test_session: AsyncSession,
    funded_buyer: User,
    seller: User,
    second_seller: User,
) -> Order:
    """Wallet-paid order: 5000 from `seller`, 3000 from `second_seller`."""
    jollof = await create_test_product(test_session, seller.id, "Jollof", "2500", stock=5)
    yassa = await create_test_product(test_session, second_seller.id, "Yassa", "3000", stock=5)
    order = await OrderService(test_session).create_order(
        buyer_id=funded_buyer.id,
        items=[
            {"product_id": jollof.id, "quantity": 2},
            {"product_id": yassa.id, "quantity": 1},
        ],
        shipping_address={"street": "1 Avenue Lamine Gueye", "city": "Dakar", "country": "Senegal"},
        payment_method="wallet",
    )
    await test_session.commit()
    return order


# ============================================
# SERVICE LEVEL
# ============================================

@pytest.mark.asyncio
async def test_settle_splits_payouts(
    test_session: AsyncSession,
    two_seller_order: Order,
    seller: User,
    second_seller: User,
    delivery_agent: User,
    admin: User,
):
    service = OrderService(test_session)
    await service.assign_delivery_agent(two_seller_order.id, delivery_agent.id)
    order = await service.update_status(two_seller_order.id, "delivered")
    await test_session.commit()

    assert order.status == "delivered"
    assert order.payment_status == "released"
    assert order.actual_delivery_date is not None
    assert Decimal(str(order.total_amount)) == Decimal("9200")

    assert await balance(test_session, seller.id, "seller") == Decimal("5000")
    assert await balance(test_session, second_seller.id, "seller") == Decimal("3000")
    assert await balance(test_session, delivery_agent.id, "delivery") == Decimal("1000")
    assert await balance(test_session, admin.id, "admin") == Decimal("200")

    wallets = WalletService(test_session)
    admin_wallet = await wallets.get_wallet(admin.id, "admin")
    admin_tx = (await wallets.list_transactions(admin_wallet.id))[-1]
    assert admin_tx.type == "commission"
    assert admin_tx.description == f"Platform fee for order #{order.id}"
    assert admin_tx.related_order_id == order.id

    agent_wallet = await wallets.get_wallet(delivery_agent.id, "delivery")
    agent_tx = (await wallets.list_transactions(agent_wallet.id))[-1]
    assert agent_tx.type == "commission"


@pytest.mark.asyncio
async def test_settle_without_agent_skips_delivery_commission(
    test_session: AsyncSession,
    two_seller_order: Order,
    seller: User,
    second_seller: User,
    admin: User,
):
    summary = await SettlementService(test_session).settle_delivered_order(two_seller_order)
    await test_session.commit()

    assert summary["delivery_fee"] == Decimal("0")
    assert summary["steps"] == [
        "claim",
        f"seller:{seller.id}",
        f"seller:{second_seller.id}",
        f"admin:{admin.id}",
    ]
    assert await balance(test_session, admin.id, "admin") == Decimal("200")


@pytest.mark.asyncio
async def test_settle_groups_lines_per_seller(
    test_session: AsyncSession,
    funded_buyer: User,
    seller: User,
    admin: User,
):
    first = await create_test_product(test_session, seller.id, "Mango", "500", stock=10)
    second = await create_test_product(test_session, seller.id, "Papaya", "700", stock=10)
    order = await OrderService(test_session).create_order(
        buyer_id=funded_buyer.id,
        items=[{"product_id": first.id, "quantity": 3}, {"product_id": second.id, "quantity": 1}],
        shipping_address={"street": "5 Rue 10", "city": "Thies", "country": "Senegal"},
        payment_method="wallet",
    )
    await test_session.commit()

    summary = await SettlementService(test_session).settle_delivered_order(order)
    await test_session.commit()

    assert summary["sellers"] == {seller.id: Decimal("2200")}
    wallets = WalletService(test_session)
    seller_wallet = await wallets.get_wallet(seller.id, "seller")
    deposits = [t for t in await wallets.list_transactions(seller_wallet.id) if t.type == "deposit"]
    assert len(deposits) == 1


@pytest.mark.asyncio
async def test_second_settlement_is_a_no_op(
    test_session: AsyncSession,
    two_seller_order: Order,
    seller: User,
    admin: User,
):
    settlement = SettlementService(test_session)
    assert await settlement.settle_delivered_order(two_seller_order) is not None
    await test_session.commit()

    assert await settlement.settle_delivered_order(two_seller_order) is None
    await test_session.commit()

    assert await balance(test_session, seller.id, "seller") == Decimal("5000")
    assert await balance(test_session, admin.id, "admin") == Decimal("200")


@pytest.mark.asyncio
async def test_refunded_order_cannot_be_released(
    test_session: AsyncSession,
    two_seller_order: Order,
    funded_buyer: User,
    admin: User,
):
    buyer_id = funded_buyer.id
    settlement = SettlementService(test_session)
    refunded = await settlement.refund_order(two_seller_order)
    await test_session.commit()
    assert refunded == Decimal("9200")

    with pytest.raises(SettlementFailure) as exc_info:
        await settlement.settle_delivered_order(two_seller_order)
    assert exc_info.value.failed_step == "claim"
    assert exc_info.value.completed_steps == []
    await test_session.rollback()

    assert await balance(test_session, buyer_id, "buyer") == Decimal("50000")


@pytest.mark.asyncio
async def test_failed_payout_rolls_back_everything(
    test_session: AsyncSession,
    two_seller_order: Order,
    seller: User,
    second_seller: User,
):
    """No admin exists: the admin step fails after both sellers were credited."""
    # Rollback expires every loaded instance
    order_id, seller_ids = two_seller_order.id, (seller.id, second_seller.id)
    service = OrderService(test_session)

    with pytest.raises(SettlementFailure) as exc_info:
        await service.update_status(order_id, "delivered")

    failure = exc_info.value
    assert failure.status_code == 409
    assert failure.failed_step == "admin"
    assert failure.completed_steps[0] == "claim"
    assert set(failure.completed_steps[1:]) == {f"seller:{seller_id}" for seller_id in seller_ids}

    await test_session.rollback()

    order = await test_session.get(Order, order_id)
    await test_session.refresh(order)
    assert order.status == "processing"
    assert order.payment_status == "paid"
    for seller_id in seller_ids:
        assert await balance(test_session, seller_id, "seller") == 0


# ============================================
# API
# ============================================

@pytest.mark.asyncio
async def test_agent_delivery_flow_settles_order(
    client: AsyncClient,
    test_session: AsyncSession,
    two_seller_order: Order,
    seller: User,
    second_seller: User,
    delivery_agent: User,
    admin: User,
):
    order_id = two_seller_order.id
    response = await client.put(
        f"/orders/{order_id}/assign-delivery",
        json={"deliveryAgentId": delivery_agent.id},
        headers=get_auth_header_for_user(admin.id),
    )
    assert response.status_code == 200

    agent_headers = get_auth_header_for_user(delivery_agent.id)
    for status in ("picked_up", "in_transit"):
        response = await client.put(
            f"/orders/{order_id}/delivery-status", json={"status": status}, headers=agent_headers
        )
        assert response.status_code == 200
        assert response.json()["delivery_status"] == status
        assert response.json()["payment_status"] == "paid"

    response = await client.put(
        f"/orders/{order_id}/delivery-status",
        json={"status": "delivered", "proof": {"signature": "sig-data", "notes": "Left with guard"}},
        headers=agent_headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "delivered"
    assert data["delivery_status"] == "delivered"
    assert data["payment_status"] == "released"
    assert data["delivery_proof"]["signature"] == "sig-data"
    assert "delivery_date" in data["delivery_proof"]

    assert await balance(test_session, seller.id, "seller") == Decimal("5000")
    assert await balance(test_session, second_seller.id, "seller") == Decimal("3000")
    assert await balance(test_session, delivery_agent.id, "delivery") == Decimal("1000")
    assert await balance(test_session, admin.id, "admin") == Decimal("200")


@pytest.mark.asyncio
async def test_admin_delivered_without_payout_target_returns_conflict(
    client: AsyncClient,
    test_session: AsyncSession,
    two_seller_order: Order,
    seller: User,
):
    """An admin role inserted directly has no admin wallet, so the admin payout fails."""
    operator = await create_test_user(test_session, "Ops", "ops@example.com", ("customer_service",))
    test_session.add(UserRole(user_id=operator.id, role="admin"))
    await test_session.commit()

    response = await client.put(
        f"/orders/{two_seller_order.id}/status",
        json={"status": "delivered"},
        headers=get_auth_header_for_user(operator.id),
    )

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["failed_step"] == f"admin:{operator.id}"
    assert "claim" in detail["completed_steps"]

    order = await client.get(f"/orders/{two_seller_order.id}", headers=get_auth_header_for_user(operator.id))
    assert order.json()["status"] == "processing"
    assert order.json()["payment_status"] == "paid"
    assert await balance(test_session, seller.id, "seller") == 0
