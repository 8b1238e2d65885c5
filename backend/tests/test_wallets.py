"""
Tests for the wallet API and the ledger underneath it.

Tests cover:
- Listing wallets and reading one wallet with its transactions
- Deposits and withdrawals (validation, insufficient funds)
- Transfers between two wallets of the same owner
- Ledger replay / reconciliation
"""
import re
from decimal import Decimal

import pytest
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.models.user import User
from backend.app.services.wallets import (
    WalletService,
    InsufficientBalanceError,
    InvalidAmountError,
    signed_amount,
)
from backend.tests.conftest import create_test_user, fund_wallet, get_auth_header_for_user


# ============================================
# READS
# ============================================

@pytest.mark.asyncio
async def test_list_wallets(client: AsyncClient, buyer: User):
    response = await client.get("/wallet", headers=get_auth_header_for_user(buyer.id))

    assert response.status_code == 200
    data = response.json()
    assert len(data) == 1
    assert data[0]["wallet_type"] == "buyer"
    assert data[0]["currency"] == "XOF"
    assert Decimal(data[0]["balance"]) == 0


@pytest.mark.asyncio
async def test_get_wallet_with_transactions(client: AsyncClient, test_session: AsyncSession, buyer: User):
    await fund_wallet(test_session, buyer.id, "buyer", 2500)

    response = await client.get("/wallet/buyer", headers=get_auth_header_for_user(buyer.id))

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["balance"]) == Decimal("2500")
    assert len(data["transactions"]) == 1
    assert data["transactions"][0]["type"] == "deposit"


@pytest.mark.asyncio
async def test_get_wallet_invalid_type(client: AsyncClient, buyer: User):
    response = await client.get("/wallet/savings", headers=get_auth_header_for_user(buyer.id))
    assert response.status_code == 400
    assert response.json()["detail"] == "Invalid wallet type"


@pytest.mark.asyncio
async def test_get_wallet_not_owned(client: AsyncClient, buyer: User):
    """A buyer has no seller wallet."""
    response = await client.get("/wallet/seller", headers=get_auth_header_for_user(buyer.id))
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_wallet_requires_auth(client: AsyncClient):
    response = await client.get("/wallet")
    assert response.status_code == 401


# ============================================
# DEPOSIT / WITHDRAW
# ============================================

@pytest.mark.asyncio
async def test_deposit_success(client: AsyncClient, buyer: User):
    response = await client.post(
        "/wallet/deposit",
        json={
            "amount": 10000,
            "walletType": "buyer",
            "paymentMethod": "mobile_money",
            "paymentDetails": {"provider": "orange_money", "accountNumber": "+221770000000"},
        },
        headers=get_auth_header_for_user(buyer.id),
    )

    assert response.status_code == 200
    assert Decimal(response.json()["balance"]) == Decimal("10000")

    tx_response = await client.get("/wallet/transactions/buyer", headers=get_auth_header_for_user(buyer.id))
    transactions = tx_response.json()
    assert len(transactions) == 1
    tx = transactions[0]
    assert tx["type"] == "deposit"
    assert tx["status"] == "completed"
    assert tx["provider"] == "orange_money"
    assert tx["account_number"] == "+221770000000"
    assert re.fullmatch(r"[0-9a-f]{20}", tx["reference"])
    # No provider id given: the ledger reference stands in
    assert tx["provider_transaction_id"] == tx["reference"]


@pytest.mark.asyncio
async def test_deposit_accepts_snake_case(client: AsyncClient, buyer: User):
    response = await client.post(
        "/wallet/deposit",
        json={"amount": "1500.50", "wallet_type": "buyer", "payment_method": "credit_card"},
        headers=get_auth_header_for_user(buyer.id),
    )
    assert response.status_code == 200
    assert Decimal(response.json()["balance"]) == Decimal("1500.50")


@pytest.mark.asyncio
async def test_deposit_non_positive_amount(client: AsyncClient, buyer: User):
    response = await client.post(
        "/wallet/deposit",
        json={"amount": 0, "walletType": "buyer", "paymentMethod": "mobile_money"},
        headers=get_auth_header_for_user(buyer.id),
    )
    assert response.status_code == 400
    body = response.json()
    assert body["detail"] == "Validation error"
    assert body["errors"][0]["field"] == "amount"


@pytest.mark.asyncio
async def test_deposit_rejects_sub_cent_amount(client: AsyncClient, test_session: AsyncSession, buyer: User):
    headers = get_auth_header_for_user(buyer.id)
    for _ in range(3):
        response = await client.post(
            "/wallet/deposit",
            json={"amount": "0.004", "walletType": "buyer", "paymentMethod": "mobile_money"},
            headers=headers,
        )
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "amount"

    service = WalletService(test_session)
    wallet = await service.get_wallet(buyer.id, "buyer")
    report = await service.reconcile(wallet.id)
    assert report["consistent"] is True
    assert report["stored_balance"] == 0


@pytest.mark.asyncio
async def test_deposit_rejects_amount_past_column_range(client: AsyncClient, buyer: User):
    response = await client.post(
        "/wallet/deposit",
        json={"amount": "1000000000000.00", "walletType": "buyer", "paymentMethod": "mobile_money"},
        headers=get_auth_header_for_user(buyer.id),
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_deposit_invalid_payment_method(client: AsyncClient, buyer: User):
    response = await client.post(
        "/wallet/deposit",
        json={"amount": 100, "walletType": "buyer", "paymentMethod": "cash"},
        headers=get_auth_header_for_user(buyer.id),
    )
    assert response.status_code == 400
    assert "Invalid payment method" in response.json()["detail"]


@pytest.mark.asyncio
async def test_withdraw_success(client: AsyncClient, test_session: AsyncSession, buyer: User):
    await fund_wallet(test_session, buyer.id, "buyer", 5000)

    response = await client.post(
        "/wallet/withdraw",
        json={"amount": 2000, "walletType": "buyer", "paymentMethod": "bank_transfer"},
        headers=get_auth_header_for_user(buyer.id),
    )

    assert response.status_code == 200
    assert Decimal(response.json()["balance"]) == Decimal("3000")


@pytest.mark.asyncio
async def test_withdraw_insufficient_balance(client: AsyncClient, test_session: AsyncSession, buyer: User):
    await fund_wallet(test_session, buyer.id, "buyer", 1000)

    response = await client.post(
        "/wallet/withdraw",
        json={"amount": 1500, "walletType": "buyer", "paymentMethod": "mobile_money"},
        headers=get_auth_header_for_user(buyer.id),
    )

    assert response.status_code == 400
    detail = response.json()["detail"]
    assert detail["message"] == "Insufficient balance"
    assert Decimal(detail["required"]) == Decimal("1500")
    assert Decimal(detail["available"]) == Decimal("1000")

    wallet = await client.get("/wallet/buyer", headers=get_auth_header_for_user(buyer.id))
    assert Decimal(wallet.json()["balance"]) == Decimal("1000")
    assert len(wallet.json()["transactions"]) == 1


# ============================================
# TRANSFER
# ============================================

@pytest.fixture
async def buyer_seller(test_session: AsyncSession) -> User:
    """User holding both a buyer and a seller wallet."""
    user = await create_test_user(test_session, "Khady Ndiaye", "khady@example.com", ("buyer", "seller"))
    await fund_wallet(test_session, user.id, "seller", 8000)
    return user


@pytest.mark.asyncio
async def test_transfer_success(client: AsyncClient, buyer_seller: User):
    headers = get_auth_header_for_user(buyer_seller.id)
    response = await client.post(
        "/wallet/transfer",
        json={"amount": 3000, "fromWalletType": "seller", "toWalletType": "buyer"},
        headers=headers,
    )

    assert response.status_code == 200
    data = response.json()
    assert Decimal(data["from_wallet"]["balance"]) == Decimal("5000")
    assert Decimal(data["to_wallet"]["balance"]) == Decimal("3000")

    seller_txs = (await client.get("/wallet/transactions/seller", headers=headers)).json()
    buyer_txs = (await client.get("/wallet/transactions/buyer", headers=headers)).json()
    out_leg = seller_txs[-1]
    in_leg = buyer_txs[-1]
    assert out_leg["type"] == "withdrawal"
    assert in_leg["type"] == "deposit"
    assert out_leg["payment_method"] == in_leg["payment_method"] == "internal"
    assert out_leg["reference"] != in_leg["reference"]
    assert out_leg["provider_transaction_id"] == in_leg["provider_transaction_id"]


@pytest.mark.asyncio
async def test_transfer_same_wallet(client: AsyncClient, buyer_seller: User):
    response = await client.post(
        "/wallet/transfer",
        json={"amount": 100, "fromWalletType": "seller", "toWalletType": "seller"},
        headers=get_auth_header_for_user(buyer_seller.id),
    )
    assert response.status_code == 400
    assert response.json()["detail"] == "Cannot transfer to the same wallet"


@pytest.mark.asyncio
async def test_transfer_missing_destination(client: AsyncClient, buyer_seller: User):
    response = await client.post(
        "/wallet/transfer",
        json={"amount": 100, "fromWalletType": "seller", "toWalletType": "delivery"},
        headers=get_auth_header_for_user(buyer_seller.id),
    )
    assert response.status_code == 404
    assert response.json()["detail"] == "Destination wallet not found"


@pytest.mark.asyncio
async def test_transfer_insufficient_keeps_both_balances(client: AsyncClient, buyer_seller: User):
    headers = get_auth_header_for_user(buyer_seller.id)
    response = await client.post(
        "/wallet/transfer",
        json={"amount": 9000, "fromWalletType": "seller", "toWalletType": "buyer"},
        headers=headers,
    )
    assert response.status_code == 400

    seller_wallet = (await client.get("/wallet/seller", headers=headers)).json()
    buyer_wallet = (await client.get("/wallet/buyer", headers=headers)).json()
    assert Decimal(seller_wallet["balance"]) == Decimal("8000")
    assert Decimal(buyer_wallet["balance"]) == 0
    assert buyer_wallet["transactions"] == []


# ============================================
# LEDGER (service level)
# ============================================

class TestSignTable:
    def test_credit_types_are_positive(self):
        for tx_type in ("deposit", "refund", "commission"):
            assert signed_amount(tx_type, Decimal("10")) == Decimal("10")

    def test_debit_types_are_negative(self):
        for tx_type in ("withdrawal", "payment", "fee"):
            assert signed_amount(tx_type, Decimal("10")) == Decimal("-10")


@pytest.mark.asyncio
async def test_debit_below_zero_writes_nothing(test_session: AsyncSession, buyer: User):
    service = WalletService(test_session)
    wallet = await service.get_wallet(buyer.id, "buyer")

    with pytest.raises(InsufficientBalanceError):
        await service.add_transaction(wallet, "payment", Decimal("1"))

    assert await service.list_transactions(wallet.id) == []
    assert Decimal(str(wallet.balance)) == 0


@pytest.mark.asyncio
async def test_pending_transaction_does_not_move_balance(test_session: AsyncSession, buyer: User):
    service = WalletService(test_session)
    wallet = await service.get_wallet(buyer.id, "buyer")

    await service.add_transaction(wallet, "deposit", Decimal("700"), status="pending")
    await test_session.commit()

    assert Decimal(str(wallet.balance)) == 0
    assert await service.ledger_balance(wallet.id) == 0


@pytest.mark.asyncio
async def test_add_transaction_rejects_bad_amount(test_session: AsyncSession, buyer: User):
    service = WalletService(test_session)
    wallet = await service.get_wallet(buyer.id, "buyer")
    with pytest.raises(InvalidAmountError):
        await service.add_transaction(wallet, "deposit", "-5")


@pytest.mark.asyncio
@pytest.mark.parametrize("amount", ["0.004", "12.345", "1000000000000"])
async def test_add_transaction_rejects_amount_the_column_cannot_hold(
    test_session: AsyncSession, buyer: User, amount: str
):
    service = WalletService(test_session)
    wallet = await service.get_wallet(buyer.id, "buyer")
    with pytest.raises(InvalidAmountError):
        await service.add_transaction(wallet, "deposit", amount)
    assert await service.list_transactions(wallet.id) == []


@pytest.mark.asyncio
async def test_reconcile_after_movements(test_session: AsyncSession, buyer: User):
    service = WalletService(test_session)
    await service.deposit(buyer.id, "buyer", Decimal("4000"), "mobile_money")
    await service.withdraw(buyer.id, "buyer", Decimal("1250"), "bank_transfer")
    await test_session.commit()

    wallet = await service.get_wallet(buyer.id, "buyer")
    report = await service.reconcile(wallet.id)

    assert report["consistent"] is True
    assert report["ledger_balance"] == Decimal("2750")
    assert report["stored_balance"] == Decimal("2750")


@pytest.mark.asyncio
async def test_admin_reconcile_endpoint(
    client: AsyncClient,
    test_session: AsyncSession,
    admin: User,
    buyer: User,
):
    await fund_wallet(test_session, buyer.id, "buyer", 300)
    wallet = await WalletService(test_session).get_wallet(buyer.id, "buyer")

    response = await client.get(
        f"/admin/wallets/{wallet.id}/reconcile", headers=get_auth_header_for_user(admin.id)
    )
    assert response.status_code == 200
    assert response.json()["consistent"] is True

    forbidden = await client.get(
        f"/admin/wallets/{wallet.id}/reconcile", headers=get_auth_header_for_user(buyer.id)
    )
    assert forbidden.status_code == 403
