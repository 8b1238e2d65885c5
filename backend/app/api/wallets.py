from typing import List

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.api.deps import get_session, get_current_user, AuthenticatedUser
from backend.app.core.constants import WALLET_TYPES
from backend.app.core.exceptions import http_error
from backend.app.core.limiter import limiter
from backend.app.core.logging import get_logger
from backend.app.core.settings import get_settings
from backend.app.schemas import (
    WalletMovement,
    WalletTransfer,
    WalletResponse,
    WalletDetailResponse,
    TransactionResponse,
    TransferResponse,
)
from backend.app.services.wallets import WalletService, WalletServiceError

router = APIRouter()
logger = get_logger(__name__)
WALLET_RATE_LIMIT = get_settings().WALLET_RATE_LIMIT


def _check_wallet_type(wallet_type: str) -> None:
    if wallet_type not in WALLET_TYPES:
        raise HTTPException(status_code=400, detail="Invalid wallet type")


@router.get("", response_model=List[WalletResponse])
async def list_wallets(
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """All wallets of the current user."""
    return await WalletService(session).list_wallets(current_user.id)


@router.get("/transactions/{wallet_type}", response_model=List[TransactionResponse])
async def list_transactions(
    wallet_type: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    _check_wallet_type(wallet_type)
    service = WalletService(session)
    try:
        wallet = await service.get_wallet(current_user.id, wallet_type)
    except WalletServiceError as e:
        raise http_error(e)
    return await service.list_transactions(wallet.id)


@router.get("/{wallet_type}", response_model=WalletDetailResponse)
async def get_wallet(
    wallet_type: str,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """One wallet of the current user, with its transactions."""
    _check_wallet_type(wallet_type)
    service = WalletService(session)
    try:
        wallet = await service.get_wallet(current_user.id, wallet_type)
    except WalletServiceError as e:
        raise http_error(e)
    transactions = await service.list_transactions(wallet.id)
    return WalletDetailResponse(
        **WalletResponse.model_validate(wallet).model_dump(),
        transactions=[TransactionResponse.model_validate(t) for t in transactions],
    )


@router.post("/deposit", response_model=WalletResponse)
@limiter.limit(WALLET_RATE_LIMIT)
async def deposit(
    request: Request,
    data: WalletMovement,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = WalletService(session)
    try:
        wallet = await service.deposit(
            owner_id=current_user.id,
            wallet_type=data.wallet_type,
            amount=data.amount,
            payment_method=data.payment_method,
            payment_details=data.payment_details.model_dump() if data.payment_details else None,
        )
        await session.commit()
    except WalletServiceError as e:
        await session.rollback()
        logger.warning("Deposit failed", user_id=current_user.id, error=e.message, error_code=e.status_code)
        raise http_error(e)
    logger.info("Deposit completed", user_id=current_user.id, wallet_id=wallet.id, amount=str(data.amount))
    return wallet


@router.post("/withdraw", response_model=WalletResponse)
@limiter.limit(WALLET_RATE_LIMIT)
async def withdraw(
    request: Request,
    data: WalletMovement,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    service = WalletService(session)
    try:
        wallet = await service.withdraw(
            owner_id=current_user.id,
            wallet_type=data.wallet_type,
            amount=data.amount,
            payment_method=data.payment_method,
            payment_details=data.payment_details.model_dump() if data.payment_details else None,
        )
        await session.commit()
    except WalletServiceError as e:
        await session.rollback()
        logger.warning("Withdrawal failed", user_id=current_user.id, error=e.message, error_code=e.status_code)
        raise http_error(e)
    logger.info("Withdrawal completed", user_id=current_user.id, wallet_id=wallet.id, amount=str(data.amount))
    return wallet


@router.post("/transfer", response_model=TransferResponse)
@limiter.limit(WALLET_RATE_LIMIT)
async def transfer(
    request: Request,
    data: WalletTransfer,
    current_user: AuthenticatedUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_session),
):
    """Move funds between two wallets of the current user."""
    service = WalletService(session)
    try:
        from_wallet, to_wallet = await service.transfer(
            owner_id=current_user.id,
            amount=data.amount,
            from_wallet_type=data.from_wallet_type,
            to_wallet_type=data.to_wallet_type,
        )
        await session.commit()
    except WalletServiceError as e:
        await session.rollback()
        logger.warning("Transfer failed", user_id=current_user.id, error=e.message, error_code=e.status_code)
        raise http_error(e)
    return TransferResponse(
        from_wallet=WalletResponse.model_validate(from_wallet),
        to_wallet=WalletResponse.model_validate(to_wallet),
    )
