# backend/app/services/wallets.py
"""
Wallet service - per-role balances and the append-only transaction ledger.

Balance changes are applied with single UPDATE statements so concurrent
requests cannot overdraw a wallet: debits only match while
`balance >= amount`. The ledger row and the balance change are written in
the caller's transaction; the caller commits (or rolls back on error).
"""
import secrets
from decimal import Decimal
from typing import Optional, List, Dict, Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.constants import (
    CREDIT_TRANSACTION_TYPES,
    DEBIT_TRANSACTION_TYPES,
    TRANSACTION_TYPES,
    TRANSACTION_STATUSES,
    TRANSACTION_PAYMENT_METHODS,
    WALLET_TYPES,
    WALLET_PAYMENT_METHODS,
    REFERENCE_BYTES,
    CURRENCY,
    AMOUNT_QUANTUM,
    MAX_AMOUNT,
)
from backend.app.core.exceptions import ServiceError
from backend.app.core.logging import get_logger
from backend.app.core.metrics import wallet_transactions_total
from backend.app.models.wallet import Wallet, WalletTransaction

logger = get_logger(__name__)


class WalletServiceError(ServiceError):
    """Base exception for wallet service errors."""


class WalletNotFoundError(WalletServiceError):
    def __init__(self, owner_id: int, wallet_type: str):
        super().__init__(f"Wallet '{wallet_type}' not found for user {owner_id}", 404)


class InvalidWalletTypeError(WalletServiceError):
    def __init__(self, wallet_type: str):
        super().__init__(f"Invalid wallet type '{wallet_type}'. Must be one of: {', '.join(WALLET_TYPES)}")


class InvalidAmountError(WalletServiceError):
    def __init__(self, amount: Any):
        super().__init__(f"Amount must be a positive number with at most 2 decimal places, got {amount}")


class InvalidTransactionTypeError(WalletServiceError):
    def __init__(self, tx_type: str):
        super().__init__(f"Invalid transaction type '{tx_type}'")


class InvalidPaymentMethodError(WalletServiceError):
    def __init__(self, method: str):
        super().__init__(
            f"Invalid payment method '{method}'. Must be one of: {', '.join(WALLET_PAYMENT_METHODS)}"
        )


class SameWalletTransferError(WalletServiceError):
    def __init__(self):
        super().__init__("Cannot transfer to the same wallet")


class InsufficientBalanceError(WalletServiceError):
    def __init__(self, required: Decimal, available: Decimal):
        super().__init__(
            "Insufficient balance",
            400,
            details={"required": str(required), "available": str(available)},
        )
        self.required = required
        self.available = available


def generate_reference() -> str:
    """Random ledger reference, 20 hex chars."""
    return secrets.token_hex(REFERENCE_BYTES)


def signed_amount(tx_type: str, amount: Decimal) -> Decimal:
    """Apply the credit/debit sign table."""
    if tx_type in CREDIT_TRANSACTION_TYPES:
        return amount
    if tx_type in DEBIT_TRANSACTION_TYPES:
        return -amount
    raise InvalidTransactionTypeError(tx_type)


def _to_amount(amount: Any) -> Decimal:
    try:
        value = Decimal(str(amount))
    except (ArithmeticError, ValueError):
        raise InvalidAmountError(amount)
    if not value.is_finite() or value <= 0 or value > MAX_AMOUNT:
        raise InvalidAmountError(amount)
    # Column holds cents; a finer amount would not round-trip
    if value != value.quantize(AMOUNT_QUANTUM):
        raise InvalidAmountError(amount)
    return value


def _validate_wallet_type(wallet_type: str) -> None:
    if wallet_type not in WALLET_TYPES:
        raise InvalidWalletTypeError(wallet_type)


class WalletService:
    """Service class for wallet operations."""

    def __init__(self, session: AsyncSession):
        self.session = session

    # -- Lookup ----------------------------------------------------------------

    async def find_by_owner_and_type(self, owner_id: int, wallet_type: str) -> Optional[Wallet]:
        result = await self.session.execute(
            select(Wallet).where(Wallet.owner_id == owner_id, Wallet.wallet_type == wallet_type)
        )
        return result.scalar_one_or_none()

    async def get_wallet(self, owner_id: int, wallet_type: str) -> Wallet:
        """Get wallet or raise WalletNotFoundError."""
        _validate_wallet_type(wallet_type)
        wallet = await self.find_by_owner_and_type(owner_id, wallet_type)
        if not wallet:
            raise WalletNotFoundError(owner_id, wallet_type)
        return wallet

    async def list_wallets(self, owner_id: int) -> List[Wallet]:
        result = await self.session.execute(
            select(Wallet).where(Wallet.owner_id == owner_id).order_by(Wallet.id)
        )
        return list(result.scalars().all())

    async def list_transactions(self, wallet_id: int, limit: Optional[int] = None) -> List[WalletTransaction]:
        """Transactions in insertion order."""
        query = (
            select(WalletTransaction)
            .where(WalletTransaction.wallet_id == wallet_id)
            .order_by(WalletTransaction.id)
        )
        if limit:
            query = query.limit(limit)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def create_wallet(self, owner_id: int, wallet_type: str) -> Wallet:
        """Create the owner's wallet for a role. Returns the existing one if present."""
        _validate_wallet_type(wallet_type)
        wallet = await self.find_by_owner_and_type(owner_id, wallet_type)
        if wallet:
            return wallet
        wallet = Wallet(owner_id=owner_id, wallet_type=wallet_type, balance=Decimal("0"), currency=CURRENCY)
        self.session.add(wallet)
        await self.session.flush()
        logger.info("Wallet created", wallet_id=wallet.id, owner_id=owner_id, wallet_type=wallet_type)
        return wallet

    # -- Ledger ----------------------------------------------------------------

    @staticmethod
    def has_sufficient_balance(wallet: Wallet, amount: Any) -> bool:
        return Decimal(str(wallet.balance)) >= Decimal(str(amount))

    async def add_transaction(
        self,
        wallet: Wallet,
        tx_type: str,
        amount: Any,
        description: Optional[str] = None,
        status: str = "completed",
        related_order_id: Optional[int] = None,
        related_user_id: Optional[int] = None,
        payment_method: Optional[str] = None,
        provider: Optional[str] = None,
        provider_transaction_id: Optional[str] = None,
        account_number: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> WalletTransaction:
        """
        Append a transaction and apply it to the balance.

        Only completed transactions move the balance. A debit that would take
        the balance below zero raises InsufficientBalanceError and writes
        nothing. Caller must commit.
        """
        if tx_type not in TRANSACTION_TYPES:
            raise InvalidTransactionTypeError(tx_type)
        if status not in TRANSACTION_STATUSES:
            raise WalletServiceError(f"Invalid transaction status '{status}'")
        if payment_method is not None and payment_method not in TRANSACTION_PAYMENT_METHODS:
            raise WalletServiceError(f"Invalid transaction payment method '{payment_method}'")
        value = _to_amount(amount)
        delta = signed_amount(tx_type, value)

        if status == "completed":
            if delta < 0:
                result = await self.session.execute(
                    update(Wallet)
                    .where(Wallet.id == wallet.id, Wallet.balance >= value)
                    .values(balance=Wallet.balance - value)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount == 0:
                    await self.session.refresh(wallet)
                    raise InsufficientBalanceError(value, Decimal(str(wallet.balance)))
            else:
                await self.session.execute(
                    update(Wallet)
                    .where(Wallet.id == wallet.id)
                    .values(balance=Wallet.balance + value)
                    .execution_options(synchronize_session=False)
                )

        tx = WalletTransaction(
            wallet_id=wallet.id,
            type=tx_type,
            amount=value,
            currency=wallet.currency,
            description=description,
            status=status,
            reference=reference or generate_reference(),
            related_order_id=related_order_id,
            related_user_id=related_user_id,
            payment_method=payment_method,
            provider=provider,
            provider_transaction_id=provider_transaction_id,
            account_number=account_number,
        )
        self.session.add(tx)
        await self.session.flush()
        await self.session.refresh(wallet)

        wallet_transactions_total.labels(wallet_type=wallet.wallet_type, transaction_type=tx_type).inc()
        logger.info(
            "Wallet transaction appended",
            wallet_id=wallet.id,
            tx_type=tx_type,
            amount=str(value),
            status=status,
            reference=tx.reference,
            related_order_id=related_order_id,
            balance=str(wallet.balance),
        )
        return tx

    async def ledger_balance(self, wallet_id: int) -> Decimal:
        """Replay completed transactions through the sign table."""
        result = await self.session.execute(
            select(WalletTransaction.type, WalletTransaction.amount).where(
                WalletTransaction.wallet_id == wallet_id,
                WalletTransaction.status == "completed",
            )
        )
        total = Decimal("0")
        for tx_type, amount in result.all():
            total += signed_amount(tx_type, Decimal(str(amount)))
        return total

    async def reconcile(self, wallet_id: int) -> Dict[str, Any]:
        """Compare the stored balance with the replayed ledger."""
        wallet = await self.session.get(Wallet, wallet_id)
        if not wallet:
            raise WalletServiceError(f"Wallet {wallet_id} not found", 404)
        ledger = await self.ledger_balance(wallet_id)
        stored = Decimal(str(wallet.balance))
        if stored != ledger:
            logger.warning("Wallet balance drift", wallet_id=wallet_id, stored=str(stored), ledger=str(ledger))
        return {
            "wallet_id": wallet.id,
            "stored_balance": stored,
            "ledger_balance": ledger,
            "consistent": stored == ledger,
        }

    # -- User operations -------------------------------------------------------

    async def deposit(
        self,
        owner_id: int,
        wallet_type: str,
        amount: Any,
        payment_method: str,
        payment_details: Optional[Dict[str, Any]] = None,
    ) -> Wallet:
        """Add external funds to a wallet. Caller must commit."""
        return await self._external_movement(
            "deposit", owner_id, wallet_type, amount, payment_method, payment_details
        )

    async def withdraw(
        self,
        owner_id: int,
        wallet_type: str,
        amount: Any,
        payment_method: str,
        payment_details: Optional[Dict[str, Any]] = None,
    ) -> Wallet:
        """Move funds out of a wallet. Caller must commit."""
        return await self._external_movement(
            "withdrawal", owner_id, wallet_type, amount, payment_method, payment_details
        )

    async def _external_movement(
        self,
        tx_type: str,
        owner_id: int,
        wallet_type: str,
        amount: Any,
        payment_method: str,
        payment_details: Optional[Dict[str, Any]],
    ) -> Wallet:
        _validate_wallet_type(wallet_type)
        value = _to_amount(amount)
        if payment_method not in WALLET_PAYMENT_METHODS:
            raise InvalidPaymentMethodError(payment_method)

        wallet = await self.get_wallet(owner_id, wallet_type)
        if tx_type == "withdrawal" and not self.has_sufficient_balance(wallet, value):
            raise InsufficientBalanceError(value, Decimal(str(wallet.balance)))

        reference = generate_reference()
        details = payment_details or {}
        direction = "to" if tx_type == "deposit" else "from"
        await self.add_transaction(
            wallet,
            tx_type,
            value,
            description=f"{tx_type.capitalize()} {direction} {wallet_type} wallet",
            related_user_id=owner_id,
            payment_method=payment_method,
            provider=details.get("provider") or payment_method,
            provider_transaction_id=details.get("transaction_id") or reference,
            account_number=details.get("account_number"),
            reference=reference,
        )
        return wallet

    async def transfer(
        self,
        owner_id: int,
        amount: Any,
        from_wallet_type: str,
        to_wallet_type: str,
    ) -> tuple[Wallet, Wallet]:
        """
        Move funds between two wallets of the same owner.

        Both legs are written in the caller's transaction, so a failure on
        the credit leg rolls back the debit. Each leg gets its own reference;
        the shared transfer id is kept as provider_transaction_id.
        """
        _validate_wallet_type(from_wallet_type)
        _validate_wallet_type(to_wallet_type)
        if from_wallet_type == to_wallet_type:
            raise SameWalletTransferError()
        value = _to_amount(amount)

        from_wallet = await self.find_by_owner_and_type(owner_id, from_wallet_type)
        if not from_wallet:
            raise WalletServiceError("Source wallet not found", 404)
        to_wallet = await self.find_by_owner_and_type(owner_id, to_wallet_type)
        if not to_wallet:
            raise WalletServiceError("Destination wallet not found", 404)

        if not self.has_sufficient_balance(from_wallet, value):
            raise InsufficientBalanceError(value, Decimal(str(from_wallet.balance)))

        transfer_id = generate_reference()
        await self.add_transaction(
            from_wallet,
            "withdrawal",
            value,
            description=f"Transfer to {to_wallet_type} wallet",
            related_user_id=owner_id,
            payment_method="internal",
            provider="internal",
            provider_transaction_id=transfer_id,
        )
        await self.add_transaction(
            to_wallet,
            "deposit",
            value,
            description=f"Transfer from {from_wallet_type} wallet",
            related_user_id=owner_id,
            payment_method="internal",
            provider="internal",
            provider_transaction_id=transfer_id,
        )
        logger.info(
            "Wallet transfer",
            owner_id=owner_id,
            from_wallet_type=from_wallet_type,
            to_wallet_type=to_wallet_type,
            amount=str(value),
            transfer_id=transfer_id,
        )
        return from_wallet, to_wallet
