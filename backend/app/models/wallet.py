from sqlalchemy import (
    Integer, String, ForeignKey, DateTime, DECIMAL, Text, Boolean, Index,
    UniqueConstraint, CheckConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from typing import Optional
from backend.app.core.base import Base
from backend.app.core.clock import utcnow
from backend.app.core.constants import CURRENCY


class Wallet(Base):
    """Balance held by one user under one role."""
    __tablename__ = 'wallets'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id'))
    wallet_type: Mapped[str] = mapped_column(String(20))  # buyer/seller/delivery/admin
    balance: Mapped[Decimal] = mapped_column(DECIMAL(14, 2), default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default=CURRENCY)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint('owner_id', 'wallet_type', name='uq_wallets_owner_type'),
        CheckConstraint('balance >= 0', name='balance_non_negative'),
        Index('ix_wallets_wallet_type', 'wallet_type'),
    )


class WalletTransaction(Base):
    """Append-only ledger entry. Never updated after insert."""
    __tablename__ = 'wallet_transactions'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    wallet_id: Mapped[int] = mapped_column(Integer, ForeignKey('wallets.id', ondelete='CASCADE'))
    type: Mapped[str] = mapped_column(String(20))
    amount: Mapped[Decimal] = mapped_column(DECIMAL(14, 2))
    currency: Mapped[str] = mapped_column(String(3), default=CURRENCY)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default='completed')
    reference: Mapped[str] = mapped_column(String(40), unique=True)
    related_order_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey('orders.id'), nullable=True)
    related_user_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey('users.id'), nullable=True)
    payment_method: Mapped[Optional[str]] = mapped_column(String(30), nullable=True)
    # Payment details
    provider: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    provider_transaction_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    account_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint('amount > 0', name='amount_positive'),
        Index('ix_wallet_transactions_wallet_id', 'wallet_id', 'id'),
        Index('ix_wallet_transactions_related_order', 'related_order_id'),
    )
