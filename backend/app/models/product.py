from sqlalchemy import Integer, String, ForeignKey, DateTime, DECIMAL, Text, Boolean, Index, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from typing import Optional
from backend.app.core.base import Base
from backend.app.core.clock import utcnow
from backend.app.core.constants import CURRENCY


class Product(Base):
    __tablename__ = 'products'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seller_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id'))
    name: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    price: Mapped[Decimal] = mapped_column(DECIMAL(14, 2))
    currency: Mapped[str] = mapped_column(String(3), default=CURRENCY)
    category: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    stock: Mapped[int] = mapped_column(Integer, default=0)
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        CheckConstraint('stock >= 0', name='stock_non_negative'),
        Index('ix_products_seller_id', 'seller_id'),
        Index('ix_products_category', 'category'),
    )
