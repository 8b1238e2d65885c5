from sqlalchemy import Integer, String, ForeignKey, DateTime, DECIMAL, Text, Index, JSON, CheckConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from decimal import Decimal
from typing import Optional, Any
from backend.app.core.base import Base
from backend.app.core.clock import utcnow
from backend.app.core.constants import CURRENCY


class Order(Base):
    __tablename__ = 'orders'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    buyer_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id'))
    total_amount: Mapped[Decimal] = mapped_column(DECIMAL(14, 2))
    # Fees are copied from settings at checkout so later config changes do not affect settlement
    platform_fee: Mapped[Decimal] = mapped_column(DECIMAL(14, 2))
    delivery_fee: Mapped[Decimal] = mapped_column(DECIMAL(14, 2))
    admin_fee: Mapped[Decimal] = mapped_column(DECIMAL(14, 2))
    currency: Mapped[str] = mapped_column(String(3), default=CURRENCY)
    status: Mapped[str] = mapped_column(String(20), default='pending')
    # Payment
    payment_status: Mapped[str] = mapped_column(String(20), default='pending')
    payment_method: Mapped[str] = mapped_column(String(30))
    payment_reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    payment_provider: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    paid_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    # {street, city, state, country, zip_code, coordinates: {lat, lng}}
    shipping_address: Mapped[dict[str, Any]] = mapped_column(JSON)
    # Delivery
    delivery_agent_id: Mapped[Optional[int]] = mapped_column(Integer, ForeignKey('users.id'), nullable=True)
    delivery_status: Mapped[str] = mapped_column(String(20), default='pending')
    delivery_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    # {signature, photo, notes, delivery_date}
    delivery_proof: Mapped[Optional[dict[str, Any]]] = mapped_column(JSON, nullable=True)
    estimated_delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    actual_delivery_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        Index('ix_orders_buyer_id', 'buyer_id'),
        Index('ix_orders_delivery_agent_id', 'delivery_agent_id'),
        Index('ix_orders_status', 'status'),
        # Pending deliveries lookup
        Index('ix_orders_status_delivery', 'status', 'delivery_status'),
        Index('ix_orders_created_at', 'created_at'),
    )


class OrderItem(Base):
    __tablename__ = 'order_items'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    order_id: Mapped[int] = mapped_column(Integer, ForeignKey('orders.id', ondelete='CASCADE'))
    product_id: Mapped[int] = mapped_column(Integer, ForeignKey('products.id'))
    # Seller snapshot at checkout
    seller_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id'))
    quantity: Mapped[int] = mapped_column(Integer)
    unit_price: Mapped[Decimal] = mapped_column(DECIMAL(14, 2))
    subtotal: Mapped[Decimal] = mapped_column(DECIMAL(14, 2))

    __table_args__ = (
        CheckConstraint('quantity >= 1', name='quantity_positive'),
        Index('ix_order_items_order_id', 'order_id'),
        Index('ix_order_items_seller_id', 'seller_id'),
    )
