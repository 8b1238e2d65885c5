from sqlalchemy import Integer, String, ForeignKey, DateTime, Boolean, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from datetime import datetime
from typing import Optional
from backend.app.core.base import Base
from backend.app.core.clock import utcnow


class User(Base):
    __tablename__ = 'users'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255))
    email: Mapped[str] = mapped_column(String(255), unique=True)
    phone: Mapped[Optional[str]] = mapped_column(String(50), unique=True, nullable=True)
    # Delivery agents only: accepting new deliveries
    is_available: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)


class UserRole(Base):
    """One row per role held by a user (buyer/seller/delivery/admin/customer_service)."""
    __tablename__ = 'user_roles'

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id', ondelete='CASCADE'))
    role: Mapped[str] = mapped_column(String(30))
    granted_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    __table_args__ = (
        UniqueConstraint('user_id', 'role', name='uq_user_roles_user_role'),
        Index('ix_user_roles_role', 'role'),
    )
