"""
Test fixtures for marketplace backend tests.

Provides:
- In-memory SQLite database for isolated testing
- Async test client with proper session management
- Test data factories for users with roles, funded wallets and products
"""
# IMPORTANT: Set environment variables BEFORE any other imports
import os

os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ.setdefault("JWT_SECRET", "test_jwt_secret")
# Development mode for tests (disables ALLOWED_ORIGINS requirement)
os.environ.setdefault("ENVIRONMENT", "development")
os.environ["RATE_LIMIT_ENABLED"] = "false"

import pytest
from decimal import Decimal
from typing import AsyncGenerator, Iterable

from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
)
from sqlalchemy.pool import StaticPool

from backend.app.core.auth import create_access_token
from backend.app.core.base import Base
from backend.app.main import app
from backend.app.api.deps import get_session
import backend.app.models.order  # noqa: F401 - register Order/OrderItem with Base.metadata
import backend.app.models.subscription  # noqa: F401
import backend.app.models.wallet  # noqa: F401
from backend.app.models.product import Product
from backend.app.models.user import User
from backend.app.services.wallets import WalletService
from backend.app.services.users import UserService


# Test database URL - SQLite in-memory
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


# Create test engine with StaticPool for in-memory SQLite
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
    echo=False,
)

TestSessionLocal = async_sessionmaker(
    bind=test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


@pytest.fixture(scope="function")
async def test_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.
    Creates all tables before and drops after each test.
    """
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest.fixture
async def client(test_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.

    Each API call gets its own session so request transactions do not
    collide with the test_session used by fixtures.
    """
    async def override_get_session():
        async with TestSessionLocal() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


# --- Test Data Factories ---

async def create_test_user(
    session: AsyncSession,
    name: str,
    email: str,
    roles: Iterable[str] = ("buyer",),
) -> User:
    """Create a user through UserService so wallets and the seller trial exist."""
    user = await UserService(session).create_user(name=name, email=email, roles=roles)
    await session.commit()
    return user


async def fund_wallet(session: AsyncSession, owner_id: int, wallet_type: str, amount) -> None:
    """Deposit into a wallet the way a mobile money top-up would."""
    await WalletService(session).deposit(owner_id, wallet_type, Decimal(str(amount)), "mobile_money")
    await session.commit()


async def create_test_product(
    session: AsyncSession,
    seller_id: int,
    name: str = "Test Product",
    price="5000",
    stock: int = 10,
) -> Product:
    product = Product(
        seller_id=seller_id,
        name=name,
        price=Decimal(str(price)),
        stock=stock,
        is_available=stock > 0,
    )
    session.add(product)
    await session.commit()
    await session.refresh(product)
    return product


@pytest.fixture
async def buyer(test_session: AsyncSession) -> User:
    return await create_test_user(test_session, "Awa Diop", "awa@example.com", ("buyer",))


@pytest.fixture
async def seller(test_session: AsyncSession) -> User:
    """Seller with a fresh free trial."""
    return await create_test_user(test_session, "Moussa Ba", "moussa@example.com", ("seller",))


@pytest.fixture
async def second_seller(test_session: AsyncSession) -> User:
    return await create_test_user(test_session, "Fatou Sow", "fatou@example.com", ("seller",))


@pytest.fixture
async def delivery_agent(test_session: AsyncSession) -> User:
    return await create_test_user(test_session, "Ibrahima Fall", "ibrahima@example.com", ("delivery",))


@pytest.fixture
async def admin(test_session: AsyncSession) -> User:
    return await create_test_user(test_session, "Platform Admin", "admin@example.com", ("admin",))


@pytest.fixture
async def funded_buyer(test_session: AsyncSession, buyer: User) -> User:
    """Buyer with 50 000 XOF in the buyer wallet."""
    await fund_wallet(test_session, buyer.id, "buyer", 50000)
    return buyer


@pytest.fixture
async def product(test_session: AsyncSession, seller: User) -> Product:
    return await create_test_product(test_session, seller.id, "Thieboudienne kit", "5000", 10)


# --- Auth Helpers ---

def get_auth_header_for_user(user_id: int) -> dict:
    """Bearer header for any user id."""
    return {"Authorization": f"Bearer {create_access_token(user_id)}"}


SHIPPING_ADDRESS = {
    "street": "12 Rue Carnot",
    "city": "Dakar",
    "country": "Senegal",
    "zipCode": "10200",
    "coordinates": {"lat": 14.6928, "lng": -17.4467},
}
