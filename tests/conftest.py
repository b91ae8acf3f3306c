"""Pytest fixtures for dispute service and API tests."""

import uuid
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import src.models  # noqa: F401  (registers every table on Base.metadata)
from src.app import app, limiter
from src.config import settings
from src.database.base import Base
from src.database.session import get_db
from src.models.enums import MarketplaceOrderStatus
from src.models.invoice import MarketplaceInvoice
from src.models.order import MarketplaceOrder

# Use SQLite for lightweight in-process testing; StaticPool keeps the
# single in-memory connection alive across sessions
TEST_DATABASE_URL = "sqlite+aiosqlite://"


@pytest_asyncio.fixture
async def async_test_engine():
    engine = create_async_engine(TEST_DATABASE_URL, echo=False, poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture
async def async_test_session(async_test_engine) -> AsyncGenerator[AsyncSession, None]:
    session_factory = async_sessionmaker(
        async_test_engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session


@pytest.fixture
def buyer_id() -> uuid.UUID:
    return uuid.uuid4()


@pytest.fixture
def seller_id() -> uuid.UUID:
    return uuid.uuid4()


OrderFactory = Callable[..., Awaitable[MarketplaceOrder]]


@pytest_asyncio.fixture
async def make_order(
    async_test_session: AsyncSession, buyer_id: uuid.UUID, seller_id: uuid.UUID
) -> OrderFactory:
    """Insert and commit a delivered order (plus invoice) for the default parties."""

    async def _make(
        *,
        total_price: Decimal = Decimal("1200.00"),
        status: MarketplaceOrderStatus = MarketplaceOrderStatus.DELIVERED,
        delivered_at: datetime | None = None,
        with_invoice: bool = True,
        buyer: uuid.UUID | None = None,
        seller: uuid.UUID | None = None,
        item_name: str = "Hydraulic pump",
    ) -> MarketplaceOrder:
        suffix = uuid.uuid4().hex[:8].upper()
        order = MarketplaceOrder(
            order_number=f"ORD-{suffix}",
            buyer_id=buyer or buyer_id,
            seller_id=seller or seller_id,
            buyer_name="Acme Buyer",
            buyer_email="buyer@acme.test",
            buyer_company="Acme Ltd",
            item_name=item_name,
            item_sku="HP-100",
            quantity=2,
            unit_price=total_price / 2,
            total_price=total_price,
            currency="USD",
            status=status,
            delivered_at=delivered_at or datetime.now(UTC) - timedelta(days=2),
        )
        async_test_session.add(order)
        await async_test_session.flush()
        if with_invoice:
            async_test_session.add(
                MarketplaceInvoice(
                    invoice_number=f"INV-{suffix}",
                    order_id=order.id,
                    seller_name="Bolt Supply",
                    seller_company="Bolt Supply Co",
                )
            )
        await async_test_session.commit()
        return order

    return _make


def _make_token(user_id: uuid.UUID) -> str:
    return jwt.encode(
        {"sub": str(user_id), "email": f"{user_id.hex[:6]}@example.test"},
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm,
    )


@pytest.fixture
def auth_headers() -> Callable[[uuid.UUID], dict[str, str]]:
    """Build a bearer header carrying a signed token for the given actor."""

    def _headers(user_id: uuid.UUID) -> dict[str, str]:
        return {"Authorization": f"Bearer {_make_token(user_id)}"}

    return _headers


@pytest_asyncio.fixture
async def async_client(async_test_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Yield an httpx AsyncClient wired to the FastAPI app with the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield async_test_session

    app.dependency_overrides[get_db] = override_get_db
    limiter.enabled = False

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    limiter.enabled = True
    app.dependency_overrides.clear()
