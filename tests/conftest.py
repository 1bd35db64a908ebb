"""
Pytest configuration and shared test fixtures.

Tests run against a throwaway SQLite database per test (aiosqlite) with the
schema created from the ORM metadata. Settings are pointed at the test
environment before any application module is imported.
"""

import os

os.environ["APP_ENVIRONMENT"] = "test"
os.environ.setdefault("APP_DATABASE_URL", "sqlite+aiosqlite:///./test_rider_dispatch.db")
os.environ.setdefault("APP_LOG_LEVEL", "WARNING")

import uuid
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import AsyncGenerator, Optional

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from rider_dispatch.core.security import create_access_token
from rider_dispatch.database.connection import build_session_factory, create_engine, get_db
from rider_dispatch.database.models import Base, Order, OrderItem, OrderStatusHistory, Profile, UserRole
from rider_dispatch.main import app
from rider_dispatch.services.orders.enums import OrderStatus
from rider_dispatch.services.realtime.change_feed import ChangeFeed

# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    Create an engine bound to a fresh SQLite file with the full schema.

    Yields:
        AsyncEngine: Engine for the test database
    """
    test_engine = create_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}")
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(engine)


@pytest.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Session used by a test for setup and assertions."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def change_feed() -> ChangeFeed:
    return ChangeFeed(queue_size=100)


# ============================================================================
# Factories
# ============================================================================


@pytest.fixture
def make_profile(db_session: AsyncSession):
    """
    Factory for committed profiles.

    Example:
        rider = await make_profile(UserRole.RIDER, is_active=True)
    """

    async def _make(
        role: UserRole = UserRole.CUSTOMER,
        display_name: Optional[str] = None,
        **fields,
    ) -> Profile:
        profile = Profile(
            role=role,
            display_name=display_name or f"{role.value}-{uuid.uuid4().hex[:6]}",
            **fields,
        )
        db_session.add(profile)
        await db_session.commit()
        return profile

    return _make


@pytest.fixture
def make_order(db_session: AsyncSession):
    """
    Factory for committed orders in any status.

    ``age_minutes`` backdates ``created_at`` so list ordering is
    deterministic.
    """

    async def _make(
        customer: Profile,
        status: OrderStatus = OrderStatus.PENDING,
        rider: Optional[Profile] = None,
        delivery_fee: Decimal = Decimal("50.00"),
        dropoff_lat: Optional[float] = 14.5995,
        dropoff_lng: Optional[float] = 120.9842,
        age_minutes: int = 0,
        **fields,
    ) -> Order:
        created_at = datetime.now(timezone.utc) - timedelta(minutes=age_minutes)
        order = Order(
            user_id=customer.id,
            rider_id=rider.id if rider else None,
            status=status,
            subtotal=Decimal("200.00"),
            delivery_fee=delivery_fee,
            total_amount=Decimal("200.00") + delivery_fee,
            dropoff_address="123 Rizal Ave, Manila",
            dropoff_lat=dropoff_lat,
            dropoff_lng=dropoff_lng,
            created_at=created_at,
            **fields,
        )
        db_session.add(order)
        await db_session.flush()
        db_session.add(
            OrderItem(
                order_id=order.id,
                product_id=uuid.uuid4(),
                product_name="Rice 5kg",
                quantity=2,
                unit_price=Decimal("100.00"),
            )
        )
        db_session.add(
            OrderStatusHistory(order_id=order.id, from_status=None, to_status=status)
        )
        await db_session.commit()
        return order

    return _make


@pytest.fixture
async def customer(make_profile) -> Profile:
    return await make_profile(UserRole.CUSTOMER, display_name="Maria Santos", mobile="09171234567")


@pytest.fixture
async def rider(make_profile) -> Profile:
    return await make_profile(UserRole.RIDER, display_name="Juan Dela Cruz", is_active=True)


@pytest.fixture
async def admin(make_profile) -> Profile:
    return await make_profile(UserRole.ADMIN, display_name="Ops Admin")


# ============================================================================
# HTTP Fixtures
# ============================================================================


def auth_headers(profile: Profile) -> dict[str, str]:
    token = create_access_token(profile.id, profile.role.value)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    return auth_headers


@pytest.fixture
async def async_client(
    session_factory: async_sessionmaker[AsyncSession],
    change_feed: ChangeFeed,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Asynchronous client for the FastAPI application wired to the test database.

    Example:
        async def test_health(async_client):
            response = await async_client.get("/health")
            assert response.status_code == 200
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.state.change_feed = change_feed
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
        del app.state.change_feed
