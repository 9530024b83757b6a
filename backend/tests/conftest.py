"""
Test Configuration — Fixtures for async DB, test client, and seeded orders.

Each test gets its own SQLite file so the sweeper, which opens its own
sessions, sees exactly what the test committed.
"""

import uuid
from datetime import datetime, timedelta

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from api.deps import get_current_user, get_db
from api.main import app
from db.session import Base

CLIENT_ID = "00000000-0000-0000-0000-000000000001"
OTHER_CLIENT_ID = "00000000-0000-0000-0000-000000000002"

# Fixed "now" for tests that drive the clock explicitly.
NOW = datetime(2026, 3, 2, 12, 0, 0)


@pytest.fixture
async def test_engine(tmp_path):
    """Create a per-test database engine and build all tables."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'waypoint.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def test_db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def mock_user():
    """Mock authenticated user. Tests mutate it to switch role/tenant."""
    return {
        "sub": "test-admin",
        "email": "ops@waypoint.test",
        "role": "admin",
    }


@pytest.fixture
async def client(test_db, mock_user):
    """Create an async test client with dependency overrides."""

    async def override_get_db():
        yield test_db

    def override_get_current_user():
        return mock_user

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = override_get_current_user

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
async def seeded_db(test_db):
    """Two tenants and orders in a spread of statuses, heartbeats relative to NOW."""
    from db.models import Client, Order

    client_a = Client(
        client_id=uuid.UUID(CLIENT_ID),
        company_name="Andes Freight",
        tax_id="900100200-1",
    )
    client_b = Client(
        client_id=uuid.UUID(OTHER_CLIENT_ID),
        company_name="Caribe Cargo",
        tax_id="900300400-2",
    )
    test_db.add_all([client_a, client_b])
    await test_db.flush()

    def _order(number, client, status, minutes_ago, **extra):
        heartbeat = NOW - timedelta(minutes=minutes_ago)
        return Order(
            client_id=client.client_id,
            order_number=number,
            status=status,
            last_update_at=heartbeat,
            created_at=heartbeat - timedelta(hours=1),
            updated_at=heartbeat,
            **extra,
        )

    pending = _order("WP-0001", client_a, "pending", 0)
    in_transit = _order("WP-0002", client_a, "in_transit", 10, departure_at=NOW - timedelta(hours=2))
    delivered = _order(
        "WP-0003",
        client_a,
        "delivered",
        120,
        departure_at=NOW - timedelta(hours=5),
        arrival_at=NOW - timedelta(minutes=120),
    )
    other_tenant = _order("WP-0004", client_b, "in_transit", 50)
    test_db.add_all([pending, in_transit, delivered, other_tenant])
    await test_db.commit()

    return {
        "client_id": client_a.client_id,
        "other_client_id": client_b.client_id,
        "pending": pending,
        "in_transit": in_transit,
        "delivered": delivered,
        "other_tenant": other_tenant,
    }
