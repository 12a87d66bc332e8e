"""Shared fixtures: a fresh SQLite file database per test, seeded catalog, API client."""

import os

# Must be set before the package reads its settings
os.environ["ENV_MODE"] = "development"
os.environ["DEBUG"] = "false"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from food_ordering.core.config import get_settings

get_settings.cache_clear()

from food_ordering.database import build_engine, build_session_maker, get_db, init_db  # noqa: E402
from food_ordering.models import Product, User, UserRole  # noqa: E402
from tests.factories import Catalog  # noqa: E402


@pytest_asyncio.fixture
async def engine(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_maker(engine):
    return build_session_maker(engine)


@pytest_asyncio.fixture
async def session(session_maker):
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture
async def catalog(session_maker) -> Catalog:
    """Two users and two products, committed."""
    async with session_maker() as s:
        customer = User(
            email="thandi@example.com",
            first_name="Thandi",
            last_name="Mokoena",
            phone_number="+27820000001",
            address="12 Vilakazi St, Soweto",
        )
        other = User(email="sipho@example.com", first_name="Sipho", last_name="Dlamini")
        admin = User(
            email="admin@example.com",
            first_name="Store",
            last_name="Admin",
            role=UserRole.ADMIN,
        )
        kota = Product(name="Kota", description="Quarter loaf with chips and polony", price=20.0, stock=10)
        chips = Product(name="Slap Chips", description="Large", price=15.0, stock=5)
        s.add_all([customer, other, admin, kota, chips])
        await s.commit()

        return Catalog(
            customer_id=customer.id,
            other_customer_id=other.id,
            admin_id=admin.id,
            kota_id=kota.id,
            chips_id=chips.id,
        )


@pytest.fixture
def notified() -> list:
    """Orders handed to the notifier."""
    return []


@pytest_asyncio.fixture
async def client(session_maker, notified):
    from food_ordering.main import app, get_order_notifier

    async def override_get_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_order_notifier] = lambda: notified.append

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
