"""
Pytest configuration and shared fixtures for Storefront tests.

Provides an in-memory SQLite database per test, an httpx client bound to
the app, and seeded customers/admins/products.
"""
from decimal import Decimal
from typing import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from config import settings
from database import Base, get_db
from db_models import Category, Product, ProductImage, User
from main import app
from middleware.auth import issue_access_token
from middleware.rate_limit import RateLimiter
from services.auth_service import hash_password
from services.cache_service import CacheService
from services.realtime import RealtimeHub

# ── Test Configuration ───────────────────────────────────────────────
# Set test-only values for settings that would normally come from .env
if not settings.jwt_secret:
    settings.jwt_secret = "test-jwt-secret-for-pytest-only"
settings.bcrypt_rounds = 4

TEST_PASSWORD = "password123"


# ── Database Fixtures ────────────────────────────────────────────────


@pytest_asyncio.fixture(scope="function")
async def session_maker() -> AsyncGenerator[async_sessionmaker, None]:
    """
    Session factory over a fresh in-memory SQLite database.

    Uses StaticPool so every session shares the one in-memory connection.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(session_maker) -> AsyncGenerator[AsyncSession, None]:
    """Session for seeding and inspecting data; commit before calling the API."""
    async with session_maker() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def client(session_maker) -> AsyncGenerator[AsyncClient, None]:
    """
    httpx client bound to the app with the test database.

    Each request gets its own session (like database.get_db), and the
    per-app singletons are replaced so tests never share counters.
    """
    async def override_get_db():
        async with session_maker() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    saved_state = {
        name: getattr(app.state, name)
        for name in ("session_factory", "cache", "realtime", "rate_limiter")
    }
    app.state.session_factory = session_maker
    app.state.cache = CacheService(default_ttl=60, maxsize=256)
    app.state.realtime = RealtimeHub()
    app.state.rate_limiter = RateLimiter()

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c

    app.dependency_overrides.clear()
    for name, value in saved_state.items():
        setattr(app.state, name, value)


# ── Test Data Fixtures ────────────────────────────────────────────────


async def _make_user(db: AsyncSession, *, email: str, role: str, first_name: str) -> User:
    user = User(
        email=email,
        password=await hash_password(TEST_PASSWORD),
        first_name=first_name,
        last_name="Tester",
        role=role,
    )
    db.add(user)
    await db.commit()
    await db.refresh(user)
    return user


def bearer(user: User) -> dict:
    return {"Authorization": f"Bearer {issue_access_token(user_id=user.id, role=user.role)}"}


@pytest_asyncio.fixture
async def customer(db_session: AsyncSession) -> User:
    return await _make_user(db_session, email="jane@example.com", role="CUSTOMER", first_name="Jane")


@pytest_asyncio.fixture
async def other_customer(db_session: AsyncSession) -> User:
    return await _make_user(db_session, email="sam@example.com", role="CUSTOMER", first_name="Sam")


@pytest_asyncio.fixture
async def admin(db_session: AsyncSession) -> User:
    return await _make_user(db_session, email="admin@example.com", role="ADMIN", first_name="Ada")


@pytest_asyncio.fixture
async def super_admin(db_session: AsyncSession) -> User:
    return await _make_user(db_session, email="owner@example.com", role="SUPER_ADMIN", first_name="Olu")


@pytest.fixture
def customer_headers(customer: User) -> dict:
    return bearer(customer)


@pytest.fixture
def other_headers(other_customer: User) -> dict:
    return bearer(other_customer)


@pytest.fixture
def admin_headers(admin: User) -> dict:
    return bearer(admin)


@pytest.fixture
def super_admin_headers(super_admin: User) -> dict:
    return bearer(super_admin)


@pytest_asyncio.fixture
async def category(db_session: AsyncSession) -> Category:
    cat = Category(name="Electronics", slug="electronics")
    db_session.add(cat)
    await db_session.commit()
    await db_session.refresh(cat)
    return cat


@pytest_asyncio.fixture
async def product(db_session: AsyncSession, category: Category) -> Product:
    """In-stock product priced 200,000 with 10 units."""
    item = Product(
        name="Wireless Mouse",
        slug="wireless-mouse",
        price=Decimal("200000"),
        quantity=10,
        in_stock=True,
        category_id=category.id,
        images=[ProductImage(url="/uploads/mouse.jpg", alt="Wireless Mouse", is_primary=True)],
    )
    db_session.add(item)
    await db_session.commit()
    await db_session.refresh(item)
    return item


@pytest_asyncio.fixture
async def cheap_product(db_session: AsyncSession, category: Category) -> Product:
    """Product priced 50,000 with 2 units."""
    item = Product(
        name="USB Cable",
        slug="usb-cable",
        price=Decimal("50000"),
        quantity=2,
        in_stock=True,
        category_id=category.id,
    )
    db_session.add(item)
    await db_session.commit()
    await db_session.refresh(item)
    return item


@pytest.fixture
def shipping_address() -> dict:
    """Inline address in the wire (camelCase) shape."""
    return {
        "firstName": "Jane",
        "lastName": "Tester",
        "addressLine1": "Plot 4 Kampala Road",
        "city": "Kampala",
        "phone": "+256700000000",
    }


@pytest.fixture
def headers_for():
    """Build an Authorization header for any user."""
    return bearer
