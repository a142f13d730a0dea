"""Pytest configuration and fixtures for async testing."""
import os
import tempfile
from typing import AsyncGenerator, Callable
from uuid import UUID, uuid4

# Settings are read at import time; point them at a throwaway database first
_TEST_DIR = tempfile.mkdtemp(prefix="ledger-test-")
os.environ.setdefault("DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/app.db")
os.environ.pop("RESEND_API_KEY", None)
os.environ.pop("STOCK_API_KEY", None)

import httpx  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker  # noqa: E402

from ledger.auth.jwt import jwt_auth  # noqa: E402
from ledger.database import Base, build_engine  # noqa: E402
from ledger.integrations.stock_provider import StockProvider  # noqa: E402
from ledger.main import app  # noqa: E402
from ledger.models.plan import Plan, PlanInterval  # noqa: E402
from ledger.models.profile import Profile  # noqa: E402

# Test database URL (use a separate test database)
TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL", f"sqlite+aiosqlite:///{_TEST_DIR}/ledger_test.db")

STOCK_BASE_URL = "https://stock.test/api"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """
    Engine with a freshly created schema for each test.

    Yields:
        AsyncEngine bound to the test database
    """
    engine = build_engine(TEST_DATABASE_URL)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine) -> async_sessionmaker:
    """Session factory shared by the API, the renewal job and the tests."""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    The test database serializes writers, so tests commit (or roll back)
    before handing control to the API or to concurrent sessions.

    Yields:
        AsyncSession: Database session for testing
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def stock_api() -> dict:
    """
    Programmable fake of the stock fulfillment provider.

    Tests put responses under ``routes`` keyed by path, as ``(status, json)``
    tuples; every request is recorded in ``calls``.
    """
    return {"routes": {}, "calls": []}


@pytest.fixture(scope="function")
def stock_provider(stock_api: dict) -> StockProvider:
    """StockProvider wired to the fake provider through httpx.MockTransport."""

    def handler(request: httpx.Request) -> httpx.Response:
        path = request.url.path.removeprefix("/api")
        stock_api["calls"].append(request)
        if path not in stock_api["routes"]:
            return httpx.Response(404, json={"error": "not found"})
        status_code, body = stock_api["routes"][path]
        return httpx.Response(status_code, json=body)

    return StockProvider(api_key="test-stock-key", base_url=STOCK_BASE_URL, transport=httpx.MockTransport(handler))


@pytest_asyncio.fixture(scope="function")
async def async_client(
    session_factory: async_sessionmaker, stock_provider: StockProvider
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing with dependency overrides.

    Each request gets its own session from the test factory, like production.

    Yields:
        AsyncClient: Async HTTP client for API testing
    """
    from ledger.api.deps import get_db, get_session_factory, get_stock_provider

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        async with session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_stock_provider] = lambda: stock_provider

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def user_id() -> UUID:
    """Identity provider id of the calling user."""
    return uuid4()


@pytest.fixture(scope="function")
def make_auth_headers() -> Callable[..., dict[str, str]]:
    """Build Authorization headers carrying a signed access token."""

    def _make(user_id: UUID, email: str | None = "user@example.com", roles: list[str] | None = None) -> dict[str, str]:
        token = jwt_auth.create_access_token(user_id, email=email, roles=roles)
        return {"Authorization": f"Bearer {token}"}

    return _make


@pytest.fixture(scope="function")
def auth_headers(user_id: UUID, make_auth_headers) -> dict[str, str]:
    """Authorization headers for the default test user."""
    return make_auth_headers(user_id)


@pytest.fixture(scope="function")
def admin_headers(make_auth_headers) -> dict[str, str]:
    """Authorization headers for an operator allowed to manage plans."""
    return make_auth_headers(uuid4(), email="ops@example.com", roles=["admin"])


@pytest_asyncio.fixture(scope="function")
async def test_plan(db_session: AsyncSession) -> Plan:
    """
    Create a purchasable monthly plan.

    Returns:
        Plan: $19.99 a month for 400 points
    """
    plan = Plan(
        name="Creator",
        description="40 downloads a month",
        price_cents=1999,
        currency="usd",
        monthly_points=400,
        billing_interval=PlanInterval.MONTH,
        active=True,
    )
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    await db_session.commit()
    return plan


@pytest_asyncio.fixture(scope="function")
async def test_plan_premium(db_session: AsyncSession) -> Plan:
    """
    Create a second, pricier monthly plan.

    Returns:
        Plan: $49.00 a month for 1200 points
    """
    plan = Plan(
        name="Studio",
        price_cents=4900,
        currency="usd",
        monthly_points=1200,
        billing_interval=PlanInterval.MONTH,
        active=True,
    )
    db_session.add(plan)
    await db_session.commit()
    await db_session.refresh(plan)
    await db_session.commit()
    return plan


@pytest.fixture(scope="function")
def make_profile(db_session: AsyncSession) -> Callable:
    """Create a committed profile with a given balance."""

    async def _make(user_id: UUID | None = None, balance: int = 0, email: str | None = None) -> Profile:
        profile = Profile(id=user_id or uuid4(), balance=balance, email=email)
        db_session.add(profile)
        await db_session.commit()
        return profile

    return _make
