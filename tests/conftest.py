"""
Pytest fixtures for all tests.

Provides:
- Test database with automatic cleanup (in-memory SQLite by default,
  any async URL through TEST_DATABASE_URL)
- Authenticated test clients
- A fake billing provider
- Plan catalog and tenant fixtures
"""

import os
from decimal import Decimal
from typing import Any, AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from planguard.core.database import Base, get_db
from planguard.core.exceptions import BillingError
from planguard.features.rbac.permissions import Role
from planguard.features.subscriptions.billing import (
    CheckoutSession,
    StripeBillingClient,
    get_billing_client,
)
from planguard.main import create_application
from planguard.models import SubscriptionPlan, Tenant, User
from tests.factories import WEBHOOK_SECRET, PlanFactory, TenantFactory, UserFactory

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL", "sqlite+aiosqlite:///:memory:")


def _enable_sqlite_savepoints(engine) -> None:
    """pysqlite's implicit transactions break SAVEPOINT; let SQLAlchemy emit BEGIN."""

    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture(scope="function")
async def test_db_engine():
    """
    Create test database engine.

    In-memory SQLite needs a single shared connection (StaticPool).
    """
    if TEST_DATABASE_URL.startswith("sqlite"):
        engine = create_async_engine(
            TEST_DATABASE_URL,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
        _enable_sqlite_savepoints(engine)
    else:
        engine = create_async_engine(TEST_DATABASE_URL, poolclass=NullPool)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Database session for a test.

    Services commit their own units of work; tables are dropped after
    each test.
    """
    session_factory = async_sessionmaker(
        test_db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()


class FakeBillingClient:
    """
    In-memory billing provider.

    Records every call; set `fail = True` to make provider calls raise
    BillingError. Webhook verification is the real HMAC check.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[Any, ...]] = []
        self.fail = False
        self._verifier = StripeBillingClient(api_key=None, webhook_secret=WEBHOOK_SECRET)

    def _maybe_fail(self, operation: str) -> None:
        if self.fail:
            raise BillingError("Billing provider unreachable", details={"operation": operation})

    async def create_checkout_session(
        self,
        *,
        price_id: str,
        tenant_id: str,
        plan_id: str,
        billing_cycle: str,
        customer_id: str | None = None,
    ) -> CheckoutSession:
        self._maybe_fail("create_checkout_session")
        self.calls.append(("checkout", price_id, tenant_id, plan_id, billing_cycle))
        number = len(self.calls)
        return CheckoutSession(id=f"cs_test_{number}", url=f"https://checkout.test/cs_test_{number}")

    async def set_cancel_at_period_end(self, subscription_id: str, cancel: bool) -> None:
        self._maybe_fail("set_cancel_at_period_end")
        self.calls.append(("cancel_at_period_end", subscription_id, cancel))

    async def cancel_subscription(self, subscription_id: str) -> None:
        self._maybe_fail("cancel_subscription")
        self.calls.append(("cancel", subscription_id))

    def verify_webhook(self, payload: bytes, signature_header: str | None) -> dict[str, Any]:
        return self._verifier.verify_webhook(payload, signature_header)


@pytest.fixture
def fake_billing() -> FakeBillingClient:
    return FakeBillingClient()


@pytest_asyncio.fixture
async def app(db_session: AsyncSession, fake_billing: FakeBillingClient):
    """
    Create FastAPI test application.

    Overrides the database and billing dependencies.
    """
    application = create_application()

    async def override_get_db():
        yield db_session

    application.dependency_overrides[get_db] = override_get_db
    application.dependency_overrides[get_billing_client] = lambda: fake_billing

    return application


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/api/v1/shops/")
            assert response.status_code == 200
    """
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


# Plan catalog
@pytest_asyncio.fixture
async def free_plan(db_session: AsyncSession) -> SubscriptionPlan:
    return await PlanFactory.create(
        db_session,
        name="Free",
        price=Decimal("0.00"),
        yearly_price=Decimal("0.00"),
        max_users=1,
        max_shops=1,
        monthly_email_limit=100,
        allow_users_management=False,
        allow_roles_management=False,
        sort_order=1,
    )


@pytest_asyncio.fixture
async def plus_plan(db_session: AsyncSession) -> SubscriptionPlan:
    return await PlanFactory.create(
        db_session,
        name="Plus",
        price=Decimal("49.00"),
        yearly_price=Decimal("470.40"),
        max_users=3,
        max_shops=3,
        monthly_email_limit=500,
        sort_order=2,
    )


@pytest_asyncio.fixture
async def pro_plan(db_session: AsyncSession) -> SubscriptionPlan:
    return await PlanFactory.create(
        db_session,
        name="Pro",
        price=Decimal("79.00"),
        yearly_price=Decimal("758.40"),
        max_users=20,
        max_shops=10,
        monthly_email_limit=1000,
        sort_order=3,
    )


@pytest_asyncio.fixture
async def plans(free_plan, plus_plan, pro_plan) -> dict[str, SubscriptionPlan]:
    return {"Free": free_plan, "Plus": plus_plan, "Pro": pro_plan}


# Tenant and users
@pytest_asyncio.fixture
async def test_tenant(db_session: AsyncSession) -> Tenant:
    return await TenantFactory.create(db_session, name="Test Corporation", slug="test-corp")


@pytest_asyncio.fixture
async def owner(db_session: AsyncSession, test_tenant: Tenant) -> User:
    return await UserFactory.create(db_session, test_tenant, email="owner@example.com", role=Role.OWNER)


@pytest_asyncio.fixture
async def administrator(db_session: AsyncSession, test_tenant: Tenant) -> User:
    return await UserFactory.create(
        db_session, test_tenant, email="admin@example.com", role=Role.ADMINISTRATOR
    )


@pytest_asyncio.fixture
async def employee(db_session: AsyncSession, test_tenant: Tenant) -> User:
    return await UserFactory.create(db_session, test_tenant, email="employee@example.com", role=Role.EMPLOYEE)


@pytest_asyncio.fixture
async def superuser(db_session: AsyncSession) -> User:
    operator_tenant = await TenantFactory.create(db_session, name="Operators", slug="operators")
    return await UserFactory.create(
        db_session,
        operator_tenant,
        email="operator@example.com",
        role=Role.OWNER,
        is_superuser=True,
    )
