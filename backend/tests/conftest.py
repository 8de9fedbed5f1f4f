"""Shared test configuration and fixtures.

Each test runs against a fresh in-memory SQLite database (aiosqlite) inside
an outer transaction that is rolled back afterwards. SQLite's driver-level
transaction handling is replaced with explicit BEGIN statements so that
SAVEPOINTs (used for best-effort mirror writes) behave as on PostgreSQL.
"""

import os

os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-not-for-production")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_test_dummy")
for _plan in ("basic", "pro", "business", "verification"):
    os.environ.setdefault(f"STRIPE_PRICE_{_plan.upper()}_MONTHLY", f"price_{_plan}_month")
    os.environ.setdefault(f"STRIPE_PRICE_{_plan.upper()}_ANNUAL", f"price_{_plan}_year")

import time  # noqa: E402
import uuid  # noqa: E402
from collections.abc import AsyncGenerator  # noqa: E402
from types import SimpleNamespace  # noqa: E402

import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy import event  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import app.models  # noqa: E402, F401
from app.auth.jwt import create_token_pair  # noqa: E402
from app.auth.passwords import hash_password  # noqa: E402
from app.billing.stripe_client import get_stripe_client  # noqa: E402
from app.database import Base, get_db  # noqa: E402
from app.main import app  # noqa: E402
from app.models.service import Service  # noqa: E402
from app.models.subscription import Subscription  # noqa: E402
from app.models.user import User  # noqa: E402

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"


# ---------------------------------------------------------------------------
# Fake Stripe objects
# ---------------------------------------------------------------------------


class StripeObj(SimpleNamespace):
    """SimpleNamespace with bracket notation support (like Stripe API objects).

    Stripe API 2025-08-27 (basil) changed subscription.items to require
    bracket notation to avoid collision with Python dict .items().
    """

    def __getitem__(self, key: str):
        return getattr(self, key)


def make_stripe_sub(
    sub_id: str = "sub_test_123",
    customer: str = "cus_test_123",
    price_id: str = "price_pro_month",
    status: str = "active",
    cancel_at_period_end: bool = False,
    period_end: int | None = None,
    interval: str = "month",
    metadata: dict | None = None,
) -> StripeObj:
    """Create a fake Stripe Subscription object (period fields on the item)."""
    if period_end is None:
        period_end = int(time.time()) + 30 * 86400
    return StripeObj(
        id=sub_id,
        customer=customer,
        status=status,
        cancel_at_period_end=cancel_at_period_end,
        metadata=metadata or {},
        items=StripeObj(
            data=[
                StripeObj(
                    price=StripeObj(id=price_id, recurring=StripeObj(interval=interval)),
                    current_period_end=period_end,
                )
            ]
        ),
    )


def make_event(event_type: str, data_object: StripeObj) -> StripeObj:
    """Create a fake Stripe Event-like object."""
    return StripeObj(
        type=event_type,
        id=f"evt_test_{uuid.uuid4().hex[:8]}",
        data=StripeObj(object=data_object),
    )


def auth_headers_for(user: User) -> dict[str, str]:
    tokens = create_token_pair(str(user.id))
    return {"Authorization": f"Bearer {tokens['access_token']}"}


# ---------------------------------------------------------------------------
# Per-test database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def test_engine():
    engine = create_async_engine(
        TEST_DB_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine.sync_engine, "connect")
    def _disable_driver_transactions(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _emit_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(bind=connection, expire_on_commit=False)

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


@pytest_asyncio.fixture
async def stripe_client() -> SimpleNamespace:
    """Placeholder client; tests patch the Stripe wrapper functions themselves."""
    return SimpleNamespace(name="fake-stripe-client")


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, stripe_client) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to use the test DB session."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_stripe_client] = lambda: stripe_client

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()


# ---------------------------------------------------------------------------
# Convenience helpers: users, listings, subscriptions
# ---------------------------------------------------------------------------


async def create_user(
    db_session: AsyncSession,
    name: str = "Test User",
    stripe_customer_id: str | None = None,
    plan_id: str | None = "pro",
    is_active: bool = True,
) -> User:
    """Create a user; with ``plan_id`` set, also an active placeholder subscription."""
    unique = uuid.uuid4().hex[:8]
    user = User(
        email=f"user-{unique}@test.com",
        hashed_password=hash_password("testpass123"),
        name=name,
        is_active=is_active,
        stripe_customer_id=stripe_customer_id,
    )
    db_session.add(user)
    await db_session.flush()

    if plan_id is not None:
        db_session.add(
            Subscription(
                id=str(user.id),
                user_id=user.id,
                plan_id=plan_id,
                interval="month",
                status="active",
                cancel_at_period_end=False,
                current_period_end=int(time.time()) + 30 * 86400,
            )
        )
        await db_session.flush()

    await db_session.refresh(user)
    return user


async def create_service(db_session: AsyncSession, owner: User, title: str) -> Service:
    service = Service(user_id=owner.id, title=title, category="general")
    db_session.add(service)
    await db_session.flush()
    await db_session.refresh(service)
    return service


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await create_user(db_session, name="Alice")


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict[str, str]:
    """Return Authorization headers for the test user."""
    return auth_headers_for(test_user)
