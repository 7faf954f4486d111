import uuid
from collections.abc import AsyncGenerator, Iterator
from pathlib import Path

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from credit_ledger.models import CreditWallet, SystemConfig, User
from credit_ledger.models.base import Base
from credit_ledger.repositories.wallet_repository import WalletRepository
from credit_ledger.services.payment_platform import PaymentPlatformClient

TEST_DEVICE_ID = "ios_00000000-0000-4000-8000-000000000001"
OTHER_DEVICE_ID = "android_00000000-0000-4000-8000-000000000002"

TEST_INTERNAL_KEY = "test-internal-key"  # nosec B105
TEST_WEBHOOK_SECRET = "test-webhook-secret"  # nosec B105


def _enable_sqlite_transactions(engine: AsyncEngine) -> None:
    """Make pysqlite honour SAVEPOINT and serialize writers.

    pysqlite's own transaction handling breaks nested transactions; SQLAlchemy
    takes over BEGIN instead. BEGIN IMMEDIATE takes the write lock up front,
    which plays the part of SELECT ... FOR UPDATE on a single-file database.
    """

    @event.listens_for(engine.sync_engine, "connect")
    def _on_connect(dbapi_connection, _connection_record) -> None:
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def _on_begin(conn) -> None:
        conn.exec_driver_sql("BEGIN IMMEDIATE")


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path: Path) -> AsyncGenerator[AsyncEngine, None]:
    """Create a throwaway SQLite database with the full schema."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    _enable_sqlite_transactions(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database.

    Tests that involve more than one session (workers, the gateway, API
    calls) must go through this and never hold ``db_session`` open at the
    same time: SQLite has a single writer lock.
    """
    return async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Seed helpers
# =============================================================================


async def create_user(
    db: AsyncSession,
    device_id: str = TEST_DEVICE_ID,
    *,
    credits_balance: int = 0,
    credits_reserved: int = 0,
    lifetime_credits: int | None = None,
    is_active: bool = True,
    payment_customer_id: str | None = None,
) -> User:
    """Insert a user and wallet with the given balances (flushed, not committed)."""
    user = User(
        device_id=device_id,
        is_active=is_active,
        payment_customer_id=payment_customer_id,
    )
    db.add(user)
    await db.flush()
    db.add(
        CreditWallet(
            user_id=user.id,
            credits_balance=credits_balance,
            credits_reserved=credits_reserved,
            lifetime_credits=(
                credits_balance if lifetime_credits is None else lifetime_credits
            ),
        )
    )
    await db.flush()
    return user


async def set_config(db: AsyncSession, key: str, value: str) -> None:
    """Upsert a system_config row (flushed, not committed)."""
    row = await db.get(SystemConfig, key)
    if row is None:
        db.add(SystemConfig(key=key, value=value))
    else:
        row.value = value
    await db.flush()


@pytest.fixture
def seed(session_factory: async_sessionmaker[AsyncSession]):
    """Committed seeding for multi-session tests.

    Usage:
        user_id = await seed.user(TEST_DEVICE_ID, credits_balance=3)
        await seed.config("maintenance_mode", "true")
    """

    class _Seeder:
        async def user(self, device_id: str = TEST_DEVICE_ID, **kwargs) -> uuid.UUID:
            async with session_factory() as db:
                user = await create_user(db, device_id, **kwargs)
                await db.commit()
                return user.id

        async def config(self, key: str, value: str) -> None:
            async with session_factory() as db:
                await set_config(db, key, value)
                await db.commit()

        async def wallet(self, user_id: uuid.UUID) -> CreditWallet:
            async with session_factory() as db:
                wallet = await WalletRepository.get_by_user_id(db, user_id)
                assert wallet is not None
                return wallet

    return _Seeder()


# =============================================================================
# Settings / limiter isolation
# =============================================================================


@pytest.fixture(autouse=True)
def disable_rate_limiting() -> Iterator[None]:
    """Disable rate limiting during tests.

    Security: Rate limiting is tested separately; disable for other tests
    to avoid flaky failures from rate limit triggers.
    """
    from credit_ledger.core.rate_limiting import limiter

    original_enabled = limiter.enabled
    limiter.enabled = False

    yield

    limiter.enabled = original_enabled


@pytest.fixture
def internal_key(monkeypatch: pytest.MonkeyPatch) -> str:
    """Require the internal API key on finalize/rollback."""
    from pydantic import SecretStr

    from credit_ledger.core.config import settings

    monkeypatch.setattr(settings, "internal_api_key", SecretStr(TEST_INTERNAL_KEY))
    return TEST_INTERNAL_KEY


@pytest.fixture
def webhook_secret(monkeypatch: pytest.MonkeyPatch) -> str:
    """Require webhook credentials."""
    from pydantic import SecretStr

    from credit_ledger.core.config import settings

    monkeypatch.setattr(
        settings, "revenuecat_webhook_secret", SecretStr(TEST_WEBHOOK_SECRET)
    )
    return TEST_WEBHOOK_SECRET


# =============================================================================
# API Test Fixtures
# =============================================================================


@pytest.fixture
def payment_platform_transport() -> httpx.MockTransport:
    """RevenueCat stand-in: returns a subscriber for every lookup."""

    def handler(request: httpx.Request) -> httpx.Response:
        customer_id = request.url.path.rsplit("/", 1)[-1]
        return httpx.Response(
            200,
            json={
                "subscriber": {
                    "original_app_user_id": customer_id,
                    "entitlements": {},
                }
            },
        )

    return httpx.MockTransport(handler)


@pytest_asyncio.fixture
async def client(
    session_factory: async_sessionmaker[AsyncSession],
    payment_platform_transport: httpx.MockTransport,
) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app and the test database.

    Sets up:
    - get_db override with commit-on-success / rollback-on-error
    - Payment platform client backed by a MockTransport
    - Default ``x-device-id`` header for TEST_DEVICE_ID
    """
    from credit_ledger.core.database import get_db
    from credit_ledger.main import app
    from credit_ledger.services.payment_platform import get_payment_platform

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    def override_payment_platform() -> PaymentPlatformClient:
        return PaymentPlatformClient(
            api_key="test-revenuecat-key",
            base_url="https://revenuecat.test/v1",
            timeout=5.0,
            transport=payment_platform_transport,
        )

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_platform] = override_payment_platform

    transport = ASGITransport(app=app, raise_app_exceptions=False)
    async with AsyncClient(
        transport=transport,
        base_url="http://test",
        headers={"x-device-id": TEST_DEVICE_ID},
    ) as ac:
        yield ac

    app.dependency_overrides.clear()
