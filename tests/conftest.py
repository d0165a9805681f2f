"""
Pytest configuration and fixtures for testing
"""
import asyncio
import hashlib
import hmac
import json
import time

import httpx
import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from database import Base, get_db
from database_models import Plan
from services.sheet_logger import SheetLogger, get_sheet_logger

# Create in-memory SQLite database for testing
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# One shared connection so every session sees the same in-memory database
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    future=True,
    poolclass=StaticPool,
    connect_args={"check_same_thread": False},
)

# Create test session factory
TestAsyncSessionLocal = async_sessionmaker(
    test_engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)

WEBHOOK_SECRET = "whsec_test_secret"
JWT_SECRET = "test-jwt-secret"


class RecordingSheetLogger(SheetLogger):
    """Sheet logger that records forwards instead of calling the network."""

    def __init__(self, fail: bool = False, delay: float = 0.0, **kwargs):
        kwargs.setdefault("url", "https://sheet.test/exec")
        kwargs.setdefault("timeout", 1.0)
        super().__init__(**kwargs)
        self.fail = fail
        self.delay = delay
        self.records = []

    async def forward(self, record: dict) -> bool:
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail:
            raise httpx.ConnectError("sheet endpoint unreachable")
        self.records.append(record)
        return True


async def _create_tables():
    async with test_engine.begin() as conn:
        # Import models to ensure they're registered with Base
        import database_models  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


async def _drop_tables():
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


async def override_get_db():
    """Override get_db to use test database"""
    async with TestAsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


@pytest.fixture
async def test_db():
    """
    Fixture that provides an isolated, in-memory SQLite database connection for each test.

    This fixture:
    - Creates all tables before the test runs
    - Yields a clean AsyncSession for the test
    - Drops all tables after the test completes
    """
    await _create_tables()

    async with TestAsyncSessionLocal() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()

    await _drop_tables()


@pytest.fixture
def sheet_logger():
    return RecordingSheetLogger()


@pytest.fixture
async def async_client(sheet_logger):
    """
    Async HTTP client fixture with test database and sheet logger overrides.
    """
    from main import app

    await _create_tables()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_sheet_logger] = lambda: sheet_logger

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    await sheet_logger.drain()
    app.dependency_overrides.clear()
    await _drop_tables()


async def add_plan(plan_id="0002", title="Pro Monthly", period="1 month", price=9.99):
    async with TestAsyncSessionLocal() as session:
        session.add(Plan(plan_id=plan_id, title=title, period=period, price=price))
        await session.commit()


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    """Build a Stripe-Signature header the way Stripe signs webhook bodies."""
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def payment_succeeded_event(
    intent_id="pi_123",
    plan_id="0002",
    email="buyer@example.com",
    amount=999,
    event_id="evt_1",
) -> str:
    return json.dumps({
        "id": event_id,
        "object": "event",
        "type": "payment_intent.succeeded",
        "data": {
            "object": {
                "id": intent_id,
                "object": "payment_intent",
                "amount": amount,
                "currency": "usd",
                "metadata": {"userEmail": email, "planId": plan_id},
            }
        },
    })
