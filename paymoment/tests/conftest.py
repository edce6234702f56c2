"""
Centralized Test Configuration.

Every test gets its own file-backed SQLite database so concurrent ledger
writes run on separate connections, as they do in production.
"""

import asyncio
from decimal import Decimal

import pytest
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import async_sessionmaker, AsyncSession

from paymoment.app.main import app
from paymoment.app.db.session import get_db, get_session_factory, build_engine, Base
from paymoment.app.core.redis_client import get_redis
from paymoment.app.core.money import to_minor_units
from paymoment.app.core.security import get_password_hash
from paymoment.app.domain.wallet.balance_credit_service import BalanceCreditService
from paymoment.app.domain.wallet.ledger_store import LedgerStore
from paymoment.app.services.payment_provider import (
    PaymentInitialization,
    VerificationResult,
    VerificationStatus,
    get_payment_provider,
)

TEST_PASSWORD = "password123"


# Mock Redis for reliability in CI/CD
class MockRedis:
    def __init__(self):
        self.store = {}
        self.expiry = {}

    async def ping(self):
        return True

    async def get(self, key):
        return self.store.get(key)

    async def set(self, key, value, ex=None):
        self.store[key] = value
        self.expiry[key] = ex
        return True

    async def delete(self, key):
        if key in self.store:
            del self.store[key]
            return 1
        return 0

    async def exists(self, key):
        return 1 if key in self.store else 0

    async def flushdb(self):
        self.store = {}
        self.expiry = {}


class FakePaymentProvider:
    """
    In-process stand-in for the Paystack client.

    settle() registers what the provider would report for a reference;
    unknown references verify as failed, like a provider 404.
    """

    provider_name = "fake"

    def __init__(self):
        self.payments = {}
        self.verify_calls = []
        self.error = None

    def settle(self, reference, amount, status=VerificationStatus.SUCCESS, provider_status=None,
               payer_email="payer@example.com"):
        self.payments[reference] = VerificationResult(
            reference=reference,
            status=status,
            amount_minor=to_minor_units(amount),
            payer_email=payer_email,
            currency="NGN",
            provider_status=provider_status or status.value,
        )

    async def verify(self, reference):
        self.verify_calls.append(reference)
        # Let concurrent callers interleave at the network boundary
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        result = self.payments.get(reference)
        if result is None:
            return VerificationResult(
                reference=reference,
                status=VerificationStatus.FAILED,
                amount_minor=0,
                provider_status="not_found",
            )
        return result

    async def initialize(self, email, amount_minor, reference=None):
        return PaymentInitialization(
            authorization_url=f"https://checkout.test/{reference}",
            access_code=f"access-{reference}",
            reference=reference,
        )


@pytest.fixture
async def session_factory(tmp_path):
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'wallet.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


@pytest.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def ledger(session_factory):
    return LedgerStore(session_factory)


@pytest.fixture
def provider():
    return FakePaymentProvider()


@pytest.fixture
def wallet_service(ledger, provider):
    return BalanceCreditService(ledger, provider)


@pytest.fixture
def make_account(ledger):
    """Create an account holding `balance` (major units)."""
    async def _make(username, balance="0", is_superuser=False, password=TEST_PASSWORD):
        return await ledger.create_account(
            email=f"{username}@example.com",
            username=username,
            hashed_password=get_password_hash(password),
            initial_balance_minor=to_minor_units(Decimal(balance)),
            is_superuser=is_superuser,
        )
    return _make


@pytest.fixture
def mock_redis():
    return MockRedis()


@pytest.fixture
async def client(session_factory, mock_redis, provider):
    """Async client for testing, wired to the per-test database, Redis and provider."""
    async def override_get_db():
        async with session_factory() as session:
            yield session

    def override_get_session_factory():
        return session_factory

    async def override_get_redis():
        return mock_redis

    def override_get_payment_provider():
        return provider

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = override_get_session_factory
    app.dependency_overrides[get_redis] = override_get_redis
    app.dependency_overrides[get_payment_provider] = override_get_payment_provider

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides = {}


@pytest.fixture
def login(client):
    """Log in and return bearer headers."""
    async def _login(username, password=TEST_PASSWORD):
        response = await client.post("/v1/auth/login", json={"username": username, "password": password})
        assert response.status_code == 200, response.text
        return {"Authorization": f"Bearer {response.json()['access_token']}"}
    return _login
