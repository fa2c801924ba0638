"""
Pytest configuration and fixtures.

WHY: Fixtures provide reusable test setup/teardown logic, reducing
duplication and ensuring consistent test environments.
"""

from typing import AsyncGenerator
from unittest.mock import AsyncMock, patch

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from chaching.core import deps
from chaching.core.auth import create_access_token
from chaching.db.session import get_db
from chaching.main import app
from chaching.models import Base
from chaching.services.email import EmailService, MockEmailProvider
from chaching.services.exchange_rate_service import ExchangeRateService
from chaching.services.pdf_service import PDFService
from tests.factories import (
    OTHER_USER_ID,
    RATES_DOCUMENT,
    TEST_FALLBACK_RATES,
    TEST_USER_ID,
    ClientFactory,
)


# Test database URL
# WHY: Using SQLite for tests eliminates external database dependencies
# and makes tests faster.
TEST_ASYNC_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """
    Create a test database engine.

    WHY: Function scope ensures each test gets a fresh database state.
    StaticPool keeps one in-memory database shared by every connection.
    """
    engine = create_async_engine(
        TEST_ASYNC_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a test database session.

    Yields:
        AsyncSession: Database session for the test
    """
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def user_id() -> str:
    return TEST_USER_ID


@pytest.fixture
def exchange_rate_service():
    """
    Exchange rate service whose HTTP source returns RATES_DOCUMENT.

    WHY: Tests must not reach the real rate API; patching fetch_rates keeps
    the cache, single-flight and parsing logic under test.
    """
    service = ExchangeRateService(
        api_url="https://rates.test/{version}",
        cache_ttl=900,
        timeout=1,
        fallback_rates=TEST_FALLBACK_RATES,
    )
    with patch.object(service, "fetch_rates", AsyncMock(return_value=RATES_DOCUMENT)):
        yield service


@pytest.fixture
def email_provider():
    """Mock email provider with a clean sent list."""
    MockEmailProvider.clear_sent_emails()
    yield MockEmailProvider()
    MockEmailProvider.clear_sent_emails()


@pytest.fixture
def email_service(email_provider) -> EmailService:
    return EmailService(provider=email_provider)


@pytest.fixture
def pdf_service(tmp_path) -> PDFService:
    return PDFService(storage_dir=str(tmp_path / "invoices"))


@pytest.fixture
def auth_headers(user_id) -> dict:
    """Bearer token whose subject is the test owner."""
    token = create_access_token(user_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_auth_headers() -> dict:
    token = create_access_token(OTHER_USER_ID)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture
async def client(
    db_session: AsyncSession,
    exchange_rate_service: ExchangeRateService,
    pdf_service: PDFService,
    email_service: EmailService,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create a test HTTP client.

    WHY: AsyncClient allows testing FastAPI endpoints without running
    a real server; collaborators are swapped for their test doubles.

    Yields:
        AsyncClient: HTTP client for making test requests
    """

    async def override_get_db():
        """Override database dependency with test session."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[deps.get_exchange_rates] = lambda: exchange_rate_service
    app.dependency_overrides[deps.get_pdf] = lambda: pdf_service
    app.dependency_overrides[deps.get_email] = lambda: email_service

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest_asyncio.fixture
async def billing_client(db_session: AsyncSession, user_id: str):
    """
    Create a business client owned by the test user.

    WHY: Most invoice tests need a client to bill.
    """
    return await ClientFactory.create(db_session, user_id=user_id)
