"""Pytest configuration and fixtures for async testing."""
import os
from typing import Any, AsyncGenerator, Awaitable, Callable
from uuid import UUID

# Settings are read when hookrelay is first imported
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")
os.environ["PUBLIC_BASE_URL"] = "http://relay.test"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from hookrelay.api.deps import (
    get_current_user,
    get_db,
    get_dispatcher,
    get_forwarder,
    get_resource_fetcher_factory,
    get_secret_box,
)
from hookrelay.database import Base
from hookrelay.main import app
from hookrelay.models import MollieApiKey, WebhookEndpoint, WebhookLog
from hookrelay.security.crypto import SecretBox
from hookrelay.services.forwarding_service import Forwarder, ForwardingDispatcher
from utils.factories import OWNER_ID, ApiKeyFactory, EndpointFactory, WebhookLogFactory, mollie_api_key
from utils.fakes import FakeMollie, RecordingTarget

TEST_ENCRYPTION_KEY = "test-encryption-key"


@pytest_asyncio.fixture(scope="function")
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    File-backed SQLite engine, fresh for each test.

    A file rather than :memory: so background forwarding sessions see the
    same database as the test session.
    """
    test_engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'hookrelay_test.db'}",
        echo=False,
        connect_args={"check_same_thread": False},
    )

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield test_engine

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Yields:
        AsyncSession: Database session for testing
    """
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
def secret_box() -> SecretBox:
    """SecretBox with a low PBKDF2 iteration count to keep tests fast."""
    return SecretBox(TEST_ENCRYPTION_KEY, iterations=1000)


@pytest.fixture(scope="function")
def forward_target() -> RecordingTarget:
    """Downstream server receiving forwards and replays."""
    return RecordingTarget()


@pytest.fixture(scope="function")
def forwarder(forward_target: RecordingTarget) -> Forwarder:
    return Forwarder(transport=forward_target.transport)


@pytest_asyncio.fixture(scope="function")
async def dispatcher(
    session_factory: async_sessionmaker[AsyncSession],
    forwarder: Forwarder,
) -> AsyncGenerator[ForwardingDispatcher, None]:
    test_dispatcher = ForwardingDispatcher(session_factory, forwarder, max_concurrency=5)
    yield test_dispatcher
    await test_dispatcher.drain()


@pytest.fixture(scope="function")
def fake_mollie() -> FakeMollie:
    return FakeMollie()


async def _mock_current_user() -> dict[str, Any]:
    """Mock current user for testing."""
    return {"sub": str(OWNER_ID), "user_id": OWNER_ID, "type": "access"}


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession,
    dispatcher: ForwardingDispatcher,
    forwarder: Forwarder,
    secret_box: SecretBox,
    fake_mollie: FakeMollie,
) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing with dependency overrides.

    Yields:
        AsyncClient: Async HTTP client for API testing
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        """Override database dependency to use test database."""
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_current_user] = _mock_current_user
    app.dependency_overrides[get_dispatcher] = lambda: dispatcher
    app.dependency_overrides[get_forwarder] = lambda: forwarder
    app.dependency_overrides[get_secret_box] = lambda: secret_box
    app.dependency_overrides[get_resource_fetcher_factory] = lambda: fake_mollie.factory

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://relay.test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
def make_api_key(db_session: AsyncSession, secret_box: SecretBox) -> Callable[..., Awaitable[MollieApiKey]]:
    """Persist a Mollie API key; returns the record."""

    async def _make(owner_id: UUID = OWNER_ID, api_key: str | None = None, **overrides: Any) -> MollieApiKey:
        plaintext = api_key or mollie_api_key()
        data = ApiKeyFactory.create(
            owner_id,
            {"encrypted_key": secret_box.encrypt(plaintext), "last_four_chars": plaintext[-4:], **overrides},
        )
        record = MollieApiKey(**data)
        db_session.add(record)
        await db_session.commit()
        return record

    return _make


@pytest.fixture(scope="function")
def make_endpoint(db_session: AsyncSession, secret_box: SecretBox) -> Callable[..., Awaitable[WebhookEndpoint]]:
    """Persist a webhook endpoint; ``shared_secret`` is given in plaintext."""

    async def _make(
        owner_id: UUID = OWNER_ID,
        shared_secret: str | None = None,
        **overrides: Any,
    ) -> WebhookEndpoint:
        data = EndpointFactory.create(owner_id, overrides)
        if shared_secret is not None:
            data["shared_secret"] = secret_box.encrypt(shared_secret)
        endpoint = WebhookEndpoint(**data)
        db_session.add(endpoint)
        await db_session.commit()
        return endpoint

    return _make


@pytest.fixture(scope="function")
def make_log(db_session: AsyncSession) -> Callable[..., Awaitable[WebhookLog]]:
    """Persist a webhook log for an endpoint."""

    async def _make(endpoint: WebhookEndpoint, **overrides: Any) -> WebhookLog:
        log = WebhookLog(**WebhookLogFactory.create(endpoint.id, endpoint.owner_id, overrides))
        db_session.add(log)
        await db_session.commit()
        return log

    return _make

