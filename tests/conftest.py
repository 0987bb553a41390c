"""Pytest configuration and fixtures."""

import os
from collections.abc import AsyncGenerator
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

# Set test environment before importing app
os.environ["ENVIRONMENT"] = "test"

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel, select

import authserver.models  # noqa: F401
from authserver import database
from authserver.database import get_session
from authserver.main import app
from authserver.models import Account, TokenKind, VerificationToken
from authserver.services.auth import token_issuer
from authserver.services.email import EmailBackend, email_service
from authserver.services.passwords import hasher
from authserver.services.resilience import email_circuit, sms_circuit
from authserver.services.sms import SmsBackend, sms_service

PASSWORD = "correct-horse"


class RecordingEmailBackend(EmailBackend):
    """Email backend that keeps sent messages in memory."""

    def __init__(self) -> None:
        self.sent: list[dict[str, Any]] = []
        self.fail = False

    async def send(self, to: str, subject: str, html: str, text: str | None = None) -> bool:
        if self.fail:
            raise ConnectionError("mail server unavailable")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})
        return True


class RecordingSmsBackend(SmsBackend):
    """SMS backend that keeps sent messages in memory."""

    def __init__(self) -> None:
        self.sent: list[dict[str, str]] = []
        self.fail = False

    async def send(self, to: str, body: str) -> bool:
        if self.fail:
            return False
        self.sent.append({"to": to, "body": body})
        return True


@pytest.fixture(autouse=True)
def mock_queue():
    """Mock the SAQ queue to avoid Redis connections in tests."""
    mock_job = MagicMock()
    mock_job.id = "test-job-id"

    with patch("authserver.tasks.queue.queue.enqueue", new_callable=AsyncMock) as mock_enqueue:
        mock_enqueue.return_value = mock_job
        yield mock_enqueue


@pytest.fixture(autouse=True)
def reset_circuits():
    """Start every test with closed notifier circuits."""
    email_circuit.reset()
    sms_circuit.reset()
    yield
    email_circuit.reset()
    sms_circuit.reset()


@pytest.fixture(autouse=True)
def email_outbox():
    """Route application email into memory."""
    backend = RecordingEmailBackend()
    previous = email_service._backend
    email_service._backend = backend
    yield backend
    email_service._backend = previous


@pytest.fixture(autouse=True)
def sms_outbox():
    """Route application SMS into memory."""
    backend = RecordingSmsBackend()
    previous = sms_service._backend
    sms_service._backend = backend
    yield backend
    sms_service._backend = previous


@pytest.fixture
async def test_engine(tmp_path):
    """A throwaway SQLite database per test.

    A file database (not :memory:) so that separate sessions are separate
    connections and concurrency tests exercise real locking.
    """
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'authserver.db'}",
        echo=False,
        poolclass=NullPool,
        connect_args={"timeout": 30},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine, monkeypatch) -> async_sessionmaker[AsyncSession]:
    """Session factory bound to the test database.

    Also installed as the application's factory so background tasks and
    CLI helpers use the test database.
    """
    factory = async_sessionmaker(
        bind=test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    monkeypatch.setattr(database, "_session_factory", factory)
    return factory


@pytest.fixture
async def session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """A session for arranging and inspecting test data."""
    async with session_factory() as session:
        yield session


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client; each request gets its own session."""

    async def override_get_session():
        async with session_factory() as request_session:
            yield request_session

    app.dependency_overrides[get_session] = override_get_session

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac

    app.dependency_overrides.clear()


async def make_account(
    session: AsyncSession,
    *,
    email: str | None = None,
    phone: str | None = None,
    password: str = PASSWORD,
    **fields: Any,
) -> Account:
    """Insert an account directly, bypassing registration."""
    account = Account(email=email, phone=phone, password_hash=hasher.hash(password), **fields)
    session.add(account)
    await session.commit()
    return account


async def reload(session: AsyncSession, account: Account) -> Account:
    """Re-read an account as committed by other sessions."""
    await session.refresh(account)
    return account


async def latest_token(session: AsyncSession, account_id: str, kind: TokenKind) -> VerificationToken:
    stmt = (
        select(VerificationToken)
        .where(VerificationToken.account_id == account_id)
        .where(VerificationToken.kind == kind.value)
        .order_by(VerificationToken.created_at.desc())  # type: ignore[attr-defined]
    )
    result = await session.execute(stmt)
    return result.scalars().first()


@pytest.fixture
async def account(session: AsyncSession) -> Account:
    """A verified email account."""
    return await make_account(session, email="user@example.com", email_verified=True)


@pytest.fixture
async def phone_account(session: AsyncSession) -> Account:
    """An unverified phone-only account."""
    return await make_account(session, phone="+15551234567")


@pytest.fixture
def auth_headers(account: Account) -> dict[str, str]:
    """Authorization headers carrying an access token for ``account``."""
    token = token_issuer.issue_access(account.identifier, account.id)
    return {"Authorization": f"Bearer {token}"}
