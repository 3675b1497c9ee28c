"""
Pytest configuration and shared fixtures.

Tests run against an in-memory SQLite database (one per test function) and an
in-process fake Redis, so no external services are required.
"""

import os

# Must be set before anything imports app.config
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["BCRYPT_ROUNDS"] = "4"
os.environ["LOG_LEVEL"] = "WARNING"

from collections.abc import AsyncGenerator  # noqa: E402
from dataclasses import dataclass  # noqa: E402

import fakeredis  # noqa: E402
import pytest  # noqa: E402
from cryptography.hazmat.primitives import serialization  # noqa: E402
from cryptography.hazmat.primitives.asymmetric import rsa  # noqa: E402
from fastapi import FastAPI  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import (  # noqa: E402
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.models  # noqa: E402, F401  (registers tables)
from app.config import settings  # noqa: E402
from app.core.auth import get_email_dispatcher, get_token_issuer  # noqa: E402
from app.core.database import get_db  # noqa: E402
from app.core.ids import new_id  # noqa: E402
from app.core.redis import get_redis  # noqa: E402
from app.core.security import get_password_hash  # noqa: E402
from app.core.tokens import AccessTokenIssuer, SigningKeys  # noqa: E402
from app.main import app as main_app  # noqa: E402
from app.models.account import AccountRole, Accounts  # noqa: E402
from app.services.account_store import AccountStore  # noqa: E402
from app.services.email import EmailTemplate  # noqa: E402
from app.services.ephemeral_tokens import EphemeralTokenStore  # noqa: E402
from app.services.identity import IdentityService  # noqa: E402
from app.services.session_store import SessionStore  # noqa: E402

DEFAULT_PASSWORD = "Secret123"


@dataclass
class SentEmail:
    email: str
    template: EmailTemplate
    token: str


class RecordingMailer:
    """EmailDispatcher that keeps messages in memory instead of queuing them."""

    def __init__(self) -> None:
        self.sent: list[SentEmail] = []

    async def send(self, email: str, template: EmailTemplate, token: str) -> None:
        self.sent.append(SentEmail(email=email, template=template, token=token))

    def last_token(self, template: EmailTemplate) -> str:
        for message in reversed(self.sent):
            if message.template is template:
                return message.token
        raise AssertionError(f"No {template.value} email was sent")


def _generate_private_pem() -> bytes:
    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    return key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    )


@pytest.fixture(scope="session")
def private_key_pem() -> bytes:
    """RSA private key shared by the whole test session (generation is slow)."""
    return _generate_private_pem()


@pytest.fixture(scope="session")
def signing_keys(private_key_pem: bytes) -> SigningKeys:
    return SigningKeys.from_pem(settings.JWT_ISSUER, private_pem=private_key_pem)


@pytest.fixture(scope="session")
def token_issuer(signing_keys: SigningKeys) -> AccessTokenIssuer:
    return AccessTokenIssuer(signing_keys)


@pytest.fixture(scope="function")
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """
    Fresh in-memory database per test.

    StaticPool keeps a single connection so every session sees the same
    in-memory database.
    """
    test_engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with test_engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)

    yield test_engine

    await test_engine.dispose()


@pytest.fixture(scope="function")
async def db_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(scope="function")
async def redis_client() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    yield client
    await client.flushall()
    await client.aclose()


@pytest.fixture
def mailer() -> RecordingMailer:
    return RecordingMailer()


@pytest.fixture
def account_store(db_session: AsyncSession) -> AccountStore:
    return AccountStore(db_session)


@pytest.fixture
def session_store(db_session: AsyncSession) -> SessionStore:
    return SessionStore(db_session)


@pytest.fixture
def ephemeral_store(redis_client: fakeredis.FakeAsyncRedis) -> EphemeralTokenStore:
    return EphemeralTokenStore(redis_client)


@pytest.fixture
def identity(
    account_store: AccountStore,
    session_store: SessionStore,
    ephemeral_store: EphemeralTokenStore,
    token_issuer: AccessTokenIssuer,
    mailer: RecordingMailer,
) -> IdentityService:
    return IdentityService(
        accounts=account_store,
        sessions=session_store,
        ephemeral=ephemeral_store,
        token_issuer=token_issuer,
        mailer=mailer,
    )


@pytest.fixture
def make_account(account_store: AccountStore):
    """
    Factory for persisted accounts with a known password.

    Usage:
        async def test_something(make_account):
            account = await make_account("alice", role=AccountRole.ADMIN)
    """

    async def _make(
        username: str = "alice",
        email: str | None = None,
        password: str = DEFAULT_PASSWORD,
        role: AccountRole = AccountRole.MEMBER,
        is_verified: bool = False,
    ) -> Accounts:
        account = Accounts(
            id=new_id(),
            username=username,
            email=email or f"{username}@example.com",
            password_hash=get_password_hash(password),
            role=role,
            is_verified=is_verified,
        )
        return await account_store.create(account)

    return _make


@pytest.fixture(scope="function")
def app(
    db_session: AsyncSession,
    redis_client: fakeredis.FakeAsyncRedis,
    token_issuer: AccessTokenIssuer,
    mailer: RecordingMailer,
) -> FastAPI:
    """
    FastAPI app wired to the test database, fake Redis, test keys and an in-memory mailer.
    """

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    async def override_get_redis() -> AsyncGenerator[fakeredis.FakeAsyncRedis, None]:
        yield redis_client

    main_app.dependency_overrides[get_db] = override_get_db
    main_app.dependency_overrides[get_redis] = override_get_redis
    main_app.dependency_overrides[get_token_issuer] = lambda: token_issuer
    main_app.dependency_overrides[get_email_dispatcher] = lambda: mailer

    yield main_app

    main_app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient, None]:
    """
    Async HTTP client for testing API endpoints.

    Usage:
        async def test_endpoint(client):
            response = await client.get("/api/v1/auth/me")
    """
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
