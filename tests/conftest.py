"""Pytest configuration and fixtures."""

import json
import os
from collections.abc import AsyncGenerator, Sequence
from datetime import UTC, datetime
from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

from cryptography.fernet import Fernet

# Set test environment before importing the package
os.environ["ENVIRONMENT"] = "test"
os.environ.setdefault("VAULT_KEYS", json.dumps([Fernet.generate_key().decode()]))

import pytest
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool
from sqlmodel import SQLModel

from usertokens.config import settings
from usertokens.models import User, UserToken
from usertokens.tokens.predicates import Predicate, Returns
from usertokens.tokens.vault import Vault, generate_key


class InMemoryTokenStore:
    """TokenStore stand-in that evaluates predicates against a list.

    Records are shared across instances through the owning fixture so that
    code constructing a new store per call sees the same data.
    """

    def __init__(self, records: list[UserToken], users: dict[str, User]):
        self.records = records
        self.users = users

    def __call__(self, session: Any) -> "InMemoryTokenStore":
        return self

    def _matching(self, predicate: Predicate) -> list[UserToken]:
        return [
            r for r in self.records if predicate.matches(r, self.users.get(r.user_id))
        ]

    def _project(self, predicate: Predicate, record: UserToken) -> Any:
        user = self.users.get(record.user_id)
        match predicate.returns:
            case Returns.TOKEN:
                return record
            case Returns.USER:
                return user
            case Returns.USER_AND_ANNOTATIONS:
                return (user, record.annotations)
            case Returns.INVITE_SUMMARY:
                return (record.sent_to, record.created_at, record.id)

    async def add(self, record: UserToken) -> UserToken:
        self.records.append(record)
        return record

    async def fetch_one(self, predicate: Predicate) -> Any:
        matches = self._matching(predicate)
        return self._project(predicate, matches[0]) if matches else None

    async def fetch_all(self, predicate: Predicate) -> Sequence[Any]:
        return [self._project(predicate, r) for r in self._matching(predicate)]

    async def delete_matching(self, predicate: Predicate) -> int:
        doomed = self._matching(predicate)
        self.records[:] = [r for r in self.records if not any(r is d for d in doomed)]
        return len(doomed)


@pytest.fixture
def now() -> datetime:
    """A fixed point in time."""
    return datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def user() -> User:
    """Create a test user."""
    return User(id="user_test_0000000001", email="test@example.com", name="Test User")


@pytest.fixture
def other_user() -> User:
    """Create a second test user."""
    return User(id="user_test_0000000002", email="other@example.com", name="Other User")


@pytest.fixture
def vault() -> Vault:
    """A vault with a fresh key."""
    return Vault([generate_key()])


@pytest.fixture
def session() -> MagicMock:
    """A mocked async database session."""
    session = MagicMock(spec=AsyncSession)
    session.execute = AsyncMock(return_value=MagicMock())
    session.flush = AsyncMock()
    return session


@pytest.fixture
def token_store(user: User, other_user: User):
    """Patch the account services to use an in-memory token store."""
    store = InMemoryTokenStore([], {user.id: user, other_user.id: other_user})
    with patch("usertokens.services.accounts.TokenStore", store):
        yield store


@pytest.fixture(scope="session")
def test_engine():
    """Create a test database engine."""
    return create_async_engine(settings.database_url_test, echo=False, poolclass=NullPool)


@pytest.fixture
async def db_session(test_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session with rollback after each test.

    Tables are created inside the outer transaction, so rolling it back
    leaves the database empty. Skips when the test database is unreachable.
    """
    try:
        conn = await test_engine.connect()
    except (OSError, DBAPIError) as e:
        pytest.skip(f"Test database unavailable: {e}")

    try:
        await conn.begin()
        await conn.run_sync(SQLModel.metadata.create_all)

        async_session_factory = async_sessionmaker(
            bind=conn,
            class_=AsyncSession,
            expire_on_commit=False,
            autoflush=False,
        )

        async with async_session_factory() as session:
            # Start a nested transaction (SAVEPOINT)
            await session.begin_nested()

            yield session

            await session.rollback()
    finally:
        await conn.rollback()
        await conn.close()


@pytest.fixture
async def db_user(db_session: AsyncSession) -> User:
    """Create a test user in the database."""
    user = User(email="db-user@example.com", name="Database User")
    db_session.add(user)
    await db_session.flush()
    return user
