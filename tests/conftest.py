"""Pytest configuration and shared fixtures.

Database-backed tests run against a throwaway SQLite file per test (through
aiosqlite) so ledger atomicity is exercised on a real database engine.
"""

import os
import uuid
from collections.abc import AsyncGenerator

# Set testing mode BEFORE importing the app: in-memory rate limiting, NullPool
os.environ["TESTING"] = "true"
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from quillstream.config import settings

settings.testing = True

from quillstream.main import app
from quillstream.models import Base, User


@pytest_asyncio.fixture
async def session_maker(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Session maker bound to a fresh SQLite database with the full schema."""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'quillstream-test.db'}",
        poolclass=NullPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def make_user(session_maker):
    """Factory creating a user with a given credit balance."""

    async def _make_user(credit_balance: int = 100) -> User:
        user = User(
            id=uuid.uuid4(),
            email=f"writer-{uuid.uuid4().hex[:8]}@example.com",
            credit_balance=credit_balance,
        )
        async with session_maker() as db:
            db.add(user)
            await db.commit()
        return user

    return _make_user


@pytest_asyncio.fixture
async def client() -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client for the API; dependency overrides are reset afterwards."""
    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test",
    ) as ac:
        yield ac
    app.dependency_overrides.clear()
