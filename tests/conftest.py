"""Common test fixtures and configurations."""

import os

# Settings are read at import time, so configure the environment first
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./economy_test.db")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("INTERNAL_API_KEY", "test-internal-key")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("BUSINESS_TIMEZONE", "UTC")

import logging
from typing import AsyncGenerator, Dict

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

import economy.models  # noqa: F401  registers every table on Base.metadata
from economy.core.base_model import Base
from economy.core.database import build_engine, get_db
from economy.main import app as app_instance
from economy.models.user import User, UserRole

from tests.helpers import bearer, create_test_user

logging.getLogger('sqlalchemy.engine').setLevel(logging.WARNING)


@pytest_asyncio.fixture
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """A fresh file-backed SQLite database per test, so separate sessions really contend."""
    engine = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'economy.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker:
    return async_sessionmaker(bind=engine, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Async test client; every request gets its own session on the test database."""

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app_instance.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app_instance), base_url="http://test") as test_client:
        yield test_client
    app_instance.dependency_overrides.clear()


@pytest_asyncio.fixture
async def user(db: AsyncSession) -> User:
    return await create_test_user(db)


@pytest_asyncio.fixture
async def admin_user(db: AsyncSession) -> User:
    return await create_test_user(db, role=UserRole.ADMIN)


@pytest.fixture
def auth_headers(user: User) -> Dict[str, str]:
    return bearer(user)


@pytest.fixture
def admin_headers(admin_user: User) -> Dict[str, str]:
    return bearer(admin_user)
