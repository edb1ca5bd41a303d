import os
import sys

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.pool import NullPool

# Ensure Python path includes project root for `import tempo`
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Test environment, set before tempo.config is imported
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./tempo-test.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret")
os.environ.setdefault("LLM_PROVIDER", "stub")
os.environ.setdefault("SYNC_LOCK_BACKEND", "memory")

from tempo.core.auth.security import create_id_token  # noqa: E402
from tempo.core.calendar import locks  # noqa: E402
from tempo.core.llm import providers  # noqa: E402
from tempo.core.users.service import ExternalProfile, UsersService  # noqa: E402
from tempo.db import base as db_base  # noqa: E402


@pytest_asyncio.fixture
async def setup_db(tmp_path):
    """Fresh file-backed SQLite database per test."""
    db_base.init_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    await db_base.create_db_and_tables()
    yield
    await db_base.drop_db_and_tables()
    await db_base.dispose_engine()


@pytest.fixture(autouse=True)
def reset_singletons():
    providers._provider_instance = None
    locks._lock_manager = None
    yield
    providers._provider_instance = None
    locks._lock_manager = None


@pytest.fixture
def session_factory(setup_db):
    return db_base.get_session_factory()


@pytest_asyncio.fixture
async def db_session(setup_db):
    async with db_base.async_session_context() as session:
        yield session


@pytest_asyncio.fixture
async def make_user(setup_db):
    """Creates (and commits) a user for an identity subject."""

    async def _make(subject: str = "user-1", email: str = "user1@example.com", name: str = "User One"):
        async with db_base.async_session_context() as session:
            return await UsersService(session).find_or_create(
                ExternalProfile(subject=subject, email=email, display_name=name, email_verified=True)
            )

    return _make


@pytest.fixture
def auth_headers():
    def _headers(subject: str = "user-1", email: str = "user1@example.com", name: str = "User One"):
        return {"Authorization": f"Bearer {create_id_token(subject, email=email, name=name, email_verified=True)}"}

    return _headers


@pytest_asyncio.fixture
async def client(setup_db):
    from tempo.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
