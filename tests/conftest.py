"""Shared fixtures.

Unit tests run against the in-memory store. Integration tests use a real
SQLite database file per test (``aiosqlite``) and drive the FastAPI app
through ``httpx.AsyncClient`` with the lifespan started by hand, since
``ASGITransport`` does not send lifespan events.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine

from watchgate.config.settings import Settings
from watchgate.database import create_all_tables, create_app_engine, create_session_maker
from watchgate.main import create_app
from watchgate.progress.memory_store import InMemoryProgressStore
from watchgate.progress.sql_store import SqlProgressStore
from watchgate.tracking.policy import TrackingPolicy


@pytest.fixture
def policy() -> TrackingPolicy:
    return TrackingPolicy()


@pytest.fixture
def memory_store() -> InMemoryProgressStore:
    return InMemoryProgressStore(unlock_threshold=90.0)


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'watchgate-test.db'}"


@pytest.fixture
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    engine = create_app_engine(database_url)
    await create_all_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_store(engine: AsyncEngine) -> SqlProgressStore:
    return SqlProgressStore(create_session_maker(engine), unlock_threshold=90.0)


@pytest.fixture
def test_settings(database_url: str) -> Settings:
    return Settings(DATABASE_URL=database_url, ENVIRONMENT="test", LOG_LEVEL="WARNING")


@pytest.fixture
async def client(test_settings: Settings) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client for an app backed by a fresh SQLite database."""
    app = create_app(test_settings)
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client


@pytest.fixture
async def memory_client(test_settings: Settings) -> AsyncGenerator[tuple[AsyncClient, InMemoryProgressStore], None]:
    """HTTP client for an app backed by the in-memory store."""
    store = InMemoryProgressStore()
    app = create_app(test_settings, store=store)
    async with app.router.lifespan_context(app):
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            yield client, store
