import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("OPENAI_EMBEDDING_MODEL", "fake-embedding")

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker
from sqlmodel.ext.asyncio.session import AsyncSession

from seriate.db.session import create_engine_for, get_session, init_db
from seriate.dependencies import get_embedding_provider, get_run_registry, get_session_factory
from seriate.main import app
from seriate.services.embedding_store import SQLEmbeddingStore
from seriate.services.orchestrator import CollectionRunRegistry

from .fakes import FakeProvider


@pytest_asyncio.fixture()
async def engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    test_engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'seriate-test.db'}")
    await init_db(test_engine)
    try:
        yield test_engine
    finally:
        await test_engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
def store(session_factory: async_sessionmaker) -> SQLEmbeddingStore:
    return SQLEmbeddingStore(session_factory, model_id="fake-embedding")


@pytest.fixture()
def provider() -> FakeProvider:
    return FakeProvider()


@pytest_asyncio.fixture()
async def client(session_factory: async_sessionmaker, provider: FakeProvider) -> AsyncGenerator[AsyncClient, None]:
    registry = CollectionRunRegistry()

    async def _override_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = _override_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_embedding_provider] = lambda: provider
    app.dependency_overrides[get_run_registry] = lambda: registry
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as test_client:
        yield test_client
    app.dependency_overrides.clear()
