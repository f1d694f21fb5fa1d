"""Pytest configuration and fixtures."""

from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from catalog_sync_service.config import Settings, get_settings
from catalog_sync_service.infrastructure.catalog import get_catalog_gateway
from catalog_sync_service.infrastructure.catalog.gateway import CatalogGateway
from catalog_sync_service.infrastructure.database.connection import set_session_factory
from catalog_sync_service.infrastructure.database.models import Base
from catalog_sync_service.infrastructure.redis import CacheService
from catalog_sync_service.main import create_app
from tests.fakes import COLLECTION_ID, CatalogSeeder, FakeCatalogClient

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def test_settings() -> Settings:
    """Get test settings with overrides."""
    return Settings(
        app_env="test",
        debug=True,
        database_url_override="sqlite+aiosqlite://",
        redis_host="localhost",
        redis_port=6379,
        catalog_throttle_max_attempts=3,
        catalog_throttle_backoff_min=0,
        catalog_throttle_backoff_max=0,
        file_ready_max_attempts=3,
        file_ready_backoff_min=0,
        file_ready_backoff_max=0,
        sync_update_chunk_size=2,
        sync_insert_chunk_size=2,
    )


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """In-memory SQLite schema, installed as the global session factory."""
    engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    set_session_factory(factory)
    yield factory
    set_session_factory(None)
    await engine.dispose()


@pytest_asyncio.fixture
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture
def seed(session: AsyncSession) -> CatalogSeeder:
    return CatalogSeeder(session)


@pytest.fixture
def catalog() -> FakeCatalogClient:
    fake = FakeCatalogClient()
    fake.collections[COLLECTION_ID] = "Wedding Bands"
    return fake


@pytest.fixture
def gateway(catalog: FakeCatalogClient, test_settings: Settings) -> CatalogGateway:
    return CatalogGateway(catalog, CacheService(None), test_settings)


@pytest.fixture
def app(test_settings: Settings, gateway: CatalogGateway) -> Any:
    """Create test application."""
    # Override settings
    def get_test_settings() -> Settings:
        return test_settings

    async def get_test_gateway() -> CatalogGateway:
        return gateway

    app = create_app()
    app.dependency_overrides[get_settings] = get_test_settings
    app.dependency_overrides[get_catalog_gateway] = get_test_gateway
    return app


@pytest.fixture
def client(app: Any) -> TestClient:
    """Create synchronous test client."""
    return TestClient(app)


@pytest_asyncio.fixture
async def async_client(
    app: Any, session_factory: async_sessionmaker[AsyncSession]
) -> AsyncGenerator[AsyncClient, None]:
    """Create asynchronous test client bound to the in-memory database."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
