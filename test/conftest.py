"""
Pytest configuration and fixtures for GeoFora tests
"""

import os
import sys
from collections.abc import AsyncGenerator
from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))  # noqa: PTH100, PTH118, PTH119, PTH120

import geofora.models  # noqa: E402,F401  registers every table on Base.metadata
from geofora.container import ServiceContainer, build_container  # noqa: E402
from geofora.database import Base  # noqa: E402
from geofora.models.provider import AIProvider  # noqa: E402
from utils.mock_utils import PROVIDERS, FakeClock  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# 2025-01-15 12:00 UTC, a Wednesday
START_TIME = datetime(2025, 1, 15, 12, 0, 0)


@pytest.fixture(scope="function")
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """
    Fresh in-memory database per test, seeded with the six AI providers
    (ids 1-6) plus an inactive provider (id 7).
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with factory() as session:
        for name, display_name in PROVIDERS:
            session.add(AIProvider(name=name, display_name=display_name, is_active=True, created_at=START_TIME))
        session.add(AIProvider(name="legacy", display_name="Legacy Provider", is_active=False, created_at=START_TIME))
        await session.commit()

    yield factory

    await engine.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(START_TIME)


@pytest.fixture
async def services(session_factory, clock) -> AsyncGenerator[ServiceContainer, None]:
    container = build_container(session_factory=session_factory, clock=clock, job_store_backend="memory")
    yield container
    await container.dispatcher.drain()


@pytest.fixture
async def client(services) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to an app that uses the test services."""
    from main import create_app

    app = create_app(services)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
