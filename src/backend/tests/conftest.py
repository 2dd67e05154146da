"""Pytest configuration and fixtures for SHEGA tests."""

import uuid
from datetime import datetime, timezone
from typing import Any, AsyncGenerator
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from shega.core.topics import BusTopics
from shega.models.base import Base
from shega.schemas.telemetry import CanonicalReading
from shega.services.contracts import DeviceRef, DeviceRegistry, LiveFanout, Publisher, TelemetryStore

# Test database URL (use SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

FIXED_NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest_asyncio.fixture(scope="function")
async def db_engine():
    """Create test database engine with shared connection."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine) -> async_sessionmaker:
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async with session_factory() as session:
        yield session


@pytest.fixture
def topics() -> BusTopics:
    return BusTopics(prefix="shega")


@pytest.fixture
def clock():
    return lambda: FIXED_NOW


@pytest.fixture
def registry() -> AsyncMock:
    """Registry spy that accepts every upsert."""
    registry = AsyncMock(spec=DeviceRegistry)

    def upsert(device_id: str, home_id: str, device_type: str) -> DeviceRef:
        return DeviceRef(device_id=device_id, home_id=home_id, type=device_type, pk=uuid.uuid4())

    registry.upsert.side_effect = upsert
    registry.find_by_device_id.return_value = None
    return registry


@pytest.fixture
def store() -> AsyncMock:
    """Telemetry store spy returning a document shaped like the SQL store's."""
    store = AsyncMock(spec=TelemetryStore)

    def append(reading: CanonicalReading, device: DeviceRef | None = None) -> dict[str, Any]:
        return {
            "id": str(uuid.uuid4()),
            "homeId": reading.home_id,
            "deviceId": reading.device_id,
            "stream": reading.stream.value,
            "payload": reading.measurements.model_dump(mode="json", by_alias=True, exclude_none=True),
            "ts": reading.timestamp.isoformat(),
        }

    store.append.side_effect = append
    return store


@pytest.fixture
def fanout() -> AsyncMock:
    return AsyncMock(spec=LiveFanout)


@pytest.fixture
def publisher() -> AsyncMock:
    return AsyncMock(spec=Publisher)
