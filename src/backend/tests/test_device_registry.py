"""Tests for the SQL device registry."""

import pytest
from sqlalchemy import select

from shega.models.device import Device, DeviceStatus
from shega.services.device_registry import SqlDeviceRegistry


@pytest.mark.asyncio
class TestSqlDeviceRegistry:
    """Tests for SqlDeviceRegistry."""

    async def test_upsert_creates_device(self, session_factory):
        registry = SqlDeviceRegistry(session_factory)

        ref = await registry.upsert("AIR_HOME_01", "HOME_01", "AIRNODE")

        assert ref.device_id == "AIR_HOME_01"
        assert ref.home_id == "HOME_01"
        assert ref.type == "AIRNODE"
        assert ref.pk is not None

    async def test_upsert_is_idempotent(self, session_factory, db_session):
        registry = SqlDeviceRegistry(session_factory)

        first = await registry.upsert("AIR_HOME_01", "HOME_01", "AIRNODE")
        second = await registry.upsert("AIR_HOME_01", "HOME_01", "AIRNODE")

        assert first.pk == second.pk
        rows = (await db_session.execute(select(Device))).scalars().all()
        assert len(rows) == 1
        assert rows[0].status == DeviceStatus.ONLINE

    async def test_upsert_moves_home(self, session_factory):
        registry = SqlDeviceRegistry(session_factory)
        await registry.upsert("STOVE_HOME_02", "HOME_02", "STOVENODE")

        ref = await registry.upsert("STOVE_HOME_02", "HOME_05", "STOVENODE")

        assert ref.home_id == "HOME_05"

    async def test_find_by_device_id(self, session_factory):
        registry = SqlDeviceRegistry(session_factory)
        await registry.upsert("STOVE_HOME_02", "HOME_02", "STOVENODE")

        found = await registry.find_by_device_id("STOVE_HOME_02")

        assert found is not None
        assert found.type == "STOVENODE"

    async def test_find_unknown_returns_none(self, session_factory):
        registry = SqlDeviceRegistry(session_factory)
        assert await registry.find_by_device_id("NOPE") is None

    async def test_unknown_type_rejected(self, session_factory):
        registry = SqlDeviceRegistry(session_factory)
        with pytest.raises(ValueError):
            await registry.upsert("X_HOME_01", "HOME_01", "TOASTER")
