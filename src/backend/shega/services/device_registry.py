"""SQL-backed device registry."""

from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from shega.models.device import Device, DeviceStatus
from shega.schemas.telemetry import DeviceKind
from shega.services.contracts import DeviceRef, DeviceRegistry

logger = structlog.get_logger()


def _to_ref(device: Device) -> DeviceRef:
    return DeviceRef(
        device_id=device.device_id,
        home_id=device.home_id,
        type=device.type.value,
        pk=device.id,
    )


class SqlDeviceRegistry(DeviceRegistry):
    """Registry over the ``devices`` table.

    ``upsert`` is keyed by device_id. A concurrent insert of the same id
    loses on the unique constraint and is retried as an update.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def upsert(self, device_id: str, home_id: str, device_type: str) -> DeviceRef:
        kind = DeviceKind(device_type)
        try:
            return await self._upsert_once(device_id, home_id, kind)
        except IntegrityError:
            logger.debug("Concurrent device insert, retrying as update", device_id=device_id)
            return await self._upsert_once(device_id, home_id, kind)

    async def _upsert_once(self, device_id: str, home_id: str, kind: DeviceKind) -> DeviceRef:
        now = datetime.now(timezone.utc)
        async with self.session_factory() as session:
            result = await session.execute(select(Device).where(Device.device_id == device_id))
            device = result.scalar_one_or_none()

            if device is None:
                device = Device(
                    device_id=device_id,
                    home_id=home_id,
                    type=kind,
                    name=device_id,
                    status=DeviceStatus.ONLINE,
                    last_seen_at=now,
                )
                session.add(device)
                logger.info("Registered new device", device_id=device_id, home_id=home_id, type=kind.value)
            else:
                if device.home_id != home_id:
                    logger.warning(
                        "Device moved home",
                        device_id=device_id,
                        old_home_id=device.home_id,
                        new_home_id=home_id,
                    )
                device.home_id = home_id
                device.type = kind
                device.status = DeviceStatus.ONLINE
                device.last_seen_at = now

            await session.commit()
            await session.refresh(device)
            return _to_ref(device)

    async def find_by_device_id(self, device_id: str) -> DeviceRef | None:
        async with self.session_factory() as session:
            result = await session.execute(select(Device).where(Device.device_id == device_id))
            device = result.scalar_one_or_none()
            return _to_ref(device) if device else None
