"""SQL-backed append-only telemetry store."""

from typing import Any

from sqlalchemy.ext.asyncio import async_sessionmaker

from shega.models.telemetry import TelemetryRecord
from shega.schemas.telemetry import CanonicalReading
from shega.services.contracts import DeviceRef, TelemetryStore


class SqlTelemetryStore(TelemetryStore):
    """Writes one ``telemetry`` row per reading.

    Rows are independent, so out-of-order or concurrent appends for the same
    device are fine; ordering is recovered from ``ts`` at query time.
    """

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def append(self, reading: CanonicalReading, device: DeviceRef | None = None) -> dict[str, Any]:
        payload = reading.measurements.model_dump(mode="json", by_alias=True, exclude_none=True)
        async with self.session_factory() as session:
            record = TelemetryRecord(
                home_id=reading.home_id,
                device_id=reading.device_id,
                stream=reading.stream.value,
                payload=payload,
                ts=reading.timestamp,
                device_ref=device.pk if device else None,
            )
            session.add(record)
            await session.commit()
            await session.refresh(record)

            return {
                "id": str(record.id),
                "homeId": record.home_id,
                "deviceId": record.device_id,
                "stream": record.stream,
                "payload": payload,
                "ts": reading.timestamp.isoformat(),
                "deviceRef": str(record.device_ref) if record.device_ref else None,
            }
