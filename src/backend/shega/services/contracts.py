"""Collaborator interfaces consumed by the ingestion router and command dispatcher."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from shega.schemas.telemetry import CanonicalReading


@dataclass(frozen=True)
class DeviceRef:
    """Registry view of a device."""

    device_id: str
    home_id: str | None
    type: str
    pk: Any = None


class DeviceRegistry(ABC):
    """Device identity and home association."""

    @abstractmethod
    async def upsert(self, device_id: str, home_id: str, device_type: str) -> DeviceRef:
        """Create or refresh a device. Must be idempotent and safe under concurrent calls."""

    @abstractmethod
    async def find_by_device_id(self, device_id: str) -> DeviceRef | None:
        """Look up a device; ``None`` when unknown."""


class TelemetryStore(ABC):
    """Append-only persistence of canonical readings."""

    @abstractmethod
    async def append(self, reading: CanonicalReading, device: DeviceRef | None = None) -> dict[str, Any]:
        """Persist a reading and return the stored document for fan-out."""


class LiveFanout(ABC):
    """Real-time push to clients, scoped by home plus the admin observers."""

    @abstractmethod
    async def emit_telemetry(self, record: dict[str, Any]) -> None: ...

    @abstractmethod
    async def emit_alert(self, alert: dict[str, Any]) -> None: ...

    @abstractmethod
    async def emit_command(self, command: dict[str, Any]) -> None: ...


class Publisher(ABC):
    """Best-effort bus publish. Returning means the transport accepted it, nothing more."""

    @abstractmethod
    async def publish(self, topic: str, payload: dict[str, Any]) -> None: ...
