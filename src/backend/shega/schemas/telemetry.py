"""Canonical telemetry, alert and command records.

Field names are snake_case in Python and camelCase on the wire
(``homeId``, ``deviceId``, ``stoveTempC``...). Serialize with
``model_dump(mode="json", by_alias=True)`` before publishing or emitting.
"""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, StrictBool
from pydantic.alias_generators import to_camel


class Stream(str, Enum):
    """Telemetry classification."""

    AIR = "AIR"
    STOVE = "STOVE"
    UNKNOWN = "UNKNOWN"


class DeviceKind(str, Enum):
    """Registry device type; its lower-cased value names the control topic."""

    AIRNODE = "AIRNODE"
    STOVENODE = "STOVENODE"


STREAM_DEVICE_KIND: dict[Stream, DeviceKind] = {
    Stream.AIR: DeviceKind.AIRNODE,
    Stream.STOVE: DeviceKind.STOVENODE,
}


class AlertType(str, Enum):
    CO2 = "CO2"
    CO = "CO"
    PM2_5 = "PM2_5"
    STOVE_TEMP = "STOVE_TEMP"


class AlertLevel(str, Enum):
    WARN = "warn"
    DANGER = "danger"


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


class Measurements(_WireModel):
    """Canonical sensor values; ``None`` means the device did not report it."""

    co2: float | None = None
    co: float | None = None
    pm25: float | None = None
    pm10: float | None = None
    temperature_c: float | None = None
    humidity_pct: float | None = None
    stove_temp_c: float | None = None
    fan_on: StrictBool | None = None
    buzzer_on: StrictBool | None = None
    window_open: StrictBool | None = None
    profile: str | None = None

    def has_air_values(self) -> bool:
        return any(v is not None for v in (self.co2, self.co, self.pm25, self.pm10))


class CanonicalReading(_WireModel):
    """One normalized inbound message."""

    timestamp: datetime = Field(alias="ts")
    home_id: str | None = None
    device_id: str | None = None
    stream: Stream = Stream.UNKNOWN
    measurements: Measurements = Field(default_factory=Measurements)

    @property
    def is_usable(self) -> bool:
        return bool(self.home_id) and bool(self.device_id) and self.stream is not Stream.UNKNOWN


class AlertItem(_WireModel):
    """One threshold breach of one metric."""

    type: AlertType
    level: AlertLevel
    value: float
    limit: float


class AlertRecord(_WireModel):
    """Alerts derived from a single reading. Never built with no items."""

    home_id: str
    device_id: str
    stream: Stream
    timestamp: datetime = Field(alias="ts")
    items: tuple[AlertItem, ...] = Field(alias="alerts")


class ControlCommand(_WireModel):
    """Operator directive published on a device type's control topic."""

    device_id: str
    home_id: str | None = None
    command: dict[str, Any]
    issued_at: datetime = Field(alias="ts")
