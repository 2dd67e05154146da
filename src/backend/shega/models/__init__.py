"""SHEGA Database Models."""

from shega.models.base import Base, TimestampMixin
from shega.models.device import Device, DeviceStatus
from shega.models.telemetry import TelemetryRecord

__all__ = [
    "Base",
    "TimestampMixin",
    "Device",
    "DeviceStatus",
    "TelemetryRecord",
]
