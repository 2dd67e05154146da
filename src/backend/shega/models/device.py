"""Registered sensor node (AirNode / StoveNode)."""

import uuid
from datetime import datetime
from enum import Enum

from sqlalchemy import String, DateTime, Uuid, JSON
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column

from shega.models.base import Base, TimestampMixin
from shega.schemas.telemetry import DeviceKind


class DeviceStatus(str, Enum):
    """Device liveness as last observed by ingestion."""

    ONLINE = "online"
    OFFLINE = "offline"


class Device(Base, TimestampMixin):
    """Device registry entry keyed by the device's own identifier."""

    __tablename__ = "devices"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    # Identifier the device publishes, e.g. AIR_HOME_01
    device_id: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    home_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    type: Mapped[DeviceKind] = mapped_column(
        SQLEnum(DeviceKind, values_callable=lambda x: [e.value for e in x]),
        nullable=False,
        index=True,
    )
    name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    status: Mapped[DeviceStatus] = mapped_column(
        SQLEnum(DeviceStatus, values_callable=lambda x: [e.value for e in x]),
        default=DeviceStatus.ONLINE,
        nullable=False,
    )
    last_seen_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    device_metadata: Mapped[dict] = mapped_column("metadata", JSON, default=dict, nullable=False)

    def __repr__(self) -> str:
        return f"<Device(device_id={self.device_id}, home_id={self.home_id}, type={self.type})>"
