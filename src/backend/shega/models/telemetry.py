"""Persisted canonical telemetry."""

import uuid
from datetime import datetime

from sqlalchemy import String, DateTime, ForeignKey, Uuid, JSON
from sqlalchemy.orm import Mapped, mapped_column

from shega.models.base import Base, utcnow


class TelemetryRecord(Base):
    """Append-only telemetry row; ``payload`` holds the canonical measurements.

    Rows are never updated, so there is no updated_at column.
    """

    __tablename__ = "telemetry"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    home_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    device_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    stream: Mapped[str] = mapped_column(String(10), nullable=False, index=True)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    ts: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    device_ref: Mapped[uuid.UUID | None] = mapped_column(
        Uuid,
        ForeignKey("devices.id", ondelete="SET NULL"),
        nullable=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"<TelemetryRecord(device_id={self.device_id}, stream={self.stream}, ts={self.ts})>"
