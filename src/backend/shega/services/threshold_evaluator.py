"""Threshold evaluation of canonical readings into alert items."""

from dataclasses import dataclass
from datetime import datetime, timezone

from shega.core.config import Settings
from shega.schemas.telemetry import (
    AlertItem,
    AlertLevel,
    AlertRecord,
    AlertType,
    CanonicalReading,
)


@dataclass(frozen=True)
class Threshold:
    warn: float
    danger: float


@dataclass(frozen=True)
class ThresholdConfig:
    """Alert limits per metric.

    CO and stove temperature are danger-only unless ``symmetric_warn`` is set,
    in which case they get the same warn tier as CO2 and PM2.5.
    """

    co2: Threshold = Threshold(warn=1000, danger=1500)
    co: Threshold = Threshold(warn=15, danger=35)
    pm25: Threshold = Threshold(warn=35, danger=100)
    stove_temp: Threshold = Threshold(warn=180, danger=250)
    symmetric_warn: bool = False

    @classmethod
    def from_settings(cls, settings: Settings) -> "ThresholdConfig":
        return cls(
            co2=Threshold(settings.threshold_co2_warn, settings.threshold_co2_danger),
            co=Threshold(settings.threshold_co_warn, settings.threshold_co_danger),
            pm25=Threshold(settings.threshold_pm25_warn, settings.threshold_pm25_danger),
            stove_temp=Threshold(settings.threshold_stove_warn, settings.threshold_stove_danger),
            symmetric_warn=settings.alert_symmetric_warn,
        )


DEFAULT_THRESHOLDS = ThresholdConfig()

# Output order; measurement attribute and whether the metric has a warn tier by default
_METRICS: tuple[tuple[AlertType, str, str, bool], ...] = (
    (AlertType.CO2, "co2", "co2", True),
    (AlertType.CO, "co", "co", False),
    (AlertType.PM2_5, "pm25", "pm25", True),
    (AlertType.STOVE_TEMP, "stove_temp_c", "stove_temp", False),
)


def evaluate(reading: CanonicalReading, config: ThresholdConfig = DEFAULT_THRESHOLDS) -> list[AlertItem]:
    """Return at most one alert item per metric, in CO2, CO, PM2_5, STOVE_TEMP order.

    Reported ``limit`` is the warn threshold for tiered metrics and the
    danger threshold for danger-only ones, so consumers see the level that
    first made the metric alert-worthy.
    """
    items: list[AlertItem] = []
    for alert_type, field, threshold_name, tiered in _METRICS:
        value = getattr(reading.measurements, field)
        if value is None:
            continue

        threshold: Threshold = getattr(config, threshold_name)
        has_warn_tier = tiered or config.symmetric_warn
        limit = threshold.warn if has_warn_tier else threshold.danger

        if value >= threshold.danger:
            items.append(AlertItem(type=alert_type, level=AlertLevel.DANGER, value=value, limit=limit))
        elif has_warn_tier and value >= threshold.warn:
            items.append(AlertItem(type=alert_type, level=AlertLevel.WARN, value=value, limit=limit))
    return items


def build_alert_record(
    reading: CanonicalReading,
    items: list[AlertItem],
    now: datetime | None = None,
) -> AlertRecord | None:
    """Wrap evaluated items for publishing; no items means no record."""
    if not items:
        return None
    return AlertRecord(
        home_id=reading.home_id,
        device_id=reading.device_id,
        stream=reading.stream,
        timestamp=now or datetime.now(timezone.utc),
        items=tuple(items),
    )
