"""Message normalizer for heterogeneous sensor payloads.

Devices from several firmware generations publish the same quantity under
different keys (``pm25``, ``pm25_ugm3``, ``pm2_5``...), nest it under
``payload`` or not, and may omit the home id entirely. ``normalize`` folds
all of that into one ``CanonicalReading``. It never raises and performs no
I/O; deciding whether a reading is usable is left to the caller.
"""

import math
import re
from datetime import datetime, timezone
from typing import Any, Callable, Mapping, Sequence

from shega.schemas.telemetry import CanonicalReading, Measurements, Stream

# canonical field -> accepted payload keys, first match wins
NUMERIC_ALIASES: dict[str, tuple[str, ...]] = {
    "co2": ("co2", "co2_ppm"),
    "co": ("co", "co_ppm"),
    "pm25": ("pm25", "pm25_ugm3", "pm2_5", "pm2_5_ugm3"),
    "pm10": ("pm10", "pm10_ugm3"),
    "temperature_c": ("temperature_c", "temp_c", "temperature", "temperatureC"),
    "humidity_pct": ("humidity_pct", "humidity", "humidityPct"),
    "stove_temp_c": ("stove_temp_c", "stove_temp", "stoveTempC"),
}

BOOLEAN_ALIASES: dict[str, tuple[str, ...]] = {
    "fan_on": ("fanOn", "fan_on"),
    "buzzer_on": ("buzzerOn", "buzzer_on"),
    "window_open": ("windowOpen", "window_open"),
}

TEXT_ALIASES: dict[str, tuple[str, ...]] = {
    "profile": ("profile",),
}

DEVICE_ID_KEYS = ("deviceId", "device", "device_id")
HOME_ID_KEYS = ("homeId", "home", "h", "home_id")
TIMESTAMP_KEYS = ("ts", "timestamp", "time")

TOPIC_STREAM_HINTS: tuple[tuple[str, Stream], ...] = (
    ("airnode", Stream.AIR),
    ("stovenode", Stream.STOVE),
)

HOME_CODE_PATTERN = re.compile(r"HOME_\d{2}")

# Epoch values above this are taken to be milliseconds
_EPOCH_MS_CUTOFF = 1e12

IdentityResolver = Callable[[Mapping[str, Any], str | None], str | None]


def home_from_device_id(raw: Mapping[str, Any], device_id: str | None) -> str | None:
    """Legacy convention: ``AIR_HOME_01`` belongs to ``HOME_01``."""
    if not device_id:
        return None
    match = HOME_CODE_PATTERN.search(device_id)
    return match.group(0) if match else None


DEFAULT_IDENTITY_RESOLVERS: tuple[IdentityResolver, ...] = (home_from_device_id,)


def normalize(
    topic: str,
    raw: Mapping[str, Any],
    *,
    now: datetime | None = None,
    identity_resolvers: Sequence[IdentityResolver] | None = None,
) -> CanonicalReading:
    """Convert one inbound message into a ``CanonicalReading``.

    Args:
        topic: Bus topic the message arrived on; used as a stream hint.
        raw: Decoded JSON object.
        now: Receipt time substituted for a missing or unparseable timestamp.
        identity_resolvers: Fallback strategies for a missing home id,
            tried in order. Defaults to ``DEFAULT_IDENTITY_RESOLVERS``.

    Returns:
        The reading. ``home_id``/``device_id`` may be ``None`` and ``stream``
        may be ``Stream.UNKNOWN``; see ``CanonicalReading.is_usable``.
    """
    timestamp = _resolve_timestamp(raw, now)
    device_id = _first_identifier(raw, DEVICE_ID_KEYS)
    home_id = _first_identifier(raw, HOME_ID_KEYS)
    if home_id is None:
        resolvers = DEFAULT_IDENTITY_RESOLVERS if identity_resolvers is None else identity_resolvers
        for resolver in resolvers:
            home_id = resolver(raw, device_id)
            if home_id:
                break

    nested = raw.get("payload")
    source = nested if isinstance(nested, Mapping) else raw
    measurements = Measurements(**_extract_measurements(source))

    return CanonicalReading(
        timestamp=timestamp,
        home_id=home_id or None,
        device_id=device_id,
        stream=_resolve_stream(topic, raw, measurements),
        measurements=measurements,
    )


def _extract_measurements(source: Mapping[str, Any]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for field, aliases in NUMERIC_ALIASES.items():
        values[field] = _pick_number(source, aliases)
    for field, aliases in BOOLEAN_ALIASES.items():
        values[field] = _pick_bool(source, aliases)
    for field, aliases in TEXT_ALIASES.items():
        values[field] = _pick_text(source, aliases)
    return values


def _is_finite_number(value: Any) -> bool:
    # bool is an int subclass; a boolean is never a measurement
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    try:
        return math.isfinite(value)
    except OverflowError:
        # int too large for a float
        return False


def _pick_number(source: Mapping[str, Any], aliases: Sequence[str]) -> float | None:
    for key in aliases:
        value = source.get(key)
        if _is_finite_number(value):
            return float(value)
    return None


def _pick_bool(source: Mapping[str, Any], aliases: Sequence[str]) -> bool | None:
    for key in aliases:
        value = source.get(key)
        if isinstance(value, bool):
            return value
    return None


def _pick_text(source: Mapping[str, Any], aliases: Sequence[str]) -> str | None:
    for key in aliases:
        value = source.get(key)
        if isinstance(value, str) and value:
            return value
    return None


def _first_identifier(raw: Mapping[str, Any], keys: Sequence[str]) -> str | None:
    for key in keys:
        value = raw.get(key)
        if value is None or isinstance(value, (bool, dict, list)):
            continue
        text = str(value).strip()
        if text:
            return text
    return None


def _resolve_timestamp(raw: Mapping[str, Any], now: datetime | None) -> datetime:
    for key in TIMESTAMP_KEYS:
        if key in raw:
            parsed = parse_timestamp(raw[key])
            if parsed is not None:
                return parsed
    return now or datetime.now(timezone.utc)


def parse_timestamp(value: Any) -> datetime | None:
    """Parse an ISO-8601 string or epoch number into an aware UTC datetime."""
    try:
        if _is_finite_number(value):
            seconds = value / 1000 if value > _EPOCH_MS_CUTOFF else value
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        if isinstance(value, str) and value.strip():
            text = value.strip()
            if text.endswith(("Z", "z")):
                text = text[:-1] + "+00:00"
            parsed = datetime.fromisoformat(text)
            if parsed.tzinfo is None:
                return parsed.replace(tzinfo=timezone.utc)
            return parsed.astimezone(timezone.utc)
    except (ValueError, OverflowError, OSError):
        return None
    return None


def _resolve_stream(topic: str, raw: Mapping[str, Any], measurements: Measurements) -> Stream:
    explicit = raw.get("stream")
    if isinstance(explicit, str):
        try:
            stream = Stream(explicit.strip().upper())
        except ValueError:
            stream = Stream.UNKNOWN
        if stream is not Stream.UNKNOWN:
            return stream

    lowered = (topic or "").lower()
    for hint, stream in TOPIC_STREAM_HINTS:
        if hint in lowered:
            return stream

    if measurements.stove_temp_c is not None:
        return Stream.STOVE
    if measurements.has_air_values():
        return Stream.AIR
    return Stream.UNKNOWN
