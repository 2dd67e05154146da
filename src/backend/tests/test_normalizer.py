"""Tests for the message normalizer."""

from datetime import datetime, timezone

import pytest

from shega.schemas.telemetry import Stream
from shega.services.normalizer import (
    BOOLEAN_ALIASES,
    NUMERIC_ALIASES,
    home_from_device_id,
    normalize,
    parse_timestamp,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

NUMERIC_CASES = [(field, key) for field, keys in NUMERIC_ALIASES.items() for key in keys]
BOOLEAN_CASES = [(field, key) for field, keys in BOOLEAN_ALIASES.items() for key in keys]


class TestFieldAliases:
    """Legacy and current key spellings fold onto one canonical field."""

    @pytest.mark.parametrize("field, key", NUMERIC_CASES)
    def test_numeric_alias(self, field, key):
        reading = normalize("shega/airnode/data", {"deviceId": "AIR_HOME_01", key: 42}, now=NOW)
        assert getattr(reading.measurements, field) == 42.0

    @pytest.mark.parametrize("field, key", BOOLEAN_CASES)
    def test_boolean_alias(self, field, key):
        reading = normalize("shega/stovenode/status", {"deviceId": "STOVE_HOME_01", key: True}, now=NOW)
        assert getattr(reading.measurements, field) is True

    def test_legacy_air_payload(self):
        """Suffixed keys from older firmware are recognized."""
        raw = {
            "deviceId": "AIR_HOME_01",
            "homeId": "HOME_01",
            "co2_ppm": 812,
            "co_ppm": 3.5,
            "pm10_ugm3": 20,
            "temperature_c": 24.1,
            "humidity_pct": 51,
            "windowOpen": True,
        }
        m = normalize("shega/airnode/data", raw, now=NOW).measurements
        assert m.co2 == 812.0
        assert m.co == 3.5
        assert m.pm10 == 20.0
        assert m.temperature_c == 24.1
        assert m.humidity_pct == 51.0
        assert m.window_open is True

    def test_first_alias_wins(self):
        reading = normalize("shega/airnode/data", {"co2": 900, "co2_ppm": 1200}, now=NOW)
        assert reading.measurements.co2 == 900.0

    def test_nested_payload_object_is_used(self):
        raw = {"deviceId": "STOVE_HOME_02", "payload": {"stove_temp_c": 210, "fanOn": False}}
        reading = normalize("shega/stovenode/status", raw, now=NOW)
        assert reading.measurements.stove_temp_c == 210.0
        assert reading.measurements.fan_on is False


class TestValueStrictness:
    """Non-conforming values are treated as absent, never coerced."""

    def test_numeric_string_is_absent(self):
        reading = normalize("shega/airnode/data", {"co2": "1200"}, now=NOW)
        assert reading.measurements.co2 is None

    def test_boolean_is_not_a_number(self):
        reading = normalize("shega/airnode/data", {"co2": True}, now=NOW)
        assert reading.measurements.co2 is None

    def test_nan_is_absent(self):
        reading = normalize("shega/airnode/data", {"co2": float("nan")}, now=NOW)
        assert reading.measurements.co2 is None

    def test_oversized_integer_falls_through_to_next_alias(self):
        raw = {"deviceId": "AIR_HOME_01", "co2": 10**400, "co2_ppm": 900}
        reading = normalize("shega/airnode/data", raw, now=NOW)
        assert reading.measurements.co2 == 900.0

    def test_oversized_epoch_uses_receipt_time(self):
        assert normalize("shega/airnode/data", {"ts": 10**400}, now=NOW).timestamp == NOW

    @pytest.mark.parametrize("value", ["true", 1, "on"])
    def test_non_boolean_flag_is_absent(self, value):
        reading = normalize("shega/stovenode/status", {"fanOn": value}, now=NOW)
        assert reading.measurements.fan_on is None


class TestIdentity:
    """Tests for home and device id resolution."""

    def test_explicit_home_id(self):
        reading = normalize("shega/airnode/data", {"deviceId": "AIR_HOME_01", "homeId": "HOME_09"}, now=NOW)
        assert reading.home_id == "HOME_09"

    def test_short_home_key(self):
        reading = normalize("shega/airnode/data", {"device": "A1", "h": "HOME_03"}, now=NOW)
        assert reading.device_id == "A1"
        assert reading.home_id == "HOME_03"

    def test_home_derived_from_device_id(self):
        reading = normalize("shega/stovenode/status", {"deviceId": "STOVE_HOME_07", "stove_temp_c": 40}, now=NOW)
        assert reading.home_id == "HOME_07"

    def test_underivable_home_is_none(self):
        reading = normalize("shega/airnode/data", {"deviceId": "sensor-xyz", "co2": 500}, now=NOW)
        assert reading.home_id is None
        assert reading.is_usable is False

    def test_custom_resolver_chain(self):
        def from_site(raw, device_id):
            return raw.get("site")

        reading = normalize(
            "shega/airnode/data",
            {"deviceId": "AIR_HOME_01", "site": "HOME_42", "co2": 500},
            now=NOW,
            identity_resolvers=[from_site],
        )
        assert reading.home_id == "HOME_42"

    def test_home_from_device_id_helper(self):
        assert home_from_device_id({}, "AIR_HOME_12") == "HOME_12"
        assert home_from_device_id({}, None) is None
        assert home_from_device_id({}, "HOME_1") is None


class TestStream:
    """Stream classification precedence."""

    def test_explicit_stream_wins_over_topic(self):
        reading = normalize("shega/airnode/data", {"stream": "stove", "co2": 500}, now=NOW)
        assert reading.stream is Stream.STOVE

    def test_topic_hint(self):
        assert normalize("shega/airnode/data", {}, now=NOW).stream is Stream.AIR
        assert normalize("shega/stovenode/status", {}, now=NOW).stream is Stream.STOVE

    def test_stove_value_on_neutral_topic(self):
        reading = normalize("shega/misc/data", {"stove_temp_c": 120, "co2": 700}, now=NOW)
        assert reading.stream is Stream.STOVE

    def test_air_values_on_neutral_topic(self):
        reading = normalize("shega/misc/data", {"co": 2.0}, now=NOW)
        assert reading.stream is Stream.AIR

    def test_nothing_to_go_on_is_unknown(self):
        reading = normalize("shega/misc/data", {"deviceId": "AIR_HOME_01", "humidity": 40}, now=NOW)
        assert reading.stream is Stream.UNKNOWN
        assert reading.is_usable is False


class TestTimestamps:
    """Timestamp parsing and receipt-time fallback."""

    def test_iso_with_z(self):
        reading = normalize("shega/airnode/data", {"ts": "2025-02-01T08:30:00Z"}, now=NOW)
        assert reading.timestamp == datetime(2025, 2, 1, 8, 30, tzinfo=timezone.utc)

    def test_epoch_seconds_and_millis(self):
        assert parse_timestamp(1700000000) == datetime.fromtimestamp(1700000000, tz=timezone.utc)
        assert parse_timestamp(1700000000000) == datetime.fromtimestamp(1700000000, tz=timezone.utc)

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("2025-02-01T08:30:00") == datetime(2025, 2, 1, 8, 30, tzinfo=timezone.utc)

    def test_unparseable_falls_through_to_next_key(self):
        raw = {"ts": "yesterday", "timestamp": "2025-02-01T08:30:00Z"}
        reading = normalize("shega/airnode/data", raw, now=NOW)
        assert reading.timestamp == datetime(2025, 2, 1, 8, 30, tzinfo=timezone.utc)

    def test_missing_uses_receipt_time(self):
        assert normalize("shega/airnode/data", {}, now=NOW).timestamp == NOW


class TestIdempotence:
    def test_same_payload_twice_is_identical(self):
        raw = {"deviceId": "STOVE_HOME_07", "stove_temp_c": 215, "fanOn": True, "ts": "2025-02-01T08:30:00Z"}
        assert normalize("shega/stovenode/status", raw) == normalize("shega/stovenode/status", raw)

    def test_normalizing_wire_form_again_is_stable(self):
        raw = {"deviceId": "AIR_HOME_01", "co2_ppm": 1700, "pm25_ugm3": 40, "ts": "2025-02-01T08:30:00Z"}
        first = normalize("shega/airnode/data", raw, now=NOW)

        wire = first.to_wire()
        flattened = {**wire, **wire["measurements"]}
        second = normalize("shega/airnode/data", flattened, now=NOW)

        assert second == first

    def test_never_raises_on_odd_input(self):
        reading = normalize("", {"deviceId": ["x"], "homeId": {"a": 1}, "ts": object()}, now=NOW)
        assert reading.device_id is None
        assert reading.home_id is None
        assert reading.timestamp == NOW
