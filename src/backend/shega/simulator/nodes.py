"""Simulated homes, each with one AirNode and one StoveNode."""

import random
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from typing import Any

import structlog

from shega.core.topics import BusTopics
from shega.services.threshold_evaluator import DEFAULT_THRESHOLDS, ThresholdConfig
from shega.simulator.profiles import ROTATION, CookingProfile, clamp

logger = structlog.get_logger()

Publication = tuple[str, dict[str, Any]]


def _iso(now: float) -> str:
    return datetime.fromtimestamp(now, tz=timezone.utc).isoformat().replace("+00:00", "Z")


@dataclass
class Environment:
    co2: float
    co: float
    pm25: float
    pm10: float
    temp: float
    hum: float
    window_open: bool = False


class AirNode:
    """Room air-quality sensor; publishes legacy suffixed field names."""

    def __init__(self, home: "Home"):
        self.home = home
        self.device_id = f"AIR_{home.home_id}"
        self.last_sent: float | None = None

    def payload(self, now: float) -> dict[str, Any]:
        env = self.home.env
        return {
            "ts": _iso(now),
            "homeId": self.home.home_id,
            "deviceId": self.device_id,
            "profile": self.home.profile.label if self.home.profile else "Unknown",
            "temperature_c": round(env.temp, 2),
            "humidity_pct": round(env.hum, 2),
            "co2_ppm": round(env.co2),
            "co_ppm": round(env.co, 2),
            "pm25_ugm3": round(env.pm25),
            "pm10_ugm3": round(env.pm10),
            "windowOpen": bool(env.window_open),
        }

    def local_alerts(self, now: float) -> list[dict[str, Any]]:
        """Pre-formed alerts the node raises on its own, relayed by the backend."""
        env, limits = self.home.env, self.home.thresholds
        alerts = []
        checks = (
            ("CO2", env.co2, limits.co2, f"CO2 {round(env.co2)} ppm"),
            ("CO", env.co, limits.co, f"CO {round(env.co, 2)} ppm"),
            ("SMOKE", env.pm25, limits.pm25, f"PM2.5 {round(env.pm25)} ug/m3"),
        )
        for name, value, threshold, message in checks:
            if value >= threshold.danger:
                level = "DANGER"
            elif value >= threshold.warn:
                level = "WARN"
            else:
                continue
            alerts.append({
                "ts": _iso(now),
                "homeId": self.home.home_id,
                "deviceId": self.device_id,
                "type": f"{name}_{level}",
                "message": message,
            })
        return alerts


class StoveNode:
    """Stove plate sensor with a controllable fan and buzzer."""

    def __init__(self, home: "Home", rng: random.Random):
        self.home = home
        self.device_id = f"STOVE_{home.home_id}"
        self.temp_c = 35 + 3 * rng.uniform(-1, 1)
        self.fan_on = rng.random() < 0.1
        self.buzzer_on = False
        self.last_sent: float | None = None

    def payload(self, now: float) -> dict[str, Any]:
        return {
            "ts": _iso(now),
            "homeId": self.home.home_id,
            "deviceId": self.device_id,
            "profile": self.home.profile.label if self.home.profile else "Unknown",
            "stove_temp_c": round(self.temp_c, 1),
            "fanOn": self.fan_on,
            "buzzerOn": self.buzzer_on,
        }

    def update_buzzer(self) -> None:
        limits = self.home.thresholds
        too_hot = self.temp_c >= limits.stove_temp.danger
        high_co = self.home.env.co >= limits.co.danger
        self.buzzer_on = too_hot or high_co

    def apply_command(self, command: dict[str, Any]) -> bool:
        """Apply a control command; returns True if any state changed."""
        changed = False
        fan = _as_switch(command.get("fanOn", command.get("fan")))
        if fan is not None:
            self.fan_on = fan
            changed = True
            logger.info("Stove fan set", device_id=self.device_id, fan_on=fan)
        buzzer = _as_switch(command.get("buzzerOn", command.get("buzzer")))
        if buzzer is not None:
            self.buzzer_on = buzzer
            changed = True
            logger.info("Stove buzzer set", device_id=self.device_id, buzzer_on=buzzer)
        return changed


def _as_switch(value: Any) -> bool | None:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.lower() in ("on", "off"):
        return value.lower() == "on"
    return None


class Home:
    """One household: shared environment, a cooking profile, two sensor nodes."""

    def __init__(
        self,
        index: int,
        rng: random.Random,
        interval: float = 60.0,
        topics: BusTopics | None = None,
        thresholds: ThresholdConfig = DEFAULT_THRESHOLDS,
        local_alerts: bool = True,
    ):
        self.rng = rng
        self.interval = interval
        self.topics = topics or BusTopics()
        self.thresholds = thresholds
        self.local_alerts = local_alerts
        self.home_id = f"HOME_{index + 1:02d}"

        def around(mean: float, spread: float) -> float:
            return mean + spread * rng.uniform(-1, 1)

        self.baseline = Environment(
            co2=around(700, 80),
            co=around(1.2, 0.8),
            pm25=around(8, 5),
            pm10=around(12, 6),
            temp=around(23, 2),
            hum=around(45, 8),
        )
        self.env = replace(self.baseline, window_open=rng.random() < 0.2)
        self.air_node = AirNode(self)
        self.stove_node = StoveNode(self, rng)
        self.profile: CookingProfile | None = None
        self.profile_ends_at = 0.0

    def _rotate_profile(self, now: float) -> None:
        if self.profile is None or now >= self.profile_ends_at:
            self.profile = self.rng.choice(ROTATION)
            minutes = self.rng.randint(self.profile.min_mins, self.profile.max_mins)
            self.profile_ends_at = now + minutes * 60
            logger.debug("Profile changed", home_id=self.home_id, profile=self.profile.name, minutes=minutes)

    def step(self, now: float) -> None:
        """Advance the physical model by one tick."""
        self._rotate_profile(now)

        if self.rng.random() < 0.02:
            self.env.window_open = not self.env.window_open

        rng = self.rng
        eff = self.profile.effect(self, rng)
        env = self.env
        env.co2 = clamp(env.co2 + eff.co2 + 2 * rng.uniform(-1, 1), 400, 5000)
        env.co = clamp(env.co + eff.co + 0.5 * rng.uniform(-1, 1), 0, 200)
        env.pm25 = clamp(env.pm25 + eff.pm25 + 2 * rng.uniform(-1, 1), 0, 1000)
        env.pm10 = clamp(env.pm10 + eff.pm10 + 3 * rng.uniform(-1, 1), 0, 1500)
        env.temp = clamp(env.temp + eff.temp + 0.2 * rng.uniform(-1, 1), 10, 45)
        env.hum = clamp(env.hum + eff.hum + 0.4 * rng.uniform(-1, 1), 15, 90)

        stove = self.stove_node
        stove.temp_c = clamp(stove.temp_c + eff.stove + 0.7 * rng.uniform(-1, 1), 20, 350)
        if stove.temp_c > self.thresholds.stove_temp.warn and rng.random() < 0.1:
            stove.fan_on = True
        stove.update_buzzer()

    def tick(self, now: float) -> list[Publication]:
        """Step the model and return whatever is due for publishing.

        A reading stays due until ``mark_sent`` records it as published.
        """
        self.step(now)
        due: list[Publication] = []

        if self._is_due(self.air_node.last_sent, now):
            due.append((self.topics.air_data, self.air_node.payload(now)))
            if self.local_alerts:
                due.extend((self.topics.alerts, alert) for alert in self.air_node.local_alerts(now))

        if self._is_due(self.stove_node.last_sent, now):
            due.append((self.topics.stove_status, self.stove_node.payload(now)))

        return due

    def mark_sent(self, topic: str, now: float) -> None:
        """Record a published reading; alerts carry no schedule."""
        if topic == self.topics.air_data:
            self.air_node.last_sent = now
        elif topic == self.topics.stove_status:
            self.stove_node.last_sent = now

    def _is_due(self, last_sent: float | None, now: float) -> bool:
        return last_sent is None or now - last_sent >= self.interval
