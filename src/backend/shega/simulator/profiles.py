"""Cooking profiles driving the simulated kitchen environment.

Each profile nudges pollutant levels and the stove plate temperature once
per physics tick. A running fan halves pollutant boosts and an open window
cuts them to 70%.
"""

import random
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from shega.simulator.nodes import Home

Range = tuple[float, float]


def clamp(x: float, lo: float, hi: float) -> float:
    return max(lo, min(hi, x))


def approach(current: float, target: float, rate: float) -> float:
    """Move ``current`` a fraction of the way toward ``target``."""
    return current + (target - current) * clamp(rate, 0, 1)


def decay_toward(current: float, baseline: float, rate: float) -> float:
    return (current - baseline) * rate


@dataclass(frozen=True)
class Effect:
    """Per-tick deltas applied to a home's state."""

    co2: float
    co: float
    pm25: float
    pm10: float
    temp: float
    hum: float
    stove: float


@dataclass(frozen=True)
class CookingProfile:
    name: str
    label: str
    min_mins: int
    max_mins: int
    stove_target: float | None = None
    co2_boost: Range = (0, 0)
    co_boost: Range = (0, 0)
    pm25_boost: Range = (0, 0)
    pm10_boost: Range = (0, 0)
    temp_boost: Range = (0, 0)
    hum_boost: Range = (0, 0)

    @property
    def is_idle(self) -> bool:
        return self.stove_target is None

    def effect(self, home: "Home", rng: random.Random) -> Effect:
        env, base = home.env, home.baseline
        stove_c = home.stove_node.temp_c

        if self.is_idle:
            # drift back to baseline
            return Effect(
                co2=approach(env.co2, base.co2, 0.1) - env.co2,
                co=approach(env.co, base.co, 0.2) - env.co,
                pm25=approach(env.pm25, base.pm25, 0.25) - env.pm25,
                pm10=approach(env.pm10, base.pm10, 0.25) - env.pm10,
                temp=approach(env.temp, base.temp, 0.15) - env.temp,
                hum=approach(env.hum, base.hum, 0.10) - env.hum,
                stove=approach(stove_c, 35, 0.2) - stove_c,
            )

        def v(bounds: Range) -> float:
            return rng.uniform(bounds[0], bounds[1])

        vent = 0.5 if home.stove_node.fan_on else 1.0
        window = 0.7 if env.window_open else 1.0
        loss = vent * window

        return Effect(
            co2=v(self.co2_boost) * loss - decay_toward(env.co2, base.co2, 0.05),
            co=v(self.co_boost) * loss - decay_toward(env.co, base.co, 0.08),
            pm25=v(self.pm25_boost) * loss - decay_toward(env.pm25, base.pm25, 0.1),
            pm10=v(self.pm10_boost) * loss - decay_toward(env.pm10, base.pm10, 0.1),
            temp=v(self.temp_boost) - decay_toward(env.temp, base.temp, 0.05),
            hum=v(self.hum_boost) - decay_toward(env.hum, base.hum, 0.05),
            stove=approach(stove_c, self.stove_target, 0.25) - stove_c,
        )


IDLE = CookingProfile(name="idle", label="Idle / No cooking", min_mins=15, max_mins=45)

INJERA = CookingProfile(
    name="injera",
    label="Injera baking (mitad)",
    min_mins=20,
    max_mins=35,
    stove_target=240,
    co2_boost=(80, 140),
    co_boost=(2, 6),
    pm25_boost=(30, 80),
    pm10_boost=(40, 120),
    temp_boost=(0.3, 0.8),
    hum_boost=(-0.3, 0.2),
)

COFFEE = CookingProfile(
    name="coffee",
    label="Coffee ceremony (roasting + brewing)",
    min_mins=12,
    max_mins=25,
    stove_target=180,
    co2_boost=(30, 60),
    co_boost=(4, 10),
    pm25_boost=(60, 120),  # roasting smoke
    pm10_boost=(30, 60),
    temp_boost=(0.2, 0.5),
    hum_boost=(0.2, 0.7),
)

WAT = CookingProfile(
    name="wat",
    label="Wat simmer (stew)",
    min_mins=30,
    max_mins=60,
    stove_target=120,
    co2_boost=(50, 90),
    co_boost=(1, 3),
    pm25_boost=(10, 25),
    pm10_boost=(8, 18),
    temp_boost=(0.1, 0.3),
    hum_boost=(0.6, 1.4),
)

TIBS = CookingProfile(
    name="tibs",
    label="Tibs / frying",
    min_mins=10,
    max_mins=25,
    stove_target=200,
    co2_boost=(40, 80),
    co_boost=(2, 5),
    pm25_boost=(40, 100),
    pm10_boost=(30, 70),
    temp_boost=(0.2, 0.5),
    hum_boost=(-0.2, 0.2),
)

# Idle is weighted double so homes spend time between meals
ROTATION: tuple[CookingProfile, ...] = (IDLE, IDLE, INJERA, COFFEE, WAT, TIBS)
