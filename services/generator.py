"""Reading generation shared by the ephemeral and persistent controllers.

Both controllers drive the same algorithm; they differ only in the
:class:`RangeProfile` they pass in. A reading is built from the room baseline,
a diurnal sine component, a uniform random perturbation and a slow per-room
trend integrated over the time since the previous reading. The trend is a
small pseudo-Markov process: on each call it is redrawn with a fixed
probability, otherwise it carries over.
"""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Sequence, Tuple

from models.records import RoomSensorState, SensorReading

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Baseline:
    temperature: float
    humidity: float
    ppm: float


@dataclass(frozen=True)
class BaselineTable:
    """Keyword rules matched in order against a lowercased room category."""

    rules: Tuple[Tuple[Tuple[str, ...], Baseline], ...]
    default: Baseline

    def lookup(self, category: Optional[str]) -> Baseline:
        label = (category or "").lower()
        for keywords, baseline in self.rules:
            if any(keyword in label for keyword in keywords):
                return baseline
        return self.default


@dataclass(frozen=True)
class Bounds:
    low: float
    high: float

    def clamp(self, value: float) -> float:
        return max(self.low, min(self.high, value))


@dataclass(frozen=True)
class RangeProfile:
    """Tuning constants for one operating mode."""

    name: str
    baselines: BaselineTable
    diurnal_amplitude: float
    random_amplitude: float
    trend_probability: float
    temperature_trend_span: float
    humidity_trend_span: float
    ppm_trend_span: float
    humidity_diurnal_scale: float
    humidity_random_scale: float
    ppm_random_scale: float
    temperature_bounds: Bounds
    humidity_bounds: Bounds
    ppm_bounds: Bounds


PERSISTENT_BASELINES = BaselineTable(
    rules=(
        (("quiròfan", "quirofan"), Baseline(20.0, 50.0, 400.0)),
        (("hospit", "habitació"), Baseline(22.0, 45.0, 450.0)),
        (("magatzem", "mgtz"), Baseline(18.0, 40.0, 500.0)),
        (("oficina", "despatx"), Baseline(23.0, 50.0, 480.0)),
        (("cuina", "cocina"), Baseline(24.0, 60.0, 600.0)),
        (("bany", "aseo"), Baseline(21.0, 70.0, 550.0)),
    ),
    default=Baseline(22.0, 50.0, 450.0),
)

# Warmer kitchens and damper bathrooms so demo dashboards raise alerts.
EPHEMERAL_BASELINES = BaselineTable(
    rules=(
        (("quiròfan", "quirofan"), Baseline(20.0, 50.0, 400.0)),
        (("hospit", "habitació"), Baseline(22.0, 50.0, 450.0)),
        (("magatzem", "mgtz"), Baseline(20.0, 45.0, 500.0)),
        (("oficina", "despatx"), Baseline(23.0, 50.0, 480.0)),
        (("cuina", "cocina"), Baseline(25.0, 60.0, 700.0)),
        (("bany", "aseo"), Baseline(22.0, 65.0, 600.0)),
    ),
    default=Baseline(22.0, 50.0, 450.0),
)

PERSISTENT_PROFILE = RangeProfile(
    name="persistent",
    baselines=PERSISTENT_BASELINES,
    diurnal_amplitude=0.5,
    random_amplitude=2.0,
    trend_probability=0.10,
    temperature_trend_span=0.2,
    humidity_trend_span=0.3,
    ppm_trend_span=10.0,
    humidity_diurnal_scale=2.0,
    humidity_random_scale=1.5,
    ppm_random_scale=20.0,
    temperature_bounds=Bounds(15.0, 30.0),
    humidity_bounds=Bounds(20.0, 80.0),
    ppm_bounds=Bounds(300.0, 1000.0),
)

EPHEMERAL_PROFILE = RangeProfile(
    name="ephemeral",
    baselines=EPHEMERAL_BASELINES,
    diurnal_amplitude=1.0,
    random_amplitude=4.0,
    trend_probability=0.15,
    temperature_trend_span=0.5,
    humidity_trend_span=0.8,
    ppm_trend_span=30.0,
    humidity_diurnal_scale=3.0,
    humidity_random_scale=2.0,
    ppm_random_scale=40.0,
    temperature_bounds=Bounds(15.0, 35.0),
    humidity_bounds=Bounds(25.0, 85.0),
    ppm_bounds=Bounds(200.0, 1200.0),
)


def baseline_for(category: Optional[str], table: BaselineTable = PERSISTENT_BASELINES) -> Baseline:
    return table.lookup(category)


def new_room_state(
    room_id: str, category: Optional[str], profile: RangeProfile, now: datetime
) -> RoomSensorState:
    baseline = profile.baselines.lookup(category)
    return RoomSensorState(
        room_id=room_id,
        base_temperature=baseline.temperature,
        base_humidity=baseline.humidity,
        base_ppm=baseline.ppm,
        last_update=now,
    )


class ReadingGenerator:
    """Produce bounded readings from a room state, advancing it in place."""

    def __init__(
        self,
        profile: RangeProfile,
        rng: Optional[random.Random] = None,
        clock: Optional[Clock] = None,
    ) -> None:
        self.profile = profile
        self._rng = rng or random.Random()
        self._clock = clock or utc_now

    def now(self) -> datetime:
        return self._clock()

    def generate(self, state: RoomSensorState, now: Optional[datetime] = None) -> SensorReading:
        if not isinstance(state, RoomSensorState):
            raise TypeError(f"Expected RoomSensorState, got {type(state).__name__}.")
        if state.last_update.tzinfo is None:
            raise ValueError(f"Room {state.room_id!r} has a naive last_update timestamp.")

        profile = self.profile
        current = now or self._clock()
        elapsed = max(0.0, (current - state.last_update).total_seconds())

        time_variation = math.sin(current.hour * math.pi / 12) * profile.diurnal_amplitude
        random_variation = (self._rng.random() - 0.5) * profile.random_amplitude

        if self._rng.random() < profile.trend_probability:
            self._redraw_trends(state)

        temperature = profile.temperature_bounds.clamp(
            state.base_temperature
            + time_variation
            + random_variation
            + state.temperature_trend * elapsed
        )
        humidity = profile.humidity_bounds.clamp(
            state.base_humidity
            + time_variation * profile.humidity_diurnal_scale
            + random_variation * profile.humidity_random_scale
            + state.humidity_trend * elapsed
        )
        ppm = profile.ppm_bounds.clamp(
            state.base_ppm
            + random_variation * profile.ppm_random_scale
            + state.ppm_trend * elapsed
        )

        if current > state.last_update:
            state.last_update = current

        return SensorReading(
            temperature=round(temperature, 1),
            humidity=round(humidity, 1),
            ppm=int(round(ppm)),
            timestamp=current,
        )

    def _redraw_trends(self, state: RoomSensorState) -> None:
        profile = self.profile
        state.temperature_trend = (self._rng.random() - 0.5) * profile.temperature_trend_span
        state.humidity_trend = (self._rng.random() - 0.5) * profile.humidity_trend_span
        state.ppm_trend = (self._rng.random() - 0.5) * profile.ppm_trend_span


def select_rooms(
    items: Sequence[Tuple[str, RoomSensorState]], count: int, rng: random.Random
) -> list[Tuple[str, RoomSensorState]]:
    """Pick ``count`` distinct entries uniformly at random, or all of them."""
    if count >= len(items):
        return list(items)
    return rng.sample(list(items), count)
