"""Aggregation logic for sensor readings."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from models.records import SensorReading, StoredReading


@dataclass
class MetricRange:
    min: float = 0.0
    max: float = 0.0


@dataclass
class MetricSummary:
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0


@dataclass
class ReadingStatistics:
    """Snapshot statistics across current readings, zeroed when empty."""

    total_rooms: int = 0
    average_temperature: float = 0.0
    average_humidity: float = 0.0
    average_ppm: float = 0.0
    temperature_range: MetricRange = field(default_factory=MetricRange)
    humidity_range: MetricRange = field(default_factory=MetricRange)
    ppm_range: MetricRange = field(default_factory=MetricRange)


@dataclass
class RoomAggregate:
    """Historical per-room statistics over stored readings."""

    room_id: str
    count: int
    temperature: MetricSummary
    humidity: MetricSummary
    ppm: MetricSummary


@dataclass
class _Accumulator:
    count: int = 0
    total: float = 0.0
    min_value: Optional[float] = None
    max_value: Optional[float] = None

    def add(self, value: float) -> None:
        self.count += 1
        self.total += value
        if self.min_value is None or value < self.min_value:
            self.min_value = value
        if self.max_value is None or value > self.max_value:
            self.max_value = value

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0

    def as_range(self) -> MetricRange:
        return MetricRange(min=self.min_value or 0.0, max=self.max_value or 0.0)

    def as_summary(self) -> MetricSummary:
        return MetricSummary(avg=self.mean, min=self.min_value or 0.0, max=self.max_value or 0.0)


@dataclass
class _RoomAccumulator:
    temperature: _Accumulator = field(default_factory=_Accumulator)
    humidity: _Accumulator = field(default_factory=_Accumulator)
    ppm: _Accumulator = field(default_factory=_Accumulator)


class ReadingAggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def summarize(self, readings: Iterable[SensorReading]) -> ReadingStatistics:
        temperature = _Accumulator()
        humidity = _Accumulator()
        ppm = _Accumulator()

        for reading in readings:
            temperature.add(reading.temperature)
            humidity.add(reading.humidity)
            ppm.add(reading.ppm)

        if not temperature.count:
            return ReadingStatistics()

        return ReadingStatistics(
            total_rooms=temperature.count,
            average_temperature=temperature.mean,
            average_humidity=humidity.mean,
            average_ppm=ppm.mean,
            temperature_range=temperature.as_range(),
            humidity_range=humidity.as_range(),
            ppm_range=ppm.as_range(),
        )

    def aggregate_by_room(self, readings: Iterable[StoredReading]) -> List[RoomAggregate]:
        per_room: Dict[str, _RoomAccumulator] = {}

        for reading in readings:
            bucket = per_room.setdefault(reading.room_id, _RoomAccumulator())
            bucket.temperature.add(reading.temperature)
            bucket.humidity.add(reading.humidity)
            bucket.ppm.add(reading.ppm)

        aggregates = [
            RoomAggregate(
                room_id=room_id,
                count=bucket.temperature.count,
                temperature=bucket.temperature.as_summary(),
                humidity=bucket.humidity.as_summary(),
                ppm=bucket.ppm.as_summary(),
            )
            for room_id, bucket in per_room.items()
        ]
        aggregates.sort(key=lambda aggregate: (-aggregate.count, aggregate.room_id))
        return aggregates
