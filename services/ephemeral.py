"""On-demand readings that are never stored."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, replace
from datetime import timedelta
from functools import lru_cache
from typing import Iterable, Optional

from models.records import RoomReading, SensorReading
from services.aggregator import ReadingAggregator, ReadingStatistics
from services.errors import InvalidParameterError, require_range
from services.generator import EPHEMERAL_PROFILE, Clock, ReadingGenerator
from services.registry import RoomRegistry
from storage.room_directory import RoomDirectory, build_default_directory

logger = logging.getLogger(__name__)

MAX_BATCH_ROOMS = 100
MAX_HISTORY_COUNT = 100
HISTORY_STEP = timedelta(seconds=2)


@dataclass(frozen=True)
class EphemeralStatus:
    initialized: bool
    room_count: int


class EphemeralSensorService:
    """Generate fresh readings per request from a lazily loaded registry."""

    def __init__(
        self,
        registry: RoomRegistry,
        generator: ReadingGenerator,
        aggregator: Optional[ReadingAggregator] = None,
    ) -> None:
        self.registry = registry
        self.generator = generator
        self.aggregator = aggregator or ReadingAggregator()

    @property
    def directory(self) -> RoomDirectory:
        return self.registry.directory

    def current_reading(self, room_id: str) -> Optional[SensorReading]:
        self.registry.initialize()
        state = self.registry.get(room_id)
        if state is None:
            return None
        return self.generator.generate(state)

    def current_readings(self, room_ids: Iterable[str]) -> list[RoomReading]:
        ids = list(room_ids)
        if not ids:
            raise InvalidParameterError("At least one room id is required.")
        if len(ids) > MAX_BATCH_ROOMS:
            raise InvalidParameterError(f"At most {MAX_BATCH_ROOMS} rooms per request.")

        self.registry.initialize()
        results: list[RoomReading] = []
        for room_id in ids:
            state = self.registry.get(room_id)
            reading = self.generator.generate(state) if state is not None else None
            results.append(RoomReading(room_id=room_id, reading=reading))
        return results

    def all_current_readings(self) -> list[RoomReading]:
        self.registry.initialize()
        return [
            RoomReading(room_id=room_id, reading=self.generator.generate(state))
            for room_id, state in self.registry.items()
        ]

    def filtered_readings(
        self, building: Optional[str] = None, floor: Optional[str] = None
    ) -> list[RoomReading]:
        self.registry.initialize()
        rooms = self.directory.list_rooms(building=building, floor=floor)

        results: list[RoomReading] = []
        skipped = 0
        for room in rooms:
            state = self.registry.get(room.room_id)
            if state is None:
                skipped += 1
                continue
            results.append(
                RoomReading(
                    room_id=room.room_id,
                    reading=self.generator.generate(state),
                    room=room,
                )
            )
        if skipped:
            logger.debug(
                "Skipped %d rooms unknown to the registry", skipped,
                extra={"reason": "registered after initialization"},
            )
        return results

    def history(self, room_id: str, count: int = 10) -> list[SensorReading]:
        """Synthesize ``count`` readings spaced two seconds apart, oldest first.

        Each step runs on a scratch copy of the room state so the live state
        (its trend and ``last_update``) is left untouched.
        """
        require_range("count", count, 1, MAX_HISTORY_COUNT)
        self.registry.initialize()
        state = self.registry.get(room_id)
        if state is None:
            return []

        now = self.generator.now()
        history: list[SensorReading] = []
        for step in range(count):
            timestamp = now - HISTORY_STEP * step
            scratch = replace(state, last_update=timestamp - HISTORY_STEP)
            history.append(self.generator.generate(scratch, now=timestamp))
        history.reverse()
        return history

    def statistics(self) -> ReadingStatistics:
        readings = self.all_current_readings()
        return self.aggregator.summarize(
            entry.reading for entry in readings if entry.reading is not None
        )

    def status(self) -> EphemeralStatus:
        return EphemeralStatus(
            initialized=self.registry.initialized,
            room_count=self.registry.room_count,
        )


def build_ephemeral_service(
    directory: RoomDirectory,
    rng: Optional[random.Random] = None,
    clock: Optional[Clock] = None,
) -> EphemeralSensorService:
    registry = RoomRegistry(directory=directory, profile=EPHEMERAL_PROFILE, clock=clock)
    generator = ReadingGenerator(EPHEMERAL_PROFILE, rng=rng, clock=clock)
    return EphemeralSensorService(registry=registry, generator=generator)


@lru_cache
def build_default_ephemeral_service() -> EphemeralSensorService:
    return build_ephemeral_service(build_default_directory())
