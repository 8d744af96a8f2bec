"""Scheduled generation of readings that are appended to the reading table."""

from __future__ import annotations

import logging
import math
import random
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from functools import lru_cache
from threading import Event, Lock, Thread, current_thread
from typing import Iterable, List, Optional, Tuple

from datastore.reading_table import MockReadingTable, build_default_table
from models.records import RoomInfo, SensorReading, StoredReading
from services.aggregator import RoomAggregate
from services.errors import DirectoryUnavailableError, InvalidParameterError, require_range
from services.generator import PERSISTENT_PROFILE, Clock, ReadingGenerator, select_rooms
from services.registry import RoomRegistry
from settings import get_settings
from storage.room_directory import RoomDirectory, build_default_directory

logger = logging.getLogger(__name__)

MAX_LATEST_LIMIT = 100
MAX_MULTI_ROOM_LIMIT = 50
MAX_MULTI_ROOMS = 100


@dataclass
class IterationResult:
    started_at: datetime
    batch_mode: bool
    attempted: int = 0
    persisted: int = 0
    failed: int = 0


@dataclass(frozen=True)
class SimulationStatus:
    running: bool
    room_count: int
    interval: float
    batch_mode: bool
    batch_size: int
    iterations: int
    last_iteration: Optional[IterationResult]


@dataclass(frozen=True)
class DatabaseStats:
    total_records: int
    oldest_record: Optional[datetime]
    newest_record: Optional[datetime]
    estimated_records_per_hour: float


@dataclass(frozen=True)
class RoomHistoryEntry:
    reading: StoredReading
    room: Optional[RoomInfo]


@dataclass(frozen=True)
class RoomLatest:
    room_id: str
    latest: Optional[StoredReading]
    count: int


class SensorSimulationService:
    """Periodically generate readings and persist them in parallel.

    Iterations run serially on one worker thread. When an iteration overruns
    the interval the missed ticks are skipped, so iterations never overlap
    and never burst to catch up.
    """

    def __init__(
        self,
        registry: RoomRegistry,
        generator: ReadingGenerator,
        table: MockReadingTable,
        update_interval: float = 30.0,
        batch_mode: bool = False,
        batch_size: int = 50,
        workers: int = 4,
        rng: Optional[random.Random] = None,
    ) -> None:
        if update_interval <= 0:
            raise InvalidParameterError("update_interval must be positive.")
        if batch_size < 1:
            raise InvalidParameterError("batch_size must be at least 1.")
        self.registry = registry
        self.generator = generator
        self.table = table
        self.update_interval = update_interval
        self.batch_mode = batch_mode
        self.batch_size = batch_size
        self.executor = ThreadPoolExecutor(
            max_workers=workers, thread_name_prefix="sensor-persist"
        )
        self._rng = rng or random.Random()
        self._state_lock = Lock()
        self._iteration_lock = Lock()
        self._stop_event: Optional[Event] = None
        self._worker: Optional[Thread] = None
        self.iterations = 0
        self.last_result: Optional[IterationResult] = None

    @property
    def running(self) -> bool:
        return self._stop_event is not None

    def start(self) -> bool:
        """Start the recurring schedule; return False if already running."""
        with self._state_lock:
            if self._stop_event is not None:
                logger.info("Sensor simulation is already running")
                return False
            stop_event = Event()
            worker = Thread(
                target=self._run_loop,
                args=(stop_event,),
                name="sensor-simulation",
                daemon=True,
            )
            self._stop_event = stop_event
            self._worker = worker

        try:
            self.registry.initialize()
        except DirectoryUnavailableError:
            logger.warning("Starting without rooms; initialization will be retried")

        worker.start()
        logger.info(
            "Sensor simulation started",
            extra={"interval": self.update_interval, "batch_mode": self.batch_mode},
        )
        return True

    def stop(self, wait: bool = False, timeout: Optional[float] = None) -> bool:
        """Cancel the schedule; return False if it was not running.

        An iteration already in flight finishes on its own unless ``wait``
        asks to join it.
        """
        with self._state_lock:
            stop_event, worker = self._stop_event, self._worker
            if stop_event is None:
                logger.info("Sensor simulation is not running")
                return False
            stop_event.set()
            self._stop_event = None
            self._worker = None

        if wait and worker is not None and worker is not current_thread():
            worker.join(timeout)
        logger.info("Sensor simulation stopped")
        return True

    def shutdown(self) -> None:
        if self.running:
            self.stop(wait=True, timeout=5.0)
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _run_loop(self, stop_event: Event) -> None:
        interval = self.update_interval
        origin = time.monotonic()
        tick = 0
        while True:
            # Once stop() returns, an iteration is either already claimed or never starts.
            with self._state_lock:
                if stop_event.is_set():
                    return
                self._iteration_lock.acquire()
            try:
                self._iterate()
            except Exception:  # noqa: BLE001
                logger.exception("Sensor simulation iteration failed")
            finally:
                self._iteration_lock.release()

            elapsed = time.monotonic() - origin
            tick = max(tick + 1, math.floor(elapsed / interval) + 1)
            delay = origin + tick * interval - time.monotonic()
            if stop_event.wait(max(0.0, delay)):
                return

    @property
    def iteration_in_progress(self) -> bool:
        return self._iteration_lock.locked()

    def run_iteration(self) -> IterationResult:
        """Generate and persist one round of readings."""
        with self._iteration_lock:
            return self._iterate()

    def _iterate(self) -> IterationResult:
        result = IterationResult(started_at=self.generator.now(), batch_mode=self.batch_mode)
        try:
            self.registry.initialize()
        except DirectoryUnavailableError:
            self._record(result)
            return result

        entries = self.registry.items()
        if self.batch_mode:
            entries = select_rooms(entries, self.batch_size, self._rng)

        readings: List[Tuple[str, SensorReading]] = [
            (room_id, self.generator.generate(state)) for room_id, state in entries
        ]
        result.attempted = len(readings)

        futures: List[Tuple[str, Future[StoredReading]]] = [
            (room_id, self.executor.submit(self.table.append, room_id, reading))
            for room_id, reading in readings
        ]
        for room_id, future in futures:
            try:
                future.result()
            except Exception as exc:  # noqa: BLE001
                result.failed += 1
                logger.error(
                    "Failed to persist reading",
                    extra={"room_id": room_id, "reason": str(exc)},
                )
            else:
                result.persisted += 1

        self._record(result)
        logger.info(
            "Persisted sensor readings",
            extra={
                "persisted": result.persisted,
                "failed": result.failed or None,
                "batch_mode": self.batch_mode,
            },
        )
        return result

    def _record(self, result: IterationResult) -> None:
        self.iterations += 1
        self.last_result = result

    def cleanup(self, days_to_keep: int = 7) -> int:
        """Delete readings older than ``days_to_keep`` days; readings at the cutoff stay."""
        require_range("days_to_keep", days_to_keep, 1)
        cutoff = self.generator.now() - timedelta(days=days_to_keep)
        deleted = self.table.delete_older_than(cutoff)
        logger.info(
            "Removed old sensor readings",
            extra={"deleted_count": deleted, "cutoff": cutoff.isoformat()},
        )
        return deleted

    def purge_room(self, room_id: str, days: int = 30) -> int:
        require_range("days", days, 1)
        cutoff = self.generator.now() - timedelta(days=days)
        deleted = self.table.delete_older_than(cutoff, room_id=room_id)
        logger.info(
            "Removed old sensor readings for room",
            extra={"room_id": room_id, "deleted_count": deleted, "cutoff": cutoff.isoformat()},
        )
        return deleted

    def latest_readings(self, room_id: str, limit: int = 10) -> list[RoomHistoryEntry]:
        require_range("limit", limit, 1, MAX_LATEST_LIMIT)
        room = self.registry.room_info(room_id)
        return [
            RoomHistoryEntry(reading=item, room=room)
            for item in self.table.query_latest(room_id, limit)
        ]

    def latest_for_rooms(self, room_ids: Iterable[str], limit: int = 5) -> list[RoomLatest]:
        ids = list(room_ids)
        if not ids:
            raise InvalidParameterError("At least one room id is required.")
        if len(ids) > MAX_MULTI_ROOMS:
            raise InvalidParameterError(f"At most {MAX_MULTI_ROOMS} rooms per request.")
        require_range("limit", limit, 1, MAX_MULTI_ROOM_LIMIT)

        results: list[RoomLatest] = []
        for room_id in ids:
            items = self.table.query_latest(room_id, limit)
            results.append(
                RoomLatest(room_id=room_id, latest=items[0] if items else None, count=len(items))
            )
        return results

    def current_stored_readings(
        self, building: Optional[str] = None, floor: Optional[str] = None
    ) -> list[RoomHistoryEntry]:
        """Latest stored reading for every directory room matching the filter."""
        rooms = {room.room_id: room for room in self.registry.directory.list_rooms(building, floor)}
        latest = self.table.latest_per_room(rooms.keys())
        return [
            RoomHistoryEntry(reading=latest[room_id], room=rooms[room_id])
            for room_id in sorted(latest)
        ]

    def statistics_by_room(self) -> list[RoomAggregate]:
        return self.table.aggregate_by_room()

    def database_stats(self) -> DatabaseStats:
        room_count = self.registry.room_count
        per_iteration = min(self.batch_size, room_count) if self.batch_mode else room_count
        return DatabaseStats(
            total_records=self.table.count_all(),
            oldest_record=self.table.oldest_timestamp(),
            newest_record=self.table.newest_timestamp(),
            estimated_records_per_hour=per_iteration * 3600 / self.update_interval,
        )

    def status(self) -> SimulationStatus:
        return SimulationStatus(
            running=self.running,
            room_count=self.registry.room_count,
            interval=self.update_interval,
            batch_mode=self.batch_mode,
            batch_size=self.batch_size,
            iterations=self.iterations,
            last_iteration=self.last_result,
        )


def build_simulation_service(
    directory: RoomDirectory,
    table: MockReadingTable,
    update_interval: float = 30.0,
    batch_mode: bool = False,
    batch_size: int = 50,
    workers: int = 4,
    rng: Optional[random.Random] = None,
    clock: Optional[Clock] = None,
) -> SensorSimulationService:
    registry = RoomRegistry(directory=directory, profile=PERSISTENT_PROFILE, clock=clock)
    generator = ReadingGenerator(PERSISTENT_PROFILE, rng=rng, clock=clock)
    return SensorSimulationService(
        registry=registry,
        generator=generator,
        table=table,
        update_interval=update_interval,
        batch_mode=batch_mode,
        batch_size=batch_size,
        workers=workers,
        rng=rng,
    )


@lru_cache
def build_default_simulation_service() -> SensorSimulationService:
    """Factory that wires the simulation with the configured directory and table."""
    settings = get_settings()
    return build_simulation_service(
        build_default_directory(),
        build_default_table(),
        update_interval=settings.update_interval,
        batch_mode=settings.batch_mode,
        batch_size=settings.batch_size,
        workers=settings.persist_workers,
    )
