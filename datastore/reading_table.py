from __future__ import annotations

import json
import logging
from datetime import datetime
from functools import lru_cache
from itertools import count
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional

from models.records import SensorReading, StoredReading
from services.aggregator import ReadingAggregator, RoomAggregate
from services.errors import PersistenceError
from settings import get_settings

logger = logging.getLogger(__name__)


def _encode(item: StoredReading) -> str:
    return json.dumps(
        {
            "id": item.id,
            "room_id": item.room_id,
            "temperature": item.temperature,
            "humidity": item.humidity,
            "ppm": item.ppm,
            "timestamp": item.timestamp.isoformat(),
        },
        sort_keys=True,
    )


def _decode(line: str) -> StoredReading:
    payload = json.loads(line)
    return StoredReading(
        id=int(payload["id"]),
        room_id=str(payload["room_id"]),
        temperature=float(payload["temperature"]),
        humidity=float(payload["humidity"]),
        ppm=int(payload["ppm"]),
        timestamp=datetime.fromisoformat(payload["timestamp"]),
    )


class MockReadingTable:
    """Append-only store of historical readings.

    Items live in memory in insertion order. When a persistence path is
    configured each append adds one JSON line to the file and deletions
    rewrite it.
    """

    def __init__(
        self,
        name: str = "sensor_data",
        persistence_path: Optional[Path] = None,
        aggregator: Optional[ReadingAggregator] = None,
    ) -> None:
        self.name = name
        self.persistence_path = persistence_path
        self._aggregator = aggregator or ReadingAggregator()
        self._items: List[StoredReading] = []
        self._lock = Lock()
        self._ids = count(1)
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._load_from_disk()

    def append(self, room_id: str, reading: SensorReading) -> StoredReading:
        with self._lock:
            item = StoredReading(
                id=next(self._ids),
                room_id=room_id,
                temperature=reading.temperature,
                humidity=reading.humidity,
                ppm=reading.ppm,
                timestamp=reading.timestamp,
            )
            self._append_to_disk(item)
            self._items.append(item)
            return item

    def query_latest(self, room_id: str, limit: int) -> list[StoredReading]:
        """Return up to ``limit`` readings for a room, newest first."""
        with self._lock:
            matches = [item for item in self._items if item.room_id == room_id]
        matches.sort(key=lambda item: (item.timestamp, item.id), reverse=True)
        return matches[:limit]

    def latest_per_room(self, room_ids: Optional[Iterable[str]] = None) -> Dict[str, StoredReading]:
        wanted = set(room_ids) if room_ids is not None else None
        latest: Dict[str, StoredReading] = {}
        with self._lock:
            items = list(self._items)
        for item in items:
            if wanted is not None and item.room_id not in wanted:
                continue
            current = latest.get(item.room_id)
            if current is None or (item.timestamp, item.id) > (current.timestamp, current.id):
                latest[item.room_id] = item
        return latest

    def count_for_room(self, room_id: str) -> int:
        with self._lock:
            return sum(1 for item in self._items if item.room_id == room_id)

    def delete_older_than(self, cutoff: datetime, room_id: Optional[str] = None) -> int:
        """Delete readings strictly older than ``cutoff``; return how many."""
        with self._lock:
            kept = [
                item
                for item in self._items
                if item.timestamp >= cutoff or (room_id is not None and item.room_id != room_id)
            ]
            deleted = len(self._items) - len(kept)
            if deleted:
                self._rewrite_disk(kept)
                self._items = kept
            return deleted

    def aggregate_by_room(self) -> list[RoomAggregate]:
        with self._lock:
            items = list(self._items)
        return self._aggregator.aggregate_by_room(items)

    def count_all(self) -> int:
        with self._lock:
            return len(self._items)

    def oldest_timestamp(self) -> Optional[datetime]:
        with self._lock:
            return min((item.timestamp for item in self._items), default=None)

    def newest_timestamp(self) -> Optional[datetime]:
        with self._lock:
            return max((item.timestamp for item in self._items), default=None)

    def scan(self) -> list[StoredReading]:
        with self._lock:
            return list(self._items)

    def _append_to_disk(self, item: StoredReading) -> None:
        if not self.persistence_path:
            return
        try:
            with self.persistence_path.open("a", encoding="utf-8") as handle:
                handle.write(_encode(item) + "\n")
        except OSError as exc:
            raise PersistenceError(
                f"Could not append reading for room {item.room_id!r}: {exc}"
            ) from exc

    def _rewrite_disk(self, items: List[StoredReading]) -> None:
        if not self.persistence_path:
            return
        body = "".join(_encode(item) + "\n" for item in items)
        try:
            self.persistence_path.write_text(body, encoding="utf-8")
        except OSError as exc:
            raise PersistenceError(f"Could not rewrite {self.name!r}: {exc}") from exc

    def _load_from_disk(self) -> None:
        if not self.persistence_path or not self.persistence_path.exists():
            return

        try:
            lines = self.persistence_path.read_text(encoding="utf-8").splitlines()
        except OSError as exc:
            raise PersistenceError(f"Could not load {self.name!r}: {exc}") from exc

        for line_number, line in enumerate(lines, start=1):
            if not line.strip():
                continue
            try:
                self._items.append(_decode(line))
            except (ValueError, KeyError, TypeError):
                logger.warning(
                    "Skipping malformed stored reading on line %d", line_number,
                    extra={"reason": "malformed line"},
                )

        last_id = max((item.id for item in self._items), default=0)
        self._ids = count(last_id + 1)


@lru_cache
def build_default_table(
    name: Optional[str] = None,
    path: Optional[str] = None,
) -> MockReadingTable:
    settings = get_settings()
    table_name = "sensor_data" if name is None else name
    table_path = settings.readings_persistence_path if path is None else path
    persistence = Path(table_path) if table_path else None
    return MockReadingTable(name=table_name, persistence_path=persistence)
