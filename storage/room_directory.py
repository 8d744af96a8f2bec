from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Any, Dict, Iterable, List, Optional

from models.records import RoomInfo
from services.errors import DirectoryUnavailableError
from settings import get_settings

_ID_KEYS = ("id", "room_id", "guid")
_CATEGORY_KEYS = ("category", "dispositiu")
_BUILDING_KEYS = ("building", "edifici")
_FLOOR_KEYS = ("floor", "planta")
_DEPARTMENT_KEYS = ("department", "departament")


def _first(payload: Dict[str, Any], keys: Iterable[str]) -> Optional[str]:
    for key in keys:
        value = payload.get(key)
        if value is not None:
            return str(value)
    return None


def room_from_payload(payload: Dict[str, Any]) -> RoomInfo:
    room_id = _first(payload, _ID_KEYS)
    if not room_id:
        raise ValueError("Room entry is missing an id.")
    return RoomInfo(
        room_id=room_id,
        category=_first(payload, _CATEGORY_KEYS) or "",
        building=_first(payload, _BUILDING_KEYS),
        floor=_first(payload, _FLOOR_KEYS),
        department=_first(payload, _DEPARTMENT_KEYS),
    )


class RoomDirectory:
    """Source of monitored rooms, backed by memory or a JSON file.

    The file is re-read on every listing so edits made while the service runs
    are visible to filtered queries.
    """

    def __init__(
        self,
        rooms: Optional[Iterable[RoomInfo]] = None,
        path: Optional[Path] = None,
    ) -> None:
        self.path = path
        self._rooms: List[RoomInfo] = list(rooms or [])
        self._lock = Lock()

    def add_room(self, room: RoomInfo) -> None:
        with self._lock:
            self._rooms.append(room)

    def list_rooms(
        self, building: Optional[str] = None, floor: Optional[str] = None
    ) -> list[RoomInfo]:
        rooms = self._load()
        return [
            room
            for room in rooms
            if (building is None or room.building == building)
            and (floor is None or room.floor == floor)
        ]

    def _load(self) -> list[RoomInfo]:
        with self._lock:
            rooms = list(self._rooms)

        if not self.path:
            return rooms

        try:
            raw = self.path.read_text(encoding="utf-8")
            data = json.loads(raw or "[]")
        except (OSError, json.JSONDecodeError) as exc:
            raise DirectoryUnavailableError(
                f"Room directory {str(self.path)!r} could not be read: {exc}"
            ) from exc

        if isinstance(data, dict):
            data = data.get("rooms", [])
        if not isinstance(data, list):
            raise DirectoryUnavailableError(
                f"Room directory {str(self.path)!r} must contain a list of rooms."
            )

        try:
            rooms.extend(room_from_payload(entry) for entry in data)
        except (AttributeError, ValueError) as exc:
            raise DirectoryUnavailableError(
                f"Room directory {str(self.path)!r} has a malformed entry: {exc}"
            ) from exc
        return rooms


@lru_cache
def build_default_directory(path: Optional[str] = None) -> RoomDirectory:
    settings = get_settings()
    directory_path = settings.room_directory_path if path is None else path
    return RoomDirectory(path=Path(directory_path) if directory_path else None)
