"""In-memory registry of per-room simulation state."""

from __future__ import annotations

import logging
from threading import Lock
from typing import Dict, Iterator, Optional, Tuple

from models.records import RoomInfo, RoomSensorState
from services.errors import DirectoryUnavailableError
from services.generator import Clock, RangeProfile, new_room_state, utc_now
from storage.room_directory import RoomDirectory

logger = logging.getLogger(__name__)


class RoomRegistry:
    """Owns one :class:`RoomSensorState` per monitored room.

    ``initialize`` loads a snapshot of the room directory once; later calls
    are no-ops until ``reset``. A failed load leaves the registry empty and
    uninitialized so the caller can retry.
    """

    def __init__(
        self,
        directory: RoomDirectory,
        profile: RangeProfile,
        clock: Optional[Clock] = None,
    ) -> None:
        self.directory = directory
        self.profile = profile
        self._clock = clock or utc_now
        self._states: Dict[str, RoomSensorState] = {}
        self._rooms: Dict[str, RoomInfo] = {}
        self._initialized = False
        self._lock = Lock()

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def room_count(self) -> int:
        return len(self._states)

    def initialize(self) -> None:
        if self._initialized:
            return
        with self._lock:
            if self._initialized:
                return
            try:
                rooms = self.directory.list_rooms()
            except DirectoryUnavailableError as exc:
                logger.error(
                    "Room registry initialization failed",
                    extra={"reason": str(exc)},
                )
                raise

            now = self._clock()
            states: Dict[str, RoomSensorState] = {}
            infos: Dict[str, RoomInfo] = {}
            for room in rooms:
                if room.room_id in states:
                    logger.warning(
                        "Ignoring duplicate room entry",
                        extra={"room_id": room.room_id},
                    )
                    continue
                states[room.room_id] = new_room_state(
                    room.room_id, room.category, self.profile, now
                )
                infos[room.room_id] = room

            self._states = states
            self._rooms = infos
            self._initialized = True
            logger.info(
                "Initialized %s room states",
                self.profile.name,
                extra={"room_count": len(states)},
            )

    def reset(self) -> None:
        with self._lock:
            self._states = {}
            self._rooms = {}
            self._initialized = False

    def get(self, room_id: str) -> Optional[RoomSensorState]:
        return self._states.get(room_id)

    def room_info(self, room_id: str) -> Optional[RoomInfo]:
        return self._rooms.get(room_id)

    def room_ids(self) -> list[str]:
        return list(self._states)

    def items(self) -> list[Tuple[str, RoomSensorState]]:
        return list(self._states.items())

    def __contains__(self, room_id: object) -> bool:
        return room_id in self._states

    def __len__(self) -> int:
        return len(self._states)

    def __iter__(self) -> Iterator[str]:
        return iter(self.room_ids())
