"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional


@dataclass(slots=True)
class RoomSensorState:
    """Mutable per-room simulation state owned by a registry."""

    room_id: str
    base_temperature: float
    base_humidity: float
    base_ppm: float
    last_update: datetime
    temperature_trend: float = 0.0
    humidity_trend: float = 0.0
    ppm_trend: float = 0.0


@dataclass(frozen=True, slots=True)
class SensorReading:
    """A single synthesized temperature / humidity / CO2 measurement."""

    temperature: float
    humidity: float
    ppm: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class RoomInfo:
    """Snapshot of a room directory entry."""

    room_id: str
    category: str
    building: Optional[str] = None
    floor: Optional[str] = None
    department: Optional[str] = None


@dataclass(frozen=True, slots=True)
class StoredReading:
    """A reading appended to the reading table."""

    id: int
    room_id: str
    temperature: float
    humidity: float
    ppm: int
    timestamp: datetime


@dataclass(frozen=True, slots=True)
class RoomReading:
    """A room id paired with its current reading, if the room is known."""

    room_id: str
    reading: Optional[SensorReading]
    room: Optional[RoomInfo] = None
