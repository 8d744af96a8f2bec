"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class _FromDomain(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class Reading(_FromDomain):
    """A synthesized measurement."""

    temperature: float = Field(..., description="Degrees Celsius, one decimal.")
    humidity: float = Field(..., description="Relative humidity percent, one decimal.")
    ppm: int = Field(..., description="CO2 concentration in parts per million.")
    timestamp: datetime


class Room(_FromDomain):
    room_id: str
    category: str
    building: Optional[str] = None
    floor: Optional[str] = None
    department: Optional[str] = None


class RoomReadingResponse(_FromDomain):
    room_id: str
    reading: Optional[Reading] = None


class FilteredReadingResponse(_FromDomain):
    room_id: str
    reading: Reading
    room: Room


class RoomWithReading(BaseModel):
    """Room details flattened together with its current reading."""

    room_id: str
    category: str
    building: Optional[str] = None
    floor: Optional[str] = None
    department: Optional[str] = None
    temperature: float
    humidity: float
    ppm: int
    timestamp: datetime


class MetricRange(_FromDomain):
    min: float = 0.0
    max: float = 0.0


class MetricSummary(_FromDomain):
    avg: float = 0.0
    min: float = 0.0
    max: float = 0.0


class ReadingStatistics(_FromDomain):
    total_rooms: int = Field(..., ge=0)
    average_temperature: float
    average_humidity: float
    average_ppm: float
    temperature_range: MetricRange
    humidity_range: MetricRange
    ppm_range: MetricRange


class EphemeralStatus(_FromDomain):
    initialized: bool
    room_count: int = Field(..., ge=0)


class IterationSummary(_FromDomain):
    started_at: datetime
    batch_mode: bool
    attempted: int = Field(..., ge=0)
    persisted: int = Field(..., ge=0)
    failed: int = Field(..., ge=0)


class SimulationStatus(_FromDomain):
    running: bool
    room_count: int = Field(..., ge=0)
    interval: float = Field(..., description="Seconds between iterations.")
    batch_mode: bool
    batch_size: int
    iterations: int = Field(..., ge=0)
    last_iteration: Optional[IterationSummary] = None


class SimulationControlResponse(BaseModel):
    message: str
    status: SimulationStatus


class StoredReading(_FromDomain):
    id: int
    room_id: str
    temperature: float
    humidity: float
    ppm: int
    timestamp: datetime


class RoomHistoryEntry(_FromDomain):
    reading: StoredReading
    room: Optional[Room] = None


class RoomLatest(_FromDomain):
    room_id: str
    latest: Optional[StoredReading] = None
    count: int = Field(..., ge=0)


class RoomAggregate(_FromDomain):
    room_id: str
    count: int = Field(..., ge=0)
    temperature: MetricSummary
    humidity: MetricSummary
    ppm: MetricSummary


class DatabaseStats(_FromDomain):
    total_records: int = Field(..., ge=0)
    oldest_record: Optional[datetime] = None
    newest_record: Optional[datetime] = None
    estimated_records_per_hour: float


class CleanupRequest(BaseModel):
    days: int = Field(default=7, ge=1, description="Days of readings to keep.")


class CleanupResponse(BaseModel):
    message: str
    deleted_count: int = Field(..., ge=0)
