"""HTTP route definitions for the service."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from app import schemas
from services.ephemeral import EphemeralSensorService, build_default_ephemeral_service
from services.errors import (
    DirectoryUnavailableError,
    InvalidParameterError,
    PersistenceError,
    RoomNotFoundError,
)
from services.simulation import SensorSimulationService, build_default_simulation_service

router = APIRouter()
ephemeral_router = APIRouter(prefix="/api/ephemeral-sensors", tags=["ephemeral-sensors"])
sensors_router = APIRouter(prefix="/api/sensors", tags=["sensors"])


def get_ephemeral_service() -> EphemeralSensorService:
    return build_default_ephemeral_service()


def get_simulation_service(request: Request) -> SensorSimulationService:
    service = getattr(request.app.state, "simulation", None)
    if service is None:
        service = build_default_simulation_service()
        request.app.state.simulation = service
    return service


@contextmanager
def _service_errors() -> Iterator[None]:
    try:
        yield
    except RoomNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidParameterError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DirectoryUnavailableError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Room directory is unavailable.",
        ) from exc
    except PersistenceError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Reading storage is unavailable.",
        ) from exc


def _split_ids(raw: str) -> List[str]:
    ids = [part.strip() for part in raw.split(",") if part.strip()]
    if not ids:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="room_ids must be a comma separated list of room ids.",
        )
    return ids


# Ephemeral readings


@ephemeral_router.get("/status", response_model=schemas.EphemeralStatus)
def ephemeral_status(
    service: EphemeralSensorService = Depends(get_ephemeral_service),
) -> schemas.EphemeralStatus:
    return schemas.EphemeralStatus.model_validate(service.status())


@ephemeral_router.get(
    "/room/{room_id}",
    response_model=schemas.Reading,
    summary="Generate a fresh reading for one room.",
)
def ephemeral_room_reading(
    room_id: str,
    service: EphemeralSensorService = Depends(get_ephemeral_service),
) -> schemas.Reading:
    with _service_errors():
        reading = service.current_reading(room_id)
        if reading is None:
            raise RoomNotFoundError(room_id)
    return schemas.Reading.model_validate(reading)


@ephemeral_router.get(
    "/room/{room_id}/history",
    response_model=List[schemas.Reading],
    summary="Synthesize recent readings for one room, oldest first.",
)
def ephemeral_room_history(
    room_id: str,
    count: int = Query(10, ge=1, le=100),
    service: EphemeralSensorService = Depends(get_ephemeral_service),
) -> List[schemas.Reading]:
    with _service_errors():
        history = service.history(room_id, count)
    return [schemas.Reading.model_validate(reading) for reading in history]


@ephemeral_router.get("/rooms", response_model=List[schemas.RoomReadingResponse])
def ephemeral_multiple_rooms(
    room_ids: str = Query(..., description="Comma separated room ids (at most 100)."),
    service: EphemeralSensorService = Depends(get_ephemeral_service),
) -> List[schemas.RoomReadingResponse]:
    with _service_errors():
        readings = service.current_readings(_split_ids(room_ids))
    return [schemas.RoomReadingResponse.model_validate(entry) for entry in readings]


@ephemeral_router.get("/all", response_model=List[schemas.RoomReadingResponse])
def ephemeral_all_readings(
    service: EphemeralSensorService = Depends(get_ephemeral_service),
) -> List[schemas.RoomReadingResponse]:
    with _service_errors():
        readings = service.all_current_readings()
    return [schemas.RoomReadingResponse.model_validate(entry) for entry in readings]


@ephemeral_router.get("/filtered", response_model=List[schemas.FilteredReadingResponse])
def ephemeral_filtered_readings(
    building: Optional[str] = None,
    floor: Optional[str] = None,
    service: EphemeralSensorService = Depends(get_ephemeral_service),
) -> List[schemas.FilteredReadingResponse]:
    with _service_errors():
        readings = service.filtered_readings(building=building, floor=floor)
    return [schemas.FilteredReadingResponse.model_validate(entry) for entry in readings]


@ephemeral_router.get("/rooms-with-info", response_model=List[schemas.RoomWithReading])
def ephemeral_rooms_with_info(
    building: Optional[str] = None,
    floor: Optional[str] = None,
    service: EphemeralSensorService = Depends(get_ephemeral_service),
) -> List[schemas.RoomWithReading]:
    with _service_errors():
        readings = service.filtered_readings(building=building, floor=floor)
    return [
        schemas.RoomWithReading(
            room_id=entry.room_id,
            category=entry.room.category,
            building=entry.room.building,
            floor=entry.room.floor,
            department=entry.room.department,
            temperature=entry.reading.temperature,
            humidity=entry.reading.humidity,
            ppm=entry.reading.ppm,
            timestamp=entry.reading.timestamp,
        )
        for entry in readings
        if entry.room is not None and entry.reading is not None
    ]


@ephemeral_router.get("/statistics", response_model=schemas.ReadingStatistics)
def ephemeral_statistics(
    service: EphemeralSensorService = Depends(get_ephemeral_service),
) -> schemas.ReadingStatistics:
    with _service_errors():
        stats = service.statistics()
    return schemas.ReadingStatistics.model_validate(stats)


# Persistent simulation


def _simulation_status(service: SensorSimulationService) -> schemas.SimulationStatus:
    return schemas.SimulationStatus.model_validate(service.status())


@sensors_router.get("/status", response_model=schemas.SimulationStatus)
def simulation_status(
    service: SensorSimulationService = Depends(get_simulation_service),
) -> schemas.SimulationStatus:
    return _simulation_status(service)


@sensors_router.post("/start", response_model=schemas.SimulationControlResponse)
def start_simulation(
    service: SensorSimulationService = Depends(get_simulation_service),
) -> schemas.SimulationControlResponse:
    started = service.start()
    message = "Sensor simulation started." if started else "Sensor simulation already running."
    return schemas.SimulationControlResponse(message=message, status=_simulation_status(service))


@sensors_router.post("/stop", response_model=schemas.SimulationControlResponse)
def stop_simulation(
    service: SensorSimulationService = Depends(get_simulation_service),
) -> schemas.SimulationControlResponse:
    stopped = service.stop()
    message = "Sensor simulation stopped." if stopped else "Sensor simulation was not running."
    return schemas.SimulationControlResponse(message=message, status=_simulation_status(service))


@sensors_router.get("/room/{room_id}", response_model=List[schemas.RoomHistoryEntry])
def room_sensor_data(
    room_id: str,
    limit: int = Query(10, ge=1, le=100),
    service: SensorSimulationService = Depends(get_simulation_service),
) -> List[schemas.RoomHistoryEntry]:
    with _service_errors():
        entries = service.latest_readings(room_id, limit)
    return [schemas.RoomHistoryEntry.model_validate(entry) for entry in entries]


@sensors_router.get("/rooms", response_model=List[schemas.RoomLatest])
def multiple_rooms_sensor_data(
    room_ids: str = Query(..., description="Comma separated room ids."),
    limit: int = Query(5, ge=1, le=50),
    service: SensorSimulationService = Depends(get_simulation_service),
) -> List[schemas.RoomLatest]:
    with _service_errors():
        results = service.latest_for_rooms(_split_ids(room_ids), limit)
    return [schemas.RoomLatest.model_validate(entry) for entry in results]


@sensors_router.get("/statistics", response_model=List[schemas.RoomAggregate])
def sensor_statistics(
    service: SensorSimulationService = Depends(get_simulation_service),
) -> List[schemas.RoomAggregate]:
    with _service_errors():
        aggregates = service.statistics_by_room()
    return [schemas.RoomAggregate.model_validate(aggregate) for aggregate in aggregates]


@sensors_router.get("/current-readings", response_model=List[schemas.RoomHistoryEntry])
def current_stored_readings(
    building: Optional[str] = None,
    floor: Optional[str] = None,
    service: SensorSimulationService = Depends(get_simulation_service),
) -> List[schemas.RoomHistoryEntry]:
    with _service_errors():
        entries = service.current_stored_readings(building=building, floor=floor)
    return [schemas.RoomHistoryEntry.model_validate(entry) for entry in entries]


@sensors_router.get("/rooms-with-sensors", response_model=List[schemas.RoomWithReading])
def rooms_with_sensors(
    building: Optional[str] = None,
    floor: Optional[str] = None,
    service: SensorSimulationService = Depends(get_simulation_service),
) -> List[schemas.RoomWithReading]:
    """Rooms that have stored readings, each joined with its latest one."""
    with _service_errors():
        entries = service.current_stored_readings(building=building, floor=floor)
    rows = [
        schemas.RoomWithReading(
            room_id=entry.reading.room_id,
            category=entry.room.category,
            building=entry.room.building,
            floor=entry.room.floor,
            department=entry.room.department,
            temperature=entry.reading.temperature,
            humidity=entry.reading.humidity,
            ppm=entry.reading.ppm,
            timestamp=entry.reading.timestamp,
        )
        for entry in entries
        if entry.room is not None
    ]
    rows.sort(key=lambda row: (row.building or "", row.floor or "", row.category))
    return rows


@sensors_router.delete("/data/{room_id}", response_model=schemas.CleanupResponse)
def delete_room_sensor_data(
    room_id: str,
    days: int = Query(30, ge=1),
    service: SensorSimulationService = Depends(get_simulation_service),
) -> schemas.CleanupResponse:
    with _service_errors():
        deleted = service.purge_room(room_id, days)
    return schemas.CleanupResponse(
        message=f"Deleted {deleted} readings older than {days} days for room {room_id}.",
        deleted_count=deleted,
    )


@sensors_router.post("/cleanup", response_model=schemas.CleanupResponse)
def cleanup_sensor_data(
    request: Optional[schemas.CleanupRequest] = None,
    service: SensorSimulationService = Depends(get_simulation_service),
) -> schemas.CleanupResponse:
    with _service_errors():
        deleted = service.cleanup(request.days if request is not None else 7)
    return schemas.CleanupResponse(
        message=f"Cleanup finished: deleted {deleted} old readings.",
        deleted_count=deleted,
    )


@sensors_router.get("/database-stats", response_model=schemas.DatabaseStats)
def database_stats(
    service: SensorSimulationService = Depends(get_simulation_service),
) -> schemas.DatabaseStats:
    with _service_errors():
        stats = service.database_stats()
    return schemas.DatabaseStats.model_validate(stats)


# Health


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
