import json
import random
from datetime import datetime, timezone
from typing import Iterator, List, Optional

import pytest
from fastapi.testclient import TestClient

from app.main import create_app
from datastore.reading_table import MockReadingTable, build_default_table
from models.records import RoomInfo
from services.ephemeral import (
    EphemeralSensorService,
    build_default_ephemeral_service,
    build_ephemeral_service,
)
from services.errors import DirectoryUnavailableError
from services.simulation import (
    SensorSimulationService,
    build_default_simulation_service,
    build_simulation_service,
)
from settings import get_settings
from storage.room_directory import RoomDirectory, build_default_directory

NOW = datetime(2024, 3, 1, 14, 0, tzinfo=timezone.utc)


def _clock() -> datetime:
    return NOW


def _rooms() -> List[RoomInfo]:
    return [
        RoomInfo(room_id="cqa-or-1", category="Quiròfan", building="CQA", floor="P01"),
        RoomInfo(room_id="cqa-or-2", category="Quiròfan", building="CQA", floor="P01"),
        RoomInfo(room_id="cqa-hab-1", category="Habitació", building="CQA", floor="P02"),
        RoomInfo(room_id="cqa-mag-1", category="Magatzem", building="CQA", floor="P00"),
        RoomInfo(room_id="cqa-wc-1", category="Bany", building="CQA", floor="P00"),
        RoomInfo(room_id="hg-of-1", category="Oficina", building="HG", floor="P01"),
        RoomInfo(room_id="hg-kit-1", category="Cuina", building="HG", floor="P00"),
        RoomInfo(room_id="hg-wait-1", category="Sala d'espera", building="HG", floor="P00"),
    ]


class OfflineDirectory(RoomDirectory):
    def list_rooms(
        self, building: Optional[str] = None, floor: Optional[str] = None
    ) -> list[RoomInfo]:
        raise DirectoryUnavailableError("directory offline")


class Services:
    def __init__(self, directory: RoomDirectory) -> None:
        self.ephemeral = build_ephemeral_service(directory, rng=random.Random(3), clock=_clock)
        self.simulation = build_simulation_service(
            directory,
            MockReadingTable(),
            update_interval=3600.0,
            rng=random.Random(5),
            clock=_clock,
        )

    def install(self, monkeypatch) -> None:
        def ephemeral_factory() -> EphemeralSensorService:
            return self.ephemeral

        def simulation_factory() -> SensorSimulationService:
            return self.simulation

        ephemeral_factory.cache_clear = lambda: None  # type: ignore[attr-defined]
        simulation_factory.cache_clear = lambda: None  # type: ignore[attr-defined]

        monkeypatch.setattr("app.api.build_default_ephemeral_service", ephemeral_factory)
        monkeypatch.setattr("app.api.build_default_simulation_service", simulation_factory)
        monkeypatch.setattr("app.main.build_default_ephemeral_service", ephemeral_factory)
        monkeypatch.setattr("app.main.build_default_simulation_service", simulation_factory)


@pytest.fixture
def services(monkeypatch) -> Iterator[Services]:
    monkeypatch.delenv("ENABLE_PERSISTENT_SENSORS", raising=False)
    get_settings.cache_clear()
    built = Services(RoomDirectory(rooms=_rooms()))
    built.install(monkeypatch)
    yield built
    built.simulation.shutdown()
    get_settings.cache_clear()


@pytest.fixture
def api_client(services: Services) -> Iterator[TestClient]:
    with TestClient(create_app()) as client:
        yield client


def test_health_endpoints(api_client: TestClient) -> None:
    assert api_client.get("/health").json() == {"status": "ok"}
    assert api_client.get("/").json()["status"] == "ok"


def test_ephemeral_room_reading(api_client: TestClient) -> None:
    response = api_client.get("/api/ephemeral-sensors/room/cqa-or-1")

    assert response.status_code == 200
    payload = response.json()
    assert set(payload) == {"temperature", "humidity", "ppm", "timestamp"}
    assert 15.0 <= payload["temperature"] <= 35.0
    assert 25.0 <= payload["humidity"] <= 85.0
    assert 200 <= payload["ppm"] <= 1200


def test_ephemeral_unknown_room_returns_not_found(api_client: TestClient) -> None:
    response = api_client.get("/api/ephemeral-sensors/room/nowhere")

    assert response.status_code == 404
    assert "nowhere" in response.json()["detail"]


def test_ephemeral_history_length_and_bounds(api_client: TestClient) -> None:
    response = api_client.get("/api/ephemeral-sensors/room/hg-of-1/history", params={"count": 5})

    assert response.status_code == 200
    timestamps = [item["timestamp"] for item in response.json()]
    assert len(timestamps) == 5
    assert timestamps == sorted(timestamps)

    assert api_client.get(
        "/api/ephemeral-sensors/room/hg-of-1/history", params={"count": 0}
    ).status_code == 422
    assert api_client.get(
        "/api/ephemeral-sensors/room/hg-of-1/history", params={"count": 101}
    ).status_code == 422


def test_ephemeral_multiple_rooms_keeps_missing_ids(api_client: TestClient) -> None:
    response = api_client.get(
        "/api/ephemeral-sensors/rooms", params={"room_ids": "cqa-or-1, missing"}
    )

    assert response.status_code == 200
    payload = response.json()
    assert [entry["room_id"] for entry in payload] == ["cqa-or-1", "missing"]
    assert payload[0]["reading"] is not None
    assert payload[1]["reading"] is None


def test_ephemeral_multiple_rooms_rejects_empty_list(api_client: TestClient) -> None:
    response = api_client.get("/api/ephemeral-sensors/rooms", params={"room_ids": " , "})

    assert response.status_code == 400


def test_ephemeral_multiple_rooms_rejects_too_many_ids(api_client: TestClient) -> None:
    ids = ",".join(f"room-{index}" for index in range(101))

    response = api_client.get("/api/ephemeral-sensors/rooms", params={"room_ids": ids})

    assert response.status_code == 400


def test_ephemeral_all_and_filtered(api_client: TestClient) -> None:
    everything = api_client.get("/api/ephemeral-sensors/all").json()
    assert len(everything) == 8

    filtered = api_client.get("/api/ephemeral-sensors/filtered", params={"building": "CQA"}).json()
    assert len(filtered) == 5
    assert {entry["room"]["building"] for entry in filtered} == {"CQA"}

    by_floor = api_client.get(
        "/api/ephemeral-sensors/filtered", params={"building": "HG", "floor": "P00"}
    ).json()
    assert sorted(entry["room_id"] for entry in by_floor) == ["hg-kit-1", "hg-wait-1"]


def test_ephemeral_rooms_with_info_flattens_payload(api_client: TestClient) -> None:
    response = api_client.get("/api/ephemeral-sensors/rooms-with-info", params={"building": "HG"})

    assert response.status_code == 200
    payload = response.json()
    assert len(payload) == 3
    assert {"room_id", "category", "temperature", "ppm", "timestamp"} <= set(payload[0])


def test_ephemeral_statistics_and_status(api_client: TestClient) -> None:
    stats = api_client.get("/api/ephemeral-sensors/statistics").json()

    assert stats["total_rooms"] == 8
    assert stats["temperature_range"]["min"] <= stats["average_temperature"]
    assert stats["average_temperature"] <= stats["temperature_range"]["max"]

    status = api_client.get("/api/ephemeral-sensors/status").json()
    assert status == {"initialized": True, "room_count": 8}


def test_start_and_stop_messages(api_client: TestClient) -> None:
    first = api_client.post("/api/sensors/start").json()
    second = api_client.post("/api/sensors/start").json()

    assert first["message"] == "Sensor simulation started."
    assert first["status"]["running"] is True
    assert second["message"] == "Sensor simulation already running."

    stopped = api_client.post("/api/sensors/stop").json()
    again = api_client.post("/api/sensors/stop").json()

    assert stopped["message"] == "Sensor simulation stopped."
    assert stopped["status"]["running"] is False
    assert again["message"] == "Sensor simulation was not running."


def test_stored_reading_routes(api_client: TestClient, services: Services) -> None:
    services.simulation.run_iteration()
    services.simulation.run_iteration()

    room = api_client.get("/api/sensors/room/cqa-or-1", params={"limit": 1}).json()
    assert len(room) == 1
    assert room[0]["reading"]["room_id"] == "cqa-or-1"
    assert room[0]["room"]["category"] == "Quiròfan"

    multi = api_client.get(
        "/api/sensors/rooms", params={"room_ids": "cqa-or-1,missing", "limit": 5}
    ).json()
    assert multi[0]["count"] == 2
    assert multi[1] == {"room_id": "missing", "latest": None, "count": 0}

    current = api_client.get("/api/sensors/current-readings", params={"building": "HG"}).json()
    assert sorted(entry["reading"]["room_id"] for entry in current) == [
        "hg-kit-1",
        "hg-of-1",
        "hg-wait-1",
    ]

    stats = api_client.get("/api/sensors/statistics").json()
    assert len(stats) == 8
    assert all(entry["count"] == 2 for entry in stats)

    db_stats = api_client.get("/api/sensors/database-stats").json()
    assert db_stats["total_records"] == 16
    assert db_stats["estimated_records_per_hour"] == 8.0


def test_stored_reading_limits_are_validated(api_client: TestClient) -> None:
    assert api_client.get("/api/sensors/room/cqa-or-1", params={"limit": 0}).status_code == 422
    assert api_client.get("/api/sensors/room/cqa-or-1", params={"limit": 101}).status_code == 422
    assert api_client.get(
        "/api/sensors/rooms", params={"room_ids": "cqa-or-1", "limit": 51}
    ).status_code == 422


def test_cleanup_routes(api_client: TestClient, services: Services) -> None:
    services.simulation.run_iteration()

    with_body = api_client.post("/api/sensors/cleanup", json={"days": 3})
    without_body = api_client.post("/api/sensors/cleanup")
    purge = api_client.delete("/api/sensors/data/cqa-or-1", params={"days": 30})

    assert with_body.status_code == 200
    assert with_body.json()["deleted_count"] == 0
    assert without_body.json()["deleted_count"] == 0
    assert purge.json()["deleted_count"] == 0
    assert "cqa-or-1" in purge.json()["message"]
    assert api_client.post("/api/sensors/cleanup", json={"days": 0}).status_code == 422


def test_directory_failure_maps_to_service_unavailable(monkeypatch) -> None:
    monkeypatch.delenv("ENABLE_PERSISTENT_SENSORS", raising=False)
    get_settings.cache_clear()
    offline = Services(OfflineDirectory())
    offline.install(monkeypatch)

    try:
        with TestClient(create_app()) as client:
            assert client.get("/api/ephemeral-sensors/all").status_code == 503
            assert client.get("/api/ephemeral-sensors/room/x").status_code == 503
            assert client.get("/api/sensors/current-readings").status_code == 503
            status = client.get("/api/ephemeral-sensors/status").json()
            assert status == {"initialized": False, "room_count": 0}
    finally:
        offline.simulation.shutdown()
        get_settings.cache_clear()


def test_lifespan_starts_simulation_and_clears_cache(monkeypatch, tmp_path) -> None:
    rooms_path = tmp_path / "rooms.json"
    rooms_path.write_text(json.dumps([{"id": "R1", "category": "Oficina"}]), encoding="utf-8")
    monkeypatch.setenv("ROOM_DIRECTORY_PATH", str(rooms_path))
    monkeypatch.setenv("SENSOR_DATA_PERSISTENCE_PATH", str(tmp_path / "readings.jsonl"))
    monkeypatch.setenv("SENSOR_UPDATE_INTERVAL_SECONDS", "3600")
    monkeypatch.setenv("ENABLE_PERSISTENT_SENSORS", "true")
    caches = (get_settings, build_default_directory, build_default_table)
    for cache in caches:
        cache.cache_clear()
    build_default_simulation_service.cache_clear()

    try:
        with TestClient(create_app()) as client:
            during = build_default_simulation_service()
            assert during.running is True
            assert client.get("/api/sensors/status").json()["running"] is True

        assert during.running is False
        assert during.executor._shutdown is True
        after = build_default_simulation_service()
        try:
            assert after is not during
        finally:
            after.shutdown()
    finally:
        build_default_simulation_service.cache_clear()
        for cache in caches:
            cache.cache_clear()


def test_rooms_with_sensors_joins_latest_stored_reading(
    api_client: TestClient, services: Services
) -> None:
    assert api_client.get("/api/sensors/rooms-with-sensors").json() == []

    services.simulation.run_iteration()
    response = api_client.get("/api/sensors/rooms-with-sensors", params={"building": "HG"})

    assert response.status_code == 200
    payload = response.json()
    assert [row["room_id"] for row in payload] == ["hg-kit-1", "hg-wait-1", "hg-of-1"]
    assert payload[0]["category"] == "Cuina"
    assert {"temperature", "humidity", "ppm", "timestamp"} <= set(payload[0])

    by_floor = api_client.get(
        "/api/sensors/rooms-with-sensors", params={"building": "CQA", "floor": "P01"}
    ).json()
    assert sorted(row["room_id"] for row in by_floor) == ["cqa-or-1", "cqa-or-2"]


def test_ephemeral_only_app_leaves_reading_table_untouched(monkeypatch, tmp_path) -> None:
    rooms_path = tmp_path / "rooms.json"
    rooms_path.write_text(json.dumps([{"id": "R1", "category": "Oficina"}]), encoding="utf-8")
    readings_dir = tmp_path / "readings"
    monkeypatch.setenv("ROOM_DIRECTORY_PATH", str(rooms_path))
    monkeypatch.setenv("SENSOR_DATA_PERSISTENCE_PATH", str(readings_dir / "sensor_data.jsonl"))
    monkeypatch.setenv("SENSOR_UPDATE_INTERVAL_SECONDS", "3600")
    monkeypatch.delenv("ENABLE_PERSISTENT_SENSORS", raising=False)
    caches = (
        get_settings,
        build_default_directory,
        build_default_table,
        build_default_ephemeral_service,
    )
    for cache in caches:
        cache.cache_clear()
    build_default_simulation_service.cache_clear()

    try:
        with TestClient(create_app()) as client:
            assert client.get("/api/ephemeral-sensors/room/R1").status_code == 200
            assert not readings_dir.exists()

            assert client.post("/api/sensors/start").json()["status"]["running"] is True
            started = build_default_simulation_service()

        assert readings_dir.exists()
        assert started.running is False
        assert started.executor._shutdown is True
    finally:
        build_default_simulation_service.cache_clear()
        for cache in caches:
            cache.cache_clear()
