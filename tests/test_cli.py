from __future__ import annotations

from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from cli.app import app


class StubClient:
    def __init__(self, config) -> None:
        self.config = config
        self.status_payload: Dict[str, Any] = {
            "running": True,
            "room_count": 8,
            "interval": 30.0,
            "batch_mode": False,
            "batch_size": 50,
            "iterations": 3,
            "last_iteration": {
                "started_at": "2024-01-01T00:00:00Z",
                "batch_mode": False,
                "attempted": 8,
                "persisted": 8,
                "failed": 0,
            },
        }
        self.reading: Dict[str, Any] = {
            "temperature": 21.5,
            "humidity": 45.0,
            "ppm": 640,
            "timestamp": "2024-01-01T00:00:00Z",
        }
        self.history_calls: List[tuple[str, int]] = []
        self.cleanup_days: List[int] = []
        self.room_aggregates: List[Dict[str, Any]] = []
        self.closed = False

    def simulation_status(self) -> Dict[str, Any]:
        return self.status_payload

    def start_simulation(self) -> Dict[str, Any]:
        return {"message": "Sensor simulation started.", "status": self.status_payload}

    def stop_simulation(self) -> Dict[str, Any]:
        stopped = dict(self.status_payload, running=False)
        return {"message": "Sensor simulation stopped.", "status": stopped}

    def ephemeral_status(self) -> Dict[str, Any]:
        return {"initialized": False, "room_count": 0}

    def ephemeral_statistics(self) -> Dict[str, Any]:
        return {
            "total_rooms": 2,
            "average_temperature": 21.0,
            "average_humidity": 44.0,
            "average_ppm": 600.0,
            "temperature_range": {"min": 20.0, "max": 22.0},
            "humidity_range": {"min": 40.0, "max": 48.0},
            "ppm_range": {"min": 500, "max": 700},
        }

    def room_statistics(self) -> List[Dict[str, Any]]:
        return self.room_aggregates

    def room_reading(self, room_id: str) -> Dict[str, Any]:
        return self.reading

    def room_history(self, room_id: str, count: int) -> List[Dict[str, Any]]:
        self.history_calls.append((room_id, count))
        return [self.reading] * count

    def cleanup(self, days: int) -> Dict[str, Any]:
        self.cleanup_days.append(days)
        return {"message": "Cleanup finished: deleted 4 old readings.", "deleted_count": 4}

    def database_stats(self) -> Dict[str, Any]:
        return {
            "total_records": 120,
            "oldest_record": "2024-01-01T00:00:00Z",
            "newest_record": "2024-01-01T01:00:00Z",
            "estimated_records_per_hour": 960.0,
        }

    def close(self) -> None:
        self.closed = True


@pytest.fixture()
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture()
def stub(monkeypatch) -> StubClient:
    client = StubClient(config=None)

    def factory(config):
        client.config = config
        return client

    monkeypatch.setattr("cli.app.ApiClient", factory)
    return client


def test_status_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["status"])

    assert result.exit_code == 0
    assert "Persistent Simulation" in result.stdout
    assert "last_iteration: 8/8 persisted" in result.stdout
    assert "Ephemeral Sensors" in result.stdout
    assert stub.closed is True


def test_base_url_option_reaches_client(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["--base-url", "http://sensors:9000/", "status"])

    assert result.exit_code == 0
    assert stub.config.base_url == "http://sensors:9000"


def test_start_and_stop_commands(runner: CliRunner, stub: StubClient) -> None:
    started = runner.invoke(app, ["start"])
    stopped = runner.invoke(app, ["stop"])

    assert started.exit_code == 0
    assert "Sensor simulation started." in started.stdout
    assert stopped.exit_code == 0
    assert "running: False" in stopped.stdout


def test_stats_defaults_to_stored_readings(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["stats"])

    assert result.exit_code == 0
    assert "No stored readings." in result.stdout

    stub.room_aggregates = [
        {
            "room_id": "R1",
            "count": 3,
            "temperature": {"avg": 21.0},
            "humidity": {"avg": 40.0},
            "ppm": {"avg": 500.0},
        }
    ]
    result = runner.invoke(app, ["stats"])
    assert "R1: count=3" in result.stdout


def test_stats_ephemeral(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["stats", "--ephemeral"])

    assert result.exit_code == 0
    assert "Current Readings" in result.stdout
    assert "temperature_range: 20.0 .. 22.0" in result.stdout


def test_room_command_single_reading(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["room", "R1"])

    assert result.exit_code == 0
    assert "Readings for R1" in result.stdout
    assert "21.5 C" in result.stdout
    assert not stub.history_calls


def test_room_command_with_history(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["room", "R1", "--history", "3"])

    assert result.exit_code == 0
    assert stub.history_calls == [("R1", 3)]
    assert result.stdout.count("640 ppm") == 3


def test_room_command_rejects_out_of_range_history(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["room", "R1", "--history", "0"])

    assert result.exit_code != 0
    assert not stub.history_calls


def test_cleanup_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["cleanup", "--days", "3"])

    assert result.exit_code == 0
    assert stub.cleanup_days == [3]
    assert "deleted 4 old readings" in result.stdout
    assert stub.closed is True


def test_db_stats_command(runner: CliRunner, stub: StubClient) -> None:
    result = runner.invoke(app, ["db-stats"])

    assert result.exit_code == 0
    assert "Reading Storage" in result.stdout
    assert "total_records: 120" in result.stdout
    assert "estimated_records_per_hour: 960.0" in result.stdout
