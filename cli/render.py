from __future__ import annotations

from typing import Any, Dict, Iterable, List

import typer


def echo_heading(text: str) -> None:
    typer.secho(text, bold=True)


def echo_key_values(pairs: Iterable[tuple[str, Any]]) -> None:
    for key, value in pairs:
        typer.echo(f"{key}: {value}")


def _range(payload: Dict[str, Any], key: str) -> str:
    bounds = payload.get(key) or {}
    return f"{bounds.get('min')} .. {bounds.get('max')}"


def render_simulation_status(payload: Dict[str, Any]) -> None:
    echo_heading("Persistent Simulation")
    echo_key_values(
        [
            ("running", payload.get("running")),
            ("room_count", payload.get("room_count")),
            ("interval", payload.get("interval")),
            ("batch_mode", payload.get("batch_mode")),
            ("batch_size", payload.get("batch_size")),
            ("iterations", payload.get("iterations")),
        ]
    )
    last = payload.get("last_iteration")
    if last:
        typer.echo(
            f"last_iteration: {last.get('persisted')}/{last.get('attempted')} persisted"
            f" at {last.get('started_at')}"
        )


def render_ephemeral_status(payload: Dict[str, Any]) -> None:
    echo_heading("Ephemeral Sensors")
    echo_key_values(
        [
            ("initialized", payload.get("initialized")),
            ("room_count", payload.get("room_count")),
        ]
    )


def render_statistics(payload: Dict[str, Any]) -> None:
    echo_heading("Current Readings")
    echo_key_values(
        [
            ("total_rooms", payload.get("total_rooms")),
            ("average_temperature", payload.get("average_temperature")),
            ("average_humidity", payload.get("average_humidity")),
            ("average_ppm", payload.get("average_ppm")),
            ("temperature_range", _range(payload, "temperature_range")),
            ("humidity_range", _range(payload, "humidity_range")),
            ("ppm_range", _range(payload, "ppm_range")),
        ]
    )


def render_room_statistics(aggregates: List[Dict[str, Any]]) -> None:
    echo_heading("Stored Readings per Room")
    if not aggregates:
        typer.echo("No stored readings.")
        return
    for aggregate in aggregates:
        temperature = aggregate.get("temperature") or {}
        humidity = aggregate.get("humidity") or {}
        ppm = aggregate.get("ppm") or {}
        typer.echo(
            f"  - {aggregate.get('room_id')}: count={aggregate.get('count')}"
            f" temp_avg={temperature.get('avg')} hum_avg={humidity.get('avg')}"
            f" ppm_avg={ppm.get('avg')}"
        )


def render_readings(room_id: str, readings: List[Dict[str, Any]]) -> None:
    echo_heading(f"Readings for {room_id}")
    if not readings:
        typer.echo("No readings available.")
        return
    for reading in readings:
        typer.echo(
            f"  - {reading.get('timestamp')}: {reading.get('temperature')} C,"
            f" {reading.get('humidity')} %, {reading.get('ppm')} ppm"
        )


def render_database_stats(payload: Dict[str, Any]) -> None:
    echo_heading("Reading Storage")
    echo_key_values(
        [
            ("total_records", payload.get("total_records")),
            ("oldest_record", payload.get("oldest_record")),
            ("newest_record", payload.get("newest_record")),
            ("estimated_records_per_hour", payload.get("estimated_records_per_hour")),
        ]
    )
