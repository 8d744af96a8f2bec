from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import typer

from cli.client import ApiClient
from cli.config import CLIConfig, load_config
from cli.render import (
    render_database_stats,
    render_ephemeral_status,
    render_readings,
    render_room_statistics,
    render_simulation_status,
    render_statistics,
)


@dataclass
class CLIState:
    config: CLIConfig
    client: ApiClient


app = typer.Typer(
    help="Utilities for interacting with the room sensor telemetry service.",
    context_settings={"help_option_names": ["-h", "--help"]},
)


def _get_state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise typer.Exit(code=1, message="CLI state is uninitialized.")
    return state


@app.callback()
def main(
    ctx: typer.Context,
    base_url: Optional[str] = typer.Option(
        None,
        "--base-url",
        "-b",
        help="Service base URL (defaults to API_BASE_URL env or http://localhost:8000).",
    ),
    timeout: Optional[float] = typer.Option(
        None,
        "--timeout",
        help="Seconds to wait for each HTTP request.",
    ),
) -> None:
    """Entry point for the CLI."""
    config = load_config(base_url=base_url, timeout=timeout)
    client = ApiClient(config)
    ctx.obj = CLIState(config=config, client=client)
    ctx.call_on_close(client.close)


@app.command("status")
def status_command(ctx: typer.Context) -> None:
    """Show the persistent simulation and ephemeral service status."""
    state = _get_state(ctx)
    render_simulation_status(state.client.simulation_status())
    typer.echo()
    render_ephemeral_status(state.client.ephemeral_status())


@app.command("start")
def start_command(ctx: typer.Context) -> None:
    """Start the persistent simulation."""
    state = _get_state(ctx)
    payload = state.client.start_simulation()
    typer.secho(payload.get("message", ""), fg=typer.colors.GREEN)
    render_simulation_status(payload.get("status") or {})


@app.command("stop")
def stop_command(ctx: typer.Context) -> None:
    """Stop the persistent simulation."""
    state = _get_state(ctx)
    payload = state.client.stop_simulation()
    typer.secho(payload.get("message", ""), fg=typer.colors.YELLOW)
    render_simulation_status(payload.get("status") or {})


@app.command("stats")
def stats_command(
    ctx: typer.Context,
    ephemeral: bool = typer.Option(
        False,
        "--ephemeral/--stored",
        help="Summarize live ephemeral readings instead of stored readings.",
    ),
) -> None:
    """Show reading statistics."""
    state = _get_state(ctx)
    if ephemeral:
        render_statistics(state.client.ephemeral_statistics())
    else:
        render_room_statistics(state.client.room_statistics())


@app.command("room")
def room_command(
    ctx: typer.Context,
    room_id: str = typer.Argument(..., help="Room identifier."),
    history: Optional[int] = typer.Option(
        None,
        "--history",
        min=1,
        max=100,
        help="Show this many synthesized readings instead of a single one.",
    ),
) -> None:
    """Show a live reading (or synthesized history) for a room."""
    state = _get_state(ctx)
    if history is None:
        readings = [state.client.room_reading(room_id)]
    else:
        readings = state.client.room_history(room_id, history)
    render_readings(room_id, readings)


@app.command("cleanup")
def cleanup_command(
    ctx: typer.Context,
    days: int = typer.Option(7, "--days", min=1, help="Days of readings to keep."),
) -> None:
    """Delete stored readings older than the retention window."""
    state = _get_state(ctx)
    payload = state.client.cleanup(days)
    typer.secho(payload.get("message", ""), fg=typer.colors.GREEN)


@app.command("db-stats")
def db_stats_command(ctx: typer.Context) -> None:
    """Show stored reading counts and ingestion rate."""
    state = _get_state(ctx)
    render_database_stats(state.client.database_stats())
