from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import typer

from cli.config import CLIConfig

_EPHEMERAL = "/api/ephemeral-sensors"
_SENSORS = "/api/sensors"


class ApiClient:
    """Minimal HTTP client for the sensor telemetry service."""

    def __init__(self, config: CLIConfig) -> None:
        self._config = config
        self._client = httpx.Client(base_url=config.base_url, timeout=config.timeout)

    def close(self) -> None:
        self._client.close()

    def simulation_status(self) -> Dict[str, Any]:
        return self._request("GET", f"{_SENSORS}/status")

    def start_simulation(self) -> Dict[str, Any]:
        return self._request("POST", f"{_SENSORS}/start")

    def stop_simulation(self) -> Dict[str, Any]:
        return self._request("POST", f"{_SENSORS}/stop")

    def ephemeral_status(self) -> Dict[str, Any]:
        return self._request("GET", f"{_EPHEMERAL}/status")

    def ephemeral_statistics(self) -> Dict[str, Any]:
        return self._request("GET", f"{_EPHEMERAL}/statistics")

    def room_statistics(self) -> List[Dict[str, Any]]:
        return self._request("GET", f"{_SENSORS}/statistics")

    def room_reading(self, room_id: str) -> Dict[str, Any]:
        return self._request("GET", f"{_EPHEMERAL}/room/{room_id}", not_found=f"Room {room_id}")

    def room_history(self, room_id: str, count: int) -> List[Dict[str, Any]]:
        return self._request(
            "GET",
            f"{_EPHEMERAL}/room/{room_id}/history",
            params={"count": count},
        )

    def cleanup(self, days: int) -> Dict[str, Any]:
        return self._request("POST", f"{_SENSORS}/cleanup", json={"days": days})

    def database_stats(self) -> Dict[str, Any]:
        return self._request("GET", f"{_SENSORS}/database-stats")

    def _request(
        self,
        method: str,
        path: str,
        not_found: Optional[str] = None,
        **kwargs: Any,
    ) -> Any:
        try:
            response = self._client.request(method, path, **kwargs)
            if response.status_code == 404 and not_found:
                raise typer.BadParameter(f"{not_found} was not found.")
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            self._handle_http_error(exc)
        except httpx.TransportError as exc:
            typer.secho(
                f"Could not reach {self._config.base_url}: {exc}",
                fg=typer.colors.RED,
                err=True,
            )
            raise typer.Exit(code=1)
        return response.json()

    @staticmethod
    def _handle_http_error(exc: httpx.HTTPStatusError) -> None:
        detail: str | None = None
        try:
            data = exc.response.json()
            detail = data.get("detail")
        except Exception:  # noqa: BLE001 - best effort parsing
            detail = exc.response.text.strip()
        message = (
            f"Request failed with status {exc.response.status_code}: {detail or 'no detail provided.'}"
        )
        typer.secho(message, fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
