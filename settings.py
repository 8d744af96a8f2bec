from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_UPDATE_INTERVAL_ENV = "SENSOR_UPDATE_INTERVAL_SECONDS"
_BATCH_MODE_ENV = "SENSOR_BATCH_MODE"
_BATCH_SIZE_ENV = "SENSOR_BATCH_SIZE"
_PERSISTENT_ENABLED_ENV = "ENABLE_PERSISTENT_SENSORS"
_ROOM_DIRECTORY_ENV = "ROOM_DIRECTORY_PATH"
_READINGS_PATH_ENV = "SENSOR_DATA_PERSISTENCE_PATH"
_PERSIST_WORKERS_ENV = "SENSOR_PERSIST_WORKERS"
_LOG_LEVEL_ENV = "LOG_LEVEL"

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    update_interval: float
    batch_mode: bool
    batch_size: int
    persistent_enabled: bool
    room_directory_path: Optional[str]
    readings_persistence_path: Optional[str]
    persist_workers: int
    log_level: str


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip().lower()
    if candidate in _TRUTHY:
        return True
    if candidate in _FALSY:
        return False
    return default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        update_interval=_read_positive_float(_UPDATE_INTERVAL_ENV, 30.0),
        batch_mode=_read_bool(_BATCH_MODE_ENV, False),
        batch_size=_read_positive_int(_BATCH_SIZE_ENV, 50),
        persistent_enabled=_read_bool(_PERSISTENT_ENABLED_ENV, False),
        room_directory_path=_read_optional_env(_ROOM_DIRECTORY_ENV, "./data/rooms.json"),
        readings_persistence_path=_read_optional_env(
            _READINGS_PATH_ENV, "./tmp/sensor_data.jsonl"
        ),
        persist_workers=_read_positive_int(_PERSIST_WORKERS_ENV, 4),
        log_level=_read_log_level("INFO"),
    )
