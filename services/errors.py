"""Error taxonomy shared by the telemetry services and the HTTP layer."""

from __future__ import annotations


class RoomNotFoundError(KeyError):
    """Referenced room id is not in the registry."""

    def __init__(self, room_id: str) -> None:
        super().__init__(room_id)
        self.room_id = room_id

    def __str__(self) -> str:
        return f"Room {self.room_id!r} not found."


class DirectoryUnavailableError(RuntimeError):
    """The room directory could not be read."""


class PersistenceError(RuntimeError):
    """A reading could not be written to or read from the reading table."""


class InvalidParameterError(ValueError):
    """A caller-supplied count, limit or retention window is out of bounds."""


def require_range(name: str, value: int, minimum: int, maximum: int | None = None) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidParameterError(f"{name} must be an integer.")
    if value < minimum or (maximum is not None and value > maximum):
        if maximum is None:
            raise InvalidParameterError(f"{name} must be at least {minimum}.")
        raise InvalidParameterError(f"{name} must be between {minimum} and {maximum}.")
    return value
