"""Domain errors raised by the reservation core."""

from enum import Enum


class ErrorCode(Enum):
    """Domain error codes."""

    INVALID_RANGE = "INVALID_RANGE"
    NOT_FOUND = "NOT_FOUND"
    ROOM_INACTIVE = "ROOM_INACTIVE"
    CONFLICT = "CONFLICT"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    PERSISTENCE = "PERSISTENCE"


class DomainError(Exception):
    """Base domain error with code and user-safe message."""

    code = ErrorCode.PERSISTENCE

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"


class InvalidRangeError(DomainError):
    """Raised when a time range does not end strictly after it starts."""

    code = ErrorCode.INVALID_RANGE

    def __init__(self, message: str = "end_time must be after start_time") -> None:
        super().__init__(message)


class NotFoundError(DomainError):
    """Raised when a referenced client, room or booking does not exist."""

    code = ErrorCode.NOT_FOUND

    def __init__(self, entity: str, entity_id) -> None:
        super().__init__(f"{entity} not found")
        self.entity = entity
        self.entity_id = entity_id


class RoomInactiveError(NotFoundError):
    """Raised when a booking targets a room that has been deactivated."""

    code = ErrorCode.ROOM_INACTIVE

    def __init__(self, room_id) -> None:
        super().__init__("Room", room_id)
        self.message = "Room is not active"


class ConflictError(DomainError):
    """Raised when a write would collide with existing state."""

    code = ErrorCode.CONFLICT


class InvalidTransitionError(DomainError):
    """Raised on a booking status change outside the state machine."""

    code = ErrorCode.INVALID_TRANSITION

    def __init__(self, current, target) -> None:
        super().__init__(f"Cannot change status from {current.value} to {target.value}")
        self.current = current
        self.target = target


class PersistenceError(DomainError):
    """Raised when the storage layer fails; never retried by the core."""

    code = ErrorCode.PERSISTENCE

    def __init__(self, message: str = "Storage failure") -> None:
        super().__init__(message)
