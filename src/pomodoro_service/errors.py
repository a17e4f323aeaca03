"""Error taxonomy shared by storage, services, and the HTTP layer.

Not-found, invalid-transition, and conflict errors are expected outcomes the
caller can act on. StorageError covers I/O failures and timeouts and maps to a
server-side response.
"""

from __future__ import annotations


class PomodoroServiceError(Exception):
    """Base class for all service errors."""


class NotFoundError(PomodoroServiceError):
    """A referenced record does not exist."""

    entity = "record"

    def __init__(self, record_id: str) -> None:
        self.record_id = record_id
        super().__init__(f"{self.entity.capitalize()} {record_id} not found")


class SessionNotFound(NotFoundError):
    entity = "session"


class TaskNotFound(NotFoundError):
    entity = "task"


class InvalidStateTransition(PomodoroServiceError):
    """The requested operation is not permitted from the session's current state."""

    def __init__(self, operation: str, current_state: str) -> None:
        self.operation = operation
        self.current_state = current_state
        super().__init__(f"Cannot {operation} a session in state {current_state}")


class ConflictError(PomodoroServiceError):
    """A write was rejected because the stored record changed since it was read."""


class SessionConflict(ConflictError):
    def __init__(self, session_id: str, expected_version: int) -> None:
        self.session_id = session_id
        self.expected_version = expected_version
        super().__init__(
            f"Session {session_id} was modified concurrently (expected version {expected_version})"
        )


class StorageError(PomodoroServiceError):
    """Persistence call failed (driver error, timeout, lost connection)."""
