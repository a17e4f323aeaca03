"""Domain records for sessions, tasks, and completed cycles."""

from pomodoro_service.domain.models import (
    PomodoroCycle,
    Session,
    SessionResult,
    SessionState,
    Task,
    TaskStatus,
    TaskSyncOutcome,
)

__all__ = [
    "PomodoroCycle",
    "Session",
    "SessionResult",
    "SessionState",
    "Task",
    "TaskStatus",
    "TaskSyncOutcome",
]
