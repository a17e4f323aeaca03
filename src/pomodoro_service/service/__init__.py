"""Business operations on sessions, tasks, and cycles."""

from pomodoro_service.service.cycles import CycleService
from pomodoro_service.service.sessions import SessionLifecycleEngine, allowed_operations, utc_now
from pomodoro_service.service.tasks import TaskService

__all__ = [
    "CycleService",
    "SessionLifecycleEngine",
    "TaskService",
    "allowed_operations",
    "utc_now",
]
