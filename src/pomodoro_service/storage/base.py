"""Storage interfaces consumed by the session engine and task/cycle services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from pomodoro_service.domain.models import PomodoroCycle, Session, Task, TaskStatus


class SessionStorage(Protocol):
    def migrate(self) -> None: ...

    def create_session(self, session: Session) -> Session: ...

    def get_session(self, session_id: str) -> Session | None: ...

    def replace_session(self, session: Session) -> Session:
        """Replace the stored record if its version still matches `session.version`.

        Raises SessionNotFound for an unknown id and SessionConflict for a stale version.
        The returned record carries the incremented version.
        """
        ...


class TaskStorage(Protocol):
    def migrate(self) -> None: ...

    def create_task(self, task: Task) -> Task: ...

    def get_task(self, task_id: str) -> Task | None: ...

    def list_tasks(self, user_id: str) -> list[Task]: ...

    def add_focus_minutes(self, task_id: str, minutes: int, *, at: datetime) -> None: ...

    def increment_pomodoro_count(self, task_id: str, *, at: datetime) -> None: ...

    def set_status(self, task_id: str, status: TaskStatus, *, at: datetime) -> Task:
        """Point update; `at` becomes updated_at and, for completed, completed_at."""
        ...


class CycleStorage(Protocol):
    def migrate(self) -> None: ...

    def save_cycle(self, cycle: PomodoroCycle) -> PomodoroCycle: ...

    def list_cycles_for_task(self, task_id: str) -> list[PomodoroCycle]: ...


@dataclass
class StorageBundle:
    """The three repositories a running app needs, usually from one backend."""

    sessions: SessionStorage
    tasks: TaskStorage
    cycles: CycleStorage

    def migrate(self) -> None:
        self.sessions.migrate()
        self.tasks.migrate()
        self.cycles.migrate()
