"""In-memory storage backend for tests and local runs."""

from __future__ import annotations

import threading
from datetime import datetime
from uuid import uuid4

from pomodoro_service.domain.models import PomodoroCycle, Session, Task, TaskStatus
from pomodoro_service.errors import SessionConflict, SessionNotFound, TaskNotFound
from pomodoro_service.storage.base import StorageBundle


class InMemorySessionStorage:
    """Dict-backed session store. Returns copies so callers never share stored state."""

    def __init__(self) -> None:
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self.writes = 0

    def migrate(self) -> None:
        return None

    def create_session(self, session: Session) -> Session:
        record = session.model_copy(deep=True, update={"session_id": str(uuid4()), "version": 1})
        with self._lock:
            self._sessions[record.session_id] = record
            self.writes += 1
        return record.model_copy(deep=True)

    def get_session(self, session_id: str) -> Session | None:
        with self._lock:
            record = self._sessions.get(session_id)
        return record.model_copy(deep=True) if record else None

    def replace_session(self, session: Session) -> Session:
        with self._lock:
            current = self._sessions.get(session.session_id)
            if current is None:
                raise SessionNotFound(session.session_id)
            if current.version != session.version:
                raise SessionConflict(session.session_id, session.version)
            stored = session.model_copy(deep=True, update={"version": session.version + 1})
            self._sessions[stored.session_id] = stored
            self.writes += 1
        return stored.model_copy(deep=True)


class InMemoryTaskStorage:
    """Dict-backed task store with atomic counter updates."""

    def __init__(self) -> None:
        self._tasks: dict[str, Task] = {}
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def create_task(self, task: Task) -> Task:
        record = task.model_copy(deep=True, update={"task_id": str(uuid4())})
        with self._lock:
            self._tasks[record.task_id] = record
        return record.model_copy(deep=True)

    def get_task(self, task_id: str) -> Task | None:
        with self._lock:
            record = self._tasks.get(task_id)
        return record.model_copy(deep=True) if record else None

    def list_tasks(self, user_id: str) -> list[Task]:
        with self._lock:
            records = [task for task in self._tasks.values() if task.user_id == user_id]
        return [record.model_copy(deep=True) for record in records]

    def add_focus_minutes(self, task_id: str, minutes: int, *, at: datetime) -> None:
        with self._lock:
            current = self._require(task_id)
            current.total_focus_minutes += minutes
            current.updated_at = at

    def increment_pomodoro_count(self, task_id: str, *, at: datetime) -> None:
        with self._lock:
            current = self._require(task_id)
            current.pomodoros_completed += 1
            current.updated_at = at

    def set_status(self, task_id: str, status: TaskStatus, *, at: datetime) -> Task:
        with self._lock:
            current = self._require(task_id)
            current.status = status
            current.completed = status == "completed"
            current.completed_at = at if status == "completed" else None
            current.updated_at = at
            return current.model_copy(deep=True)

    def _require(self, task_id: str) -> Task:
        current = self._tasks.get(task_id)
        if current is None:
            raise TaskNotFound(task_id)
        return current


class InMemoryCycleStorage:
    """Append-only cycle history."""

    def __init__(self) -> None:
        self._cycles: list[PomodoroCycle] = []
        self._lock = threading.Lock()

    def migrate(self) -> None:
        return None

    def save_cycle(self, cycle: PomodoroCycle) -> PomodoroCycle:
        record = cycle.model_copy(deep=True, update={"cycle_id": str(uuid4())})
        with self._lock:
            self._cycles.append(record)
        return record.model_copy(deep=True)

    def list_cycles_for_task(self, task_id: str) -> list[PomodoroCycle]:
        with self._lock:
            records = [cycle for cycle in self._cycles if cycle.task_id == task_id]
        return sorted(
            (record.model_copy(deep=True) for record in records),
            key=lambda cycle: cycle.started_at,
        )


def build_memory_storage() -> StorageBundle:
    return StorageBundle(
        sessions=InMemorySessionStorage(),
        tasks=InMemoryTaskStorage(),
        cycles=InMemoryCycleStorage(),
    )
