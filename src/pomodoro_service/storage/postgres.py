"""PostgreSQL-backed storage with automatic table migration.

Every call opens its own connection bounded by `timeout_s` (connect timeout plus a
server-side statement_timeout). Driver errors surface as StorageError.
"""

from __future__ import annotations

import threading
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from pomodoro_service.domain.models import PomodoroCycle, Session, SessionState, Task, TaskStatus
from pomodoro_service.errors import SessionConflict, SessionNotFound, StorageError, TaskNotFound
from pomodoro_service.storage.base import StorageBundle

_SESSION_STATES = ", ".join(f"'{state.value}'" for state in SessionState)


class PostgresConnector:
    """Opens short-lived psycopg connections with a bounded deadline."""

    def __init__(self, database_url: str, *, timeout_s: float = 5.0) -> None:
        if not database_url:
            raise ValueError("POMODORO_DATABASE_URL is required")
        self.database_url = database_url
        self.timeout_s = timeout_s
        self._lock = threading.Lock()
        self._psycopg, self._dict_row = self._load_psycopg()

    @contextmanager
    def connection(self) -> Iterator[Any]:
        try:
            with self._lock, self._connect() as conn:
                yield conn
        except self._psycopg.Error as exc:
            raise StorageError(f"PostgreSQL call failed: {exc}") from exc

    def _connect(self) -> Any:
        statement_timeout_ms = int(self.timeout_s * 1000)
        return self._psycopg.connect(
            self.database_url,
            row_factory=self._dict_row,
            connect_timeout=max(1, int(self.timeout_s)),
            options=f"-c statement_timeout={statement_timeout_ms}",
        )

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any]:
        try:
            import psycopg
            from psycopg.rows import dict_row
        except ImportError as exc:  # pragma: no cover
            raise RuntimeError(
                "PostgreSQL storage requires psycopg. "
                'Install with: python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row


def _parse_datetime(raw: Any) -> datetime:
    if isinstance(raw, datetime):
        return raw
    if isinstance(raw, str):
        return datetime.fromisoformat(raw)
    raise TypeError(f"Unsupported datetime value: {type(raw)!r}")


def _parse_datetime_optional(raw: Any) -> datetime | None:
    if raw is None:
        return None
    return _parse_datetime(raw)


class PostgresSessionStorage:
    """Persist sessions in PostgreSQL with version-checked replaces."""

    def __init__(self, connector: PostgresConnector) -> None:
        self._connector = connector

    def migrate(self) -> None:
        with self._connector.connection() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS sessions (
                    session_id UUID PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    project_id TEXT,
                    task_id TEXT,
                    focus_minutes INTEGER NOT NULL CHECK (focus_minutes >= 0),
                    break_minutes INTEGER NOT NULL CHECK (break_minutes >= 0),
                    state TEXT NOT NULL CHECK (state IN ({_SESSION_STATES})),
                    started_at TIMESTAMPTZ NOT NULL,
                    paused_at TIMESTAMPTZ,
                    finished_at TIMESTAMPTZ,
                    break_started_at TIMESTAMPTZ,
                    break_finished_at TIMESTAMPTZ,
                    interruptions INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL,
                    version INTEGER NOT NULL DEFAULT 1
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_user_id
                ON sessions(user_id)
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_sessions_task_id
                ON sessions(task_id)
                """)
            conn.commit()

    def create_session(self, session: Session) -> Session:
        session_id = uuid.uuid4()
        with self._connector.connection() as conn:
            row = conn.execute(
                """
                INSERT INTO sessions (
                    session_id,
                    user_id,
                    project_id,
                    task_id,
                    focus_minutes,
                    break_minutes,
                    state,
                    started_at,
                    paused_at,
                    finished_at,
                    break_started_at,
                    break_finished_at,
                    interruptions,
                    created_at,
                    updated_at,
                    version
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, 1)
                RETURNING *
                """,
                (
                    session_id,
                    session.user_id,
                    session.project_id,
                    session.task_id,
                    session.focus_minutes,
                    session.break_minutes,
                    session.state.value,
                    session.started_at,
                    session.paused_at,
                    session.finished_at,
                    session.break_started_at,
                    session.break_finished_at,
                    session.interruptions,
                    session.created_at,
                    session.updated_at,
                ),
            ).fetchone()
            conn.commit()
        if row is None:
            raise StorageError("Failed to persist session")
        return self._row_to_session(row)

    def get_session(self, session_id: str) -> Session | None:
        with self._connector.connection() as conn:
            row = conn.execute(
                "SELECT * FROM sessions WHERE session_id::text = %s",
                (session_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_session(row)

    def replace_session(self, session: Session) -> Session:
        with self._connector.connection() as conn:
            row = conn.execute(
                """
                UPDATE sessions
                SET user_id = %s,
                    project_id = %s,
                    task_id = %s,
                    focus_minutes = %s,
                    break_minutes = %s,
                    state = %s,
                    started_at = %s,
                    paused_at = %s,
                    finished_at = %s,
                    break_started_at = %s,
                    break_finished_at = %s,
                    interruptions = %s,
                    created_at = %s,
                    updated_at = %s,
                    version = version + 1
                WHERE session_id::text = %s AND version = %s
                RETURNING *
                """,
                (
                    session.user_id,
                    session.project_id,
                    session.task_id,
                    session.focus_minutes,
                    session.break_minutes,
                    session.state.value,
                    session.started_at,
                    session.paused_at,
                    session.finished_at,
                    session.break_started_at,
                    session.break_finished_at,
                    session.interruptions,
                    session.created_at,
                    session.updated_at,
                    session.session_id,
                    session.version,
                ),
            ).fetchone()
            if row is None:
                exists = conn.execute(
                    "SELECT 1 AS present FROM sessions WHERE session_id::text = %s",
                    (session.session_id,),
                ).fetchone()
                conn.rollback()
                if exists is None:
                    raise SessionNotFound(session.session_id)
                raise SessionConflict(session.session_id, session.version)
            conn.commit()
        return self._row_to_session(row)

    @staticmethod
    def _row_to_session(row: Any) -> Session:
        return Session(
            session_id=str(row["session_id"]),
            user_id=row["user_id"],
            project_id=row["project_id"],
            task_id=row["task_id"],
            focus_minutes=int(row["focus_minutes"]),
            break_minutes=int(row["break_minutes"]),
            state=SessionState(row["state"]),
            started_at=_parse_datetime(row["started_at"]),
            paused_at=_parse_datetime_optional(row["paused_at"]),
            finished_at=_parse_datetime_optional(row["finished_at"]),
            break_started_at=_parse_datetime_optional(row["break_started_at"]),
            break_finished_at=_parse_datetime_optional(row["break_finished_at"]),
            interruptions=int(row["interruptions"]),
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
            version=int(row["version"]),
        )


class PostgresTaskStorage:
    """Persist tasks; focus counters are updated in place with atomic increments."""

    def __init__(self, connector: PostgresConnector) -> None:
        self._connector = connector

    def migrate(self) -> None:
        with self._connector.connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id UUID PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    title TEXT NOT NULL,
                    description TEXT NOT NULL DEFAULT '',
                    project_id TEXT,
                    status TEXT NOT NULL,
                    completed BOOLEAN NOT NULL DEFAULT FALSE,
                    completed_at TIMESTAMPTZ,
                    pomodoros_completed INTEGER NOT NULL DEFAULT 0,
                    total_focus_minutes INTEGER NOT NULL DEFAULT 0,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_tasks_user_id
                ON tasks(user_id)
                """)
            conn.commit()

    def create_task(self, task: Task) -> Task:
        task_id = uuid.uuid4()
        with self._connector.connection() as conn:
            row = conn.execute(
                """
                INSERT INTO tasks (
                    task_id,
                    user_id,
                    title,
                    description,
                    project_id,
                    status,
                    completed,
                    completed_at,
                    pomodoros_completed,
                    total_focus_minutes,
                    created_at,
                    updated_at
                ) VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
                RETURNING *
                """,
                (
                    task_id,
                    task.user_id,
                    task.title,
                    task.description,
                    task.project_id,
                    task.status,
                    task.completed,
                    task.completed_at,
                    task.pomodoros_completed,
                    task.total_focus_minutes,
                    task.created_at,
                    task.updated_at,
                ),
            ).fetchone()
            conn.commit()
        if row is None:
            raise StorageError("Failed to persist task")
        return self._row_to_task(row)

    def get_task(self, task_id: str) -> Task | None:
        with self._connector.connection() as conn:
            row = conn.execute(
                "SELECT * FROM tasks WHERE task_id::text = %s",
                (task_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_task(row)

    def list_tasks(self, user_id: str) -> list[Task]:
        with self._connector.connection() as conn:
            rows = conn.execute(
                "SELECT * FROM tasks WHERE user_id = %s ORDER BY created_at",
                (user_id,),
            ).fetchall()
        return [self._row_to_task(row) for row in rows]

    def add_focus_minutes(self, task_id: str, minutes: int, *, at: datetime) -> None:
        self._increment(task_id, "total_focus_minutes", minutes, at)

    def increment_pomodoro_count(self, task_id: str, *, at: datetime) -> None:
        self._increment(task_id, "pomodoros_completed", 1, at)

    def set_status(self, task_id: str, status: TaskStatus, *, at: datetime) -> Task:
        completed = status == "completed"
        with self._connector.connection() as conn:
            row = conn.execute(
                """
                UPDATE tasks
                SET status = %s,
                    completed = %s,
                    completed_at = %s,
                    updated_at = %s
                WHERE task_id::text = %s
                RETURNING *
                """,
                (status, completed, at if completed else None, at, task_id),
            ).fetchone()
            conn.commit()
        if row is None:
            raise TaskNotFound(task_id)
        return self._row_to_task(row)

    def _increment(self, task_id: str, column: str, amount: int, at: datetime) -> None:
        # Column names come from the two callers above, never from input.
        with self._connector.connection() as conn:
            cursor = conn.execute(
                f"""
                UPDATE tasks
                SET {column} = {column} + %s,
                    updated_at = %s
                WHERE task_id::text = %s
                """,
                (amount, at, task_id),
            )
            updated = cursor.rowcount
            conn.commit()
        if not updated:
            raise TaskNotFound(task_id)

    @staticmethod
    def _row_to_task(row: Any) -> Task:
        return Task(
            task_id=str(row["task_id"]),
            user_id=row["user_id"],
            title=row["title"],
            description=row["description"] or "",
            project_id=row["project_id"],
            status=row["status"],
            completed=bool(row["completed"]),
            completed_at=_parse_datetime_optional(row["completed_at"]),
            pomodoros_completed=int(row["pomodoros_completed"]),
            total_focus_minutes=int(row["total_focus_minutes"]),
            created_at=_parse_datetime(row["created_at"]),
            updated_at=_parse_datetime(row["updated_at"]),
        )


class PostgresCycleStorage:
    """Append-only cycle history table."""

    def __init__(self, connector: PostgresConnector) -> None:
        self._connector = connector

    def migrate(self) -> None:
        with self._connector.connection() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS pomodoro_cycles (
                    cycle_id UUID PRIMARY KEY,
                    user_id TEXT NOT NULL,
                    task_id TEXT NOT NULL,
                    duration INTEGER NOT NULL,
                    started_at TIMESTAMPTZ NOT NULL,
                    finished_at TIMESTAMPTZ NOT NULL,
                    break_used BOOLEAN NOT NULL DEFAULT FALSE
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_pomodoro_cycles_task_id
                ON pomodoro_cycles(task_id)
                """)
            conn.commit()

    def save_cycle(self, cycle: PomodoroCycle) -> PomodoroCycle:
        cycle_id = uuid.uuid4()
        with self._connector.connection() as conn:
            conn.execute(
                """
                INSERT INTO pomodoro_cycles (
                    cycle_id,
                    user_id,
                    task_id,
                    duration,
                    started_at,
                    finished_at,
                    break_used
                ) VALUES (%s, %s, %s, %s, %s, %s, %s)
                """,
                (
                    cycle_id,
                    cycle.user_id,
                    cycle.task_id,
                    cycle.duration,
                    cycle.started_at,
                    cycle.finished_at,
                    cycle.break_used,
                ),
            )
            conn.commit()
        return cycle.model_copy(update={"cycle_id": str(cycle_id)})

    def list_cycles_for_task(self, task_id: str) -> list[PomodoroCycle]:
        with self._connector.connection() as conn:
            rows = conn.execute(
                """
                SELECT *
                FROM pomodoro_cycles
                WHERE task_id = %s
                ORDER BY started_at
                """,
                (task_id,),
            ).fetchall()
        return [
            PomodoroCycle(
                cycle_id=str(row["cycle_id"]),
                user_id=row["user_id"],
                task_id=row["task_id"],
                duration=int(row["duration"]),
                started_at=_parse_datetime(row["started_at"]),
                finished_at=_parse_datetime(row["finished_at"]),
                break_used=bool(row["break_used"]),
            )
            for row in rows
        ]


def build_postgres_storage(database_url: str, *, timeout_s: float = 5.0) -> StorageBundle:
    connector = PostgresConnector(database_url, timeout_s=timeout_s)
    return StorageBundle(
        sessions=PostgresSessionStorage(connector),
        tasks=PostgresTaskStorage(connector),
        cycles=PostgresCycleStorage(connector),
    )
