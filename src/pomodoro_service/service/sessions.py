"""Session lifecycle engine.

State machine (current -> operation -> next):

    (none)                        create_and_start  RUNNING
    RUNNING                       pause             PAUSED
    PAUSED                        resume            RUNNING
    RUNNING | PAUSED              finish            FINISHED
    FINISHED                      start_break       BREAK_RUNNING
    BREAK_RUNNING                 pause_break       BREAK_PAUSED
    BREAK_PAUSED                  resume_break      BREAK_RUNNING
    BREAK_RUNNING | BREAK_PAUSED  finish_break      BREAK_FINISHED

Every transition re-reads the session, validates the move, and writes the full
record back through a version-checked replace. Task updates that follow a
transition are best-effort: their failures are reported in TaskSyncOutcome and
never undo or fail the session write.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime

from pomodoro_service.domain.models import Session, SessionResult, SessionState, TaskSyncOutcome
from pomodoro_service.errors import (
    InvalidStateTransition,
    SessionNotFound,
    StorageError,
    TaskNotFound,
)
from pomodoro_service.storage.base import SessionStorage, TaskStorage

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class _Transition:
    allowed_from: frozenset[SessionState]
    target: SessionState
    apply: Callable[[Session, datetime], None]


def _pause(session: Session, now: datetime) -> None:
    session.paused_at = now
    session.interruptions += 1


def _clear_pause(session: Session, now: datetime) -> None:
    session.paused_at = None


def _finish(session: Session, now: datetime) -> None:
    session.finished_at = now


def _start_break(session: Session, now: datetime) -> None:
    session.break_started_at = now


def _pause_break(session: Session, now: datetime) -> None:
    session.paused_at = now


def _finish_break(session: Session, now: datetime) -> None:
    session.break_finished_at = now


_TRANSITIONS: dict[str, _Transition] = {
    "pause": _Transition(
        frozenset({SessionState.RUNNING}),
        SessionState.PAUSED,
        _pause,
    ),
    "resume": _Transition(
        frozenset({SessionState.PAUSED}),
        SessionState.RUNNING,
        _clear_pause,
    ),
    "finish": _Transition(
        frozenset({SessionState.RUNNING, SessionState.PAUSED}),
        SessionState.FINISHED,
        _finish,
    ),
    "start_break": _Transition(
        frozenset({SessionState.FINISHED}),
        SessionState.BREAK_RUNNING,
        _start_break,
    ),
    "pause_break": _Transition(
        frozenset({SessionState.BREAK_RUNNING}),
        SessionState.BREAK_PAUSED,
        _pause_break,
    ),
    "resume_break": _Transition(
        frozenset({SessionState.BREAK_PAUSED}),
        SessionState.BREAK_RUNNING,
        _clear_pause,
    ),
    "finish_break": _Transition(
        frozenset({SessionState.BREAK_RUNNING, SessionState.BREAK_PAUSED}),
        SessionState.BREAK_FINISHED,
        _finish_break,
    ),
}

OPERATIONS = tuple(_TRANSITIONS)


def allowed_operations(state: SessionState) -> list[str]:
    """Operations that may be applied to a session in `state`."""
    return [name for name, rule in _TRANSITIONS.items() if state in rule.allowed_from]


class SessionLifecycleEngine:
    """Owns the session state machine and its side effects on linked tasks."""

    def __init__(
        self,
        *,
        sessions: SessionStorage,
        tasks: TaskStorage,
        clock: Clock = utc_now,
    ) -> None:
        self.sessions = sessions
        self.tasks = tasks
        self.clock = clock

    def create_and_start(
        self,
        *,
        user_id: str,
        focus_minutes: int,
        break_minutes: int,
        project_id: str | None = None,
        task_id: str | None = None,
    ) -> SessionResult:
        now = self.clock()
        draft = Session(
            user_id=user_id,
            project_id=project_id,
            task_id=task_id,
            focus_minutes=focus_minutes,
            break_minutes=break_minutes,
            state=SessionState.RUNNING,
            started_at=now,
            interruptions=0,
            created_at=now,
            updated_at=now,
        )
        session = self.sessions.create_session(draft)
        logger.info(
            "session_transition event=create session_id=%s user_id=%s task_id=%s to_state=%s",
            session.session_id,
            user_id,
            task_id,
            session.state.value,
        )
        task_sync = self._sync_task(
            session,
            [
                (
                    "set_status",
                    lambda linked_id: self.tasks.set_status(
                        linked_id, "in_progress", at=session.started_at
                    ),
                ),
            ],
        )
        return SessionResult(session=session, task_sync=task_sync)

    def get(self, session_id: str) -> Session:
        session = self.sessions.get_session(session_id)
        if session is None:
            raise SessionNotFound(session_id)
        return session

    def pause(self, session_id: str) -> Session:
        return self._transition(session_id, "pause")

    def resume(self, session_id: str) -> Session:
        return self._transition(session_id, "resume")

    def finish(self, session_id: str) -> SessionResult:
        session = self._transition(session_id, "finish")
        finished_at = session.finished_at
        task_sync = self._sync_task(
            session,
            [
                (
                    "add_focus_minutes",
                    lambda linked_id: self.tasks.add_focus_minutes(
                        linked_id, session.focus_minutes, at=finished_at
                    ),
                ),
                (
                    "increment_pomodoro_count",
                    lambda linked_id: self.tasks.increment_pomodoro_count(
                        linked_id, at=finished_at
                    ),
                ),
            ],
        )
        return SessionResult(session=session, task_sync=task_sync)

    def start_break(self, session_id: str) -> Session:
        return self._transition(session_id, "start_break")

    def pause_break(self, session_id: str) -> Session:
        return self._transition(session_id, "pause_break")

    def resume_break(self, session_id: str) -> Session:
        return self._transition(session_id, "resume_break")

    def finish_break(self, session_id: str) -> Session:
        return self._transition(session_id, "finish_break")

    def _transition(self, session_id: str, operation: str) -> Session:
        rule = _TRANSITIONS[operation]
        session = self.get(session_id)
        previous = session.state
        if previous not in rule.allowed_from:
            logger.info(
                "session_transition event=%s session_id=%s from_state=%s status=rejected",
                operation,
                session_id,
                previous.value,
            )
            raise InvalidStateTransition(operation, previous.value)

        now = self.clock()
        rule.apply(session, now)
        session.state = rule.target
        session.updated_at = now
        stored = self.sessions.replace_session(session)
        logger.info(
            "session_transition event=%s session_id=%s from_state=%s to_state=%s version=%s",
            operation,
            session_id,
            previous.value,
            stored.state.value,
            stored.version,
        )
        return stored

    def _sync_task(
        self,
        session: Session,
        steps: list[tuple[str, Callable[[str], object]]],
    ) -> TaskSyncOutcome:
        """Apply task updates in order; stop at the first failure and report what landed."""
        task_id = session.task_id
        if not task_id:
            return TaskSyncOutcome()
        applied: list[str] = []
        for step, update in steps:
            try:
                update(task_id)
            except (TaskNotFound, StorageError) as exc:
                status = (
                    "task_not_found" if isinstance(exc, TaskNotFound) and not applied else "failed"
                )
                detail = f"{step} failed: {exc}"
                if applied:
                    detail += f" (already applied: {', '.join(applied)})"
                logger.warning(
                    "task_sync status=%s session_id=%s task_id=%s step=%s applied=%s error=%s",
                    status,
                    session.session_id,
                    task_id,
                    step,
                    ",".join(applied) or "-",
                    exc,
                )
                return TaskSyncOutcome(task_id=task_id, status=status, detail=detail)
            applied.append(step)
        return TaskSyncOutcome(task_id=task_id, status="applied")
