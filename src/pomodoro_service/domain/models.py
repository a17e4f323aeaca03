"""Pydantic models shared by the engine, storage backends, and the API.

Terms used in this file:
- Session: one focus interval, optionally followed by a break interval.
- Task: a unit of work that accumulates focus metrics from finished sessions.
- Cycle: an immutable history record of one completed focus interval.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Literal

from pydantic import BaseModel, Field


class SessionState(StrEnum):
    # Focus phase
    RUNNING = "RUNNING"
    PAUSED = "PAUSED"
    FINISHED = "FINISHED"
    CANCELLED = "CANCELLED"

    # Break phase
    BREAK_RUNNING = "BREAK_RUNNING"
    BREAK_PAUSED = "BREAK_PAUSED"
    BREAK_FINISHED = "BREAK_FINISHED"


# Task status values accepted by storage + API responses.
TaskStatus = Literal["pending", "in_progress", "paused", "completed"]

TaskSyncStatus = Literal["skipped", "applied", "task_not_found", "failed"]


class Session(BaseModel):
    """Canonical session record returned by storage and the API."""

    # Empty until storage assigns an identity on create.
    session_id: str = ""
    user_id: str
    project_id: str | None = None
    task_id: str | None = None

    # Advisory durations; no clock inside the service enforces them.
    focus_minutes: int = Field(ge=0)
    break_minutes: int = Field(ge=0)
    state: SessionState = SessionState.RUNNING

    started_at: datetime
    paused_at: datetime | None = None
    finished_at: datetime | None = None
    break_started_at: datetime | None = None
    break_finished_at: datetime | None = None

    interruptions: int = 0

    created_at: datetime
    updated_at: datetime
    # Optimistic-concurrency token, bumped by storage on every replace.
    version: int = 1


class Task(BaseModel):
    """Task record. Sessions only touch status and the focus counters."""

    task_id: str = ""
    user_id: str
    title: str
    description: str = ""
    project_id: str | None = None
    status: TaskStatus = "pending"
    completed: bool = False
    completed_at: datetime | None = None
    pomodoros_completed: int = 0
    total_focus_minutes: int = 0
    created_at: datetime
    updated_at: datetime


class PomodoroCycle(BaseModel):
    """Historical record of one completed focus cycle. Never modified once saved."""

    cycle_id: str = ""
    user_id: str
    task_id: str
    duration: int = Field(ge=0)
    started_at: datetime
    finished_at: datetime
    break_used: bool = False


class TaskSyncOutcome(BaseModel):
    """Advisory result of propagating a session transition to its task."""

    task_id: str | None = None
    status: TaskSyncStatus = "skipped"
    detail: str | None = None


class SessionResult(BaseModel):
    """Authoritative session outcome plus the advisory task outcome."""

    session: Session
    task_sync: TaskSyncOutcome = Field(default_factory=TaskSyncOutcome)
