"""Request bodies validated at the HTTP boundary."""

from __future__ import annotations

from pydantic import AwareDatetime, BaseModel, Field


class CreateSessionRequest(BaseModel):
    """Request body for POST /sessions."""

    user_id: str = Field(min_length=1)
    project_id: str | None = None
    task_id: str | None = None
    focus_minutes: int = Field(ge=1, le=120)
    break_minutes: int = Field(ge=0, le=60)


class CreateTaskRequest(BaseModel):
    """Request body for POST /tasks."""

    user_id: str = Field(min_length=1)
    title: str = Field(min_length=1)
    description: str = ""
    project_id: str | None = None


class RegisterCycleRequest(BaseModel):
    """Request body for POST /cycles."""

    user_id: str = Field(min_length=1)
    task_id: str = Field(min_length=1)
    duration: int = Field(ge=1)
    started_at: AwareDatetime
    finished_at: AwareDatetime | None = None
    break_used: bool = False


class ErrorResponse(BaseModel):
    detail: str
