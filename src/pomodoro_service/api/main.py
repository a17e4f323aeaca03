"""FastAPI app entrypoint for the pomodoro service.

Routes only translate HTTP to engine/service calls; business rules live in
pomodoro_service.service. Run with `uvicorn pomodoro_service.api.main:app`.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from pomodoro_service.api.schemas import (
    CreateSessionRequest,
    CreateTaskRequest,
    ErrorResponse,
    RegisterCycleRequest,
)
from pomodoro_service.config.settings import Settings, get_settings
from pomodoro_service.domain.models import PomodoroCycle, Session, SessionResult, Task
from pomodoro_service.errors import (
    ConflictError,
    InvalidStateTransition,
    NotFoundError,
    StorageError,
)
from pomodoro_service.service.cycles import CycleService
from pomodoro_service.service.sessions import Clock, SessionLifecycleEngine, utc_now
from pomodoro_service.service.tasks import TaskService
from pomodoro_service.storage.base import StorageBundle
from pomodoro_service.storage.memory import build_memory_storage
from pomodoro_service.storage.postgres import build_postgres_storage

logger = logging.getLogger(__name__)

TASK_SYNC_HEADER = "X-Task-Sync"

_ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def build_storage(settings: Settings) -> StorageBundle:
    if settings.storage_backend == "memory":
        return build_memory_storage()
    database_url = settings.resolved_database_url()
    if not database_url:
        raise RuntimeError(
            "Missing database URL. Set POMODORO_DATABASE_URL "
            "or DATABASE_URL before starting the app."
        )
    return build_postgres_storage(database_url, timeout_s=settings.storage_timeout_s)


def _ensure_runtime_state(
    app: FastAPI,
    *,
    settings: Settings,
    storage_override: StorageBundle | None,
    clock: Clock,
) -> None:
    if not hasattr(app.state, "storage"):
        app.state.storage = storage_override or build_storage(settings)
        app.state.storage.migrate()

    if not hasattr(app.state, "settings"):
        app.state.settings = settings

    if not hasattr(app.state, "engine"):
        storage: StorageBundle = app.state.storage
        app.state.engine = SessionLifecycleEngine(
            sessions=storage.sessions,
            tasks=storage.tasks,
            clock=clock,
        )
        app.state.task_service = TaskService(tasks=storage.tasks, clock=clock)
        app.state.cycle_service = CycleService(cycles=storage.cycles, clock=clock)


def create_app(
    *,
    storage: StorageBundle | None = None,
    settings_override: Settings | None = None,
    clock: Clock | None = None,
) -> FastAPI:
    settings = settings_override or get_settings()
    logging.getLogger("pomodoro_service").setLevel(settings.log_level.upper())
    effective_clock = clock or utc_now

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _ensure_runtime_state(
            app,
            settings=settings,
            storage_override=storage,
            clock=effective_clock,
        )
        yield

    app_lifespan = lifespan if storage is None else None
    app = FastAPI(title=settings.app_name, version="0.1.0", lifespan=app_lifespan)

    # Keep test paths reliable when lifespan is not executed by the client.
    if storage is not None:
        _ensure_runtime_state(
            app,
            settings=settings,
            storage_override=storage,
            clock=effective_clock,
        )

    def _runtime(request: Request) -> FastAPI:
        if not hasattr(request.app.state, "engine"):
            _ensure_runtime_state(
                request.app,
                settings=settings,
                storage_override=storage,
                clock=effective_clock,
            )
        return request.app

    def _engine(request: Request) -> SessionLifecycleEngine:
        return _runtime(request).state.engine

    def _tasks(request: Request) -> TaskService:
        return _runtime(request).state.task_service

    def _cycles(request: Request) -> CycleService:
        return _runtime(request).state.cycle_service

    @app.exception_handler(NotFoundError)
    async def not_found_handler(_: Request, exc: NotFoundError) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(InvalidStateTransition)
    async def invalid_transition_handler(_: Request, exc: InvalidStateTransition) -> JSONResponse:
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(ConflictError)
    async def conflict_handler(_: Request, exc: ConflictError) -> JSONResponse:
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    @app.exception_handler(StorageError)
    async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
        logger.error("storage_failure path=%s error=%s", request.url.path, exc)
        return JSONResponse(status_code=503, content={"detail": "Storage unavailable"})

    # Multiple health endpoints map to the same function for different probes.
    @app.get("/health")
    @app.get("/healthz")
    @app.get("/live")
    def health() -> dict[str, str]:
        return {"status": "ok", "service": settings.app_name}

    router = APIRouter(prefix=settings.api_prefix, responses=_ERROR_RESPONSES)

    def _with_task_sync(result: SessionResult, response: Response) -> Session:
        response.headers[TASK_SYNC_HEADER] = result.task_sync.status
        return result.session

    @router.post("/sessions", response_model=Session, status_code=201)
    def create_session(
        payload: CreateSessionRequest, request: Request, response: Response
    ) -> Session:
        result = _engine(request).create_and_start(
            user_id=payload.user_id,
            project_id=payload.project_id,
            task_id=payload.task_id,
            focus_minutes=payload.focus_minutes,
            break_minutes=payload.break_minutes,
        )
        return _with_task_sync(result, response)

    @router.get("/sessions/{session_id}", response_model=Session)
    def get_session(session_id: str, request: Request) -> Session:
        return _engine(request).get(session_id)

    @router.patch("/sessions/{session_id}/pause", response_model=Session)
    def pause_session(session_id: str, request: Request) -> Session:
        return _engine(request).pause(session_id)

    @router.patch("/sessions/{session_id}/resume", response_model=Session)
    def resume_session(session_id: str, request: Request) -> Session:
        return _engine(request).resume(session_id)

    @router.patch("/sessions/{session_id}/finish", response_model=Session)
    def finish_session(session_id: str, request: Request, response: Response) -> Session:
        return _with_task_sync(_engine(request).finish(session_id), response)

    @router.patch("/sessions/{session_id}/break/start", response_model=Session)
    def start_break(session_id: str, request: Request) -> Session:
        return _engine(request).start_break(session_id)

    @router.patch("/sessions/{session_id}/break/pause", response_model=Session)
    def pause_break(session_id: str, request: Request) -> Session:
        return _engine(request).pause_break(session_id)

    @router.patch("/sessions/{session_id}/break/resume", response_model=Session)
    def resume_break(session_id: str, request: Request) -> Session:
        return _engine(request).resume_break(session_id)

    @router.patch("/sessions/{session_id}/break/finish", response_model=Session)
    def finish_break(session_id: str, request: Request) -> Session:
        return _engine(request).finish_break(session_id)

    @router.post("/tasks", response_model=Task, status_code=201)
    def create_task(payload: CreateTaskRequest, request: Request) -> Task:
        return _tasks(request).create_task(
            user_id=payload.user_id,
            title=payload.title,
            description=payload.description,
            project_id=payload.project_id,
        )

    @router.get("/tasks/user/{user_id}", response_model=list[Task])
    def list_tasks(user_id: str, request: Request) -> list[Task]:
        return _tasks(request).list_tasks(user_id)

    @router.get("/tasks/{task_id}", response_model=Task)
    def get_task(task_id: str, request: Request) -> Task:
        return _tasks(request).get_task(task_id)

    @router.patch("/tasks/{task_id}/complete", response_model=Task)
    def complete_task(task_id: str, request: Request) -> Task:
        return _tasks(request).mark_completed(task_id)

    @router.patch("/tasks/{task_id}/start", response_model=Task)
    def start_task(task_id: str, request: Request) -> Task:
        return _tasks(request).update_status(task_id, "in_progress")

    @router.patch("/tasks/{task_id}/pause", response_model=Task)
    def pause_task(task_id: str, request: Request) -> Task:
        return _tasks(request).update_status(task_id, "paused")

    @router.patch("/tasks/{task_id}/reopen", response_model=Task)
    def reopen_task(task_id: str, request: Request) -> Task:
        return _tasks(request).update_status(task_id, "pending")

    @router.get("/tasks/{task_id}/cycles", response_model=list[PomodoroCycle])
    def list_cycles(task_id: str, request: Request) -> list[PomodoroCycle]:
        return _cycles(request).cycles_for_task(task_id)

    @router.post("/cycles", response_model=PomodoroCycle, status_code=201)
    def register_cycle(payload: RegisterCycleRequest, request: Request) -> PomodoroCycle:
        try:
            return _cycles(request).register_cycle(
                user_id=payload.user_id,
                task_id=payload.task_id,
                duration=payload.duration,
                started_at=payload.started_at,
                finished_at=payload.finished_at,
                break_used=payload.break_used,
            )
        except ValueError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc

    app.include_router(router)
    return app


app = create_app()
