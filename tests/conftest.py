from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from pomodoro_service.api.main import create_app
from pomodoro_service.config.settings import Settings
from pomodoro_service.service.sessions import SessionLifecycleEngine
from pomodoro_service.service.tasks import TaskService
from pomodoro_service.storage.base import StorageBundle
from pomodoro_service.storage.memory import build_memory_storage

START = datetime(2026, 1, 5, 9, 0, tzinfo=UTC)


class SteppingClock:
    """Deterministic clock: every call advances one minute."""

    def __init__(self, start: datetime = START, step: timedelta = timedelta(minutes=1)) -> None:
        self.current = start
        self.step = step
        self.calls = 0

    def __call__(self) -> datetime:
        value = self.current
        self.current += self.step
        self.calls += 1
        return value


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def storage() -> StorageBundle:
    return build_memory_storage()


@pytest.fixture
def engine(storage: StorageBundle, clock: SteppingClock) -> SessionLifecycleEngine:
    return SessionLifecycleEngine(sessions=storage.sessions, tasks=storage.tasks, clock=clock)


@pytest.fixture
def task_service(storage: StorageBundle, clock: SteppingClock) -> TaskService:
    return TaskService(tasks=storage.tasks, clock=clock)


@pytest.fixture
def client(storage: StorageBundle, clock: SteppingClock) -> TestClient:
    app = create_app(
        storage=storage,
        settings_override=Settings(storage_backend="memory", _env_file=None),
        clock=clock,
    )
    with TestClient(app) as test_client:
        yield test_client
