"""Storage backends and contracts."""

from pomodoro_service.storage.base import CycleStorage, SessionStorage, StorageBundle, TaskStorage
from pomodoro_service.storage.memory import (
    InMemoryCycleStorage,
    InMemorySessionStorage,
    InMemoryTaskStorage,
    build_memory_storage,
)
from pomodoro_service.storage.postgres import (
    PostgresConnector,
    PostgresCycleStorage,
    PostgresSessionStorage,
    PostgresTaskStorage,
    build_postgres_storage,
)

__all__ = [
    "CycleStorage",
    "InMemoryCycleStorage",
    "InMemorySessionStorage",
    "InMemoryTaskStorage",
    "PostgresConnector",
    "PostgresCycleStorage",
    "PostgresSessionStorage",
    "PostgresTaskStorage",
    "SessionStorage",
    "StorageBundle",
    "TaskStorage",
    "build_memory_storage",
    "build_postgres_storage",
]
