from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from pomodoro_service.api.main import build_storage, create_app
from pomodoro_service.config.settings import Settings
from pomodoro_service.storage.memory import InMemorySessionStorage


def test_settings_read_prefixed_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("POMODORO_STORAGE_BACKEND", "memory")
    monkeypatch.setenv("POMODORO_STORAGE_TIMEOUT_S", "1.5")
    monkeypatch.setenv("POMODORO_API_PREFIX", "/api/v2")

    settings = Settings(_env_file=None)

    assert settings.storage_backend == "memory"
    assert settings.storage_timeout_s == 1.5
    assert settings.api_prefix == "/api/v2"


def test_database_url_falls_back_to_generic_variable(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("POMODORO_DATABASE_URL", raising=False)
    monkeypatch.setenv("DATABASE_URL", "postgresql://fallback/db")

    assert Settings(_env_file=None).resolved_database_url() == "postgresql://fallback/db"


def test_storage_timeout_must_be_positive() -> None:
    with pytest.raises(ValueError):
        Settings(storage_timeout_s=0, _env_file=None)


def test_postgres_backend_requires_database_url(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    settings = Settings(storage_backend="postgres", database_url="", _env_file=None)

    with pytest.raises(RuntimeError, match="POMODORO_DATABASE_URL"):
        build_storage(settings)


def test_memory_backend_is_built_from_settings() -> None:
    app = create_app(settings_override=Settings(storage_backend="memory", _env_file=None))

    with TestClient(app) as client:
        assert client.get("/health").status_code == 200
        assert isinstance(client.app.state.storage.sessions, InMemorySessionStorage)


def test_settings_expose_only_consumed_fields() -> None:
    assert set(Settings.model_fields) == {
        "app_name",
        "log_level",
        "api_prefix",
        "storage_backend",
        "database_url",
        "storage_timeout_s",
    }
