"""Application settings."""

from functools import lru_cache
import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

PROJECT_ROOT = Path(__file__).resolve().parents[3]


class Settings(BaseSettings):
    """Runtime settings loaded from environment variables."""

    app_name: str = "pomodoro-service"
    log_level: str = "INFO"
    api_prefix: str = "/api/v1"
    storage_backend: Literal["postgres", "memory"] = "postgres"
    database_url: str = ""
    # Upper bound for every persistence call (connect + statement).
    storage_timeout_s: float = Field(default=5.0, gt=0.0)

    model_config = SettingsConfigDict(
        env_prefix="POMODORO_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
