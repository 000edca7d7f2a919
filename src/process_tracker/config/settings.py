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

    app_name: str = "process-tracker"
    app_env: str = "dev"
    log_level: str = "INFO"
    storage_backend: Literal["memory", "postgres"] = "postgres"
    database_url: str = ""
    deadline_skew_tolerance_s: int = Field(default=60, ge=0)
    snapshot_interval_s: float = Field(default=30.0, ge=0.0)

    model_config = SettingsConfigDict(
        env_prefix="PROCESS_TRACKER_",
        extra="ignore",
        env_file=(PROJECT_ROOT / ".env", PROJECT_ROOT / ".env.local"),
        env_file_encoding="utf-8",
    )

    def resolved_database_url(self) -> str:
        return self.database_url or os.getenv("DATABASE_URL", "")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
