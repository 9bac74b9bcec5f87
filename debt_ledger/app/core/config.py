from __future__ import annotations

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Debt Ledger API"
    database_url: str = "sqlite:///debt_ledger.db"
    log_level: str = "INFO"
    storage_backend: Literal["sql", "memory"] = "sql"
    # Load/compute/replace cycles before a version conflict is reported.
    max_write_attempts: int = Field(default=3, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="LEDGER_",
        extra="ignore",
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
