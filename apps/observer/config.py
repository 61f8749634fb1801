from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class ObserverSettings(BaseSettings):
    config_path: Path | None = None
    # optional events log replayed into the runtime at startup
    events_path: Path | None = None

    issues_limit: int = 10
    max_issues_limit: int = 100

    model_config = SettingsConfigDict(
        env_prefix="PRISMGUARD_",
        env_file=".env",
        extra="ignore",
    )


settings = ObserverSettings()
