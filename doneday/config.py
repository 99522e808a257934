"""Application settings loaded from environment variables."""

import os
from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_file() -> str | None:
    if os.getenv("PYTEST_CURRENT_TEST"):
        return None
    return ".env"


class Settings(BaseSettings):
    """DoneDay configuration. All values come from environment variables."""

    # Database
    database_path: Path = Field(default=Path("data/doneday.db"))

    # Reminder policy
    reminder_lead_minutes: int = Field(default=30, ge=0)
    reminder_past_due: Literal["immediate", "skip"] = Field(default="immediate")
    snooze_minutes: int = Field(default=15, gt=0)

    # Scheduler / notification platform
    scheduler_timezone: str = Field(default="UTC")
    notifications_enabled: bool = Field(default=True)
    max_pending_notifications: int = Field(default=64, gt=0)
    platform_timeout_seconds: float = Field(default=5.0, gt=0)
    reconcile_concurrency: int = Field(default=8, gt=0)
    resync_interval_seconds: int = Field(default=300, ge=0)

    # Notifications
    default_notification_channel: str = Field(default="log")

    # Logging
    log_level: str = Field(default="INFO")

    model_config = SettingsConfigDict(env_file=_env_file(), env_file_encoding="utf-8")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        if os.getenv("PYTEST_CURRENT_TEST"):
            return (init_settings,)
        return (init_settings, env_settings, dotenv_settings, file_secret_settings)


settings = Settings()
