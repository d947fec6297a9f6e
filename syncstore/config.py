"""Store configuration loaded from environment variables."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from syncstore.services.datetime_service import parse_duration

DATABASE_DIRNAME = "index"
LOCK_FILENAME = "syncstore.lock"


class Settings(BaseSettings):
    """Syncstore settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    debug: bool = False

    # Paths
    data_dir: Path = Path("./data")

    # Maintenance
    delete_retention: timedelta = timedelta(0)
    maintenance_interval: timedelta = Field(default=timedelta(hours=8))
    gc_max_skip: timedelta = timedelta(0)

    @field_validator("delete_retention", "maintenance_interval", "gc_max_skip", mode="before")
    @classmethod
    def _parse_duration(cls, value: object) -> object:
        if not isinstance(value, str):
            return value
        # Plain numbers are seconds.
        if value.strip().isdigit():
            return int(value)
        return parse_duration(value)

    @field_validator("delete_retention", "gc_max_skip")
    @classmethod
    def _non_negative(cls, value: timedelta) -> timedelta:
        if value < timedelta(0):
            raise ValueError("duration must not be negative")
        return value

    @field_validator("maintenance_interval")
    @classmethod
    def _positive(cls, value: timedelta) -> timedelta:
        if value <= timedelta(0):
            raise ValueError("maintenance interval must be positive")
        return value

    @property
    def database_dir(self) -> Path:
        return self.data_dir / DATABASE_DIRNAME

    @property
    def lock_path(self) -> Path:
        return self.data_dir / LOCK_FILENAME
