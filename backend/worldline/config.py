"""
Configuration settings using Pydantic Settings.
"""

from pathlib import Path
from typing import Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings
from functools import lru_cache

BASE_DIR = Path(__file__).resolve().parents[1]

TimelineReadMode = Literal["legacy", "timeline"]
TimelineWriteMode = Literal["legacy", "dual-write", "timeline"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    DATABASE_DIR: str = "database"

    TIMELINE_READ_MODE: TimelineReadMode = "legacy"
    TIMELINE_WRITE_MODE: TimelineWriteMode = "legacy"
    TIMELINE_AUDIT_ENABLED: bool = True

    DEBUG: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore"
    }

    @field_validator("TIMELINE_READ_MODE", mode="before")
    @classmethod
    def normalize_read_mode(cls, value):
        normalized = str(value or "").strip().lower()
        return "timeline" if normalized == "timeline" else "legacy"

    @field_validator("TIMELINE_WRITE_MODE", mode="before")
    @classmethod
    def normalize_write_mode(cls, value):
        normalized = str(value or "").strip().lower()
        if normalized == "timeline":
            return "timeline"
        if normalized in ("dual-write", "dual_write"):
            return "dual-write"
        return "legacy"

    @model_validator(mode="after")
    def resolve_relative_paths(self):
        db_dir = Path(self.DATABASE_DIR)
        if not db_dir.is_absolute():
            self.DATABASE_DIR = str((BASE_DIR / db_dir).resolve())

        return self

    @property
    def is_dual_write_enabled(self) -> bool:
        return self.TIMELINE_WRITE_MODE == "dual-write"

    @property
    def is_timeline_read_enabled(self) -> bool:
        return self.TIMELINE_READ_MODE == "timeline"


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    :return: Cached Settings instance
    :rtype: Settings
    """
    return Settings()


settings = get_settings()
