"""Configuration settings for tagshelf."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings

from tagshelf.utils import get_tagshelf_home

JOURNAL_MODES = frozenset({"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"})


class Settings(BaseSettings):
    """Store settings loaded from environment."""

    # Database file; defaults to <home>/objects.db
    db_path: Optional[Path] = None
    journal_mode: str = "WAL"
    busy_timeout_ms: int = 5000

    # Worker pool for StoreDispatcher
    io_workers: int = 4

    log_level: str = "WARNING"

    class Config:
        env_prefix = "TAGSHELF_"
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"  # Ignore extra env vars not in model

    @field_validator("journal_mode")
    @classmethod
    def _check_journal_mode(cls, value: str) -> str:
        mode = value.upper()
        if mode not in JOURNAL_MODES:
            raise ValueError(f"Unsupported journal mode: {value}")
        return mode

    @field_validator("busy_timeout_ms", "io_workers")
    @classmethod
    def _check_non_negative(cls, value: int) -> int:
        if value < 0:
            raise ValueError("must not be negative")
        return value

    def resolved_db_path(self) -> Path:
        if self.db_path is not None:
            return Path(self.db_path).expanduser()
        return get_tagshelf_home() / "objects.db"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Install a basic root handler at the configured level.

    The library itself never adds handlers; applications call this once.
    """
    level_name = (level or get_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, level_name, logging.WARNING))
