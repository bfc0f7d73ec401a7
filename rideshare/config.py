# rideshare/config.py
from __future__ import annotations
import logging
from typing import List, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_ORIGINS = "http://127.0.0.1:5173,http://localhost:5173"
LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseSettings):
    """Settings read from the environment and `.env`; field names map to upper-case variables."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    database_url: str = ""
    database_sslmode: Optional[str] = None
    allowed_origins: str = DEFAULT_ORIGINS
    log_level: str = "INFO"

    # matching knobs
    match_max_distance_km: float = 5.0
    match_time_flexibility_min: float = 30.0
    match_candidate_limit: int = 50
    default_driver_seats: int = 4

    @field_validator("database_url", mode="before")
    @classmethod
    def _strip_url(cls, value):
        return value.strip() if isinstance(value, str) else value

    @field_validator("database_sslmode", mode="before")
    @classmethod
    def _blank_is_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("log_level")
    @classmethod
    def _upper(cls, value: str) -> str:
        return value.strip().upper()

    @property
    def allowed_origins_list(self) -> List[str]:
        """Parse comma-separated CORS origins into list."""
        return [o.strip() for o in self.allowed_origins.split(",") if o.strip()]


def load_settings() -> Settings:
    settings = Settings()
    if not settings.database_url:
        raise RuntimeError("DATABASE_URL env var is required")
    return settings


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
