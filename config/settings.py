"""Application settings and configuration management."""
from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or defaults."""

    DB_PATH: str = Field(default="data/delivery.db")
    STORE_BACKEND: Literal["memory", "sqlite"] = "sqlite"

    DEADLINE_POLL_SECONDS: float = Field(default=30.0, gt=0)
    AUTO_FINISH_ON_READ: bool = True
    MEMORY_EVENT_LIMIT: int = Field(default=5000, gt=0)

    POLICY_PROVIDER_URL: Optional[str] = None
    POLICY_TIMEOUT_S: float = Field(default=5.0, ge=0.1)
    POLICY_MAX_RETRIES: int = Field(default=1, ge=0)
    POLICY_CONFIG_PATH: Optional[str] = None

    API_BASE_URL: str = "http://localhost:8000"
    REVIEWER_ROLES: tuple[str, ...] = ("teacher", "admin")

    model_config = SettingsConfigDict(env_file=".env", validate_assignment=True)


settings = Settings()
