# File: hidesync_scheduler/core/config.py
"""
Configuration settings for the HideSync recurring project scheduler.

This module defines application settings using Pydantic's BaseSettings,
which supports environment variable loading and validation.
"""

import json
from typing import List, Union

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    This class uses Pydantic's BaseSettings to load configuration from
    environment variables, with validation and type conversion.
    """

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env",
        extra="ignore",
    )

    # API settings
    API_V1_STR: str = "/api/v1"
    PROJECT_NAME: str = "HideSync Scheduler"

    # Environment
    ENVIRONMENT: str = "development"
    DEBUG: bool = True

    # CORS
    BACKEND_CORS_ORIGINS: List[Union[AnyHttpUrl, str]] = []

    # Database
    DATABASE_URL: str = "sqlite:///hidesync_scheduler.db"

    # Scheduler
    SCHEDULER_FAILURE_ESCALATION_THRESHOLD: int = 3  # consecutive failures per occurrence
    SCHEDULER_PROJECT_CREATION_TIMEOUT_SECONDS: float = 30.0
    SCHEDULER_DEFAULT_PROJECT_SUFFIX: str = "#{n}"
    SCHEDULER_UPCOMING_PREVIEW_LIMIT: int = 10

    @field_validator("BACKEND_CORS_ORIGINS", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        """Parse CORS origins from environment variables."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                return [i.strip() for i in v.split(",") if i.strip()]
        return v or []

    @field_validator("SCHEDULER_FAILURE_ESCALATION_THRESHOLD")
    @classmethod
    def validate_escalation_threshold(cls, v: int) -> int:
        """At least one failed attempt must be allowed before escalating."""
        if v < 1:
            raise ValueError("SCHEDULER_FAILURE_ESCALATION_THRESHOLD must be at least 1")
        return v

    @field_validator("SCHEDULER_PROJECT_CREATION_TIMEOUT_SECONDS")
    @classmethod
    def validate_creation_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("SCHEDULER_PROJECT_CREATION_TIMEOUT_SECONDS must be positive")
        return v

    @field_validator("SCHEDULER_UPCOMING_PREVIEW_LIMIT")
    @classmethod
    def validate_preview_limit(cls, v: int) -> int:
        return max(1, min(v, 100))


# Create settings instance
settings = Settings()
