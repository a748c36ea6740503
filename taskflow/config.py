"""Client configuration using Pydantic Settings."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TASKFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Application
    app_name: str = "Taskflow"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_json: bool = False

    # Backend
    api_url: str = "http://localhost:8000/api"
    request_timeout: float = 30.0

    # Navigation
    login_path: str = "/login"
    auth_paths: list[str] = Field(
        default_factory=lambda: [
            "/login",
            "/register",
            "/forgot-password",
            "/reset-password",
            "/verify-email",
            "/email-verification-notice",
        ]
    )

    # Listings
    my_tasks_page_size: int = 50


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
