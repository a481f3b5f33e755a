"""
Configuration settings for the qbank-sync service.

Uses Pydantic Settings for environment variable management with .env file support.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Any, Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================
    # Database
    # ========================================
    database_url: str = Field(
        default="sqlite:///qbank_sync.db",
        description="SQLAlchemy connection string (PostgreSQL in production)",
    )

    # ========================================
    # Logging
    # ========================================
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging verbosity level",
    )
    log_file: str | None = Field(
        default="logs/qbank_sync.log",
        description="Log file path (None for stderr only)",
    )

    # ========================================
    # API Server
    # ========================================
    api_host: str = Field(
        default="127.0.0.1",
        description="API server host",
    )
    api_port: int = Field(
        default=8100,
        description="API server port",
    )
    upload_dir: str = Field(
        default="uploads",
        description="Directory holding files uploaded for question import",
    )

    # ========================================
    # Webservice Client
    # ========================================
    ws_base_url: str = Field(
        default="http://127.0.0.1:8100",
        description="Base URL of the remote qbank-sync service",
    )
    ws_token: str = Field(
        default="",
        description="Webservice token sent as a bearer credential",
    )
    ws_timeout: float = Field(
        default=30.0,
        description="Client request timeout in seconds",
    )

    def get_client_config(self) -> dict[str, Any]:
        """Get non-sensitive client configuration as a dictionary."""
        return {
            "base_url": self.ws_base_url,
            "token_configured": bool(self.ws_token),
            "timeout": self.ws_timeout,
        }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
