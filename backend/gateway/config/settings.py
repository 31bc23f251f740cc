"""Application settings using Pydantic BaseSettings."""

import os
from functools import lru_cache
from typing import List, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _get_default_db_path() -> str:
    """Get absolute path to default SQLite database."""
    config_dir = os.path.dirname(os.path.abspath(__file__))
    package_dir = os.path.dirname(config_dir)
    backend_dir = os.path.dirname(package_dir)
    db_path = os.path.join(backend_dir, "data", "gateway.db")
    return f"sqlite:///{db_path}"


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Server
    environment: str = Field(default="development")
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)
    log_file: Optional[str] = Field(default=None)
    cors_origins: str = Field(default="http://localhost:5173")

    # Database
    database_url: str = Field(default_factory=_get_default_db_path)

    # Credentials (base64-encoded 32-byte key, e.g. `openssl rand -base64 32`)
    encryption_key: str = Field(default="")

    # Providers
    provider_timeout_seconds: int = Field(default=120)
    stream_queue_size: int = Field(default=64)
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    anthropic_base_url: str = Field(default="https://api.anthropic.com")
    anthropic_api_version: str = Field(default="2023-06-01")
    anthropic_default_max_tokens: int = Field(default=4096)
    google_base_url: str = Field(default="https://generativelanguage.googleapis.com")
    groq_base_url: str = Field(default="https://api.groq.com/openai/v1")
    ollama_base_url: str = Field(default="http://localhost:11434/v1")
    openrouter_base_url: str = Field(default="https://openrouter.ai/api/v1")

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite."""
        return self.database_url.startswith("sqlite")

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse CORS origins from comma-separated string."""
        if not self.cors_origins:
            return []
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        upper = v.upper()
        if upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return upper

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        vv = (v or "").strip().lower()
        if vv not in {"development", "test", "staging", "production"}:
            raise ValueError("ENVIRONMENT must be one of: development, test, staging, production")
        return vv

    @field_validator("stream_queue_size", "provider_timeout_seconds")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("must be a positive integer")
        return v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
