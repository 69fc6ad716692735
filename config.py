"""
Configuration management using Pydantic Settings.
Loads environment variables from .env file.
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    DATABASE_URL: str

    FIREWORKS_API_KEY: Optional[str] = None
    FIREWORKS_BASE_URL: str = "https://api.fireworks.ai/inference/v1"
    FIREWORKS_MODEL: str = "accounts/fireworks/models/qwen3-235b-a22b"

    VOYAGE_API_KEY: Optional[str] = None
    VOYAGE_BASE_URL: str = "https://api.voyageai.com/v1"
    VOYAGE_MODEL: str = "voyage-3"

    MAX_FILE_SIZE_MB: float = 10
    EMBEDDING_DIMENSIONS: int = 1024

    DB_RETRY_ATTEMPTS: int = 3
    DB_RETRY_BASE_DELAY_SECONDS: float = 1.0

    SSE_HEARTBEAT_SECONDS: float = 30

    # Identity used by the API until a real auth provider is wired in
    DEV_USER_ID: Optional[str] = None

    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"


settings = Settings()
