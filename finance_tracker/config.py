"""
Configuration for the Finance Tracker API.

Settings are read from environment variables and an optional .env file.
The Gemini block is kept separate so the API can boot without an API key;
only the voice agent and receipt scanning need it.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    api_key: Optional[str] = Field(default=None, description="Gemini API key")
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model used for transcription, intents and narration",
    )
    temperature: float = Field(default=0.2, ge=0.0, le=1.0)
    max_tokens: int = Field(default=2048, ge=100, le=8192)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    environment: str = Field(default="development")
    database_url: str = Field(default="sqlite:///./finance.db")

    jwt_secret: str = Field(default="change-me-in-production")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expire_days: int = Field(default=30, ge=1)

    upload_dir: Path = Field(default=Path("./uploads"))
    max_audio_size_mb: int = Field(default=25, ge=1, le=100)
    max_image_size_mb: int = Field(default=10, ge=1, le=50)

    cors_origins: str = Field(
        default="*", description="Comma-separated list of allowed origins"
    )
    scheduler_enabled: bool = Field(default=True)

    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def max_audio_size_bytes(self) -> int:
        return self.max_audio_size_mb * 1024 * 1024

    @property
    def max_image_size_bytes(self) -> int:
        return self.max_image_size_mb * 1024 * 1024

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload after changing the environment.
    """
    return Settings()
