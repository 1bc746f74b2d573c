"""
Application Configuration
Loads settings from environment variables.
"""

from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # App
    APP_NAME: str = "ImageStudio API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Remote image service: "openai" or "gemini"
    IMAGE_PROVIDER: str = "openai"

    # OpenAI Images API
    OPENAI_API_KEY: str = ""
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"
    OPENAI_GENERATE_MODEL: str = "dall-e-3"
    OPENAI_EDIT_MODEL: str = "gpt-image-1"  # Only model that accepts several reference images
    OPENAI_TIMEOUT: float = 180.0  # gpt-image-1 edits can take minutes

    # Gemini native image generation (Nano Banana)
    GEMINI_API_KEY: str = ""
    GEMINI_MODEL: str = "gemini-2.5-flash-image"

    # Upload staging
    UPLOAD_DIR: str = "./uploads"
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    CLIENT_WARN_UPLOAD_BYTES: int = 4 * 1024 * 1024  # Advertised to clients, not enforced here
    NORMALIZED_MAX_DIMENSION: int = 512

    # Job queue
    JOB_MAX_ATTEMPTS: int = 3
    JOB_RETRY_BASE_DELAY: float = 2.0
    JOB_WORKER_CONCURRENCY: int = 2
    JOB_RETENTION_SECONDS: int = 24 * 60 * 60
    JOB_SWEEP_INTERVAL_SECONDS: int = 60 * 60

    # Job table backend: "memory" or "redis"
    JOB_STORE: str = "memory"
    REDIS_URL: str = "redis://localhost:6379"
    REDIS_JOB_PREFIX: str = "imagestudio:job:"

    # Legacy blocking edit endpoint
    LEGACY_EDIT_TIMEOUT_SECONDS: float = 5 * 60
    LEGACY_EDIT_POLL_INTERVAL: float = 2.0

    @field_validator('OPENAI_API_KEY', 'GEMINI_API_KEY', mode='before')
    @classmethod
    def strip_api_keys(cls, v):
        """Strip whitespace and newlines from API keys loaded from secrets."""
        if isinstance(v, str):
            return v.strip()
        return v

    @field_validator('IMAGE_PROVIDER', 'JOB_STORE', mode='before')
    @classmethod
    def lowercase_choice(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @property
    def provider_api_key(self) -> str:
        """Credential of the selected image provider."""
        if self.IMAGE_PROVIDER == "gemini":
            return self.GEMINI_API_KEY
        return self.OPENAI_API_KEY


def credential_problem(settings: Settings) -> Optional[str]:
    """
    Check the image provider credential without calling the provider.

    Returns:
        None when the key looks usable, otherwise a reason suitable for
        a "server misconfigured" response.
    """
    if settings.IMAGE_PROVIDER not in ("openai", "gemini"):
        return f"Unknown image provider: {settings.IMAGE_PROVIDER}"

    key = settings.provider_api_key
    key_name = "GEMINI_API_KEY" if settings.IMAGE_PROVIDER == "gemini" else "OPENAI_API_KEY"

    if not key:
        return f"{key_name} is not configured"
    if settings.IMAGE_PROVIDER == "openai" and not key.startswith("sk-"):
        return f"{key_name} appears invalid (does not start with sk-)"
    if len(key) < 20:
        return f"{key_name} appears invalid (too short)"
    return None


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
