"""Client Configuration — environment-driven settings via pydantic-settings.

Invariants:
    - Every setting has a default, so the client works without a .env file
    - get_settings() is cached (lru_cache) — single instance per process
    - api_base_url never ends with "/" (relative paths start with "/")
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Client settings from TRIPSPIRE_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="TRIPSPIRE_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # API
    api_base_url: str = "https://api.tripspire.app"
    request_timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("api_base_url", mode="before")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        if isinstance(v, str):
            return v.rstrip("/")
        return v

    # Retry
    request_max_retries: int = Field(default=3, ge=0, le=10)
    retry_base_delay_ms: int = Field(default=1000, ge=0)
    retry_max_delay_ms: int | None = None

    # Region cache
    cache_ttl_seconds: float = Field(default=300.0, gt=0)
    cache_max_regions: int = Field(default=200, ge=1)

    # Import status polling
    import_poll_interval_seconds: float = Field(default=2.0, gt=0)
    import_poll_max_seconds: float = Field(default=120.0, gt=0)

    # Observability
    log_level: str = "INFO"
    log_format: str = "json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
