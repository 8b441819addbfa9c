"""Application configuration via Pydantic Settings."""

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Global engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # App
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    API_TITLE: str = "Price Sync API"
    FRONTEND_URL: str = "http://localhost:5173"

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = False

    # Cache
    CACHE_TTL_SECONDS: int = Field(default=1800, ge=0)

    # Page retrieval
    FETCH_TIMEOUT_MS: int = Field(default=15000, gt=0)
    HEADLESS: bool = True
    BLOCK_RESOURCES: bool = True
    BROWSER_LOCALE: str = "de-DE"

    # Retry / pacing
    MAX_RETRIES: int = Field(default=3, ge=1)
    RETRY_BASE_DELAY_SECONDS: float = Field(default=1.0, ge=0)
    CONCURRENCY_LIMIT: int = Field(default=3, ge=1, le=10)
    MIN_INTER_REQUEST_DELAY_MS: int = Field(default=2000, ge=0)
    MAX_INTER_REQUEST_DELAY_MS: int = Field(default=5000, ge=0)

    # Periodic refresh (0 disables the background job)
    REFRESH_INTERVAL_MINUTES: int = Field(default=0, ge=0)

    # Optional JSON file with tracked products; empty uses the built-in catalog
    CATALOG_FILE: str = ""

    @model_validator(mode="after")
    def check_delay_range(self) -> "Settings":
        """Inter-request delay bounds must form a valid range."""
        if self.MIN_INTER_REQUEST_DELAY_MS > self.MAX_INTER_REQUEST_DELAY_MS:
            raise ValueError(
                "MIN_INTER_REQUEST_DELAY_MS must not exceed MAX_INTER_REQUEST_DELAY_MS"
            )
        return self

    @property
    def fetch_timeout_seconds(self) -> float:
        return self.FETCH_TIMEOUT_MS / 1000.0

    @property
    def request_delay_range(self) -> tuple[float, float]:
        """Inter-request delay range in seconds."""
        return (
            self.MIN_INTER_REQUEST_DELAY_MS / 1000.0,
            self.MAX_INTER_REQUEST_DELAY_MS / 1000.0,
        )


settings = Settings()
