"""Application configuration using pydantic-settings."""

from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/portfolio.db"

    # Quote cache freshness (minutes)
    QUOTE_TTL_OVERRIDE_MIN: Optional[int] = None
    INTRADAY_TTL_MIN: int = 15
    MARKET_OPEN_TTL_MIN: int = 60
    MARKET_CLOSED_TTL_MIN: int = 1440
    MARKET_OPEN_HOUR: int = 8
    MARKET_CLOSE_HOUR: int = 22
    LOOKUP_CACHE_TTL_MIN: int = 60
    DIVIDEND_CACHE_TTL_MIN: int = 1440

    # FX
    FX_TTL_MIN: int = 60
    FX_MAJORS: list[str] = ["EUR", "GBP", "CHF", "JPY", "CAD", "AUD"]

    # Alpha Vantage (optional - alternate quote source)
    AV_API_KEY: str = ""
    AV_DAILY_LIMIT: int = 25

    # Upstream HTTP
    UPSTREAM_TIMEOUT_SECONDS: float = 10.0

    # Edge rate limiting (per client IP)
    RATE_LIMIT_MAX_REQUESTS: int = 200
    RATE_LIMIT_WINDOW_SECONDS: int = 900

    CORS_ORIGINS: list[str] = ["http://localhost:5173"]

    @field_validator("QUOTE_TTL_OVERRIDE_MIN", mode="before")
    @classmethod
    def empty_override_is_none(cls, v):
        """Treat an empty ``QUOTE_TTL_OVERRIDE_MIN=`` as "no override"."""
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @field_validator("LOG_LEVEL", mode="before")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize LOG_LEVEL to an uppercase Python logging level."""
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"LOG_LEVEL must be one of {valid}, got {v!r}")
        return v.upper()

    # App settings
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"


settings = Settings()
