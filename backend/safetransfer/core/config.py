"""
SafeTransfer Core Configuration

Configuration management with environment variable support.
Regulatory figures and cache tiers are settings, never literals in code.
"""

from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from ..constants import SUPPORTED_LOCALES

# Load environment variables from .env file
load_dotenv()


@dataclass(frozen=True)
class TransferLimits:
    """
    Jurisdiction limits for the rolling transfer ceiling.

    The reference jurisdiction caps a customer at 999 within 8 days.
    """

    ceiling: Decimal = Decimal("999")
    window_days: int = 8

    def __post_init__(self) -> None:
        if self.ceiling <= 0:
            raise ValueError("Transfer ceiling must be positive")
        if self.window_days <= 0:
            raise ValueError("Rolling window must be at least one day")


class Settings(BaseSettings):
    """Application settings with validation and secure defaults."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", case_sensitive=True, extra="ignore"
    )

    # Environment settings
    ENVIRONMENT: str = Field(
        default="development", description="Application environment"
    )
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_JSON: bool = Field(
        default=False, description="Render log events as JSON lines"
    )

    # Regulatory configuration
    TRANSFER_CEILING: Decimal = Field(
        default=Decimal("999"),
        gt=0,
        description="Maximum amount per customer within one rolling window",
    )
    ROLLING_WINDOW_DAYS: int = Field(
        default=8, ge=1, le=366, description="Rolling window length in days"
    )
    MIN_DOCUMENT_LENGTH: int = Field(
        default=5, ge=1, le=30, description="Minimum document number length"
    )
    MIN_CUSTOMER_AGE: int = Field(
        default=18, ge=0, le=120, description="Minimum customer age, 0 disables"
    )
    DEFAULT_LOCALE: str = Field(
        default="en", description="Base locale for user-facing messages"
    )

    # Cache configuration
    CACHE_MAX_SIZE: int = Field(
        default=200, ge=1, le=100000, description="Maximum cached entries"
    )
    CACHE_DEFAULT_TTL_SECONDS: float = Field(
        default=60, gt=0, le=86400, description="Default entry time to live"
    )
    CACHE_SWEEP_INTERVAL_SECONDS: float = Field(
        default=60, gt=0, le=3600, description="Background expiry sweep period"
    )

    @field_validator("ENVIRONMENT")
    @classmethod
    def validate_environment(cls, v):
        """Validate environment value."""
        allowed = ["development", "test", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"ENVIRONMENT must be one of: {allowed}")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v):
        """Validate log level."""
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"LOG_LEVEL must be one of: {allowed}")
        return v.upper()

    @field_validator("DEFAULT_LOCALE")
    @classmethod
    def validate_locale(cls, v):
        """Validate the base locale is one we ship messages for."""
        if v not in SUPPORTED_LOCALES:
            raise ValueError(f"DEFAULT_LOCALE must be one of: {list(SUPPORTED_LOCALES)}")
        return v

    @property
    def is_development(self) -> bool:
        """Check if running in development mode."""
        return self.ENVIRONMENT == "development"

    @property
    def is_production(self) -> bool:
        """Check if running in production mode."""
        return self.ENVIRONMENT == "production"

    @property
    def transfer_limits(self) -> TransferLimits:
        """Jurisdiction limits as a value object."""
        return TransferLimits(
            ceiling=self.TRANSFER_CEILING, window_days=self.ROLLING_WINDOW_DAYS
        )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
