"""
Fleet Engines Configuration

Environment-based settings for the incentive and scorecard engines.
"""

import logging
from functools import lru_cache
from typing import Literal

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class Settings(BaseSettings):
    """Engine settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: LogLevel = "INFO"

    # Incentive calculation
    default_divisor: float = Field(
        default=1.0,
        gt=0,
        description="Divisor used when no active divisor setting exists for a driver type",
    )
    performance_bonus_key: str = Field(
        default="performance_bonus",
        description="Formula key whose result is reported as the performance bonus",
    )
    safety_bonus_key: str = Field(
        default="safety_bonus",
        description="Formula key whose result is reported as the safety bonus",
    )
    deduction_key_suffix: str = Field(
        default="_deduction",
        min_length=1,
        description="Formula keys ending with this suffix are deducted from the incentive",
    )

    # Scorecard
    bonus_eligibility_threshold: float = Field(
        default=70.0,
        ge=0,
        le=100,
        description="Minimum total weighted score for scorecard bonus eligibility",
    )
    weighting_tolerance: float = Field(
        default=0.01,
        ge=0,
        description="Allowed drift when checking that sibling weightings sum to 100",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        return v.upper() if isinstance(v, str) else v


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(settings: Settings | None = None) -> None:
    """Apply the configured log level to the engine loggers."""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level)
    logging.getLogger("fleet_engines").setLevel(settings.log_level)
