"""Configuration settings for the cash-flow forecaster."""

from datetime import date
from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class ForecastSettings(BaseSettings):
    """Flat settings read from environment variables or a ``.env`` file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Projection window defaults (used when a state has no usable settings)
    horizon_days: int = Field(
        default=365, ge=0, validation_alias="FORECAST_HORIZON_DAYS"
    )
    default_end_date: date | None = Field(
        default=None, validation_alias="FORECAST_DEFAULT_END_DATE"
    )

    # CLI snapshot locations
    state_file: str = Field(
        default="cashflow_state.json", validation_alias="FORECAST_STATE_FILE"
    )
    scenario_file: str | None = Field(
        default=None, validation_alias="FORECAST_SCENARIO_FILE"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT"
    )


@lru_cache
def get_settings() -> ForecastSettings:
    """Get cached settings instance."""
    return ForecastSettings()
