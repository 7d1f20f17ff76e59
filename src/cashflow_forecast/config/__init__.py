"""Configuration module for the cash-flow forecaster."""

from cashflow_forecast.config.logging import configure_logging, get_logger
from cashflow_forecast.config.settings import ForecastSettings, get_settings

__all__ = ["ForecastSettings", "get_settings", "configure_logging", "get_logger"]
