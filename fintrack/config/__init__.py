"""Configuration package."""

from fintrack.config.settings import (
    AppSettings,
    GeminiSettings,
    GoogleSheetsSettings,
    MarketSettings,
    Settings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "GeminiSettings",
    "GoogleSheetsSettings",
    "MarketSettings",
    "Settings",
    "get_settings",
    "validate_all_settings",
]
