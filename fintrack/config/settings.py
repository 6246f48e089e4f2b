"""
Configuration Management for the Finance Tracker

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
The Gemini API key is the one setting allowed to be missing:
without it the assistant runs in offline mode instead of failing.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        env_file=".env",
        extra="ignore"
    )

    credentials_path: str = Field(
        ...,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: str = Field(
        ...,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per logical collection
    transactions_sheet_name: str = Field(
        default="Transactions",
        description="Name of the sheet for transactions"
    )
    investments_sheet_name: str = Field(
        default="Investments",
        description="Name of the sheet for investments"
    )
    profiles_sheet_name: str = Field(
        default="Profiles",
        description="Name of the sheet for user profiles"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: str) -> str:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before running the application."
            )
        return v


class GeminiSettings(BaseSettings):
    """Gemini LLM configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        env_file=".env",
        extra="ignore"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key (missing = offline mode)"
    )
    model_names: str = Field(
        default="gemini-2.5-flash",
        description="Comma-separated list of models, tried in order"
    )
    temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
    )

    @property
    def model_names_list(self) -> list[str]:
        """Get model names as an ordered list."""
        return [name.strip() for name in self.model_names.split(",") if name.strip()]


class MarketSettings(BaseSettings):
    """Quote lookup (brapi-compatible) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="MARKET_",
        env_file=".env",
        extra="ignore"
    )

    base_url: str = Field(
        default="https://brapi.dev/api/quote",
        description="Quote endpoint; the ticker is appended as a path segment"
    )
    token: str = Field(
        default="public",
        description="API token for the quote provider"
    )
    timeout_seconds: float = Field(
        default=10.0,
        gt=0,
        description="Per-request timeout"
    )


class AppSettings(BaseSettings):
    """
    Main application settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Assistant timing
    monitor_debounce_seconds: float = Field(
        default=2.0,
        ge=0.0,
        description="Quiet period before the automatic risk check runs"
    )
    tip_auto_hide_seconds: float = Field(
        default=8.0,
        ge=0.0,
        description="How long the risk bubble stays up without interaction"
    )
    recent_transaction_limit: int = Field(
        default=10,
        ge=1,
        le=100,
        description="How many recent transactions go into the AI prompt"
    )

    # Reserved description of the recurring salary entry
    salary_label: str = Field(
        default="Monthly Salary",
        description="Description used to recognise the fixed salary transaction"
    )


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Sub-settings are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

    @property
    def market(self) -> MarketSettings:
        return MarketSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, plus "<name>_error"
    entries describing failures. Used by the settings page.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        gemini = settings.gemini
        results["gemini"] = bool(gemini.api_key)
        if not gemini.api_key:
            results["gemini_error"] = "No API key - assistant runs in offline mode"
    except Exception as e:
        results["gemini"] = False
        results["gemini_error"] = str(e)

    try:
        _ = settings.market
        results["market"] = True
    except Exception as e:
        results["market"] = False
        results["market_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
