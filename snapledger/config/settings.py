"""
Configuration Management for SnapLedger

Uses pydantic-settings for type-safe configuration from environment variables.

All configuration is centralized here. Each external dependency gets its
own settings class with its own environment prefix, so a missing
credential for one service never prevents the others from loading.
"""

from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LocalStoreSettings(BaseSettings):
    """Device-local key-value storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="SNAPLEDGER_LOCAL_",
        extra="ignore"
    )

    data_dir: Path = Field(
        default=Path.home() / ".snapledger",
        description="Directory holding one JSON file per storage key"
    )
    transactions_key: str = Field(
        default="snap_ledger_transactions",
        description="Storage key for the transaction collection"
    )
    categories_key: str = Field(
        default="snap_ledger_categories",
        description="Storage key for the category collection"
    )


class GoogleSheetsSettings(BaseSettings):
    """Remote tabular store (Google Sheets) configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
        extra="ignore"
    )

    credentials_path: Optional[str] = Field(
        default=None,
        description="Path to Google service account credentials JSON"
    )
    spreadsheet_id: Optional[str] = Field(
        default=None,
        description="ID of the Google Sheets spreadsheet to use"
    )

    # One worksheet per logical table
    transactions_sheet_name: str = Field(
        default="transactions",
        description="Name of the sheet for transactions"
    )
    categories_sheet_name: str = Field(
        default="categories",
        description="Name of the sheet for categories"
    )
    events_sheet_name: str = Field(
        default="analytics_events",
        description="Name of the sheet for ledger audit events"
    )

    @field_validator('credentials_path')
    @classmethod
    def validate_credentials_path(cls, v: Optional[str]) -> Optional[str]:
        """Warn if credentials file doesn't exist (but don't fail - might be mounted later)."""
        if v and not Path(v).exists():
            import warnings
            warnings.warn(
                f"Google credentials file not found at {v}. "
                "Make sure it exists before signing in."
            )
        return v

    @property
    def is_configured(self) -> bool:
        """Both the credential and the spreadsheet are known."""
        return bool(self.credentials_path and self.spreadsheet_id)


class GeminiSettings(BaseSettings):
    """Gemini configuration for voice entry extraction."""

    model_config = SettingsConfigDict(
        env_prefix="GEMINI_",
        extra="ignore"
    )

    api_key: Optional[str] = Field(
        default=None,
        description="Gemini API key"
    )
    model_name: str = Field(
        default="gemini-2.5-flash",
        description="Gemini model to use"
    )
    max_tokens: int = Field(
        default=1024,
        ge=100,
        le=8192,
        description="Maximum tokens in response"
    )
    temperature: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Model temperature (lower = more deterministic)"
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

    # Environment
    app_environment: str = Field(
        default="development",
        description="Application environment"
    )
    debug_mode: bool = Field(
        default=False,
        description="Enable debug mode"
    )

    # Voice entry policy
    auto_complete_confidence: float = Field(
        default=0.9,
        ge=0.0,
        le=1.0,
        description="Minimum extraction confidence to save without review"
    )

    # Backup format
    backup_version: int = Field(
        default=1,
        ge=1,
        description="Version number written into exported backups"
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
    def local_store(self) -> LocalStoreSettings:
        return LocalStoreSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def gemini(self) -> GeminiSettings:
        return GeminiSettings()

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

    Returns a dict of {setting_name: is_valid}.
    Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.local_store
        results["local_store"] = True
    except Exception as e:
        results["local_store"] = False
        results["local_store_error"] = str(e)

    try:
        results["google_sheets"] = settings.google_sheets.is_configured
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        results["gemini"] = bool(settings.gemini.api_key)
    except Exception as e:
        results["gemini"] = False
        results["gemini_error"] = str(e)

    try:
        _ = settings.app
        results["app"] = True
    except Exception as e:
        results["app"] = False
        results["app_error"] = str(e)

    return results
