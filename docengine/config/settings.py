"""
Configuration Management for the Document Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see what external dependencies exist and
ensures all required configuration is validated at startup.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets storage configuration."""

    model_config = SettingsConfigDict(
        env_prefix="GOOGLE_SHEETS_",
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
    default_sheet_rows: int = Field(
        default=1000,
        ge=10,
        description="Rows allocated when a table's worksheet is created"
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


class EngineSettings(BaseSettings):
    """
    Document engine settings.

    Loads configuration from environment variables and .env file.
    """

    model_config = SettingsConfigDict(
        env_prefix="DOCENGINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    # Subscription gating
    admin_emails: str = Field(
        default="",
        description="Comma-separated emails that bypass every plan limit"
    )

    # Document defaults
    default_base_currency: str = Field(
        default="ZAR",
        min_length=3,
        max_length=3,
        description="Base currency for companies that do not set one"
    )
    default_due_days: int = Field(
        default=30,
        ge=0,
        le=365,
        description="Days until an invoice created from a quotation is due"
    )
    number_padding: int = Field(
        default=4,
        ge=1,
        le=12,
        description="Minimum digits in generated document numbers"
    )

    # Usage outbox
    usage_flush_inline: bool = Field(
        default=True,
        description="Apply usage right after an invoice is created"
    )
    usage_retry_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Attempts per usage increment before it is left for later"
    )

    # Read views
    view_cache_enabled: bool = Field(
        default=True,
        description="Cache document lists per company and type"
    )

    @property
    def admin_emails_list(self) -> list[str]:
        """Get admin emails as a normalized list."""
        return [
            email.strip().lower()
            for email in self.admin_emails.split(",")
            if email.strip()
        ]


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

    # Note: These are loaded lazily to allow partial configuration

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Uses LRU cache to ensure settings are only loaded once.
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
        _ = settings.google_sheets
        results["google_sheets"] = True
    except Exception as e:
        results["google_sheets"] = False
        results["google_sheets_error"] = str(e)

    try:
        _ = settings.engine
        results["engine"] = True
    except Exception as e:
        results["engine"] = False
        results["engine_error"] = str(e)

    return results
