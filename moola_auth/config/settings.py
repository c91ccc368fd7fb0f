"""
Configuration Management for Moola Auth

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All configuration is centralized here.
This makes it easy to see which knobs the authentication gate exposes and
ensures every value is validated at startup, not at the first PIN attempt.
"""

import re
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# Key names double as file names in the file backend
STORAGE_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_.-]+$")


class AuthSettings(BaseSettings):
    """Lockout policy knobs for the authentication gate."""

    model_config = SettingsConfigDict(
        env_prefix="AUTH_",
        extra="ignore"
    )

    max_attempts_before_lock: int = Field(
        default=3,
        ge=1,
        le=20,
        description="Failed attempts after which the lockout policy is consulted"
    )
    lockout_check_interval_seconds: float = Field(
        default=1.0,
        gt=0.0,
        le=60.0,
        description="How often the lockout-expiry monitor wakes up"
    )
    reset_attempts_on_lockout_expiry: bool = Field(
        default=True,
        description="Reset the failed-attempt counter when a lockout expires"
    )


class PinSettings(BaseSettings):
    """PIN rules and hashing configuration."""

    model_config = SettingsConfigDict(
        env_prefix="PIN_",
        extra="ignore"
    )

    pin_length: int = Field(
        default=4,
        ge=4,
        le=8,
        description="Number of digits in a PIN"
    )
    bcrypt_rounds: int = Field(
        default=12,
        ge=4,
        le=16,
        description="bcrypt cost factor for new PIN hashes"
    )
    # SHA-256 hashes from releases before bcrypt still verify with these salts
    primary_salt: str = Field(
        default="Moola_PIN_Salt_v1",
        min_length=1,
        description="Salt of SHA-256 PIN hashes from earlier releases"
    )
    legacy_salt_base64: str = Field(
        default="T25ib2FyZGluZ0FwcF9QSU5fU2FsdF92MQ==",
        description="Base64 of the legacy salt accepted during verification"
    )
    max_confirmation_attempts: int = Field(
        default=3,
        ge=1,
        le=10,
        description="Mismatched confirmations allowed before PIN setup restarts"
    )


class StorageSettings(BaseSettings):
    """Local key-value persistence configuration."""

    model_config = SettingsConfigDict(
        env_prefix="STORAGE_",
        extra="ignore"
    )

    backend: str = Field(
        default="file",
        description="Key-value backend: 'memory' or 'file'"
    )
    data_dir: str = Field(
        default=".moola",
        description="Directory used by the file backend"
    )

    # Logical keys
    user_key: str = Field(default="stored_user")
    attempts_key: str = Field(default="failed_pin_attempts")
    lockout_key: str = Field(default="lockout_end_time")
    linked_account_ids_key: str = Field(default="linked_account_ids")

    @field_validator('backend')
    @classmethod
    def validate_backend(cls, v: str) -> str:
        """Only known backends are accepted."""
        v = v.strip().lower()
        if v not in {"memory", "file"}:
            raise ValueError(f"Unsupported storage backend: {v}. Use 'memory' or 'file'")
        return v

    @field_validator("user_key", "attempts_key", "lockout_key", "linked_account_ids_key")
    @classmethod
    def validate_key(cls, v: str) -> str:
        """Keys must be usable by every backend."""
        if not STORAGE_KEY_PATTERN.match(v) or v in {".", ".."}:
            raise ValueError(f"Invalid storage key: {v!r}. Use letters, digits, '_', '.' or '-'")
        return v

    @property
    def data_path(self) -> Path:
        return Path(self.data_dir).expanduser()


class GoogleSheetsSettings(BaseSettings):
    """Google Sheets audit trail configuration."""

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
    audit_sheet_name: str = Field(
        default="AuthAuditLog",
        description="Name of the sheet for authentication audit events"
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
    audit_backend: str = Field(
        default="local",
        description="Where audit events go: 'local' (log only), 'memory' or 'google_sheets'"
    )

    @field_validator('audit_backend')
    @classmethod
    def validate_audit_backend(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"local", "memory", "google_sheets"}:
            raise ValueError(f"Unsupported audit backend: {v}")
        return v


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
    def auth(self) -> AuthSettings:
        return AuthSettings()

    @property
    def pin(self) -> PinSettings:
        return PinSettings()

    @property
    def storage(self) -> StorageSettings:
        return StorageSettings()

    @property
    def google_sheets(self) -> GoogleSheetsSettings:
        return GoogleSheetsSettings()

    @property
    def app(self) -> AppSettings:
        return AppSettings()


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

    Returns a dict of {setting_name: is_valid}, plus a
    "<name>_error" entry for each section that failed.
    Google Sheets is only checked when it is the audit backend.
    """
    results = {}

    settings = get_settings()

    sections = ["auth", "pin", "storage", "app"]
    try:
        if settings.app.audit_backend == "google_sheets":
            sections.append("google_sheets")
    except Exception:
        # Reported below as an "app" failure
        pass

    for name in sections:
        try:
            _ = getattr(settings, name)
            results[name] = True
        except Exception as e:
            results[name] = False
            results[f"{name}_error"] = str(e)

    return results
