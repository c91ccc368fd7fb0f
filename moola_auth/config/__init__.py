"""Configuration package."""

from moola_auth.config.settings import (
    AppSettings,
    AuthSettings,
    GoogleSheetsSettings,
    PinSettings,
    Settings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "AppSettings",
    "AuthSettings",
    "GoogleSheetsSettings",
    "PinSettings",
    "Settings",
    "StorageSettings",
    "get_settings",
    "validate_all_settings",
]
