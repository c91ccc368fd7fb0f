"""
Tests for configuration loading.
"""

import pytest
from pydantic import ValidationError

from moola_auth.config import (
    AppSettings,
    AuthSettings,
    PinSettings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)


@pytest.fixture
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


class TestSettings:
    """Tests for the pydantic-settings sections."""

    def test_defaults(self):
        auth = AuthSettings()
        assert auth.max_attempts_before_lock == 3
        assert auth.lockout_check_interval_seconds == 1.0
        assert auth.reset_attempts_on_lockout_expiry is True

        pin = PinSettings()
        assert pin.pin_length == 4
        assert pin.max_confirmation_attempts == 3

        storage = StorageSettings()
        assert storage.user_key == "stored_user"
        assert storage.attempts_key == "failed_pin_attempts"
        assert storage.lockout_key == "lockout_end_time"
        assert storage.linked_account_ids_key == "linked_account_ids"

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("AUTH_MAX_ATTEMPTS_BEFORE_LOCK", "5")
        monkeypatch.setenv("AUTH_RESET_ATTEMPTS_ON_LOCKOUT_EXPIRY", "false")

        auth = AuthSettings()

        assert auth.max_attempts_before_lock == 5
        assert auth.reset_attempts_on_lockout_expiry is False

    def test_rejects_unknown_storage_backend(self):
        with pytest.raises(ValidationError):
            StorageSettings(backend="sqlite")

    def test_backend_is_normalized(self):
        assert StorageSettings(backend=" Memory ").backend == "memory"

    def test_rejects_unknown_audit_backend(self):
        with pytest.raises(ValidationError):
            AppSettings(audit_backend="postgres")

    def test_rejects_zero_threshold(self):
        with pytest.raises(ValidationError):
            AuthSettings(max_attempts_before_lock=0)

    @pytest.mark.parametrize("key", ["stored user", "../escape", "", ".."])
    def test_rejects_unusable_storage_keys(self, key):
        with pytest.raises(ValidationError):
            StorageSettings(user_key=key)

    def test_storage_key_from_env(self, monkeypatch):
        monkeypatch.setenv("STORAGE_USER_KEY", "stored user")
        with pytest.raises(ValidationError):
            StorageSettings()

    def test_bcrypt_rounds_bounds(self):
        assert PinSettings().bcrypt_rounds == 12
        with pytest.raises(ValidationError):
            PinSettings(bcrypt_rounds=3)


class TestValidateAllSettings:
    """Tests for the startup configuration check."""

    def test_local_audit_skips_sheets(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("AUDIT_BACKEND", "local")

        results = validate_all_settings()

        assert results["auth"] is True
        assert results["pin"] is True
        assert "google_sheets" not in results

    def test_sheets_backend_requires_credentials(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("AUDIT_BACKEND", "google_sheets")
        monkeypatch.delenv("GOOGLE_SHEETS_CREDENTIALS_PATH", raising=False)
        monkeypatch.delenv("GOOGLE_SHEETS_SPREADSHEET_ID", raising=False)

        results = validate_all_settings()

        assert results["google_sheets"] is False
        assert "google_sheets_error" in results

    def test_invalid_section_reported(self, monkeypatch, fresh_settings):
        monkeypatch.setenv("PIN_PIN_LENGTH", "2")

        results = validate_all_settings()

        assert results["pin"] is False
        assert "pin_error" in results
