"""
Tests for the PIN service: rules, hashing and the lockout schedule.
"""

import hashlib

import pytest

from moola_auth.config import PinSettings
from moola_auth.services.pin import (
    LOCKOUT_SCHEDULE,
    PinIssue,
    PinService,
    is_bcrypt_hash,
)


class TestValidatePin:
    """Tests for PIN rules applied during setup."""

    @pytest.mark.parametrize("pin", ["4829", "7305", "0918"])
    def test_accepts_unremarkable_pins(self, pin_service, pin):
        assert pin_service.validate_pin(pin) is None

    @pytest.mark.parametrize("pin", ["", "123", "12345", "12a4", "１２３４"])
    def test_rejects_wrong_shape(self, pin_service, pin):
        """Wrong length or anything but ASCII digits."""
        assert pin_service.validate_pin(pin) == PinIssue.TOO_SHORT

    @pytest.mark.parametrize("pin", ["0000", "1234", "4321", "1990", "2580", "1122"])
    def test_rejects_obvious_pins(self, pin_service, pin):
        assert pin_service.validate_pin(pin) == PinIssue.OBVIOUS_PATTERN

    def test_rejects_abab_repeat(self, pin_service):
        """Repeating pairs not in the list are still refused."""
        assert pin_service.validate_pin("3434") == PinIssue.OBVIOUS_PATTERN
        assert pin_service.validate_pin("9595") == PinIssue.OBVIOUS_PATTERN

    def test_respects_configured_length(self):
        service = PinService(PinSettings(pin_length=6))
        assert service.validate_pin("482913") is None
        assert service.validate_pin("4829") == PinIssue.TOO_SHORT
        assert service.message_for(PinIssue.TOO_SHORT) == "PIN must be 6 digits"

    @pytest.mark.parametrize("pin", ["777777", "345678", "987654", "272727"])
    def test_rejects_predictable_longer_pins(self, pin):
        service = PinService(PinSettings(pin_length=6))
        assert service.validate_pin(pin) == PinIssue.OBVIOUS_PATTERN

    def test_issue_messages(self):
        assert PinIssue.TOO_SHORT.message == "PIN must be 4 digits"
        assert PinIssue.MISMATCH.message == "PINs don't match. Please try again."
        assert PinIssue.TOO_MANY_ATTEMPTS.message == "Too many attempts. Let's start over."

    def test_message_for_default_length(self, pin_service):
        assert pin_service.message_for(PinIssue.TOO_SHORT) == "PIN must be 4 digits"


class TestHashing:
    """Tests for hashing and verification."""

    def test_hash_is_bcrypt(self, pin_service):
        stored = pin_service.hash_pin("4829")
        assert stored.startswith("$2b$04$")
        assert is_bcrypt_hash(stored)

    def test_hash_is_salted_per_call(self, pin_service):
        assert pin_service.hash_pin("4829") != pin_service.hash_pin("4829")

    def test_hash_never_contains_pin(self, pin_service):
        assert "4829" not in pin_service.hash_pin("4829")

    def test_verify_round_trip(self, pin_service):
        stored = pin_service.hash_pin("4829")
        assert pin_service.verify_pin("4829", stored)
        assert not pin_service.verify_pin("4828", stored)

    def test_verify_sha256_from_earlier_release(self, pin_service):
        stored = hashlib.sha256(b"Moola_PIN_Salt_v1" + b"4829").hexdigest()
        assert pin_service.verify_pin("4829", stored)
        assert not pin_service.verify_pin("4828", stored)

    def test_verify_legacy_salt(self, pin_service):
        legacy = hashlib.sha256(b"OnboardingApp_PIN_Salt_v1" + b"4829").hexdigest()
        assert pin_service.verify_pin("4829", legacy)

    def test_legacy_salt_can_be_disabled(self):
        service = PinService(PinSettings(legacy_salt_base64="", bcrypt_rounds=4))
        legacy = hashlib.sha256(b"OnboardingApp_PIN_Salt_v1" + b"4829").hexdigest()
        assert not service.verify_pin("4829", legacy)

    def test_invalid_legacy_salt_is_ignored(self):
        service = PinService(PinSettings(legacy_salt_base64="not base64!", bcrypt_rounds=4))
        assert service.verify_pin("4829", service.hash_pin("4829"))

    def test_needs_rehash(self, pin_service):
        assert not pin_service.needs_rehash(pin_service.hash_pin("4829"))
        assert pin_service.needs_rehash(hashlib.sha256(b"Moola_PIN_Salt_v1" + b"4829").hexdigest())

    def test_verify_against_garbage_hash(self, pin_service):
        assert not pin_service.verify_pin("4829", "")
        assert not pin_service.verify_pin("4829", "ünïcode")
        assert not pin_service.verify_pin("4829", "$2b$12$truncated")


class TestLockoutDuration:
    """Tests for the escalating lockout schedule."""

    @pytest.mark.parametrize(
        "attempts, seconds",
        [
            (0, 0.0), (2, 0.0),
            (3, 30.0), (4, 30.0),
            (5, 60.0), (6, 60.0),
            (7, 300.0), (8, 300.0),
            (9, 900.0), (50, 900.0),
        ],
    )
    def test_schedule(self, pin_service, attempts, seconds):
        assert pin_service.lockout_duration(attempts) == seconds

    def test_non_decreasing(self, pin_service):
        durations = [pin_service.lockout_duration(n) for n in range(20)]
        assert durations == sorted(durations)

    def test_schedule_ordered_highest_first(self):
        thresholds = [threshold for threshold, _ in LOCKOUT_SCHEDULE]
        assert thresholds == sorted(thresholds, reverse=True)
