"""
PIN Service

Owns everything about the PIN itself:
1. Which PINs are acceptable when the user picks one
2. How a PIN is hashed for storage
3. How a candidate PIN is verified against a stored hash
4. How long a lockout lasts after N consecutive failures

The authentication gate treats this as a collaborator: it never hashes or
compares anything itself.

DESIGN DECISION: New hashes are bcrypt, so a hash read off the device cannot
be brute-forced across the small PIN space cheaply. Earlier releases stored
salted SHA-256 hex digests (primary salt, or the pre-rename legacy salt);
those still verify so existing accounts can sign in.
"""

import base64
import binascii
import hashlib
import hmac
from enum import Enum
from typing import Optional

import bcrypt
import structlog

from moola_auth.config import PinSettings, get_settings


logger = structlog.get_logger(__name__)


class PinIssue(str, Enum):
    """Reasons a PIN is refused during setup."""
    TOO_SHORT = "too_short"
    OBVIOUS_PATTERN = "obvious_pattern"
    MISMATCH = "mismatch"
    TOO_MANY_ATTEMPTS = "too_many_attempts"

    @property
    def message(self) -> str:
        """Message for the default 4-digit PIN."""
        return _PIN_ISSUE_MESSAGES[self].format(length=4)


_PIN_ISSUE_MESSAGES = {
    PinIssue.TOO_SHORT: "PIN must be {length} digits",
    PinIssue.OBVIOUS_PATTERN: "This PIN is too easy to guess. Please choose something more unique.",
    PinIssue.MISMATCH: "PINs don't match. Please try again.",
    PinIssue.TOO_MANY_ATTEMPTS: "Too many attempts. Let's start over.",
}


# PINs that are rejected for being too predictable
OBVIOUS_PINS = frozenset({
    # Repeated digits
    "0000", "1111", "2222", "3333", "4444",
    "5555", "6666", "7777", "8888", "9999",
    # Sequential patterns
    "0123", "1234", "2345", "3456", "4567",
    "5678", "6789", "9876", "8765", "7654",
    "6543", "5432", "4321", "3210",
    # Common patterns
    "1212", "2121", "1010", "0101",
    "1122", "2211", "1221", "2112",
    # Years (common birth years)
    "1990", "1991", "1992", "1993", "1994",
    "1995", "1996", "1997", "1998", "1999",
    "2000", "2001", "2002", "2003", "2004",
    "2005", "2006", "2007", "2008", "2009",
    "2010", "2020", "2021", "2022", "2023",
    "2024", "2025", "2026",
    # Keypad shapes
    "1357", "2468", "1379", "0852",
    "1470", "2580", "3690",
})


# (minimum failed attempts, lockout seconds), highest threshold first
LOCKOUT_SCHEDULE: tuple[tuple[int, float], ...] = (
    (9, 900.0),
    (7, 300.0),
    (5, 60.0),
    (3, 30.0),
)


_BCRYPT_PREFIXES = ("$2a$", "$2b$", "$2y$")


def is_bcrypt_hash(stored_hash: str) -> bool:
    return stored_hash.startswith(_BCRYPT_PREFIXES)


class PinService:
    """
    PIN validation, hashing and brute-force policy.

    Stateless apart from its settings; safe to share.
    """

    def __init__(self, settings: Optional[PinSettings] = None):
        self._settings = settings or get_settings().pin
        self._legacy_salt = self._decode_legacy_salt(self._settings.legacy_salt_base64)

    @staticmethod
    def _decode_legacy_salt(encoded: str) -> str:
        if not encoded:
            return ""
        try:
            return base64.b64decode(encoded, validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            logger.warning("legacy_salt_invalid")
            return ""

    # -------------------------------------------------------------------------
    # Validation
    # -------------------------------------------------------------------------

    def validate_pin(self, pin: str) -> Optional[PinIssue]:
        """
        Check a newly chosen PIN.

        Returns:
            The first issue found, or None if the PIN is acceptable
        """
        if len(pin) != self._settings.pin_length or not (pin.isascii() and pin.isdigit()):
            return PinIssue.TOO_SHORT

        if pin in OBVIOUS_PINS or self._is_predictable(pin):
            return PinIssue.OBVIOUS_PATTERN

        return None

    def message_for(self, issue: PinIssue) -> str:
        """User-facing message, using the configured PIN length."""
        return _PIN_ISSUE_MESSAGES[issue].format(length=self._settings.pin_length)

    @staticmethod
    def _is_predictable(pin: str) -> bool:
        """Single repeated digit, a run such as 34567 or 98765, or ABAB..."""
        if len(set(pin)) == 1:
            return True

        steps = {int(b) - int(a) for a, b in zip(pin, pin[1:])}
        if steps in ({1}, {-1}):
            return True

        return len(pin) % 2 == 0 and pin == pin[:2] * (len(pin) // 2)

    # -------------------------------------------------------------------------
    # Hashing
    # -------------------------------------------------------------------------

    def hash_pin(self, pin: str) -> str:
        """bcrypt hash of the PIN with a fresh salt."""
        salt = bcrypt.gensalt(rounds=self._settings.bcrypt_rounds)
        return bcrypt.hashpw(pin.encode("utf-8"), salt).decode("utf-8")

    def verify_pin(self, pin: str, stored_hash: str) -> bool:
        """
        Verify a candidate PIN against a stored hash.

        bcrypt hashes are checked with bcrypt. Anything else is treated as a
        salted SHA-256 digest from an earlier release.
        """
        if is_bcrypt_hash(stored_hash):
            try:
                return bcrypt.checkpw(pin.encode("utf-8"), stored_hash.encode("utf-8"))
            except ValueError:
                logger.warning("pin_hash_unreadable")
                return False
        return self._verify_sha256(pin, stored_hash)

    def needs_rehash(self, stored_hash: str) -> bool:
        """True for hashes written before bcrypt was adopted."""
        return not is_bcrypt_hash(stored_hash)

    @staticmethod
    def _digest(salt: str, pin: str) -> str:
        return hashlib.sha256((salt + pin).encode("utf-8")).hexdigest()

    def _verify_sha256(self, pin: str, stored_hash: str) -> bool:
        # Both salts are always hashed so timing does not reveal which matched
        expected = stored_hash.encode("utf-8")
        primary = hmac.compare_digest(
            self._digest(self._settings.primary_salt, pin).encode("utf-8"), expected
        )
        legacy = False
        if self._legacy_salt:
            legacy = hmac.compare_digest(
                self._digest(self._legacy_salt, pin).encode("utf-8"), expected
            )
        return primary or legacy

    # -------------------------------------------------------------------------
    # Brute force protection
    # -------------------------------------------------------------------------

    def lockout_duration(self, attempts: int) -> float:
        """
        Lockout length in seconds after `attempts` consecutive failures.

        Non-decreasing in `attempts`; 0 means no lockout.
        """
        for threshold, seconds in LOCKOUT_SCHEDULE:
            if attempts >= threshold:
                return seconds
        return 0.0
