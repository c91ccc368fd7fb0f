"""PIN services package."""

from moola_auth.services.pin.pin_service import (
    LOCKOUT_SCHEDULE,
    OBVIOUS_PINS,
    PinIssue,
    PinService,
    is_bcrypt_hash,
)

__all__ = [
    "LOCKOUT_SCHEDULE",
    "OBVIOUS_PINS",
    "PinIssue",
    "PinService",
    "is_bcrypt_hash",
]
