"""Authentication gate and its error taxonomy."""

from moola_auth.auth.errors import (
    AccountLockedError,
    AuthenticationError,
    InvalidPINError,
    NetworkUnavailableError,
    SessionExpiredError,
)
from moola_auth.auth.gate import AuthenticationGate

__all__ = [
    "AuthenticationGate",
    "AuthenticationError",
    "InvalidPINError",
    "AccountLockedError",
    "NetworkUnavailableError",
    "SessionExpiredError",
]
