"""
Authentication errors.

Every failed authentication surfaces as one of these; nothing is reported
as a partial success. Each carries a user-facing `message`.
"""

from typing import Optional


class AuthenticationError(Exception):
    """Base exception for authentication failures."""

    message = "Authentication failed."

    def __init__(self, message: Optional[str] = None):
        if message is not None:
            self.message = message
        super().__init__(self.message)


class InvalidPINError(AuthenticationError):
    """The PIN did not match and no lockout was triggered."""

    message = "Incorrect PIN. Please try again."

    def __init__(self, remaining_attempts: int = 0):
        self.remaining_attempts = remaining_attempts
        super().__init__()


class AccountLockedError(AuthenticationError):
    """
    Attempts are refused until the lockout ends.

    Raised both for a lockout already in force and for one triggered by
    the attempt being reported.
    """

    def __init__(self, remaining_seconds: int):
        self.remaining_seconds = remaining_seconds
        super().__init__(self._format_message(remaining_seconds))

    @staticmethod
    def _format_message(seconds: int) -> str:
        if seconds >= 60:
            minutes = seconds // 60
            plural = "s" if minutes > 1 else ""
            return f"Too many attempts. Try again in {minutes} minute{plural}."
        return f"Too many attempts. Try again in {seconds} seconds."


class NetworkUnavailableError(AuthenticationError):
    """Reserved for a server-backed verifier that cannot be reached."""

    message = "Unable to connect. Please check your connection and try again."


class SessionExpiredError(AuthenticationError):
    """No local account exists, or the user must re-authenticate."""

    message = "Your session has expired. Please log in again."
