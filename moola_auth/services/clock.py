"""
Clock abstraction.

The gate asks the clock for "now" instead of calling datetime directly,
so lockout timing can be driven deterministically in tests.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone


class Clock(ABC):
    """Source of the current time. Always timezone-aware UTC."""

    @abstractmethod
    def now(self) -> datetime:
        pass


class SystemClock(Clock):
    """Wall clock."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)
