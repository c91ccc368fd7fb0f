"""
Shared fixtures.

Every test runs against in-memory stores and a manually advanced clock:
no files outside tmp_path, no network, no real waiting on lockouts.
"""

from datetime import datetime, timedelta, timezone

import pytest

from moola_auth.audit import AuditLogger
from moola_auth.auth import AuthenticationGate
from moola_auth.config import AuthSettings, PinSettings, StorageSettings
from moola_auth.models.user import UserRecord
from moola_auth.services.clock import Clock
from moola_auth.services.pin import PinService
from moola_auth.services.storage import InMemoryAuditStorage, InMemoryKeyValueStore


START = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
CORRECT_PIN = "2580"
WRONG_PIN = "9173"


class FakeClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self._now = start

    def now(self) -> datetime:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return InMemoryKeyValueStore()


@pytest.fixture
def pin_settings():
    # Lowest bcrypt cost keeps hashing fast in tests
    return PinSettings(bcrypt_rounds=4)


@pytest.fixture
def pin_service(pin_settings):
    return PinService(pin_settings)


@pytest.fixture
def auth_settings():
    # Short monitor interval so expiry tests don't sleep for a second
    return AuthSettings(lockout_check_interval_seconds=0.01)


@pytest.fixture
def storage_settings():
    return StorageSettings(backend="memory")


@pytest.fixture
def audit_storage():
    return InMemoryAuditStorage()


@pytest.fixture
def audit_logger(audit_storage):
    return AuditLogger(audit_storage)


@pytest.fixture
def user(pin_service):
    return UserRecord(
        name="Sarah",
        age=34,
        email="sarah@example.com",
        phone="+33612345678",
        is_email_verified=True,
        pin_hash=pin_service.hash_pin(CORRECT_PIN),
    )


@pytest.fixture
def make_gate(store, pin_service, clock, audit_logger, auth_settings, storage_settings):
    """Coroutine factory building a loaded gate with the shared fixtures."""

    async def factory(**overrides) -> AuthenticationGate:
        target_store = overrides.pop("store", store)
        kwargs = dict(
            pin_service=pin_service,
            clock=clock,
            audit_logger=audit_logger,
            settings=auth_settings,
            storage_settings=storage_settings,
        )
        kwargs.update(overrides)
        return await AuthenticationGate.create(target_store, **kwargs)

    return factory
