"""
Authentication Gate

Owns the device session: PIN verification, failed-attempt counting and the
time-boxed lockout. Consumes a PIN service (verification + lockout policy),
a key-value store and a clock; pushes a GateSnapshot to observers on every
state change.

STATE MACHINE:
- Unauthenticated -> Authenticated   correct PIN
- Unauthenticated -> Locked          wrong PIN reaching the threshold while
                                     the policy returns a positive duration
- Authenticated   -> Unauthenticated logout / clear_state / clear_stored_user
- Locked          -> Unauthenticated deadline passes / clear_state

INVARIANTS:
1. The lockout check runs before any hashing. While locked, the PIN service
   is never consulted.
2. Locked implies a deadline in the future. Every read re-derives lock state
   from the deadline; the background monitor only exists so observers see
   the unlock without polling.
3. Persistence is best effort. A failing store is logged and audited, and
   in-memory state still advances.
4. Attempt count and deadline are two separate writes. A crash between them
   is tolerated: load re-derives state from the deadline's expiry.

All mutating coroutines are serialized on one asyncio.Lock, so the
read-check-increment sequence in authenticate() cannot interleave.
"""

import asyncio
import json
import math
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, Optional
from uuid import UUID

import structlog
from pydantic import ValidationError

from moola_auth.audit import AuditLogger, create_correlation_id
from moola_auth.auth.errors import (
    AccountLockedError,
    InvalidPINError,
    SessionExpiredError,
)
from moola_auth.config import AuthSettings, StorageSettings, get_settings
from moola_auth.models.audit import AuditEventType
from moola_auth.models.session import (
    Authenticated,
    GateSnapshot,
    Locked,
    Session,
    Unauthenticated,
)
from moola_auth.models.user import USER_RECORD_VERSION, UserRecord
from moola_auth.services.clock import Clock, SystemClock
from moola_auth.services.pin import PinService
from moola_auth.services.storage import KeyValueStoreInterface, StorageError


logger = structlog.get_logger(__name__)

Observer = Callable[[GateSnapshot], None]


class AuthenticationGate:
    """
    Single owner of the authentication session on this device.

    Build it with `await AuthenticationGate.create(store)` so persisted
    attempt/lockout state is loaded before first use, and `await close()`
    (or use it as an async context manager) to stop the lockout monitor.
    """

    def __init__(
        self,
        store: KeyValueStoreInterface,
        pin_service: Optional[PinService] = None,
        clock: Optional[Clock] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AuthSettings] = None,
        storage_settings: Optional[StorageSettings] = None,
    ):
        """
        Args:
            store: Key-value store for the user record and lockout state
            pin_service: PIN verification and lockout policy
            clock: Time source (timezone-aware UTC)
            audit_logger: Audit sink; None disables the audit trail
            settings: Lockout policy knobs
            storage_settings: Names of the persisted keys
        """
        self._store = store
        self._pin_service = pin_service or PinService()
        self._clock = clock or SystemClock()
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().auth

        keys = storage_settings or get_settings().storage
        self._user_key = keys.user_key
        self._attempts_key = keys.attempts_key
        self._lockout_key = keys.lockout_key
        self._linked_account_ids_key = keys.linked_account_ids_key

        self._session: Session = Unauthenticated()
        self._failed_attempts = 0
        self._lockout_until: Optional[datetime] = None
        # Deadline of a lockout that expired but has not been persisted yet
        self._expired_until: Optional[datetime] = None

        self._lock = asyncio.Lock()
        self._monitor: Optional[asyncio.Task] = None
        self._observers: list[Observer] = []

    @classmethod
    async def create(
        cls,
        store: KeyValueStoreInterface,
        **kwargs,
    ) -> "AuthenticationGate":
        """Construct a gate and load its persisted state."""
        gate = cls(store, **kwargs)
        await gate.load_persisted_state()
        return gate

    async def __aenter__(self) -> "AuthenticationGate":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        """Stop the lockout monitor. The gate must not be used afterwards."""
        task, self._monitor = self._monitor, None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    # =========================================================================
    # Observable state
    # =========================================================================

    @property
    def session(self) -> Session:
        """Current session. A lockout that has run out reads as Unauthenticated."""
        self._expire_lockout_if_due()
        return self._session

    @property
    def failed_attempts(self) -> int:
        self._expire_lockout_if_due()
        return self._failed_attempts

    @property
    def lockout_until(self) -> Optional[datetime]:
        self._expire_lockout_if_due()
        return self._lockout_until

    @property
    def remaining_attempts(self) -> int:
        """Attempts left before the lockout policy is consulted."""
        return max(0, self._settings.max_attempts_before_lock - self.failed_attempts)

    @property
    def is_locked_out(self) -> bool:
        until = self._lockout_until
        return until is not None and self._clock.now() < until

    @property
    def lockout_seconds_remaining(self) -> Optional[int]:
        """Whole seconds left in the lockout (rounded up), or None if not locked."""
        until = self._lockout_until
        if until is None:
            return None
        remaining = (until - self._clock.now()).total_seconds()
        if remaining <= 0:
            return None
        return math.ceil(remaining)

    def snapshot(self) -> GateSnapshot:
        self._expire_lockout_if_due()
        return self._snapshot()

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """
        Register a callback for state changes.

        Returns:
            A function that removes the callback
        """
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _snapshot(self) -> GateSnapshot:
        return GateSnapshot(
            session=self._session,
            failed_attempts=self._failed_attempts,
            lockout_until=self._lockout_until,
            remaining_attempts=max(
                0, self._settings.max_attempts_before_lock - self._failed_attempts
            ),
        )

    def _notify(self) -> None:
        snapshot = self._snapshot()
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("gate_observer_failed")

    # =========================================================================
    # Commands
    # =========================================================================

    async def authenticate(
        self,
        pin: str,
        correlation_id: Optional[UUID] = None,
    ) -> UserRecord:
        """
        Verify a PIN against the stored account.

        Returns:
            The authenticated user record

        Raises:
            AccountLockedError: A lockout is in force, or this attempt triggered one
            SessionExpiredError: No local account exists
            InvalidPINError: Wrong PIN, no lockout triggered
        """
        correlation_id = correlation_id or create_correlation_id()

        async with self._lock:
            await self._settle_expired_lockout(correlation_id)

            # Short-circuit before any hashing work
            remaining = self.lockout_seconds_remaining
            if remaining is not None:
                logger.info("authentication_rejected_locked", remaining_seconds=remaining)
                if self._audit_logger:
                    await self._audit_logger.log_locked_attempt_rejected(
                        remaining_seconds=remaining,
                        correlation_id=correlation_id,
                    )
                raise AccountLockedError(remaining_seconds=remaining)

            user = await self._load_stored_user()
            if user is None:
                logger.warning("authentication_without_stored_user")
                if self._audit_logger:
                    await self._audit_logger.log_no_stored_user(correlation_id=correlation_id)
                raise SessionExpiredError()

            if self._pin_service.verify_pin(pin, user.pin_hash):
                await self._handle_successful_login(user, correlation_id)
                return user

            await self._handle_failed_attempt(correlation_id)

            if self._failed_attempts >= self._settings.max_attempts_before_lock:
                duration = self._pin_service.lockout_duration(self._failed_attempts)
                if duration > 0:
                    until = self._clock.now() + timedelta(seconds=duration)
                    await self._set_lockout(until, correlation_id)
                    logger.warning(
                        "account_locked",
                        user=user.masked_email,
                        failed_attempts=self._failed_attempts,
                        lockout_seconds=duration,
                    )
                    if self._audit_logger:
                        await self._audit_logger.log_account_locked(
                            masked_email=user.masked_email,
                            failed_attempts=self._failed_attempts,
                            lockout_seconds=duration,
                            locked_until=until,
                            correlation_id=correlation_id,
                        )
                    raise AccountLockedError(remaining_seconds=math.ceil(duration))

            remaining_attempts = self.remaining_attempts
            logger.info(
                "authentication_failed",
                user=user.masked_email,
                failed_attempts=self._failed_attempts,
                remaining_attempts=remaining_attempts,
            )
            if self._audit_logger:
                await self._audit_logger.log_authentication_failed(
                    masked_email=user.masked_email,
                    failed_attempts=self._failed_attempts,
                    remaining_attempts=remaining_attempts,
                    correlation_id=correlation_id,
                )
            raise InvalidPINError(remaining_attempts=remaining_attempts)

    def logout(self) -> None:
        """
        End an authenticated session.

        The attempt counter and the stored user are untouched. Logging out
        never lifts a lockout: a locked session stays locked.
        """
        if isinstance(self.session, Locked):
            logger.info("logout_while_locked")
            return
        self._session = Unauthenticated()
        self._notify()
        logger.info("logged_out")

    async def clear_state(self, correlation_id: Optional[UUID] = None) -> None:
        """
        Reset attempts and lockout, sign out, and erase the persisted
        attempt/lockout keys. The stored user is kept. Idempotent.
        """
        async with self._lock:
            await self._clear_state_locked(correlation_id)

    async def clear_stored_user(self, correlation_id: Optional[UUID] = None) -> None:
        """Remove the saved account from this device and sign out."""
        async with self._lock:
            await self._clear_stored_user_locked(correlation_id)

    async def reset_all_local_state(self, correlation_id: Optional[UUID] = None) -> None:
        """Factory reset: stored user, attempt/lockout state and linked accounts."""
        async with self._lock:
            await self._clear_stored_user_locked(correlation_id)
            await self._clear_state_locked(correlation_id)
            await self._delete(self._linked_account_ids_key, correlation_id)

            logger.info("local_state_reset")
            if self._audit_logger:
                await self._audit_logger.log_session_event(
                    event_type=AuditEventType.LOCAL_STATE_RESET,
                    description="All local authentication state removed",
                    correlation_id=correlation_id,
                )

    async def store_user(
        self,
        user: UserRecord,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """
        Persist `user` as the single local account, replacing any previous one.

        Called by onboarding once account creation succeeded.

        Returns:
            True if the store accepted the write
        """
        stored = await self._write(self._user_key, user.to_storage_bytes(), correlation_id)
        if stored:
            logger.info("user_stored", user=user.masked_email)
            if self._audit_logger:
                await self._audit_logger.log_session_event(
                    event_type=AuditEventType.USER_STORED,
                    description="Local account saved",
                    masked_email=user.masked_email,
                    correlation_id=correlation_id,
                )
        return stored

    # =========================================================================
    # Queries
    # =========================================================================

    async def has_stored_user(self) -> bool:
        return await self._load_stored_user() is not None

    async def stored_user_name(self) -> Optional[str]:
        user = await self._load_stored_user()
        return user.name if user else None

    async def stored_user_email(self) -> Optional[str]:
        user = await self._load_stored_user()
        return user.email if user else None

    async def get_authenticated_user(self) -> Optional[UserRecord]:
        """The full stored user record (used after successful authentication)."""
        return await self._load_stored_user()

    async def get_linked_account_ids(self) -> list[str]:
        """Bank account ids linked on this device, in linking order."""
        raw = await self._read(self._linked_account_ids_key)
        if raw is None:
            return []
        try:
            data = json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            logger.warning("linked_account_ids_unreadable")
            return []
        if not isinstance(data, list):
            logger.warning("linked_account_ids_unreadable")
            return []
        return [str(item) for item in data]

    async def set_linked_account_ids(
        self,
        account_ids: Iterable[str],
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        """Replace the linked account ids (duplicates dropped, order kept)."""
        unique = list(dict.fromkeys(str(account_id) for account_id in account_ids))
        return await self._write(
            self._linked_account_ids_key,
            json.dumps(unique).encode("utf-8"),
            correlation_id,
        )

    # =========================================================================
    # Loading
    # =========================================================================

    async def load_persisted_state(self) -> GateSnapshot:
        """
        Rebuild attempt count and lockout from the store.

        A deadline that already passed is discarded (and the counter reset
        when configured), so a crash between the two writes never leaves a
        stale lock behind.
        """
        async with self._lock:
            self._failed_attempts = self._decode_attempts(await self._read(self._attempts_key))
            until = self._decode_deadline(await self._read(self._lockout_key))

            if until is not None and self._clock.now() < until:
                self._lockout_until = until
                self._session = Locked(until=until)
                self._start_lockout_monitor()
            elif until is not None:
                # Lockout ran out while the app was closed
                self._lockout_until = None
                if self._settings.reset_attempts_on_lockout_expiry:
                    self._failed_attempts = 0
                await self._persist_state()

            logger.info(
                "gate_state_loaded",
                failed_attempts=self._failed_attempts,
                locked=self._lockout_until is not None,
            )
            self._notify()
            return self._snapshot()

    def _decode_attempts(self, raw: Optional[bytes]) -> int:
        if raw is None:
            return 0
        try:
            value = int(raw.decode("ascii"))
        except (UnicodeDecodeError, ValueError):
            logger.warning("persisted_attempts_unreadable")
            return 0
        return max(0, value)

    def _decode_deadline(self, raw: Optional[bytes]) -> Optional[datetime]:
        if raw is None:
            return None
        try:
            timestamp = float(raw.decode("ascii"))
            if not math.isfinite(timestamp) or timestamp <= 0:
                return None
            return datetime.fromtimestamp(timestamp, tz=timezone.utc)
        except (UnicodeDecodeError, ValueError, OverflowError, OSError):
            logger.warning("persisted_lockout_unreadable")
            return None

    async def _load_stored_user(self) -> Optional[UserRecord]:
        raw = await self._read(self._user_key)
        if raw is None:
            return None
        try:
            user = UserRecord.from_storage_bytes(raw)
        except ValidationError as e:
            logger.warning("stored_user_unreadable", error_count=e.error_count())
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="stored_user_unreadable",
                    error_message=f"{e.error_count()} validation error(s)",
                    details={"key": self._user_key},
                )
            return None
        if user.schema_version != USER_RECORD_VERSION:
            logger.warning(
                "stored_user_version_unsupported",
                schema_version=user.schema_version,
                supported_version=USER_RECORD_VERSION,
            )
            if self._audit_logger:
                await self._audit_logger.log_error(
                    error_type="stored_user_version_unsupported",
                    error_message=f"schema_version {user.schema_version} is not {USER_RECORD_VERSION}",
                    details={"key": self._user_key},
                )
            return None
        return user

    # =========================================================================
    # Transitions
    # =========================================================================

    async def _handle_successful_login(
        self,
        user: UserRecord,
        correlation_id: Optional[UUID],
    ) -> None:
        self._failed_attempts = 0
        self._lockout_until = None
        self._session = Authenticated(user=user)
        self._notify()
        await self._persist_state(correlation_id)

        logger.info("authentication_succeeded", user=user.masked_email)
        if self._audit_logger:
            await self._audit_logger.log_authentication_succeeded(
                masked_email=user.masked_email,
                correlation_id=correlation_id,
            )

    async def _handle_failed_attempt(self, correlation_id: Optional[UUID]) -> None:
        self._failed_attempts += 1
        self._notify()
        await self._persist_state(correlation_id)

    async def _set_lockout(self, until: datetime, correlation_id: Optional[UUID]) -> None:
        self._lockout_until = until
        self._session = Locked(until=until)
        self._notify()
        await self._persist_state(correlation_id)
        self._start_lockout_monitor()

    async def _clear_state_locked(self, correlation_id: Optional[UUID]) -> None:
        self._cancel_lockout_monitor()
        self._failed_attempts = 0
        self._lockout_until = None
        self._expired_until = None
        self._session = Unauthenticated()
        self._notify()

        await self._delete(self._attempts_key, correlation_id)
        await self._delete(self._lockout_key, correlation_id)

        logger.info("auth_state_cleared")
        if self._audit_logger:
            await self._audit_logger.log_session_event(
                event_type=AuditEventType.STATE_CLEARED,
                description="Failed attempts and lockout cleared",
                correlation_id=correlation_id,
            )

    async def _clear_stored_user_locked(self, correlation_id: Optional[UUID]) -> None:
        await self._delete(self._user_key, correlation_id)
        if not isinstance(self.session, Locked):
            self._session = Unauthenticated()
        self._notify()

        logger.info("stored_user_cleared")
        if self._audit_logger:
            await self._audit_logger.log_session_event(
                event_type=AuditEventType.USER_CLEARED,
                description="Local account removed from device",
                correlation_id=correlation_id,
            )

    def _expire_lockout_if_due(self) -> bool:
        """
        Apply an expired lockout to in-memory state.

        Synchronous so property reads can use it. The store write and the
        audit event happen in _settle_expired_lockout, run by the monitor on
        its next tick or by the next gate coroutine, whichever comes first.
        """
        until = self._lockout_until
        if until is None or self._clock.now() < until:
            return False

        self._lockout_until = None
        if self._settings.reset_attempts_on_lockout_expiry:
            self._failed_attempts = 0
        if isinstance(self._session, Locked):
            self._session = Unauthenticated()
        self._expired_until = until

        logger.info("lockout_expired", locked_until=until.isoformat())
        self._notify()
        return True

    async def _settle_expired_lockout(self, correlation_id: Optional[UUID] = None) -> None:
        self._expire_lockout_if_due()
        until, self._expired_until = self._expired_until, None
        if until is None:
            return

        await self._persist_state(correlation_id)
        if self._audit_logger:
            await self._audit_logger.log_lockout_expired(
                locked_until=until,
                correlation_id=correlation_id,
            )

    # =========================================================================
    # Lockout monitor
    # =========================================================================

    def _start_lockout_monitor(self) -> None:
        self._cancel_lockout_monitor()
        self._monitor = asyncio.create_task(self._run_lockout_monitor())

    def _cancel_lockout_monitor(self) -> None:
        task, self._monitor = self._monitor, None
        if task is not None and not task.done():
            task.cancel()

    async def _run_lockout_monitor(self) -> None:
        interval = self._settings.lockout_check_interval_seconds
        while True:
            await asyncio.sleep(interval)
            async with self._lock:
                await self._settle_expired_lockout()
                if self._lockout_until is None:
                    return

    # =========================================================================
    # Best-effort persistence
    # =========================================================================

    async def _persist_state(self, correlation_id: Optional[UUID] = None) -> None:
        await self._write(
            self._attempts_key,
            str(self._failed_attempts).encode("ascii"),
            correlation_id,
        )
        if self._lockout_until is not None:
            await self._write(
                self._lockout_key,
                str(self._lockout_until.timestamp()).encode("ascii"),
                correlation_id,
            )
        else:
            await self._delete(self._lockout_key, correlation_id)

    async def _read(self, key: str) -> Optional[bytes]:
        try:
            return await self._store.get(key)
        except StorageError as e:
            logger.warning("storage_read_failed", key=key, error=str(e))
            return None

    async def _write(
        self,
        key: str,
        value: bytes,
        correlation_id: Optional[UUID] = None,
    ) -> bool:
        try:
            await self._store.set(key, value)
            return True
        except StorageError as e:
            await self._report_storage_error("set", key, e, correlation_id)
            return False

    async def _delete(self, key: str, correlation_id: Optional[UUID] = None) -> bool:
        try:
            await self._store.remove(key)
            return True
        except StorageError as e:
            await self._report_storage_error("remove", key, e, correlation_id)
            return False

    async def _report_storage_error(
        self,
        operation: str,
        key: str,
        error: StorageError,
        correlation_id: Optional[UUID],
    ) -> None:
        logger.warning("storage_write_failed", operation=operation, key=key, error=str(error))
        if self._audit_logger:
            await self._audit_logger.log_storage_error(
                operation=operation,
                key=key,
                error_message=str(error),
                correlation_id=correlation_id,
            )
