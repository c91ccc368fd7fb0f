"""
Main Orchestrator for Moola Auth

This module ties the authentication gate to the flows that drive it:
1. Login (PIN pad -> gate -> displayable result)
2. PIN setup (choose -> confirm -> store account), including the
   forgotten-PIN reset

DESIGN DECISION: The flows hold no authentication state of their own.
- The gate is the only owner of session, attempts and lockout
- Flows translate gate errors into results the screen can render
- Plaintext PINs live only for the duration of a setup and are dropped
  as soon as they are hashed
"""

from typing import Optional
from uuid import UUID

import structlog

from moola_auth.audit import AuditLogger, create_correlation_id
from moola_auth.auth import (
    AccountLockedError,
    AuthenticationError,
    AuthenticationGate,
    InvalidPINError,
    SessionExpiredError,
)
from moola_auth.config import PinSettings, Settings, get_settings
from moola_auth.models.audit import AuditEventType
from moola_auth.models.session import LoginResult, LoginStatus
from moola_auth.models.user import (
    InvestorProfile,
    MembershipLevel,
    UserRecord,
    mask_email,
)
from moola_auth.services.clock import Clock
from moola_auth.services.pin import PinIssue, PinService
from moola_auth.services.storage import (
    FileKeyValueStore,
    GoogleSheetsAuditStorage,
    GoogleSheetsClient,
    InMemoryAuditStorage,
    InMemoryKeyValueStore,
    KeyValueStoreInterface,
)


logger = structlog.get_logger(__name__)


class LoginFlow:
    """
    Logic behind the login screen.

    Flow:
    1. Greet the stored user (name, masked email)
    2. Submit a complete PIN to the gate
    3. Map the outcome to SUCCESS / FAILURE / LOCKED

    An incomplete PIN never reaches the gate, so it never counts as an attempt.
    """

    def __init__(
        self,
        gate: AuthenticationGate,
        pin_settings: Optional[PinSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._gate = gate
        self._pin_length = (pin_settings or get_settings().pin).pin_length
        self._audit_logger = audit_logger

    async def submit_pin(
        self,
        pin: str,
        correlation_id: Optional[UUID] = None,
    ) -> LoginResult:
        """
        Submit a PIN entered on the keypad.

        Returns:
            LoginResult describing what the screen should show
        """
        correlation_id = correlation_id or create_correlation_id()

        if len(pin) != self._pin_length:
            return LoginResult(
                status=LoginStatus.FAILURE,
                message=f"PIN must be {self._pin_length} digits",
            )

        try:
            user = await self._gate.authenticate(pin, correlation_id)
        except AccountLockedError as e:
            return LoginResult(
                status=LoginStatus.LOCKED,
                message=e.message,
                seconds_remaining=e.remaining_seconds,
            )
        except InvalidPINError as e:
            return LoginResult(
                status=LoginStatus.FAILURE,
                message=e.message,
                remaining_attempts=e.remaining_attempts,
            )
        except AuthenticationError as e:
            return LoginResult(status=LoginStatus.FAILURE, message=e.message)

        return LoginResult(status=LoginStatus.SUCCESS, user=user)

    def current_lockout(self) -> Optional[LoginResult]:
        """
        The LOCKED result to show when the screen opens during a lockout.

        Returns None when no lockout is in force.
        """
        seconds = self._gate.lockout_seconds_remaining
        if seconds is None:
            return None
        return LoginResult(
            status=LoginStatus.LOCKED,
            message=AccountLockedError(seconds).message,
            seconds_remaining=seconds,
        )

    @property
    def remaining_attempts(self) -> int:
        return self._gate.remaining_attempts

    async def user_name(self) -> Optional[str]:
        """First name for the greeting."""
        return await self._gate.stored_user_name()

    async def masked_email(self) -> Optional[str]:
        email = await self._gate.stored_user_email()
        return mask_email(email) if email is not None else None

    async def logout(self, correlation_id: Optional[UUID] = None) -> None:
        correlation_id = correlation_id or create_correlation_id()
        self._gate.logout()

        if self._audit_logger:
            await self._audit_logger.log_session_event(
                event_type=AuditEventType.LOGGED_OUT,
                description="User logged out",
                correlation_id=correlation_id,
            )

    async def reset_account(self, correlation_id: Optional[UUID] = None) -> None:
        """'Not you?' on the login screen: wipe everything stored on this device."""
        await self._gate.reset_all_local_state(correlation_id or create_correlation_id())


class PinSetupFlow:
    """
    Creating a PIN during onboarding, and replacing a forgotten one.

    Flow:
    1. choose_pin -> rules check (length, obvious patterns)
    2. confirm_pin -> must match; a limited number of mismatches is
       allowed before the whole setup restarts
    3. complete_onboarding -> store the new account with the PIN hash

    The forgotten-PIN path (reset_pin) keeps the stored account and only
    swaps its PIN hash, then clears attempts and lockout.
    """

    def __init__(
        self,
        gate: AuthenticationGate,
        pin_service: Optional[PinService] = None,
        pin_settings: Optional[PinSettings] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._gate = gate
        self._pin_service = pin_service or PinService(pin_settings)
        self._max_confirmations = (pin_settings or get_settings().pin).max_confirmation_attempts
        self._audit_logger = audit_logger

        self._chosen_pin: Optional[str] = None
        self._pin_hash: Optional[str] = None
        self._confirmations_left = self._max_confirmations

    @property
    def pin_hash(self) -> Optional[str]:
        """Hash of the confirmed PIN, or None until confirmation succeeds."""
        return self._pin_hash

    @property
    def confirmations_left(self) -> int:
        return self._confirmations_left

    @property
    def awaiting_confirmation(self) -> bool:
        return self._chosen_pin is not None

    def choose_pin(self, pin: str) -> Optional[PinIssue]:
        """
        First entry of the new PIN.

        Returns:
            The rule the PIN breaks, or None if it was accepted
        """
        issue = self._pin_service.validate_pin(pin)
        if issue is not None:
            return issue

        self._chosen_pin = pin
        self._pin_hash = None
        return None

    def confirm_pin(self, pin: str) -> Optional[PinIssue]:
        """
        Second entry of the new PIN.

        Returns:
            MISMATCH while confirmations are left, TOO_MANY_ATTEMPTS once
            they run out (setup restarts), None on success

        Raises:
            ValueError: If no PIN has been chosen yet
        """
        if self._chosen_pin is None:
            raise ValueError("Choose a PIN before confirming it")

        if pin != self._chosen_pin:
            self._confirmations_left -= 1
            if self._confirmations_left <= 0:
                logger.info("pin_setup_restarted")
                self.restart()
                return PinIssue.TOO_MANY_ATTEMPTS
            return PinIssue.MISMATCH

        self._pin_hash = self._pin_service.hash_pin(self._chosen_pin)
        self._chosen_pin = None
        return None

    def restart(self) -> None:
        """Forget the chosen PIN and start the setup over."""
        self._chosen_pin = None
        self._pin_hash = None
        self._confirmations_left = self._max_confirmations

    async def complete_onboarding(
        self,
        name: str,
        email: str,
        age: int = 0,
        phone: str = "",
        is_email_verified: bool = False,
        investor_profile: Optional[InvestorProfile] = None,
        membership_level: MembershipLevel = MembershipLevel.STANDARD,
        correlation_id: Optional[UUID] = None,
    ) -> UserRecord:
        """
        Create the local account with the confirmed PIN.

        Raises:
            ValueError: If the PIN has not been confirmed
            pydantic.ValidationError: If the account details are invalid
        """
        if self._pin_hash is None:
            raise ValueError("PIN has not been confirmed")

        correlation_id = correlation_id or create_correlation_id()

        user = UserRecord(
            name=name,
            age=age,
            email=email,
            phone=phone,
            is_email_verified=is_email_verified,
            pin_hash=self._pin_hash,
            investor_profile=investor_profile,
            membership_level=membership_level,
        )
        await self._gate.store_user(user, correlation_id)
        self.restart()

        logger.info("onboarding_completed", user=user.masked_email)
        return user

    async def reset_pin(
        self,
        new_pin: str,
        correlation_id: Optional[UUID] = None,
    ) -> Optional[PinIssue]:
        """
        Replace the PIN of the stored account (forgotten-PIN recovery).

        The caller has already verified the user out of band and confirmed
        the new PIN. Failed attempts and any lockout are cleared.

        Returns:
            The rule the new PIN breaks, or None on success

        Raises:
            SessionExpiredError: If there is no stored account to update
        """
        issue = self._pin_service.validate_pin(new_pin)
        if issue is not None:
            return issue

        correlation_id = correlation_id or create_correlation_id()

        user = await self._gate.get_authenticated_user()
        if user is None:
            raise SessionExpiredError()

        updated = user.model_copy(update={"pin_hash": self._pin_service.hash_pin(new_pin)})
        await self._gate.store_user(updated, correlation_id)
        await self._gate.clear_state(correlation_id)

        logger.info("pin_reset", user=updated.masked_email)
        if self._audit_logger:
            await self._audit_logger.log_session_event(
                event_type=AuditEventType.PIN_RESET,
                description="PIN replaced through recovery",
                masked_email=updated.masked_email,
                correlation_id=correlation_id,
            )
        return None


def create_audit_logger(settings: Optional[Settings] = None) -> AuditLogger:
    """
    Build the audit logger for the configured backend.

    Falls back to local-only logging when Google Sheets is selected but
    not configured.
    """
    settings = settings or get_settings()
    backend = settings.app.audit_backend

    if backend == "memory":
        return AuditLogger(InMemoryAuditStorage())

    if backend == "google_sheets":
        try:
            sheets_client = GoogleSheetsClient()
            return AuditLogger(GoogleSheetsAuditStorage(sheets_client))
        except Exception as e:
            # Storage not configured - continue without it
            logger.warning("audit_storage_not_configured", error=str(e))

    return AuditLogger()  # Local-only logging


def create_store(settings: Optional[Settings] = None) -> KeyValueStoreInterface:
    """Build the key-value store for the configured backend."""
    storage = (settings or get_settings()).storage
    if storage.backend == "memory":
        return InMemoryKeyValueStore()
    return FileKeyValueStore(storage.data_path)


async def create_auth_components(
    settings: Optional[Settings] = None,
    store: Optional[KeyValueStoreInterface] = None,
    clock: Optional[Clock] = None,
) -> tuple[LoginFlow, PinSetupFlow, AuthenticationGate]:
    """
    Factory function to create all authentication components.

    Args:
        settings: Settings container; the cached one when None
        store: Key-value store overriding the configured backend
        clock: Time source; the wall clock when None

    Returns:
        (login_flow, pin_setup_flow, gate). Close the gate on shutdown.
    """
    settings = settings or get_settings()
    pin_settings = settings.pin

    audit_logger = create_audit_logger(settings)
    pin_service = PinService(pin_settings)

    gate = await AuthenticationGate.create(
        store or create_store(settings),
        pin_service=pin_service,
        clock=clock,
        audit_logger=audit_logger,
        settings=settings.auth,
        storage_settings=settings.storage,
    )

    login_flow = LoginFlow(
        gate,
        pin_settings=pin_settings,
        audit_logger=audit_logger,
    )

    pin_setup_flow = PinSetupFlow(
        gate,
        pin_service=pin_service,
        pin_settings=pin_settings,
        audit_logger=audit_logger,
    )

    return login_flow, pin_setup_flow, gate
