"""
Audit Logger

DESIGN DECISION: Every authentication-relevant action is logged.
This provides:
1. A trail of sign-in attempts and lockouts
2. Debugging capability when a user reports being locked out
3. Evidence of brute-force attempts

The audit logger:
- Is async so it can await remote audit storage
- Gracefully handles failures (a broken audit sink never blocks sign-in)
- Supports correlation IDs to trace related events
"""

from datetime import datetime
from typing import Optional
from uuid import UUID, uuid4

import structlog

from moola_auth.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from moola_auth.services.storage import AuditStorageInterface


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. An audit store, when one is configured
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("moola_auth.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_authentication_succeeded(
        self,
        masked_email: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a successful PIN entry."""
        await self.log(AuditEventBuilder.authentication_succeeded(
            masked_email=masked_email,
            correlation_id=correlation_id,
        ))

    async def log_authentication_failed(
        self,
        masked_email: str,
        failed_attempts: int,
        remaining_attempts: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a wrong PIN that did not trigger a lockout."""
        await self.log(AuditEventBuilder.authentication_failed(
            masked_email=masked_email,
            failed_attempts=failed_attempts,
            remaining_attempts=remaining_attempts,
            correlation_id=correlation_id,
        ))

    async def log_account_locked(
        self,
        masked_email: str,
        failed_attempts: int,
        lockout_seconds: float,
        locked_until: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a lockout triggered by a wrong PIN."""
        await self.log(AuditEventBuilder.account_locked(
            masked_email=masked_email,
            failed_attempts=failed_attempts,
            lockout_seconds=lockout_seconds,
            locked_until=locked_until,
            correlation_id=correlation_id,
        ))

    async def log_locked_attempt_rejected(
        self,
        remaining_seconds: int,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.locked_attempt_rejected(
            remaining_seconds=remaining_seconds,
            correlation_id=correlation_id,
        ))

    async def log_lockout_expired(
        self,
        locked_until: datetime,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.lockout_expired(
            locked_until=locked_until,
            correlation_id=correlation_id,
        ))

    async def log_no_stored_user(
        self,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.no_stored_user(correlation_id=correlation_id))

    async def log_session_event(
        self,
        event_type: AuditEventType,
        description: str,
        masked_email: Optional[str] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log logout, clears, resets and account writes."""
        await self.log(AuditEventBuilder.session_event(
            event_type=event_type,
            description=description,
            masked_email=masked_email,
            correlation_id=correlation_id,
        ))

    async def log_storage_error(
        self,
        operation: str,
        key: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a best-effort storage write that failed."""
        await self.log(AuditEventBuilder.storage_error(
            operation=operation,
            key=key,
            error_message=error_message,
            correlation_id=correlation_id,
        ))

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        await self.log(AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., a PIN submission).
    Pass it through all subsequent operations.
    """
    return uuid4()
