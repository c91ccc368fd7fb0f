"""
Audit Models for Moola Auth

Every authentication-relevant action is recorded for audit purposes.
This provides:
1. A trail of sign-in attempts and lockouts on the device
2. Debugging information when a user reports being locked out
3. Evidence of brute-force attempts

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
PINs and PIN hashes never appear in an event; emails appear masked.
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


# Worksheet header for the Sheets audit store
AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Authentication
    AUTHENTICATION_SUCCEEDED = "authentication_succeeded"
    AUTHENTICATION_FAILED = "authentication_failed"
    ACCOUNT_LOCKED = "account_locked"
    LOCKED_ATTEMPT_REJECTED = "locked_attempt_rejected"
    LOCKOUT_EXPIRED = "lockout_expired"
    NO_STORED_USER = "no_stored_user"

    # Session
    LOGGED_OUT = "logged_out"
    STATE_CLEARED = "state_cleared"

    # Local account
    USER_STORED = "user_stored"
    USER_CLEARED = "user_cleared"
    LOCAL_STATE_RESET = "local_state_reset"
    PIN_RESET = "pin_reset"

    # System events
    STORAGE_ERROR = "storage_error"
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=_utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'user', 'session')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="Identifier of the entity (masked email for users)"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., one PIN submission)"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )

    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    # Error information (if applicable)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """JSON-safe fields for structured logging."""
        return self.model_dump(mode="json")

    def to_sheets_row(self) -> list[str]:
        """One worksheet row, in AUDIT_COLUMNS order. Empty cells for None."""
        cells = self.to_log_dict()
        cells["timestamp"] = self.timestamp.isoformat()
        cells["details_json"] = json.dumps(self.details, default=str) if self.details else ""
        cells["is_user_action"] = str(self.is_user_action)
        return ["" if cells.get(column) is None else str(cells[column]) for column in AUDIT_COLUMNS]


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.authentication_succeeded(masked_email, correlation_id)
        event = AuditEventBuilder.account_locked(masked_email, 3, 30.0, until, correlation_id)
    """

    @staticmethod
    def authentication_succeeded(
        masked_email: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTHENTICATION_SUCCEEDED,
            entity_type="user",
            entity_id=masked_email,
            correlation_id=correlation_id,
            description="PIN accepted, session authenticated",
            is_user_action=True,
        )

    @staticmethod
    def authentication_failed(
        masked_email: str,
        failed_attempts: int,
        remaining_attempts: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.AUTHENTICATION_FAILED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=masked_email,
            correlation_id=correlation_id,
            description=f"Incorrect PIN ({failed_attempts} consecutive failures)",
            details={
                "failed_attempts": failed_attempts,
                "remaining_attempts": remaining_attempts,
            },
            is_user_action=True,
        )

    @staticmethod
    def account_locked(
        masked_email: str,
        failed_attempts: int,
        lockout_seconds: float,
        locked_until: datetime,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACCOUNT_LOCKED,
            severity=AuditSeverity.WARNING,
            entity_type="user",
            entity_id=masked_email,
            correlation_id=correlation_id,
            description=f"Account locked for {lockout_seconds:.0f}s after {failed_attempts} failures",
            details={
                "failed_attempts": failed_attempts,
                "lockout_seconds": lockout_seconds,
                "locked_until": locked_until.isoformat(),
            },
        )

    @staticmethod
    def locked_attempt_rejected(
        remaining_seconds: int,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCKED_ATTEMPT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            correlation_id=correlation_id,
            description="PIN attempt rejected during lockout",
            details={
                "remaining_seconds": remaining_seconds,
            },
            is_user_action=True,
        )

    @staticmethod
    def lockout_expired(
        locked_until: datetime,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.LOCKOUT_EXPIRED,
            entity_type="session",
            correlation_id=correlation_id,
            description="Lockout expired",
            details={
                "locked_until": locked_until.isoformat(),
            },
        )

    @staticmethod
    def no_stored_user(correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NO_STORED_USER,
            severity=AuditSeverity.WARNING,
            entity_type="session",
            correlation_id=correlation_id,
            description="PIN submitted but no local account exists",
            is_user_action=True,
        )

    @staticmethod
    def session_event(
        event_type: AuditEventType,
        description: str,
        masked_email: Optional[str] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        """Logout, clears and resets: user-initiated, no extra details."""
        return AuditEvent(
            event_type=event_type,
            entity_type="user" if masked_email else "session",
            entity_id=masked_email,
            correlation_id=correlation_id,
            description=description,
            is_user_action=True,
        )

    @staticmethod
    def storage_error(
        operation: str,
        key: str,
        error_message: str,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STORAGE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"Storage {operation} failed for key '{key}'",
            error_message=error_message,
            details={
                "operation": operation,
                "key": key,
            },
            correlation_id=correlation_id,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
