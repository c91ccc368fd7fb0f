"""
Data Models Package

This package contains all Pydantic models used in Moola Auth.
All data crossing the gate, the store or the audit trail conforms to these schemas.
"""

from moola_auth.models.user import (
    USER_RECORD_VERSION,
    InvestmentObjective,
    InvestorProfile,
    KnowledgeLevel,
    MembershipLevel,
    UserRecord,
    mask_email,
)
from moola_auth.models.session import (
    Authenticated,
    GateSnapshot,
    Locked,
    LoginResult,
    LoginStatus,
    Session,
    Unauthenticated,
)
from moola_auth.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # User models
    "USER_RECORD_VERSION",
    "InvestmentObjective",
    "InvestorProfile",
    "KnowledgeLevel",
    "MembershipLevel",
    "UserRecord",
    "mask_email",
    # Session models
    "Authenticated",
    "GateSnapshot",
    "Locked",
    "LoginResult",
    "LoginStatus",
    "Session",
    "Unauthenticated",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
