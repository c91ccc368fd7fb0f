"""
User Models for Moola Auth

The user record is created by the onboarding flow and persisted as the
single local account on this device. The authentication gate only ever
reads it (for the PIN hash); it never edits it.

DESIGN DECISION: The persisted record carries an explicit schema_version.
A record written with a different version is treated as absent rather than
guessed at, so a format change requires a coordinated data-clearing step.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


USER_RECORD_VERSION = 1


# =============================================================================
# ENUMS
# =============================================================================

class MembershipLevel(str, Enum):
    """User membership tier for premium features."""
    STANDARD = "Standard"
    PREMIUM = "Premium Investor"
    ELITE = "Elite Investor"

    @property
    def display_name(self) -> str:
        return self.value


class InvestmentObjective(str, Enum):
    """The user's primary investment goal."""
    SECURITY = "security"
    BALANCED = "balanced"
    GROWTH = "growth"


class KnowledgeLevel(str, Enum):
    """
    User's self-assessed financial literacy.

    Affects guidance level and explanation depth, never feature access.
    """
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    EXPERT = "expert"


# =============================================================================
# INVESTOR PROFILE
# =============================================================================

class InvestorProfile(BaseModel):
    """
    The user's investment profile captured during profiling.

    Stored inside the user record; optional until profiling is done.
    """

    objective: Optional[InvestmentObjective] = None
    risk_tolerance: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="0.0 (conservative) to 1.0 (aggressive)"
    )
    knowledge_level: Optional[KnowledgeLevel] = None

    @property
    def is_complete(self) -> bool:
        """Whether the profile has been completed."""
        return self.objective is not None and self.knowledge_level is not None

    @property
    def risk_label(self) -> str:
        """Human-readable risk label based on tolerance value."""
        if self.risk_tolerance < 0.25:
            return "Conservative"
        if self.risk_tolerance < 0.5:
            return "Cautious"
        if self.risk_tolerance < 0.75:
            return "Moderate"
        return "Adventurous"


# =============================================================================
# USER RECORD
# =============================================================================

def mask_email(email: str) -> str:
    """
    Mask an email for display on the login screen.

    "john@example.com" -> "jo***@example.com"
    Local parts of two characters or less are kept whole.
    """
    parts = email.split("@")
    if len(parts) != 2:
        return email

    local, domain = parts
    if len(local) <= 2:
        return f"{local}***@{domain}"
    return f"{local[:2]}***@{domain}"


class UserRecord(BaseModel):
    """
    The single locally stored account.

    CRITICAL: pin_hash is the only credential material here.
    The plaintext PIN is never stored and never logged.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    schema_version: int = Field(
        default=USER_RECORD_VERSION,
        description="Persisted format version"
    )

    name: str = Field(
        ...,
        max_length=100,
        description="Display name (first name is enough)"
    )
    age: int = Field(
        default=0,
        ge=0,
        le=150
    )
    email: str = Field(
        ...,
        max_length=254,
        description="Unique identifier of the user"
    )
    phone: str = Field(
        default="",
        max_length=32
    )
    is_email_verified: bool = False
    pin_hash: str = Field(
        ...,
        repr=False,
        description="Hex digest produced by the PIN service"
    )
    investor_profile: Optional[InvestorProfile] = None
    membership_level: MembershipLevel = MembershipLevel.STANDARD

    @property
    def has_completed_profiling(self) -> bool:
        """Whether the user has completed investor profiling."""
        return self.investor_profile is not None and self.investor_profile.is_complete

    @property
    def masked_phone(self) -> str:
        """Masked phone number showing only the last 4 digits."""
        if len(self.phone) < 4:
            return self.phone
        return f"•••• •••• {self.phone[-4:]}"

    @property
    def masked_email(self) -> str:
        return mask_email(self.email)

    def to_storage_bytes(self) -> bytes:
        """Serialize for the key-value store."""
        return self.model_dump_json().encode("utf-8")

    @classmethod
    def from_storage_bytes(cls, raw: bytes) -> "UserRecord":
        """
        Parse a stored record.

        Raises:
            pydantic.ValidationError: If the payload is not a valid record
        """
        return cls.model_validate_json(raw)
